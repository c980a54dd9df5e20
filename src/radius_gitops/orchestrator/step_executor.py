"""Step executor: runs one plan step through the deployment tool."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Tuple

from ..errors import ExecutionError, RadiusError
from ..utils.progress import Spinner
from ..workspace.recipes import RECIPE_KIND_BICEP
from .models import StepResult

if TYPE_CHECKING:
    from rich.console import Console

    from ..executor.base import ExecutorFactory
    from ..executor.kubernetes import KubernetesCapture
    from ..plan.models import DeploymentStep

logger = logging.getLogger(__name__)

BICEP_SKIP_MESSAGE = "Bicep steps are recorded but not executed; only terraform steps are applied"


class StepExecutor:
    """
    Applies or destroys a single step.

    Each call runs the tool exactly once. A failure is returned alongside the
    partial result; deciding whether to halt or continue is left to the caller.
    """

    def __init__(
        self,
        executor_factory: "ExecutorFactory",
        root: Path,
        capture: Optional["KubernetesCapture"] = None,
        console: Optional["Console"] = None,
    ):
        self.executor_factory = executor_factory
        self.root = Path(root)
        self.capture = capture
        self.console = console

    def apply_step(
        self,
        step: "DeploymentStep",
        record_dir: Optional[Path] = None,
    ) -> Tuple[StepResult, Optional[ExecutionError]]:
        """
        Run init + apply for ``step``.

        Args:
            step: plan step to apply
            record_dir: directory of the run record; captured manifests are written there

        Returns:
            (result, error) where error is None on success
        """
        result = self._new_result(step)
        result.start()

        if step.tool == RECIPE_KIND_BICEP:
            result.skip(BICEP_SKIP_MESSAGE)
            return result, None

        work_dir = self._work_dir(step)
        if work_dir is None:
            return self._fail(result, step, f"Step directory not found: {step.deployment_artifacts}")

        executor = self.executor_factory(work_dir)
        try:
            with self._spinner(f"Applying {step.resource.name}..."):
                executor.init()
                changes, resources = executor.apply()
        except (RadiusError, OSError) as exc:
            return self._fail(result, step, str(exc), exc)

        result.changes = changes
        result.platform_resources = list(resources)
        try:
            result.outputs = executor.output()
        except (RadiusError, OSError) as exc:
            logger.warning(f"   ⚠️ Could not read outputs for {step.resource.name}: {exc}")

        if self.capture is not None and record_dir is not None:
            result.captured_resources = self.capture.capture(
                result.platform_resources,
                record_dir,
                step_sequence=step.sequence,
                radius_resource_type=step.resource.type,
            )

        result.succeed()
        return result, None

    def destroy_step(self, step: "DeploymentStep") -> Tuple[StepResult, Optional[ExecutionError]]:
        """Run init + destroy for ``step``; succeeded only when destroy itself succeeds."""
        result = self._new_result(step)
        result.start()

        if step.tool == RECIPE_KIND_BICEP:
            result.skip(BICEP_SKIP_MESSAGE)
            return result, None

        work_dir = self._work_dir(step)
        if work_dir is None:
            return self._fail(result, step, f"Step directory not found: {step.deployment_artifacts}")

        executor = self.executor_factory(work_dir)
        try:
            with self._spinner(f"Destroying {step.resource.name}..."):
                executor.init()
                executor.destroy()
        except (RadiusError, OSError) as exc:
            return self._fail(result, step, str(exc), exc)

        result.succeed()
        return result, None

    def _new_result(self, step: "DeploymentStep") -> StepResult:
        return StepResult(
            sequence=step.sequence,
            name=step.resource.name,
            resource_type=step.resource.type,
            tool=step.tool,
        )

    def _work_dir(self, step: "DeploymentStep") -> Optional[Path]:
        if not step.deployment_artifacts:
            return None
        path = Path(step.deployment_artifacts)
        if not path.is_absolute():
            path = self.root / path
        return path if path.is_dir() else None

    def _fail(
        self,
        result: StepResult,
        step: "DeploymentStep",
        message: str,
        cause: Optional[BaseException] = None,
    ) -> Tuple[StepResult, ExecutionError]:
        result.fail(message)
        error = ExecutionError(
            f"Step {step.sequence} ({step.resource.name}) failed: {message}",
            command=getattr(cause, "command", None),
            stderr=getattr(cause, "stderr", ""),
            hint=getattr(cause, "hint", None),
        )
        return result, error

    def _spinner(self, message: str):
        if self.console is not None and self.console.is_terminal:
            return Spinner(message, console=self.console)
        return nullcontext()
