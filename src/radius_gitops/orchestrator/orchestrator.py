"""Deployment orchestrator: drives plan steps forward (deploy) or backward (delete)."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional

from ..errors import OperationCancelled
from ..gitops.manager import GitCommandError, GitInfo
from ..gitops.trailers import CommitOutcome, auto_commit
from ..paths import relative_plan_dir
from .models import (
    DeploymentRecord,
    EnvironmentInfo,
    PlanReference,
    RunAction,
    RunStatus,
    StepResult,
    utcnow,
)
from .records import RecordStore
from .step_executor import StepExecutor

if TYPE_CHECKING:
    from ..gitops.manager import GitRepositoryManager
    from ..interaction import UserInteractionHandler
    from ..plan.models import DeploymentPlan, DeploymentStep
    from ..workspace.environment import Environment

logger = logging.getLogger(__name__)

_STATUS_ICONS = {
    "succeeded": "✅",
    "failed": "❌",
    "skipped": "⏭️",
}


class DeploymentOrchestrator:
    """
    Runs a compiled plan and persists the outcome as a record.

    Deploy halts on the first failed step after saving the partial record.
    Delete visits every step in reverse order and reports failures in
    aggregate once all steps were attempted.
    """

    def __init__(
        self,
        root: Path,
        step_executor: StepExecutor,
        interaction_handler: "UserInteractionHandler",
        vc: Optional["GitRepositoryManager"] = None,
        record_store: Optional[RecordStore] = None,
        auto_commit: bool = True,
        auto_confirm: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.root = Path(root)
        self.step_executor = step_executor
        self.interaction_handler = interaction_handler
        self.vc = vc
        self.record_store = record_store or RecordStore(self.root)
        self.auto_commit = auto_commit
        self.auto_confirm = auto_confirm
        self.clock = clock

        self.record_path: Optional[Path] = None
        self.commit_outcome: Optional[CommitOutcome] = None

    # -- deploy ------------------------------------------------------------

    def deploy(
        self,
        plan: "DeploymentPlan",
        environment: "Environment",
        plan_file: Optional[str] = None,
    ) -> DeploymentRecord:
        """
        Apply every step of ``plan`` in ascending sequence order.

        Args:
            plan: the compiled plan
            environment: target environment (namespace/context go into the record)
            plan_file: workspace-relative path of the plan file, for the record

        Returns:
            The completed record.

        Raises:
            OperationCancelled: a confirmation was declined; nothing was run.
            ExecutionError: a step failed; the partial record was saved first.
        """
        steps = sorted(plan.steps, key=lambda s: s.sequence)

        logger.info("")
        logger.info("=" * 60)
        logger.info("🚀 DEPLOYMENT")
        logger.info("=" * 60)
        logger.info(f"Application: {plan.application}")
        logger.info(f"Environment: {environment.name}")
        logger.info(f"Total Steps: {len(steps)}")
        logger.info("")

        self._check_uncommitted_plan(plan)
        self._confirm_resources(steps, "Deploy these resources?", show_changes=True)

        git = self._git_info()
        now = self.clock()
        record = self._new_record(RunAction.DEPLOY, plan, environment, git, plan_file)
        record_path = self.record_store.deployment_path(plan.application, environment.name, git, now)
        self.record_path = record_path
        record_path.parent.mkdir(parents=True, exist_ok=True)
        record.begin()
        record.save(record_path)

        for index, step in enumerate(steps, 1):
            logger.info(f"📦 Step {index}/{len(steps)}: {step.resource.name} ({step.resource.type})")
            result, error = self.step_executor.apply_step(step, record_path.parent)
            record.add_step(result)
            self._log_step_result(result)

            if error is not None:
                record.fail(str(error))
                record.save(record_path)
                logger.error("❌ Deployment failed")
                logger.info(f"📄 Partial record saved to: {record_path}")
                self.interaction_handler.notify(
                    f"Deployment failed at step {step.sequence} ({step.resource.name}): {result.error}",
                    level="error",
                )
                raise error
            record.save(record_path)
            logger.info("")

        record.complete()
        record.save(record_path)

        logger.info("=" * 60)
        logger.info("🎉 Deployment completed successfully!")
        logger.info("=" * 60)
        logger.info(f"📄 Record saved to: {record_path}")
        self._report_summary(record)

        paths = [self.record_store.relative(record_path)]
        paths += [
            self.record_store.relative(record_path.parent / captured.definition_file)
            for captured in record.captured_resources
            if captured.definition_file
        ]
        self._auto_commit("deploy", plan.application, environment.name, paths)
        return record

    # -- delete ------------------------------------------------------------

    def delete(
        self,
        plan: "DeploymentPlan",
        environment: "Environment",
        plan_file: Optional[str] = None,
    ) -> DeploymentRecord:
        """
        Destroy every step of ``plan`` in descending sequence order.

        A failed step does not stop the run; the returned record carries the
        aggregate status (succeeded, partial or failed).
        """
        steps = sorted(plan.steps, key=lambda s: s.sequence, reverse=True)

        logger.info("")
        logger.info("=" * 60)
        logger.info("🗑️ DELETION")
        logger.info("=" * 60)
        logger.info(f"Application: {plan.application}")
        logger.info(f"Environment: {environment.name}")
        logger.info(f"Total Steps: {len(steps)}")
        logger.info("")

        self._confirm_resources(steps, "Are you sure you want to delete these resources?", show_changes=False)

        git = self._git_info()
        now = self.clock()
        record = self._new_record(RunAction.DELETE, plan, environment, git, plan_file)
        record_path = self.record_store.deletion_path(plan.application, environment.name, git, now)
        self.record_path = record_path
        record_path.parent.mkdir(parents=True, exist_ok=True)
        record.begin()
        record.save(record_path)

        for index, step in enumerate(steps, 1):
            logger.info(f"📦 Step {index}/{len(steps)}: destroying {step.resource.name} ({step.resource.type})")
            result, error = self.step_executor.destroy_step(step)
            record.add_step(result)
            self._log_step_result(result)
            if error is not None:
                logger.warning(f"   ⚠️ Continuing after failure: {error}")
            record.save(record_path)
            logger.info("")

        status = record.complete()
        record.save(record_path)

        logger.info("=" * 60)
        if status == RunStatus.SUCCEEDED:
            logger.info("🎉 Deletion completed successfully!")
        else:
            logger.warning(f"⚠️ Deletion finished with status: {status.value}")
            self.interaction_handler.notify(
                f"Deletion {status.value}: {record.summary.failed_steps} of {len(steps)} steps failed",
                level="warning",
            )
        logger.info("=" * 60)
        logger.info(f"📄 Record saved to: {record_path}")
        self._report_summary(record)

        self._auto_commit("delete", plan.application, environment.name, [self.record_store.relative(record_path)])
        return record

    # -- helpers -----------------------------------------------------------

    def _check_uncommitted_plan(self, plan: "DeploymentPlan") -> None:
        if self.vc is None:
            return
        plan_dir = relative_plan_dir(plan.application, plan.environment)
        try:
            dirty = self.vc.has_uncommitted_changes(plan_dir)
        except (GitCommandError, OSError) as exc:
            logger.debug(f"Could not check for uncommitted plan changes: {exc}")
            return
        if not dirty:
            return

        self.interaction_handler.notify(
            f"You have uncommitted changes in {plan_dir}. The deployed artifacts may not match "
            f"what is committed. Consider: git add {plan_dir} && git commit -m \"Update plan\"",
            level="warning",
        )
        if self.auto_confirm:
            return
        if not self.interaction_handler.confirm("Continue with deployment anyway?", default=False):
            raise OperationCancelled()

    def _confirm_resources(self, steps: List["DeploymentStep"], prompt: str, show_changes: bool) -> None:
        lines = []
        for step in steps:
            line = f"  {step.sequence}. {step.resource.name} ({step.resource.type})"
            if show_changes:
                line += f"  [{step.expected_changes.describe()}]"
            lines.append(line)
        self.interaction_handler.notify("Resources:\n" + "\n".join(lines))

        if self.auto_confirm:
            return
        if not self.interaction_handler.confirm(prompt, default=False):
            raise OperationCancelled()

    def _git_info(self) -> GitInfo:
        if self.vc is None:
            return GitInfo()
        try:
            return self.vc.git_info()
        except (GitCommandError, OSError) as exc:
            logger.debug(f"Could not read git info: {exc}")
            return GitInfo()

    def _new_record(
        self,
        action: RunAction,
        plan: "DeploymentPlan",
        environment: "Environment",
        git: GitInfo,
        plan_file: Optional[str],
    ) -> DeploymentRecord:
        return DeploymentRecord(
            application=plan.application,
            environment=EnvironmentInfo(
                name=environment.name,
                environment_file=environment.env_file,
                kubernetes_context=environment.kubernetes_context,
                kubernetes_namespace=environment.kubernetes_namespace,
            ),
            action=action,
            git=git,
            plan=PlanReference(
                plan_file=plan_file or "",
                plan_commit=git.commit,
                generated_at=plan.generated_at,
            ),
        )

    def _log_step_result(self, result: StepResult) -> None:
        icon = _STATUS_ICONS.get(result.status.value, "•")
        if result.error and result.status.value == "failed":
            logger.error(f"   {icon} {result.status.value}: {result.error}")
        elif result.error:
            logger.info(f"   {icon} {result.status.value}: {result.error}")
        else:
            logger.info(f"   {icon} {result.status.value} ({result.changes.describe()}, {result.duration_ms} ms)")

    def _report_summary(self, record: DeploymentRecord) -> None:
        summary = record.summary
        self.interaction_handler.notify(
            f"{record.action.value.capitalize()} {record.status.value}: "
            f"{summary.succeeded_steps} succeeded, {summary.failed_steps} failed, "
            f"{summary.skipped_steps} skipped "
            f"(+{summary.resources_added} ~{summary.resources_changed} -{summary.resources_destroyed})",
            level="success" if record.status == RunStatus.SUCCEEDED else "warning",
        )

    def _auto_commit(self, action: str, application: str, environment: str, paths: List[str]) -> None:
        if not self.auto_commit or self.vc is None:
            return
        outcome = auto_commit(self.vc, action, application, environment, paths)
        self.commit_outcome = outcome
        if outcome.error:
            self.interaction_handler.notify(
                f"Auto-commit failed: {outcome.error}\n   Run manually: {outcome.manual_command}",
                level="warning",
            )
        elif outcome.commit:
            self.interaction_handler.notify(f"Committed {action} record as {outcome.commit[:7]}", level="success")
