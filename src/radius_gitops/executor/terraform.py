"""Terraform CLI executor."""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ExecutionError
from ..plan.models import ChangeCount
from .base import NAMESPACED_PROVIDERS, Executor, PlatformResource, PlatformState, parse_provider

logger = logging.getLogger(__name__)

PLAN_FILE = "tfplan"


def count_plan_changes(plan_json: Dict[str, Any]) -> ChangeCount:
    """Count create/update/delete actions in ``terraform show -json <plan>`` output.

    A replacement (delete + create) counts as one add and one destroy.
    """
    counts = ChangeCount()
    for change in plan_json.get("resource_changes") or []:
        actions = (change.get("change") or {}).get("actions") or []
        if "create" in actions:
            counts.add += 1
        if "delete" in actions:
            counts.destroy += 1
        if "update" in actions:
            counts.change += 1
    return counts


def _namespace_of(values: Dict[str, Any]) -> str:
    metadata = values.get("metadata")
    if isinstance(metadata, list) and metadata and isinstance(metadata[0], dict):
        return metadata[0].get("namespace") or ""
    if isinstance(metadata, dict):
        return metadata.get("namespace") or ""
    return values.get("namespace") or ""


def collect_resources(module: Optional[Dict[str, Any]]) -> List[PlatformResource]:
    """Managed resources of a state module, child modules included."""
    if not module:
        return []
    resources: List[PlatformResource] = []
    for item in module.get("resources") or []:
        if item.get("mode", "managed") != "managed":
            continue
        resource_type = item.get("type", "")
        provider = parse_provider(resource_type)
        values = item.get("values") or {}
        resources.append(PlatformResource(
            address=item.get("address", ""),
            type=resource_type,
            name=item.get("name", ""),
            provider=provider,
            namespace=_namespace_of(values) if provider in NAMESPACED_PROVIDERS else "",
            attributes=values,
        ))
    for child in module.get("child_modules") or []:
        resources.extend(collect_resources(child))
    return resources


def parse_state(show_json: Dict[str, Any]) -> PlatformState:
    values = show_json.get("values") or {}
    outputs = {name: (body or {}).get("value") for name, body in (values.get("outputs") or {}).items()}
    return PlatformState(resources=collect_resources(values.get("root_module")), outputs=outputs)


class TerraformExecutor(Executor):
    """Drives ``terraform`` in one step directory."""

    def __init__(self, working_dir: Path, binary: str = "terraform", timeout: int = 1800) -> None:
        self.working_dir = Path(working_dir)
        self.binary = binary
        self.timeout = timeout

    def init(self) -> None:
        self._run(["init", "-input=false", "-no-color"])

    def plan(self) -> ChangeCount:
        self._run(["plan", "-input=false", "-no-color", f"-out={PLAN_FILE}"])
        plan_json = self._run_json(["show", "-json", PLAN_FILE])
        return count_plan_changes(plan_json)

    def apply(self) -> Tuple[ChangeCount, List[PlatformResource]]:
        changes = self.plan()
        self._run(["apply", "-input=false", "-no-color", "-auto-approve", PLAN_FILE])
        state = self.show()
        return changes, state.resources

    def destroy(self) -> None:
        self._run(["destroy", "-input=false", "-no-color", "-auto-approve"])

    def show(self) -> PlatformState:
        return parse_state(self._run_json(["show", "-json"]))

    def output(self) -> Dict[str, Any]:
        raw = self._run_json(["output", "-json"])
        return {name: (body or {}).get("value") for name, body in raw.items()}

    def _run_json(self, args: List[str]) -> Dict[str, Any]:
        out = self._run(args)
        try:
            return json.loads(out) if out.strip() else {}
        except json.JSONDecodeError as exc:
            raise ExecutionError(
                f"terraform {' '.join(args)} returned invalid JSON: {exc}",
                command=[self.binary, *args],
            ) from exc

    def _run(self, args: List[str]) -> str:
        command = [self.binary] + args
        logger.debug("Running %s in %s", " ".join(command), self.working_dir)
        try:
            process = subprocess.run(
                command,
                cwd=str(self.working_dir),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ExecutionError(
                f"{self.binary} not found",
                command=command,
                hint="Install Terraform or set RADGIT_TERRAFORM_BINARY",
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ExecutionError(
                f"terraform {args[0]} timed out after {self.timeout}s",
                command=command,
            ) from exc
        if process.returncode != 0:
            stderr = process.stderr.strip() or process.stdout.strip()
            raise ExecutionError(
                f"terraform {args[0]} failed: {stderr}",
                command=command,
                exit_code=process.returncode,
                stderr=stderr,
            )
        return process.stdout
