"""Data models for deploy/delete runs: step results and run records."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..executor.base import PlatformResource
from ..executor.kubernetes import CapturedResource
from ..gitops.manager import GitInfo
from ..plan.models import ChangeCount, StepStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class RunStatus(Enum):
    """Overall status of one deploy or delete run."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIAL = "partial"


class RunAction(Enum):
    DEPLOY = "deploy"
    DELETE = "delete"


@dataclass
class StepResult:
    """Outcome of running one plan step."""

    sequence: int
    name: str
    resource_type: str
    tool: str = "terraform"
    status: StepStatus = StepStatus.PLANNED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    changes: ChangeCount = field(default_factory=ChangeCount)
    outputs: Dict[str, Any] = field(default_factory=dict)
    platform_resources: List[PlatformResource] = field(default_factory=list)
    captured_resources: List[CapturedResource] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def duration_ms(self) -> int:
        if self.started_at and self.completed_at:
            return int((self.completed_at - self.started_at).total_seconds() * 1000)
        return 0

    def start(self) -> None:
        self.status = StepStatus.EXECUTING
        self.started_at = utcnow()

    def succeed(self) -> None:
        self.status = StepStatus.SUCCEEDED
        self.completed_at = utcnow()

    def fail(self, error: str) -> None:
        self.status = StepStatus.FAILED
        self.error = error
        self.completed_at = utcnow()

    def skip(self, reason: str) -> None:
        self.status = StepStatus.SKIPPED
        self.error = reason
        if self.started_at is None:
            self.started_at = utcnow()
        self.completed_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sequence": self.sequence,
            "name": self.name,
            "resourceType": self.resource_type,
            "tool": self.tool,
            "status": self.status.value,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "duration": self.duration_ms,
            "changes": self.changes.to_dict(),
        }
        if self.outputs:
            data["outputs"] = self.outputs
        if self.platform_resources:
            data["platformResources"] = [r.to_dict() for r in self.platform_resources]
        if self.captured_resources:
            data["capturedResources"] = [c.to_dict() for c in self.captured_resources]
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepResult":
        return cls(
            sequence=int(data.get("sequence", 0)),
            name=data.get("name", ""),
            resource_type=data.get("resourceType", ""),
            tool=data.get("tool", "terraform"),
            status=StepStatus(data.get("status") or StepStatus.PLANNED.value),
            started_at=_parse_time(data.get("startedAt")),
            completed_at=_parse_time(data.get("completedAt")),
            changes=ChangeCount.from_dict(data.get("changes")),
            outputs=data.get("outputs") or {},
            platform_resources=[
                PlatformResource(
                    address=r.get("address", ""),
                    type=r.get("type", ""),
                    name=r.get("name", ""),
                    provider=r.get("provider", "unknown"),
                    namespace=r.get("namespace", ""),
                )
                for r in data.get("platformResources") or []
            ],
            captured_resources=[CapturedResource.from_dict(c) for c in data.get("capturedResources") or []],
            error=data.get("error"),
        )


@dataclass
class EnvironmentInfo:
    name: str
    environment_file: str = ".env"
    kubernetes_context: str = ""
    kubernetes_namespace: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "environmentFile": self.environment_file}
        if self.kubernetes_context:
            data["kubernetesContext"] = self.kubernetes_context
        if self.kubernetes_namespace:
            data["kubernetesNamespace"] = self.kubernetes_namespace
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EnvironmentInfo":
        data = data or {}
        return cls(
            name=data.get("name", ""),
            environment_file=data.get("environmentFile", ".env"),
            kubernetes_context=data.get("kubernetesContext", ""),
            kubernetes_namespace=data.get("kubernetesNamespace", ""),
        )


@dataclass
class PlanReference:
    plan_file: str
    plan_commit: str = ""
    generated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"planFile": self.plan_file, "planCommit": self.plan_commit, "generatedAt": self.generated_at}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PlanReference":
        data = data or {}
        return cls(
            plan_file=data.get("planFile", ""),
            plan_commit=data.get("planCommit", ""),
            generated_at=data.get("generatedAt", ""),
        )


@dataclass(frozen=True)
class RecordSummary:
    total_steps: int = 0
    succeeded_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0
    total_resources: int = 0
    resources_added: int = 0
    resources_changed: int = 0
    resources_destroyed: int = 0

    @classmethod
    def compute(cls, steps: List[StepResult]) -> "RecordSummary":
        """Summary derived from step results alone."""
        changes = ChangeCount()
        for step in steps:
            changes = changes + step.changes
        return cls(
            total_steps=len(steps),
            succeeded_steps=sum(1 for s in steps if s.status == StepStatus.SUCCEEDED),
            failed_steps=sum(1 for s in steps if s.status == StepStatus.FAILED),
            skipped_steps=sum(1 for s in steps if s.status == StepStatus.SKIPPED),
            total_resources=sum(len(s.platform_resources) for s in steps),
            resources_added=changes.add,
            resources_changed=changes.change,
            resources_destroyed=changes.destroy,
        )

    def derive_status(self) -> RunStatus:
        if self.failed_steps == 0:
            return RunStatus.SUCCEEDED
        if self.succeeded_steps > 0:
            return RunStatus.PARTIAL
        return RunStatus.FAILED

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalSteps": self.total_steps,
            "succeededSteps": self.succeeded_steps,
            "failedSteps": self.failed_steps,
            "skippedSteps": self.skipped_steps,
            "totalResources": self.total_resources,
            "resourcesAdded": self.resources_added,
            "resourcesChanged": self.resources_changed,
            "resourcesDestroyed": self.resources_destroyed,
        }


@dataclass
class DeploymentRecord:
    """Audit trail of one deploy or delete run.

    ``summary`` is never stored independently: it is recomputed from
    ``steps`` every time it is read or serialized.
    """

    application: str
    environment: EnvironmentInfo
    action: RunAction = RunAction.DEPLOY
    status: RunStatus = RunStatus.NOT_STARTED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    git: GitInfo = field(default_factory=GitInfo)
    plan: Optional[PlanReference] = None
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def summary(self) -> RecordSummary:
        return RecordSummary.compute(self.steps)

    @property
    def resources(self) -> List[str]:
        return [r.address for step in self.steps for r in step.platform_resources]

    @property
    def captured_resources(self) -> List[CapturedResource]:
        return [c for step in self.steps for c in step.captured_resources]

    def begin(self) -> None:
        self.status = RunStatus.IN_PROGRESS
        self.started_at = utcnow()

    def add_step(self, result: StepResult) -> None:
        self.steps.append(result)

    def complete(self) -> RunStatus:
        """Finish the run with the status derived from the step results."""
        self.completed_at = utcnow()
        self.status = self.summary.derive_status()
        return self.status

    def fail(self, error: str) -> None:
        """Finish the run as failed regardless of earlier successes (deploy halt)."""
        self.completed_at = utcnow()
        self.status = RunStatus.FAILED
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "application": self.application,
            "action": self.action.value,
            "environment": self.environment.to_dict(),
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "status": self.status.value,
            "git": self.git.to_dict(),
            "plan": self.plan.to_dict() if self.plan else None,
            "steps": [step.to_dict() for step in self.steps],
            "resources": self.resources,
            "summary": self.summary.to_dict(),
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentRecord":
        return cls(
            application=data.get("application", ""),
            environment=EnvironmentInfo.from_dict(data.get("environment")),
            action=RunAction(data.get("action") or RunAction.DEPLOY.value),
            status=RunStatus(data.get("status") or RunStatus.NOT_STARTED.value),
            started_at=_parse_time(data.get("startedAt")),
            completed_at=_parse_time(data.get("completedAt")),
            git=GitInfo.from_dict(data.get("git")),
            plan=PlanReference.from_dict(data["plan"]) if data.get("plan") else None,
            steps=[StepResult.from_dict(s) for s in data.get("steps") or []],
            error=data.get("error"),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "DeploymentRecord":
        return cls.from_dict(json.loads(text))

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: Path) -> "DeploymentRecord":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))
