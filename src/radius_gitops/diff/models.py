"""Result types produced by the diff engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


class ChangeKind(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"

    @property
    def symbol(self) -> str:
        return {"added": "+", "removed": "-", "modified": "~"}[self.value]


class DiffExitCode(IntEnum):
    """Process exit codes of the diff command."""
    NO_DIFF = 0
    DIFF_FOUND = 1
    VALIDATION_ERROR = 2
    AUTH_ERROR = 3


@dataclass
class PropertyDiff:
    """One changed value inside a structured document."""

    path: str
    change: ChangeKind
    old_value: Any = None
    new_value: Any = None
    file: str = ""      # artifact the difference was found in

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.path,
            "change": self.change.value,
            "oldValue": self.old_value,
            "newValue": self.new_value,
        }
        if self.file:
            data["file"] = self.file
        return data


@dataclass
class ManifestDiff:
    """Difference for one platform object (kubernetes manifest)."""

    kind: str
    name: str
    namespace: str
    change: ChangeKind
    property_diffs: List[PropertyDiff] = field(default_factory=list)
    rendered: str = ""

    @property
    def resource_id(self) -> str:
        return f"{self.namespace}/{self.kind}/{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "namespace": self.namespace,
            "change": self.change.value,
            "propertyDiffs": [d.to_dict() for d in self.property_diffs],
        }


@dataclass
class DiffResult:
    """Outcome of comparing two revisions, or a revision and live state."""

    source: str
    target: str
    application: Optional[str] = None
    environment: Optional[str] = None
    plan_diffs: List[PropertyDiff] = field(default_factory=list)
    record_diffs: List[PropertyDiff] = field(default_factory=list)
    manifest_diffs: List[ManifestDiff] = field(default_factory=list)
    rendered: str = ""

    @property
    def has_diff(self) -> bool:
        return bool(self.plan_diffs or self.record_diffs or self.manifest_diffs)

    @property
    def exit_code(self) -> DiffExitCode:
        return DiffExitCode.DIFF_FOUND if self.has_diff else DiffExitCode.NO_DIFF

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasDiff": self.has_diff,
            "source": self.source,
            "target": self.target,
            "application": self.application or "",
            "environment": self.environment or "",
            "planDiffs": [d.to_dict() for d in self.plan_diffs],
            "deploymentDiffs": [d.to_dict() for d in self.record_diffs],
            "manifestDiffs": [d.to_dict() for d in self.manifest_diffs],
        }
