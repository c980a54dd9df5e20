"""Data models for compiled deployment plans (plan.yaml)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..errors import ValidationError
from ..workspace.recipes import RECIPE_KIND_BICEP, RECIPE_KIND_TERRAFORM, is_pinned

_REF_RE = re.compile(r"[?&]ref=([^&]+)")


class StepStatus(Enum):
    """Per-step lifecycle shared by plan steps and step results."""
    PLANNED = "planned"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ChangeCount:
    add: int = 0
    change: int = 0
    destroy: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.add or self.change or self.destroy)

    def __add__(self, other: "ChangeCount") -> "ChangeCount":
        return ChangeCount(self.add + other.add, self.change + other.change, self.destroy + other.destroy)

    def to_dict(self) -> Dict[str, int]:
        return {"add": self.add, "change": self.change, "destroy": self.destroy}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ChangeCount":
        data = data or {}
        return cls(
            add=int(data.get("add", 0) or 0),
            change=int(data.get("change", 0) or 0),
            destroy=int(data.get("destroy", 0) or 0),
        )

    def describe(self) -> str:
        return f"+{self.add} ~{self.change} -{self.destroy}"


@dataclass
class ResourceReference:
    name: str
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "properties": self.properties}


@dataclass
class RecipeVersion:
    tag: str = ""
    digest: str = ""

    @classmethod
    def from_location(cls, location: str) -> Optional["RecipeVersion"]:
        """Version qualifier embedded in a recipe location, if any."""
        match = _REF_RE.search(location)
        if match:
            return cls(tag=match.group(1))
        if "@sha256:" in location:
            return cls(digest="sha256:" + location.split("@sha256:", 1)[1])
        tail = location.rsplit("/", 1)[-1]
        if location.startswith("https://") and ":" in tail:
            return cls(tag=tail.rsplit(":", 1)[1])
        return None

    def to_dict(self) -> Dict[str, str]:
        return {k: v for k, v in (("tag", self.tag), ("digest", self.digest)) if v}


@dataclass
class RecipeReference:
    name: str
    kind: str = RECIPE_KIND_TERRAFORM
    location: str = ""
    version: Optional[RecipeVersion] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "kind": self.kind, "location": self.location}
        if self.version is not None:
            data["version"] = self.version.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RecipeReference":
        data = data or {}
        version = data.get("version")
        return cls(
            name=data.get("name", ""),
            kind=data.get("kind", ""),
            location=data.get("location", ""),
            version=RecipeVersion(**version) if isinstance(version, dict) else None,
        )


@dataclass
class DeploymentStep:
    sequence: int
    resource: ResourceReference
    recipe: RecipeReference
    deployment_artifacts: str = ""
    expected_changes: ChangeCount = field(default_factory=ChangeCount)
    status: StepStatus = StepStatus.PLANNED

    @property
    def tool(self) -> str:
        return self.recipe.kind or RECIPE_KIND_TERRAFORM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "resource": self.resource.to_dict(),
            "recipe": self.recipe.to_dict(),
            "deploymentArtifacts": self.deployment_artifacts,
            "expectedChanges": self.expected_changes.to_dict(),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentStep":
        resource = data.get("resource") or {}
        return cls(
            sequence=int(data.get("sequence", 0)),
            resource=ResourceReference(
                name=resource.get("name", ""),
                type=resource.get("type", ""),
                properties=resource.get("properties") or {},
            ),
            recipe=RecipeReference.from_dict(data.get("recipe")),
            deployment_artifacts=data.get("deploymentArtifacts", ""),
            expected_changes=ChangeCount.from_dict(data.get("expectedChanges")),
            status=StepStatus(data.get("status") or StepStatus.PLANNED.value),
        )


@dataclass
class PlanSummary:
    total_steps: int = 0
    terraform_steps: int = 0
    bicep_steps: int = 0
    total_add: int = 0
    total_change: int = 0
    total_destroy: int = 0
    all_versions_pinned: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSteps": self.total_steps,
            "terraformSteps": self.terraform_steps,
            "bicepSteps": self.bicep_steps,
            "totalAdd": self.total_add,
            "totalChange": self.total_change,
            "totalDestroy": self.total_destroy,
            "allVersionsPinned": self.all_versions_pinned,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PlanSummary":
        data = data or {}
        return cls(
            total_steps=data.get("totalSteps", 0),
            terraform_steps=data.get("terraformSteps", 0),
            bicep_steps=data.get("bicepSteps", 0),
            total_add=data.get("totalAdd", 0),
            total_change=data.get("totalChange", 0),
            total_destroy=data.get("totalDestroy", 0),
            all_versions_pinned=data.get("allVersionsPinned", True),
        )


@dataclass
class DeploymentPlan:
    """Ordered steps for one application + environment."""

    application: str
    environment: str = "default"
    application_model_file: str = ""
    environment_file: str = ".env"
    generated_at: str = ""
    steps: List[DeploymentStep] = field(default_factory=list)
    summary: PlanSummary = field(default_factory=PlanSummary)

    def add_step(self, step: DeploymentStep) -> None:
        step.sequence = len(self.steps) + 1
        self.steps.append(step)

    def update_summary(self) -> PlanSummary:
        summary = PlanSummary(total_steps=len(self.steps))
        for step in self.steps:
            if step.recipe.kind == RECIPE_KIND_TERRAFORM:
                summary.terraform_steps += 1
                if not is_pinned(step.recipe.location):
                    summary.all_versions_pinned = False
            elif step.recipe.kind == RECIPE_KIND_BICEP:
                summary.bicep_steps += 1
            summary.total_add += step.expected_changes.add
            summary.total_change += step.expected_changes.change
            summary.total_destroy += step.expected_changes.destroy
        self.summary = summary
        return summary

    def validate(self) -> None:
        if not self.application:
            raise ValidationError("Plan is missing the application name")
        if not self.environment:
            raise ValidationError("Plan is missing the environment name")
        for index, step in enumerate(self.steps):
            if step.sequence != index + 1:
                raise ValidationError(
                    f"Plan step {index + 1} has sequence {step.sequence}; sequences must be contiguous from 1"
                )
            if not step.resource.name:
                raise ValidationError(f"Plan step {step.sequence} has no resource name")
            if step.recipe.kind not in (RECIPE_KIND_TERRAFORM, RECIPE_KIND_BICEP):
                raise ValidationError(
                    f"Plan step {step.sequence} ({step.resource.name}) has unsupported recipe kind "
                    f"'{step.recipe.kind}'",
                    hint="Add a recipe for this resource type under .radius/config/recipes/",
                )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "application": self.application,
            "applicationModelFile": self.application_model_file,
            "environment": self.environment,
            "environmentFile": self.environment_file,
            "generatedAt": self.generated_at,
            "steps": [step.to_dict() for step in self.steps],
            "summary": self.summary.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentPlan":
        return cls(
            application=data.get("application", ""),
            environment=data.get("environment", "") or "",
            application_model_file=data.get("applicationModelFile", ""),
            environment_file=data.get("environmentFile", ".env"),
            generated_at=str(data.get("generatedAt", "") or ""),
            steps=[DeploymentStep.from_dict(s) for s in data.get("steps") or []],
            summary=PlanSummary.from_dict(data.get("summary")),
        )

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, indent=4, allow_unicode=True)

    @classmethod
    def from_yaml(cls, text: str) -> "DeploymentPlan":
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValidationError("Plan file is not a YAML mapping")
        return cls.from_dict(data)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_yaml(), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "DeploymentPlan":
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ValidationError(f"Failed to read plan {path}: {exc}") from exc
        try:
            return cls.from_yaml(text)
        except yaml.YAMLError as exc:
            raise ValidationError(f"Failed to parse plan {path}: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise ValidationError(
                f"Invalid plan {path}: {exc}",
                hint="Regenerate the plan with 'radgit plan'",
            ) from exc
