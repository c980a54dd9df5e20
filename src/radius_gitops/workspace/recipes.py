"""Recipe registry: resource type -> recipe kind and location."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml

from ..errors import ValidationError

logger = logging.getLogger(__name__)

RECIPE_KIND_TERRAFORM = "terraform"
RECIPE_KIND_BICEP = "bicep"


def strip_version(resource_type: str) -> str:
    return resource_type.split("@", 1)[0]


def display_type(resource_type: str) -> str:
    """De-versioned type with the legacy ``Applications.`` namespace shown as ``Radius.``."""
    base = strip_version(resource_type)
    if base.startswith("Applications."):
        return "Radius." + base[len("Applications."):]
    return base


def is_pinned(location: str) -> bool:
    return "?ref=" in location or "&ref=" in location


@dataclass
class RecipeEntry:
    kind: str
    location: str

    def to_dict(self) -> Dict[str, str]:
        return {"recipeKind": self.kind, "recipeLocation": self.location}


@dataclass
class RecipeRegistry:
    """Recipes keyed by de-versioned resource type."""

    entries: Dict[str, RecipeEntry] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Dict) -> "RecipeRegistry":
        entries: Dict[str, RecipeEntry] = {}
        for name, body in ((payload or {}).get("recipes") or {}).items():
            body = body or {}
            entries[name] = RecipeEntry(
                kind=str(body.get("recipeKind", "")),
                location=str(body.get("recipeLocation", "")),
            )
        return cls(entries=entries)

    @classmethod
    def load(cls, paths: Iterable[Path]) -> "RecipeRegistry":
        """Merge recipe manifests; later files override earlier ones."""
        registry = cls()
        for path in paths:
            try:
                with Path(path).open("r", encoding="utf-8") as handle:
                    payload = yaml.safe_load(handle) or {}
            except (OSError, yaml.YAMLError) as exc:
                raise ValidationError(f"Failed to load recipes from {path}: {exc}") from exc
            loaded = cls.from_dict(payload)
            logger.debug("Loaded %d recipes from %s", len(loaded.entries), path)
            registry.entries.update(loaded.entries)
        return registry

    @classmethod
    def load_dir(cls, directory: Path) -> "RecipeRegistry":
        if not directory.is_dir():
            return cls()
        files = sorted(list(directory.glob("*.yaml")) + list(directory.glob("*.yml")))
        return cls.load(files)

    def lookup(self, resource_type: str) -> Optional[RecipeEntry]:
        base = strip_version(resource_type)
        entry = self.entries.get(base)
        if entry is None:
            entry = self.entries.get(display_type(resource_type))
        return entry

    def validation_errors(self) -> List[str]:
        errors: List[str] = []
        for name, entry in self.entries.items():
            if entry.kind == RECIPE_KIND_TERRAFORM:
                if not entry.location.startswith("git::"):
                    errors.append(f"recipe {name}: Terraform recipe location must start with 'git::'")
            elif entry.kind == RECIPE_KIND_BICEP:
                if not entry.location.startswith("https://"):
                    errors.append(f"recipe {name}: Bicep recipe location must be an HTTPS OCI registry URL")
            else:
                errors.append(
                    f"recipe {name}: recipeKind must be 'terraform' or 'bicep', got: {entry.kind}"
                )
            if len(name.split("/")) != 2:
                errors.append(f"recipe name must be in format 'Namespace/Type', got: {name}")
        return errors

    def validate(self) -> None:
        errors = self.validation_errors()
        if errors:
            raise ValidationError("Invalid recipe registry:\n  " + "\n  ".join(errors))

    def to_dict(self) -> Dict:
        return {"recipes": {name: entry.to_dict() for name, entry in self.entries.items()}}

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(self.to_dict(), handle, sort_keys=False)
