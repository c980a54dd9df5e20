"""Resource type schemas used to validate model properties."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from ..errors import ValidationError
from ..model.values import Value, ValueKind
from .recipes import display_type, strip_version

logger = logging.getLogger(__name__)

# Schema type name -> Value kinds accepted for it
_ACCEPTED_KINDS = {
    "string": (ValueKind.STRING,),
    "number": (ValueKind.NUMBER,),
    "integer": (ValueKind.NUMBER,),
    "boolean": (ValueKind.BOOL,),
    "array": (ValueKind.LIST,),
    "object": (ValueKind.MAP,),
}


@dataclass
class PropertyIssue:
    """One schema violation."""

    path: str
    message: str
    suggestion: str = ""

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.path}: {self.message} (suggestion: {self.suggestion})"
        return f"{self.path}: {self.message}"


@dataclass
class ResourceTypeDefinition:
    type: str
    description: str = ""
    schema: Dict[str, Any] = field(default_factory=dict)


def is_similar(a: str, b: str) -> bool:
    """Loose name match used for "did you mean" suggestions."""
    a, b = a.lower(), b.lower()
    if a == b + "s" or b == a + "s":
        return True
    if a in b or b in a:
        return True
    if a and b and a[0] == b[0] and len(a) == len(b):
        return sum(1 for x, y in zip(a, b) if x != y) <= 2
    return False


def _suggest(target: str, candidates) -> str:
    for name in candidates:
        if is_similar(target, name):
            return f"did you mean '{name}'?"
    return ""


def _validate_object(path: str, value: Value, schema: Mapping[str, Any]) -> List[PropertyIssue]:
    issues: List[PropertyIssue] = []
    if value.kind != ValueKind.MAP:
        if value.kind == ValueKind.LIST:
            issues.append(PropertyIssue(
                path,
                "expected object but found array syntax",
                "Use { } for objects/maps, not [ ]",
            ))
        return issues

    props: Mapping[str, Any] = schema.get("properties") or {}
    present = dict(value.items())

    for required in schema.get("required") or []:
        if required not in present:
            issues.append(PropertyIssue(
                f"{path}.{required}", "required property is missing", _suggest(required, present)
            ))

    for name, child in present.items():
        child_path = f"{path}.{name}"
        child_schema = props.get(name)
        if child_schema is None:
            issues.append(PropertyIssue(
                child_path, f"unknown property '{name}'", _suggest(name, props)
            ))
            continue
        issues.extend(_validate_value(child_path, child, child_schema or {}))
    return issues


def _validate_value(path: str, value: Value, schema: Mapping[str, Any]) -> List[PropertyIssue]:
    expected = schema.get("type")
    if value.kind == ValueKind.NULL or not expected:
        return []
    if expected == "object" and value.kind == ValueKind.MAP and schema.get("properties"):
        return _validate_object(path, value, schema)
    if expected == "object" and value.kind == ValueKind.LIST:
        return _validate_object(path, value, schema)
    accepted = _ACCEPTED_KINDS.get(expected)
    if accepted is None:
        return []
    # Unresolved expressions (${...}) are checked at deploy time, not here
    if value.kind == ValueKind.STRING and str(value.data).startswith("${"):
        return []
    if value.kind not in accepted:
        return [PropertyIssue(path, f"expected {expected}, got {value.kind.value}")]
    if expected == "integer" and isinstance(value.data, float) and not value.data.is_integer():
        return [PropertyIssue(path, f"expected integer, got {value.data}")]
    if expected == "array" and schema.get("items"):
        issues: List[PropertyIssue] = []
        for index, item in enumerate(value.data):
            issues.extend(_validate_value(f"{path}[{index}]", item, schema["items"]))
        return issues
    enum = schema.get("enum")
    if enum and value.is_scalar and value.data not in enum:
        return [PropertyIssue(path, f"value {value.data!r} is not one of {enum}")]
    return []


class ResourceTypeRegistry:
    """Schemas loaded from ``.radius/config/types/*.yaml``."""

    def __init__(self, types: Optional[Dict[str, ResourceTypeDefinition]] = None) -> None:
        self.types: Dict[str, ResourceTypeDefinition] = types or {}

    @classmethod
    def load_dir(cls, directory: Path) -> "ResourceTypeRegistry":
        registry = cls()
        if not directory.is_dir():
            return registry
        for path in sorted(list(directory.glob("*.yaml")) + list(directory.glob("*.yml"))):
            try:
                payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as exc:
                raise ValidationError(f"Failed to parse type file {path}: {exc}") from exc
            type_name = payload.get("type") or payload.get("name")
            if not type_name:
                logger.debug("Skipping %s: no type name", path)
                continue
            registry.types[type_name] = ResourceTypeDefinition(
                type=type_name,
                description=payload.get("description", "") or "",
                schema=payload.get("schema") or {},
            )
        return registry

    def get(self, resource_type: str) -> Optional[ResourceTypeDefinition]:
        for candidate in (resource_type, strip_version(resource_type), display_type(resource_type)):
            definition = self.types.get(candidate)
            if definition is not None:
                return definition
        return None

    def validate_properties(self, resource_type: str, properties: Mapping[str, Value]) -> List[PropertyIssue]:
        """Schema violations for one resource; unknown types yield no issues."""
        definition = self.get(resource_type)
        if definition is None or not definition.schema:
            return []
        return _validate_object("properties", Value.of(dict(properties)), definition.schema)
