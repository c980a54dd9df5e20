"""Tagged-union property values for resource property bags."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Tuple


class ValueKind(str, Enum):
    NULL = "null"
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    LIST = "list"
    MAP = "map"


@dataclass(frozen=True)
class Value:
    """One node of a property tree.

    Lists hold a tuple of Values and maps hold a tuple of (key, Value) pairs
    so that values stay hashable and comparisons are exhaustive over kinds.
    """

    kind: ValueKind
    data: Any = None

    @classmethod
    def of(cls, obj: Any) -> "Value":
        """Build a Value from plain Python data (as loaded from YAML/JSON)."""
        if isinstance(obj, Value):
            return obj
        if obj is None:
            return cls(ValueKind.NULL)
        # bool is a subclass of int, check it first
        if isinstance(obj, bool):
            return cls(ValueKind.BOOL, obj)
        if isinstance(obj, (int, float)):
            return cls(ValueKind.NUMBER, obj)
        if isinstance(obj, str):
            return cls(ValueKind.STRING, obj)
        if isinstance(obj, Mapping):
            return cls(ValueKind.MAP, tuple((str(k), cls.of(v)) for k, v in obj.items()))
        if isinstance(obj, (list, tuple)):
            return cls(ValueKind.LIST, tuple(cls.of(v) for v in obj))
        raise TypeError(f"Unsupported property value type: {type(obj).__name__}")

    def to_python(self) -> Any:
        if self.kind == ValueKind.MAP:
            return {k: v.to_python() for k, v in self.data}
        if self.kind == ValueKind.LIST:
            return [v.to_python() for v in self.data]
        return self.data

    @property
    def is_scalar(self) -> bool:
        return self.kind not in (ValueKind.LIST, ValueKind.MAP)

    def items(self) -> Tuple[Tuple[str, "Value"], ...]:
        if self.kind != ValueKind.MAP:
            raise TypeError(f"{self.kind.value} value has no items")
        return self.data

    def get(self, key: str) -> "Value":
        for k, v in self.items():
            if k == key:
                return v
        raise KeyError(key)

    def __len__(self) -> int:
        if self.kind in (ValueKind.LIST, ValueKind.MAP):
            return len(self.data)
        raise TypeError(f"{self.kind.value} value has no length")


PropertyBag = Dict[str, Value]


def bag_from_python(obj: Mapping[str, Any]) -> PropertyBag:
    return {str(k): Value.of(v) for k, v in (obj or {}).items()}


def bag_to_python(bag: Mapping[str, Value]) -> Dict[str, Any]:
    return {k: v.to_python() for k, v in bag.items()}


def type_name(obj: Any) -> str:
    """Schema-style type name of a plain Python value."""
    kind = Value.of(obj).kind
    return {
        ValueKind.NULL: "null",
        ValueKind.STRING: "string",
        ValueKind.NUMBER: "integer" if isinstance(obj, int) and not isinstance(obj, bool) else "number",
        ValueKind.BOOL: "boolean",
        ValueKind.LIST: "array",
        ValueKind.MAP: "object",
    }[kind]
