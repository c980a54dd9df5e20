"""Error types shared across the plan, deploy, delete and diff commands."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    """How an error should be surfaced to the operator."""
    USER_FACING = "user_facing"   # concise message, optional hint, no traceback
    INTERNAL = "internal"         # unexpected, logged with full context


class RadiusError(Exception):
    """Base error carrying a classification and an optional remedial hint."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        exit_code: int = 1,
        kind: Optional[ErrorKind] = None,
    ) -> None:
        self.message = message
        self.hint = hint
        self.exit_code = exit_code
        if kind is not None:
            self.kind = kind
        super().__init__(message)

    @property
    def is_user_facing(self) -> bool:
        return self.kind == ErrorKind.USER_FACING


class ValidationError(RadiusError):
    """Missing prerequisite state or invalid input."""

    kind = ErrorKind.USER_FACING


class OperationCancelled(ValidationError):
    """The operator declined a confirmation prompt."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message, exit_code=1)


class CircularDependencyError(ValidationError):
    """The model graph contains a dependency cycle."""

    def __init__(self, cycle: List[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(
            f"Circular dependency detected: {' -> '.join(self.cycle)}",
            hint="Remove one of the connections or dependsOn entries in the cycle.",
        )


class DanglingConnectionError(ValidationError):
    """A connection or dependsOn entry names a resource that does not exist."""

    def __init__(self, source: str, connection: str, target: str) -> None:
        self.source = source
        self.connection = connection
        self.target = target
        super().__init__(
            f"Resource '{source}' connection '{connection}' references unknown resource '{target}'",
            hint="Check the symbolic names used in connections and dependsOn.",
        )


class ExecutionError(RadiusError):
    """An external tool (terraform, kubectl) failed."""

    kind = ErrorKind.USER_FACING

    def __init__(
        self,
        message: str,
        *,
        command: Optional[List[str]] = None,
        exit_code: int = 1,
        stderr: str = "",
        hint: Optional[str] = None,
    ) -> None:
        self.command = command or []
        self.tool_exit_code = exit_code
        self.stderr = stderr
        super().__init__(message, hint=hint, exit_code=1)


class AuthenticationError(RadiusError):
    """The platform rejected our credentials."""

    kind = ErrorKind.USER_FACING

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        super().__init__(message, hint=hint, exit_code=3)
