"""Executor capability: the deployment tool as seen by the compiler and step executor."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

from ..plan.models import ChangeCount

KNOWN_PROVIDERS = (
    "kubernetes",
    "azurerm",
    "aws",
    "google",
    "helm",
    "null",
    "random",
    "local",
    "time",
)

NAMESPACED_PROVIDERS = ("kubernetes", "helm")


def parse_provider(resource_type: str) -> str:
    """Provider inferred from a resource-type prefix, e.g. ``aws_s3_bucket`` -> ``aws``."""
    for provider in KNOWN_PROVIDERS:
        if resource_type == provider or resource_type.startswith(provider + "_"):
            return provider
    return "unknown"


@dataclass
class PlatformResource:
    """One object in the deployment tool's state after apply."""

    address: str
    type: str
    name: str
    provider: str = "unknown"
    namespace: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "address": self.address,
            "type": self.type,
            "name": self.name,
            "provider": self.provider,
        }
        if self.namespace:
            data["namespace"] = self.namespace
        return data


@dataclass
class PlatformState:
    resources: List[PlatformResource] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)


class Executor(ABC):
    """Runs the deployment tool in one step directory. Every call runs exactly once."""

    @abstractmethod
    def init(self) -> None:
        """Prepare the working directory (providers, modules, backend)."""

    @abstractmethod
    def plan(self) -> ChangeCount:
        """Dry run; returns the expected change counts."""

    @abstractmethod
    def apply(self) -> Tuple[ChangeCount, List[PlatformResource]]:
        """Apply changes; returns what changed and the resulting platform resources."""

    @abstractmethod
    def destroy(self) -> None:
        """Tear down everything the step directory manages."""

    @abstractmethod
    def show(self) -> PlatformState:
        """Current state of the step directory."""

    def output(self) -> Dict[str, Any]:
        """Output values of the step directory."""
        return self.show().outputs


ExecutorFactory = Callable[[Path], Executor]
