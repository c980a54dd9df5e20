"""Executor capability: terraform and kubectl drivers."""

from .base import (
    Executor,
    ExecutorFactory,
    PlatformResource,
    PlatformState,
    parse_provider,
)
from .kubernetes import CapturedResource, KubernetesCapture, kind_for, parse_resource_id
from .terraform import TerraformExecutor, count_plan_changes, parse_state

__all__ = [
    "CapturedResource",
    "Executor",
    "ExecutorFactory",
    "KubernetesCapture",
    "PlatformResource",
    "PlatformState",
    "TerraformExecutor",
    "count_plan_changes",
    "kind_for",
    "parse_provider",
    "parse_resource_id",
    "parse_state",
]
