"""Deployment plans: data model, step configuration and the compiler."""

from .models import (
    ChangeCount,
    DeploymentPlan,
    DeploymentStep,
    PlanSummary,
    RecipeReference,
    RecipeVersion,
    ResourceReference,
    StepStatus,
)
from .compiler import CompileResult, CompileSession, PlanCompiler, load_recipe_registry, resolve_model_path

__all__ = [
    "ChangeCount",
    "CompileResult",
    "CompileSession",
    "DeploymentPlan",
    "DeploymentStep",
    "PlanCompiler",
    "PlanSummary",
    "RecipeReference",
    "RecipeVersion",
    "ResourceReference",
    "StepStatus",
    "load_recipe_registry",
    "resolve_model_path",
]
