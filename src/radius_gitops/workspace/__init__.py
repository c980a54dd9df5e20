"""Workspace configuration: recipes, resource types, environments and the .radius/ layout."""

from .environment import DEFAULT_ENVIRONMENT, Environment, environment_file_for, environment_name_from_file
from .manager import InitResult, ModelResult, RadiusWorkspace
from .recipes import RecipeEntry, RecipeRegistry, display_type, is_pinned, strip_version
from .types import PropertyIssue, ResourceTypeDefinition, ResourceTypeRegistry, is_similar

__all__ = [
    "DEFAULT_ENVIRONMENT",
    "Environment",
    "InitResult",
    "ModelResult",
    "PropertyIssue",
    "RadiusWorkspace",
    "RecipeEntry",
    "RecipeRegistry",
    "ResourceTypeDefinition",
    "ResourceTypeRegistry",
    "display_type",
    "environment_file_for",
    "environment_name_from_file",
    "is_pinned",
    "is_similar",
    "strip_version",
]
