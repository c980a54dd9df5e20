"""Model graph: resources, connections and dependency ordering."""

from .bicep import Expression, find_model_files, load_model, parse_model
from .graph import Connection, ModelGraph, RecipeBinding, ResourceNode, connection_context
from .values import Value, ValueKind, bag_from_python, bag_to_python

__all__ = [
    "Connection",
    "Expression",
    "ModelGraph",
    "RecipeBinding",
    "ResourceNode",
    "Value",
    "ValueKind",
    "bag_from_python",
    "bag_to_python",
    "connection_context",
    "find_model_files",
    "load_model",
    "parse_model",
]
