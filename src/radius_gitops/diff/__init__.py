"""Plan, record and manifest comparison."""

from .engine import (
    DiffEngine,
    DiffMode,
    DiffRequest,
    diff_captured_resources,
    format_diff_output,
    parse_revision_args,
)
from .models import ChangeKind, DiffExitCode, DiffResult, ManifestDiff, PropertyDiff
from .structural import DocumentParseError, compare, compare_data, diff_texts, parse_document, render

__all__ = [
    "DiffEngine",
    "DiffMode",
    "DiffRequest",
    "diff_captured_resources",
    "format_diff_output",
    "parse_revision_args",
    "ChangeKind",
    "DiffExitCode",
    "DiffResult",
    "ManifestDiff",
    "PropertyDiff",
    "DocumentParseError",
    "compare",
    "compare_data",
    "diff_texts",
    "parse_document",
    "render",
]
