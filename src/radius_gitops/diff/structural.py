"""Structural comparison of YAML/JSON documents.

Both sides are parsed into :class:`~radius_gitops.model.values.Value` trees
and walked together. Maps are compared by key, lists of records by an
identifying field (``name``, ``resourceId``, ...), lists of scalars as
multisets, so reordering alone never shows up as a difference.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import date, datetime
from typing import Any, List, Optional, Tuple

import yaml

from ..model.values import Value, ValueKind
from .models import ChangeKind, PropertyDiff

IDENTITY_KEYS = ("name", "resourceId", "sequence", "address", "id", "key")

ROOT_PATH = "(root)"


class DocumentParseError(ValueError):
    """A document could not be parsed as YAML or JSON."""


def _plain(obj: Any) -> Any:
    # YAML turns unquoted timestamps into datetime objects
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    return obj


def load_document(text: str, source: str = "") -> Any:
    """Parse YAML or JSON text into plain Python data.

    A multi-document YAML stream yields a list of its non-empty documents.
    """
    stripped = text.strip()
    if not stripped:
        return None
    if stripped[0] in "{[":
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass
    try:
        documents = [doc for doc in yaml.safe_load_all(text) if doc is not None]
    except yaml.YAMLError as exc:
        raise DocumentParseError(f"Could not parse {source or 'document'}: {exc}") from exc
    if not documents:
        return None
    return _plain(documents[0] if len(documents) == 1 else documents)


def parse_document(text: str, source: str = "") -> Value:
    data = load_document(text, source)
    try:
        return Value.of(data)
    except TypeError as exc:
        raise DocumentParseError(f"Could not parse {source or 'document'}: {exc}") from exc


def _join(path: str, key: str) -> str:
    if not key or any(ch in key for ch in ".[]"):
        key = json.dumps(key)
    return f"{path}.{key}" if path else key


def compare(old: Value, new: Value, path: str = "", file: str = "") -> List[PropertyDiff]:
    """Differences between two value trees, in document order."""
    diffs: List[PropertyDiff] = []
    _walk(old, new, path, file, diffs)
    return diffs


def compare_data(old: Any, new: Any, file: str = "") -> List[PropertyDiff]:
    return compare(Value.of(_plain(old)), Value.of(_plain(new)), file=file)


def _walk(old: Value, new: Value, path: str, file: str, out: List[PropertyDiff]) -> None:
    if old == new:
        return
    if old.kind != new.kind or old.is_scalar:
        out.append(PropertyDiff(
            path=path or ROOT_PATH,
            change=ChangeKind.MODIFIED,
            old_value=old.to_python(),
            new_value=new.to_python(),
            file=file,
        ))
        return
    if old.kind == ValueKind.MAP:
        _walk_map(old, new, path, file, out)
    else:
        _walk_list(old, new, path, file, out)


def _walk_map(old: Value, new: Value, path: str, file: str, out: List[PropertyDiff]) -> None:
    old_items = dict(old.items())
    new_items = dict(new.items())
    for key, value in old.items():
        child = _join(path, key)
        if key not in new_items:
            out.append(PropertyDiff(child, ChangeKind.REMOVED, old_value=value.to_python(), file=file))
        else:
            _walk(value, new_items[key], child, file, out)
    for key, value in new.items():
        if key not in old_items:
            out.append(PropertyDiff(_join(path, key), ChangeKind.ADDED, new_value=value.to_python(), file=file))


def _identity(item: Value, key: str) -> Optional[Any]:
    if item.kind != ValueKind.MAP:
        return None
    for k, v in item.items():
        if k == key:
            return v.data if v.is_scalar and v.kind != ValueKind.NULL else None
    return None


def _identity_key(old: Tuple[Value, ...], new: Tuple[Value, ...]) -> Optional[str]:
    """Field that identifies every record in both lists, or None."""
    items = old + new
    if not items or any(item.kind != ValueKind.MAP for item in items):
        return None
    for key in IDENTITY_KEYS:
        old_ids = [_identity(item, key) for item in old]
        new_ids = [_identity(item, key) for item in new]
        if None in old_ids or None in new_ids:
            continue
        if len(set(old_ids)) == len(old_ids) and len(set(new_ids)) == len(new_ids):
            return key
    return None


def _walk_list(old: Value, new: Value, path: str, file: str, out: List[PropertyDiff]) -> None:
    old_items: Tuple[Value, ...] = old.data
    new_items: Tuple[Value, ...] = new.data

    key = _identity_key(old_items, new_items)
    if key is not None:
        new_by_id = {_identity(item, key): item for item in new_items}
        old_ids = set()
        for item in old_items:
            ident = _identity(item, key)
            old_ids.add(ident)
            child = f"{path}[{key}={ident}]"
            if ident not in new_by_id:
                out.append(PropertyDiff(child, ChangeKind.REMOVED, old_value=item.to_python(), file=file))
            else:
                _walk(item, new_by_id[ident], child, file, out)
        for item in new_items:
            ident = _identity(item, key)
            if ident not in old_ids:
                out.append(PropertyDiff(
                    f"{path}[{key}={ident}]", ChangeKind.ADDED, new_value=item.to_python(), file=file
                ))
        return

    if all(item.is_scalar for item in old_items + new_items):
        removed = Counter(old_items) - Counter(new_items)
        added = Counter(new_items) - Counter(old_items)
        for index, item in enumerate(old_items):
            if removed[item] > 0:
                removed[item] -= 1
                out.append(PropertyDiff(f"{path}[{index}]", ChangeKind.REMOVED, old_value=item.to_python(), file=file))
        for index, item in enumerate(new_items):
            if added[item] > 0:
                added[item] -= 1
                out.append(PropertyDiff(f"{path}[{index}]", ChangeKind.ADDED, new_value=item.to_python(), file=file))
        return

    for index in range(max(len(old_items), len(new_items))):
        child = f"{path}[{index}]"
        if index >= len(new_items):
            out.append(PropertyDiff(child, ChangeKind.REMOVED, old_value=old_items[index].to_python(), file=file))
        elif index >= len(old_items):
            out.append(PropertyDiff(child, ChangeKind.ADDED, new_value=new_items[index].to_python(), file=file))
        else:
            _walk(old_items[index], new_items[index], child, file, out)


def _format_value(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def render(diffs: List[PropertyDiff], indent: str = "") -> str:
    """Human-readable report: ``+`` added, ``-`` removed, ``~`` modified."""
    lines = []
    for diff in diffs:
        symbol = diff.change.symbol
        if diff.change == ChangeKind.ADDED:
            lines.append(f"{indent}{symbol} {diff.path}: {_format_value(diff.new_value)}")
        elif diff.change == ChangeKind.REMOVED:
            lines.append(f"{indent}{symbol} {diff.path}: {_format_value(diff.old_value)}")
        else:
            lines.append(
                f"{indent}{symbol} {diff.path}: {_format_value(diff.old_value)} -> {_format_value(diff.new_value)}"
            )
    return "\n".join(lines)


def diff_texts(old_text: str, new_text: str, file: str = "") -> Tuple[List[PropertyDiff], str]:
    """Parse and compare two documents; returns the diffs and their rendering.

    Raises:
        DocumentParseError: either side is not valid YAML/JSON
    """
    diffs = compare(parse_document(old_text, file), parse_document(new_text, file), file=file)
    return diffs, render(diffs)
