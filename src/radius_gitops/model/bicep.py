"""Loader for ``.bicep`` application models.

Only the subset of the language used by application models is understood:
``param``/``var`` declarations and ``resource`` blocks whose bodies are object
literals. Non-literal expressions (``db.id``, ``resourceGroup().location``)
are kept as ``${...}`` strings; connection sources and ``dependsOn`` entries
become graph edges.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ValidationError
from .graph import Connection, ModelGraph, RecipeBinding, ResourceNode
from .values import bag_from_python

logger = logging.getLogger(__name__)

_RESOURCE_RE = re.compile(r"resource\s+(\w+)\s+'([^']+)'(\s+existing)?\s*=\s*")
_PARAM_RE = re.compile(r"param\s+(\w+)\s+(\w+)(?:\s*=\s*(.+))?$")
_VAR_RE = re.compile(r"var\s+(\w+)\s*=\s*(.+)$")
_IDENT_RE = re.compile(r"[A-Za-z_][\w]*")
_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?$")


@dataclass(frozen=True)
class Expression:
    """A non-literal value such as ``db.id``."""

    text: str

    @property
    def root(self) -> str:
        match = _IDENT_RE.match(self.text)
        return match.group(0) if match else ""

    def __str__(self) -> str:
        return "${" + self.text + "}"


class BicepSyntaxError(ValidationError):
    def __init__(self, message: str, path: Optional[Path], line: int) -> None:
        where = f"{path}:{line}" if path else f"line {line}"
        super().__init__(f"Failed to parse model ({where}): {message}")


class _LiteralParser:
    """Recursive-descent parser for bicep object/array literals."""

    def __init__(self, text: str, path: Optional[Path] = None) -> None:
        self.text = text
        self.pos = 0
        self.path = path

    def error(self, message: str) -> BicepSyntaxError:
        line = self.text.count("\n", 0, self.pos) + 1
        return BicepSyntaxError(message, self.path, line)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_ws(self, newlines: bool = True) -> None:
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch in " \t\r" or (newlines and (ch == "\n" or ch == ",")):
                self.pos += 1
            else:
                break

    def parse_value(self) -> Any:
        self.skip_ws()
        ch = self.peek()
        if ch == "{":
            return self.parse_object()
        if ch == "[":
            return self.parse_array()
        if ch == "'":
            return self.parse_string()
        if not ch:
            raise self.error("unexpected end of input")
        return self.parse_bare()

    def parse_object(self) -> Dict[str, Any]:
        self.pos += 1  # {
        result: Dict[str, Any] = {}
        while True:
            self.skip_ws()
            ch = self.peek()
            if ch == "}":
                self.pos += 1
                return result
            if not ch:
                raise self.error("unterminated object")
            if ch == "'":
                key = self.parse_string()
            else:
                match = _IDENT_RE.match(self.text, self.pos)
                if not match:
                    raise self.error(f"expected property name, found {ch!r}")
                key = match.group(0)
                self.pos = match.end()
            self.skip_ws(newlines=False)
            if self.peek() != ":":
                raise self.error(f"expected ':' after {key!r}")
            self.pos += 1
            result[key] = self.parse_value()

    def parse_array(self) -> List[Any]:
        self.pos += 1  # [
        items: List[Any] = []
        while True:
            self.skip_ws()
            ch = self.peek()
            if ch == "]":
                self.pos += 1
                return items
            if not ch:
                raise self.error("unterminated array")
            items.append(self.parse_value())

    def parse_string(self) -> str:
        if self.text.startswith("'''", self.pos):
            end = self.text.find("'''", self.pos + 3)
            if end < 0:
                raise self.error("unterminated multi-line string")
            value = self.text[self.pos + 3:end]
            self.pos = end + 3
            return value
        self.pos += 1
        chars: List[str] = []
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch == "\\" and self.pos + 1 < len(self.text):
                nxt = self.text[self.pos + 1]
                chars.append({"n": "\n", "t": "\t", "r": "\r"}.get(nxt, nxt))
                self.pos += 2
                continue
            if ch == "'":
                self.pos += 1
                return "".join(chars)
            if ch == "\n":
                break
            chars.append(ch)
            self.pos += 1
        raise self.error("unterminated string")

    def parse_bare(self) -> Any:
        start = self.pos
        depth = 0
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch in "([":
                depth += 1
            elif ch in ")]":
                if depth == 0:
                    break
                depth -= 1
            elif ch == "'":
                self.parse_string()
                continue
            elif depth == 0 and ch in ",\n}":
                break
            self.pos += 1
        raw = self.text[start:self.pos].strip()
        if raw == "true":
            return True
        if raw == "false":
            return False
        if raw == "null":
            return None
        if _NUMBER_RE.match(raw):
            return float(raw) if "." in raw else int(raw)
        return Expression(raw)


def _strip_comments(text: str) -> str:
    """Remove // and /* */ comments, leaving string literals intact."""
    out: List[str] = []
    i = 0
    in_string = False
    while i < len(text):
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < len(text):
                out.append(text[i + 1])
                i += 2
                continue
            if ch == "'":
                in_string = False
            i += 1
            continue
        if ch == "'":
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = len(text) if end < 0 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            # Keep line numbers stable for error messages
            chunk = text[i:len(text) if end < 0 else end + 2]
            out.append("\n" * chunk.count("\n"))
            i = len(text) if end < 0 else end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _to_plain(value: Any) -> Any:
    if isinstance(value, Expression):
        return str(value)
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_plain(v) for v in value]
    return value


def _reference_name(value: Any) -> Optional[str]:
    if isinstance(value, Expression):
        return value.root or None
    if isinstance(value, str):
        return value or None
    return None


def _resolve_name(value: Any, params: Dict[str, Any], fallback: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, Expression):
        default = params.get(value.text)
        if isinstance(default, str):
            return default
        return str(value)
    return fallback


def _build_node(
    symbolic_name: str,
    resource_type: str,
    body: Dict[str, Any],
    params: Dict[str, Any],
) -> ResourceNode:
    properties = dict(body.get("properties") or {})
    connections_literal = properties.pop("connections", None) or body.get("connections") or {}
    recipe_literal = properties.pop("recipe", None) or body.get("recipe")

    connections: Dict[str, Connection] = {}
    for conn_name, conn_body in connections_literal.items():
        source = conn_body.get("source") if isinstance(conn_body, dict) else conn_body
        target = _reference_name(source)
        if target:
            connections[conn_name] = Connection(name=conn_name, target=target)

    recipe = None
    if isinstance(recipe_literal, dict) and recipe_literal.get("name"):
        recipe = RecipeBinding(
            name=str(_to_plain(recipe_literal.get("name"))),
            kind=str(_to_plain(recipe_literal.get("kind", "")) or ""),
            source=str(_to_plain(recipe_literal.get("source", recipe_literal.get("templatePath", ""))) or ""),
            parameters=_to_plain(recipe_literal.get("parameters") or {}),
        )

    depends_on = [
        name for name in (_reference_name(v) for v in body.get("dependsOn") or []) if name
    ]

    return ResourceNode(
        symbolic_name=symbolic_name,
        type=resource_type,
        name=_resolve_name(body.get("name"), params, symbolic_name),
        properties=bag_from_python(_to_plain(properties)),
        recipe=recipe,
        connections=connections,
        depends_on=depends_on,
    )


def parse_model(content: str, path: Optional[Path] = None) -> ModelGraph:
    """Parse model text into an unresolved :class:`ModelGraph`."""
    text = _strip_comments(content)
    graph = ModelGraph(file_path=path)
    raw_resources: List[Tuple[str, str, int]] = []

    line_start = 0
    for line in text.splitlines(keepends=True):
        stripped = line.strip()
        if stripped.startswith("param "):
            match = _PARAM_RE.match(stripped)
            if match:
                default: Any = None
                if match.group(3):
                    default = _to_plain(_LiteralParser(match.group(3).strip(), path).parse_value())
                graph.parameters[match.group(1)] = default
        elif stripped.startswith("var "):
            match = _VAR_RE.match(stripped)
            if match:
                graph.variables[match.group(1)] = match.group(2).strip()
        elif stripped.startswith("resource "):
            match = _RESOURCE_RE.match(stripped)
            if match:
                offset = line_start + (len(line) - len(line.lstrip())) + match.end()
                raw_resources.append((match.group(1), match.group(2), offset))
        line_start += len(line)

    for symbolic_name, resource_type, offset in raw_resources:
        parser = _LiteralParser(text, path)
        parser.pos = offset
        parser.skip_ws(newlines=False)
        if parser.peek() != "{":
            logger.warning("Skipping resource %s: only object literal bodies are supported", symbolic_name)
            continue
        body = parser.parse_object()
        graph.add(_build_node(symbolic_name, resource_type, body, graph.parameters))

    return graph


def load_model(path: Path) -> ModelGraph:
    """Read and parse a model file."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ValidationError(f"Failed to read model file {path}: {exc}") from exc
    graph = parse_model(content, Path(path))
    logger.debug("Loaded %d resources from %s", len(graph), path)
    return graph


def find_model_files(model_dir: Path) -> List[Path]:
    if not model_dir.is_dir():
        return []
    return sorted(model_dir.glob("*.bicep"))
