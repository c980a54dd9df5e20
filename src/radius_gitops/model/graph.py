"""Resource graph built from a declarative application model."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import CircularDependencyError, DanglingConnectionError, ValidationError
from .values import PropertyBag, bag_from_python, bag_to_python

logger = logging.getLogger(__name__)

RESOURCE_ID_TEMPLATE = "/planes/radius/local/resourceGroups/default/providers/{type}/{name}"


@dataclass
class RecipeBinding:
    """Recipe named inline on a resource in the model."""

    name: str
    kind: str = ""
    source: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Connection:
    """A named edge from one resource to another.

    ``target`` is the symbolic name written in the model; the remaining fields
    are filled in by :meth:`ModelGraph.resolve_connections`.
    """

    name: str
    target: str
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_name: Optional[str] = None
    properties: PropertyBag = field(default_factory=dict)

    @property
    def resolved(self) -> bool:
        return self.resource_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.resource_id,
            "name": self.resource_name or self.target,
            "type": self.resource_type,
            "properties": bag_to_python(self.properties),
        }


@dataclass
class ResourceNode:
    """One declared resource in the model."""

    symbolic_name: str
    type: str
    name: str = ""
    properties: PropertyBag = field(default_factory=dict)
    recipe: Optional[RecipeBinding] = None
    connections: Dict[str, Connection] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        symbolic_name: str,
        type: str,
        *,
        name: str = "",
        properties: Optional[Dict[str, Any]] = None,
        recipe: Optional[RecipeBinding] = None,
        connections: Optional[Dict[str, str]] = None,
        depends_on: Optional[List[str]] = None,
    ) -> "ResourceNode":
        """Convenience constructor from plain Python data."""
        return cls(
            symbolic_name=symbolic_name,
            type=type,
            name=name or symbolic_name,
            properties=bag_from_python(properties or {}),
            recipe=recipe,
            connections={
                conn: Connection(name=conn, target=target)
                for conn, target in (connections or {}).items()
            },
            depends_on=list(depends_on or []),
        )

    @property
    def base_type(self) -> str:
        """Type without the ``@version`` suffix."""
        return self.type.split("@", 1)[0]

    @property
    def api_version(self) -> str:
        parts = self.type.split("@", 1)
        return parts[1] if len(parts) == 2 else ""

    @property
    def is_application(self) -> bool:
        return "/applications" in self.type

    def edges(self) -> List[str]:
        """Symbolic names this node depends on, connections first."""
        targets = [conn.target for conn in self.connections.values()]
        targets.extend(self.depends_on)
        seen: Dict[str, None] = {}
        for target in targets:
            seen.setdefault(target, None)
        return list(seen)

    def plain_properties(self) -> Dict[str, Any]:
        return bag_to_python(self.properties)


@dataclass
class ModelGraph:
    """All resources of one model file, keyed by symbolic name in declaration order."""

    file_path: Optional[Path] = None
    resources: Dict[str, ResourceNode] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, str] = field(default_factory=dict)

    def add(self, node: ResourceNode) -> ResourceNode:
        if node.symbolic_name in self.resources:
            raise ValidationError(
                f"Duplicate resource symbolic name '{node.symbolic_name}'"
                + (f" in {self.file_path}" if self.file_path else "")
            )
        self.resources[node.symbolic_name] = node
        return node

    def get(self, symbolic_name: str) -> Optional[ResourceNode]:
        return self.resources.get(symbolic_name)

    def __len__(self) -> int:
        return len(self.resources)

    def resolve_connections(self, strict: bool = True) -> None:
        """Fill in id/type/properties of every connection target.

        With ``strict`` an unknown target (connection or dependsOn) raises
        :class:`DanglingConnectionError`; otherwise it is left unresolved and
        logged.
        """
        for node in self.resources.values():
            for conn in node.connections.values():
                target = self.resources.get(conn.target)
                if target is None:
                    if strict:
                        raise DanglingConnectionError(node.symbolic_name, conn.name, conn.target)
                    logger.warning(
                        "Connection %s.%s references unknown resource %s",
                        node.symbolic_name, conn.name, conn.target,
                    )
                    continue
                conn.resource_id = RESOURCE_ID_TEMPLATE.format(type=target.type, name=target.name)
                conn.resource_type = target.type
                conn.resource_name = target.name
                conn.properties = dict(target.properties)
            for dep in node.depends_on:
                if dep not in self.resources:
                    if strict:
                        raise DanglingConnectionError(node.symbolic_name, "dependsOn", dep)
                    logger.warning("%s dependsOn unknown resource %s", node.symbolic_name, dep)

    def ordered_resources(self) -> List[ResourceNode]:
        """Resources in dependency order: every target precedes its dependents.

        Depth-first traversal in declaration order. A node found again while
        still on the traversal stack means a cycle, which is rejected.
        Unknown targets are ignored here; resolution reports them.
        """
        done: Dict[str, None] = {}
        on_stack: List[str] = []
        ordered: List[ResourceNode] = []

        def visit(name: str) -> None:
            if name in done:
                return
            if name in on_stack:
                start = on_stack.index(name)
                raise CircularDependencyError(on_stack[start:] + [name])
            node = self.resources.get(name)
            if node is None:
                return
            on_stack.append(name)
            for target in node.edges():
                visit(target)
            on_stack.pop()
            done[name] = None
            ordered.append(node)

        for name in self.resources:
            visit(name)
        return ordered

    def application_name(self, default: str) -> str:
        """Name of the application resource, or ``default`` when there is none."""
        for node in self.resources.values():
            if node.is_application and node.name:
                return node.name
        return default


def connection_context(node: ResourceNode) -> Dict[str, Any]:
    """Resolved connections of ``node`` as plain data for recipe inputs."""
    return {name: conn.to_dict() for name, conn in node.connections.items() if conn.resolved}