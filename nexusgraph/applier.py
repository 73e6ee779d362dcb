"""Writes graph deltas extracted from source files into a graph store."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .models import Class, Edge, Function, Module, NotFoundError
from .store import SQLiteStore, StoreError


class ChangeKind(str, enum.Enum):
    """What happened to a node or edge."""

    ADD = "ADD"
    MODIFY = "MODIFY"
    DELETE = "DELETE"

    def __str__(self) -> str:
        return self.value


class NodeKind(str, enum.Enum):
    """Kind of a node in a graph delta."""

    MODULE = "MODULE"
    FUNCTION = "FUNCTION"
    CLASS = "CLASS"
    INTERFACE = "INTERFACE"
    IMPORT = "IMPORT"

    def __str__(self) -> str:
        return self.value


@dataclass
class GraphNode:
    id: str
    kind: NodeKind
    name: str = ""
    qualified_name: str = ""
    language: str = ""
    file_path: str = ""
    start_line: int = 0
    start_col: int = 0
    end_line: int = 0
    end_col: int = 0
    checksum: str = ""
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    id: str
    kind: str
    from_node_id: str
    to_node_id: str


@dataclass
class NodeChange:
    kind: ChangeKind
    node: GraphNode


@dataclass
class EdgeChange:
    kind: ChangeKind
    edge: GraphEdge


@dataclass
class GraphDelta:
    project_id: str
    file_path: str
    node_changes: list[NodeChange] = field(default_factory=list)
    edge_changes: list[EdgeChange] = field(default_factory=list)

    def is_empty(self) -> bool:
        """True when the delta carries no node or edge changes."""
        return not self.node_changes and not self.edge_changes


@dataclass
class ApplyResult:
    nodes_added: int = 0
    nodes_modified: int = 0
    nodes_deleted: int = 0
    edges_added: int = 0
    edges_deleted: int = 0
    applied_at: datetime = field(default_factory=datetime.now)
    skipped: bool = False


class ApplyError(RuntimeError):
    """Raised when a change in a delta cannot be applied."""


def _string_prop(props: dict[str, Any], key: str) -> str:
    value = props.get(key)
    return value if isinstance(value, str) else ""


def _int_prop(props: dict[str, Any], key: str) -> int:
    value = props.get(key)
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _bool_prop(props: dict[str, Any], key: str) -> bool:
    value = props.get(key)
    return value if isinstance(value, bool) else False


def _edge_kind(kind: Any) -> str:
    return str(getattr(kind, "value", kind))


class Applier:
    """Applies graph deltas to a store."""

    def __init__(self, store: SQLiteStore) -> None:
        self._store = store

    def apply(self, delta: GraphDelta) -> ApplyResult:
        """Apply every node change, then every edge change, and count them."""
        if delta.is_empty():
            return ApplyResult(skipped=True)

        result = ApplyResult()
        for change in delta.node_changes:
            try:
                self._apply_node_change(delta.project_id, delta.file_path, change)
            except (StoreError, ValueError) as exc:
                raise ApplyError(f"apply node {change.node.id}: {exc}") from exc
            if change.kind == ChangeKind.ADD:
                result.nodes_added += 1
            elif change.kind == ChangeKind.MODIFY:
                result.nodes_modified += 1
            elif change.kind == ChangeKind.DELETE:
                result.nodes_deleted += 1

        for change in delta.edge_changes:
            try:
                self._apply_edge_change(delta.project_id, change)
            except StoreError as exc:
                raise ApplyError(f"apply edge {change.edge.id}: {exc}") from exc
            if change.kind == ChangeKind.ADD:
                result.edges_added += 1
            elif change.kind == ChangeKind.DELETE:
                result.edges_deleted += 1

        return result

    def _apply_node_change(self, project_id: str, file_path: str, change: NodeChange) -> None:
        if change.kind == ChangeKind.DELETE:
            self._delete_node(change.node)
        elif change.kind in (ChangeKind.ADD, ChangeKind.MODIFY):
            self._write_node(project_id, file_path, change.node)
        else:
            raise ValueError(f"unknown change kind: {change.kind}")

    def _write_node(self, project_id: str, file_path: str, node: GraphNode) -> None:
        if node.kind == NodeKind.MODULE:
            self._store.write_module(self._to_module(project_id, node))
        elif node.kind == NodeKind.FUNCTION:
            module_id = self._find_module_id(project_id, file_path)
            self._store.write_function(self._to_function(project_id, module_id, node))
        elif node.kind in (NodeKind.CLASS, NodeKind.INTERFACE):
            module_id = self._find_module_id(project_id, file_path)
            self._store.write_class(self._to_class(project_id, module_id, node))

    def _find_module_id(self, project_id: str, file_path: str) -> str:
        try:
            return self._store.get_module_by_path(project_id, file_path).id
        except (NotFoundError, StoreError):
            return ""

    def _delete_node(self, node: GraphNode) -> None:
        if node.kind == NodeKind.MODULE:
            self._store.delete_module(node.id)
        elif node.kind == NodeKind.FUNCTION:
            self._store.delete_function(node.id)
        elif node.kind in (NodeKind.CLASS, NodeKind.INTERFACE):
            self._store.delete_class(node.id)

    def _apply_edge_change(self, project_id: str, change: EdgeChange) -> None:
        if change.kind == ChangeKind.ADD:
            e = change.edge
            self._store.write_edge(
                Edge(
                    id=e.id,
                    project_id=project_id,
                    kind=_edge_kind(e.kind),
                    from_node_id=e.from_node_id,
                    to_node_id=e.to_node_id,
                    properties="{}",
                )
            )
        elif change.kind == ChangeKind.DELETE:
            self._store.delete_edge(change.edge.id)

    @staticmethod
    def _to_module(project_id: str, n: GraphNode) -> Module:
        return Module(
            id=n.id,
            project_id=project_id,
            file_path=n.file_path,
            qualified_name=n.qualified_name,
            language=n.language,
            lines_of_code=_int_prop(n.properties, "linesOfCode"),
            parse_status="OK",
            parse_errors="[]",
            checksum=n.checksum,
        )

    @staticmethod
    def _to_function(project_id: str, module_id: str, n: GraphNode) -> Function:
        p = n.properties
        return Function(
            id=n.id,
            project_id=project_id,
            module_id=module_id,
            name=n.name,
            qualified_name=n.qualified_name,
            language=n.language,
            start_line=int(n.start_line),
            start_col=int(n.start_col),
            end_line=int(n.end_line),
            end_col=int(n.end_col),
            visibility=_string_prop(p, "visibility"),
            parameters="[]",
            return_type="{}",
            is_async=_bool_prop(p, "isAsync"),
            is_static=_bool_prop(p, "isStatic"),
            is_abstract=_bool_prop(p, "isAbstract"),
            is_constructor=_bool_prop(p, "isConstructor"),
            cyclomatic_complexity=_int_prop(p, "cyclomaticComplexity"),
            lines_of_code=_int_prop(p, "linesOfCode"),
            parameter_count=_int_prop(p, "parameterCount"),
            nesting_depth=_int_prop(p, "nestingDepth"),
            annotations="[]",
            checksum=n.checksum,
        )

    @staticmethod
    def _to_class(project_id: str, module_id: str, n: GraphNode) -> Class:
        p = n.properties
        return Class(
            id=n.id,
            project_id=project_id,
            module_id=module_id,
            name=n.name,
            qualified_name=n.qualified_name,
            language=n.language,
            kind="INTERFACE" if n.kind == NodeKind.INTERFACE else "CLASS",
            start_line=int(n.start_line),
            start_col=int(n.start_col),
            end_line=int(n.end_line),
            end_col=int(n.end_col),
            visibility=_string_prop(p, "visibility"),
            lines_of_code=_int_prop(p, "linesOfCode"),
            is_abstract=_bool_prop(p, "isAbstract"),
            annotations="[]",
            checksum=n.checksum,
        )