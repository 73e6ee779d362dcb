"""SQLite-backed storage for projects, code-graph nodes, issues and edges."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import astuple  # noqa: F401  (kept for callers building rows)
from datetime import datetime, timezone
from typing import Any, TypeVar

from .models import (
    Class,
    ClassFilter,
    Edge,
    EdgeFilter,
    Function,
    FunctionFilter,
    Issue,
    IssueFilter,
    IssueStatus,
    Module,
    ModuleFilter,
    NotFoundError,
    Project,
    ProjectHealth,
)
from .schema import MigrationError, Migrator, open_db

T = TypeVar("T")


class StoreError(RuntimeError):
    """Raised when the database rejects or fails an operation."""


_DATETIME_FIELDS = frozenset(
    {"created_at", "updated_at", "last_analyzed", "detected_at", "resolved_at"}
)
_BOOL_FIELDS = frozenset(
    {"is_async", "is_static", "is_abstract", "is_constructor"}
)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_db_time(value: datetime | None) -> str | None:
    """Store times as naive UTC text, the same shape SQLite's datetime() uses."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(sep=" ")


def _from_db_time(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _columns(alias: str, names: Sequence[str]) -> str:
    return ", ".join(f"{alias}.{name} AS {name}" for name in names)


def _convert(name: str, value: Any) -> Any:
    if name in _DATETIME_FIELDS:
        return _from_db_time(value)
    if name in _BOOL_FIELDS:
        return bool(value)
    if name == "status":
        return IssueStatus(value)
    return value


def _build(cls: type[T], row: sqlite3.Row) -> T:
    return cls(**{name: _convert(name, row[name]) for name in row.keys()})


def _paginate(limit: int, offset: int) -> str:
    if limit > 0:
        return f" LIMIT {int(limit)} OFFSET {int(offset)}"
    return ""


_PROJECT_SELECT = (
    "SELECT id, name, root_path, platform, primary_language, "
    "created_at, updated_at, last_analyzed, version, description FROM project"
)

_MODULE_SELECT = (
    "SELECT "
    + _columns("m", ["id"])
    + ", "
    + _columns("n", ["project_id"])
    + ", "
    + _columns(
        "m",
        [
            "file_path",
            "qualified_name",
            "language",
            "lines_of_code",
            "parse_status",
            "parse_errors",
            "cycle_risk",
        ],
    )
    + ", "
    + _columns("n", ["checksum", "created_at", "updated_at"])
    + " FROM modules m JOIN nodes n ON m.id = n.id"
)

_FUNCTION_SELECT = (
    "SELECT "
    + _columns("f", ["id"])
    + ", "
    + _columns("n", ["project_id"])
    + ", "
    + _columns(
        "f",
        [
            "module_id",
            "name",
            "qualified_name",
            "language",
            "start_line",
            "start_col",
            "end_line",
            "end_col",
            "visibility",
            "parameters",
            "return_type",
            "is_async",
            "is_static",
            "is_abstract",
            "is_constructor",
            "cyclomatic_complexity",
            "lines_of_code",
            "parameter_count",
            "nesting_depth",
            "fan_in",
            "fan_out",
            "test_coverage",
            "doc_comment",
            "annotations",
        ],
    )
    + ", "
    + _columns("n", ["checksum", "created_at", "updated_at"])
    + " FROM functions f JOIN nodes n ON f.id = n.id"
)

_CLASS_SELECT = (
    "SELECT "
    + _columns("c", ["id"])
    + ", "
    + _columns("n", ["project_id"])
    + ", "
    + _columns(
        "c",
        [
            "module_id",
            "name",
            "qualified_name",
            "language",
            "kind",
            "start_line",
            "start_col",
            "end_line",
            "end_col",
            "visibility",
            "method_count",
            "field_count",
            "lines_of_code",
            "lack_of_cohesion",
            "coupling_between_objects",
            "doc_comment",
            "annotations",
            "is_abstract",
        ],
    )
    + ", "
    + _columns("n", ["checksum", "created_at", "updated_at"])
    + " FROM classes c JOIN nodes n ON c.id = n.id"
)

_ISSUE_SELECT = (
    "SELECT id, node_id, project_id, rule_id, severity, category, "
    "title, description, file_path, start_line, start_col, "
    "evidence, remediation, inference_chain, cwe, owasp, "
    "status, detected_at FROM issues"
)

_EDGE_SELECT = (
    "SELECT id, project_id, edge_type AS kind, from_node_id, to_node_id, "
    "properties, created_at FROM edges"
)

_SEVERITY_ORDER = (
    " ORDER BY CASE severity WHEN 'CRITICAL' THEN 1 WHEN 'HIGH' THEN 2 "
    "WHEN 'MEDIUM' THEN 3 WHEN 'LOW' THEN 4 ELSE 5 END, detected_at DESC"
)

_SOFT_DELETE = "UPDATE nodes SET is_deleted=TRUE, updated_at=? WHERE id=?"


class SQLiteStore:
    """Code-graph store kept in a single SQLite file."""

    def __init__(self, db_path: str) -> None:
        try:
            self._conn = open_db(str(db_path))
        except sqlite3.Error as exc:
            raise StoreError(f"failed to open database: {exc}") from exc
        try:
            self.migrate()
        except StoreError:
            self._conn.close()
            raise

    def migrate(self) -> None:
        """Bring the schema up to date."""
        try:
            Migrator(self._conn).migrate()
        except MigrationError as exc:
            raise StoreError(f"failed to migrate: {exc}") from exc

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> SQLiteStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ── helpers ──────────────────────────────────────

    def _execute(self, action: str, sql: str, params: Sequence[Any] = ()) -> None:
        try:
            self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StoreError(f"{action}: {exc}") from exc

    def _rows(self, action: str, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        cursor = self._conn.cursor()
        cursor.row_factory = sqlite3.Row
        try:
            return cursor.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"{action}: {exc}") from exc
        finally:
            cursor.close()

    def _one(
        self, cls: type[T], action: str, kind: str, ident: str, sql: str, params: Sequence[Any]
    ) -> T:
        rows = self._rows(action, sql, params)
        if not rows:
            raise NotFoundError(kind, ident)
        return _build(cls, rows[0])

    @contextmanager
    def _transaction(self, action: str) -> Iterator[None]:
        try:
            self._conn.execute("BEGIN")
        except sqlite3.Error as exc:
            raise StoreError(f"{action}: {exc}") from exc
        try:
            yield
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._conn.execute("ROLLBACK")
            raise StoreError(f"{action}: {exc}") from exc

    def _write_node(self, action: str, node_type: str, node_id: str, project_id: str, checksum: str) -> None:
        self._execute(
            f"{action} node",
            "INSERT OR REPLACE INTO nodes (id, node_type, project_id, checksum, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (node_id, node_type, project_id, checksum, _to_db_time(_now())),
        )

    # ── projects ─────────────────────────────────────

    def create_project(self, project: Project) -> None:
        now = _now()
        self._execute(
            "create_project",
            "INSERT INTO project (id, name, root_path, platform, primary_language, "
            "created_at, updated_at, version, description) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                project.id,
                project.name,
                project.root_path,
                project.platform,
                project.primary_language,
                _to_db_time(project.created_at or now),
                _to_db_time(project.updated_at or now),
                project.version,
                project.description,
            ),
        )

    def get_project(self, project_id: str) -> Project:
        return self._one(
            Project, "get_project", "project", project_id,
            f"{_PROJECT_SELECT} WHERE id = ?", (project_id,),
        )

    def list_projects(self) -> list[Project]:
        rows = self._rows("list_projects", f"{_PROJECT_SELECT} ORDER BY created_at DESC")
        return [_build(Project, row) for row in rows]

    def update_project(self, project: Project) -> None:
        self._execute(
            "update_project",
            "UPDATE project SET name=?, platform=?, primary_language=?, "
            "updated_at=?, version=?, description=? WHERE id=?",
            (
                project.name,
                project.platform,
                project.primary_language,
                _to_db_time(_now()),
                project.version,
                project.description,
                project.id,
            ),
        )

    def delete_project(self, project_id: str) -> None:
        self._execute("delete_project", "DELETE FROM project WHERE id=?", (project_id,))

    # ── modules ──────────────────────────────────────

    def write_module(self, module: Module) -> None:
        with self._transaction("write_module"):
            self._write_node("write_module", "MODULE", module.id, module.project_id, module.checksum)
            self._execute(
                "write_module",
                "INSERT OR REPLACE INTO modules (id, file_path, qualified_name, language, "
                "lines_of_code, parse_status, parse_errors, cycle_risk) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    module.id,
                    module.file_path,
                    module.qualified_name,
                    module.language,
                    module.lines_of_code,
                    module.parse_status,
                    module.parse_errors,
                    module.cycle_risk,
                ),
            )

    def get_module(self, module_id: str) -> Module:
        return self._one(
            Module, "get_module", "module", module_id,
            f"{_MODULE_SELECT} WHERE m.id = ?", (module_id,),
        )

    def get_module_by_path(self, project_id: str, file_path: str) -> Module:
        return self._one(
            Module, "get_module_by_path", "module", file_path,
            f"{_MODULE_SELECT} WHERE m.file_path = ? AND n.project_id = ?",
            (file_path, project_id),
        )

    def query_modules(self, criteria: ModuleFilter) -> list[Module]:
        sql = f"{_MODULE_SELECT} WHERE n.project_id = ? AND n.is_deleted = FALSE"
        params: list[Any] = [criteria.project_id]
        if criteria.language:
            sql += " AND m.language = ?"
            params.append(criteria.language)
        sql += " ORDER BY m.file_path" + _paginate(criteria.limit, criteria.offset)
        return [_build(Module, row) for row in self._rows("query_modules", sql, params)]

    def delete_module(self, module_id: str) -> None:
        self._execute("delete_module", _SOFT_DELETE, (_to_db_time(_now()), module_id))

    # ── functions ────────────────────────────────────

    def write_function(self, function: Function) -> None:
        f = function
        with self._transaction("write_function"):
            self._write_node("write_function", "FUNCTION", f.id, f.project_id, f.checksum)
            self._execute(
                "write_function",
                "INSERT OR REPLACE INTO functions (id, name, qualified_name, module_id, language, "
                "start_line, start_col, end_line, end_col, visibility, parameters, return_type, "
                "is_async, is_static, is_abstract, is_constructor, cyclomatic_complexity, "
                "lines_of_code, parameter_count, nesting_depth, fan_in, fan_out, test_coverage, "
                "doc_comment, annotations) "
                "VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
                (
                    f.id, f.name, f.qualified_name, f.module_id, f.language,
                    f.start_line, f.start_col, f.end_line, f.end_col,
                    f.visibility, f.parameters, f.return_type,
                    f.is_async, f.is_static, f.is_abstract, f.is_constructor,
                    f.cyclomatic_complexity, f.lines_of_code, f.parameter_count,
                    f.nesting_depth, f.fan_in, f.fan_out, f.test_coverage,
                    f.doc_comment, f.annotations,
                ),
            )

    def get_function(self, function_id: str) -> Function:
        return self._one(
            Function, "get_function", "function", function_id,
            f"{_FUNCTION_SELECT} WHERE f.id = ?", (function_id,),
        )

    def query_functions(self, criteria: FunctionFilter) -> list[Function]:
        sql = f"{_FUNCTION_SELECT} WHERE n.project_id = ? AND n.is_deleted = FALSE"
        params: list[Any] = [criteria.project_id]
        if criteria.module_id:
            sql += " AND f.module_id = ?"
            params.append(criteria.module_id)
        if criteria.min_complexity > 0:
            sql += " AND f.cyclomatic_complexity >= ?"
            params.append(criteria.min_complexity)
        sql += " ORDER BY f.cyclomatic_complexity DESC" + _paginate(criteria.limit, criteria.offset)
        return [_build(Function, row) for row in self._rows("query_functions", sql, params)]

    def delete_function(self, function_id: str) -> None:
        self._execute("delete_function", _SOFT_DELETE, (_to_db_time(_now()), function_id))

    # ── classes ──────────────────────────────────────

    def write_class(self, cls: Class) -> None:
        c = cls
        with self._transaction("write_class"):
            self._write_node("write_class", "CLASS", c.id, c.project_id, c.checksum)
            self._execute(
                "write_class",
                "INSERT OR REPLACE INTO classes (id, name, qualified_name, module_id, language, "
                "kind, start_line, start_col, end_line, end_col, visibility, method_count, "
                "field_count, lines_of_code, lack_of_cohesion, coupling_between_objects, "
                "doc_comment, annotations, is_abstract) "
                "VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
                (
                    c.id, c.name, c.qualified_name, c.module_id, c.language, c.kind,
                    c.start_line, c.start_col, c.end_line, c.end_col,
                    c.visibility, c.method_count, c.field_count, c.lines_of_code,
                    c.lack_of_cohesion, c.coupling_between_objects,
                    c.doc_comment, c.annotations, c.is_abstract,
                ),
            )

    def get_class(self, class_id: str) -> Class:
        return self._one(
            Class, "get_class", "class", class_id,
            f"{_CLASS_SELECT} WHERE c.id = ?", (class_id,),
        )

    def query_classes(self, criteria: ClassFilter) -> list[Class]:
        sql = f"{_CLASS_SELECT} WHERE n.project_id = ? AND n.is_deleted = FALSE"
        params: list[Any] = [criteria.project_id]
        if criteria.module_id:
            sql += " AND c.module_id = ?"
            params.append(criteria.module_id)
        sql += " ORDER BY c.name" + _paginate(criteria.limit, criteria.offset)
        return [_build(Class, row) for row in self._rows("query_classes", sql, params)]

    def delete_class(self, class_id: str) -> None:
        self._execute("delete_class", _SOFT_DELETE, (_to_db_time(_now()), class_id))

    # ── issues ───────────────────────────────────────

    def write_issue(self, issue: Issue) -> None:
        i = issue
        self._execute(
            "write_issue",
            "INSERT OR REPLACE INTO issues (id, node_id, project_id, rule_id, severity, category, "
            "title, description, file_path, start_line, start_col, evidence, remediation, "
            "inference_chain, cwe, owasp, status) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
            (
                i.id, i.node_id, i.project_id, i.rule_id, i.severity, i.category,
                i.title, i.description, i.file_path, i.start_line, i.start_col,
                i.evidence, i.remediation, i.inference_chain, i.cwe, i.owasp,
                str(i.status),
            ),
        )

    def get_issue(self, issue_id: str) -> Issue:
        return self._one(
            Issue, "get_issue", "issue", issue_id,
            f"{_ISSUE_SELECT} WHERE id = ?", (issue_id,),
        )

    def query_issues(self, criteria: IssueFilter) -> list[Issue]:
        sql = f"{_ISSUE_SELECT} WHERE project_id = ?"
        params: list[Any] = [criteria.project_id]
        if criteria.severity:
            sql += " AND severity = ?"
            params.append(criteria.severity)
        if criteria.status:
            sql += " AND status = ?"
            params.append(str(criteria.status))
        if criteria.category:
            sql += " AND category = ?"
            params.append(criteria.category)
        sql += _SEVERITY_ORDER + _paginate(criteria.limit, criteria.offset)
        return [_build(Issue, row) for row in self._rows("query_issues", sql, params)]

    def update_issue_status(self, issue_id: str, status: IssueStatus) -> None:
        self._execute(
            "update_issue_status",
            "UPDATE issues SET status=? WHERE id=?",
            (str(IssueStatus(status)), issue_id),
        )

    # ── edges ────────────────────────────────────────

    def write_edge(self, edge: Edge) -> None:
        self._execute(
            "write_edge",
            "INSERT OR IGNORE INTO edges (id, edge_type, from_node_id, to_node_id, "
            "project_id, properties) VALUES (?, ?, ?, ?, ?, ?)",
            (edge.id, edge.kind, edge.from_node_id, edge.to_node_id, edge.project_id, edge.properties),
        )

    def get_edge(self, edge_id: str) -> Edge:
        return self._one(
            Edge, "get_edge", "edge", edge_id,
            f"{_EDGE_SELECT} WHERE id = ?", (edge_id,),
        )

    def query_edges(self, criteria: EdgeFilter) -> list[Edge]:
        sql = f"{_EDGE_SELECT} WHERE project_id = ?"
        params: list[Any] = [criteria.project_id]
        if criteria.from_node_id:
            sql += " AND from_node_id = ?"
            params.append(criteria.from_node_id)
        if criteria.to_node_id:
            sql += " AND to_node_id = ?"
            params.append(criteria.to_node_id)
        if criteria.kind:
            sql += " AND edge_type = ?"
            params.append(criteria.kind)
        return [_build(Edge, row) for row in self._rows("query_edges", sql, params)]

    def delete_edge(self, edge_id: str) -> None:
        self._execute("delete_edge", "DELETE FROM edges WHERE id=?", (edge_id,))

    # ── graph queries ────────────────────────────────

    def get_project_health(self, project_id: str) -> ProjectHealth:
        rows = self._rows(
            "get_project_health",
            """
            SELECT
              (SELECT COUNT(*) FROM issues WHERE project_id=? AND status='OPEN'
                 AND severity='CRITICAL') AS critical_issues,
              (SELECT COUNT(*) FROM issues WHERE project_id=? AND status='OPEN'
                 AND severity='HIGH') AS high_issues,
              (SELECT COUNT(*) FROM issues WHERE project_id=? AND status='OPEN'
                 AND severity='MEDIUM') AS medium_issues,
              (SELECT COUNT(*) FROM functions f JOIN nodes n ON f.id=n.id
                 WHERE n.project_id=? AND f.cyclomatic_complexity > 15) AS complex_functions,
              (SELECT COUNT(*) FROM functions f JOIN nodes n ON f.id=n.id
                 WHERE n.project_id=?) AS total_functions,
              (SELECT COUNT(*) FROM classes c JOIN nodes n ON c.id=n.id
                 WHERE n.project_id=?) AS total_classes,
              (SELECT COUNT(*) FROM modules m JOIN nodes n ON m.id=n.id
                 WHERE n.project_id=?) AS total_modules
            """,
            (project_id,) * 7,
        )
        return _build(ProjectHealth, rows[0])