"""Database schema migrations for the code graph and opening its SQLite file."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass


class MigrationError(RuntimeError):
    """Raised when the schema cannot be brought up to date or inspected."""


@dataclass(frozen=True)
class _Migration:
    version: str
    description: str
    sql: str


_INITIAL_SCHEMA = """
CREATE TABLE IF NOT EXISTS project (
    id               TEXT     NOT NULL PRIMARY KEY,
    name             TEXT     NOT NULL,
    root_path        TEXT     NOT NULL,
    platform         TEXT     NOT NULL DEFAULT '',
    primary_language TEXT     NOT NULL DEFAULT '',
    created_at       DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at       DATETIME NOT NULL DEFAULT (datetime('now')),
    last_analyzed    DATETIME,
    version          TEXT     NOT NULL DEFAULT '',
    description      TEXT     NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS nodes (
    id          TEXT     NOT NULL PRIMARY KEY,
    node_type   TEXT     NOT NULL,
    project_id  TEXT     NOT NULL REFERENCES project(id) ON DELETE CASCADE,
    checksum    TEXT     NOT NULL DEFAULT '',
    is_deleted  BOOLEAN  NOT NULL DEFAULT FALSE,
    created_at  DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS modules (
    id             TEXT    NOT NULL PRIMARY KEY REFERENCES nodes(id) ON DELETE CASCADE,
    file_path      TEXT    NOT NULL,
    qualified_name TEXT    NOT NULL DEFAULT '',
    language       TEXT    NOT NULL DEFAULT '',
    lines_of_code  INTEGER NOT NULL DEFAULT 0,
    parse_status   TEXT    NOT NULL DEFAULT 'OK',
    parse_errors   TEXT    NOT NULL DEFAULT '[]',
    cycle_risk     REAL    NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS functions (
    id                    TEXT    NOT NULL PRIMARY KEY REFERENCES nodes(id) ON DELETE CASCADE,
    name                  TEXT    NOT NULL,
    qualified_name        TEXT    NOT NULL DEFAULT '',
    module_id             TEXT    NOT NULL DEFAULT '',
    language              TEXT    NOT NULL DEFAULT '',
    start_line            INTEGER NOT NULL DEFAULT 0,
    start_col             INTEGER NOT NULL DEFAULT 0,
    end_line              INTEGER NOT NULL DEFAULT 0,
    end_col               INTEGER NOT NULL DEFAULT 0,
    visibility            TEXT    NOT NULL DEFAULT '',
    parameters            TEXT    NOT NULL DEFAULT '[]',
    return_type           TEXT    NOT NULL DEFAULT '{}',
    is_async              BOOLEAN NOT NULL DEFAULT FALSE,
    is_static             BOOLEAN NOT NULL DEFAULT FALSE,
    is_abstract           BOOLEAN NOT NULL DEFAULT FALSE,
    is_constructor        BOOLEAN NOT NULL DEFAULT FALSE,
    cyclomatic_complexity INTEGER NOT NULL DEFAULT 0,
    lines_of_code         INTEGER NOT NULL DEFAULT 0,
    parameter_count       INTEGER NOT NULL DEFAULT 0,
    nesting_depth         INTEGER NOT NULL DEFAULT 0,
    fan_in                INTEGER NOT NULL DEFAULT 0,
    fan_out               INTEGER NOT NULL DEFAULT 0,
    test_coverage         REAL,
    doc_comment           TEXT    NOT NULL DEFAULT '',
    annotations           TEXT    NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS classes (
    id                       TEXT    NOT NULL PRIMARY KEY REFERENCES nodes(id) ON DELETE CASCADE,
    name                     TEXT    NOT NULL,
    qualified_name           TEXT    NOT NULL DEFAULT '',
    module_id                TEXT    NOT NULL DEFAULT '',
    language                 TEXT    NOT NULL DEFAULT '',
    kind                     TEXT    NOT NULL DEFAULT 'CLASS',
    start_line               INTEGER NOT NULL DEFAULT 0,
    start_col                INTEGER NOT NULL DEFAULT 0,
    end_line                 INTEGER NOT NULL DEFAULT 0,
    end_col                  INTEGER NOT NULL DEFAULT 0,
    visibility               TEXT    NOT NULL DEFAULT '',
    method_count             INTEGER NOT NULL DEFAULT 0,
    field_count              INTEGER NOT NULL DEFAULT 0,
    lines_of_code            INTEGER NOT NULL DEFAULT 0,
    lack_of_cohesion         REAL    NOT NULL DEFAULT 0,
    coupling_between_objects INTEGER NOT NULL DEFAULT 0,
    doc_comment              TEXT    NOT NULL DEFAULT '',
    annotations              TEXT    NOT NULL DEFAULT '[]',
    is_abstract              BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE TABLE IF NOT EXISTS issues (
    id                    TEXT     NOT NULL PRIMARY KEY,
    node_id               TEXT     NOT NULL DEFAULT '',
    project_id            TEXT     NOT NULL REFERENCES project(id) ON DELETE CASCADE,
    rule_id               TEXT     NOT NULL DEFAULT '',
    severity              TEXT     NOT NULL DEFAULT '',
    category              TEXT     NOT NULL DEFAULT '',
    title                 TEXT     NOT NULL DEFAULT '',
    description           TEXT     NOT NULL DEFAULT '',
    file_path             TEXT     NOT NULL DEFAULT '',
    start_line            INTEGER  NOT NULL DEFAULT 0,
    start_col             INTEGER  NOT NULL DEFAULT 0,
    evidence              TEXT     NOT NULL DEFAULT '',
    remediation           TEXT     NOT NULL DEFAULT '',
    inference_chain       TEXT     NOT NULL DEFAULT '[]',
    cwe                   TEXT     NOT NULL DEFAULT '',
    owasp                 TEXT     NOT NULL DEFAULT '',
    status                TEXT     NOT NULL DEFAULT 'OPEN',
    detected_at           DATETIME NOT NULL DEFAULT (datetime('now')),
    resolved_at           DATETIME,
    resolved_by           TEXT     NOT NULL DEFAULT '',
    false_positive_reason TEXT     NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS edges (
    id           TEXT     NOT NULL PRIMARY KEY,
    edge_type    TEXT     NOT NULL,
    from_node_id TEXT     NOT NULL,
    to_node_id   TEXT     NOT NULL,
    project_id   TEXT     NOT NULL REFERENCES project(id) ON DELETE CASCADE,
    properties   TEXT     NOT NULL DEFAULT '{}',
    created_at   DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS node_history (
    id          INTEGER  PRIMARY KEY AUTOINCREMENT,
    node_id     TEXT     NOT NULL,
    project_id  TEXT     NOT NULL REFERENCES project(id) ON DELETE CASCADE,
    change_kind TEXT     NOT NULL,
    checksum    TEXT     NOT NULL DEFAULT '',
    changed_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS builds (
    id             TEXT     NOT NULL PRIMARY KEY,
    project_id     TEXT     NOT NULL REFERENCES project(id) ON DELETE CASCADE,
    status         TEXT     NOT NULL DEFAULT 'PENDING',
    started_at     DATETIME NOT NULL DEFAULT (datetime('now')),
    finished_at    DATETIME,
    files_analyzed INTEGER  NOT NULL DEFAULT 0,
    issues_found   INTEGER  NOT NULL DEFAULT 0,
    error          TEXT     NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_nodes_project ON nodes(project_id);
CREATE INDEX IF NOT EXISTS idx_nodes_type ON nodes(node_type);
CREATE INDEX IF NOT EXISTS idx_modules_path ON modules(file_path);
CREATE INDEX IF NOT EXISTS idx_functions_module ON functions(module_id);
CREATE INDEX IF NOT EXISTS idx_functions_complexity ON functions(cyclomatic_complexity);
CREATE INDEX IF NOT EXISTS idx_classes_module ON classes(module_id);
CREATE INDEX IF NOT EXISTS idx_issues_project ON issues(project_id);
CREATE INDEX IF NOT EXISTS idx_issues_severity ON issues(severity, status);
CREATE INDEX IF NOT EXISTS idx_edges_from ON edges(from_node_id);
CREATE INDEX IF NOT EXISTS idx_edges_to ON edges(to_node_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_edges_unique
    ON edges(edge_type, from_node_id, to_node_id);
CREATE INDEX IF NOT EXISTS idx_node_history_node ON node_history(node_id);
"""

_VIEWS = """
CREATE VIEW IF NOT EXISTS v_urgent_issues AS
    SELECT * FROM issues
    WHERE status = 'OPEN' AND severity IN ('CRITICAL', 'HIGH');

CREATE VIEW IF NOT EXISTS v_project_health AS
    SELECT
        p.id AS project_id,
        p.name AS project_name,
        (SELECT COUNT(*) FROM issues i
            WHERE i.project_id = p.id AND i.status = 'OPEN' AND i.severity = 'CRITICAL') AS critical_issues,
        (SELECT COUNT(*) FROM issues i
            WHERE i.project_id = p.id AND i.status = 'OPEN' AND i.severity = 'HIGH') AS high_issues,
        (SELECT COUNT(*) FROM issues i
            WHERE i.project_id = p.id AND i.status = 'OPEN' AND i.severity = 'MEDIUM') AS medium_issues,
        (SELECT COUNT(*) FROM functions f JOIN nodes n ON f.id = n.id
            WHERE n.project_id = p.id AND n.is_deleted = FALSE
              AND f.cyclomatic_complexity > 15) AS complex_functions,
        (SELECT COUNT(*) FROM functions f JOIN nodes n ON f.id = n.id
            WHERE n.project_id = p.id AND n.is_deleted = FALSE) AS total_functions,
        (SELECT COUNT(*) FROM classes c JOIN nodes n ON c.id = n.id
            WHERE n.project_id = p.id AND n.is_deleted = FALSE) AS total_classes,
        (SELECT COUNT(*) FROM modules m JOIN nodes n ON m.id = n.id
            WHERE n.project_id = p.id AND n.is_deleted = FALSE) AS total_modules
    FROM project p;
"""

_MIGRATIONS = (
    _Migration("001_initial_schema", "Tables and indexes of the code graph", _INITIAL_SCHEMA),
    _Migration("002_views", "Reporting views", _VIEWS),
)

_SCHEMA_VERSIONS = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version     TEXT     NOT NULL PRIMARY KEY,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now')),
    description TEXT     NOT NULL
)
"""


def _quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


class Migrator:
    """Brings a SQLite database up to the current graph schema."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def migrate(self) -> None:
        """Run every migration that has not been applied yet, in version order."""
        try:
            self._conn.execute(_SCHEMA_VERSIONS)
        except sqlite3.Error as exc:
            raise MigrationError(f"failed to create schema_versions: {exc}") from exc

        applied = self._applied_versions()
        for migration in sorted(_MIGRATIONS, key=lambda m: m.version):
            if migration.version not in applied:
                self._run(migration)

    def version(self) -> str:
        """Return the most recently applied version, or "none"."""
        try:
            row = self._conn.execute(
                "SELECT version FROM schema_versions "
                "ORDER BY applied_at DESC, version DESC LIMIT 1"
            ).fetchone()
        except sqlite3.Error as exc:
            raise MigrationError(f"failed to read schema version: {exc}") from exc
        return "none" if row is None else row[0]

    def _applied_versions(self) -> set[str]:
        try:
            rows = self._conn.execute("SELECT version FROM schema_versions").fetchall()
        except sqlite3.Error:
            return set()
        return {version for (version,) in rows}

    def _run(self, migration: _Migration) -> None:
        script = (
            "BEGIN;\n"
            f"{migration.sql}\n"
            "INSERT INTO schema_versions (version, description) VALUES "
            f"({_quote(migration.version)}, {_quote(migration.description)});\n"
            "COMMIT;"
        )
        try:
            self._conn.executescript(script)
        except sqlite3.Error as exc:
            if self._conn.in_transaction:
                self._conn.rollback()
            raise MigrationError(f"migration {migration.version} failed: {exc}") from exc


def open_db(path: str) -> sqlite3.Connection:
    """Open or create the SQLite database at path, with foreign keys and WAL on."""
    conn = sqlite3.connect(path, isolation_level=None)
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("SELECT 1").fetchone()
    except sqlite3.Error:
        conn.close()
        raise
    return conn