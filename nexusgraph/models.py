"""Records stored in the code graph, filters for querying them, and errors."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class IssueStatus(str, enum.Enum):
    """Lifecycle state of a detected issue."""

    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    FALSE_POSITIVE = "FALSE_POSITIVE"

    def __str__(self) -> str:
        return self.value


class NotFoundError(LookupError):
    """Raised when a record with the given identifier does not exist."""

    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


@dataclass
class Project:
    id: str
    name: str
    root_path: str = ""
    platform: str = ""
    primary_language: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_analyzed: datetime | None = None
    version: str = ""
    description: str = ""


@dataclass
class Module:
    id: str
    project_id: str
    file_path: str
    qualified_name: str = ""
    language: str = ""
    lines_of_code: int = 0
    parse_status: str = ""
    parse_errors: str = ""
    cycle_risk: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    checksum: str = ""


@dataclass
class Function:
    id: str
    project_id: str
    module_id: str
    name: str
    qualified_name: str = ""
    language: str = ""
    start_line: int = 0
    start_col: int = 0
    end_line: int = 0
    end_col: int = 0
    visibility: str = ""
    parameters: str = ""
    return_type: str = ""
    is_async: bool = False
    is_static: bool = False
    is_abstract: bool = False
    is_constructor: bool = False
    cyclomatic_complexity: int = 0
    lines_of_code: int = 0
    parameter_count: int = 0
    nesting_depth: int = 0
    fan_in: int = 0
    fan_out: int = 0
    test_coverage: float | None = None
    doc_comment: str = ""
    annotations: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    checksum: str = ""


@dataclass
class Class:
    id: str
    project_id: str
    module_id: str
    name: str
    qualified_name: str = ""
    language: str = ""
    kind: str = ""
    start_line: int = 0
    start_col: int = 0
    end_line: int = 0
    end_col: int = 0
    visibility: str = ""
    method_count: int = 0
    field_count: int = 0
    lines_of_code: int = 0
    lack_of_cohesion: float = 0.0
    coupling_between_objects: int = 0
    doc_comment: str = ""
    annotations: str = ""
    is_abstract: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    checksum: str = ""


@dataclass
class Issue:
    id: str
    node_id: str
    project_id: str
    rule_id: str = ""
    severity: str = ""
    category: str = ""
    title: str = ""
    description: str = ""
    file_path: str = ""
    start_line: int = 0
    start_col: int = 0
    evidence: str = ""
    remediation: str = ""
    inference_chain: str = ""
    cwe: str = ""
    owasp: str = ""
    status: IssueStatus = IssueStatus.OPEN
    detected_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str = ""
    false_positive_reason: str = ""


@dataclass
class Edge:
    id: str
    project_id: str
    kind: str
    from_node_id: str
    to_node_id: str
    properties: str = ""
    created_at: datetime | None = None


@dataclass
class ProjectHealth:
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    complex_functions: int = 0
    total_functions: int = 0
    total_classes: int = 0
    total_modules: int = 0


@dataclass
class ModuleFilter:
    project_id: str
    language: str = ""
    limit: int = 0
    offset: int = 0


@dataclass
class FunctionFilter:
    project_id: str
    module_id: str = ""
    min_complexity: int = 0
    limit: int = 0
    offset: int = 0


@dataclass
class ClassFilter:
    project_id: str
    module_id: str = ""
    limit: int = 0
    offset: int = 0


@dataclass
class IssueFilter:
    project_id: str
    severity: str = ""
    status: IssueStatus | None = None
    category: str = ""
    limit: int = 0
    offset: int = 0


@dataclass
class EdgeFilter:
    project_id: str
    from_node_id: str = ""
    to_node_id: str = ""
    kind: str = ""