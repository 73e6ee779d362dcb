import sqlite3
from datetime import datetime

import pytest

from nexusgraph.models import (
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
)
from nexusgraph.store import SQLiteStore, StoreError


@pytest.fixture
def store(tmp_path):
    s = SQLiteStore(str(tmp_path / "nexus.db"))
    yield s
    s.close()


def make_project(ident, name):
    return Project(
        id=ident,
        name=name,
        root_path="/home/user/" + name,
        platform="web-react",
        primary_language="typescript",
        created_at=datetime.now(),
        updated_at=datetime.now(),
        version="0.1.0",
    )


def make_module(ident, project_id, file_path, language):
    return Module(
        id=ident,
        project_id=project_id,
        file_path=file_path,
        qualified_name=file_path,
        language=language,
        lines_of_code=100,
        parse_status="OK",
        parse_errors="[]",
        checksum="abc123",
    )


def make_function(ident, project_id, module_id, name):
    return Function(
        id=ident,
        project_id=project_id,
        module_id=module_id,
        name=name,
        qualified_name=name,
        language="python",
        start_line=10,
        end_line=20,
        visibility="PUBLIC",
        parameters="[]",
        return_type="{}",
        annotations="[]",
        cyclomatic_complexity=3,
        lines_of_code=10,
        checksum="fn-checksum-" + ident,
    )


def make_class(ident, project_id, module_id, name):
    return Class(
        id=ident,
        project_id=project_id,
        module_id=module_id,
        name=name,
        qualified_name=name,
        language="java",
        kind="CLASS",
        start_line=5,
        end_line=50,
        visibility="PUBLIC",
        annotations="[]",
        checksum="cls-checksum-" + ident,
    )


def make_issue(ident, project_id, node_id):
    return Issue(
        id=ident,
        node_id=node_id,
        project_id=project_id,
        rule_id="NEXUS-SEC-001",
        severity="CRITICAL",
        category="SECURITY",
        title="SQL Injection",
        description="Unsanitized input in SQL query",
        file_path="src/db.py",
        start_line=42,
        evidence="query = sql + user_input",
        remediation="Use parameterized queries",
        inference_chain="[]",
        status=IssueStatus.OPEN,
        detected_at=datetime.now(),
    )


@pytest.fixture
def seeded(store):
    store.create_project(make_project("proj-001", "app"))
    store.write_module(make_module("mod-001", "proj-001", "src/a.py", "python"))
    return store


def test_create_and_get_project(store):
    store.create_project(make_project("proj-001", "my-app"))
    got = store.get_project("proj-001")
    assert got.name == "my-app"
    assert got.version == "0.1.0"
    assert got.last_analyzed is None


def test_get_project_not_found(store):
    with pytest.raises(NotFoundError) as info:
        store.get_project("nonexistent")
    assert str(info.value) == "project not found: nonexistent"


def test_create_project_duplicate_raises(store):
    store.create_project(make_project("proj-001", "my-app"))
    with pytest.raises(StoreError):
        store.create_project(make_project("proj-001", "my-app"))


def test_list_projects(store):
    store.create_project(make_project("proj-001", "a"))
    store.create_project(make_project("proj-002", "b"))
    assert {p.id for p in store.list_projects()} == {"proj-001", "proj-002"}


def test_update_project(store):
    p = make_project("proj-001", "my-app")
    store.create_project(p)
    p.name = "updated-app"
    store.update_project(p)
    assert store.get_project("proj-001").name == "updated-app"


def test_delete_project(store):
    store.create_project(make_project("proj-001", "my-app"))
    store.delete_project("proj-001")
    with pytest.raises(NotFoundError):
        store.get_project("proj-001")


def test_write_and_get_module(seeded):
    seeded.write_module(make_module("mod-002", "proj-001", "src/service.py", "python"))
    got = seeded.get_module("mod-002")
    assert got.file_path == "src/service.py"
    assert got.project_id == "proj-001"
    assert got.lines_of_code == 100
    assert isinstance(got.created_at, datetime)


def test_get_module_by_path(store):
    store.create_project(make_project("proj-001", "app"))
    store.write_module(make_module("mod-001", "proj-001", "src/service.py", "python"))
    assert store.get_module_by_path("proj-001", "src/service.py").id == "mod-001"


def test_get_module_by_path_missing(seeded):
    with pytest.raises(NotFoundError) as info:
        seeded.get_module_by_path("proj-001", "nope.py")
    assert info.value.ident == "nope.py"


def test_query_modules(store):
    store.create_project(make_project("proj-001", "app"))
    store.write_module(make_module("mod-001", "proj-001", "src/a.py", "python"))
    store.write_module(make_module("mod-002", "proj-001", "src/b.py", "python"))
    store.write_module(make_module("mod-003", "proj-001", "src/c.ts", "typescript"))
    modules = store.query_modules(ModuleFilter(project_id="proj-001"))
    assert [m.file_path for m in modules] == ["src/a.py", "src/b.py", "src/c.ts"]


def test_query_modules_filter_by_language(store):
    store.create_project(make_project("proj-001", "app"))
    store.write_module(make_module("mod-001", "proj-001", "src/a.py", "python"))
    store.write_module(make_module("mod-002", "proj-001", "src/b.ts", "typescript"))
    modules = store.query_modules(ModuleFilter(project_id="proj-001", language="python"))
    assert len(modules) == 1


def test_query_modules_limit_offset(store):
    store.create_project(make_project("proj-001", "app"))
    for n, name in enumerate(["a", "b", "c"]):
        store.write_module(make_module(f"mod-{n}", "proj-001", f"src/{name}.py", "python"))
    modules = store.query_modules(ModuleFilter(project_id="proj-001", limit=1, offset=1))
    assert [m.file_path for m in modules] == ["src/b.py"]


def test_delete_module_is_soft(seeded):
    seeded.delete_module("mod-001")
    assert seeded.query_modules(ModuleFilter(project_id="proj-001")) == []
    assert seeded.get_module("mod-001").file_path == "src/a.py"


def test_write_module_unknown_project_raises(store):
    with pytest.raises(StoreError):
        store.write_module(make_module("mod-001", "missing", "src/a.py", "python"))


def test_write_and_get_function(seeded):
    seeded.write_function(make_function("fn-001", "proj-001", "mod-001", "greet"))
    got = seeded.get_function("fn-001")
    assert got.name == "greet"
    assert got.cyclomatic_complexity == 3
    assert got.is_async is False
    assert got.test_coverage is None


def test_query_functions_min_complexity(seeded):
    f1 = make_function("fn-001", "proj-001", "mod-001", "simple")
    f1.cyclomatic_complexity = 1
    f2 = make_function("fn-002", "proj-001", "mod-001", "complex")
    f2.cyclomatic_complexity = 10
    seeded.write_function(f1)
    seeded.write_function(f2)
    fns = seeded.query_functions(FunctionFilter(project_id="proj-001", min_complexity=5))
    assert [f.name for f in fns] == ["complex"]


def test_query_functions_ordered_by_complexity(seeded):
    f1 = make_function("fn-001", "proj-001", "mod-001", "simple")
    f1.cyclomatic_complexity = 1
    f2 = make_function("fn-002", "proj-001", "mod-001", "complex")
    f2.cyclomatic_complexity = 10
    seeded.write_function(f1)
    seeded.write_function(f2)
    fns = seeded.query_functions(FunctionFilter(project_id="proj-001"))
    assert [f.name for f in fns] == ["complex", "simple"]


def test_delete_function(seeded):
    seeded.write_function(make_function("fn-001", "proj-001", "mod-001", "greet"))
    seeded.delete_function("fn-001")
    assert seeded.query_functions(FunctionFilter(project_id="proj-001")) == []


def test_write_and_get_class(store):
    store.create_project(make_project("proj-001", "app"))
    store.write_module(make_module("mod-001", "proj-001", "src/a.java", "java"))
    store.write_class(make_class("cls-001", "proj-001", "mod-001", "UserService"))
    got = store.get_class("cls-001")
    assert got.name == "UserService"
    assert got.kind == "CLASS"


def test_query_and_delete_classes(seeded):
    seeded.write_class(make_class("cls-001", "proj-001", "mod-001", "Zeta"))
    seeded.write_class(make_class("cls-002", "proj-001", "mod-001", "Alpha"))
    names = [c.name for c in seeded.query_classes(ClassFilter(project_id="proj-001"))]
    assert names == ["Alpha", "Zeta"]
    seeded.delete_class("cls-002")
    names = [c.name for c in seeded.query_classes(ClassFilter(project_id="proj-001"))]
    assert names == ["Zeta"]


def test_get_class_not_found(store):
    with pytest.raises(NotFoundError) as info:
        store.get_class("cls-x")
    assert info.value.kind == "class"


def test_write_and_get_issue(seeded):
    seeded.write_issue(make_issue("issue-001", "proj-001", "mod-001"))
    got = seeded.get_issue("issue-001")
    assert got.severity == "CRITICAL"
    assert got.rule_id == "NEXUS-SEC-001"
    assert got.status is IssueStatus.OPEN


def test_query_issues_by_severity(seeded):
    i1 = make_issue("issue-001", "proj-001", "mod-001")
    i1.severity = "CRITICAL"
    i2 = make_issue("issue-002", "proj-001", "mod-001")
    i2.severity = "LOW"
    seeded.write_issue(i1)
    seeded.write_issue(i2)
    issues = seeded.query_issues(IssueFilter(project_id="proj-001", severity="CRITICAL"))
    assert [i.id for i in issues] == ["issue-001"]


def test_query_issues_severity_order(seeded):
    low = make_issue("issue-001", "proj-001", "mod-001")
    low.severity = "LOW"
    high = make_issue("issue-002", "proj-001", "mod-001")
    high.severity = "HIGH"
    seeded.write_issue(low)
    seeded.write_issue(high)
    issues = seeded.query_issues(IssueFilter(project_id="proj-001"))
    assert [i.severity for i in issues] == ["HIGH", "LOW"]


def test_update_issue_status(seeded):
    seeded.write_issue(make_issue("issue-001", "proj-001", "mod-001"))
    seeded.update_issue_status("issue-001", IssueStatus.RESOLVED)
    assert seeded.get_issue("issue-001").status is IssueStatus.RESOLVED
    open_issues = seeded.query_issues(IssueFilter(project_id="proj-001", status=IssueStatus.OPEN))
    assert open_issues == []


def test_write_and_get_edge(seeded):
    seeded.write_module(make_module("mod-002", "proj-001", "src/b.py", "python"))
    seeded.write_edge(
        Edge(id="edge-001", project_id="proj-001", kind="IMPORTS",
             from_node_id="mod-001", to_node_id="mod-002", properties="{}")
    )
    got = seeded.get_edge("edge-001")
    assert got.kind == "IMPORTS"
    assert (got.from_node_id, got.to_node_id) == ("mod-001", "mod-002")


def test_query_edges_by_from_node(seeded):
    seeded.write_module(make_module("mod-002", "proj-001", "src/b.py", "python"))
    seeded.write_module(make_module("mod-003", "proj-001", "src/c.py", "python"))
    seeded.write_edge(Edge("e1", "proj-001", "IMPORTS", "mod-001", "mod-002", "{}"))
    seeded.write_edge(Edge("e2", "proj-001", "IMPORTS", "mod-001", "mod-003", "{}"))
    edges = seeded.query_edges(EdgeFilter(project_id="proj-001", from_node_id="mod-001"))
    assert {e.id for e in edges} == {"e1", "e2"}


def test_write_edge_duplicate_is_ignored(seeded):
    seeded.write_edge(Edge("e1", "proj-001", "IMPORTS", "mod-001", "mod-002", "{}"))
    seeded.write_edge(Edge("e2", "proj-001", "IMPORTS", "mod-001", "mod-002", "{}"))
    edges = seeded.query_edges(EdgeFilter(project_id="proj-001"))
    assert [e.id for e in edges] == ["e1"]


def test_delete_edge(seeded):
    seeded.write_edge(Edge("edge-001", "proj-001", "IMPORTS", "mod-001", "mod-002", "{}"))
    seeded.delete_edge("edge-001")
    with pytest.raises(NotFoundError):
        seeded.get_edge("edge-001")


def test_get_project_health(seeded):
    fn = make_function("fn-001", "proj-001", "mod-001", "complex")
    fn.cyclomatic_complexity = 20
    seeded.write_function(fn)
    issue = make_issue("issue-001", "proj-001", "mod-001")
    issue.severity = "CRITICAL"
    seeded.write_issue(issue)
    health = seeded.get_project_health("proj-001")
    assert health.critical_issues == 1
    assert health.total_functions == 1
    assert health.complex_functions == 1
    assert health.total_modules == 1
    assert health.total_classes == 0


def test_context_manager_closes(tmp_path):
    opened = SQLiteStore(str(tmp_path / "nexus.db"))
    with opened as entered:
        assert entered is opened
        entered.create_project(make_project("proj-001", "app"))
        assert entered.get_project("proj-001").name == "app"
    with pytest.raises((StoreError, sqlite3.ProgrammingError)):
        opened.get_project("proj-001")


def test_data_persists_across_reopen(tmp_path):
    path = str(tmp_path / "nexus.db")
    with SQLiteStore(path) as s:
        s.create_project(make_project("proj-001", "app"))
    with SQLiteStore(path) as s:
        assert s.get_project("proj-001").name == "app"