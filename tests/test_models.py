import pytest

from nexusgraph.models import (
    Edge,
    FunctionFilter,
    Issue,
    IssueFilter,
    IssueStatus,
    NotFoundError,
    Project,
    ProjectHealth,
)


def test_not_found_error_message():
    err = NotFoundError("project", "proj-001")
    assert str(err) == "project not found: proj-001"
    assert err.kind == "project"
    assert err.ident == "proj-001"


def test_not_found_error_is_lookup_error():
    err = NotFoundError("module", "src/a.py")
    assert isinstance(err, LookupError)
    assert str(err) == "module not found: src/a.py"
    with pytest.raises(LookupError) as info:
        raise err
    assert info.value.ident == "src/a.py"


@pytest.mark.parametrize(
    "status, value",
    [
        (IssueStatus.OPEN, "OPEN"),
        (IssueStatus.ACKNOWLEDGED, "ACKNOWLEDGED"),
        (IssueStatus.RESOLVED, "RESOLVED"),
        (IssueStatus.FALSE_POSITIVE, "FALSE_POSITIVE"),
    ],
)
def test_issue_status_round_trip(status, value):
    assert IssueStatus(value) is status
    assert str(status) == value


def test_issue_defaults_to_open():
    issue = Issue(id="issue-001", node_id="mod-001", project_id="proj-001")
    assert issue.status is IssueStatus.OPEN
    assert issue.resolved_at is None


def test_project_last_analyzed_unset():
    project = Project(id="proj-001", name="my-app")
    assert project.last_analyzed is None
    assert project.name == "my-app"


def test_filters_default_to_no_limit():
    f = FunctionFilter(project_id="proj-001")
    assert (f.limit, f.offset, f.min_complexity, f.module_id) == (0, 0, 0, "")
    assert IssueFilter(project_id="proj-001").status is None


def test_health_defaults_zero():
    health = ProjectHealth()
    assert health.critical_issues == 0
    assert health.total_modules == 0


def test_edge_equality():
    a = Edge("e1", "proj-001", "IMPORTS", "mod-001", "mod-002", "{}")
    b = Edge("e1", "proj-001", "IMPORTS", "mod-001", "mod-002", "{}")
    assert a == b