# nexusgraph

nexusgraph keeps a graph of a code base in one SQLite file. The graph holds
projects, modules, functions, classes, analysis issues and the edges between
them. The package creates its own schema, and it can write incremental graph
deltas into the store.

## Installation

```
pip install .
```

The package needs only the standard library at run time. To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `nexusgraph.models` holds the dataclasses that the store reads and writes:
  `Project`, `Module`, `Function`, `Class`, `Issue` and `Edge`. It also holds
  the query filters (`ModuleFilter`, `FunctionFilter`, `ClassFilter`,
  `IssueFilter` and `EdgeFilter`), the `ProjectHealth` summary, the
  `IssueStatus` enum (`OPEN`, `ACKNOWLEDGED`, `RESOLVED`, `FALSE_POSITIVE`)
  and `NotFoundError`.
- `nexusgraph.schema` provides `open_db(path)`, which opens or creates a
  SQLite database with foreign keys on and WAL journalling. It also provides
  `Migrator`. `Migrator.migrate()` runs every schema migration that has not
  been applied yet. `Migrator.version()` returns the latest applied version,
  or `"none"` if no version has been applied. Failures raise `MigrationError`.
- `nexusgraph.store` provides `SQLiteStore`, which opens the database and
  migrates it on construction. It offers `create_*`, `write_*`, `get_*`,
  `query_*`, `update_*` and `delete_*` methods for each kind of record, and
  `get_project_health(project_id)`.
- `nexusgraph.applier` provides `Applier`. `Applier.apply(delta)` writes a
  `GraphDelta` to a store and returns an `ApplyResult` that counts the
  changes.

## Example

```python
from nexusgraph.models import Project, Module, ModuleFilter
from nexusgraph.store import SQLiteStore

with SQLiteStore("nexus.db") as store:
    store.create_project(Project(id="proj-001", name="my-app",
                                 root_path="/home/user/my-app",
                                 platform="web", primary_language="python"))
    store.write_module(Module(id="mod-001", project_id="proj-001",
                              file_path="src/service.py",
                              qualified_name="src/service.py",
                              language="python"))
    for module in store.query_modules(ModuleFilter(project_id="proj-001")):
        print(module.file_path)

    health = store.get_project_health("proj-001")
    print(health.total_modules, health.critical_issues)
```

## Store behaviour

- A `get_*` lookup for a record that does not exist raises
  `nexusgraph.models.NotFoundError`. Any other database failure raises
  `nexusgraph.store.StoreError`.
- `query_functions` returns the most complex functions first.
  `query_modules` sorts by file path and `query_classes` sorts by name.
  `query_issues` sorts by severity (CRITICAL, HIGH, MEDIUM, LOW, then any
  other value) and then puts the most recently detected first. The module,
  function, class and issue queries apply the filter's `limit` and `offset`
  only when `limit` is greater than zero.
- Deleting a module, function or class is a soft delete. The `query_*`
  methods stop returning the record. The matching `get_*` method and
  `get_project_health` still count it.
- Deleting a project removes its row, and the project's nodes, issues and
  edges go with it. Deleting an edge removes its row.
- `write_edge` ignores an edge whose id, or whose kind, source and target,
  already exist.
- `get_project_health` counts open CRITICAL, HIGH and MEDIUM issues. It also
  counts functions with a cyclomatic complexity above 15, and the project's
  functions, classes and modules.

## Applying deltas

The caller builds a delta from `GraphNode` and `GraphEdge` values, wrapped in
`NodeChange` and `EdgeChange`:

```python
from nexusgraph.applier import (
    Applier, ChangeKind, EdgeChange, GraphDelta, GraphEdge,
    GraphNode, NodeChange, NodeKind,
)

module = GraphNode(id="mod-1", kind=NodeKind.MODULE,
                   file_path="src/service.py", language="python")
function = GraphNode(id="fn-1", kind=NodeKind.FUNCTION, name="greet",
                     properties={"cyclomaticComplexity": 3})
delta = GraphDelta(
    project_id="proj-001",
    file_path="src/service.py",
    node_changes=[NodeChange(ChangeKind.ADD, module),
                  NodeChange(ChangeKind.ADD, function)],
    edge_changes=[EdgeChange(ChangeKind.ADD,
                             GraphEdge("e-1", "CONTAINS", "mod-1", "fn-1"))],
)
result = Applier(store).apply(delta)
print(result.nodes_added, result.edges_added)  # 2 1
```

- Node changes are applied first, then edge changes.
- An empty delta is not applied, and `ApplyResult.skipped` is `True`.
- Functions, classes and interfaces are linked to the module stored at the
  delta's file path. If no such module exists, the module id is left empty.
- Import nodes are counted but not stored.
- The applier reads node properties `linesOfCode`, `visibility`, `isAsync`,
  `isStatic`, `isAbstract`, `isConstructor`, `cyclomaticComplexity`,
  `parameterCount` and `nestingDepth`.
- A change that cannot be applied raises `ApplyError`.

## What this package does not do

nexusgraph does not read or parse source files. It has no way to produce
graph deltas from code, so the caller has to build them. It also has no
command-line tool and no server.