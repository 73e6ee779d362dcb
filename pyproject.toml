[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nexusgraph"
version = "0.1.0"
description = "A SQLite-backed code graph store for projects, modules, functions, classes, issues and edges, with schema migrations and a delta applier."
requires-python = ">=3.10"
dependencies = []
keywords = ["code-graph", "static-analysis", "sqlite", "code-quality", "graph-store"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Software Development :: Quality Assurance",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nexusgraph"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
