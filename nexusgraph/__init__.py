"""A SQLite-backed code graph store with schema migrations and a delta applier."""

__version__ = "0.1.0"
__all__ = ["models", "schema", "store", "applier"]