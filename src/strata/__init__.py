"""
strata: schema-driven record engine over SQL backends.

Entities are declared as JSON schemas.  A backend-agnostic query
description is translated to dialect SQL, executed against a pluggable
backend, and the resulting rows are hydrated with related entities by
fanout queries.

Quick start::

    from strata import DataSources, RecordEngine, SchemaRegistry, SQLiteBackend

    registry = SchemaRegistry.from_directory("schemas")
    sources = DataSources()
    sources.register("default", SQLiteBackend("app.db"), "sqlite")

    engine = RecordEngine(registry, sources)
    users = (await engine.query("users", {"status": "active", "join": "orders"})).unwrap()
"""

from strata.core import (
    DataSources,
    Err,
    InMemoryCache,
    Ok,
    PoolBackend,
    Result,
    SQLiteBackend,
    StrataError,
    StrataSettings,
    get_settings,
)
from strata.query import GenericQuery, QueryTranslator, Statement
from strata.records import Notification, Observers, RecordEngine, RecordHooks
from strata.schema import Schema, SchemaRegistry

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "DataSources",
    "Err",
    "InMemoryCache",
    "Ok",
    "PoolBackend",
    "Result",
    "SQLiteBackend",
    "StrataError",
    "StrataSettings",
    "get_settings",
    "GenericQuery",
    "QueryTranslator",
    "Statement",
    "Notification",
    "Observers",
    "RecordEngine",
    "RecordHooks",
    "Schema",
    "SchemaRegistry",
]
