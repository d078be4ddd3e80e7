"""
Statement backends and the data-source registry.

Manifesto:
    Consumers should never hard-code which database a schema lives in.
    ``DataSources`` maps a schema's ``dataSource`` name to a backend plus
    the dialect its SQL must be rendered in, with a default for schemas
    that do not declare one.

Architecture:
    ::

        DataSources
        ├── "default"   → DataSource(SQLiteBackend(":memory:"), SQLiteDialect)
        └── "reporting" → DataSource(PoolBackend(mssql_pool), MSSQLDialect)

        Backend.execute(statement)
            SQLiteBackend  - stdlib sqlite3 in a worker thread
            PoolBackend    - any pool with query(sql, params), sync or async
            normalize_rows - recordset / rows envelopes → list[dict]

Examples:
    >>> sources = DataSources()
    >>> sources.register("default", SQLiteBackend(), "sqlite")
    >>> sources.get("default").dialect.name
    'sqlite'

Tags:
    strata, database, backend, registry, sqlite, pool
"""

from __future__ import annotations

import asyncio
import inspect
import sqlite3
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from strata.core.dialect import Dialect, dialect_for_url, get_dialect
from strata.core.errors import ConfigError
from strata.core.logging import get_logger
from strata.core.protocols import Backend

if TYPE_CHECKING:
    from strata.core.settings import StrataSettings
    from strata.query.spec import Statement
    from strata.schema.model import Schema

logger = get_logger(__name__)


def normalize_rows(result: Any) -> list[dict[str, Any]]:
    """Flatten a driver response into a list of plain dicts.

    Accepts ``None``, a row list, a mapping or object carrying
    ``recordset`` or ``rows``, and mapping-like or ``_asdict`` records.
    """
    if result is None:
        return []
    if isinstance(result, Mapping):
        for key in ("recordset", "rows"):
            if key in result:
                return normalize_rows(result[key])
        return [dict(result)]
    for attr in ("recordset", "rows"):
        inner = getattr(result, attr, None)
        if inner is not None and not callable(inner):
            return normalize_rows(inner)

    rows: list[dict[str, Any]] = []
    for record in result:
        if isinstance(record, Mapping):
            rows.append(dict(record))
        elif hasattr(record, "_asdict"):
            rows.append(dict(record._asdict()))
        elif hasattr(record, "keys"):
            rows.append({key: record[key] for key in record.keys()})
        else:
            raise TypeError(f"Cannot convert row of type {type(record).__name__} to dict")
    return rows


class SQLiteBackend:
    """
    SQLite backend on the stdlib ``sqlite3`` driver.

    Statements run in a worker thread via :func:`asyncio.to_thread`; a lock
    serializes access to the single connection.  Suitable for development,
    tests and single-process deployments.
    """

    def __init__(self, path: str = ":memory:", *, timeout: float = 5.0):
        self._path = path
        self._timeout = timeout
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def connection(self) -> sqlite3.Connection:
        """Open (lazily) and return the underlying connection."""
        if self._conn is None:
            uri = self._path.startswith("file:")
            self._conn = sqlite3.connect(
                self._path,
                timeout=self._timeout,
                check_same_thread=False,
                uri=uri,
            )
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _run(self, sql: str, params: tuple) -> list[dict[str, Any]]:
        with self._lock:
            conn = self.connection
            cursor = conn.execute(sql, params)
            if cursor.description is None:
                conn.commit()
                return []
            return [dict(row) for row in cursor.fetchall()]

    async def execute(self, statement: Statement) -> list[dict[str, Any]]:
        logger.debug("sqlite_execute", sql=statement.sql, params=list(statement.params))
        return await asyncio.to_thread(self._run, statement.sql, tuple(statement.params))

    def executescript(self, script: str) -> None:
        """Run a DDL/seed script synchronously."""
        with self._lock:
            self.connection.executescript(script)
            self.connection.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class PoolBackend:
    """
    Adapter for an externally constructed driver pool.

    The pool needs a ``query(sql, params)`` method; it may be a coroutine.
    Results are passed through :func:`normalize_rows`.

    Example:
        backend = PoolBackend(mssql_pool)
        rows = await backend.execute(statement)
    """

    def __init__(self, pool: Any):
        if not callable(getattr(pool, "query", None)):
            raise ConfigError(f"Pool of type {type(pool).__name__} has no query(sql, params) method")
        self._pool = pool

    async def execute(self, statement: Statement) -> list[dict[str, Any]]:
        logger.debug("pool_execute", sql=statement.sql, params=list(statement.params))
        result = self._pool.query(statement.sql, list(statement.params))
        if inspect.isawaitable(result):
            result = await result
        return normalize_rows(result)


@dataclass(frozen=True)
class DataSource:
    """A named backend together with the dialect its SQL is rendered in."""

    name: str
    backend: Backend
    dialect: Dialect


class DataSources:
    """
    Registry mapping data-source names to ``(backend, dialect)`` pairs.

    Schemas without a ``dataSource`` resolve to ``default``.
    """

    def __init__(self, default: str = "default"):
        self._sources: dict[str, DataSource] = {}
        self.default = default

    def register(self, name: str, backend: Backend, dialect: Dialect | str) -> DataSource:
        """Register (or replace) a data source."""
        if isinstance(dialect, str):
            dialect = get_dialect(dialect)
        source = DataSource(name=name, backend=backend, dialect=dialect)
        self._sources[name] = source
        return source

    def get(self, name: str | None = None) -> DataSource:
        """Look up a data source; ``None`` means the default."""
        key = name or self.default
        if key not in self._sources:
            raise ConfigError(f"Unknown data source: {key}")
        return self._sources[key]

    def for_schema(self, schema: Schema) -> DataSource:
        """Data source a schema's statements run against."""
        return self.get(schema.data_source)

    def names(self) -> list[str]:
        return sorted(self._sources)

    @classmethod
    def from_settings(
        cls,
        settings: StrataSettings,
        pools: Mapping[str, Any] | None = None,
    ) -> DataSources:
        """
        Build the registry from ``STRATA_DATA_SOURCES``.

        ``sqlite:`` URLs get a :class:`SQLiteBackend`; every other URL needs
        a pool under the same name in ``pools`` (wrapped in
        :class:`PoolBackend`).
        """
        pools = pools or {}
        sources = cls(default=settings.default_data_source)
        for name, url in settings.data_sources.items():
            dialect = dialect_for_url(url)
            if name in pools:
                backend: Backend = PoolBackend(pools[name])
            elif dialect.name == "sqlite":
                backend = SQLiteBackend(sqlite_path(url))
            else:
                raise ConfigError(f"No pool supplied for data source '{name}' ({dialect.name})")
            sources.register(name, backend, dialect)
        return sources


def sqlite_path(url: str) -> str:
    """Database path from a ``sqlite:///path`` URL (empty path = memory)."""
    path = url.split(":", 1)[1].lstrip("/") if ":" in url else url
    if url.startswith("sqlite:////"):
        path = "/" + path
    return path or ":memory:"


__all__ = [
    "normalize_rows",
    "SQLiteBackend",
    "PoolBackend",
    "DataSource",
    "DataSources",
    "sqlite_path",
]
