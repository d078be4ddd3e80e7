"""Strata Core -- foundation primitives for the record engine.

Manifesto:
    The query translator, relation resolver and record engine all need the
    same cross-cutting pieces: a typed error taxonomy, a result envelope,
    structured logging, settings, caching, SQL dialects and a backend
    contract.  ``strata.core`` holds them so the upper layers stay focused
    on query semantics.

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          StrataError taxonomy (categories, payloads)
        result.py          Result[T] envelope (Ok / Err / try_result)
        protocols.py       Backend and Pool protocols

    Layer 2 -- Database
        dialect.py         SQL dialects (SQLite, PostgreSQL, MySQL, SQL Server)
        backends.py        SQLiteBackend, PoolBackend, DataSources registry

    Layer 3 -- Cross-Cutting Concerns
        logging.py         structlog configuration
        settings.py        StrataSettings (STRATA_* environment)
        hashing.py         Deterministic hashing and request fingerprints
        cache.py           CacheBackend with InMemory + Redis

Tags:
    strata, foundation, protocol-first
"""

from strata.core.backends import DataSource, DataSources, PoolBackend, SQLiteBackend, normalize_rows
from strata.core.cache import CacheBackend, InMemoryCache, RedisCache, cache_from_settings
from strata.core.dialect import (
    AsyncpgDialect,
    Dialect,
    MSSQLDialect,
    MySQLDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
    register_dialect,
)
from strata.core.errors import (
    BackendError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    HookRejectedError,
    MissingRequiredFieldsError,
    NotFoundError,
    PrimaryKeyMismatchError,
    QueryError,
    RelationCycleExceededError,
    SchemaNotFoundError,
    StrataError,
    ValidationError,
)
from strata.core.hashing import canonical_json, compute_hash, fingerprint
from strata.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from strata.core.protocols import Backend, Pool
from strata.core.result import Err, Ok, Result, from_optional, try_result
from strata.core.settings import StrataSettings, clear_settings_cache, get_settings

__all__ = [
    # backends
    "DataSource",
    "DataSources",
    "PoolBackend",
    "SQLiteBackend",
    "normalize_rows",
    # cache
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
    "cache_from_settings",
    # dialect
    "AsyncpgDialect",
    "Dialect",
    "MSSQLDialect",
    "MySQLDialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    "get_dialect",
    "register_dialect",
    # errors
    "BackendError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "HookRejectedError",
    "MissingRequiredFieldsError",
    "NotFoundError",
    "PrimaryKeyMismatchError",
    "QueryError",
    "RelationCycleExceededError",
    "SchemaNotFoundError",
    "StrataError",
    "ValidationError",
    # hashing
    "canonical_json",
    "compute_hash",
    "fingerprint",
    # logging
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
    # protocols
    "Backend",
    "Pool",
    # result
    "Err",
    "Ok",
    "Result",
    "from_optional",
    "try_result",
    # settings
    "StrataSettings",
    "clear_settings_cache",
    "get_settings",
]
