"""
Shared pytest fixtures for strata tests.

This module provides:
- Sample entity schemas (users, orders, profiles, tags, userTags)
- A populated in-memory SQLite backend and a RecordEngine over it
- RecordingBackend: canned rows + statement log, no database
- FakeRedis: async in-memory stand-in for a redis.asyncio client
- FakeSource: in-memory RowSource for relation resolver tests
"""

from __future__ import annotations

import copy
import fnmatch
from typing import Any

import pytest

from strata.core.backends import DataSources, SQLiteBackend
from strata.core.cache import InMemoryCache
from strata.core.errors import QueryError
from strata.core.settings import StrataSettings, clear_settings_cache
from strata.query.spec import Statement
from strata.records.engine import RecordEngine
from strata.records.resolver import JoinContext, RelationResolver
from strata.schema.registry import SchemaRegistry

U1 = "00000000-0000-4000-8000-000000000001"
U2 = "00000000-0000-4000-8000-000000000002"
U3 = "00000000-0000-4000-8000-000000000003"


# =============================================================================
# Schemas
# =============================================================================

USERS = {
    "tableName": "users",
    "primaryKey": "id",
    "properties": {
        "id": {"type": "string", "format": "uuid"},
        "firstName": {"type": "string", "maxLength": 32},
        "lastName": {"type": "string"},
        "email": {"type": "string", "format": "email"},
        "status": {"type": "string", "enum": ["active", "inactive"], "default": "active"},
        "age": {"type": "integer"},
        "meta": {"type": "object"},
        "createdAt": {"type": "string", "format": "date-time"},
        "updatedAt": {"type": "string", "format": "date-time"},
    },
    "required": ["email"],
    "relations": {
        "orders": {
            "relation": "HasMany",
            "modelClass": "orders",
            "join": {"from": "id", "to": "userId"},
            "sort": "id",
        },
        "profile": {
            "relation": "HasOne",
            "modelClass": "profiles",
            "join": {"from": "id", "to": "userId"},
        },
        "tags": {
            "relation": "HasMany",
            "modelClass": "tags",
            "join": {
                "from": "id",
                "to": "id",
                "through": {"modelClass": "userTags", "from": "userId", "to": "tagId"},
            },
        },
    },
}

ORDERS = {
    "tableName": "orders",
    "properties": {
        "id": {"type": "integer"},
        "userId": {"type": "string"},
        "total": {"type": "number"},
        "status": {"type": "string"},
    },
    "relations": {
        "user": {
            "relation": "HasOne",
            "modelClass": "users",
            "join": {"from": "userId", "to": "id"},
        },
    },
    "foreignKeys": {
        "userId": {"modelClass": "users", "select": ["id", "email"]},
    },
}

PROFILES = {
    "tableName": "profiles",
    "properties": {
        "id": {"type": "integer"},
        "userId": {"type": "string"},
        "bio": {"type": "string"},
    },
}

TAGS = {
    "tableName": "tags",
    "properties": {
        "id": {"type": "integer"},
        "name": {"type": "string"},
    },
}

USER_TAGS = {
    "tableName": "userTags",
    "primaryKey": ["userId", "tagId"],
    "properties": {
        "userId": {"type": "string"},
        "tagId": {"type": "integer"},
    },
}

ALL_SCHEMAS = [USERS, ORDERS, PROFILES, TAGS, USER_TAGS]

DDL = f"""
CREATE TABLE users (
    id TEXT PRIMARY KEY,
    first_name TEXT,
    last_name TEXT,
    email TEXT,
    status TEXT,
    age INTEGER,
    meta TEXT,
    created_at TEXT,
    updated_at TEXT
);
CREATE TABLE orders (id INTEGER PRIMARY KEY, user_id TEXT, total REAL, status TEXT);
CREATE TABLE profiles (id INTEGER PRIMARY KEY, user_id TEXT, bio TEXT);
CREATE TABLE tags (id INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE userTags (user_id TEXT, tag_id INTEGER, PRIMARY KEY (user_id, tag_id));

INSERT INTO users (id, first_name, last_name, email, status, age) VALUES
    ('{U1}', 'Alice', 'Adams', 'alice@example.com', 'active', 30),
    ('{U2}', 'Bob', 'Brown', 'bob@example.com', 'inactive', NULL),
    ('{U3}', 'Carol', 'Clark', 'carol@example.com', 'active', 41);
INSERT INTO orders (id, user_id, total, status) VALUES
    (1, '{U1}', 10.5, 'paid'),
    (2, '{U1}', 20.0, 'open'),
    (3, '{U2}', 5.0, 'paid');
INSERT INTO profiles (id, user_id, bio) VALUES (1, '{U1}', 'hello');
INSERT INTO tags (id, name) VALUES (10, 'X'), (11, 'Y');
INSERT INTO userTags (user_id, tag_id) VALUES ('{U1}', 10), ('{U2}', 10), ('{U1}', 11);
"""


# =============================================================================
# Test doubles
# =============================================================================


class RecordingBackend:
    """Backend that records statements and returns canned rows per table."""

    def __init__(self, rows: dict[str, list[dict[str, Any]]] | None = None, error: Exception | None = None):
        self.rows = rows or {}
        self.error = error
        self.statements: list[Statement] = []

    async def execute(self, statement: Statement) -> list[dict[str, Any]]:
        self.statements.append(statement)
        if self.error is not None:
            raise self.error
        if statement.mode.value != "select" and statement.mode.value != "count":
            return []
        return copy.deepcopy(self.rows.get(statement.table, []))


class FakeRedis:
    """Async stand-in for a ``redis.asyncio`` client; values kept as sent."""

    def __init__(self):
        self.store: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value):
        self.store[key] = value

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    async def exists(self, key):
        return int(key in self.store)

    async def scan_iter(self, match):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key

    async def flushdb(self):
        self.store.clear()

    async def aclose(self):
        self.closed = True


class FakeSource:
    """In-memory RowSource: filters tables by ``in`` / ``eq`` and recurses joins."""

    def __init__(self, registry: SchemaRegistry, tables: dict[str, list[dict[str, Any]]], failing: set[str] | None = None):
        self.registry = registry
        self.tables = tables
        self.failing = failing or set()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.resolver: RelationResolver | None = None

    async def fetch(self, entity: str, query: dict[str, Any], context: JoinContext) -> list[dict[str, Any]]:
        self.calls.append((entity, copy.deepcopy(query)))
        if entity in self.failing:
            raise QueryError(f"boom: {entity}")
        rows = [copy.deepcopy(row) for row in self.tables.get(entity, [])]
        for field, condition in (query.get("where") or {}).items():
            if isinstance(condition, dict) and "in" in condition:
                rows = [row for row in rows if row.get(field) in condition["in"]]
            elif isinstance(condition, dict) and "eq" in condition:
                rows = [row for row in rows if row.get(field) == condition["eq"]]
        if query.get("join") and self.resolver is not None:
            await self.resolver.resolve(rows, query["join"], self.registry.get(entity), context)
        return rows


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _clean_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> StrataSettings:
    return StrataSettings(_env_file=None, cache_ttl_seconds=60)


@pytest.fixture
def registry() -> SchemaRegistry:
    return SchemaRegistry(ALL_SCHEMAS)


@pytest.fixture
def sqlite_backend():
    backend = SQLiteBackend()
    backend.executescript(DDL)
    yield backend
    backend.close()


@pytest.fixture
def sources(sqlite_backend: SQLiteBackend) -> DataSources:
    sources = DataSources()
    sources.register("default", sqlite_backend, "sqlite")
    return sources


@pytest.fixture
def engine(registry: SchemaRegistry, sources: DataSources, settings: StrataSettings) -> RecordEngine:
    return RecordEngine(registry, sources, cache=InMemoryCache(), settings=settings)


@pytest.fixture
def recording_backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def recording_engine(registry: SchemaRegistry, recording_backend: RecordingBackend, settings: StrataSettings) -> RecordEngine:
    sources = DataSources()
    sources.register("default", recording_backend, "sqlite")
    return RecordEngine(registry, sources, settings=settings)
