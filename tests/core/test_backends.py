"""Tests for statement backends and the data-source registry."""

from __future__ import annotations

from collections import namedtuple

import pytest

from strata.core.backends import (
    DataSources,
    PoolBackend,
    SQLiteBackend,
    normalize_rows,
    sqlite_path,
)
from strata.core.errors import ConfigError
from strata.core.protocols import Backend
from strata.core.settings import StrataSettings
from strata.query.spec import Mode, Statement
from strata.schema.model import Schema


class SyncPool:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def query(self, sql, params):
        self.calls.append((sql, params))
        return self.result


class AsyncPool(SyncPool):
    async def query(self, sql, params):
        self.calls.append((sql, params))
        return self.result


class TestNormalizeRows:
    def test_none(self):
        assert normalize_rows(None) == []

    def test_recordset_envelope(self):
        assert normalize_rows({"recordset": [{"id": 1}], "rowsAffected": [1]}) == [{"id": 1}]

    def test_rows_attribute(self):
        class Result:
            rows = [{"id": 2}]

        assert normalize_rows(Result()) == [{"id": 2}]

    def test_namedtuple_records(self):
        Row = namedtuple("Row", "id name")
        assert normalize_rows([Row(1, "a")]) == [{"id": 1, "name": "a"}]

    def test_single_mapping(self):
        assert normalize_rows({"count": 3}) == [{"count": 3}]

    def test_unconvertible(self):
        with pytest.raises(TypeError):
            normalize_rows([1, 2])


class TestSQLiteBackend:
    async def test_select_and_write(self):
        backend = SQLiteBackend()
        backend.executescript("CREATE TABLE t (id INTEGER, name TEXT);")
        assert await backend.execute(Statement("INSERT INTO t VALUES (?, ?)", (1, "a"), Mode.INSERT, "t")) == []
        rows = await backend.execute(Statement("SELECT id, name FROM t", (), Mode.SELECT, "t"))
        assert rows == [{"id": 1, "name": "a"}]
        backend.close()

    async def test_driver_error_propagates(self):
        backend = SQLiteBackend()
        with pytest.raises(Exception):
            await backend.execute(Statement("SELECT * FROM missing"))
        backend.close()

    def test_is_backend(self):
        assert isinstance(SQLiteBackend(), Backend)


class TestPoolBackend:
    async def test_sync_pool(self):
        pool = SyncPool({"recordset": [{"id": 1}]})
        rows = await PoolBackend(pool).execute(Statement("SELECT 1", (5,)))
        assert rows == [{"id": 1}]
        assert pool.calls == [("SELECT 1", [5])]

    async def test_async_pool(self):
        pool = AsyncPool([{"id": 1}, {"id": 2}])
        rows = await PoolBackend(pool).execute(Statement("SELECT 1"))
        assert [row["id"] for row in rows] == [1, 2]

    def test_pool_without_query(self):
        with pytest.raises(ConfigError):
            PoolBackend(object())


class TestDataSources:
    def test_default_resolution(self):
        sources = DataSources()
        sources.register("default", SQLiteBackend(), "sqlite")
        schema = Schema.model_validate({"tableName": "users"})
        assert sources.for_schema(schema).name == "default"

    def test_named_source(self):
        sources = DataSources()
        sources.register("default", SQLiteBackend(), "sqlite")
        sources.register("reporting", PoolBackend(SyncPool([])), "mssql")
        schema = Schema.model_validate({"tableName": "sales", "dataSource": "reporting"})
        source = sources.for_schema(schema)
        assert source.dialect.name == "mssql"
        assert sources.names() == ["default", "reporting"]

    def test_unknown_source(self):
        with pytest.raises(ConfigError, match="Unknown data source: nope"):
            DataSources().get("nope")

    def test_from_settings(self):
        settings = StrataSettings(
            _env_file=None,
            data_sources={"default": "sqlite://", "reporting": "mssql://host/db"},
        )
        sources = DataSources.from_settings(settings, pools={"reporting": SyncPool([])})
        assert isinstance(sources.get().backend, SQLiteBackend)
        assert isinstance(sources.get("reporting").backend, PoolBackend)

    def test_from_settings_requires_pool(self):
        settings = StrataSettings(_env_file=None, data_sources={"main": "postgresql://h/db"})
        with pytest.raises(ConfigError):
            DataSources.from_settings(settings)


def test_sqlite_path():
    assert sqlite_path("sqlite://") == ":memory:"
    assert sqlite_path("sqlite:///app.db") == "app.db"
    assert sqlite_path("sqlite:////tmp/app.db") == "/tmp/app.db"
