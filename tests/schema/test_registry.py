"""Tests for the schema registry."""

import json

import pytest

from conftest import ORDERS, USERS
from strata.core.errors import ConfigError, SchemaNotFoundError
from strata.schema.registry import SchemaRegistry, get_schema_files, load_schema_file


class TestSchemaRegistry:
    def test_get_and_contains(self):
        registry = SchemaRegistry([USERS])
        assert registry.get("users").table_name == "users"
        assert "users" in registry
        assert len(registry) == 1

    def test_missing_schema(self):
        with pytest.raises(SchemaNotFoundError):
            SchemaRegistry().get("ghosts")
        assert SchemaRegistry().find("ghosts") is None

    def test_register_bumps_version(self):
        registry = SchemaRegistry()
        assert registry.version == 0
        registry.register(USERS)
        registry.register(ORDERS)
        assert registry.version == 2
        assert registry.names() == ["orders", "users"]

    def test_snapshot_is_stable(self):
        registry = SchemaRegistry([USERS])
        snapshot = registry.snapshot
        registry.register(ORDERS)
        assert "orders" not in snapshot.schemas
        assert "orders" in registry.snapshot.schemas

    def test_reload_replaces(self):
        registry = SchemaRegistry([USERS])
        registry.reload([ORDERS])
        assert registry.names() == ["orders"]

    def test_unregister(self):
        registry = SchemaRegistry([USERS, ORDERS])
        registry.unregister("users")
        assert registry.names() == ["orders"]

    def test_invalid_schema(self):
        with pytest.raises(ConfigError):
            SchemaRegistry([{"tableName": ""}])


class TestDirectoryLoading:
    def test_load_directory(self, tmp_path):
        (tmp_path / "users.json").write_text(json.dumps(USERS))
        (tmp_path / "widgets.json").write_text(json.dumps({"properties": {"id": {"type": "integer"}}}))
        (tmp_path / "notes.txt").write_text("ignored")

        registry = SchemaRegistry.from_directory(tmp_path)
        assert registry.names() == ["users", "widgets"]
        assert registry.get("widgets").property("id").type == "integer"

    def test_missing_directory_is_empty(self, tmp_path):
        assert get_schema_files(tmp_path / "nope") == []

    def test_bad_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Cannot read schema file"):
            load_schema_file(path)
