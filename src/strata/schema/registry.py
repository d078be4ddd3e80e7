"""Schema registry with versioned copy-on-write snapshots.

One ``SchemaRegistry`` is built at process start and passed by reference
to the translator, resolver and engine.  Readers grab the current
snapshot without locking; writers (register, reload) build a new mapping
under a lock and swap it in, so a request that is halfway through a join
keeps seeing a consistent set of schemas.

Manifesto:
    No ambient global state.  Schemas are looked up by entity name through
    an explicit registry object; a missing name is a typed error, not a
    ``KeyError`` from some module-level dict.

Architecture::

    SchemaRegistry
    ├── snapshot   → RegistrySnapshot(version, MappingProxyType{name: Schema})
    ├── get(name)  → Schema | raise SchemaNotFoundError
    ├── register() → new snapshot (version + 1)
    └── reload()   → replace every schema (version + 1)

    load_directory(path) → *.json files → Schema.model_validate

Examples:
    >>> registry = SchemaRegistry([{"tableName": "users", "properties": {"id": {}}}])
    >>> registry.get("users").primary_keys
    ['id']
    >>> registry.version
    1

Tags:
    strata, schema, registry, snapshot, copy-on-write, thread-safe
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from strata.core.errors import ConfigError, SchemaNotFoundError
from strata.core.logging import get_logger
from strata.schema.model import Schema

logger = get_logger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable view of every registered schema at one version."""

    version: int
    schemas: Mapping[str, Schema]


def _as_schema(value: Schema | Mapping[str, Any]) -> Schema:
    if isinstance(value, Schema):
        return value
    try:
        return Schema.model_validate(value)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid schema: {e}", cause=e) from e


class SchemaRegistry:
    """Process-wide schema lookup, safe for concurrent readers."""

    def __init__(self, schemas: Iterable[Schema | Mapping[str, Any]] = ()):
        self._lock = threading.Lock()
        self._snapshot = RegistrySnapshot(version=0, schemas=MappingProxyType({}))
        schemas = list(schemas)
        if schemas:
            self.register_many(schemas)

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def get(self, name: str) -> Schema:
        """Schema for ``name``; raises :class:`SchemaNotFoundError`."""
        schema = self._snapshot.schemas.get(name)
        if schema is None:
            raise SchemaNotFoundError(name)
        return schema

    def find(self, name: str) -> Schema | None:
        return self._snapshot.schemas.get(name)

    def names(self) -> list[str]:
        return sorted(self._snapshot.schemas)

    def list_all(self) -> list[Schema]:
        snapshot = self._snapshot
        return [snapshot.schemas[name] for name in sorted(snapshot.schemas)]

    def __contains__(self, name: object) -> bool:
        return name in self._snapshot.schemas

    def __len__(self) -> int:
        return len(self._snapshot.schemas)

    # ── Writers ──────────────────────────────────────────────────

    def _publish(self, schemas: dict[str, Schema]) -> RegistrySnapshot:
        snapshot = RegistrySnapshot(
            version=self._snapshot.version + 1,
            schemas=MappingProxyType(schemas),
        )
        self._snapshot = snapshot
        return snapshot

    def register(self, schema: Schema | Mapping[str, Any]) -> Schema:
        """Add or replace one schema, keyed by its table name."""
        return self.register_many([schema])[0]

    def register_many(self, schemas: Iterable[Schema | Mapping[str, Any]]) -> list[Schema]:
        parsed = [_as_schema(schema) for schema in schemas]
        with self._lock:
            current = dict(self._snapshot.schemas)
            for schema in parsed:
                current[schema.table_name] = schema
            snapshot = self._publish(current)
        logger.debug(
            "schemas_registered",
            names=[schema.table_name for schema in parsed],
            version=snapshot.version,
        )
        return parsed

    def unregister(self, name: str) -> None:
        with self._lock:
            current = dict(self._snapshot.schemas)
            if current.pop(name, None) is not None:
                self._publish(current)

    def reload(self, schemas: Iterable[Schema | Mapping[str, Any]]) -> RegistrySnapshot:
        """Replace the whole schema set in one swap."""
        parsed = [_as_schema(schema) for schema in schemas]
        with self._lock:
            snapshot = self._publish({schema.table_name: schema for schema in parsed})
        logger.info("schemas_reloaded", count=len(parsed), version=snapshot.version)
        return snapshot

    # ── Loading ──────────────────────────────────────────────────

    def load_directory(self, directory: Path | str) -> list[Schema]:
        """Register every ``*.json`` schema file in ``directory``."""
        return self.register_many(load_schema_file(path) for path in get_schema_files(directory))

    @classmethod
    def from_directory(cls, directory: Path | str) -> SchemaRegistry:
        registry = cls()
        registry.load_directory(directory)
        return registry


def get_schema_files(schema_dir: Path | str) -> list[Path]:
    """Sorted ``*.json`` files in ``schema_dir`` (empty if it does not exist)."""
    directory = Path(schema_dir)
    if not directory.exists():
        return []
    return sorted(directory.glob("*.json"))


def load_schema_file(path: Path | str) -> Schema:
    """Parse one schema file; ``tableName`` defaults to the file stem."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read schema file {path}: {e}", cause=e) from e
    if isinstance(data, dict):
        data.setdefault("tableName", path.stem)
    return _as_schema(data)


__all__ = [
    "RegistrySnapshot",
    "SchemaRegistry",
    "get_schema_files",
    "load_schema_file",
]
