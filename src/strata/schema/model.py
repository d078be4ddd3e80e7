"""Pydantic models for entity schemas.

An entity schema describes one table: its properties (logical name ->
type, format, column name, constraints), primary key, required fields,
relations to other entities and foreign-key pointers.  Schemas are parsed
from their JSON wire shape and are immutable afterwards.

Usage::

    from strata.schema.model import Schema

    schema = Schema.model_validate({
        "tableName": "users",
        "primaryKey": "id",
        "properties": {
            "id": {"type": "string", "format": "uuid"},
            "firstName": {"type": "string", "maxLength": 64},
            "email": {"type": "string", "format": "email"},
        },
        "required": ["email"],
    })
    schema.column_name("firstName")   # 'first_name'

Example relation::

    "relations": {
        "orders": {
            "relation": "HasMany",
            "modelClass": "orders",
            "join": {"from": "id", "to": "userId"},
            "select": ["id", "total"],
            "sort": "createdAt desc"
        },
        "tags": {
            "relation": "HasMany",
            "modelClass": "tags",
            "join": {
                "from": "id",
                "to": "id",
                "through": {"modelClass": "userTags", "from": "userId", "to": "tagId"}
            }
        }
    }

Manifesto:
    Property lookups are explicit: ``schema.property(name)`` returns a
    :class:`PropertyDef` or ``None``.  Absence is ordinary control flow,
    never an attribute error.

Tags:
    strata, schema, pydantic, declarative, metadata
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SNAKE_1 = re.compile(r"(.)([A-Z][a-z]+)")
_SNAKE_2 = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(name: str) -> str:
    """``firstName`` -> ``first_name``; already-snake names are unchanged."""
    return _SNAKE_2.sub(r"\1_\2", _SNAKE_1.sub(r"\1_\2", name)).lower()


def to_camel_case(name: str) -> str:
    """``first_name`` -> ``firstName``; names without underscores are unchanged."""
    if "_" not in name:
        return name
    head, *rest = [part for part in name.split("_") if part] or [name]
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class RelationKind(str, Enum):
    HAS_ONE = "HasOne"
    HAS_MANY = "HasMany"


class _WireModel(BaseModel):
    """Frozen model that accepts both wire (camelCase) and Python names."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )


class PropertyDef(_WireModel):
    """One schema property."""

    type: str = Field(default="string")
    format: str | None = None
    column_name: str | None = Field(default=None, alias="columnName")
    max_length: int | None = Field(default=None, alias="maxLength")
    min_length: int | None = Field(default=None, alias="minLength")
    enum: list[Any] | None = None
    auto_increment: bool = Field(default=False, alias="autoIncrement")
    allow_null: bool | None = Field(default=None, alias="allowNull")
    default: Any = None
    description: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _first_type(cls, value: Any) -> Any:
        # JSON-schema style ["string", "null"] unions keep their first concrete type
        if isinstance(value, list):
            concrete = [item for item in value if item != "null"]
            return concrete[0] if concrete else "string"
        return value


class Through(_WireModel):
    """Pivot entity linking a relation's parent and child."""

    model_class: str = Field(alias="modelClass")
    from_: str = Field(alias="from")
    to: str
    where: dict[str, Any] | None = None
    sort: str | list[str] | None = None
    sql: list[dict[str, Any]] | None = None


class Join(_WireModel):
    """Linking property pair (dot paths into JSON columns allowed)."""

    from_: str = Field(alias="from")
    to: str
    through: Through | None = None


class Relation(_WireModel):
    """Declared HasOne / HasMany association."""

    relation: RelationKind
    model_class: str = Field(alias="modelClass")
    join: Join
    where: dict[str, Any] | None = None
    select: list[str] | str | None = None
    limit: int | None = None
    offset: int | None = None
    sort: str | list[str] | None = None
    sql: list[dict[str, Any]] | None = None

    @property
    def is_many(self) -> bool:
        return self.relation is RelationKind.HAS_MANY


class ForeignKey(_WireModel):
    """Unidirectional pointer from a property to another entity."""

    model_class: str = Field(alias="modelClass")
    to: str | None = None
    select: list[str] | str | None = None
    join: Any = None


class Schema(_WireModel):
    """Immutable per-entity descriptor."""

    table_name: str = Field(alias="tableName", min_length=1)
    title: str | None = None
    data_source: str | None = Field(default=None, alias="dataSource")
    primary_key: str | list[str] = Field(default="id", alias="primaryKey")
    properties: dict[str, PropertyDef] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    read_only: list[str] = Field(default_factory=list, alias="readOnly")
    relations: dict[str, Relation] = Field(default_factory=dict)
    foreign_keys: dict[str, ForeignKey] = Field(default_factory=dict, alias="foreignKeys")

    @field_validator("properties", mode="after")
    @classmethod
    def _fill_column_names(cls, properties: dict[str, PropertyDef]) -> dict[str, PropertyDef]:
        return {
            name: prop
            if prop.column_name
            else prop.model_copy(update={"column_name": to_snake_case(name)})
            for name, prop in properties.items()
        }

    @property
    def primary_keys(self) -> list[str]:
        """Primary key as an ordered list (single keys become ``[key]``)."""
        if isinstance(self.primary_key, list):
            return list(self.primary_key)
        return [self.primary_key]

    @property
    def is_composite(self) -> bool:
        return len(self.primary_keys) > 1

    # ── Lookups ──────────────────────────────────────────────────
    # defined after the properties above: ``property`` shadows the builtin
    # for the rest of the class body

    def property(self, name: str) -> PropertyDef | None:
        return self.properties.get(name)

    def column_name(self, name: str) -> str | None:
        prop = self.properties.get(name)
        return prop.column_name if prop else None

    def to_wire(self) -> dict[str, Any]:
        """Serialize back to the camelCase wire shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "to_snake_case",
    "to_camel_case",
    "RelationKind",
    "PropertyDef",
    "Through",
    "Join",
    "Relation",
    "ForeignKey",
    "Schema",
]
