"""Entity schemas: models, registry and validation."""

from strata.schema.model import (
    ForeignKey,
    Join,
    PropertyDef,
    Relation,
    RelationKind,
    Schema,
    Through,
    to_camel_case,
    to_snake_case,
)
from strata.schema.registry import RegistrySnapshot, SchemaRegistry, get_schema_files, load_schema_file
from strata.schema.validation import conforms, missing_required, validate

__all__ = [
    "ForeignKey",
    "Join",
    "PropertyDef",
    "Relation",
    "RelationKind",
    "Schema",
    "Through",
    "to_camel_case",
    "to_snake_case",
    "RegistrySnapshot",
    "SchemaRegistry",
    "get_schema_files",
    "load_schema_file",
    "conforms",
    "missing_required",
    "validate",
]
