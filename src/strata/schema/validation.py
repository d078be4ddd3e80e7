"""Per-field validation and required-field checks.

Both checks run on a payload that has already been coerced to the
column types, and both return the offending field names instead of
raising so the engine can wrap them in the right error.

Rules:
    - Unknown keys are ignored here; the engine strips them beforehand.
    - ``None`` fails a non-nullable field (``allowNull: false``) and any
      required field; elsewhere it is accepted.
    - Create: every required property must be present and not ``None``.
    - Update: a required property may be omitted but not cleared.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

from strata.schema.model import PropertyDef, Schema

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DATE_TIME = re.compile(r"^\d{4}-\d{2}-\d{2}([ T]\d{2}:\d{2}(:\d{2}(\.\d+)?)?)?(Z|[+-]\d{2}:?\d{2})?$")


def _check_format(fmt: str | None, value: str) -> bool:
    if fmt == "email":
        return bool(_EMAIL.match(value))
    if fmt == "uuid":
        try:
            uuid.UUID(value)
        except ValueError:
            return False
        return True
    if fmt in ("url", "uri"):
        parsed = urlparse(value)
        return bool(parsed.scheme and parsed.netloc)
    if fmt == "date-time":
        return bool(_DATE_TIME.match(value))
    return True


def conforms(prop: PropertyDef, value: Any) -> bool:
    """``True`` when a non-null coerced value satisfies ``prop``."""
    if value is None:
        return bool(prop.allow_null)

    kind = prop.type
    if kind == "string":
        if not isinstance(value, str):
            return False
        if prop.max_length is not None and len(value) > prop.max_length:
            return False
        if prop.min_length is not None and len(value) < prop.min_length:
            return False
        if not _check_format(prop.format, value):
            return False
    elif kind == "integer":
        if isinstance(value, bool) or not isinstance(value, int):
            return False
    elif kind == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
    elif kind == "boolean":
        if not isinstance(value, bool):
            return False
    elif kind == "array":
        if not isinstance(value, (list, tuple)):
            return False
    elif kind == "object":
        # serialized to JSON text by coercion
        if not isinstance(value, (str, dict, list)):
            return False

    if prop.enum is not None and value not in prop.enum:
        return False
    return True


def validate(schema: Schema, data: Mapping[str, Any]) -> list[str]:
    """Names of fields in ``data`` that violate their property definition."""
    invalid: list[str] = []
    for key, value in data.items():
        prop = schema.property(key)
        if prop is None or conforms(prop, value):
            continue
        if value is None and prop.allow_null is False:
            invalid.append(key)
        elif key in schema.required or value is not None:
            invalid.append(key)
    return invalid


def missing_required(schema: Schema, data: Mapping[str, Any], action: str) -> list[str]:
    """Required fields the payload fails to supply for ``action``."""
    if action == "create":
        return [name for name in schema.required if data.get(name) is None]
    return [key for key, value in data.items() if value is None and key in schema.required]


__all__ = [
    "conforms",
    "validate",
    "missing_required",
]
