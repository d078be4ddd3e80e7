"""
Wire-to-column type coercion.

Filter values and write payloads arrive mostly as text (query strings,
form posts, JSON).  ``coerce`` converts one value to the native type its
property declares; ``coerce_list`` does the same for ``in`` / ``nin``
lists.  ``None`` is the "invalid, drop it" signal, never an exception:
the caller decides whether a dropped value is an error.

Booleans are strict: only ``True``, ``"1"`` and ``"true"`` are true.  SQLite
and MySQL hand booleans back as ``1`` / ``0``, so a row read from them and
passed straight back to ``update`` writes ``False`` for every such column;
convert those fields to ``True``/``"true"`` first.

Manifesto:
    - **Non-fatal:** Bad input yields ``None``, not a traceback
    - **Idempotent:** ``coerce(coerce(v, p), p) == coerce(v, p)``
    - **Canonical timestamps:** Every date-time becomes ``YYYY-MM-DD HH:MM:SS``

Rules::

    object      dict/list → JSON text; unserializable → None; other → as is
    number      int / float / Decimal → as is; text → leading numeric prefix ("12px" → 12)
    integer     int / float / Decimal → truncated int; text → leading integer prefix
                (infinities and NaN → None for both)
    boolean     True only for True, "1", "true"
    date-time   datetime / date / epoch ms / ISO text → canonical text
    string      text → stripped; other → as is
    array, *    as is

Examples:
    >>> from strata.schema.model import PropertyDef
    >>> coerce("12px", PropertyDef(type="integer"))
    12
    >>> coerce("yes", PropertyDef(type="boolean"))
    False
    >>> coerce_list("1,x,3", PropertyDef(type="number"))
    [1, 3]

Tags:
    strata, coercion, types, parsing
"""

from __future__ import annotations

import json
import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from strata.schema.model import PropertyDef

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def format_timestamp(value: datetime) -> str:
    """Render in the canonical form; aware values are converted to UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def utc_timestamp() -> str:
    """Current UTC time in the canonical form."""
    return format_timestamp(datetime.now(timezone.utc))


def parse_timestamp(value: Any) -> str | None:
    """Canonical text for a date-time-like value, or ``None``."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return format_timestamp(datetime(value.year, value.month, value.day))
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return format_timestamp(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return format_timestamp(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def _to_number(value: Any, integer: bool) -> int | float | Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        return int(value) if integer else value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value) if integer else value
    if not isinstance(value, str):
        return None
    if integer:
        match = _INT_PREFIX.match(value)
        return int(match.group(1)) if match else None
    match = _FLOAT_PREFIX.match(value)
    if not match:
        return None
    text = match.group(1)
    number = float(text)
    if not math.isfinite(number):
        return None
    if number.is_integer() and not any(c in text for c in ".eE"):
        return int(number)
    return number


def coerce(value: Any, prop: PropertyDef) -> Any:
    """Convert ``value`` to the native type ``prop`` declares (``None`` = invalid)."""
    if value is None:
        return None

    kind = prop.type
    if kind == "object":
        if isinstance(value, (dict, list)):
            try:
                return json.dumps(value)
            except (TypeError, ValueError):
                return None
        return value
    if kind == "number":
        return _to_number(value, integer=False)
    if kind == "integer":
        return _to_number(value, integer=True)
    if kind == "boolean":
        return value is True or value == "1" or value == "true"
    if kind == "string":
        if prop.format == "date-time":
            return parse_timestamp(value)
        return value.strip() if isinstance(value, str) else value
    return value


def coerce_list(value: Any, prop: PropertyDef) -> list[Any]:
    """Coerce a comma-joined string or sequence, dropping invalid items."""
    if value is None:
        return []
    if isinstance(value, str):
        items: list[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        items = [value]
    result = []
    for item in items:
        coerced = coerce(item, prop)
        if coerced is not None:
            result.append(coerced)
    return result


__all__ = [
    "TIMESTAMP_FORMAT",
    "format_timestamp",
    "utc_timestamp",
    "parse_timestamp",
    "coerce",
    "coerce_list",
]
