"""
Query description types.

``GenericQuery`` is the parsed, backend-agnostic form of the wire query
(``{"where": {...}, "select": [...], "sort": "name desc", ...}``),
``Fragment`` is the tagged union for raw SQL escape hatches, and
``Statement`` is what the translator hands to a backend.

Wire shape::

    {
      "where":  {"age": {"gt": 21}, "status": "active"},
      "select": ["id", "name"],
      "sort":   "name desc",
      "limit":  20,
      "offset": 0,
      "join":   {"orders": {"select": ["total"]}},
      "sql":    [{"join": {"query": "JOIN x ON ...", "where": "x.a = 1"}},
                 {"group": {"query": "users.status"}}]
    }

When ``where`` is absent, every non-reserved top-level key is a filter.

Tags:
    strata, query, statement, fragment, parsing
"""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from strata.core.errors import QueryError

RESERVED_KEYS = frozenset(
    {"sort", "select", "skip", "offset", "limit", "join", "count", "sql", "where"}
)

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


class Mode(str, Enum):
    """Statement kind produced by the translator."""

    SELECT = "select"
    COUNT = "count"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class Statement:
    """Dialect-correct SQL plus its bound parameters, in placeholder order."""

    sql: str
    params: tuple[Any, ...] = ()
    mode: Mode = Mode.SELECT
    table: str = ""

    def __str__(self) -> str:
        return self.sql

    def to_dict(self) -> dict[str, Any]:
        return {
            "sql": self.sql,
            "params": list(self.params),
            "mode": self.mode.value,
            "table": self.table,
        }


class FragmentKind(str, Enum):
    JOIN = "join"
    WHERE = "where"
    GROUP = "group"
    HAVING = "having"


@dataclass(frozen=True, slots=True)
class Fragment:
    """Raw SQL injected verbatim; identifiers are not translated."""

    kind: FragmentKind
    text: str
    where: str | None = None

    @classmethod
    def parse(cls, item: Mapping[str, Any]) -> Fragment:
        """Parse ``{"join": {"query": ..., "where": ...}}`` or ``{"where": "..."}``."""
        if not isinstance(item, Mapping) or len(item) != 1:
            raise QueryError(f"SQL fragment must be a single-key object: {item!r}")
        key, value = next(iter(item.items()))
        try:
            kind = FragmentKind(key)
        except ValueError as e:
            raise QueryError(f"Unknown SQL fragment kind: {key}", cause=e) from e
        if isinstance(value, Mapping):
            text = value.get("query")
            where = value.get("where")
        else:
            text, where = value, None
        if not isinstance(text, str) or not text.strip():
            raise QueryError(f"SQL fragment '{key}' has no query text")
        return cls(kind=kind, text=text.strip(), where=where or None)

    @classmethod
    def parse_all(cls, raw: Any) -> list[Fragment]:
        if not raw:
            return []
        if isinstance(raw, Mapping):
            raw = [raw]
        if not isinstance(raw, list):
            raise QueryError("'sql' must be a list of fragments")
        return [cls.parse(item) for item in raw]


def parse_int(value: Any) -> int | None:
    """Leading non-negative integer of ``value``; anything else is ``None``."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        number = int(value)
    elif isinstance(value, str):
        match = _INT_PREFIX.match(value)
        if not match:
            return None
        number = int(match.group(1))
    else:
        return None
    return number if number >= 0 else None


def split_terms(value: Any) -> list[str]:
    """Comma string or list -> stripped, non-empty string terms."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [item for item in value if isinstance(item, str)]
    else:
        return []
    return [item.strip() for item in items if item.strip()]


@dataclass
class GenericQuery:
    """Parsed query description; built from a deep copy of the caller's map."""

    where: dict[str, Any] = field(default_factory=dict)
    select: list[str] | None = None
    sort: list[str] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    join: Any = None
    fragments: list[Fragment] = field(default_factory=list)

    @classmethod
    def parse(cls, query: Mapping[str, Any] | None) -> GenericQuery:
        if query is None:
            return cls()
        if not isinstance(query, Mapping):
            raise QueryError(f"Query must be an object, got {type(query).__name__}")
        q = copy.deepcopy(dict(query))

        raw_where = q.get("where")
        if isinstance(raw_where, str) and raw_where.strip():
            try:
                raw_where = json.loads(raw_where)
            except json.JSONDecodeError as e:
                raise QueryError(f"'where' is not valid JSON: {e}", cause=e) from e
        if raw_where:
            if not isinstance(raw_where, Mapping):
                raise QueryError("'where' must be an object")
            source = dict(raw_where)
        else:
            source = q
        where = {
            key: value
            for key, value in source.items()
            if key not in RESERVED_KEYS and value != ""
        }

        offset = parse_int(q.get("offset"))
        if offset is None:
            offset = parse_int(q.get("skip"))

        return cls(
            where=where,
            select=split_terms(q.get("select")) or None,
            sort=split_terms(q.get("sort")),
            limit=parse_int(q.get("limit")),
            offset=offset,
            join=q.get("join"),
            fragments=Fragment.parse_all(q.get("sql")),
        )


__all__ = [
    "RESERVED_KEYS",
    "Mode",
    "Statement",
    "FragmentKind",
    "Fragment",
    "GenericQuery",
    "parse_int",
    "split_terms",
]
