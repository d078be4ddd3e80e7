"""
Generic query -> dialect SQL translation.

``QueryTranslator`` turns a backend-agnostic query description into a
:class:`~strata.query.spec.Statement` for one of five modes.  Schema
metadata drives everything: logical property names become quoted,
table-qualified column names, filter values are coerced to the column
type, and keys the schema does not know are dropped.

Manifesto:
    - **Columns, not names:** Predicates always reference ``table.column``
    - **Tolerant:** Unknown filter/select keys vanish; bad numbers are ignored
    - **Bound values:** Every value is a parameter, placed in text order
    - **Escape hatch:** Raw fragments are injected verbatim, untranslated

Architecture::

    translate(schema, query, mode, data)
        │
        ├── select  SELECT <projection> FROM t [JOIN raw]
        │           [WHERE preds AND (raw)] [GROUP BY raw] [HAVING raw]
        │           [ORDER BY ...] [pagination per dialect]
        ├── count   SELECT COUNT(t.pk) AS count FROM t [JOIN raw] [WHERE ...]
        ├── insert  INSERT INTO t (cols) VALUES (...)
        ├── update  UPDATE t SET col = ? ... WHERE preds
        └── delete  DELETE FROM t WHERE preds

Operators::

    gt gte lt lte  (> >= < <=)     comparison
    in / nin                        IN / NOT IN over coerce_list
    eq (== =)                       =, None → IS NULL, list → IN
    ne (! != <>)                    <>, None → IS NOT NULL, list → NOT IN
    startsWith endsWith contains    LIKE 'v%' / '%v' / '%v%'
    or                              OR of sub-filter maps
    inside near radius poly geohash box   accepted, no predicate
    anything else                   equality

Examples:
    >>> from strata.core.dialect import get_dialect
    >>> from strata.schema.model import Schema
    >>> users = Schema.model_validate({
    ...     "tableName": "users",
    ...     "properties": {"id": {"type": "integer"}, "firstName": {}},
    ... })
    >>> stmt = QueryTranslator(get_dialect("sqlite")).translate(
    ...     users, {"firstName": {"startsWith": "Al"}}, "select")
    >>> stmt.sql
    'SELECT "users"."id" AS "id", "users"."first_name" AS "firstName" FROM "users" WHERE "users"."first_name" LIKE ?'
    >>> stmt.params
    ('Al%',)

Guardrails:
    ❌ DON'T: Interpolate values into SQL text
    ✅ DO: Bind every value through ``dialect.placeholder``

    ❌ DON'T: Run update/delete without a filter
    ✅ DO: Pass a query; an empty predicate set raises ``QueryError``

Tags:
    strata, query, translator, sql, dialect, operators
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import Mapping
from typing import Any

from strata.core.dialect import Dialect
from strata.core.errors import MissingRequiredFieldsError, QueryError
from strata.query.coercion import coerce, coerce_list
from strata.query.spec import Fragment, FragmentKind, GenericQuery, Mode, Statement
from strata.schema.model import PropertyDef, Schema

NEVER = "1 = 0"

GEO_OPERATORS = frozenset({"inside", "near", "radius", "poly", "geohash", "box"})

_COMPARISONS = {
    "gt": ">",
    ">": ">",
    "gte": ">=",
    ">=": ">=",
    "lt": "<",
    "<": "<",
    "lte": "<=",
    "<=": "<=",
}
_EQ = frozenset({"eq", "==", "="})
_NE = frozenset({"ne", "!", "!=", "<>"})
_LIKE = {
    "startsWith": "{}%",
    "endsWith": "%{}",
    "contains": "%{}%",
}


class _Builder:
    """Predicate collector; sub-builders share the parameter list."""

    def __init__(self, dialect: Dialect, params: list[Any]):
        self.dialect = dialect
        self.params = params
        self.predicates: list[str] = []

    def bind(self, value: Any) -> str:
        placeholder = self.dialect.placeholder(len(self.params))
        self.params.append(value)
        return placeholder

    def bind_all(self, values: list[Any]) -> str:
        return ", ".join(self.bind(value) for value in values)

    def sub(self) -> _Builder:
        return _Builder(self.dialect, self.params)


class QueryTranslator:
    """Builds statements for one dialect."""

    def __init__(self, dialect: Dialect):
        self.dialect = dialect

    # ── Entry point ──────────────────────────────────────────────

    def translate(
        self,
        schema: Schema,
        query: Mapping[str, Any] | GenericQuery | None,
        mode: Mode | str = Mode.SELECT,
        data: Mapping[str, Any] | None = None,
    ) -> Statement:
        """Build a statement for ``mode``; values are never mutated in place."""
        mode = Mode(mode)
        if mode is Mode.INSERT:
            return self.insert(schema, data or {})
        parsed = query if isinstance(query, GenericQuery) else GenericQuery.parse(query)
        if mode is Mode.SELECT:
            return self.select(schema, parsed)
        if mode is Mode.COUNT:
            return self.count(schema, parsed)
        if mode is Mode.UPDATE:
            return self.update(schema, parsed, data or {})
        return self.delete(schema, parsed)

    # ── Select / count ───────────────────────────────────────────

    def projection(self, schema: Schema, select: list[str] | None) -> list[str]:
        """Select-list items; unknown names dropped, ``x as y`` passed through."""
        d = self.dialect
        table = schema.table_name
        names = select if select else list(schema.properties)
        items: list[str] = []
        for name in names:
            prop = schema.property(name)
            if prop is not None:
                items.append(f"{d.column(table, prop.column_name)} AS {d.quote(name)}")
            elif select and " as " in name.lower():
                items.append(name)
        if not items and select:
            return self.projection(schema, None)
        return items

    def order_by(self, schema: Schema, terms: list[str]) -> list[str]:
        items = []
        for term in terms:
            parts = term.split()
            prop = schema.property(parts[0])
            if prop is None:
                continue
            direction = "DESC" if len(parts) > 1 and parts[1].lower() == "desc" else "ASC"
            items.append(f"{self.dialect.column(schema.table_name, prop.column_name)} {direction}")
        return items

    def select(self, schema: Schema, query: GenericQuery) -> Statement:
        d = self.dialect
        params: list[Any] = []
        projection = self.projection(schema, query.select) or ["*"]
        sql = f"SELECT {', '.join(projection)} FROM {d.quote(schema.table_name)}"
        sql += self._joins(query.fragments)
        sql += self._where_clause(schema, query, params)
        sql += self._grouping(query.fragments)

        order = self.order_by(schema, query.sort)
        if order:
            sql += " ORDER BY " + ", ".join(order)
        pagination = d.paginate(query.limit, query.offset, ordered=bool(order))
        if pagination:
            sql += " " + pagination
        return Statement(sql=sql, params=tuple(params), mode=Mode.SELECT, table=schema.table_name)

    def count(self, schema: Schema, query: GenericQuery) -> Statement:
        d = self.dialect
        params: list[Any] = []
        if schema.is_composite:
            target = "*"
        else:
            pk = schema.primary_keys[0]
            column = schema.column_name(pk) or pk
            target = d.column(schema.table_name, column)
        sql = f"SELECT COUNT({target}) AS {d.quote('count')} FROM {d.quote(schema.table_name)}"
        sql += self._joins(query.fragments)
        sql += self._where_clause(schema, query, params)
        return Statement(sql=sql, params=tuple(params), mode=Mode.COUNT, table=schema.table_name)

    # ── Writes ───────────────────────────────────────────────────

    def insert(self, schema: Schema, data: Mapping[str, Any]) -> Statement:
        """INSERT for known fields; raises ``MissingRequiredFieldsError`` first."""
        d = self.dialect
        payload = copy.deepcopy(dict(data))
        fill_primary_key(schema, payload)

        values: dict[str, Any] = {}
        for key, value in payload.items():
            prop = schema.property(key)
            if prop is not None:
                values[key] = coerce(value, prop)

        missing = [name for name in schema.required if values.get(name) is None]
        if missing:
            raise MissingRequiredFieldsError(
                missing, entity=schema.table_name, action="create", data=dict(data)
            )

        table = d.quote(schema.table_name)
        if not values:
            return Statement(
                sql=f"INSERT INTO {table} DEFAULT VALUES",
                mode=Mode.INSERT,
                table=schema.table_name,
            )
        builder = _Builder(d, [])
        columns = ", ".join(d.quote(schema.column_name(key) or key) for key in values)
        placeholders = builder.bind_all(list(values.values()))
        return Statement(
            sql=f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            params=tuple(builder.params),
            mode=Mode.INSERT,
            table=schema.table_name,
        )

    def update(self, schema: Schema, query: GenericQuery, data: Mapping[str, Any]) -> Statement:
        d = self.dialect
        builder = _Builder(d, [])
        assignments = []
        for key, value in data.items():
            prop = schema.property(key)
            if prop is None:
                continue
            assignments.append(f"{d.quote(prop.column_name)} = {builder.bind(coerce(value, prop))}")
        if not assignments:
            raise QueryError("Nothing to update", entity=schema.table_name, action="update")

        # SET placeholders are allocated before WHERE placeholders
        where = self._require_filter(schema, query, builder.params, "update")
        return Statement(
            sql=f"UPDATE {d.quote(schema.table_name)} SET {', '.join(assignments)}{where}",
            params=tuple(builder.params),
            mode=Mode.UPDATE,
            table=schema.table_name,
        )

    def delete(self, schema: Schema, query: GenericQuery) -> Statement:
        params: list[Any] = []
        where = self._require_filter(schema, query, params, "delete")
        return Statement(
            sql=f"DELETE FROM {self.dialect.quote(schema.table_name)}{where}",
            params=tuple(params),
            mode=Mode.DELETE,
            table=schema.table_name,
        )

    # ── Filters ──────────────────────────────────────────────────

    def compile_filter(self, schema: Schema, where: Mapping[str, Any], params: list[Any]) -> list[str]:
        """Predicates for a filter map, appending bound values to ``params``."""
        builder = _Builder(self.dialect, params)
        for key, value in where.items():
            self._compile_field(builder, schema, key, value)
        return builder.predicates

    def _compile_field(self, builder: _Builder, schema: Schema, key: str, value: Any) -> None:
        if key == "or":
            self._compile_or(builder, schema, None, value)
            return
        prop = schema.property(key)
        if prop is None:
            return

        if isinstance(value, Mapping):
            if not value:
                return
            op, operand = next(iter(value.items()))
        else:
            op, operand = "eq", value

        column = self.dialect.column(schema.table_name, prop.column_name)
        predicate = self._predicate(builder, schema, key, prop, column, op, operand)
        if predicate:
            builder.predicates.append(predicate)

    def _predicate(
        self,
        builder: _Builder,
        schema: Schema,
        key: str,
        prop: PropertyDef,
        column: str,
        op: str,
        operand: Any,
    ) -> str | None:
        if op in GEO_OPERATORS:
            return None
        if op in _COMPARISONS:
            value = coerce(operand, prop)
            if value is None:
                return NEVER
            return f"{column} {_COMPARISONS[op]} {builder.bind(value)}"
        if op == "in":
            values = coerce_list(operand, prop)
            return f"{column} IN ({builder.bind_all(values)})" if values else NEVER
        if op == "nin":
            values = coerce_list(operand, prop)
            return f"{column} NOT IN ({builder.bind_all(values)})" if values else None
        if op in _LIKE:
            if operand is None or isinstance(operand, (Mapping, list)):
                return NEVER
            return f"{column} {self.dialect.like()} {builder.bind(_LIKE[op].format(operand))}"
        if op == "or":
            self._compile_or(builder, schema, key, operand)
            return None
        return self._equality(builder, prop, column, operand, negate=op in _NE)

    def _equality(
        self,
        builder: _Builder,
        prop: PropertyDef,
        column: str,
        operand: Any,
        *,
        negate: bool,
    ) -> str | None:
        if operand is None:
            return f"{column} IS NOT NULL" if negate else f"{column} IS NULL"
        if isinstance(operand, (list, tuple)):
            values = coerce_list(list(operand), prop)
            if not values:
                return None if negate else NEVER
            keyword = "NOT IN" if negate else "IN"
            return f"{column} {keyword} ({builder.bind_all(values)})"
        value = coerce(operand, prop)
        if value is None:
            return NEVER
        return f"{column} {'<>' if negate else '='} {builder.bind(value)}"

    def _compile_or(self, builder: _Builder, schema: Schema, key: str | None, items: Any) -> None:
        if not isinstance(items, (list, tuple)):
            raise QueryError("'or' expects a list of filters", entity=schema.table_name)
        groups = []
        for item in items:
            if not isinstance(item, Mapping):
                if key is None:
                    raise QueryError("top-level 'or' items must be objects", entity=schema.table_name)
                item = {key: item}
            sub = builder.sub()
            for sub_key, sub_value in item.items():
                self._compile_field(sub, schema, sub_key, sub_value)
            if not sub.predicates:
                continue
            if len(sub.predicates) == 1:
                groups.append(sub.predicates[0])
            else:
                groups.append("(" + " AND ".join(sub.predicates) + ")")
        if groups:
            builder.predicates.append("(" + " OR ".join(groups) + ")")

    # ── Clause helpers ───────────────────────────────────────────

    def _where_clause(self, schema: Schema, query: GenericQuery, params: list[Any]) -> str:
        predicates = self.compile_filter(schema, query.where, params)
        for fragment in query.fragments:
            if fragment.kind is FragmentKind.WHERE:
                predicates.append(f"({fragment.text})")
            elif fragment.kind is FragmentKind.JOIN and fragment.where:
                predicates.append(f"({fragment.where})")
        return " WHERE " + " AND ".join(predicates) if predicates else ""

    def _require_filter(self, schema: Schema, query: GenericQuery, params: list[Any], action: str) -> str:
        where = self._where_clause(schema, query, params)
        if not where:
            raise QueryError(
                f"Refusing to {action} {schema.table_name} without a filter",
                entity=schema.table_name,
                action=action,
            )
        return where

    @staticmethod
    def _joins(fragments: list[Fragment]) -> str:
        return "".join(f" {f.text}" for f in fragments if f.kind is FragmentKind.JOIN)

    @staticmethod
    def _grouping(fragments: list[Fragment]) -> str:
        sql = ""
        groups = [f.text for f in fragments if f.kind is FragmentKind.GROUP]
        if groups:
            sql += " GROUP BY " + ", ".join(groups)
        havings = [f"({f.text})" for f in fragments if f.kind is FragmentKind.HAVING]
        if havings:
            sql += " HAVING " + " AND ".join(havings)
        return sql


def fill_primary_key(schema: Schema, data: dict[str, Any]) -> Any:
    """Generate a UUID4 for a missing string/uuid primary key; returns the key value."""
    if schema.is_composite:
        return None
    pk = schema.primary_keys[0]
    prop = schema.property(pk)
    if (
        prop is not None
        and data.get(pk) in (None, "")
        and prop.type == "string"
        and prop.format == "uuid"
    ):
        data[pk] = str(uuid.uuid4())
    return data.get(pk)


__all__ = [
    "NEVER",
    "GEO_OPERATORS",
    "QueryTranslator",
    "fill_primary_key",
]
