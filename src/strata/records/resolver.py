"""
Relation resolution by fanout queries.

Given rows of one entity and a join description, ``RelationResolver``
issues one extra query per requested relation (two when the relation goes
through a pivot entity) and stitches the child rows back onto their
parents in memory.  Nested joins recurse through the same engine path, so
every level gets translation, post-processing and its own joins.

Manifesto:
    SQL joins multiply rows and make nested shapes painful to rebuild.
    Fanout keeps each query simple, lets each entity live in a different
    data source, and bounds the work to one query per relation per level.

    - **Isolated failures:** A failing key is logged and skipped
    - **Bounded recursion:** Full joins never revisit an entity on the
      current path; depth beyond ``max_join_depth`` is an error
    - **Concurrent keys:** Independent keys run under ``asyncio.gather``

Architecture::

    resolve(rows, join, schema, context)
        │
        ├── normalize_join("*" | "a,b" | [..] | {name: opts})
        │
        └── per key (concurrently)
              Relation ─┬─ linking values from join.from (+ reverse index)
                        ├─ [through] pivot query → new linking values
                        ├─ child query {join.to: {in: values}} + where/select/...
                        ├─ merge (HasOne assign / HasMany append, deduped)
                        └─ strip unrequested child columns
              ForeignKey ── target query {to: {in: values}}
                            → row["foreignKeys"][key]

Example:
    Parents ``[{id: 1}, {id: 2}]``, pivot rows ``[{a: 1, b: 10}, {a: 2, b: 10}]``
    and child ``[{id: 10, name: "X"}]`` give both parents
    ``tags: [{id: 10, name: "X"}]`` for a HasMany relation joined
    ``id -> id`` through the pivot's ``a -> b``.

Limitations:
    ``{{field}}`` templates in a relation's ``where`` are filled from the
    first parent row only, for the whole batch.

Tags:
    strata, relations, fanout, join, graph, asyncio
"""

from __future__ import annotations

import asyncio
import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from strata.core.errors import RelationCycleExceededError, StrataError
from strata.core.hashing import canonical_json
from strata.core.logging import get_logger
from strata.query.spec import parse_int, split_terms
from strata.schema.model import ForeignKey, Relation, Schema
from strata.schema.registry import SchemaRegistry

logger = get_logger(__name__)


@dataclass(frozen=True)
class JoinContext:
    """Entities visited on the way to the rows being resolved."""

    path: tuple[str, ...] = ()

    @property
    def depth(self) -> int:
        return max(len(self.path) - 1, 0)

    def child(self, entity: str) -> JoinContext:
        return JoinContext(path=(*self.path, entity))

    @classmethod
    def root(cls, entity: str) -> JoinContext:
        return cls(path=(entity,))


class RowSource(Protocol):
    """Where child rows come from (the record engine)."""

    async def fetch(
        self,
        entity: str,
        query: dict[str, Any],
        context: JoinContext,
    ) -> list[dict[str, Any]]:
        """Run a query for ``entity``; raises StrataError on failure."""
        ...


def get_path(row: Mapping[str, Any], path: str) -> Any:
    """Value at a dot path, parsing JSON text columns on the way."""
    if "." not in path:
        return row.get(path)
    current: Any = row
    for part in path.split("."):
        if isinstance(current, str):
            try:
                current = json.loads(current)
            except ValueError:
                return None
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _key(value: Any) -> Any:
    """Hashable form of a linking value."""
    if isinstance(value, (dict, list)):
        return canonical_json(value)
    return value


def _flatten(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [item for item in value if item is not None]
    return [value]


def linking_values(rows: list[dict[str, Any]], path: str) -> tuple[list[Any], dict[Any, list[int]]]:
    """Distinct linking values and a reverse index value -> parent positions."""
    values: list[Any] = []
    index: dict[Any, list[int]] = {}
    for position, row in enumerate(rows):
        for value in _flatten(get_path(row, path)):
            key = _key(value)
            positions = index.setdefault(key, [])
            if not positions:
                values.append(value)
            if position not in positions:
                positions.append(position)
    return values, index


def normalize_join(join: Any, schema: Schema) -> tuple[dict[str, dict[str, Any]], bool]:
    """Join spec -> ``{name: options}`` restricted to declared names, plus full-join flag."""
    declared = [*schema.relations, *schema.foreign_keys]
    if not join:
        return {}, False
    if join == "*":
        return {name: {} for name in declared}, True

    normalized: dict[str, dict[str, Any]] = {}
    if isinstance(join, str):
        for name in split_terms(join):
            normalized[name] = {}
    elif isinstance(join, (list, tuple)):
        for name in join:
            if isinstance(name, str):
                normalized[name] = {}
    elif isinstance(join, Mapping):
        for name, options in join.items():
            if options is False:
                continue
            normalized[name] = copy.deepcopy(dict(options)) if isinstance(options, Mapping) else {}
    return {name: opts for name, opts in normalized.items() if name in declared}, False


class RelationResolver:
    """Hydrates relations and foreign keys onto result rows."""

    def __init__(
        self,
        source: RowSource,
        registry: SchemaRegistry,
        *,
        max_depth: int = 8,
        parallel: bool = True,
    ):
        self.source = source
        self.registry = registry
        self.max_depth = max_depth
        self.parallel = parallel

    async def resolve(
        self,
        rows: dict[str, Any] | list[dict[str, Any]],
        join: Any,
        schema: Schema,
        context: JoinContext | None = None,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Attach the requested relations to ``rows`` (a row or a list), in place."""
        single = isinstance(rows, Mapping)
        batch = [rows] if single else rows
        context = context or JoinContext.root(schema.table_name)

        if context.depth > self.max_depth:
            raise RelationCycleExceededError(list(context.path), self.max_depth)

        keys, full_join = normalize_join(join, schema)
        if not batch or not keys:
            return rows

        names = []
        for name in keys:
            relation = schema.relations.get(name)
            if relation is not None and full_join and relation.model_class in context.path:
                continue
            names.append(name)

        if self.parallel:
            outcomes = await asyncio.gather(
                *[self._resolve_key(batch, name, keys[name], schema, full_join, context) for name in names],
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
        else:
            for name in names:
                await self._resolve_key(batch, name, keys[name], schema, full_join, context)
        return rows

    async def _resolve_key(
        self,
        rows: list[dict[str, Any]],
        name: str,
        options: dict[str, Any],
        schema: Schema,
        full_join: bool,
        context: JoinContext,
    ) -> None:
        try:
            relation = schema.relations.get(name)
            if relation is not None:
                await self._relation(rows, name, relation, options, full_join, context)
            else:
                await self._foreign_key(rows, name, schema.foreign_keys[name], context)
        except RelationCycleExceededError:
            raise
        except StrataError as e:
            logger.warning(
                "relation_skipped",
                entity=schema.table_name,
                key=name,
                error=e.to_dict(),
            )

    # ── Relations ────────────────────────────────────────────────

    async def _relation(
        self,
        rows: list[dict[str, Any]],
        name: str,
        relation: Relation,
        options: dict[str, Any],
        full_join: bool,
        context: JoinContext,
    ) -> None:
        join_from = relation.join.from_
        join_to = relation.join.to
        through = relation.join.through

        values, index = linking_values(rows, join_from)
        if not values:
            return

        pivot_rows: list[dict[str, Any]] | None = None
        if through is not None:
            where = copy.deepcopy(through.where or {})
            where[through.from_] = {"in": values}
            pivot_query: dict[str, Any] = {"where": where, "select": [through.from_, through.to]}
            if through.sort:
                pivot_query["sort"] = through.sort
            if through.sql:
                pivot_query["sql"] = copy.deepcopy(through.sql)
            pivot_rows = await self.source.fetch(through.model_class, pivot_query, context.child(through.model_class))
            if not pivot_rows:
                return
            values = []
            seen = set()
            for pivot in pivot_rows:
                for value in _flatten(pivot.get(through.to)):
                    if _key(value) not in seen:
                        seen.add(_key(value))
                        values.append(value)
            if not values:
                return

        query, requested = self._child_query(rows, relation, options, values, full_join)
        children = await self.source.fetch(relation.model_class, query, context.child(relation.model_class))
        if not children:
            return

        if pivot_rows is None:
            self._merge_direct(rows, name, relation, children, index)
        else:
            self._merge_through(rows, name, relation, children, pivot_rows, index)

        if requested:
            self._strip(rows, name, relation, requested)

    def _child_query(
        self,
        rows: list[dict[str, Any]],
        relation: Relation,
        options: dict[str, Any],
        values: list[Any],
        full_join: bool,
    ) -> tuple[dict[str, Any], list[str]]:
        where: dict[str, Any] = copy.deepcopy(options.get("where") or {})
        for field, declared in (relation.where or {}).items():
            expression = copy.deepcopy(where.get(field) or declared)
            if not isinstance(expression, dict):
                expression = {"eq": expression}
            for op, operand in expression.items():
                if isinstance(operand, str) and operand.startswith("{{") and operand.endswith("}}"):
                    # first parent row only
                    replacement = get_path(rows[0], operand[2:-2].strip())
                    if replacement is not None:
                        expression[op] = replacement
            where[field] = expression
        where[relation.join.to] = {"in": values}

        query: dict[str, Any] = {"where": where}
        requested = split_terms(options.get("select")) or split_terms(relation.select)
        if requested:
            select = list(requested)
            if relation.join.to not in select:
                select.append(relation.join.to)
            query["select"] = select

        limit = parse_int(options.get("limit")) or relation.limit
        if limit is None and not relation.is_many:
            limit = len(values)
        if limit:
            query["limit"] = limit
        offset = parse_int(options.get("offset"))
        if offset is None:
            offset = relation.offset
        if offset:
            query["offset"] = offset
        sort = options.get("sort") or relation.sort
        if sort:
            query["sort"] = sort
        if relation.sql:
            query["sql"] = copy.deepcopy(relation.sql)

        nested = "*" if full_join else options.get("join")
        if nested:
            query["join"] = nested
        return query, requested

    @staticmethod
    def _attach(row: dict[str, Any], name: str, child: dict[str, Any], many: bool, dedupe: Any) -> None:
        if not many:
            row[name] = child
            return
        attached = row.setdefault(name, [])
        if not any(dedupe(existing) for existing in attached):
            attached.append(child)

    def _merge_direct(
        self,
        rows: list[dict[str, Any]],
        name: str,
        relation: Relation,
        children: list[dict[str, Any]],
        index: dict[Any, list[int]],
    ) -> None:
        for child in children:
            for link in _flatten(child.get(relation.join.to)):
                for position in index.get(_key(link), []):
                    self._attach(
                        rows[position],
                        name,
                        child,
                        relation.is_many,
                        lambda existing, child=child: existing is child,
                    )

    def _merge_through(
        self,
        rows: list[dict[str, Any]],
        name: str,
        relation: Relation,
        children: list[dict[str, Any]],
        pivot_rows: list[dict[str, Any]],
        index: dict[Any, list[int]],
    ) -> None:
        through = relation.join.through
        join_to = relation.join.to
        for child in children:
            link = child.get(join_to)
            for pivot in pivot_rows:
                targets = pivot.get(through.to)
                if isinstance(targets, list):
                    if link not in targets:
                        continue
                elif targets != link:
                    continue

                origins = pivot.get(through.from_)
                positions: list[int] = []
                if isinstance(origins, list):
                    for origin in origins:
                        if _key(origin) in index:
                            positions = index[_key(origin)]
                            break
                else:
                    positions = index.get(_key(origins), [])

                for position in positions:
                    self._attach(
                        rows[position],
                        name,
                        child,
                        relation.is_many,
                        lambda existing, link=link: existing.get(join_to) == link,
                    )

    def _strip(self, rows: list[dict[str, Any]], name: str, relation: Relation, requested: list[str]) -> None:
        target = self.registry.find(relation.model_class)
        columns = set(target.properties) if target else {relation.join.to}
        drop = (columns | {relation.join.to}) - set(requested)
        for row in rows:
            value = row.get(name)
            nested = value if isinstance(value, list) else [value] if isinstance(value, dict) else []
            for child in nested:
                for key in drop:
                    child.pop(key, None)

    # ── Foreign keys ─────────────────────────────────────────────

    async def _foreign_key(
        self,
        rows: list[dict[str, Any]],
        name: str,
        foreign_key: ForeignKey,
        context: JoinContext,
    ) -> None:
        values, _ = linking_values(rows, name)
        if not values:
            return

        target = self.registry.get(foreign_key.model_class)
        to = foreign_key.to or target.primary_keys[0]
        query: dict[str, Any] = {"where": {to: {"in": values}}}
        select = split_terms(foreign_key.select)
        if select:
            query["select"] = select if to in select else [*select, to]
        if foreign_key.join:
            query["join"] = copy.deepcopy(foreign_key.join)

        matches = await self.source.fetch(foreign_key.model_class, query, context.child(foreign_key.model_class))
        by_value = {_key(item.get(to)): item for item in matches}
        for row in rows:
            value = row.get(name)
            if isinstance(value, list):
                found = [by_value[_key(v)] for v in value if _key(v) in by_value]
                if found:
                    row.setdefault("foreignKeys", {})[name] = found
            elif value is not None and _key(value) in by_value:
                row.setdefault("foreignKeys", {})[name] = by_value[_key(value)]


__all__ = [
    "JoinContext",
    "RowSource",
    "RelationResolver",
    "get_path",
    "linking_values",
    "normalize_join",
]
