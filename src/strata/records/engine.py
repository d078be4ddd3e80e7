"""
Record engine: CRUD orchestration over schemas, translator and backends.

Every public operation takes the entity name first and returns a
:class:`~strata.core.result.Result`.  Expected failures (validation,
missing fields, hook rejection, not found, backend errors) come back as
``Err(StrataError)``; callers never need ``try``/``except`` around the
engine.

Manifesto:
    The write path is a fixed sequence, and each stage can only end the
    request early.  Nothing touches the backend until the payload has
    been coerced, checked for required fields, validated and approved by
    the entity's pre-hook.

Architecture::

    create   key → createdAt → coerce → defaults → required → validate
             → before_create → INSERT → notify(create) → re-read
    read     key filter → [cache] → SELECT (+join keys) → post-process → joins
    update   exists → updatedAt → coerce → required → validate → drop pk
             → before_update → UPDATE → re-read → notify(update)
    destroy  read → before_destroy → DELETE → notify(destroy)
    query / find / find_one / count      [cache] → SELECT → post-process → joins

    Write state machine:
      validated → required-ok → pre-hook-approved → executed → post-hook-notified
          └────────────┴──────────────┴──────────────┴──→ Err({error, data, action})

Examples:
    >>> engine = RecordEngine(registry, sources)
    >>> result = await engine.create("users", {"email": "a@example.com"})
    >>> result.unwrap()["email"]
    'a@example.com'
    >>> (await engine.create("users", {})).to_dict()["error"]["missing"]
    ['email']

Guardrails:
    ❌ DON'T: Raise from an engine operation for an expected failure
    ✅ DO: Raise a StrataError inside; the operation wrapper returns Err

    ❌ DON'T: Share cached values with callers
    ✅ DO: Deep-copy on cache read and write

Tags:
    strata, engine, crud, orchestration, cache, hooks, result-pattern
"""

from __future__ import annotations

import asyncio
import copy
import functools
import inspect
import json
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from strata.core.backends import DataSource, DataSources
from strata.core.cache import CacheBackend
from strata.core.errors import (
    BackendError,
    HookRejectedError,
    MissingRequiredFieldsError,
    NotFoundError,
    PrimaryKeyMismatchError,
    StrataError,
    ValidationError,
)
from strata.core.hashing import fingerprint
from strata.core.logging import get_logger
from strata.core.result import Err, Ok, Result
from strata.core.settings import StrataSettings, get_settings
from strata.query.coercion import coerce, utc_timestamp
from strata.query.spec import GenericQuery, Statement, split_terms
from strata.query.translator import QueryTranslator, fill_primary_key
from strata.records.hooks import (
    DefaultHooks,
    HookEvent,
    Notification,
    Observers,
    RecordHooks,
    call_hook,
)
from strata.records.resolver import JoinContext, RelationResolver, normalize_join
from strata.schema.model import Schema, to_camel_case
from strata.schema.registry import SchemaRegistry
from strata.schema.validation import missing_required, validate

logger = get_logger(__name__)

T = TypeVar("T")

INDEX_FIELDS = ("id", "updatedAt", "status")


def _operation(action: str) -> Callable[..., Callable[..., Awaitable[Result[Any]]]]:
    """Wrap an engine coroutine so StrataError becomes ``Err``."""

    def decorator(fn: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Result[Any]]]:
        @functools.wraps(fn)
        async def wrapper(self: RecordEngine, entity: str, *args: Any, **kwargs: Any) -> Result[Any]:
            try:
                return Ok(await fn(self, entity, *args, **kwargs))
            except StrataError as e:
                return self._fail(e, entity, action)

        return wrapper

    return decorator


def fold_dotted(schema: Schema, row: dict[str, Any]) -> dict[str, Any]:
    """Fold ``a.b`` columns into ``row["a"]["b"]`` when ``a`` is a property."""
    for key in [k for k in row if "." in k]:
        head, *rest = key.split(".")
        if schema.property(head) is None or not rest:
            continue
        value = row.pop(key)
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                pass
        target = row.get(head)
        if isinstance(target, str):
            try:
                target = json.loads(target)
            except ValueError:
                target = None
        if not isinstance(target, dict):
            target = {}
        row[head] = target
        for part in rest[:-1]:
            target = target.setdefault(part, {})
        target[rest[-1]] = value
    return row


def post_process(schema: Schema, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Camelize raw snake_case keys and fold dotted JSON columns."""
    for row in rows:
        for key in [k for k in row if "_" in k and schema.property(k) is None]:
            row[to_camel_case(key)] = row.pop(key)
        fold_dotted(schema, row)
    return rows


def add_join_from_keys(schema: Schema, query: dict[str, Any]) -> None:
    """Make sure an explicit projection carries every linking column a join needs."""
    if not query.get("select") or not query.get("join"):
        return
    select = split_terms(query["select"])
    names, _ = normalize_join(query["join"], schema)
    for name in names:
        relation = schema.relations.get(name)
        field = relation.join.from_.split(".")[0] if relation is not None else name
        if field not in select:
            select.append(field)
    query["select"] = select


class RecordEngine:
    """CRUD operations for every entity in a registry."""

    def __init__(
        self,
        registry: SchemaRegistry,
        sources: DataSources,
        *,
        cache: CacheBackend | None = None,
        settings: StrataSettings | None = None,
        observers: Observers | None = None,
        created_at: str = "createdAt",
        updated_at: str = "updatedAt",
    ):
        self.registry = registry
        self.sources = sources
        self.cache = cache
        self.settings = settings or get_settings()
        self.observers = observers or Observers()
        self.created_at = created_at
        self.updated_at = updated_at
        self.resolver = RelationResolver(
            self,
            registry,
            max_depth=self.settings.max_join_depth,
            parallel=self.settings.parallel_fanout,
        )
        self._hooks: dict[str, RecordHooks] = {}
        self._translators: dict[str, QueryTranslator] = {}
        self._default_hooks = DefaultHooks()

    # ── Wiring ───────────────────────────────────────────────────

    def set_hooks(self, entity: str, hooks: RecordHooks) -> None:
        self._hooks[entity] = hooks

    def hooks_for(self, entity: str) -> RecordHooks:
        return self._hooks.get(entity, self._default_hooks)

    def subscribe(self, entity: str, event: HookEvent | str, handler: Callable[[Notification], Any]) -> Callable[[], None]:
        """Register a post-write observer (``entity="*"`` for all)."""
        return self.observers.subscribe(entity, event, handler)

    async def wait_idle(self) -> None:
        await self.observers.wait_idle()

    def _source(self, schema: Schema) -> tuple[DataSource, QueryTranslator]:
        source = self.sources.for_schema(schema)
        translator = self._translators.get(source.dialect.name)
        if translator is None:
            translator = QueryTranslator(source.dialect)
            self._translators[source.dialect.name] = translator
        return source, translator

    def translator_for(self, schema: Schema) -> QueryTranslator:
        return self._source(schema)[1]

    def _fail(self, error: StrataError, entity: str, action: str) -> Err[Any]:
        if error.context.entity is None:
            error.context.entity = entity
        if error.context.action is None:
            error.context.action = action
        logger.info(
            "operation_failed",
            entity=entity,
            action=action,
            error_type=type(error).__name__,
            message=error.message,
        )
        return Err(error)

    # ── Execution ────────────────────────────────────────────────

    async def _execute(self, schema: Schema, statement: Statement) -> list[dict[str, Any]]:
        source, _ = self._source(schema)
        timeout = self.settings.statement_timeout
        logger.debug(
            "statement",
            table=statement.table,
            mode=statement.mode.value,
            sql=statement.sql,
            params=list(statement.params),
            data_source=source.name,
        )
        try:
            call = source.backend.execute(statement)
            rows = await asyncio.wait_for(call, timeout) if timeout else await call
        except asyncio.TimeoutError as e:
            logger.warning("statement_timeout", table=statement.table, sql=statement.sql, timeout=timeout)
            raise BackendError(
                f"Statement timed out after {timeout}s",
                statement=statement,
                cause=e,
                entity=schema.table_name,
            ) from e
        except StrataError:
            raise
        except Exception as e:
            logger.warning("statement_failed", table=statement.table, sql=statement.sql, error=str(e))
            raise BackendError(
                f"Statement failed: {e}",
                statement=statement,
                cause=e,
                entity=schema.table_name,
            ) from e
        return list(rows or [])

    async def _select_rows(
        self,
        schema: Schema,
        query: Mapping[str, Any] | None,
        context: JoinContext | None = None,
    ) -> list[dict[str, Any]]:
        q = copy.deepcopy(dict(query or {}))
        add_join_from_keys(schema, q)
        parsed = GenericQuery.parse(q)
        statement = self.translator_for(schema).select(schema, parsed)
        rows = post_process(schema, await self._execute(schema, statement))
        if parsed.join and rows:
            await self.resolver.resolve(
                rows,
                parsed.join,
                schema,
                context or JoinContext.root(schema.table_name),
            )
        return rows

    async def fetch(self, entity: str, query: dict[str, Any], context: JoinContext) -> list[dict[str, Any]]:
        """Child-row source for the relation resolver."""
        return await self._select_rows(self.registry.get(entity), query, context)

    async def _cached(
        self,
        schema: Schema,
        operation: str,
        payload: Any,
        load: Callable[[], Awaitable[T]],
        use_cache: bool,
    ) -> T:
        if not use_cache or self.cache is None:
            return await load()
        key = fingerprint(schema.table_name, operation, payload)
        hit = self.cache.get(key)
        if inspect.isawaitable(hit):
            hit = await hit
        if hit is not None:
            logger.debug("cache_hit", key=key)
            return copy.deepcopy(hit)
        value = await load()
        if value is not None:
            stored = self.cache.set(key, copy.deepcopy(value), ttl_seconds=self.settings.cache_ttl_seconds)
            if inspect.isawaitable(stored):
                await stored
        return value

    # ── Payload helpers ──────────────────────────────────────────

    @staticmethod
    def key_filter(schema: Schema, record_id: Any) -> dict[str, Any]:
        """Filter addressing one record; composite ids are ``part1|part2``."""
        keys = schema.primary_keys
        if not schema.is_composite:
            return {keys[0]: record_id}
        parts = record_id.split("|") if isinstance(record_id, str) else list(record_id)
        if len(parts) != len(keys):
            raise PrimaryKeyMismatchError(len(keys), len(parts), entity=schema.table_name)
        return dict(zip(keys, parts))

    @staticmethod
    def identifier(schema: Schema, row: Mapping[str, Any]) -> Any:
        """Record id of a row (``part1|part2`` for composite keys)."""
        if not schema.is_composite:
            return row.get(schema.primary_keys[0])
        parts = [row.get(key) for key in schema.primary_keys]
        if any(part is None for part in parts):
            return None
        return "|".join(str(part) for part in parts)

    @staticmethod
    def convert(schema: Schema, data: Mapping[str, Any]) -> dict[str, Any]:
        """Coerce known fields; unknown keys are dropped."""
        params = {}
        for key, value in data.items():
            prop = schema.property(key)
            if prop is not None:
                params[key] = coerce(value, prop)
        return params

    @staticmethod
    def apply_defaults(schema: Schema, params: dict[str, Any]) -> None:
        for name, prop in schema.properties.items():
            if prop.default is None or params.get(name) is not None:
                continue
            if prop.default == "now":
                params[name] = utc_timestamp()
            else:
                params[name] = coerce(copy.deepcopy(prop.default), prop)

    def _check(self, schema: Schema, params: dict[str, Any], action: str, data: Any) -> None:
        missing = missing_required(schema, params, action)
        if missing:
            raise MissingRequiredFieldsError(missing, entity=schema.table_name, action=action, data=data)
        invalid = validate(schema, params)
        if invalid:
            raise ValidationError(invalid, entity=schema.table_name, action=action, data=data)

    def _notify(self, schema: Schema, event: HookEvent, record_id: Any, data: Any) -> None:
        self.observers.notify(
            Notification(entity=schema.table_name, event=event.value, record_id=record_id, data=data)
        )

    # ── Reads ────────────────────────────────────────────────────

    async def _read(
        self,
        schema: Schema,
        record_id: Any,
        query: Mapping[str, Any] | None = None,
        use_cache: bool = False,
    ) -> dict[str, Any]:
        where = self.key_filter(schema, record_id)
        q = copy.deepcopy(dict(query or {}))

        async def load() -> dict[str, Any]:
            obj: dict[str, Any] = {"where": where}
            if q.get("select"):
                obj["select"] = q["select"]
            if q.get("join"):
                obj["join"] = q["join"]
            rows = await self._select_rows(schema, obj)
            if not rows:
                raise NotFoundError(schema.table_name, record_id)
            return rows[0]

        return await self._cached(schema, "read", {"id": record_id, "query": q}, load, use_cache)

    async def _exists(self, schema: Schema, record_id: Any) -> bool:
        parsed = GenericQuery(
            where=self.key_filter(schema, record_id),
            select=schema.primary_keys,
            limit=1,
        )
        statement = self.translator_for(schema).select(schema, parsed)
        return len(await self._execute(schema, statement)) > 0

    async def _find_one(self, schema: Schema, query: Mapping[str, Any] | None) -> dict[str, Any] | None:
        q = copy.deepcopy(dict(query or {}))
        q["limit"] = 1
        rows = await self._select_rows(schema, q)
        return rows[0] if rows else None

    @_operation("read")
    async def read(
        self,
        entity: str,
        record_id: Any,
        query: Mapping[str, Any] | None = None,
        cache: bool = False,
    ) -> dict[str, Any]:
        """One record by id; ``Err(NotFoundError)`` when absent."""
        return await self._read(self.registry.get(entity), record_id, query, cache)

    @_operation("query")
    async def query(self, entity: str, query: Mapping[str, Any] | None = None, cache: bool = False) -> list[dict[str, Any]]:
        schema = self.registry.get(entity)
        return await self._cached(schema, "query", query, lambda: self._select_rows(schema, query), cache)

    @_operation("find")
    async def find(self, entity: str, query: Mapping[str, Any] | None = None, cache: bool = False) -> list[dict[str, Any]]:
        schema = self.registry.get(entity)
        return await self._cached(schema, "find", query, lambda: self._select_rows(schema, query), cache)

    @_operation("find_one")
    async def find_one(
        self,
        entity: str,
        query: Mapping[str, Any] | None = None,
        cache: bool = False,
    ) -> dict[str, Any] | None:
        """First matching record, or ``None``."""
        schema = self.registry.get(entity)
        return await self._cached(schema, "find_one", query, lambda: self._find_one(schema, query), cache)

    @_operation("count")
    async def count(self, entity: str, query: Mapping[str, Any] | None = None, cache: bool = False) -> int:
        """Number of matching rows (0 when nothing matches)."""
        schema = self.registry.get(entity)

        async def load() -> int:
            statement = self.translator_for(schema).count(schema, GenericQuery.parse(query))
            rows = await self._execute(schema, statement)
            if not rows or not rows[0]:
                return 0
            value = next(iter(rows[0].values()))
            return int(value) if value is not None else 0

        return await self._cached(schema, "count", query, load, cache)

    @_operation("exists")
    async def exists(self, entity: str, record_id: Any) -> bool:
        return await self._exists(self.registry.get(entity), record_id)

    @_operation("index")
    async def index(self, entity: str, query: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Light listing: requested known fields, else ``id/updatedAt/status``; no joins."""
        schema = self.registry.get(entity)
        q = copy.deepcopy(dict(query or {}))
        select = [name for name in split_terms(q.get("select")) if name in schema.properties]
        if not select:
            select = [name for name in INDEX_FIELDS if name in schema.properties]
        if select:
            q["select"] = select
        else:
            q.pop("select", None)
        q.pop("join", None)
        return await self._select_rows(schema, q)

    @_operation("get_key")
    async def get_key(self, entity: str, record_id: Any, key: str) -> Any:
        """Value of one column of one record."""
        schema = self.registry.get(entity)
        if schema.property(key) is None:
            raise ValidationError([key], f"Unknown field: {key}", entity=entity, action="get_key")
        rows = await self._select_rows(schema, {"where": self.key_filter(schema, record_id), "select": [key]})
        if not rows:
            raise NotFoundError(entity, record_id)
        return rows[0].get(key)

    # ── Writes ───────────────────────────────────────────────────

    async def _create(self, schema: Schema, data: Mapping[str, Any]) -> dict[str, Any]:
        original = copy.deepcopy(dict(data or {}))
        payload = copy.deepcopy(original)
        fill_primary_key(schema, payload)
        if self.created_at in schema.properties:
            payload[self.created_at] = utc_timestamp()

        params = self.convert(schema, payload)
        self.apply_defaults(schema, params)
        self._check(schema, params, "create", original)

        replaced = await call_hook(self.hooks_for(schema.table_name).before_create, params)
        if isinstance(replaced, Mapping):
            params = dict(replaced)

        _, translator = self._source(schema)
        await self._execute(schema, translator.insert(schema, params))

        record_id = self.identifier(schema, params)
        self._notify(schema, HookEvent.CREATE, record_id, params)
        if record_id is None:
            return params
        return await self._read(schema, record_id)

    async def _update(
        self,
        schema: Schema,
        record_id: Any,
        data: Mapping[str, Any],
        fetch: bool = False,
    ) -> dict[str, Any]:
        where = self.key_filter(schema, record_id)
        if not await self._exists(schema, record_id):
            raise NotFoundError(schema.table_name, record_id, action="update")

        original = copy.deepcopy(dict(data or {}))
        payload = copy.deepcopy(original)
        if self.updated_at in schema.properties:
            payload[self.updated_at] = utc_timestamp()

        params = self.convert(schema, payload)
        self._check(schema, params, "update", original)
        for key in schema.primary_keys:
            params.pop(key, None)

        proceed = await call_hook(self.hooks_for(schema.table_name).before_update, record_id, params)
        if not proceed:
            raise HookRejectedError(
                "Update blocked by before_update",
                entity=schema.table_name,
                action="update",
                data=original,
            )

        statement = self.translator_for(schema).update(schema, GenericQuery(where=where), params)
        await self._execute(schema, statement)

        record = await self._read(schema, record_id)
        self._notify(schema, HookEvent.UPDATE, record_id, record)
        if fetch:
            return record
        return {"id": record_id, "action": "update", "success": True}

    @_operation("create")
    async def create(self, entity: str, data: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a record and return it as stored."""
        return await self._create(self.registry.get(entity), data)

    @_operation("update")
    async def update(
        self,
        entity: str,
        record_id: Any,
        data: Mapping[str, Any],
        fetch: bool = False,
    ) -> dict[str, Any]:
        """Update one record; returns the record when ``fetch`` else a summary."""
        return await self._update(self.registry.get(entity), record_id, data, fetch)

    @_operation("update_where")
    async def update_where(self, entity: str, query: Mapping[str, Any], data: Mapping[str, Any]) -> dict[str, Any]:
        schema = self.registry.get(entity)
        original = copy.deepcopy(dict(data or {}))
        payload = copy.deepcopy(original)
        if self.updated_at in schema.properties:
            payload[self.updated_at] = utc_timestamp()

        params = self.convert(schema, payload)
        self._check(schema, params, "update_where", original)
        for key in schema.primary_keys:
            params.pop(key, None)

        statement = self.translator_for(schema).update(schema, GenericQuery.parse(query), params)
        await self._execute(schema, statement)
        self._notify(schema, HookEvent.UPDATE_WHERE, None, {"query": copy.deepcopy(dict(query)), "data": params})
        return {"action": "update_where", "success": True}

    @_operation("upsert")
    async def upsert(self, entity: str, query: Mapping[str, Any], data: Mapping[str, Any]) -> dict[str, Any]:
        """Update the first record matching ``query``, or create one."""
        schema = self.registry.get(entity)
        found = await self._find_one(schema, query)
        if found is not None:
            return await self._update(schema, self.identifier(schema, found), data, fetch=True)
        return await self._create(schema, data)

    @_operation("set_key")
    async def set_key(self, entity: str, record_id: Any, key: str, value: Any) -> dict[str, Any]:
        """Write one column of one record."""
        schema = self.registry.get(entity)
        if schema.property(key) is None:
            raise ValidationError([key], f"Unknown field: {key}", entity=entity, action="set_key")
        if not await self._exists(schema, record_id):
            raise NotFoundError(entity, record_id)
        statement = self.translator_for(schema).update(
            schema,
            GenericQuery(where=self.key_filter(schema, record_id)),
            {key: value},
        )
        await self._execute(schema, statement)
        return {"id": record_id, "action": "set_key", "success": True}

    @_operation("destroy")
    async def destroy(self, entity: str, record_id: Any) -> dict[str, Any]:
        """Delete one record after its pre-hook approves."""
        schema = self.registry.get(entity)
        try:
            record = await self._read(schema, record_id)
        except NotFoundError:
            raise NotFoundError(entity, record_id, action="destroy") from None

        proceed = await call_hook(self.hooks_for(entity).before_destroy, record_id, record)
        if proceed is False:
            raise HookRejectedError(
                "Blocked by before_destroy",
                entity=entity,
                action="destroy",
                data=record,
            )

        statement = self.translator_for(schema).delete(schema, GenericQuery(where=self.key_filter(schema, record_id)))
        await self._execute(schema, statement)
        self._notify(schema, HookEvent.DESTROY, record_id, record)
        return {"id": record_id, "action": "destroy", "success": True}

    @_operation("destroy_where")
    async def destroy_where(self, entity: str, query: Mapping[str, Any]) -> dict[str, Any]:
        schema = self.registry.get(entity)
        statement = self.translator_for(schema).delete(schema, GenericQuery.parse(query))
        await self._execute(schema, statement)
        self._notify(schema, HookEvent.DESTROY_WHERE, None, {"query": copy.deepcopy(dict(query))})
        return {"action": "destroy_where", "success": True}


__all__ = [
    "RecordEngine",
    "add_join_from_keys",
    "fold_dotted",
    "post_process",
]
