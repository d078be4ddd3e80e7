"""
Read caches for the record engine.

When a caller passes ``cache=True``, ``read``/``query``/``find``/``find_one``/
``count`` look up their result under ``fingerprint(table, operation, payload)``,
e.g. ``users::query::3fa9c1d2e4b5a6f7``, before touching the backend.
The engine only needs ``get`` and ``set``; any object with those two
methods can be passed as ``cache``, and either may be a coroutine
function (the engine awaits whatever is awaitable).

Architecture:
    ::

        CacheBackend (Protocol)   get / set / delete / exists / clear
        ├── InMemoryCache         one process, LRU bound, monotonic TTL (sync)
        └── RedisCache            shared between workers, JSON values (redis.asyncio)

        cache_from_settings()     STRATA_REDIS_URL → RedisCache, else InMemoryCache

        drop_prefix("users::")    forget every cached call for one table

Examples:
    >>> cache = InMemoryCache(max_size=2, default_ttl_seconds=None)
    >>> cache.set("users::count::ab", 3)
    >>> cache.get("users::count::ab"), cache.stats()["hits"]
    (3, 1)

Guardrails:
    ❌ DON'T: share an InMemoryCache across processes and expect coherence
    ✅ DO: point every worker at one RedisCache

Tags:
    cache, redis, ttl, strata
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from typing import Any, NamedTuple, Protocol, runtime_checkable

from strata.core.settings import StrataSettings, get_settings


@runtime_checkable
class CacheBackend(Protocol):
    """What the engine expects from ``cache=``. Values must be JSON-compatible.

    Implementations may define these as plain methods or as coroutines.
    """

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...

    def exists(self, key: str) -> bool: ...

    def clear(self) -> None: ...


class _Entry(NamedTuple):
    value: Any
    deadline: float | None


class InMemoryCache:
    """Process-local cache, evicting the least recently read key when full.

    A ``ttl_seconds`` of ``None`` falls back to ``default_ttl_seconds``;
    a resulting TTL of ``None`` or ``0`` keeps the entry until evicted.
    """

    def __init__(self, *, max_size: int = 10_000, default_ttl_seconds: int | None = 3600):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl_seconds = default_ttl_seconds
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is not None and entry.deadline is not None and time.monotonic() >= entry.deadline:
            del self._entries[key]
            entry = None
        return entry

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        deadline = time.monotonic() + ttl if ttl else None
        with self._lock:
            self._entries[key] = _Entry(value, deadline)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def drop_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; returns how many went."""
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}


class RedisCache:
    """Cache stored in Redis as JSON text, shared by engines in several workers.

    Built on ``redis.asyncio``: every method is a coroutine, so the engine
    awaits the round trip instead of blocking the event loop.  Pass
    ``client`` to reuse an existing connection; otherwise one is opened
    from ``url`` (needs the ``redis`` extra).
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        default_ttl_seconds: int | None = 3600,
        client: Any = None,
    ):
        if client is None:
            try:
                import redis.asyncio as aioredis
            except ImportError as exc:
                raise ImportError("RedisCache needs the redis package: pip install strata[redis]") from exc
            client = aioredis.from_url(url)
        self.client = client
        self.default_ttl_seconds = default_ttl_seconds

    async def get(self, key: str) -> Any | None:
        raw = await self.client.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        text = json.dumps(value, default=str)
        if ttl:
            await self.client.setex(key, ttl, text)
        else:
            await self.client.set(key, text)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def drop_prefix(self, prefix: str) -> int:
        keys = [key async for key in self.client.scan_iter(match=f"{prefix}*")]
        if keys:
            await self.client.delete(*keys)
        return len(keys)

    async def clear(self) -> None:
        """Flush the whole Redis database the client points at."""
        await self.client.flushdb()

    async def aclose(self) -> None:
        await self.client.aclose()


def cache_from_settings(settings: StrataSettings | None = None) -> InMemoryCache | RedisCache:
    """Cache for ``RecordEngine(cache=...)`` as configured.

    ``STRATA_REDIS_URL`` selects a shared :class:`RedisCache`; otherwise an
    :class:`InMemoryCache` bounded by ``STRATA_CACHE_MAX_SIZE``.  Both use
    ``STRATA_CACHE_TTL_SECONDS`` as their default TTL.
    """
    settings = settings or get_settings()
    if settings.redis_url:
        return RedisCache(settings.redis_url, default_ttl_seconds=settings.cache_ttl_seconds)
    return InMemoryCache(max_size=settings.cache_max_size, default_ttl_seconds=settings.cache_ttl_seconds)


__all__ = ["CacheBackend", "InMemoryCache", "RedisCache", "cache_from_settings"]
