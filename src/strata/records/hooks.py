"""
Record lifecycle hooks.

Two separate extension points:

* **Pre-hooks** (:class:`RecordHooks`) run inside the write pipeline and
  may change the outcome.  ``before_create`` may mutate or replace the
  payload; ``before_update`` and ``before_destroy`` approve or reject the
  write.  Implementations may be sync or async.
* **Post notifications** (:class:`Observers`) are fire-and-forget.  The
  engine publishes a :class:`Notification` after a write has executed;
  handler failures are logged and never reach the caller.

Manifesto:
    A hook that can cancel a write and a listener that reacts to one are
    different contracts.  Keeping them apart means an audit logger can
    never block a delete, and a permission check can never be skipped
    because it was scheduled as a background task.

Architecture::

    RecordEngine.update(...)
        │
        ├── await hooks.before_update(id, data) ── False ──▶ Err(HookRejectedError)
        ├── execute statement
        └── observers.notify(Notification("users", "update", id, data))
                ├── sync handler  → called now
                └── async handler → task (tracked until done)

Examples:
    >>> observers = Observers()
    >>> seen = []
    >>> unsubscribe = observers.subscribe("users", "create", seen.append)
    >>> observers.notify(Notification("users", "create", 1, {"id": 1}))
    >>> seen[0].record_id
    1

Tags:
    strata, hooks, observers, lifecycle, fire-and-forget, asyncio
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from strata.core.logging import get_logger

logger = get_logger(__name__)


class HookEvent(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    UPDATE_WHERE = "update_where"
    DESTROY = "destroy"
    DESTROY_WHERE = "destroy_where"


@runtime_checkable
class RecordHooks(Protocol):
    """Pre-write hooks for one entity (methods may be coroutines)."""

    def before_create(self, data: dict[str, Any]) -> Any:
        """Inspect or mutate the payload; a returned mapping replaces it."""
        ...

    def before_update(self, record_id: Any, data: dict[str, Any]) -> bool | Awaitable[bool]:
        """Falsy result rejects the update."""
        ...

    def before_destroy(self, record_id: Any, record: dict[str, Any]) -> bool | Awaitable[bool]:
        """``False`` rejects the delete."""
        ...


class DefaultHooks:
    """Approves every write unchanged."""

    def before_create(self, data: dict[str, Any]) -> dict[str, Any]:
        return data

    def before_update(self, record_id: Any, data: dict[str, Any]) -> bool:
        return True

    def before_destroy(self, record_id: Any, record: dict[str, Any]) -> bool:
        return True


async def call_hook(hook: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async hook and return its result."""
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass(frozen=True)
class Notification:
    """Post-write event delivered to observers."""

    entity: str
    event: str
    record_id: Any = None
    data: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


NotificationHandler = Callable[[Notification], Any]


class Observers:
    """Per-entity, per-event observer lists with fire-and-forget delivery.

    Subscribe with ``entity="*"`` to receive every entity's events.
    """

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], list[NotificationHandler]] = {}
        self._tasks: set[asyncio.Task] = set()

    def subscribe(
        self,
        entity: str,
        event: HookEvent | str,
        handler: NotificationHandler,
    ) -> Callable[[], None]:
        """Register ``handler``; returns a callable that unsubscribes it."""
        key = (entity, HookEvent(event).value)
        self._handlers.setdefault(key, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def handlers_for(self, entity: str, event: str) -> list[NotificationHandler]:
        return [
            *self._handlers.get((entity, event), []),
            *self._handlers.get(("*", event), []),
        ]

    def notify(self, notification: Notification) -> None:
        """Deliver without waiting; async handlers run as background tasks."""
        for handler in self.handlers_for(notification.entity, notification.event):
            try:
                result = handler(notification)
            except Exception as e:
                self._log_failure(notification, e)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._guard(result, notification))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _guard(self, awaitable: Awaitable[Any], notification: Notification) -> None:
        try:
            await awaitable
        except Exception as e:
            self._log_failure(notification, e)

    @staticmethod
    def _log_failure(notification: Notification, error: Exception) -> None:
        logger.warning(
            "observer_error",
            entity=notification.entity,
            event_type=notification.event,
            error=str(error),
        )

    async def wait_idle(self) -> None:
        """Wait until every in-flight async notification has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def subscription_count(self) -> int:
        return sum(len(handlers) for handlers in self._handlers.values())


__all__ = [
    "HookEvent",
    "RecordHooks",
    "DefaultHooks",
    "call_hook",
    "Notification",
    "NotificationHandler",
    "Observers",
]
