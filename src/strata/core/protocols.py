"""
Canonical protocol definitions for strata.

The record engine and relation resolver never talk to a database driver
directly.  They hand a :class:`~strata.query.spec.Statement` to whatever
object satisfies :class:`Backend` and get plain row dictionaries back.

Manifesto:
    Protocols define contracts without inheritance. They enable:
    - **Decoupling:** The engine depends on shape, not on a driver
    - **Testability:** A list-backed fake satisfies the protocol
    - **Portability:** Same engine code on SQLite, PostgreSQL, SQL Server

Architecture:
    ::

        protocols.py
        ├── Backend   - async statement execution (engine → database)
        └── Pool      - opaque driver pool adapted by PoolBackend

Guardrails:
    ❌ DON'T: Return driver-specific row objects from ``execute``
    ✅ DO: Return ``list[dict]``; writes may return ``[]``

    ❌ DON'T: Swallow driver errors inside a backend
    ✅ DO: Raise; the engine wraps the failure in ``BackendError``

Tags:
    protocol, backend, async, database, strata, contracts
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from strata.query.spec import Statement


@runtime_checkable
class Backend(Protocol):
    """
    Asynchronous statement executor.

    ``execute`` is the only suspension point between the engine and the
    database.  It must raise on failure; the engine converts the exception
    into ``Err(BackendError)``.

    Example:
        >>> class ListBackend:
        ...     async def execute(self, statement):
        ...         return [{"id": 1}]
        >>> isinstance(ListBackend(), Backend)
        True
    """

    async def execute(self, statement: Statement) -> list[dict[str, Any]]:
        """Run one statement and return its rows (empty for writes)."""
        ...


@runtime_checkable
class Pool(Protocol):
    """Driver connection pool with a ``query(sql, params)`` entry point.

    The call may be synchronous or return an awaitable.  Its result may be
    a row list or an envelope carrying ``recordset`` / ``rows``.
    """

    def query(self, sql: str, params: list[Any]) -> Any: ...


__all__ = [
    "Backend",
    "Pool",
]
