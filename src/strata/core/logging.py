"""
Structured logging for strata.

strata logs events, not sentences: ``statement_failed``,
``relation_skipped``, ``observer_failed``. Each event carries the
entity, the SQL and its parameters as key/value fields so a single
request can be followed through the relation fanout.

Manifesto:
    - **Events:** every log line is an event name plus fields
    - **Bounded:** long SQL text and parameter lists are shortened before rendering
    - **Quiet stdout:** output goes to stderr so ``strata translate --json`` stays parseable
    - **Scoped:** ``LogContext`` binds request fields and restores the outer scope on exit

Architecture:
    ::

        configure_logging(level, json_format, service)
            │
            ├── merge_contextvars          request fields from LogContext
            ├── add_log_level / logger name
            ├── shorten_statement          sql / params size caps
            ├── service stamp
            └── JSONRenderer | ConsoleRenderer  → stderr

Examples:
    >>> from strata.core.logging import LogContext, configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> log = get_logger(__name__)
    >>> with LogContext(entity="users"):
    ...     log.debug("statement", sql="SELECT 1", params=[])

Tags:
    logging, structlog, strata
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

MAX_SQL_CHARS = 2000
MAX_PARAMS = 50

_service = "strata"


def shorten_statement(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Cap ``sql`` text and ``params`` lists carried by statement events."""
    sql = event_dict.get("sql")
    if isinstance(sql, str) and len(sql) > MAX_SQL_CHARS:
        hidden = len(sql) - MAX_SQL_CHARS
        event_dict["sql"] = f"{sql[:MAX_SQL_CHARS]}... [+{hidden} chars]"

    params = event_dict.get("params")
    if isinstance(params, (list, tuple)) and len(params) > MAX_PARAMS:
        event_dict["params"] = list(params[:MAX_PARAMS])
        event_dict["params_total"] = len(params)
    return event_dict


def _stamp_service(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service", _service)
    return event_dict


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level: {level}")
    return number


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "strata",
) -> None:
    """Install the strata processor chain.

    Args:
        level: minimum level name (``DEBUG`` .. ``ERROR``)
        json_format: JSON lines when True, coloured console when False,
            JSON whenever stderr is not a terminal when None
        service: value stamped on every event as ``service``
    """
    global _service
    _service = service
    threshold = _level_number(level)

    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        shorten_statement,
        _stamp_service,
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=threshold)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**fields: Any) -> None:
    """Attach fields to every event logged from the current task."""
    structlog.contextvars.bind_contextvars(**fields)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` / ``async with`` block.

    Fields that were already bound by an enclosing block get their old
    values back on exit.

    Example:
        async with LogContext(request_id="abc123", entity="users"):
            await engine.query("users", {"status": "active"})
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._scope: Any = None

    def _open(self) -> LogContext:
        self._scope = structlog.contextvars.bound_contextvars(**self.fields)
        self._scope.__enter__()
        return self

    def _close(self, exc_info: tuple[Any, Any, Any]) -> None:
        scope, self._scope = self._scope, None
        scope.__exit__(*exc_info)

    def __enter__(self) -> LogContext:
        return self._open()

    def __exit__(self, *exc_info: Any) -> None:
        self._close(exc_info)

    async def __aenter__(self) -> LogContext:
        return self._open()

    async def __aexit__(self, *exc_info: Any) -> None:
        self._close(exc_info)


__all__ = [
    "MAX_PARAMS",
    "MAX_SQL_CHARS",
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "shorten_statement",
    "unbind_context",
]
