"""
Structured error types for strata.

Every expected failure in the record pipeline is described by a
:class:`StrataError` subclass.  The engine does not raise these to its
callers; it wraps them in :class:`~strata.core.result.Err` so the caller
inspects a value instead of catching an exception.  Only programming
errors and the translator's own input checks propagate as exceptions.

Manifesto:
    - **Typed taxonomy:** One class per failure the caller must tell apart
    - **Errors as values:** Engine operations return ``Err(error)``
    - **Rich context:** Errors carry the entity, action and offending data
    - **Error chaining:** Backend failures keep the driver exception as cause

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────────┐
        │                          StrataError                           │
        │          (category, context, cause, to_dict, to_payload)       │
        ├───────────────────────────────────────────────────────────────┤
        │                                                                │
        │  ValidationError        ConfigError         BackendError       │
        │  (VALIDATION)           (CONFIG)            (BACKEND)          │
        │       │                      │                                 │
        │  MissingRequiredFields  SchemaNotFound      QueryError         │
        │  PrimaryKeyMismatch                         (QUERY)            │
        │                                                                │
        │  HookRejectedError      NotFoundError       RelationCycle-     │
        │  (HOOK)                 (NOT_FOUND)         ExceededError      │
        │                                             (RELATION)         │
        └───────────────────────────────────────────────────────────────┘

Examples:
    >>> err = MissingRequiredFieldsError(["email"], entity="users", action="create")
    >>> err.fields
    ['email']
    >>> err.to_payload()["action"]
    'create'

Guardrails:
    ❌ DON'T: Raise these out of RecordEngine operations
    ✅ DO: Return ``Err(error)`` and let the caller decide

    ❌ DON'T: Drop the driver exception when wrapping a backend failure
    ✅ DO: Pass it as ``cause=`` and attach the failing statement

Tags:
    error-handling, exception-hierarchy, error-context, strata
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and logging."""

    VALIDATION = "VALIDATION"     # Schema type/constraint violations
    CONFIG = "CONFIG"             # Missing schema, bad settings
    QUERY = "QUERY"               # Untranslatable query description
    BACKEND = "BACKEND"           # Statement execution failures
    HOOK = "HOOK"                 # Lifecycle hook declined the write
    NOT_FOUND = "NOT_FOUND"       # Target row absent
    RELATION = "RELATION"         # Join resolution limits
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        entity: Entity (table) name the operation ran against
        action: Engine operation (``create``, ``update``, ``query``...)
        record_id: Identifier passed by the caller, if any
        statement: SQL text of the failing statement
        data: Payload the caller supplied
        metadata: Additional key-value pairs
    """

    entity: str | None = None
    action: str | None = None
    record_id: Any = None
    statement: str | None = None
    data: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["entity", "action", "record_id", "statement"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StrataError(Exception):
    """
    Base exception for all strata errors.

    Subclasses set ``default_category``.  The context carries the
    entity/action/data triple that :meth:`to_payload` turns into the
    ``{error: {...}, data, action}`` shape callers receive.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        entity: str | None = None,
        action: str | None = None,
        data: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause
        if entity is not None:
            self.context.entity = entity
        if action is not None:
            self.context.action = action
        if data is not None:
            self.context.data = data

    def with_context(self, **kwargs: Any) -> StrataError:
        """Add context fields, returning self for chaining."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def details(self) -> dict[str, Any]:
        """Error-specific fields; subclasses extend."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization and logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
        }
        result.update(self.details())
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def to_payload(self) -> dict[str, Any]:
        """Render as the caller-facing ``{error, data, action}`` envelope."""
        return {
            "error": self.to_dict(),
            "data": self.context.data,
            "action": self.context.action,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(StrataError):
    """One or more fields do not satisfy their property definition."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, fields: list[str], message: str | None = None, **kwargs: Any):
        self.fields = list(fields)
        super().__init__(message or f"Invalid fields: {', '.join(self.fields)}", **kwargs)

    def details(self) -> dict[str, Any]:
        return {"invalid": self.fields}


class MissingRequiredFieldsError(ValidationError):
    """Required properties are absent (create) or cleared (update)."""

    def __init__(self, fields: list[str], **kwargs: Any):
        super().__init__(fields, f"Missing required fields: {', '.join(fields)}", **kwargs)

    def details(self) -> dict[str, Any]:
        return {"missing": self.fields}


class PrimaryKeyMismatchError(ValidationError):
    """Composite identifier has the wrong number of parts."""

    def __init__(self, expected: int, got: int, **kwargs: Any):
        self.expected = expected
        self.got = got
        super().__init__(
            [],
            f"Missing parts for primary key. Got {got} expected {expected}",
            **kwargs,
        )

    def details(self) -> dict[str, Any]:
        return {"expected": self.expected, "got": self.got}


# =============================================================================
# CONFIGURATION / QUERY
# =============================================================================


class ConfigError(StrataError):
    """Invalid or missing configuration."""

    default_category = ErrorCategory.CONFIG


class SchemaNotFoundError(ConfigError):
    """No schema is registered under the requested entity name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown entity: {name}", entity=name)


class QueryError(StrataError):
    """The query description cannot be turned into a statement."""

    default_category = ErrorCategory.QUERY


# =============================================================================
# EXECUTION
# =============================================================================


class BackendError(StrataError):
    """Statement execution failed; carries the statement for diagnostics."""

    default_category = ErrorCategory.BACKEND

    def __init__(self, message: str, *, statement: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.statement = statement
        if statement is not None:
            self.context.statement = getattr(statement, "sql", str(statement))


class HookRejectedError(StrataError):
    """A pre-update or pre-destroy hook declined the write."""

    default_category = ErrorCategory.HOOK


class NotFoundError(StrataError):
    """The record addressed by identifier does not exist."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, entity: str, record_id: Any, **kwargs: Any):
        super().__init__("Record Not Found", entity=entity, **kwargs)
        self.context.record_id = record_id


class RelationCycleExceededError(StrataError):
    """Nested join resolution went deeper than the configured limit."""

    default_category = ErrorCategory.RELATION

    def __init__(self, path: list[str], max_depth: int):
        self.path = list(path)
        self.max_depth = max_depth
        super().__init__(
            f"Join depth exceeded {max_depth}: {' -> '.join(self.path)}",
        )

    def details(self) -> dict[str, Any]:
        return {"path": self.path, "max_depth": self.max_depth}


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StrataError",
    "ValidationError",
    "MissingRequiredFieldsError",
    "PrimaryKeyMismatchError",
    "ConfigError",
    "SchemaNotFoundError",
    "QueryError",
    "BackendError",
    "HookRejectedError",
    "NotFoundError",
    "RelationCycleExceededError",
]
