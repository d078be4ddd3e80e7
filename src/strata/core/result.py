"""
Ok / Err return values for record operations.

Every ``RecordEngine`` method returns ``Ok(value)`` or ``Err(error)``.
Expected failures (missing fields, invalid values, hook rejection, a
record that does not exist, a backend that fails or times out) travel
as ``Err`` values holding a :class:`StrataError`; the caller decides
whether to raise, render or recover.

Manifesto:
    - **Failures are data:** ``Err.to_dict()`` is the ``{error, data, action}``
      payload the caller sends back to its own client
    - **Bugs still raise:** ``try_result`` only captures ``StrataError``

Examples:
    >>> Ok({"id": 1}).map(lambda row: row["id"]).unwrap()
    1
    >>> Err(ValueError("nope")).unwrap_or(None) is None
    True

Tags:
    result, error-handling, strata
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from strata.core.errors import StrataError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """Feed the value to the next step, which returns its own Result."""
        return f(self.value)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the held error."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Err(self.error)

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        return Err(self.error)

    def to_dict(self) -> dict[str, Any]:
        """Render the failure payload.

        ``StrataError`` values contribute their own ``error`` / ``data`` /
        ``action``; any other exception is reduced to its type and message.
        """
        if isinstance(self.error, StrataError):
            return {"ok": False, **self.error.to_payload()}
        error = {"error_type": type(self.error).__name__, "message": str(self.error)}
        return {"ok": False, "error": error, "data": None, "action": None}


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """Call ``f``; a raised StrataError becomes ``Err``, anything else propagates."""
    try:
        return Ok(f())
    except StrataError as exc:
        return Err(exc)


def from_optional(value: T | None, error: Exception) -> Result[T]:
    return Err(error) if value is None else Ok(value)


__all__ = ["Err", "Ok", "Result", "from_optional", "try_result"]
