"""
Deterministic hashing for request fingerprints.

A fingerprint identifies one engine call by table, operation and the
content of its identifier/query, so identical requests share a cache
entry and any change to the query produces a different key.

Manifesto:
    - **Deterministic:** Same inputs always produce the same hash
    - **Order-independent maps:** ``{"a": 1, "b": 2}`` and
      ``{"b": 2, "a": 1}`` are the same query
    - **Readable keys:** ``<table>::<operation>::<hash>``

Examples:
    >>> compute_hash("users", "read", 42) == compute_hash("users", "read", 42)
    True
    >>> fingerprint("users", "query", {"b": 2, "a": 1}) == fingerprint(
    ...     "users", "query", {"a": 1, "b": 2})
    True

Tags:
    hashing, fingerprint, cache-key, strata
"""

import hashlib
import json
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Joins string representations with ``|`` and takes a SHA-256 digest.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and no whitespace; unknown types via ``str``."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def fingerprint(table: str, operation: str, payload: Any = None) -> str:
    """Cache key for one engine call.

    Args:
        table: Entity table name
        operation: Engine operation (``read``, ``query``, ``count``...)
        payload: Identifier and/or query description; hashed as canonical JSON
    """
    return f"{table}::{operation}::{compute_hash(canonical_json(payload))}"


__all__ = [
    "compute_hash",
    "canonical_json",
    "fingerprint",
]
