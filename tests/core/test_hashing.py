"""Tests for strata.core.hashing."""

from strata.core.hashing import canonical_json, compute_hash, fingerprint


class TestComputeHash:
    def test_deterministic(self):
        assert compute_hash("a", 1) == compute_hash("a", 1)

    def test_length(self):
        assert len(compute_hash("x")) == 32
        assert len(compute_hash("x", length=8)) == 8

    def test_order_matters(self):
        assert compute_hash("a", "b") != compute_hash("b", "a")


class TestFingerprint:
    def test_key_order_does_not_matter(self):
        a = fingerprint("users", "find", {"where": {"a": 1, "b": 2}, "limit": 5})
        b = fingerprint("users", "find", {"limit": 5, "where": {"b": 2, "a": 1}})
        assert a == b

    def test_shape(self):
        key = fingerprint("users", "count", {"status": "active"})
        table, operation, digest = key.split("::")
        assert (table, operation) == ("users", "count")
        assert len(digest) == 32

    def test_operation_namespaces(self):
        query = {"status": "active"}
        assert fingerprint("users", "query", query) != fingerprint("users", "find", query)

    def test_canonical_json(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
