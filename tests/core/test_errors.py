"""Tests for strata.core.errors module."""

from strata.core.errors import (
    BackendError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    HookRejectedError,
    MissingRequiredFieldsError,
    NotFoundError,
    PrimaryKeyMismatchError,
    RelationCycleExceededError,
    SchemaNotFoundError,
    StrataError,
    ValidationError,
)
from strata.query.spec import Statement


class TestErrorContext:
    def test_empty(self):
        ctx = ErrorContext()
        assert ctx.entity is None
        assert ctx.to_dict() == {}

    def test_to_dict_skips_unset_fields(self):
        ctx = ErrorContext(entity="users", action="read", metadata={"trace": "t1"})
        assert ctx.to_dict() == {"entity": "users", "action": "read", "trace": "t1"}


class TestStrataError:
    def test_defaults(self):
        error = StrataError("boom")
        assert error.category is ErrorCategory.INTERNAL
        assert str(error) == "boom"

    def test_with_context_chains(self):
        error = StrataError("boom").with_context(entity="users", request_id="r1")
        assert error.context.entity == "users"
        assert error.context.metadata == {"request_id": "r1"}

    def test_cause_in_dict(self):
        error = StrataError("boom", cause=ValueError("inner"))
        assert error.to_dict()["cause"] == "ValueError: inner"

    def test_payload_shape(self):
        error = HookRejectedError("Blocked", entity="users", action="destroy", data={"id": 1})
        payload = error.to_payload()
        assert payload["action"] == "destroy"
        assert payload["data"] == {"id": 1}
        assert payload["error"]["category"] == "HOOK"
        assert payload["error"]["message"] == "Blocked"


class TestSubclasses:
    def test_validation_fields(self):
        error = ValidationError(["email", "age"])
        assert error.category is ErrorCategory.VALIDATION
        assert error.to_dict()["invalid"] == ["email", "age"]

    def test_missing_required(self):
        error = MissingRequiredFieldsError(["email"])
        assert isinstance(error, ValidationError)
        assert error.to_dict()["missing"] == ["email"]
        assert "email" in error.message

    def test_primary_key_mismatch(self):
        error = PrimaryKeyMismatchError(2, 1)
        assert error.message == "Missing parts for primary key. Got 1 expected 2"
        assert error.to_dict()["expected"] == 2

    def test_schema_not_found_is_config(self):
        error = SchemaNotFoundError("ghosts")
        assert isinstance(error, ConfigError)
        assert error.context.entity == "ghosts"

    def test_backend_error_keeps_statement(self):
        statement = Statement(sql="SELECT 1", table="users")
        error = BackendError("failed", statement=statement)
        assert error.statement is statement
        assert error.context.statement == "SELECT 1"
        assert error.category is ErrorCategory.BACKEND

    def test_not_found(self):
        error = NotFoundError("users", "abc")
        assert error.message == "Record Not Found"
        assert error.context.record_id == "abc"

    def test_relation_cycle(self):
        error = RelationCycleExceededError(["users", "orders", "users"], 2)
        assert error.to_dict()["path"] == ["users", "orders", "users"]
        assert "users -> orders -> users" in error.message
