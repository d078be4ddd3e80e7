"""Tests for the Dialect abstraction layer."""

from __future__ import annotations

import pytest

from strata.core.dialect import (
    AsyncpgDialect,
    Dialect,
    MSSQLDialect,
    MySQLDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    dialect_for_url,
    get_dialect,
    register_dialect,
)


@pytest.fixture(params=["sqlite", "postgresql", "asyncpg", "mysql", "mssql"])
def dialect(request: pytest.FixtureRequest) -> Dialect:
    """Parametric fixture: run each test against every dialect."""
    return get_dialect(request.param)


class TestProtocol:
    def test_conforms(self, dialect: Dialect):
        assert isinstance(dialect, Dialect)

    def test_no_pagination_when_unused(self, dialect: Dialect):
        assert dialect.paginate(None, None, ordered=False) == ""

    def test_like(self, dialect: Dialect):
        assert dialect.like() == "LIKE"


class TestQuoting:
    def test_sqlite_and_postgres_double_quotes(self):
        assert SQLiteDialect().quote("first_name") == '"first_name"'
        assert PostgreSQLDialect().column("users", "id") == '"users"."id"'

    def test_embedded_quote_is_doubled(self):
        assert SQLiteDialect().quote('we"ird') == '"we""ird"'

    def test_mysql_backticks(self):
        assert MySQLDialect().column("users", "id") == "`users`.`id`"

    def test_mssql_brackets(self):
        assert MSSQLDialect().quote("users") == "[users]"
        assert MSSQLDialect().quote("a]b") == "[a]]b]"


class TestPlaceholders:
    def test_anonymous_styles(self):
        assert SQLiteDialect().placeholder(3) == "?"
        assert PostgreSQLDialect().placeholder(3) == "%s"
        assert MySQLDialect().placeholder(0) == "%s"
        assert MSSQLDialect().placeholder(1) == "?"

    def test_asyncpg_numbered(self):
        d = AsyncpgDialect()
        assert [d.placeholder(i) for i in range(3)] == ["$1", "$2", "$3"]


class TestPagination:
    def test_sqlite(self):
        d = SQLiteDialect()
        assert d.paginate(10, None, ordered=False) == "LIMIT 10"
        assert d.paginate(10, 5, ordered=False) == "LIMIT 10 OFFSET 5"
        assert d.paginate(None, 5, ordered=False) == "LIMIT -1 OFFSET 5"

    def test_postgres(self):
        d = PostgreSQLDialect()
        assert d.paginate(10, 5, ordered=True) == "LIMIT 10 OFFSET 5"
        assert d.paginate(None, 5, ordered=True) == "OFFSET 5"

    def test_mysql(self):
        d = MySQLDialect()
        assert d.paginate(10, None, ordered=False) == "LIMIT 10"
        assert d.paginate(10, 20, ordered=False) == "LIMIT 20, 10"
        assert d.paginate(None, 20, ordered=False) == "LIMIT 20, 18446744073709551615"

    def test_mssql_supplies_order_by(self):
        d = MSSQLDialect()
        assert d.paginate(10, None, ordered=False) == "ORDER BY (SELECT NULL) OFFSET 0 ROWS FETCH NEXT 10 ROWS ONLY"
        assert d.paginate(10, 5, ordered=True) == "OFFSET 5 ROWS FETCH NEXT 10 ROWS ONLY"
        assert d.paginate(None, 5, ordered=True) == "OFFSET 5 ROWS"


class TestRegistry:
    def test_aliases(self):
        assert get_dialect("postgres").name == "postgresql"
        assert get_dialect("SQLServer").name == "mssql"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown dialect"):
            get_dialect("oracle")

    def test_for_url(self):
        assert dialect_for_url("postgresql+asyncpg://u@h/db").name == "postgresql"
        assert dialect_for_url("mysql://u@h/db").name == "mysql"
        assert dialect_for_url("sqlite:///tmp/x.db").name == "sqlite"

    def test_register_custom(self):
        class Custom(SQLiteDialect):
            @property
            def name(self) -> str:
                return "custom"

        register_dialect("Custom", Custom())
        assert get_dialect("custom").name == "custom"
