"""SQL dialect abstraction for backend-agnostic statement building.

Provides a ``Dialect`` protocol and concrete implementations for every
supported backend.  The query translator asks the dialect for identifier
quoting, bind placeholders and pagination syntax, so one generic query
description renders to correct SQL for each database.

Manifesto:
    One query description has to run on SQLite, PostgreSQL, MySQL and SQL
    Server.  Without a dialect layer, quoting and LIMIT/OFFSET placement
    leak into the translator and break when the data source changes.

    - **One interface:** Dialect protocol for all dialect-specific SQL
    - **Zero coupling:** The translator never imports a database driver
    - **Registry:** get_dialect(name) chooses the right dialect

Architecture::

    ┌──────────────┐ ┌──────────────┐ ┌──────────────┐ ┌──────────────────┐
    │ SQLite       │ │ PostgreSQL   │ │ MySQL        │ │ SQL Server       │
    │ "ident"  ?   │ │ "ident"  %s  │ │ `ident`  %s  │ │ [ident]  ?       │
    │ LIMIT/OFFSET │ │ LIMIT/OFFSET │ │ LIMIT o, n   │ │ OFFSET/FETCH     │
    └──────────────┘ └──────────────┘ └──────────────┘ └──────────────────┘

Examples:
    >>> from strata.core.dialect import get_dialect
    >>> d = get_dialect("mysql")
    >>> d.quote("first_name")
    '`first_name`'
    >>> d.paginate(10, 20, ordered=True)
    'LIMIT 20, 10'

Guardrails:
    ❌ DON'T: Hard-code quoting or LIMIT syntax in the translator
    ✅ DO: Ask the dialect for every backend-specific fragment

Tags:
    dialect, sql, abstraction, portability, database, strata
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a **SQL fragment** (string) valid for the target
    database.
    """

    @property
    def name(self) -> str:
        """Human-readable dialect name (e.g. ``'sqlite'``)."""
        ...

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index).

        ``index`` is ignored by dialects that use anonymous placeholders
        (SQLite ``?``, MySQL ``%s``) but required by numbered styles.
        """
        ...

    def quote(self, identifier: str) -> str:
        """Quote a table or column identifier."""
        ...

    def column(self, table: str, column: str) -> str:
        """Qualified, quoted ``table.column`` reference."""
        ...

    def paginate(self, limit: int | None, offset: int | None, *, ordered: bool) -> str:
        """Pagination clause appended after ORDER BY (empty when unused).

        ``ordered`` tells dialects that require an ORDER BY for OFFSET
        whether one is already present.
        """
        ...

    def like(self) -> str:
        """Pattern-match operator."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class SQLiteDialect:
    """SQLite dialect - ``?`` placeholders, double-quoted identifiers."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def column(self, table: str, column: str) -> str:
        return f"{self.quote(table)}.{self.quote(column)}"

    def paginate(self, limit: int | None, offset: int | None, *, ordered: bool) -> str:
        if limit is None and offset is None:
            return ""
        # SQLite needs a LIMIT before OFFSET; -1 means unbounded
        clause = f"LIMIT {limit if limit is not None else -1}"
        if offset is not None:
            clause += f" OFFSET {offset}"
        return clause

    def like(self) -> str:
        return "LIKE"


class PostgreSQLDialect:
    """PostgreSQL dialect - ``%s`` placeholders (psycopg), double quotes."""

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def column(self, table: str, column: str) -> str:
        return f"{self.quote(table)}.{self.quote(column)}"

    def paginate(self, limit: int | None, offset: int | None, *, ordered: bool) -> str:
        parts = []
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        if offset is not None:
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def like(self) -> str:
        return "LIKE"


class AsyncpgDialect(PostgreSQLDialect):
    """PostgreSQL with asyncpg's numbered ``$1, $2`` placeholders."""

    @property
    def name(self) -> str:
        return "asyncpg"

    def placeholder(self, index: int) -> str:
        return f"${index + 1}"


class MySQLDialect:
    """MySQL dialect - ``%s`` placeholders, backtick identifiers.

    Compatible with ``mysql.connector``, ``PyMySQL`` and ``aiomysql``.
    """

    @property
    def name(self) -> str:
        return "mysql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def quote(self, identifier: str) -> str:
        return "`" + identifier.replace("`", "``") + "`"

    def column(self, table: str, column: str) -> str:
        return f"{self.quote(table)}.{self.quote(column)}"

    def paginate(self, limit: int | None, offset: int | None, *, ordered: bool) -> str:
        if limit is None and offset is None:
            return ""
        if offset is None:
            return f"LIMIT {limit}"
        # MySQL has no bare OFFSET; the documented "all rows" count is 2^64-1
        return f"LIMIT {offset}, {limit if limit is not None else 18446744073709551615}"

    def like(self) -> str:
        return "LIKE"


class MSSQLDialect:
    """SQL Server dialect - ``?`` placeholders (pyodbc), bracket identifiers.

    OFFSET/FETCH requires an ORDER BY; when the query has none the clause
    supplies ``ORDER BY (SELECT NULL)``.
    """

    @property
    def name(self) -> str:
        return "mssql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def quote(self, identifier: str) -> str:
        return "[" + identifier.replace("]", "]]") + "]"

    def column(self, table: str, column: str) -> str:
        return f"{self.quote(table)}.{self.quote(column)}"

    def paginate(self, limit: int | None, offset: int | None, *, ordered: bool) -> str:
        if limit is None and offset is None:
            return ""
        clause = "" if ordered else "ORDER BY (SELECT NULL) "
        clause += f"OFFSET {offset or 0} ROWS"
        if limit is not None:
            clause += f" FETCH NEXT {limit} ROWS ONLY"
        return clause

    def like(self) -> str:
        return "LIKE"


# =========================================================================
# Registry / Factory
# =========================================================================

# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
    "asyncpg": AsyncpgDialect(),
    "mysql": MySQLDialect(),
    "mssql": MSSQLDialect(),
    "sqlserver": MSSQLDialect(),  # alias
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.

    Example:
        >>> get_dialect("postgresql").placeholder(0)
        '%s'
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres', 'sqlserver'})}"
        )
    return _DIALECTS[key]


def dialect_for_url(url: str) -> Dialect:
    """Pick a dialect from a connection URL scheme.

    ``postgresql://`` and ``postgres://`` map to PostgreSQL, ``mysql://``
    to MySQL, ``mssql://`` to SQL Server and ``sqlite:`` to SQLite.
    """
    scheme = url.split(":", 1)[0].lower()
    scheme = scheme.split("+", 1)[0]
    return get_dialect(scheme)


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (lower-cased key)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    # Protocol
    "Dialect",
    # Implementations
    "SQLiteDialect",
    "PostgreSQLDialect",
    "AsyncpgDialect",
    "MySQLDialect",
    "MSSQLDialect",
    # Factory
    "get_dialect",
    "dialect_for_url",
    "register_dialect",
]
