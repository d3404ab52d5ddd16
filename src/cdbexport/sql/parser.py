"""
Sub-layer query parsing.

CARTO sub-layer SQL is PostgreSQL (usually with PostGIS operators), so
statements are read with sqlglot's ``postgres`` dialect. Exactly one query
statement is accepted; anything sqlglot rejects, and any statement that does
not produce rows, becomes a ``SqlParseError``.
"""

from __future__ import annotations

from typing import Optional

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError

from ..types import SqlParseError

DIALECT = "postgres"


def _error_location(error: ParseError) -> tuple[Optional[int], Optional[int]]:
    details = error.errors[0] if error.errors else {}
    return details.get("line"), details.get("col")


def _error_message(error: ParseError) -> str:
    if error.errors and error.errors[0].get("description"):
        return error.errors[0]["description"]
    return str(error).splitlines()[0]


def parse(sql: str) -> exp.Query:
    """
    Parse a single query statement.

    Args:
        sql: Query text; a trailing semicolon is allowed

    Returns:
        sqlglot query tree (a ``Select``, or a set operation such as ``Union``)

    Raises:
        SqlParseError: If the text does not hold exactly one valid query
    """
    try:
        statements = [s for s in sqlglot.parse(sql, read=DIALECT) if s is not None]
    except ParseError as e:
        line, column = _error_location(e)
        raise SqlParseError(sql, _error_message(e), line, column) from e
    except TokenError as e:
        raise SqlParseError(sql, str(e)) from e

    if not statements:
        raise SqlParseError(sql, "no SQL statement found")
    if len(statements) > 1:
        raise SqlParseError(sql, f"expected one statement, found {len(statements)}")

    statement = statements[0]
    if not isinstance(statement, exp.Query):
        raise SqlParseError(sql, f"not a query: {statement.key.upper()} statement")
    return statement
