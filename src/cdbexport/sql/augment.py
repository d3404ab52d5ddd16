"""
Geometry filter injection for sub-layer SQL.

Sub-layer queries are user-authored, so the ``the_geom IS NOT NULL`` filter is
spliced into the parsed statement rather than pasted into the text. A missing
WHERE clause is created, an existing one is wrapped with AND, and the result
is rendered back to one line of PostgreSQL.
"""

from __future__ import annotations

import logging

from sqlglot import exp

from ..domain.models import Sublayer
from ..types import SqlParseError
from .parser import DIALECT, parse

logger = logging.getLogger(__name__)

GEOMETRY_COLUMN = "the_geom"
# Alias for set operations, which are filtered as a derived table
SUBQUERY_ALIAS = "_sublayer"


def geometry_not_null(column: str = GEOMETRY_COLUMN) -> exp.Not:
    """Build the ``"<column>" IS NOT NULL`` predicate."""
    return exp.Not(this=exp.Is(this=exp.column(column, quoted=True), expression=exp.Null()))


def add_geometry_filter(query: exp.Query, column: str = GEOMETRY_COLUMN) -> exp.Select:
    """
    Return a copy of ``query`` whose outer WHERE clause also requires a geometry.

    The input tree is left untouched. Existing conditions are kept whole,
    parenthesized, as the left operand of the new AND, so the filter can only
    narrow results. A UNION, INTERSECT or EXCEPT has no WHERE of its own and
    is filtered as ``SELECT * FROM (<query>) AS _sublayer``. Applying this
    twice adds the predicate twice.
    """
    predicate = geometry_not_null(column)
    if isinstance(query, exp.Select):
        select = query.copy()
    else:
        select = exp.select("*").from_(query.subquery(SUBQUERY_ALIAS, copy=True))

    where = select.args.get("where")
    if where is None:
        condition = predicate
    else:
        condition = exp.And(this=exp.Paren(this=where.this), expression=predicate)
    select.set("where", exp.Where(this=condition))
    return select


def augment_sql(sql: str, column: str = GEOMETRY_COLUMN) -> str:
    """
    Add a geometry-not-null filter to a query.

    Args:
        sql: PostgreSQL query, including CTEs, window functions and PostGIS operators
        column: Geometry column to require

    Returns:
        Equivalent single-line SQL with the filter merged into WHERE

    Raises:
        SqlParseError: If the statement cannot be parsed
    """
    augmented = add_geometry_filter(parse(sql), column).sql(dialect=DIALECT)
    return augmented.replace("\n", " ")


def get_sublayer_sql(sublayer: Sublayer, column: str = GEOMETRY_COLUMN) -> str:
    """Augmented SQL for a sub-layer; recomputed on every call."""
    sql = sublayer.options.sql
    if not isinstance(sql, str) or not sql.strip():
        raise SqlParseError(sql or "", "sublayer has no SQL query")
    augmented = augment_sql(sql, column)
    logger.debug(f"Augmented sublayer SQL: {augmented}")
    return augmented
