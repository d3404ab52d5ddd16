"""
SQL handling for sub-layer queries.

Components:
- parser: single-statement PostgreSQL parsing on sqlglot
- augment: geometry-not-null filter injection
"""

from .augment import GEOMETRY_COLUMN, add_geometry_filter, augment_sql, geometry_not_null, get_sublayer_sql
from .parser import DIALECT, parse

__all__ = [
    "augment_sql", "add_geometry_filter", "geometry_not_null", "get_sublayer_sql",
    "parse", "DIALECT", "GEOMETRY_COLUMN"
]
