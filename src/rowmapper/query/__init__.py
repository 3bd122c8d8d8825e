"""
Query

SQL text builders. The stateful result cursor lives in rowmapper.query.cursor.
"""

from rowmapper.query.builder import (
    ParsedQuery,
    build_delete,
    build_insert,
    build_parameterized_clause,
    build_select,
    build_update,
    build_where_clause,
    parse_columns,
)

__all__ = [
    "ParsedQuery",
    "build_delete",
    "build_insert",
    "build_parameterized_clause",
    "build_select",
    "build_update",
    "build_where_clause",
    "parse_columns",
]
