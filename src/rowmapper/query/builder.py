"""
SQL text builders.

Pure functions over table/column names: parse select text to discover its
source table and result columns, and build the statements the engine runs.
"""

import re
from dataclasses import dataclass
from typing import Any, Sequence

from rowmapper.errors import MalformedQueryError
from rowmapper.naming import to_field_name

DEFAULT_PLACEHOLDER = "%s"

_SELECT = re.compile(r"\bselect\b", re.IGNORECASE)
_FROM = re.compile(r"\bfrom\b", re.IGNORECASE)
_ALIAS = re.compile(r"\s+as\s+", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedQuery:
    table: str | None
    columns: tuple[str, ...]


# =============================================================================
# Parsing
# =============================================================================


def _find_from(sql: str, start: int) -> re.Match:
    """First FROM keyword outside any parenthesized expression."""
    seen = False
    for match in _FROM.finditer(sql, start):
        seen = True
        segment = sql[start : match.start()]
        if segment.count("(") == segment.count(")"):
            return match
    if seen:
        raise MalformedQueryError("Unbalanced parentheses", sql)
    raise MalformedQueryError("No FROM found in query", sql)


def _strip_parenthesized(text: str, sql: str) -> str:
    """
    Remove every balanced parenthesized span, e.g. "concat('x', a) as b" -> "concat as b".
    """
    kept = []
    depth = 0
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise MalformedQueryError("Unbalanced parentheses", sql)
        elif depth == 0:
            kept.append(ch)
    if depth != 0:
        raise MalformedQueryError("Unbalanced parentheses", sql)
    return "".join(kept)


def parse_columns(sql: str) -> ParsedQuery:
    """
    Discover the source table and result column names of a select statement.

    Columns are reduced to their AS alias and converted to field casing:
    "select a, b as x, f(c, d) as y from t" -> table "t", columns ("a", "x", "y").

    Raises:
        MalformedQueryError: missing SELECT/FROM or unbalanced parentheses
    """
    select_match = _SELECT.search(sql)
    if select_match is None:
        raise MalformedQueryError("No SELECT found in query", sql)
    from_match = _find_from(sql, select_match.end())

    tokens = sql[from_match.end() :].split()
    table = tokens[0].rstrip(";").lower() if tokens else None
    if not table or not table[0].isalpha():
        table = None

    projection = _strip_parenthesized(sql[select_match.end() : from_match.start()], sql)
    columns = []
    for token in projection.split(","):
        name = _ALIAS.split(token.strip())[-1].strip()
        if not name:
            raise MalformedQueryError("Empty result column", sql)
        columns.append(to_field_name(name))
    return ParsedQuery(table=table, columns=tuple(columns))


# =============================================================================
# Statement Builders
# =============================================================================


def build_select(table: str, columns: Sequence[str]) -> str:
    return f"select {', '.join(columns)} from {table}"


def build_where_clause(base_query: str, *keys_and_values: Any) -> str:
    """
    Append a literal WHERE clause built from alternating keys and values.

    String values are single-quoted, None renders as IS NULL. Values are
    NOT escaped: never pass untrusted input here, use
    build_parameterized_clause instead.

    Args:
        base_query: Select text without a WHERE clause
        keys_and_values: column, value, column, value, ...

    Returns:
        The query with the WHERE clause appended
    """
    if len(keys_and_values) % 2:
        raise ValueError("where() takes alternating column names and values")
    if not keys_and_values:
        return base_query

    terms = []
    for key, value in zip(keys_and_values[::2], keys_and_values[1::2]):
        if key is None:
            raise ValueError("null column name")
        if value is None:
            terms.append(f"{key} IS NULL")
        elif isinstance(value, str):
            terms.append(f"{key} = '{value}'")
        else:
            terms.append(f"{key} = {value}")
    return f"{base_query} WHERE {' AND '.join(terms)}"


def build_parameterized_clause(
    base_query: str, where_fragment: str, values: Sequence[Any] = ()
) -> tuple[str, tuple]:
    """
    Append a WHERE fragment containing placeholders, e.g. "age > %s".

    Returns:
        Tuple of (sql, params) ready for execution
    """
    fragment = where_fragment.strip()
    words = fragment.split(None, 1)
    if not words or words[0].lower() != "where":
        fragment = f"WHERE {fragment}"
    return f"{base_query} {fragment}", tuple(values)


def build_insert(table: str, columns: Sequence[str], placeholder: str = DEFAULT_PLACEHOLDER) -> str:
    values = ", ".join(placeholder for _ in columns)
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({values})"


def build_update(
    table: str, columns: Sequence[str], pk_column: str, placeholder: str = DEFAULT_PLACEHOLDER
) -> str:
    assignments = ", ".join(f"{c} = {placeholder}" for c in columns)
    return f"UPDATE {table} SET {assignments} WHERE {pk_column} = {placeholder}"


def build_delete(table: str, pk_column: str, placeholder: str = DEFAULT_PLACEHOLDER) -> str:
    return f"DELETE FROM {table} WHERE {pk_column} = {placeholder}"
