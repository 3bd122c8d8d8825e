"""
Row cursor: materializes one query's results as record instances.

A cursor is single-pass and single-use. The query runs on the first fetch
and each fetch returns a fresh record for the next row; once the result is
exhausted every further fetch returns None and the query is never re-run.

Usage:
    cursor = Cursor(EmployeeRow, session).filter("mgr_id = %s", 7)
    while (row := cursor.fetch()) is not None:
        print(row.row_num, row.first_name)
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Sequence

import pandas as pd

from rowmapper.errors import BindingError, UnsupportedFieldTypeError
from rowmapper.mapping.declarations import FieldSpec, SemanticType
from rowmapper.mapping.metadata import resolve
from rowmapper.observability import get_logger
from rowmapper.query.builder import build_parameterized_clause, build_where_clause
from rowmapper.session import Session

log = get_logger(__name__)


class CursorState(Enum):
    NOT_STARTED = "not_started"
    EXECUTING = "executing"
    EXHAUSTED = "exhausted"


def convert_value(record_type: type, spec: FieldSpec, value: Any) -> Any:
    """Convert a raw column value to the declared type of its field."""
    if value is None:
        return None
    if spec.semantic_type is SemanticType.TEXT:
        return str(value)
    if spec.semantic_type is SemanticType.INTEGER:
        return int(value)
    if spec.semantic_type is SemanticType.DATE:
        wants_datetime = issubclass(spec.python_type, datetime)
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if isinstance(value, datetime) and not wants_datetime:
            return value.date()
        if isinstance(value, date) and not isinstance(value, datetime) and wants_datetime:
            return datetime(value.year, value.month, value.day)
        return value
    raise UnsupportedFieldTypeError(record_type, spec.name, spec.python_type)


class Cursor:
    """
    Stateful handle over one query invocation.

    The statement executed is, in order of preference: an explicit sql
    string (optionally with params), a refinement added with where(),
    where_values() or filter(), or the record type's own select text.

    The session is released when the result is exhausted, when the cursor
    is closed, when fetching fails, or when the record type cannot be
    resolved, unless keep_open is set.
    """

    def __init__(
        self,
        record_type: type,
        session: Session,
        sql: str = None,
        params: Sequence[Any] = (),
        keep_open: bool = False,
    ):
        self.record_type = record_type
        try:
            self.metadata = resolve(record_type)
        except Exception:
            # The cursor owns the session from here on
            if not keep_open:
                session.close(commit=False)
            raise
        self.session = session
        self.sql = sql
        self.params = tuple(params)
        self.keep_open = keep_open
        self.state = CursorState.NOT_STARTED
        self.row_count = 0
        self._result = None

    @property
    def statement(self) -> str:
        return self.sql or self.metadata.query

    # =========================================================================
    # Refinement (before the first fetch)
    # =========================================================================

    def _require_not_started(self) -> None:
        if self.state is not CursorState.NOT_STARTED:
            raise RuntimeError(f"Cursor for {self.metadata.type_name} has already been executed")

    def where(self, *keys_and_values: Any) -> "Cursor":
        """
        Append a literal WHERE clause: where("first_name", "Jay", "mgr_id", None).

        Values are quoted, not escaped. Prefer filter() for anything user supplied.
        """
        self._require_not_started()
        self.sql = build_where_clause(self.statement, *keys_and_values)
        return self

    def where_values(self, *values: Any) -> "Cursor":
        """
        Bind values to placeholders already present in the select text.

        Note: NULL tests must already be written as IS NULL in the query.
        """
        self._require_not_started()
        self.params = values
        return self

    def filter(self, where_fragment: str, *values: Any) -> "Cursor":
        """Append a parameterized WHERE fragment: filter("age > %s", 30)."""
        self._require_not_started()
        self.sql, self.params = build_parameterized_clause(self.statement, where_fragment, values)
        return self

    # =========================================================================
    # Fetching
    # =========================================================================

    def _execute(self) -> None:
        log.debug("query_execute", record_type=self.metadata.type_name, sql=self.statement, params=self.params)
        self._result = self.session.query(self.statement, self.params)
        self.state = CursorState.EXECUTING
        self.row_count = 0

    def _finish(self, failed: bool = False) -> None:
        self.state = CursorState.EXHAUSTED
        if self._result is not None and hasattr(self._result, "close"):
            self._result.close()
        self._result = None
        if not self.keep_open:
            self.session.close(commit=not failed)

    def _bind(self, values: Sequence[Any]):
        kwargs = {}
        for position, spec in self.metadata.column_to_field.items():
            if position > len(values):
                raise BindingError(
                    f"Result row has {len(values)} columns, field is bound to column {position}",
                    self.record_type,
                    spec.name,
                    self.statement,
                )
            kwargs[spec.name] = convert_value(self.record_type, spec, values[position - 1])

        record = self.record_type.from_row(kwargs)
        self.row_count += 1
        record.row_num = self.row_count
        record.persisted = True
        return record

    def fetch(self):
        """
        Return the next row as a new record, or None when exhausted.

        The first call runs the query.
        """
        if self.state is CursorState.EXHAUSTED:
            return None
        try:
            if self.state is CursorState.NOT_STARTED:
                self._execute()
            values = self._result.fetchone()
            if values is None:
                self._finish()
                return None
            return self._bind(values)
        except Exception:
            self._finish(failed=True)
            raise

    def __iter__(self):
        while (record := self.fetch()) is not None:
            yield record

    def all(self) -> list:
        """Fetch every remaining row."""
        return list(self)

    def for_each(self, action: Callable[[Any], Any]) -> int:
        """Invoke action on every remaining row. Returns the number of rows."""
        count = 0
        for record in self:
            action(record)
            count += 1
        return count

    def to_dataframe(self) -> pd.DataFrame:
        """
        Fetch every remaining row into a pandas DataFrame.

        One column per mapped field, in result-column order.
        """
        names = [spec.name for spec in self.metadata.column_to_field.values()]
        rows = [{name: getattr(record, name) for name in names} for record in self]
        return pd.DataFrame(rows, columns=names)

    def close(self) -> None:
        """Abandon the remaining rows and release the session."""
        if self.state is not CursorState.EXHAUSTED:
            self._finish()

    def __enter__(self) -> "Cursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
