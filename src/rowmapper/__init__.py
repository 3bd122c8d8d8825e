"""
rowmapper: map dataclass records to table rows without hand-written SQL.

Example::

    from dataclasses import dataclass
    from rowmapper import Row, SqliteSession

    @dataclass
    class EmployeeRow(Row):
        id: int | None = None
        first_name: str | None = None
        last_name: str | None = None

    session = SqliteSession.connect("company.db")
    EmployeeRow(first_name="f1", last_name="l1").save(session)
"""

__version__ = "0.1.0"

from rowmapper.crud import CrudExecutor, WriteResult
from rowmapper.errors import (
    BindingError,
    IntegrityError,
    MalformedQueryError,
    MissingVersionError,
    NotPersistedError,
    PartialBatchFailureError,
    RowMapperError,
    UnsupportedFieldTypeError,
    WriteFailedError,
)
from rowmapper.mapping import TypeMetadata, column, resolve, select
from rowmapper.query.cursor import Cursor, CursorState
from rowmapper.row import Row
from rowmapper.session import BatchOutcome, PsycopgSession, Session, SqliteSession

__all__ = [
    "BatchOutcome",
    "BindingError",
    "CrudExecutor",
    "Cursor",
    "CursorState",
    "IntegrityError",
    "MalformedQueryError",
    "MissingVersionError",
    "NotPersistedError",
    "PartialBatchFailureError",
    "PsycopgSession",
    "Row",
    "RowMapperError",
    "Session",
    "SqliteSession",
    "TypeMetadata",
    "UnsupportedFieldTypeError",
    "WriteFailedError",
    "WriteResult",
    "__version__",
    "column",
    "resolve",
    "select",
]
