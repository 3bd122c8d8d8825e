"""
Base type for mapped records.

    @dataclass
    class EmployeeRow(Row):
        id: int | None = None
        first_name: str | None = None
        last_name: str | None = None
        mgr_id: int | None = None

EmployeeRow maps to the employee table; each field maps to the column of
the same name (first_name -> first_name, firstName -> first_name). A field
named id is the primary key unless another field is declared with
column(primary_key=True).

Convenience methods open a session with rowmapper.db.open_session() when
none is given, and release it when done.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Mapping

from rowmapper import db
from rowmapper.crud.executor import CrudExecutor, WriteResult
from rowmapper.mapping.declarations import BOOKKEEPING_FIELDS
from rowmapper.mapping.metadata import resolve
from rowmapper.query.cursor import Cursor
from rowmapper.session import Session


@dataclass
class Row:
    row_num: int | None = field(default=None, init=False, compare=False)
    persisted: bool = field(default=False, init=False, compare=False, repr=False)
    modified: bool = field(default=False, init=False, compare=False, repr=False)

    @classmethod
    def from_row(cls, values: Mapping[str, Any]):
        """Build a record from field values read from a result row."""
        return cls(**values)

    def _mapped_fields(self) -> list[str]:
        return [f.name for f in dataclasses.fields(self) if f.name not in BOOKKEEPING_FIELDS]

    def mark_modified(self) -> "Row":
        """
        Flag the record as modified. Advisory only: writes are never skipped.

        Usage: row.mark_modified().age += 1; row.save()
        """
        self.modified = True
        return self

    def init(self, *values: Any) -> "Row":
        """Set every field except the primary key, in declaration order."""
        pk = resolve(type(self)).primary_key
        names = [n for n in self._mapped_fields() if pk is None or n != pk.name]
        return self._assign(names, values)

    def set(self, *values: Any) -> "Row":
        """Set every field including the primary key, in declaration order."""
        return self._assign(self._mapped_fields(), values)

    def _assign(self, names: list[str], values: tuple) -> "Row":
        if len(values) > len(names):
            raise ValueError(f"More values ({len(values)}) than fields ({len(names)})")
        for name, value in zip(names, values):
            setattr(self, name, value)
        return self

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def cursor(cls, session: Session = None, sql: str = None, params=(), keep_open: bool = False) -> Cursor:
        """Open a cursor over this type's select text, or over sql."""
        return Cursor(cls, session or db.open_session(), sql=sql, params=params, keep_open=keep_open)

    @classmethod
    def get_by_id(cls, key: Any, session: Session = None):
        """Get a record by primary key, or None if not found."""
        return CrudExecutor(session or db.open_session()).fetch_by_key(cls, key)

    @classmethod
    def query(cls, session: Session = None, where: str = None, *values: Any) -> list:
        """
        Fetch all records, optionally filtered by a parameterized clause.

        Usage: EmployeeRow.query(session, "mgr_id = %s", 7)
        """
        cursor = cls.cursor(session)
        if where:
            cursor.filter(where, *values)
        return cursor.all()

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, session: Session = None) -> WriteResult:
        """Insert the record if it was never persisted, otherwise update it."""
        executor = CrudExecutor(session or db.open_session())
        if self.persisted:
            return executor.update(self)
        return executor.insert([self])[0]

    def delete(self, session: Session = None) -> WriteResult:
        """Delete the record's row. A record that isn't persisted raises NotPersistedError."""
        return CrudExecutor(session or db.open_session()).delete(self)
