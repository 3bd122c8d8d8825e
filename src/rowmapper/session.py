"""
Database sessions.

A session is the engine's only view of the database: it prepares and runs
parameterized statements, runs a statement once per row of a batch with
per-row outcomes, reports generated keys and affected-row counts, and is
released when the unit of work is done.

Two implementations are provided:
    PsycopgSession  - PostgreSQL via psycopg, keys read with RETURNING
    SqliteSession   - sqlite3, keys read from lastrowid

Sessions created with owns_connection=False wrap a connection somebody else
manages (test fixtures, an outer unit of work); closing them leaves the
connection untouched.
"""

import sqlite3
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol, Sequence

import psycopg


@dataclass(frozen=True)
class BatchOutcome:
    """Result of one row of a batch: success with its generated key, or the error."""

    ok: bool
    key: Any = None
    error: Exception | None = None


class Session(Protocol):
    placeholder: str

    def query(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Run a select and return an open DB-API cursor positioned before the first row."""

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a single statement and return the affected-row count."""

    def execute_batch(self, sql: str, rows: Sequence[Sequence[Any]], key_column: str | None = None) -> list[BatchOutcome]:
        """Run a statement once per row; one outcome per row in submission order."""

    def close(self, commit: bool = True) -> None:
        """Release the session."""


# =============================================================================
# PostgreSQL
# =============================================================================


class PsycopgSession:
    placeholder = "%s"

    def __init__(self, conn: psycopg.Connection, owns_connection: bool = True):
        self.conn = conn
        self.owns_connection = owns_connection
        self.closed = False

    def query(self, sql: str, params: Sequence[Any] = ()):
        cur = self.conn.cursor()
        cur.execute(sql, tuple(params) or None)
        return cur

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self.conn.cursor() as cur:
            cur.execute(sql, tuple(params))
            return cur.rowcount

    def execute_batch(self, sql: str, rows: Sequence[Sequence[Any]], key_column: str | None = None) -> list[BatchOutcome]:
        """
        Run an insert once per row, each inside its own savepoint.

        A rejected row is rolled back to its savepoint so the rows around
        it still go through.
        """
        if key_column:
            sql = f"{sql} RETURNING {key_column}"
        outcomes = []
        with self.conn.cursor() as cur:
            for params in rows:
                cur.execute("SAVEPOINT rowmapper_batch_row")
                try:
                    cur.execute(sql, tuple(params))
                    returned = cur.fetchone() if key_column else None
                except psycopg.Error as e:
                    cur.execute("ROLLBACK TO SAVEPOINT rowmapper_batch_row")
                    outcomes.append(BatchOutcome(ok=False, error=e))
                    continue
                cur.execute("RELEASE SAVEPOINT rowmapper_batch_row")
                outcomes.append(BatchOutcome(ok=True, key=returned[0] if returned else None))
        return outcomes

    def close(self, commit: bool = True) -> None:
        if self.closed or not self.owns_connection:
            return
        self.closed = True
        try:
            if commit:
                self.conn.commit()
            else:
                self.conn.rollback()
        finally:
            self.conn.close()


# =============================================================================
# SQLite
# =============================================================================


class SqliteSession:
    placeholder = "?"

    def __init__(self, conn: sqlite3.Connection, owns_connection: bool = True):
        self.conn = conn
        self.owns_connection = owns_connection
        self.closed = False

    @classmethod
    def connect(cls, database: str = ":memory:") -> "SqliteSession":
        return cls(sqlite3.connect(database))

    def query(self, sql: str, params: Sequence[Any] = ()):
        return self.conn.execute(sql, _adapt(params))

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        return self.conn.execute(sql, _adapt(params)).rowcount

    def execute_batch(self, sql: str, rows: Sequence[Sequence[Any]], key_column: str | None = None) -> list[BatchOutcome]:
        # sqlite rolls back only the failing statement, the transaction stays open
        outcomes = []
        for params in rows:
            try:
                cur = self.conn.execute(sql, _adapt(params))
            except sqlite3.DatabaseError as e:
                outcomes.append(BatchOutcome(ok=False, error=e))
                continue
            outcomes.append(BatchOutcome(ok=True, key=cur.lastrowid if key_column else None))
        return outcomes

    def close(self, commit: bool = True) -> None:
        if self.closed or not self.owns_connection:
            return
        self.closed = True
        try:
            if commit:
                self.conn.commit()
            else:
                self.conn.rollback()
        finally:
            self.conn.close()


def _adapt(params: Sequence[Any]) -> tuple:
    # sqlite3 has no native date type; dates travel as ISO-8601 text
    return tuple(p.isoformat() if isinstance(p, date) else p for p in params)
