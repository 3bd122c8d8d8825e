"""
Insert, update, delete and fetch-by-key for mapped records.

Every operation releases its session when done, on success and on every
error path, unless the executor was created with keep_open=True for
chaining several operations on one session.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Sequence

from rowmapper.config import config
from rowmapper.errors import (
    BindingError,
    IntegrityError,
    MissingVersionError,
    NotPersistedError,
    PartialBatchFailureError,
    WriteFailedError,
)
from rowmapper.mapping.declarations import FieldSpec, SemanticType
from rowmapper.mapping.metadata import TypeMetadata, resolve
from rowmapper.observability import get_logger
from rowmapper.query.builder import build_delete, build_insert, build_update
from rowmapper.query.cursor import Cursor
from rowmapper.session import Session

log = get_logger(__name__)


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a write, mirroring the flag and version changes made on the record."""

    record: Any
    persisted: bool
    key: Any = None
    version: Any = None
    affected: int = 0


def _now_for(spec: FieldSpec):
    return datetime.now() if issubclass(spec.python_type, datetime) else date.today()


def _db_generated(spec: FieldSpec) -> bool:
    # The database, not the engine, sets this column; it is never written
    return spec.version and spec.db_generated


class CrudExecutor:
    """
    Writes records through a session.

    Usage:
        executor = CrudExecutor(session)
        executor.insert([EmployeeRow(first_name="f1", last_name="l1")])
    """

    def __init__(self, session: Session, keep_open: bool = False):
        self.session = session
        self.keep_open = keep_open

    @contextmanager
    def _released(self):
        # Succeeded batch rows are committed even when the batch reports failures
        try:
            yield
        except PartialBatchFailureError:
            self._release(commit=True)
            raise
        except Exception:
            self._release(commit=False)
            raise
        self._release(commit=True)

    def _release(self, commit: bool) -> None:
        if not self.keep_open:
            self.session.close(commit=commit)

    # =========================================================================
    # Fetch
    # =========================================================================

    def fetch_by_key(self, record_type: type, key: Any):
        """
        Get the record whose primary key equals key.

        Returns:
            The record, or None if no row matches

        Raises:
            IntegrityError: more than one row matched
        """
        with self._released():
            metadata = resolve(record_type)
            metadata.require_primary_key()
            cursor = Cursor(record_type, self.session, keep_open=True)
            cursor.filter(f"{metadata.pk_column} = {self.session.placeholder}", key)
            rows = cursor.all()
            if len(rows) > 1:
                raise IntegrityError(record_type, key, len(rows))
            return rows[0] if rows else None

    # =========================================================================
    # Insert
    # =========================================================================

    def _insert_value(self, metadata: TypeMetadata, spec: FieldSpec, record) -> Any:
        value = getattr(record, spec.name)
        if spec.version and not spec.db_generated and value is None:
            value = 0 if spec.semantic_type is SemanticType.INTEGER else _now_for(spec)
            # The record reflects what is actually persisted
            setattr(record, spec.name, value)
        return value

    def _insert_positions(self, metadata: TypeMetadata, with_key: bool) -> list[int]:
        pk_position = metadata.position_of(metadata.primary_key.name)
        positions = []
        for position in range(1, len(metadata.columns) + 1):
            if position == pk_position and not with_key:
                continue
            spec = metadata.column_to_field.get(position)
            if spec is None:
                raise BindingError(
                    f"Column {metadata.column_at(position)} has no bound field to write",
                    metadata.record_type,
                    query=metadata.query,
                )
            if _db_generated(spec):
                continue
            positions.append(position)
        return positions

    def insert(self, records: Sequence) -> list[WriteResult]:
        """
        Insert records of one type as a single batch.

        Generated keys are assigned to the primary key field of each row
        that succeeded. Rows that carry a key value and rows that don't are
        sent as two statements, the latter without the primary key column;
        outcomes are reported in submission order either way. A version
        column produced by the database is never written.

        Returns:
            One WriteResult per record

        Raises:
            PartialBatchFailureError: some rows were rejected; the others
                keep their keys and are not rolled back
        """
        with self._released():
            if not records:
                raise ValueError("Cannot insert an empty list of records")
            if any(r is None for r in records):
                raise ValueError("Cannot insert a None record")
            record_type = type(records[0])
            if any(type(r) is not record_type for r in records):
                raise ValueError("A batch must contain records of a single type")

            metadata = resolve(record_type)
            pk = metadata.require_primary_key()
            keyed = [i for i, r in enumerate(records) if getattr(r, pk.name) is not None]
            unkeyed = [i for i, r in enumerate(records) if getattr(r, pk.name) is None]

            outcomes = [None] * len(records)
            for indices, with_key in ((keyed, True), (unkeyed, False)):
                if not indices:
                    continue
                positions = self._insert_positions(metadata, with_key)
                sql = build_insert(metadata.table, [metadata.column_at(p) for p in positions], self.session.placeholder)
                log.debug("insert_statement", record_type=metadata.type_name, sql=sql, rows=len(indices))

                rows = [
                    [self._insert_value(metadata, metadata.column_to_field[p], records[i]) for p in positions]
                    for i in indices
                ]
                batch = self.session.execute_batch(sql, rows, key_column=metadata.pk_column)
                for index, outcome in zip(indices, batch):
                    outcomes[index] = outcome

            results = []
            failed = []
            for index, (record, outcome) in enumerate(zip(records, outcomes)):
                if not outcome.ok:
                    failed.append(index)
                    results.append(WriteResult(record=record, persisted=False))
                    continue
                if outcome.key is not None and getattr(record, pk.name) is None:
                    setattr(record, pk.name, outcome.key)
                record.persisted = True
                results.append(
                    WriteResult(
                        record=record,
                        persisted=True,
                        key=getattr(record, pk.name),
                        version=getattr(record, metadata.version.name) if metadata.version else None,
                        affected=1,
                    )
                )

            if failed:
                log.warning(
                    "insert_batch_partial_failure",
                    record_type=metadata.type_name,
                    failed=failed[: config.failed_row_preview],
                    failed_count=len(failed),
                    total=len(records),
                )
                raise PartialBatchFailureError(failed, len(records), results, preview=config.failed_row_preview)
            return results

    # =========================================================================
    # Update
    # =========================================================================

    def _next_version(self, metadata: TypeMetadata, record) -> Any:
        spec = metadata.version
        current = getattr(record, spec.name)
        if current is None:
            raise MissingVersionError(metadata.record_type, spec.name)
        if spec.semantic_type is SemanticType.INTEGER:
            return current + 1
        return _now_for(spec)

    def update(self, record) -> WriteResult:
        """
        Write every mapped field of a record to its row.

        An engine-managed version field is advanced (integer + 1, date to
        now) and the new value is written back to the record on success.

        Raises:
            MissingVersionError: version field holds no value
            WriteFailedError: the update did not affect exactly one row
        """
        with self._released():
            if record is None:
                raise ValueError("Cannot update a None record")
            metadata = resolve(type(record))
            pk = metadata.require_primary_key()

            version = metadata.version
            new_version = None
            if version is not None and not version.db_generated:
                new_version = self._next_version(metadata, record)

            positions = [p for p in metadata.positions() if not _db_generated(metadata.column_to_field[p])]
            params = []
            for position in positions:
                spec = metadata.column_to_field[position]
                if new_version is not None and spec.version:
                    params.append(new_version)
                else:
                    params.append(getattr(record, spec.name))
            key = getattr(record, pk.name)
            params.append(key)

            sql = build_update(
                metadata.table, [metadata.column_at(p) for p in positions], metadata.pk_column, self.session.placeholder
            )
            log.debug("update_statement", record_type=metadata.type_name, sql=sql, key=key)
            affected = self.session.execute(sql, params)
            if affected != 1:
                log.warning("update_failed", record_type=metadata.type_name, key=key, affected=affected)
                raise WriteFailedError(f"Update of {metadata.type_name} {key!r} failed", sql, 1, affected)

            if new_version is not None:
                setattr(record, version.name, new_version)
            return WriteResult(
                record=record,
                persisted=record.persisted,
                key=key,
                version=getattr(record, version.name) if version else None,
                affected=affected,
            )

    # =========================================================================
    # Delete
    # =========================================================================

    def delete(self, record) -> WriteResult:
        """
        Delete the row of a persisted record and clear its persisted flag.

        Raises:
            NotPersistedError: record was never persisted (database not contacted)
            WriteFailedError: the delete did not affect exactly one row
        """
        with self._released():
            if record is None:
                raise ValueError("Cannot delete a None record")
            metadata = resolve(type(record))
            pk = metadata.require_primary_key()
            key = getattr(record, pk.name)
            if not record.persisted:
                raise NotPersistedError(f"{metadata.type_name} {metadata.pk_camel_name}={key!r} is not persisted")

            sql = build_delete(metadata.table, metadata.pk_column, self.session.placeholder)
            log.debug("delete_statement", record_type=metadata.type_name, sql=sql, key=key)
            affected = self.session.execute(sql, [key])
            if affected != 1:
                log.warning("delete_failed", record_type=metadata.type_name, key=key, affected=affected)
                raise WriteFailedError(f"Delete of {metadata.type_name} {key!r} failed", sql, 1, affected)

            record.persisted = False
            return WriteResult(record=record, persisted=False, key=key, affected=affected)
