"""
Exceptions raised by the mapping engine.

Every error carries the context needed to diagnose it (type name, field,
query text, failed-row indices, expected vs actual affected rows) so the
caller never has to re-derive metadata to understand what went wrong.
"""


class RowMapperError(Exception):
    """Base class for all rowmapper errors."""


class BindingError(RowMapperError):
    """A field cannot be bound to a result column, or key/version declarations conflict."""

    def __init__(self, message: str, record_type: type = None, field: str = None, query: str = None):
        details = []
        if record_type is not None:
            details.append(f"type={record_type.__name__}")
        if field is not None:
            details.append(f"field={field}")
        if query is not None:
            details.append(f"query={query!r}")
        super().__init__(f"{message} ({', '.join(details)})" if details else message)
        self.record_type = record_type
        self.field = field
        self.query = query


class MalformedQueryError(RowMapperError):
    """Select text could not be parsed."""

    def __init__(self, message: str, query: str):
        super().__init__(f"{message}: {query!r}")
        self.query = query


class IntegrityError(RowMapperError):
    """A fetch by primary key matched more than one row."""

    def __init__(self, record_type: type, key, count: int):
        super().__init__(f"Found {count} {record_type.__name__} rows for key {key!r}")
        self.record_type = record_type
        self.key = key
        self.count = count


class PartialBatchFailureError(RowMapperError):
    """
    Some rows of a batch insert were rejected.

    Rows that succeeded keep their generated keys and persisted flag;
    nothing is rolled back by the engine.
    """

    def __init__(self, failed_indices: list[int], total: int, results: list = None, preview: int = 10):
        shown = " ".join(str(i) for i in failed_indices[:preview])
        if len(failed_indices) > preview:
            shown += " ..."
        super().__init__(
            f"Failed to insert {len(failed_indices)} of {total} rows. Failed rows: {shown}"
        )
        self.failed_indices = list(failed_indices)
        self.total = total
        self.results = results or []


class WriteFailedError(RowMapperError):
    """An update or delete did not affect exactly the expected number of rows."""

    def __init__(self, message: str, statement: str = None, expected: int = None, actual: int = None):
        if expected is not None:
            message = f"{message}: expected {expected} affected row(s), got {actual}"
        if statement is not None:
            message = f"{message} [{statement}]"
        super().__init__(message)
        self.statement = statement
        self.expected = expected
        self.actual = actual


class NotPersistedError(WriteFailedError):
    """A write that needs a stored row was attempted on a record never persisted."""


class MissingVersionError(RowMapperError):
    """An update was attempted on a record whose version field holds no value."""

    def __init__(self, record_type: type, field: str):
        super().__init__(f"{record_type.__name__}.{field} has no version value to advance")
        self.record_type = record_type
        self.field = field


class UnsupportedFieldTypeError(RowMapperError):
    """A declared field type has no binder (only integer, text and date are supported)."""

    def __init__(self, record_type: type, field: str, declared):
        name = getattr(declared, "__name__", repr(declared))
        super().__init__(f"{record_type.__name__}.{field}: unsupported field type {name}")
        self.record_type = record_type
        self.field = field
        self.declared = declared
