"""
Per-type mapping metadata.

resolve() derives a TypeMetadata for a record type once and caches it for
the lifetime of the process. The cache is the only shared mutable state in
the engine; it is filled under a lock so concurrent first use of a type
always converges on a single metadata instance.
"""

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from rowmapper.errors import BindingError
from rowmapper.mapping.declarations import FieldSpec, describe_fields, explicit_query
from rowmapper.naming import to_camel_case, to_underscore
from rowmapper.observability import get_logger
from rowmapper.query.builder import build_select, parse_columns

log = get_logger(__name__)


@dataclass(frozen=True)
class TypeMetadata:
    record_type: type
    table: str | None
    query: str
    columns: tuple[str, ...]
    column_to_field: Mapping[int, FieldSpec]
    primary_key: FieldSpec | None
    pk_camel_name: str | None
    pk_column: str | None
    version: FieldSpec | None
    version_column: str | None

    @property
    def type_name(self) -> str:
        return self.record_type.__name__

    def positions(self) -> list[int]:
        """Bound result-column positions in ascending order."""
        return sorted(self.column_to_field)

    def column_at(self, position: int) -> str:
        return self.columns[position - 1]

    def position_of(self, field_name: str) -> int:
        for position, spec in self.column_to_field.items():
            if spec.name == field_name:
                return position
        raise BindingError("Field is not bound to a result column", self.record_type, field_name, self.query)

    def require_primary_key(self) -> FieldSpec:
        if self.primary_key is None:
            raise BindingError("No primary key field declared", self.record_type, query=self.query)
        if self.table is None:
            raise BindingError("Query has no plain table to write to", self.record_type, query=self.query)
        return self.primary_key


# =============================================================================
# Cache
# =============================================================================

_cache: dict[type, TypeMetadata] = {}
_cache_lock = threading.Lock()


def resolve(record_type: type) -> TypeMetadata:
    """
    Get the metadata for a record type, deriving it on first use.

    Raises:
        BindingError: a field matches no result column, or key/version
            declarations conflict. Nothing is cached in that case.
        MalformedQueryError: the explicit select text cannot be parsed
        UnsupportedFieldTypeError: a field type has no binder
    """
    metadata = _cache.get(record_type)
    if metadata is not None:
        return metadata
    with _cache_lock:
        metadata = _cache.get(record_type)
        if metadata is None:
            metadata = derive(record_type)
            _cache[record_type] = metadata
        return metadata


def clear_cache() -> None:
    """Forget every resolved type. Types are assumed stable; meant for tests."""
    with _cache_lock:
        _cache.clear()


# =============================================================================
# Derivation
# =============================================================================


def _match_column(spec: FieldSpec, columns: tuple[str, ...]) -> int | None:
    # First match wins: a field name contained in several columns is not
    # reported as ambiguous.
    needle = spec.name.lower()
    for position, column in enumerate(columns, start=1):
        if needle in column.lower():
            return position
    return None


def derive(record_type: type) -> TypeMetadata:
    """Build metadata for a record type without touching the cache."""
    specs = describe_fields(record_type)

    query = explicit_query(record_type)
    if query is None:
        query = build_select(to_underscore(record_type.__name__), [to_underscore(s.name) for s in specs])
        log.debug("select_generated", record_type=record_type.__name__, query=query)

    parsed = parse_columns(query)

    column_to_field: dict[int, FieldSpec] = {}
    primary_key = version = None
    pk_position = version_position = None
    for spec in specs:
        if spec.order is not None:
            if spec.order > len(parsed.columns):
                raise BindingError(
                    f"Column order {spec.order} exceeds the {len(parsed.columns)} result columns",
                    record_type,
                    spec.name,
                    query,
                )
            position = spec.order
        else:
            position = _match_column(spec, parsed.columns)
            if position is None:
                raise BindingError("Cannot match field to a query result column", record_type, spec.name, query)
        replaced = column_to_field.get(position)
        if replaced is not None:
            log.warning(
                "field_binding_replaced",
                record_type=record_type.__name__,
                column=parsed.columns[position - 1],
                dropped=replaced.name,
                kept=spec.name,
            )
        column_to_field[position] = spec

        is_pk = spec.name == "id" or spec.primary_key
        if is_pk and spec.version:
            raise BindingError("Field cannot be both primary key and version", record_type, spec.name, query)
        if is_pk:
            if primary_key is not None:
                raise BindingError(
                    f"Multiple primary key fields ({primary_key.name}, {spec.name})", record_type, spec.name, query
                )
            primary_key, pk_position = spec, position
        elif spec.version:
            if version is not None:
                raise BindingError(
                    f"Multiple version fields ({version.name}, {spec.name})", record_type, spec.name, query
                )
            version, version_position = spec, position

    log.debug(
        "metadata_resolved",
        record_type=record_type.__name__,
        table=parsed.table,
        columns=parsed.columns,
        primary_key=primary_key.name if primary_key else None,
        version=version.name if version else None,
    )
    return TypeMetadata(
        record_type=record_type,
        table=parsed.table,
        query=query,
        columns=parsed.columns,
        column_to_field=MappingProxyType(dict(sorted(column_to_field.items()))),
        primary_key=primary_key,
        pk_camel_name=to_camel_case(primary_key.name) if primary_key else None,
        pk_column=parsed.columns[pk_position - 1] if primary_key else None,
        version=version,
        version_column=parsed.columns[version_position - 1] if version else None,
    )
