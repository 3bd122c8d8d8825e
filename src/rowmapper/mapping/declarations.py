"""
Declaration surface for record types.

A record type is a dataclass extending rowmapper.Row. Fields are mapped by
name; `column()` adds the opt-in markers and `select()` supplies explicit
query text:

    @select("select first_name as fname, count(*) as tally from employee group by fname")
    @dataclass
    class EmpFnameCounts(Row):
        count: int | None = column(order=2)
        fname: str | None = None
"""

import dataclasses
import types
import typing
from dataclasses import dataclass
from datetime import date
from enum import Enum

from rowmapper.errors import UnsupportedFieldTypeError

META_KEY = "rowmapper"
SELECT_ATTR = "__select__"

ROW_NUM_FIELD = "row_num"
BOOKKEEPING_FIELDS = frozenset({ROW_NUM_FIELD, "persisted", "modified"})


class SemanticType(Enum):
    INTEGER = "integer"
    TEXT = "text"
    DATE = "date"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    semantic_type: SemanticType
    python_type: type
    primary_key: bool = False
    order: int | None = None
    version: bool = False
    db_generated: bool = False


def column(
    default=None,
    *,
    primary_key: bool = False,
    order: int | None = None,
    version: bool = False,
    db_generated: bool = False,
):
    """
    Declare a mapped field with explicit markers.

    Args:
        default: Field default (None unless given)
        primary_key: Field is the primary key even though it isn't named "id"
        order: 1-based result column position, bypassing name matching
        version: Field is an optimistic version counter (int) or timestamp (date)
        db_generated: Version value is produced by the database, not the engine
    """
    if order is not None and order < 1:
        raise ValueError(f"Column order is 1-based, got {order}")
    return dataclasses.field(
        default=default,
        metadata={
            META_KEY: {
                "primary_key": primary_key,
                "order": order,
                "version": version,
                "db_generated": db_generated,
            }
        },
    )


def select(query: str):
    """Class decorator attaching explicit select text to a record type."""

    def decorate(cls):
        setattr(cls, SELECT_ATTR, query)
        return cls

    return decorate


def explicit_query(record_type: type) -> str | None:
    return getattr(record_type, SELECT_ATTR, None)


def _unwrap_optional(hint):
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def semantic_type_of(record_type: type, name: str, hint) -> SemanticType:
    hint = _unwrap_optional(hint)
    # bool is an int subclass but has no binder
    if hint is bool:
        raise UnsupportedFieldTypeError(record_type, name, hint)
    if hint is int:
        return SemanticType.INTEGER
    if hint is str:
        return SemanticType.TEXT
    if isinstance(hint, type) and issubclass(hint, date):
        return SemanticType.DATE
    raise UnsupportedFieldTypeError(record_type, name, hint)


def describe_fields(record_type: type) -> tuple[FieldSpec, ...]:
    """
    Describe the mapped fields of a record type in declaration order.

    Row bookkeeping fields (row_num, persisted, modified) are excluded.
    """
    if not dataclasses.is_dataclass(record_type):
        raise TypeError(f"{record_type.__name__} must be a dataclass to be mapped")

    hints = typing.get_type_hints(record_type)
    specs = []
    for f in dataclasses.fields(record_type):
        if f.name in BOOKKEEPING_FIELDS:
            continue
        hint = hints.get(f.name, f.type)
        markers = f.metadata.get(META_KEY, {})
        specs.append(
            FieldSpec(
                name=f.name,
                semantic_type=semantic_type_of(record_type, f.name, hint),
                python_type=_unwrap_optional(hint),
                primary_key=markers.get("primary_key", False),
                order=markers.get("order"),
                version=markers.get("version", False),
                db_generated=markers.get("db_generated", False),
            )
        )
    return tuple(specs)
