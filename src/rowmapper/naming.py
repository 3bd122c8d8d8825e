"""Conversions between record-type names, field names and SQL identifiers."""

import re

ROW_SUFFIX = "Row"

_CASE_TRANSITION = re.compile(r"(?<=[a-z])(?=[A-Z])")


def to_underscore(name: str) -> str:
    """
    Convert a mixed-case identifier to lowercase underscore form.

    Strips a trailing "Row" so a type named EmployeeRow maps to the
    employee table. Only lowercase-to-uppercase transitions split words,
    so "myAJAXCall" becomes "my_ajaxcall".
    """
    if name.endswith(ROW_SUFFIX):
        name = name[: -len(ROW_SUFFIX)]
    return _CASE_TRANSITION.sub("_", name).lower()


def to_camel_case(name: str, capitalize_first: bool = False) -> str:
    """
    Convert user_id to userId, or to UserId with capitalize_first.
    """
    words = [w for w in name.lower().split("_") if w]
    parts = []
    for i, word in enumerate(words):
        if i == 0 and not capitalize_first:
            parts.append(word)
        else:
            parts.append(word[0].upper() + word[1:])
    return "".join(parts)


def to_field_name(column: str) -> str:
    """Convert a result column token (firstName, e.first_name) to field casing."""
    column = column.strip().rsplit(".", 1)[-1]
    return _CASE_TRANSITION.sub("_", column).lower()
