"""
Mapping

Declarations on record types and the per-type metadata derived from them.
"""

from rowmapper.mapping.declarations import FieldSpec, SemanticType, column, describe_fields, select
from rowmapper.mapping.metadata import TypeMetadata, clear_cache, resolve

__all__ = [
    "FieldSpec",
    "SemanticType",
    "TypeMetadata",
    "clear_cache",
    "column",
    "describe_fields",
    "resolve",
    "select",
]
