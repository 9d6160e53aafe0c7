"""
Domain package for widerow.

Exports the wire records and option models shared by the gateway, the
materializer and the range strategies.
"""

from widerow.domain.models import (
    ArrayOptions,
    Column,
    QueryMetadata,
    QuerySpec,
    Row,
    TypeOptions,
)

__all__ = [
    "ArrayOptions",
    "Column",
    "QueryMetadata",
    "QuerySpec",
    "Row",
    "TypeOptions",
]
