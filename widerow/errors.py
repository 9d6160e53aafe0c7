"""
Error taxonomy for widerow.

Absence of a row is not an error: `get` returns None and `find` filters the
row out. Everything raised by this package derives from `WiderowError`.
"""

from __future__ import annotations

from typing import Dict, List, Optional


class WiderowError(Exception):
    """Base class for all widerow errors."""


class ValidationError(WiderowError):
    """
    Per-attribute validation messages collected by `Model.validate()`.

    Raised by `create`/`update` instead of persisting; the instance keeps its
    state so the caller can fix the attributes and retry.
    """

    def __init__(self, errors: Dict[str, List[str]]) -> None:
        self.errors = errors
        summary = "; ".join(f"{prop}: {', '.join(msgs)}" for prop, msgs in errors.items())
        super().__init__(f"Validation failed ({summary})")


class PreconditionError(WiderowError):
    """A call was made in a state or with a declaration that cannot work."""


class CoercionError(WiderowError, ValueError):
    """A stored value could not be converted to its declared attribute type."""


class StorageError(WiderowError):
    """A driver call failed. Always chained to the driver's exception."""

    def __init__(self, message: str, statement: Optional[str] = None) -> None:
        self.statement = statement
        super().__init__(message)


class AssociationError(WiderowError):
    """One task of an eager-load plan failed; the plan fails as a unit."""

    def __init__(self, association: str, cfname: str) -> None:
        self.association = association
        self.cfname = cfname
        super().__init__(f"Failed to load association {cfname}.{association}")


__all__ = [
    "WiderowError",
    "ValidationError",
    "PreconditionError",
    "CoercionError",
    "StorageError",
    "AssociationError",
]
