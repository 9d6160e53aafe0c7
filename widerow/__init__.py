"""
widerow - typed entities and paged wide rows over a column-family store.

This package maps declared entity types onto column families:

- Entity types with schema attributes, dirty tracking and validation
- Eager loading of belongs-to / has-one / has-many associations
- Model arrays: cursor pagination over one ordered wide row
- Transparent fan-out and merge for rows sharded across several keys

All storage access goes through a `Gateway` wrapping an external driver.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from widerow.config import Settings, get_settings
from widerow.domain.models import Column, Row
from widerow.errors import (
    AssociationError,
    CoercionError,
    PreconditionError,
    StorageError,
    ValidationError,
    WiderowError,
)
from widerow.infrastructure.gateway import Driver, Gateway
from widerow.infrastructure.registry import Registry
from widerow.model import Model
from widerow.model_array import ModelArray
from widerow.schema import Attribute, BelongsTo, BigInteger, HasMany, HasOne
from widerow.strategies.merge import merge_rows
from widerow.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Execution
    "Driver",
    "Gateway",
    "Registry",
    # Types
    "Model",
    "ModelArray",
    "Attribute",
    "BelongsTo",
    "HasOne",
    "HasMany",
    "BigInteger",
    "Column",
    "Row",
    "merge_rows",
    # Errors
    "WiderowError",
    "ValidationError",
    "PreconditionError",
    "CoercionError",
    "StorageError",
    "AssociationError",
    # Logging
    "configure_logging",
    "get_logger",
]
