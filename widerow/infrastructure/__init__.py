"""
Infrastructure package for widerow.

Centralizes the driver boundary (execution gateway) and the type registry.
Keep this layer focused on I/O and bookkeeping, decoupled from the mapping
logic in the model modules.
"""

from widerow.infrastructure.gateway import EVENTS, Driver, Gateway
from widerow.infrastructure.registry import Registry

__all__ = [
    "EVENTS",
    "Driver",
    "Gateway",
    "Registry",
]
