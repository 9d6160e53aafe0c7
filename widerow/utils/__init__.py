"""
Utilities package for widerow.

Exports shared helpers for logging and timing.
Keep this package lightweight and free of domain-specific logic.
"""

from widerow.utils.logging import configure_logging, get_logger
from widerow.utils.timing import TimingStats, time_block

__all__ = [
    "configure_logging",
    "get_logger",
    "TimingStats",
    "time_block",
]
