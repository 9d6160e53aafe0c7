"""
Wall-clock timing for driver calls.

The gateway wraps every statement in `time_block` so a `timing` event can be
emitted even when the driver reports no latency metadata of its own.

Usage:
    from widerow.utils.timing import time_block

    with time_block("User.find") as stats:
        rows = await driver.execute(statement, args)

    print(stats.duration_ms)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Generator


@dataclass
class TimingStats:
    """
    Container for one timed block.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)

    @property
    def duration_ms(self) -> float:
        return self.duration_seconds * 1000.0


@contextlib.contextmanager
def time_block(label: str) -> Generator[TimingStats, None, None]:
    """
    Measure the wall-clock duration of a block with `perf_counter`.

    The stats are filled in on exit, including when the block raises.
    """
    stats = TimingStats(label=label)
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts


__all__ = ["TimingStats", "time_block"]
