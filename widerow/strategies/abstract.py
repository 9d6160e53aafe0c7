"""
Range fetch interfaces for model arrays.

A strategy turns one logical range request into storage reads and returns the
columns in logical scan order: ascending names for a forward scan, descending
for a backward one, whatever the column family's comparator. Pagination
accounting happens in `widerow.model_array` on top of that contract.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, runtime_checkable

from widerow.domain.models import Column


@dataclass(frozen=True)
class RangeQuery:
    """
    One logical column-range read on a single row key.

    Attributes
    ----------
    key : Any
        Logical row key (shard suffixes are added by the strategy).
    start, end : str
        Bounds in scan order; '' is open-ended.
    count : int, optional
        Maximum columns to return. None reads the whole range.
    backward : bool
        Scan toward smaller names.
    """

    key: Any
    start: str = ""
    end: str = ""
    count: Optional[int] = None
    backward: bool = False


@runtime_checkable
class RangeStrategy(Protocol):
    """
    Common interface of range strategies.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    """

    name: str

    async def fetch(self, query: RangeQuery) -> List[Column]:
        """
        Read one logical range.

        Returns
        -------
        list of Column
            At most `query.count` columns, in logical scan order.
        """
        ...


__all__ = ["RangeQuery", "RangeStrategy"]
