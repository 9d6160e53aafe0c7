"""
K-way merge of per-shard column sequences.

Every input is sorted in scan order and free of duplicate names. The output is
one sorted, duplicate-free sequence. When the same name appears in several
shards the entry with the strictly later write timestamp survives; on equal
timestamps the lower shard index wins, so the result is deterministic.
"""

from __future__ import annotations

from typing import Any, List, Sequence


def _timestamp(col: Any) -> int:
    # unknown timestamps lose against any real write
    return col.timestamp if col.timestamp is not None else 0


def _before(a: Any, b: Any, descending: bool) -> bool:
    return a.name > b.name if descending else a.name < b.name


def merge_rows(shards: Sequence[Sequence[Any]], descending: bool = False) -> List[Any]:
    """
    Merge `shards` into one ordered sequence.

    Parameters
    ----------
    shards : sequence of column sequences
        One scan-ordered sequence per shard, each item exposing `name` and
        `timestamp`.
    descending : bool
        Whether the inputs are ordered by descending name.
    """
    cursors = [0] * len(shards)
    merged: List[Any] = []

    while True:
        pick = -1
        for index, cols in enumerate(shards):
            if cursors[index] >= len(cols):
                continue
            candidate = cols[cursors[index]]
            if pick < 0:
                pick = index
                continue
            best = shards[pick][cursors[pick]]
            if candidate.name == best.name:
                # collision: drop the older entry for good
                if _timestamp(candidate) > _timestamp(best):
                    cursors[pick] += 1
                    pick = index
                else:
                    cursors[index] += 1
            elif _before(candidate, best, descending):
                pick = index

        if pick < 0:
            return merged
        merged.append(shards[pick][cursors[pick]])
        cursors[pick] += 1


__all__ = ["merge_rows"]
