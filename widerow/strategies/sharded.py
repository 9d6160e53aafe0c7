"""
Sharded range strategy.

A logical row may be spread over several physical rows, `key` plus
`key:<suffix>` for each declared suffix ('' names the bare key). Every read
fans out to all shards concurrently and the per-shard results are merged
locally. A failing shard fails the read only after its siblings have settled.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, List, Sequence

from widerow.domain.models import Column
from widerow.strategies.abstract import RangeQuery, RangeStrategy
from widerow.strategies.merge import merge_rows
from widerow.strategies.single import SingleRowStrategy
from widerow.utils.logging import get_logger

log = get_logger(__name__)


def shard_key(key: Any, suffix: str) -> str:
    return f"{key}:{suffix}" if suffix else str(key)


class ShardedStrategy(RangeStrategy):
    """
    Fan a range read out over every shard row and merge the results.

    Each shard is asked for the full `count`; the first `count` entries of the
    merge are then exact, since no shard can contribute more than that.
    """

    name: str = "sharded"

    def __init__(self, array_type: Any, shards: Sequence[str]) -> None:
        self.array_type = array_type
        self.shards = list(shards)
        self._single = SingleRowStrategy(array_type)

    def shard_keys(self, key: Any) -> List[str]:
        return [shard_key(key, suffix) for suffix in self.shards]

    async def fetch(self, query: RangeQuery) -> List[Column]:
        keys = self.shard_keys(query.key)
        results = await asyncio.gather(
            *(self._single.fetch(replace(query, key=key)) for key in keys),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        merged = merge_rows(results, descending=query.backward)
        log.debug(
            "Merged shard ranges",
            extra={
                "cfname": self.array_type._options.cfname,
                "key": query.key,
                "shards": len(keys),
                "rows": len(merged),
            },
        )
        if query.count is not None:
            return merged[: query.count]
        return merged


__all__ = ["ShardedStrategy", "shard_key"]
