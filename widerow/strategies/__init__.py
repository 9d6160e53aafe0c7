"""
Range strategies for model arrays.

This module re-exports the interfaces and the concrete strategies so callers
can import from `widerow.strategies` directly, and picks the strategy a model
array type needs.
"""

from typing import Any

from widerow.strategies.abstract import RangeQuery, RangeStrategy
from widerow.strategies.merge import merge_rows
from widerow.strategies.sharded import ShardedStrategy, shard_key
from widerow.strategies.single import SingleRowStrategy


def strategy_for(array_type: Any) -> RangeStrategy:
    """Sharded when the type declares shard suffixes, single-row otherwise."""
    shards = array_type._options.shards
    if shards:
        return ShardedStrategy(array_type, shards)
    return SingleRowStrategy(array_type)


__all__ = [
    # Interfaces
    "RangeQuery",
    "RangeStrategy",
    # Concrete strategies
    "ShardedStrategy",
    "SingleRowStrategy",
    # Helpers
    "merge_rows",
    "shard_key",
    "strategy_for",
]
