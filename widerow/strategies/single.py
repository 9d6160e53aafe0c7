"""
Single-row range strategy: one column-range read per request.
"""

from __future__ import annotations

from typing import Any, List

from widerow.domain.models import Column
from widerow.statement import Statement
from widerow.strategies.abstract import RangeQuery, RangeStrategy


class SingleRowStrategy(RangeStrategy):
    """
    Read a range from one physical row.

    Column families declared with a reversed comparator store names in
    descending order; the physical scan flag is flipped for them so results
    always come back in logical scan order.
    """

    name: str = "single"

    def __init__(self, array_type: Any) -> None:
        self.array_type = array_type

    def statement(self, query: RangeQuery) -> Statement:
        options = self.array_type._options
        q = (
            Statement("ModelArray.range")
            .select()
            .range(query.start, query.end)
            .from_(options.cfname)
            .where(f"{options.key_alias}=:key", {"key": query.key})
            .reversed(query.backward != options.reversed)
            .consistency(self.array_type._consistency("select"))
        )
        if query.count is not None:
            q.first(query.count)
        return q

    async def fetch(self, query: RangeQuery) -> List[Column]:
        rows = await self.array_type.execute(self.statement(query).statement())
        if not rows:
            return []
        return list(rows[0].cols)


__all__ = ["SingleRowStrategy"]
