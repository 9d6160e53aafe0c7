"""
Model arrays: one logical wide row addressed by a key, read in pages.

    class Timeline(ModelArray, gateway=gateway, cfname="Timeline", primary="userId"):
        pass

    timeline = Timeline("u1")
    await timeline.range(first=20)        # first page
    await timeline.next(20)               # following page, appended
    await timeline.prev(20)               # preceding page, prepended

Rows are always held in ascending column-name order, whatever the storage
comparator or the scan direction used to fetch them.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from widerow.domain.models import ArrayOptions, Column
from widerow.errors import PreconditionError
from widerow.model import Declared, now_ms
from widerow.statement import Statement
from widerow.strategies import RangeQuery, RangeStrategy, strategy_for
from widerow.utils.logging import get_logger

log = get_logger(__name__)

# sorts after the name it is appended to and before anything else
SUCCESSOR = "\0"


class RangeArgs(BaseModel):
    """Validated shape of a `range`/`next`/`prev` request."""

    start: str = ""
    end: str = ""
    first: Optional[int] = None
    reversed: bool = False


def _range_args(spec: Any, kwargs: Mapping[str, Any]) -> RangeArgs:
    # a bare count is sugar for {"first": n}
    if isinstance(spec, int) and not isinstance(spec, bool):
        spec = {"first": spec}
    merged: Dict[str, Any] = dict(spec or {})
    merged.update(kwargs)
    return RangeArgs.model_validate(merged)


def _as_column(row: Any) -> Column:
    if isinstance(row, Column):
        return row
    if isinstance(row, Mapping):
        return Column.model_validate(row)
    raise PreconditionError(f"Cannot use {type(row).__name__} as a column; pass a mapping with 'name'")


class ModelArray(Declared):
    """
    Base class of wide-row collection types.

    Class keywords: `gateway`, `cfname`, `key_alias`, `primary` (public name of
    the key, default `key`), `consistency`, `reversed` (the column family has
    a reversed comparator) and `shards` (row suffixes, '' for the bare key).
    """

    __type__ = "ModelArray"
    _options: ArrayOptions = ArrayOptions(cfname="ModelArray")

    def __init_subclass__(
        cls,
        gateway: Any = None,
        cfname: Optional[str] = None,
        key_alias: Optional[str] = None,
        primary: Optional[str] = None,
        consistency: Optional[Mapping[str, str]] = None,
        reversed: Optional[bool] = None,
        shards: Optional[Sequence[str]] = None,
        abstract: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        cls._bind(gateway)

        parent = cls._options if cls.__mro__[1] is not ModelArray else None
        primary = primary or (parent.primary if parent else "key")
        if hasattr(ModelArray, primary):
            raise PreconditionError(
                f"{cls.__name__}.{primary} already exists on this class. Please choose a different name."
            )
        cls._options = ArrayOptions(
            cfname=cfname or cls.__name__,
            key_alias=key_alias or (parent.key_alias if parent else cls._default_key_alias()),
            primary=primary,
            consistency=dict(consistency or (parent.consistency if parent else {})),
            reversed=reversed if reversed is not None else (parent.reversed if parent else False),
            shards=list(shards) if shards is not None else (parent.shards if parent else None),
        )
        setattr(cls, primary, property(lambda self: self._key))
        cls._register(abstract)

    @classmethod
    def primary(cls) -> str:
        return cls._options.primary

    def __init__(self, key: Any = None) -> None:
        self._key = key if key is not None else str(uuid.uuid4())
        self._ttl: Optional[int] = None
        self._created = False
        self._deleted = False
        self._strategy: RangeStrategy = strategy_for(type(self))
        self.reset()

    def row_key(self) -> Any:
        return self._key

    def reset(self) -> None:
        """Forget rows, the stored range and the page flags; keep the key."""
        self._rows: List[Column] = []
        self._args: Optional[RangeArgs] = None
        self._has_next: Optional[bool] = None
        self._has_prev: Optional[bool] = None

    # -- reading --------------------------------------------------------

    async def range(self, spec: Union[int, Mapping[str, Any], None] = None, **kwargs: Any) -> List[Column]:
        """
        Start a fresh read of this row and return the first page.

        `spec` keys: `start`, `end`, `first` (page size) and `reversed` (read
        the page that ends at `start`, scanning toward smaller names). An int
        is a page size.
        """
        args = _range_args(spec, kwargs)
        self.reset()
        self._args = args
        if args.reversed:
            page = await self._backward(args.start, args.end, args.first, anchor=None)
            if not args.start and args.first is not None:
                self._has_next = False
            return page
        page = await self._forward(args.start, args.end, args.first)
        if not args.start and args.first is not None:
            self._has_prev = False
        return page

    async def next(self, spec: Union[int, Mapping[str, Any], None] = None, **kwargs: Any) -> List[Column]:
        """Append and return the page after the last known column."""
        args = self._continuation("next", spec, kwargs)
        start = self._rows[-1].name + SUCCESSOR
        return await self._forward(start, args.end, args.first)

    async def prev(self, spec: Union[int, Mapping[str, Any], None] = None, **kwargs: Any) -> List[Column]:
        """Prepend and return the page before the first known column."""
        args = self._continuation("prev", spec, kwargs)
        anchor = self._rows[0].name
        return await self._backward(anchor, args.end, args.first, anchor=anchor)

    def _bound(self, name: str) -> str:
        """The stored `end`, when it bounds this continuation's direction."""
        forward = not self._args.reversed
        return self._args.end if forward == (name == "next") else ""

    def _continuation(self, name: str, spec: Any, kwargs: Mapping[str, Any]) -> RangeArgs:
        if self._args is None or not self._rows:
            raise PreconditionError(f"Must call range() before calling {name}()")
        args = _range_args(spec, kwargs)
        defaults: Dict[str, Any] = {}
        if args.first is None:
            defaults["first"] = self._args.first
        if not args.end:
            defaults["end"] = self._bound(name)
        return args.model_copy(update=defaults)

    async def _forward(self, start: str, end: str, first: Optional[int]) -> List[Column]:
        # one extra column tells whether another page exists
        count = first + 1 if first is not None else None
        cols = await self._strategy.fetch(RangeQuery(key=self._key, start=start, end=end, count=count))
        if first is not None:
            self._has_next = len(cols) > first
            cols = cols[:first]
        self._rows.extend(cols)
        return cols

    async def _backward(
        self, start: str, end: str, first: Optional[int], anchor: Optional[str]
    ) -> List[Column]:
        # the scan starts at the anchor itself, which is already held
        count = None
        if first is not None:
            count = first + 1 + (1 if anchor is not None else 0)
        query = RangeQuery(key=self._key, start=start, end=end, count=count, backward=True)
        cols = await self._strategy.fetch(query)
        if anchor is not None and cols and cols[0].name == anchor:
            cols = cols[1:]
        if first is not None:
            self._has_prev = len(cols) > first
            cols = cols[:first]
        cols.reverse()
        self._rows[:0] = cols
        return cols

    # -- accessors ------------------------------------------------------

    def row_count(self) -> int:
        return len(self._rows)

    def rows(self) -> List[Column]:
        return list(self._rows)

    def row(self, name: Union[str, int, None]) -> Optional[Column]:
        """A row by column name, or by index into the held rows."""
        if name is None:
            return None
        if isinstance(name, str):
            for row in self._rows:
                if row.name == name:
                    return row
            return None
        if 0 <= name < len(self._rows):
            return self._rows[name]
        return None

    def has_next(self) -> bool:
        """False only once a bounded read proved there is no next page."""
        return self._has_next is not False

    def has_prev(self) -> bool:
        return self._has_prev is not False

    @property
    def created(self) -> bool:
        return self._created

    @property
    def deleted(self) -> bool:
        return self._deleted

    def __iter__(self) -> Iterator[Column]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._key!r} rows={len(self._rows)}>"

    def to_serializable(self) -> Dict[str, Any]:
        return {
            self.primary(): self._key,
            "rows": [row.model_dump() for row in self._rows],
        }

    # -- writing --------------------------------------------------------

    def set(self, rows: Union[Column, Mapping[str, Any], Sequence[Any]]) -> None:
        """
        Stage rows for writing: same-named rows are replaced, then all rows
        are sorted by name.
        """
        if isinstance(rows, (Column, Mapping)):
            rows = [rows]
        incoming = [_as_column(row) for row in rows]
        names = {row.name for row in incoming}
        kept = [row for row in self._rows if row.name not in names]
        self._rows = sorted(kept + incoming, key=lambda row: row.name)

    def ttl(self, seconds: Optional[int]) -> None:
        """TTL for the next create/update only."""
        self._ttl = seconds

    def _apply_ttl(self, q: Statement) -> None:
        if self._ttl:
            q.ttl(self._ttl)
            self._ttl = None

    async def create(self) -> "ModelArray":
        """Insert the held rows as columns of this key."""
        options = self._options
        into = [options.key_alias] + [row.name for row in self._rows]
        values = [self._key] + [row.value for row in self._rows]

        q = Statement("ModelArray.create").insert(options.cfname).into(into).values(values)
        q.consistency(self._consistency("insert"))
        self._apply_ttl(q)
        q.timestamp(now_ms())

        await self.execute(q.statement())
        self._created = True
        return self

    async def update(self, rows: Any = None) -> "ModelArray":
        """Write every held row (after staging `rows`, if given)."""
        if rows is not None:
            self.set(rows)
        if not self._rows:
            return self

        options = self._options
        q = Statement("ModelArray.update").update(options.cfname)
        q.set({row.name: row.value for row in self._rows})
        q.where(f"{options.key_alias}=:key", {"key": self._key})
        q.consistency(self._consistency("update"))
        self._apply_ttl(q)
        q.timestamp(now_ms())

        await self.execute(q.statement())
        return self

    async def delete(self, columns: Union[str, Sequence[str], None] = None) -> "ModelArray":
        """
        Delete the given columns of this key, or the whole row.

        Deleting the whole row marks the array deleted; deleting columns drops
        them from the held rows.
        """
        if isinstance(columns, str):
            columns = [columns]
        columns = list(columns or [])

        options = self._options
        q = Statement("ModelArray.delete").delete(columns).from_(options.cfname)
        q.where(f"{options.key_alias}=:key", {"key": self._key})
        q.consistency(self._consistency("delete"))
        q.timestamp(now_ms())

        await self.execute(q.statement())
        if columns:
            dropped = set(columns)
            self._rows = [row for row in self._rows if row.name not in dropped]
        else:
            self._deleted = True
        return self


__all__ = ["ModelArray", "RangeArgs", "SUCCESSOR"]
