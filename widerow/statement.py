"""
Structured statement builder.

Collects the clauses of one statement (selection, source, predicate,
consistency, TTL, write timestamp, ordering, column range, mutations) and
renders them as CQL 2 text. `:name` tokens in string predicates are
substituted with quoted literals from the bound arguments.

    q = (
        Statement("User.get")
        .select(["*"])
        .from_("User")
        .consistency("ONE")
        .where("KEY=:key", {"key": "u1"})
    )
    q.statement()  # "SELECT * FROM User USING CONSISTENCY ONE WHERE KEY='u1'"
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

_TOKEN = re.compile(r":(\w+)")
_IDENTIFIER = re.compile(r"^(\*|[A-Za-z_][A-Za-z0-9_]*|count\(\*\))$")


def quote(value: Any) -> str:
    """Render a Python value as a statement literal."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, datetime):
        return str(int(value.timestamp() * 1000))
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple, set)):
        return ", ".join(quote(item) for item in value)
    text = str(value).replace("'", "''")
    return f"'{text}'"


def column_name(name: str) -> str:
    """Identifiers stay bare; anything else becomes a quoted name."""
    if _IDENTIFIER.match(name):
        return name
    return quote(name)


def substitute(clause: str, args: Optional[Mapping[str, Any]]) -> str:
    """Replace `:token` placeholders with literals; unknown tokens are kept."""
    if not args:
        return clause

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in args:
            return match.group(0)
        return quote(args[name])

    return _TOKEN.sub(replace, clause)


class Statement:
    """
    One statement under construction. Every clause method returns `self`.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self.kind: Optional[str] = None
        self.source: Optional[str] = None
        self.columns: List[str] = []
        self.predicates: List[str] = []
        self.level: Optional[str] = None
        self.ttl_seconds: Optional[int] = None
        self.write_ts: Optional[int] = None
        self.first_count: Optional[int] = None
        self.limit_count: Optional[int] = None
        self.column_range: Optional[tuple] = None
        self.is_reversed = False
        self.into_columns: List[str] = []
        self.values_list: List[Any] = []
        self.assignments: Dict[str, Any] = {}
        self.counters: Dict[str, int] = {}

    # -- statement kinds ------------------------------------------------

    def select(self, columns: Optional[Sequence[str]] = None) -> "Statement":
        self.kind = "select"
        self.columns = list(columns or [])
        return self

    def insert(self, source: str) -> "Statement":
        self.kind = "insert"
        self.source = source
        return self

    def update(self, source: str) -> "Statement":
        self.kind = "update"
        self.source = source
        return self

    def delete(self, columns: Optional[Sequence[str]] = None) -> "Statement":
        self.kind = "delete"
        self.columns = list(columns or [])
        return self

    # -- clauses --------------------------------------------------------

    def from_(self, source: str) -> "Statement":
        self.source = source
        return self

    def where(self, clause: Any, args: Optional[Mapping[str, Any]] = None) -> "Statement":
        """
        Add a predicate.

        A mapping renders each entry as equality, or membership for sequences.
        A string has its `:tokens` substituted from `args`.
        """
        if not clause:
            return self
        if isinstance(clause, Mapping):
            for name, value in clause.items():
                if isinstance(value, (list, tuple, set)):
                    self.predicates.append(f"{column_name(name)} IN ({quote(value)})")
                else:
                    self.predicates.append(f"{column_name(name)}={quote(value)}")
            return self
        self.predicates.append(substitute(str(clause), args))
        return self

    def consistency(self, level: Optional[str]) -> "Statement":
        self.level = level
        return self

    def ttl(self, seconds: Optional[int]) -> "Statement":
        self.ttl_seconds = seconds
        return self

    def timestamp(self, ts: Optional[int]) -> "Statement":
        self.write_ts = ts
        return self

    def first(self, count: Optional[int]) -> "Statement":
        self.first_count = count
        return self

    def limit(self, count: Optional[int]) -> "Statement":
        self.limit_count = count
        return self

    def range(self, start: str = "", end: str = "") -> "Statement":
        self.column_range = (start or "", end or "")
        return self

    def reversed(self, flag: Optional[bool] = True) -> "Statement":
        self.is_reversed = bool(flag)
        return self

    def into(self, columns: Sequence[str]) -> "Statement":
        self.into_columns = list(columns)
        return self

    def values(self, values: Sequence[Any]) -> "Statement":
        self.values_list = list(values)
        return self

    def set(self, assignments: Mapping[str, Any]) -> "Statement":
        self.assignments.update(assignments)
        return self

    def counter(self, deltas: Mapping[str, int]) -> "Statement":
        self.counters.update(deltas)
        return self

    # -- rendering ------------------------------------------------------

    def _using(self) -> str:
        options = []
        if self.level:
            options.append(f"CONSISTENCY {self.level}")
        if self.ttl_seconds:
            options.append(f"TTL {int(self.ttl_seconds)}")
        if self.write_ts is not None:
            options.append(f"TIMESTAMP {int(self.write_ts)}")
        return f" USING {' AND '.join(options)}" if options else ""

    def _where(self) -> str:
        return f" WHERE {' AND '.join(self.predicates)}" if self.predicates else ""

    def statement(self) -> str:
        if self.kind is None or not self.source:
            raise ValueError(f"Incomplete statement '{self.label}': missing kind or source")
        render = getattr(self, f"_render_{self.kind}")
        return render()

    def _render_select(self) -> str:
        parts = ["SELECT"]
        if self.first_count is not None:
            parts.append(f"FIRST {int(self.first_count)}")
        if self.is_reversed:
            parts.append("REVERSED")
        if self.column_range is not None:
            start, end = self.column_range
            parts.append(f"{quote(start)}..{quote(end)}")
        else:
            parts.append(", ".join(column_name(c) for c in self.columns) or "*")
        text = " ".join(parts) + f" FROM {self.source}" + self._using() + self._where()
        if self.limit_count is not None:
            text += f" LIMIT {int(self.limit_count)}"
        return text

    def _render_insert(self) -> str:
        names = ", ".join(column_name(c) for c in self.into_columns)
        values = ", ".join(quote(v) for v in self.values_list)
        return f"INSERT INTO {self.source} ({names}) VALUES ({values})" + self._using()

    def _render_update(self) -> str:
        sets = [f"{column_name(k)}={quote(v)}" for k, v in self.assignments.items()]
        for name, delta in self.counters.items():
            sign = "+" if delta >= 0 else "-"
            sets.append(f"{column_name(name)}={column_name(name)} {sign} {abs(int(delta))}")
        return f"UPDATE {self.source}" + self._using() + f" SET {', '.join(sets)}" + self._where()

    def _render_delete(self) -> str:
        names = ", ".join(column_name(c) for c in self.columns)
        head = f"DELETE {names} FROM" if names else "DELETE FROM"
        return f"{head} {self.source}" + self._using() + self._where()

    def __str__(self) -> str:
        return self.statement()


__all__ = ["Statement", "quote", "column_name", "substitute"]
