"""
Pytest configuration for widerow.

Provides fixtures for:
- A scripted driver that records statements and replays queued results
- An in-memory column-family driver for end-to-end flows
- Gateways bound to either, with retry backoff disabled
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import pytest

from widerow.config import Settings
from widerow.domain.models import Column, Row
from widerow.infrastructure.gateway import Gateway


def make_row(key: Any, *cols: Tuple[Any, ...]) -> Row:
    """Build a row from (name, value) or (name, value, timestamp) tuples."""
    return Row(
        key=key,
        cols=[Column(name=c[0], value=c[1], timestamp=c[2] if len(c) > 2 else None) for c in cols],
    )


class FakeDriver:
    """
    Records every statement and answers from a queue, a handler, or [].

    `failures` are raised, in order, before anything is answered. `delay` maps a
    statement to seconds to sleep first; `completed` lists answered statements.
    """

    def __init__(self) -> None:
        self.statements: List[str] = []
        self.results: List[List[Row]] = []
        self.failures: List[BaseException] = []
        self.handler: Optional[Callable[[str], List[Row]]] = None
        self.metadata: Optional[Dict[str, Any]] = None
        self.delay: Optional[Callable[[str], float]] = None
        self.completed: List[str] = []

    def queue(self, *results: List[Row]) -> None:
        self.results.extend(results)

    async def execute(self, statement: str, args: Sequence[Any]) -> Tuple[List[Row], Any]:
        self.statements.append(statement)
        if self.delay is not None:
            await asyncio.sleep(self.delay(statement))
        if self.failures:
            raise self.failures.pop(0)
        if self.handler is not None:
            rows = self.handler(statement)
        elif self.results:
            rows = self.results.pop(0)
        else:
            rows = []
        self.completed.append(statement)
        return rows, self.metadata


# -- in-memory column-family driver -------------------------------------

_LITERAL = r"'(?:[^']|'')*'|-?\d+(?:\.\d+)?|null|true|false"
_NAME = r"\w+|'(?:[^']|'')*'"
_USING = re.compile(r" USING (?:CONSISTENCY \w+|TTL \d+|TIMESTAMP (\d+))(?: AND (?:CONSISTENCY \w+|TTL \d+|TIMESTAMP (\d+)))*")
_SELECT = re.compile(r"^SELECT (?:FIRST (\d+) )?(REVERSED )?(.+?) FROM (\w+)(?: WHERE (.+?))?(?: LIMIT (\d+))?$", re.S)
_INSERT = re.compile(r"^INSERT INTO (\w+) \((.+?)\) VALUES \((.*)\)$", re.S)
_UPDATE = re.compile(r"^UPDATE (\w+) SET (.+) WHERE (.+)$", re.S)
_DELETE = re.compile(r"^DELETE (.*?) ?FROM (\w+) WHERE (.+)$", re.S)
_RANGE = re.compile(rf"^({_LITERAL})\.\.({_LITERAL})$", re.S)
_EQUALS = re.compile(rf"^({_NAME})\s*=\s*({_LITERAL})$", re.S)
_MEMBER = re.compile(rf"^({_NAME}) IN \((.*)\)$", re.S)
_COUNTER = re.compile(rf"^({_NAME})\s*=\s*({_NAME}) ([+-]) (\d+)$")


def _literal(token: str) -> Any:
    if token == "null":
        return None
    if token in ("true", "false"):
        return token == "true"
    if token.startswith("'"):
        return token[1:-1].replace("''", "'")
    return float(token) if "." in token else int(token)


def _literals(text: str) -> List[Any]:
    return [_literal(token) for token in re.findall(_LITERAL, text, re.S)]


def _name(token: str) -> str:
    token = token.strip()
    return _literal(token) if token.startswith("'") else token


def _split(text: str, pattern: str) -> List[str]:
    return [part for part in re.split(pattern, text) if part]


class MemoryDriver:
    """
    Executes the CQL 2 subset widerow renders against dictionaries.

    Rows are `{cf: {key: {name: (value, timestamp)}}}`. A key that was never
    written, or whose columns were all deleted, answers `SELECT *` with its
    key column only, the way a tombstone does.
    """

    def __init__(self, reversed_cfs: Optional[Set[str]] = None, key_alias: str = "KEY") -> None:
        self.data: Dict[str, Dict[str, Dict[str, Tuple[Any, int]]]] = {}
        self.statements: List[str] = []
        self.reversed_cfs = reversed_cfs or set()
        self.key_alias = key_alias
        self._clock = 0
        self._now: Optional[int] = None

    def put(self, cf: str, key: str, name: str, value: Any, timestamp: Optional[int] = None) -> None:
        self._clock += 1
        self.data.setdefault(cf, {}).setdefault(key, {})[name] = (value, timestamp or self._clock)

    async def execute(self, statement: str, args: Sequence[Any]) -> Tuple[List[Row], Dict[str, Any]]:
        self.statements.append(statement)
        stamps = [int(ts) for match in _USING.finditer(statement) for ts in match.groups() if ts]
        self._now = stamps[0] if stamps else None
        text = _USING.sub("", statement)
        for verb in ("select", "insert", "update", "delete"):
            if text.startswith(verb.upper()):
                rows = getattr(self, f"_{verb}")(text)
                return rows, {"host": "memory"}
        raise ValueError(f"Unsupported statement: {statement}")

    def _timestamp(self) -> int:
        self._clock += 1
        return self._now or self._clock

    def _keys(self, cf: str, where: Optional[str]) -> List[str]:
        table = self.data.get(cf, {})
        if not where:
            return sorted(key for key, cols in table.items() if cols)
        keys: Optional[List[str]] = None
        filters: List[Tuple[str, Any]] = []
        for predicate in _split(where, r" AND "):
            member = _MEMBER.match(predicate)
            equals = _EQUALS.match(predicate)
            if member and _name(member.group(1)) == self.key_alias:
                keys = [str(v) for v in _literals(member.group(2))]
            elif equals and _name(equals.group(1)) == self.key_alias:
                keys = [str(_literal(equals.group(2)))]
            elif equals:
                filters.append((_name(equals.group(1)), _literal(equals.group(2))))
            else:
                raise ValueError(f"Unsupported predicate: {predicate}")
        if keys is None:
            keys = sorted(key for key, cols in table.items() if cols)
        for name, value in filters:
            keys = [key for key in keys if table.get(key, {}).get(name, (None,))[0] == value]
        return keys

    def _select(self, text: str) -> List[Row]:
        match = _SELECT.match(text)
        if match is None:
            raise ValueError(f"Unsupported select: {text}")
        first, reversed_flag, selection, cf, where, limit = match.groups()
        table = self.data.get(cf, {})
        keys = self._keys(cf, where)
        if limit:
            keys = keys[: int(limit)]

        if selection == "count(*)":
            return [Row(key=cf, cols=[Column(name="count", value=len(keys))])]

        rows = []
        span = _RANGE.match(selection)
        for key in keys:
            stored = table.get(key, {})
            if span:
                cols = self._range(cf, stored, _literal(span.group(1)), _literal(span.group(2)), bool(reversed_flag))
                if first:
                    cols = cols[: int(first)]
            elif selection == "*":
                cols = [Column(name=self.key_alias, value=key)] + [
                    Column(name=name, value=v, timestamp=ts) for name, (v, ts) in sorted(stored.items())
                ]
            else:
                wanted = [_name(part) for part in selection.split(",")]
                cols = [
                    Column(name=name, value=stored[name][0], timestamp=stored[name][1])
                    for name in wanted
                    if name in stored
                ]
            rows.append(Row(key=key, cols=cols))
        return rows

    def _range(self, cf: str, stored: Dict[str, Tuple[Any, int]], start: str, end: str, flag: bool) -> List[Column]:
        descending = (cf in self.reversed_cfs) != flag
        names = sorted(stored, reverse=descending)
        if start:
            names = [n for n in names if (n <= start if descending else n >= start)]
        if end:
            names = [n for n in names if (n >= end if descending else n <= end)]
        return [Column(name=n, value=stored[n][0], timestamp=stored[n][1]) for n in names]

    def _insert(self, text: str) -> List[Row]:
        match = _INSERT.match(text)
        if match is None:
            raise ValueError(f"Unsupported insert: {text}")
        cf, names, values = match.groups()
        names_list = [_name(part) for part in names.split(",")]
        values_list = _literals(values)
        key = str(values_list[0])
        ts = self._timestamp()
        row = self.data.setdefault(cf, {}).setdefault(key, {})
        for name, value in zip(names_list[1:], values_list[1:]):
            row[name] = (value, ts)
        return []

    def _update(self, text: str) -> List[Row]:
        match = _UPDATE.match(text)
        if match is None:
            raise ValueError(f"Unsupported update: {text}")
        cf, assignments, where = match.groups()
        ts = self._timestamp()
        for key in self._keys_for_write(cf, where):
            row = self.data.setdefault(cf, {}).setdefault(key, {})
            for part in _split(assignments, rf", (?=(?:{_NAME})\s*=)"):
                counter = _COUNTER.match(part)
                if counter:
                    name = _name(counter.group(1))
                    delta = int(counter.group(4)) * (1 if counter.group(3) == "+" else -1)
                    row[name] = ((row.get(name, (0,))[0] or 0) + delta, ts)
                    continue
                equals = _EQUALS.match(part)
                if equals is None:
                    raise ValueError(f"Unsupported assignment: {part}")
                row[_name(equals.group(1))] = (_literal(equals.group(2)), ts)
        return []

    def _delete(self, text: str) -> List[Row]:
        match = _DELETE.match(text)
        if match is None:
            raise ValueError(f"Unsupported delete: {text}")
        columns, cf, where = match.groups()
        names = [_name(part) for part in columns.split(",")] if columns.strip() else []
        for key in self._keys_for_write(cf, where):
            row = self.data.setdefault(cf, {}).setdefault(key, {})
            if names:
                for name in names:
                    row.pop(name, None)
            else:
                row.clear()
        return []

    def _keys_for_write(self, cf: str, where: str) -> List[str]:
        member = _MEMBER.match(where)
        if member:
            return [str(v) for v in _literals(member.group(2))]
        equals = _EQUALS.match(where)
        if equals is None:
            raise ValueError(f"Unsupported predicate: {where}")
        return [str(_literal(equals.group(2)))]


@pytest.fixture
def settings() -> Settings:
    """
    Settings with retry backoff disabled so retried calls don't sleep.
    """
    return Settings(
        WIDEROW_RETRY_ATTEMPTS=3,
        WIDEROW_RETRY_BACKOFF_SECONDS=0,
        WIDEROW_RETRY_BACKOFF_MAX_SECONDS=0,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def gateway(driver: FakeDriver, settings: Settings) -> Gateway:
    return Gateway(driver, settings=settings)


@pytest.fixture
def memory_driver() -> MemoryDriver:
    return MemoryDriver(reversed_cfs={"Inbox"})


@pytest.fixture
def memory_gateway(memory_driver: MemoryDriver, settings: Settings) -> Gateway:
    return Gateway(memory_driver, settings=settings)
