"""
Execution gateway for widerow.

The gateway is the only place that talks to the wide-column driver. It owns
the type registry and the default consistency levels, forwards the driver's
observable events, reports per-statement timing, and turns driver failures
into `StorageError` after publishing them as `error` events.

Includes retry logic for transient driver failures using tenacity.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from widerow.config import Settings, get_settings
from widerow.domain.models import QueryMetadata, Row
from widerow.errors import StorageError
from widerow.infrastructure.registry import Registry
from widerow.utils.logging import get_logger
from widerow.utils.timing import time_block

log = get_logger(__name__)

EVENTS = ("error", "log", "timing")

# Failures worth another attempt; anything else is surfaced immediately.
TRANSIENT_ERRORS: Tuple[type, ...] = (ConnectionError, TimeoutError, OSError)


class Driver(Protocol):
    """
    The wire-level capability the gateway consumes.

    `execute` returns `(rows, metadata)` and raises on failure. Rows may be
    `Row` instances or mappings with `key` and `cols`.
    """

    async def execute(
        self, statement: str, args: Sequence[Any]
    ) -> Tuple[Sequence[Any], Optional[Mapping[str, Any]]]:
        ...


class Gateway:
    """
    Binds entity types to one driver.

    Example
    -------
        gateway = Gateway(driver)
        gateway.on("timing", lambda statement, host, latency, pool, rows: ...)

        class User(Model, gateway=gateway):
            userId = Attribute(str, primary=True)
    """

    def __init__(self, driver: Driver, settings: Optional[Settings] = None) -> None:
        self.driver = driver
        self.settings = settings or get_settings()
        self.registry = Registry()
        self.consistency: Dict[str, str] = self.settings.consistency()
        self._listeners: Dict[str, List[Callable[..., Any]]] = defaultdict(list)

        # Forward the driver's own events, when it has any.
        driver_on = getattr(driver, "on", None)
        if callable(driver_on):
            for event in EVENTS:
                driver_on(event, self._forwarder(event))

    def _forwarder(self, event: str) -> Callable[..., None]:
        def forward(*args: Any) -> None:
            self.emit(event, *args)

        return forward

    # -- events ---------------------------------------------------------

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}'. Available: {', '.join(EVENTS)}")
        self._listeners[event].append(handler)

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        if handler in self._listeners.get(event, []):
            self._listeners[event].remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            handler(*args)

    # -- registry -------------------------------------------------------

    def register(self, cls: type) -> type:
        self.registry.register(cls)
        return cls

    def lookup(self, name: str) -> type:
        return self.registry.lookup(name)

    # -- execution ------------------------------------------------------

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(max(self.settings.retry_attempts, 1)),
            wait=wait_exponential(
                multiplier=self.settings.retry_backoff_seconds,
                max=self.settings.retry_backoff_max_seconds,
            ),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        )

    async def _call(self, statement: str, args: Sequence[Any], retry: bool) -> Tuple[Any, Any]:
        if not retry:
            return await self.driver.execute(statement, args)
        async for attempt in self._retrying():
            with attempt:
                return await self.driver.execute(statement, args)
        raise AssertionError("unreachable")  # pragma: no cover

    async def execute(
        self, statement: str, args: Sequence[Any] = (), retry: bool = True
    ) -> List[Row]:
        """
        Execute a statement and return its rows.

        Parameters
        ----------
        statement : str
            Executable statement text.
        args : Sequence
            Positional bound arguments, passed through to the driver.
        retry : bool
            Whether transient failures may be retried. Disable for
            non-idempotent statements such as counter mutations.

        Raises
        ------
        StorageError
            When the driver fails. The error is also emitted as an `error` event.
        """
        log.debug("Executing statement", extra={"statement": statement})
        with time_block(statement) as stats:
            try:
                results, metadata = await self._call(statement, list(args), retry)
            except Exception as exc:
                error = StorageError(f"Statement failed: {exc}", statement=statement)
                log.error("Statement failed", extra={"statement": statement}, exc_info=exc)
                self.emit("error", error)
                raise error from exc

        rows = [row if isinstance(row, Row) else Row.model_validate(row) for row in results or []]
        self._report_timing(statement, rows, metadata, stats.duration_ms)
        return rows

    def _report_timing(
        self,
        statement: str,
        rows: List[Row],
        metadata: Optional[Mapping[str, Any]],
        elapsed_ms: float,
    ) -> None:
        meta = QueryMetadata.model_validate(metadata or {})
        query_latency = meta.query_latency if meta.query_latency is not None else elapsed_ms
        log.debug(
            "Statement completed",
            extra={
                "statement": statement,
                "host": meta.host,
                "latency": query_latency,
                "rows": len(rows),
            },
        )
        self.emit("timing", statement, meta.host, query_latency, meta.pool_latency, rows)


__all__ = ["Driver", "Gateway", "EVENTS", "TRANSIENT_ERRORS"]
