"""
Process-scoped registry of entity and model-array types.

Each `Gateway` owns one registry. Association targets declared by name are
resolved through it at query time, so types may reference each other before
both are defined.
"""

from __future__ import annotations

from typing import Dict, Iterator, List

from widerow.errors import PreconditionError
from widerow.utils.logging import get_logger

log = get_logger(__name__)


class Registry:
    """Types keyed by storage (column family) name."""

    def __init__(self) -> None:
        self._types: Dict[str, type] = {}

    def register(self, cls: type) -> None:
        cfname = cls._options.cfname
        previous = self._types.get(cfname)
        if previous is not None and previous is not cls:
            log.debug("Replacing registered type", extra={"cfname": cfname})
        self._types[cfname] = cls

    def lookup(self, name: str) -> type:
        """
        Find a type by storage name, falling back to its class name.
        """
        if name in self._types:
            return self._types[name]
        for cls in self._types.values():
            if cls.__name__ == name:
                return cls
        raise PreconditionError(
            f"Unknown type '{name}'. Registered: {', '.join(sorted(self._types)) or 'none'}"
        )

    def names(self) -> List[str]:
        return sorted(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[type]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)


__all__ = ["Registry"]
