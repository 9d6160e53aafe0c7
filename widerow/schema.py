"""
Schema declarations: attributes and associations.

Attributes are data descriptors. Each one stores its value in the owning
instance's value table and knows how to coerce raw storage values into its
declared type. Associations describe how a dependent entity is fetched; their
targets may be given by name and are resolved lazily through the gateway
registry.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional, Union

from widerow.errors import CoercionError, PreconditionError

if TYPE_CHECKING:  # pragma: no cover
    from widerow.model import Model

Validator = Callable[["Model", str, Any], None]

_INT64_MIN = -(2**63)
_INT64_SPAN = 2**64


class BigInteger(int):
    """Marker type for 64-bit signed counters and ids."""


def _wrap_int64(value: int) -> int:
    return (value - _INT64_MIN) % _INT64_SPAN + _INT64_MIN


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    # driver byte buffers
    if isinstance(value, (bytes, bytearray)):
        return len(value) > 0 and value[0] != 0
    if isinstance(value, (int, float)):
        if value not in (0, 1):
            raise CoercionError(
                f"Tried setting a boolean with a number other than 1 or 0: {value!r}"
            )
        return value == 1
    # untyped columns come back as text
    if isinstance(value, str):
        if value in ("true", "1"):
            return True
        if value in ("false", "0"):
            return False
        raise CoercionError(f"Tried setting a boolean using a string other than 'true' or 'false': {value!r}")
    raise CoercionError(f"Cannot read {type(value).__name__} as a boolean")


def coerce_bigint(value: Any) -> int:
    try:
        parsed = int(str(value), 10)
    except ValueError as exc:
        raise CoercionError(f"Cannot read {value!r} as an integer") from exc
    return _wrap_int64(parsed)


def coerce_datetime(value: Any) -> Any:
    if isinstance(value, datetime) or value is None:
        return value
    if isinstance(value, bool):
        raise CoercionError(f"Cannot read {value!r} as a datetime")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        if value.lstrip("-").isdigit():
            return datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc)
        try:
            return datetime.fromisoformat(value)
        except ValueError as exc:
            raise CoercionError(f"Cannot read {value!r} as a datetime") from exc
    raise CoercionError(f"Cannot read {type(value).__name__} as a datetime")


_COERCIONS = {
    bool: coerce_bool,
    BigInteger: coerce_bigint,
    datetime: coerce_datetime,
}


def to_storage(value: Any) -> Any:
    """Dates are stored as epoch milliseconds."""
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    return value


def _not_null(model: "Model", prop: str, value: Any) -> None:
    if value is None:
        model.error(prop, ":prop is null.")


class Attribute:
    """
    A schema attribute.

    Parameters
    ----------
    type : type
        Declared type (`str`, `int`, `float`, `bool`, `datetime`, `dict`,
        `BigInteger`, ...).
    primary : bool
        Whether this attribute is the entity's identity, stored under the
        type's key alias.
    default : Any
        Initial value for new instances; copied per instance.
    validators : callable or iterable of callables
        Each is called as `fn(model, name, value)` and reports problems through
        `model.error(name, message)`.
    not_null : bool
        Adds a validator that rejects None.
    serializable : bool
        Whether `to_serializable` includes the attribute.
    """

    def __init__(
        self,
        type: type = str,
        *,
        primary: bool = False,
        default: Any = None,
        validators: Union[Validator, Iterable[Validator], None] = None,
        not_null: bool = False,
        serializable: bool = True,
    ) -> None:
        self.type = type
        self.primary = primary
        self.default = default
        if validators is None:
            self.validators: List[Validator] = []
        elif callable(validators):
            self.validators = [validators]
        else:
            self.validators = list(validators)
        self.not_null = not_null
        if not_null:
            self.validators.append(_not_null)
        self.serializable = serializable
        self.name: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return instance._values.get(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance._values[self.name] = value

    def initial(self) -> Any:
        return copy.copy(self.default)

    def coerce(self, value: Any) -> Any:
        if value is None:
            return None
        coerce = _COERCIONS.get(self.type)
        return coerce(value) if coerce else value

    def __repr__(self) -> str:
        flags = " primary" if self.primary else ""
        return f"<Attribute {self.name}: {getattr(self.type, '__name__', self.type)}{flags}>"


class Association:
    """
    Base descriptor for dependent entities.

    `on` names the matching attribute on the target side; `fk` names the
    local attribute whose value is matched against it.
    """

    kind = "association"

    def __init__(
        self,
        target: Union[str, type],
        *,
        on: Optional[str] = None,
        fk: Optional[str] = None,
        serializable: bool = True,
    ) -> None:
        self._target = target
        self._on = on
        self._fk = fk
        self.serializable = serializable
        self.name: Optional[str] = None
        self.owner: Optional[type] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.owner = owner

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return instance._values.get(self.name, self.initial())

    def __set__(self, instance: Any, value: Any) -> None:
        instance._values[self.name] = value

    def initial(self) -> Any:
        return None

    @property
    def target(self) -> type:
        """Resolve the target type through the declaring class's registry."""
        return self.target_for(self.owner)

    def target_for(self, cls: type) -> type:
        """
        Resolve the target type as seen from `cls`.

        Named targets are looked up in the registry of `cls`, so a declaration
        inherited from an abstract base without a gateway resolves against the
        concrete subclass.
        """
        if not isinstance(self._target, str):
            return self._target
        gateway = getattr(cls, "_gateway", None)
        if gateway is None:
            raise PreconditionError(
                f"{cls.__name__}.{self.name}: cannot resolve '{self._target}' without a gateway"
            )
        target = gateway.lookup(self._target)
        self._check_target(target)
        return target

    def _check_target(self, target: type) -> None:
        pass

    @property
    def on(self) -> str:
        return self.on_for(self.owner)

    @property
    def fk(self) -> str:
        return self.fk_for(self.owner)

    def on_for(self, cls: type) -> str:
        return self._on or cls.primary()

    def fk_for(self, cls: type) -> str:
        return self._fk or cls.primary()

    def __repr__(self) -> str:
        target = getattr(self._target, "__name__", self._target)
        return f"<{type(self).__name__} {self.name} -> {target} on={self._on or '*'}>"


class BelongsTo(Association):
    """
    This entity holds a foreign key (`fk`) that references the target's `on`.

    Both default to the target's primary attribute. Declare the `fk` attribute
    separately so it is persisted.
    """

    kind = "belongs_to"

    def on_for(self, cls: type) -> str:
        return self._on or self.target_for(cls).primary()

    def fk_for(self, cls: type) -> str:
        return self._fk or self.target_for(cls).primary()


class HasOne(Association):
    """The target stores this entity's key under `on` (a primary or indexed column)."""

    kind = "has_one"


class HasMany(Association):
    """Like HasOne, but every matching target row is attached as a list."""

    kind = "has_many"

    def __init__(self, target: Union[str, type], **kwargs: Any) -> None:
        super().__init__(target, **kwargs)
        if not isinstance(target, str):
            self._check_target(target)

    def initial(self) -> Any:
        return []

    def _check_target(self, target: type) -> None:
        if getattr(target, "__type__", None) == "ModelArray":
            raise PreconditionError(
                f"hasMany definitions using ModelArray aren't supported ({target.__name__}). "
                "Try HasOne or BelongsTo instead."
            )


__all__ = [
    "Attribute",
    "Association",
    "BelongsTo",
    "HasOne",
    "HasMany",
    "BigInteger",
    "coerce_bool",
    "coerce_bigint",
    "coerce_datetime",
    "to_storage",
]
