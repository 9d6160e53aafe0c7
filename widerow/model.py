"""
Entity types mapped onto column families.

Declare a type by subclassing `Model`; attributes and associations are class
attributes, storage options are class keywords:

    class User(Model, gateway=gateway, cfname="User", key_alias="KEY"):
        userId = Attribute(str, primary=True)
        name = Attribute(str, not_null=True)
        is_admin = Attribute(bool, default=False)
        created_at = Attribute(datetime)
        updated_at = Attribute(datetime)

        pets = HasMany("Pet", on="userId")

    user = await User.get("u1", eager=["pets"])
    user.set({"name": "Ada"})
    await user.save()

Storage operations are coroutines; everything else is synchronous.
"""

from __future__ import annotations

import json
import re
import time
import types
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Mapping, Optional, Set

from widerow import associations as eager_loading
from widerow.clause import apply_where, prepare_args
from widerow.domain.models import QuerySpec, TypeOptions
from widerow.errors import PreconditionError, ValidationError
from widerow.materialize import materialize, materialize_all
from widerow.schema import Association, Attribute, BelongsTo, BigInteger, HasMany, HasOne, to_storage
from widerow.statement import Statement
from widerow.utils.logging import get_logger

log = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def _normalise(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "", name).lower()


def _merge_spec(spec: Any, kwargs: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(spec) if isinstance(spec, Mapping) else {}
    merged.update(kwargs)
    if "as_" in merged:
        merged["as"] = merged.pop("as_")
    return merged


class dualmethod:
    """
    A method with one implementation on the class and another on instances.

    `User.delete("u1")` and `user.delete()` share a name but not a signature.
    """

    def __init__(self, on_class: Callable[..., Any], on_instance: Callable[..., Any]) -> None:
        self.on_class = on_class
        self.on_instance = on_instance
        self.__doc__ = on_class.__doc__

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return types.MethodType(self.on_class, owner)
        return types.MethodType(self.on_instance, instance)


async def _class_incr(cls: Any, key: Any, column: str, delta: int = 1) -> None:
    """Increment a counter column on row `key` by `delta` (negative ok)."""
    q = (
        Statement("incr counter")
        .update(cls._options.cfname)
        .consistency(cls._consistency("update"))
        .counter({column: delta})
        .where(f"{cls._options.key_alias}=:key", {"key": key})
    )
    # counter mutations are not idempotent
    await cls.execute(q.statement(), retry=False)


async def _class_decr(cls: Any, key: Any, column: str, delta: int = 1) -> None:
    await _class_incr(cls, key, column, -delta)


async def _instance_incr(self: Any, column: str, delta: int = 1) -> None:
    await _class_incr(type(self), self.row_key(), column, delta)


async def _instance_decr(self: Any, column: str, delta: int = 1) -> None:
    await _class_incr(type(self), self.row_key(), column, -delta)


class Declared:
    """Declaration plumbing shared by `Model` and `ModelArray`."""

    __type__: ClassVar[str] = "Abstract"
    _gateway: ClassVar[Any] = None
    _options: ClassVar[Any] = None
    _getters: ClassVar[Dict[str, Callable[[Any], Any]]] = {}
    _setters: ClassVar[Dict[str, Callable[[Any, Any], None]]] = {}

    incr = dualmethod(_class_incr, _instance_incr)
    decr = dualmethod(_class_decr, _instance_decr)

    @classmethod
    def _bind(cls, gateway: Any) -> None:
        if gateway is not None:
            cls._gateway = gateway
        cls._getters = dict(cls._getters)
        cls._setters = dict(cls._setters)

    @classmethod
    def _default_key_alias(cls) -> str:
        if cls._gateway is not None:
            return cls._gateway.settings.key_alias
        return "KEY"

    @classmethod
    def _consistency(cls, kind: str) -> Optional[str]:
        level = cls._options.consistency.get(kind)
        if level is None and cls._gateway is not None:
            level = cls._gateway.consistency.get(kind)
        return level

    @classmethod
    def _require_gateway(cls) -> Any:
        if cls._gateway is None:
            raise PreconditionError(f"{cls.__name__} is not bound to a gateway")
        return cls._gateway

    @classmethod
    def _register(cls, abstract: bool) -> None:
        if not abstract and cls._gateway is not None:
            cls._gateway.register(cls)

    @classmethod
    async def execute(cls, statement: str, args: Iterable[Any] = (), retry: bool = True) -> List[Any]:
        """Run a statement through the bound gateway."""
        return await cls._require_gateway().execute(statement, list(args), retry=retry)

    def row_key(self) -> Any:
        raise NotImplementedError

    # -- runtime extension ---------------------------------------------

    @classmethod
    def class_methods(cls, **methods: Callable[..., Any]) -> None:
        """Attach class-level methods; fails if a name already exists."""
        for name, fn in methods.items():
            if hasattr(cls, name):
                raise PreconditionError(
                    f"Failed to extend class method. {cls._options.cfname}.{name}() already exists."
                )
            setattr(cls, name, classmethod(fn))

    @classmethod
    def instance_methods(cls, **methods: Callable[..., Any]) -> None:
        """Attach instance methods; fails if a name already exists."""
        for name, fn in methods.items():
            if hasattr(cls, name):
                raise PreconditionError(
                    f"Failed to extend instance method. {cls._options.cfname}#{name}() already exists."
                )
            setattr(cls, name, fn)

    @classmethod
    def getter(cls, name: str, fn: Callable[[Any], Any]) -> None:
        """Define a computed property. Getters are included in serialization."""
        cls._check_accessor(name, "getter", cls._getters)
        cls._getters[name] = fn
        cls._install_accessor(name)

    @classmethod
    def setter(cls, name: str, fn: Callable[[Any, Any], None]) -> None:
        cls._check_accessor(name, "setter", cls._setters)
        cls._setters[name] = fn
        cls._install_accessor(name)

    @classmethod
    def _check_accessor(cls, name: str, what: str, table: Mapping[str, Any]) -> None:
        # a getter may be paired with a setter, but neither may be redefined
        paired = name in cls._getters or name in cls._setters
        if name in table or (hasattr(cls, name) and not paired):
            raise PreconditionError(
                f"Failed to attach {what}. {cls._options.cfname}#{name} already exists."
            )

    @classmethod
    def _install_accessor(cls, name: str) -> None:
        setattr(cls, name, property(cls._getters.get(name), cls._setters.get(name)))


async def _class_delete(cls: Any, spec: Any = None, **kwargs: Any) -> List[Any]:
    """
    Delete columns (default: the type's `delete_columns`) of matching rows.

    `spec` is a key or a mapping with `where` and optionally `columns`.
    """
    options = cls._options
    args = cls._key_spec(spec, kwargs)
    columns = list(args.get("columns") or options.delete_columns)
    # a whole-row delete names no columns
    if columns == ["*"]:
        columns = []

    q = Statement("Model.delete").delete(columns).from_(options.cfname)
    apply_where(q, options.key_alias, cls.primary(), args["where"])
    q.consistency(cls._consistency("delete")).timestamp(now_ms())
    return await cls.execute(q.statement())


async def _instance_delete(self: Any) -> Any:
    """Delete this entity's row; the instance stays readable afterwards."""
    await _class_delete(type(self), self.row_key())
    self._deleted = True
    return self


class Model(Declared):
    """
    Base class of entity types.

    Instance state beyond the schema values: `props` (the last persisted
    snapshot), `dirty` (names batch-set since then), `cftimestamp` (per column
    write timestamps of a loaded row), `errors`, `externals`, and the
    `created`/`deleted`/`loaded` flags.
    """

    __type__ = "Model"
    _options: ClassVar[TypeOptions] = TypeOptions(cfname="Model")
    _schema: ClassVar[Dict[str, Attribute]] = {}
    _associations: ClassVar[Dict[str, Association]] = {}
    _primary: ClassVar[Optional[str]] = None

    delete = dualmethod(_class_delete, _instance_delete)

    def __init_subclass__(
        cls,
        gateway: Any = None,
        cfname: Optional[str] = None,
        key_alias: Optional[str] = None,
        consistency: Optional[Mapping[str, str]] = None,
        get_columns: Optional[List[str]] = None,
        get_range: Optional[tuple] = None,
        delete_columns: Optional[List[str]] = None,
        abstract: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        cls._bind(gateway)

        schema: Dict[str, Attribute] = {}
        assocs: Dict[str, Association] = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, Attribute):
                    schema[name] = value
                elif isinstance(value, Association):
                    assocs[name] = value

        cls._check_reserved(list(schema) + list(assocs))

        primaries = [name for name, attr in schema.items() if attr.primary]
        if len(primaries) > 1:
            raise PreconditionError(
                f"{cls.__name__} declares more than one primary attribute: {', '.join(primaries)}"
            )
        cls._schema = schema
        cls._associations = assocs
        cls._primary = primaries[0] if primaries else None

        parent = cls._options if cls.__mro__[1] is not Model else None
        if get_columns is None and get_range is None and parent is not None:
            get_columns, get_range = parent.get_columns, parent.get_range
        elif get_columns is None and get_range is None:
            get_columns = ["*"]
        cls._options = TypeOptions(
            cfname=cfname or cls.__name__,
            key_alias=key_alias or (parent.key_alias if parent else cls._default_key_alias()),
            consistency=dict(consistency or (parent.consistency if parent else {})),
            get_columns=get_columns,
            get_range=get_range,
            delete_columns=delete_columns or (parent.delete_columns if parent else ["*"]),
        )
        cls._register(abstract)

    @classmethod
    def _check_reserved(cls, names: Iterable[str]) -> None:
        for name in names:
            for base in cls.__mro__[1:]:
                value = vars(base).get(name)
                if value is not None and not isinstance(value, (Attribute, Association)):
                    raise PreconditionError(
                        f"{cls.__name__}.{name} already exists on this class. Please choose a different name."
                    )

    # -- class-level schema access --------------------------------------

    @classmethod
    def primary(cls) -> Optional[str]:
        """Name of the primary attribute, or None."""
        return cls._primary

    @classmethod
    def schema(cls) -> Dict[str, Attribute]:
        return dict(cls._schema)

    @classmethod
    def associations(cls) -> Dict[str, Association]:
        return dict(cls._associations)

    @classmethod
    def _key_spec(cls, spec: Any, kwargs: Mapping[str, Any]) -> Dict[str, Any]:
        alias, primary = cls._options.key_alias, cls.primary()
        if kwargs and spec is not None and not isinstance(spec, Mapping):
            spec = {**prepare_args(spec, alias, primary), **_merge_spec(None, kwargs)}
        elif kwargs or isinstance(spec, Mapping):
            spec = _merge_spec(spec, kwargs)
        return prepare_args(spec, alias, primary)

    # -- class-level queries --------------------------------------------

    @classmethod
    async def find(cls, spec: Any = None, **kwargs: Any) -> List[Any]:
        """
        Return every present row matching `spec`, as instances.

        `spec` keys: `columns` ('*' or a list), `where` (see `widerow.clause`),
        `first`, `limit`, `eager` (association graph), `as` (projection type).
        Tombstoned rows are dropped.
        """
        args = QuerySpec.model_validate(_merge_spec(spec, kwargs))
        columns = args.columns or ["*"]

        q = Statement("find").select(columns).from_(cls._options.cfname)
        apply_where(q, cls._options.key_alias, cls.primary(), args.where)
        q.first(args.first).limit(args.limit)
        q.consistency(cls._consistency("select"))

        rows = await cls.execute(q.statement())
        models = materialize_all(cls, rows, columns, args.as_)
        if args.as_ is None and args.eager:
            for model in models:
                model.eager(args.eager)
            await eager_loading.resolve(models, {"eager": args.eager})
        return models

    @classmethod
    async def get(cls, spec: Any = None, **kwargs: Any) -> Optional[Any]:
        """
        Return a single instance, or None when the row is absent.

        `spec` is a key, or a mapping as for `find` (keyed by its primary
        attribute when it has no `where`). Without explicit columns or a
        `start`/`end` range the type's `get_columns` or `get_range` applies.
        """
        options = cls._options
        args = QuerySpec.model_validate(cls._key_spec(spec, kwargs))

        columns = args.columns
        start, end = args.start, args.end
        if columns is None and start is None and end is None:
            if options.get_columns:
                columns = options.get_columns
            elif options.get_range:
                start, end = options.get_range

        q = Statement("get")
        if columns is not None:
            q.select(columns)
        else:
            q.select().range(start or "", end or "")
        q.from_(options.cfname).consistency(cls._consistency("select"))
        apply_where(q, options.key_alias, cls.primary(), args.where)

        rows = await cls.execute(q.statement())
        if not rows:
            return None
        model = materialize(cls, rows[0], columns, args.as_)
        if model is None or args.as_ is not None:
            return model
        if args.eager:
            model.eager(args.eager)
            await eager_loading.resolve_one(model, {"eager": args.eager})
        return model

    @classmethod
    async def count(cls, where: Any = None) -> int:
        """Count rows, optionally restricted by a `where` spec."""
        q = Statement("count").select(["count(*)"]).from_(cls._options.cfname)
        apply_where(q, cls._options.key_alias, cls.primary(), where)
        q.consistency(cls._consistency("select"))
        rows = await cls.execute(q.statement())
        if not rows or not rows[0].cols:
            return 0
        return int(rows[0].cols[0].value)

    # -- instances ------------------------------------------------------

    def __init__(self, attrs: Any = None, **kwargs: Any) -> None:
        self._values: Dict[str, Any] = {}
        self._props: Dict[str, Any] = {}
        self._dirty: Set[str] = set()
        self._errors: Dict[str, List[str]] = {}
        self._externals: List[str] = []
        self._cftimestamp: Dict[str, Any] = {}
        self._eager: Dict[str, Any] = {}
        self._ttl: Optional[int] = None
        self._created = False
        self._deleted = False
        self._loaded = False

        if kwargs:
            attrs = {**(attrs if isinstance(attrs, Mapping) else {}), **kwargs}
        self.initialize(attrs)

        for name, descriptor in self._associations.items():
            self._values[name] = descriptor.initial()

    def initialize(self, attrs: Any) -> None:
        """Set every schema attribute from `attrs` or its default."""
        for name, attr in self._schema.items():
            self._values[name] = attr.initial()
            self._props[name] = attr.initial()
            if isinstance(attrs, Mapping) and attrs.get(name) is not None:
                self._values[name] = attr.coerce(attrs[name])

        if not isinstance(attrs, Mapping):
            if attrs is not None and self.primary():
                self._values[self.primary()] = attrs
            return

        self._cftimestamp = dict(attrs.get("_cftimestamp") or {})
        self._loaded = bool(attrs.get("_loaded"))
        # columns outside the schema ride along as plain attributes
        for name, value in attrs.items():
            if name.startswith("_") or name in self._schema or name in self._associations:
                continue
            if not hasattr(self, name):
                setattr(self, name, value)

    def row_key(self) -> Any:
        primary = self.primary()
        return self._values.get(primary) if primary else None

    # -- state ----------------------------------------------------------

    @property
    def dirty(self) -> Set[str]:
        return set(self._dirty)

    @property
    def props(self) -> Dict[str, Any]:
        return dict(self._props)

    @property
    def cftimestamp(self) -> Dict[str, Any]:
        return dict(self._cftimestamp)

    @property
    def errors(self) -> Dict[str, List[str]]:
        return self._errors

    @property
    def externals(self) -> List[str]:
        return list(self._externals)

    @property
    def created(self) -> bool:
        return self._created

    @property
    def deleted(self) -> bool:
        return self._deleted

    @property
    def loaded(self) -> bool:
        return self._loaded

    def shadow(self) -> None:
        """Snapshot current values as persisted and clear the dirty-set."""
        self._dirty = set()
        for name in self._schema:
            self._props[name] = self._values.get(name)

    def clean(self) -> None:
        self._dirty = set()

    def eager(self, graph: Mapping[str, Any]) -> None:
        """Remember the association graph requested for this instance."""
        self._eager = dict(graph)

    def add_external(self, name: str) -> None:
        """Serialize an extra, non-schema attribute alongside the schema."""
        if name not in self._externals:
            self._externals.append(name)

    def ttl(self, seconds: Optional[int]) -> None:
        """TTL for the next create/update only."""
        self._ttl = seconds

    def set(self, attrs: Optional[Mapping[str, Any]]) -> None:
        """Batch-set attributes and mark them dirty."""
        if not attrs:
            return
        for name, value in attrs.items():
            setattr(self, name, value)
            self._dirty.add(name)

    def timestamp(self, col: str) -> Optional[str]:
        """
        Stamp the schema attribute whose normalised name is `col` with now.

        `created_at`, `createdAt` and `CreatedAt` all match `createdat`.
        Returns the stamped attribute name, if any.
        """
        for name in self._schema:
            if _normalise(name) == col:
                self._values[name] = datetime.now(timezone.utc)
                return name
        return None

    # -- validation -----------------------------------------------------

    def error(self, prop: Optional[str] = None, msg: Optional[str] = None) -> Any:
        """Record (`prop`, `msg`), or read all errors or one property's."""
        if prop is None:
            return self._errors
        if msg is None:
            return self._errors.get(prop)
        self._errors.setdefault(prop, []).append(msg.replace(":prop", prop))
        return None

    def validate(self) -> bool:
        self._errors = {}
        for name, attr in self._schema.items():
            for validator in attr.validators:
                validator(self, name, self._values.get(name))
        return not self._errors

    # -- persistence ----------------------------------------------------

    def _apply_ttl(self, q: Statement) -> None:
        if self._ttl:
            q.ttl(self._ttl)
            self._ttl = None

    async def create(self) -> "Model":
        """
        Insert this instance.

        An unset primary gets a generated UUID before the statement is built,
        and the key column is always the first inserted column.

        Raises
        ------
        ValidationError
            When validation fails; nothing is written.
        """
        if not self.validate():
            raise ValidationError(self._errors)

        primary = self.primary()
        if primary is not None and self._values.get(primary) is None:
            self._values[primary] = str(uuid.uuid4())

        self.timestamp("createdat")
        self.timestamp("updatedat")

        into: List[str] = []
        values: List[Any] = []
        if primary is not None:
            into.append(self._options.key_alias)
            values.append(self._values[primary])
        for name, attr in self._schema.items():
            value = self._values.get(name)
            if value is None or attr.primary:
                continue
            into.append(name)
            values.append(to_storage(value))

        q = Statement("create").insert(self._options.cfname).into(into).values(values)
        q.consistency(self._consistency("insert"))
        self._apply_ttl(q)
        q.timestamp(now_ms())

        await self.execute(q.statement())
        self.shadow()
        self._created = True
        log.debug("Created row", extra={"cfname": self._options.cfname, "key": self.row_key()})
        return self

    def _copy_foreign_keys(self) -> None:
        for name, descriptor in self._associations.items():
            if not isinstance(descriptor, BelongsTo):
                continue
            related = self._values.get(name)
            if related is None:
                continue
            fk = descriptor.fk_for(type(self))
            value = getattr(related, descriptor.target_for(type(self)).primary())
            if self._values.get(fk) != value:
                self._values[fk] = value
                self._dirty.add(fk)

    async def update(self, attrs: Optional[Mapping[str, Any]] = None) -> "Model":
        """
        Write the batch-set attributes.

        Only names in the dirty-set reach storage; no statement is issued
        when it is empty.
        """
        self.set(attrs)
        if not self.validate():
            raise ValidationError(self._errors)

        self._copy_foreign_keys()
        primary = self.primary()
        names = [name for name in self._dirty if name != primary and name not in self._associations]
        if not names:
            return self

        updated_at = self.timestamp("updatedat")
        if updated_at and updated_at not in names:
            names.append(updated_at)

        q = Statement("update").update(self._options.cfname)
        q.set({name: to_storage(getattr(self, name, None)) for name in sorted(names)})
        q.consistency(self._consistency("update"))
        self._apply_ttl(q)
        q.timestamp(now_ms())
        q.where(f"{self._options.key_alias}=:key", {"key": self.row_key()})

        await self.execute(q.statement())
        self.shadow()
        return self

    async def save(self) -> "Model":
        """Update when this instance already has a persisted identity, else create."""
        if self.row_key() is not None and (self._loaded or self._created):
            return await self.update()
        return await self.create()

    # -- serialization --------------------------------------------------

    def _serializable_names(self) -> List[str]:
        names = list(self._schema) + list(self._getters) + list(self._associations)
        return names + [name for name in self._externals if name not in names]

    def to_serializable(self, attributes: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Plain-dict view of what is loaded.

        Attributes and associations declared with `serializable=False` are
        skipped. Associations are serialized recursively; externals and
        getters are included when set.
        """
        names = list(attributes) if attributes is not None else self._serializable_names()
        out: Dict[str, Any] = {}
        for name in names:
            if name in self._schema:
                attr = self._schema[name]
                if not attr.serializable:
                    continue
                value = self._values.get(name)
                if attr.type is BigInteger and value is not None:
                    value = str(value)
                elif isinstance(value, datetime):
                    value = value.isoformat()
                else:
                    value = _serialize(value)
                out[name] = value
            elif name in self._associations:
                descriptor = self._associations[name]
                if not descriptor.serializable:
                    continue
                value = self._values.get(name)
                if isinstance(descriptor, HasMany):
                    out[name] = [_serialize(one) for one in value or []]
                elif value is not None:
                    out[name] = _serialize(value)
            else:
                value = getattr(self, name, None)
                if value is not None:
                    out[name] = _serialize(value)
        return out

    def to_json(self, attributes: Optional[Iterable[str]] = None) -> str:
        return json.dumps(self.to_serializable(attributes), default=str)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.row_key()!r}>"


def _serialize(value: Any) -> Any:
    return value.to_serializable() if hasattr(value, "to_serializable") else value


__all__ = ["Declared", "Model", "Attribute", "BelongsTo", "HasOne", "HasMany", "BigInteger", "dualmethod"]
