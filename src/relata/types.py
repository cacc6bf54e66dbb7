"""Entity and Embeddable base classes with schema-driven property access."""

from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any, ClassVar, Iterable

from relata import persistence
from relata.errors import NoSuchPropertyError, RelationTypeError, SchemaError
from relata.schema import Column, Component, Embedded, MappingSchema, SchemaRegistry, default_registry

if TYPE_CHECKING:
    from relata.collection import EntityCollection


@dataclass
class Slot:
    """A loaded value plus whether it matches the database."""

    value: Any
    persistent: bool = False


class _Property:
    """Base for descriptors generated from a mapping schema."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class AtomicProperty(_Property):
    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj._get_atomic(self.name)

    def __set__(self, obj: Any, value: Any) -> None:
        obj._set_atomic(self.name, value)


class ComponentProperty(_Property):
    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj._get_component(self.name)

    def __set__(self, obj: Any, value: Any) -> None:
        obj._set_component(self.name, value)


class EmbeddedProperty(_Property):
    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj._get_embedded(self.name)

    def __set__(self, obj: Any, value: Any) -> None:
        obj._set_embedded(self.name, value)


class Entity:
    """Base class for mapped entities.

    Subclasses describe their storage in ``setup``, which is called exactly
    once per type when the schema is first needed::

        class User(Entity):
            @classmethod
            def setup(cls, schema):
                schema.table = "t_users"
                schema.columns = {
                    "id": Column("int", primary=True, generation_strategy="auto"),
                    "name": Column("string"),
                }
                schema.components = {
                    "posts": Component("Post", "one-to-many", join_column="user_fk"),
                }
    """

    __entity_name__: ClassVar[str] = "Entity"
    __registry__: ClassVar[SchemaRegistry] = default_registry

    _atomics: dict[str, Slot]
    _components: dict[str, Slot]
    _embedded: dict[str, Slot]
    _pending_fk: dict[str, Entity]
    _detached: list[Entity]
    _pk_listeners: list[Any]
    _persistent: bool

    def __init_subclass__(
        cls, name: str | None = None, registry: SchemaRegistry | None = None, **kwargs: Any
    ) -> None:
        super().__init_subclass__(**kwargs)
        cls.__entity_name__ = name or cls.__name__
        if registry is not None:
            cls.__registry__ = registry
        cls.__registry__.register_type(cls, cls.__entity_name__)

    @classmethod
    def setup(cls, schema: MappingSchema) -> None:
        raise SchemaError(f"'{cls.__name__}' must implement setup()")

    @classmethod
    def schema(cls) -> MappingSchema:
        return cls.__registry__.schema_for(cls)

    @classmethod
    def __install_properties__(cls, schema: MappingSchema) -> None:
        for name in schema.columns:
            cls._install_property(name, AtomicProperty(name))
        for name, comp in schema.components.items():
            if isinstance(comp, Embedded):
                cls._install_property(name, EmbeddedProperty(name))
            else:
                cls._install_property(name, ComponentProperty(name))

    @classmethod
    def _install_property(cls, name: str, descriptor: _Property) -> None:
        if name.startswith("_") or hasattr(Entity, name):
            raise SchemaError(f"'{cls.__entity_name__}.{name}' is a reserved name")
        existing = cls.__dict__.get(name)
        if existing is not None and not isinstance(existing, _Property):
            raise SchemaError(f"'{cls.__entity_name__}.{name}' conflicts with a class attribute")
        setattr(cls, name, descriptor)

    def __init__(self, **values: Any) -> None:
        self.schema()
        self._init_state()
        for name, value in values.items():
            setattr(self, name, value)

    def _init_state(self) -> None:
        object.__setattr__(self, "_atomics", {})
        object.__setattr__(self, "_components", {})
        object.__setattr__(self, "_embedded", {})
        object.__setattr__(self, "_pending_fk", {})
        object.__setattr__(self, "_detached", [])
        object.__setattr__(self, "_pk_listeners", [])
        object.__setattr__(self, "_persistent", False)

    @classmethod
    def _load(cls, atomics: dict[str, Any], embedded: dict[str, dict[str, Any]] | None = None) -> Any:
        """Create an instance from database values; everything starts persistent."""
        schema = cls.schema()
        entity = cls.__new__(cls)
        entity._init_state()
        for name, value in atomics.items():
            entity._atomics[name] = Slot(schema.columns[name].load(value), True)
        for name, values in (embedded or {}).items():
            if all(v is None for v in values.values()):
                entity._embedded[name] = Slot(None, True)
                continue
            emb_schema = schema.embedded[name]
            emb = emb_schema.embeddable_type._load(emb_schema, values)
            emb._bind(entity)
            entity._embedded[name] = Slot(emb, True)
        entity._persistent = True
        return entity

    # --- attribute dispatch ---

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return
        if isinstance(getattr(type(self), name, None), _Property):
            object.__setattr__(self, name, value)
            return
        raise NoSuchPropertyError(self.__entity_name__, name)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        raise NoSuchPropertyError(self.__entity_name__, name)

    # --- atomics ---

    def pk(self) -> Any:
        return self._get_atomic(self.schema().primary_key())

    def _get_atomic(self, name: str) -> Any:
        slot = self._atomics.get(name)
        return slot.value if slot is not None else None

    def _set_atomic(self, name: str, value: Any) -> None:
        column = self.schema().columns[name]
        value = column.validate(value, self.__entity_name__)
        self._atomics[name] = Slot(value, False)
        self._pending_fk.pop(name, None)
        self._persistent = False

    def _write_atomic(self, name: str, value: Any, persistent: bool = False) -> None:
        """Store an already typed value, bypassing validation."""
        self._atomics[name] = Slot(value, persistent)
        if not persistent:
            self._persistent = False

    # --- components ---

    def _get_component(self, name: str) -> Any:
        slot = self._components.get(name)
        if slot is not None:
            return slot.value
        if self.schema().is_to_many_component(name):
            return self._init_collection(name)
        self._components[name] = Slot(None, True)
        return None

    def _init_collection(self, name: str) -> EntityCollection:
        from relata.collection import EntityCollection

        slot = self._components.get(name)
        if slot is None:
            slot = Slot(EntityCollection(self, name), True)
            self._components[name] = slot
        return slot.value

    def _set_component(self, name: str, value: Any) -> None:
        schema = self.schema()
        comp = schema.get_component(name)
        if schema.is_to_many_component(name):
            if isinstance(value, Entity) or value is None:
                raise RelationTypeError(
                    self.__entity_name__, name, f"an iterable of {comp.target_name}",
                    type(value).__name__,
                )
            self._get_component(name).replace(value)
            return
        target_type = self.__registry__.resolve_type(comp.target)
        if value is not None and not isinstance(value, target_type):
            raise RelationTypeError(
                self.__entity_name__, name, comp.target_name, type(value).__name__
            )
        old = self._get_component(name)
        self._components[name] = Slot(value, False)
        self._persistent = False
        persistence.sync_to_one(self, name, value, old)

    def _set_loaded_component(self, name: str, value: Any) -> None:
        self._components[name] = Slot(value, True)

    # --- embedded value objects ---

    def _get_embedded(self, name: str) -> Any:
        slot = self._embedded.get(name)
        return slot.value if slot is not None else None

    def _set_embedded(self, name: str, value: Any) -> None:
        emb_schema = self.schema().embedded[name]
        if value is not None and not isinstance(value, emb_schema.embeddable_type):
            raise RelationTypeError(
                self.__entity_name__, name, emb_schema.embeddable_type.__name__,
                type(value).__name__,
            )
        if value is not None:
            value._bind(self)
            value._mark_dirty()
        self._embedded[name] = Slot(value, False)
        self._persistent = False

    # --- primary key listeners ---

    def add_pk_change_listener(self, listener: Any) -> None:
        self._pk_listeners.append(listener)

    def _notify_pk_creation(self) -> None:
        for listener in list(self._pk_listeners):
            listener.notify_pk_creation(self)

    # --- persistence ---

    def is_persistent(self) -> bool:
        return self._persistent

    def save(self) -> None:
        """INSERT when the primary key is unset, UPDATE otherwise."""
        persistence.save(self)

    def insert(self) -> None:
        """Force an INSERT, e.g. for an entity whose primary key is assigned by hand."""
        persistence.insert(self)

    def update(self) -> None:
        persistence.update(self)

    def delete(self) -> None:
        persistence.delete_by_pk(self, self.pk())

    def delete_by_pk(self, pk: Any) -> None:
        persistence.delete_by_pk(self, pk)

    def to_dict(self) -> dict[str, Any]:
        schema = self.schema()
        data = {name: self._get_atomic(name) for name in schema.columns}
        for name in schema.embedded:
            emb = self._get_embedded(name)
            data[name] = emb.to_dict() if emb is not None else None
        return data

    def __repr__(self) -> str:
        fields = ", ".join(
            f"{k}={slot.value!r}" for k, slot in self._atomics.items() if slot.value is not None
        )
        return f"{self.__class__.__name__}({fields})"


class Embeddable:
    """Base class for value objects stored inline in their owner's table."""

    _values: dict[str, Slot]
    _owner: Entity | None

    @classmethod
    def setup(cls, schema: Any) -> None:
        raise SchemaError(f"'{cls.__name__}' must implement setup()")

    @classmethod
    def _columns(cls) -> dict[str, Column]:
        columns = cls.__dict__.get("_column_template")
        if columns is None:
            template = SimpleNamespace(columns={}, table=None)
            cls.setup(template)  # type: ignore[arg-type]
            columns = template.columns
            for name, col in columns.items():
                col.name = name
            cls._column_template = columns  # type: ignore[attr-defined]
        return columns

    def __init__(self, **values: Any) -> None:
        object.__setattr__(self, "_values", {})
        object.__setattr__(self, "_owner", None)
        for name, value in values.items():
            setattr(self, name, value)

    @classmethod
    def _load(cls, emb_schema: Any, values: dict[str, Any]) -> Any:
        emb = cls.__new__(cls)
        object.__setattr__(emb, "_values", {})
        object.__setattr__(emb, "_owner", None)
        for name, value in values.items():
            emb._values[name] = Slot(emb_schema.columns[name].load(value), True)
        return emb

    def _bind(self, owner: Entity) -> None:
        object.__setattr__(self, "_owner", owner)

    def _mark_dirty(self) -> None:
        for name in self._columns():
            slot = self._values.setdefault(name, Slot(None, False))
            slot.persistent = False

    def dirty_values(self) -> Iterable[tuple[str, Slot]]:
        return [(n, s) for n, s in self._values.items() if not s.persistent]

    def __setattr__(self, name: str, value: Any) -> None:
        columns = self._columns()
        if name not in columns:
            raise NoSuchPropertyError(type(self).__name__, name)
        self._values[name] = Slot(columns[name].validate(value, type(self).__name__), False)
        if self._owner is not None:
            self._owner._persistent = False

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._columns():
            raise NoSuchPropertyError(type(self).__name__, name)
        slot = self._values.get(name)
        return slot.value if slot is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self._columns()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items() if v is not None)
        return f"{self.__class__.__name__}({fields})"


__all__ = [
    "AtomicProperty",
    "Component",
    "ComponentProperty",
    "EmbeddedProperty",
    "Embeddable",
    "Entity",
    "Slot",
]
