"""Mapping schemas: columns, relation components and the schema registry."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any, Optional

import pydantic
from pydantic import ConfigDict, StringConstraints, TypeAdapter

from relata.errors import NoSuchPropertyError, PersistenceError, SchemaError, ValidationError

if TYPE_CHECKING:
    from relata.adapters import DatabaseAdapter
    from relata.naming import NamingService

logger = logging.getLogger(__name__)


class AtomicType(str, Enum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    DATETIME = "datetime"


class Cardinality(str, Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"


class OnDelete(str, Enum):
    CASCADE = "cascade"
    SET_NULL = "set-null"


class PropertyKind(str, Enum):
    ATOMIC = "atomic"
    TO_ONE = "to-one"
    TO_MANY = "to-many"
    EMBEDDED = "embedded"


_PY_TYPES: dict[AtomicType, type] = {
    AtomicType.STRING: str,
    AtomicType.INT: int,
    AtomicType.FLOAT: float,
    AtomicType.BOOL: bool,
    AtomicType.DATETIME: datetime,
}

_CONSTRAINT_KEYS = frozenset({"not_null", "unique", "max_length", "min_length", "length", "regex"})

_LOAD_CONFIG = ConfigDict(coerce_numbers_to_str=True)


def _enum_value(enum_cls: type[Enum], value: Any, what: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)  # type: ignore[attr-defined]
        raise SchemaError(f"invalid {what} '{value}': it must be one of {allowed}") from None


@dataclass
class Column:
    """An atomic property: a scalar value stored in one table column."""

    type: AtomicType | str
    primary: bool = False
    generation_strategy: str | None = None
    table: str | None = None
    column: str | None = None
    constraints: dict[str, Any] = field(default_factory=dict)
    name: str = ""

    _validator: TypeAdapter[Any] | None = field(default=None, init=False, repr=False, compare=False)
    _loader: TypeAdapter[Any] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.type = _enum_value(AtomicType, self.type, "atomic type")
        self.constraints = {k.replace(" ", "_"): v for k, v in self.constraints.items()}
        unknown = set(self.constraints) - _CONSTRAINT_KEYS
        if unknown:
            raise SchemaError(f"unknown column constraints: {sorted(unknown)}")
        if self.generation_strategy not in (None, "auto"):
            raise SchemaError(f"unknown generation strategy '{self.generation_strategy}'")

    @property
    def atomic_type(self) -> AtomicType:
        return AtomicType(self.type)

    @property
    def is_generated(self) -> bool:
        return self.primary and self.generation_strategy == "auto"

    @property
    def is_unique(self) -> bool:
        return self.primary or bool(self.constraints.get("unique"))

    def _build_validator(self) -> TypeAdapter[Any]:
        py_type: Any = _PY_TYPES[self.atomic_type]
        c = self.constraints
        if self.atomic_type is AtomicType.STRING and (
            {"max_length", "min_length", "length", "regex"} & set(c)
        ):
            length = c.get("length")
            py_type = Annotated[
                str,
                StringConstraints(
                    min_length=length if length is not None else c.get("min_length"),
                    max_length=length if length is not None else c.get("max_length"),
                    pattern=c.get("regex"),
                ),
            ]
        return TypeAdapter(Optional[py_type])

    def validate(self, value: Any, entity_name: str) -> Any:
        """Validate and coerce a value assigned by user code."""
        if self._validator is None:
            self._validator = self._build_validator()
        try:
            return self._validator.validate_python(value)
        except pydantic.ValidationError as e:
            raise ValidationError(entity_name, self.name, e.errors()[0]["msg"]) from None

    def load(self, value: Any) -> Any:
        """Coerce a value read from the database, without constraint checks."""
        if value is None:
            return None
        if self._loader is None:
            self._loader = TypeAdapter(_PY_TYPES[self.atomic_type], config=_LOAD_CONFIG)
        try:
            return self._loader.validate_python(value)
        except pydantic.ValidationError as e:
            raise ValidationError("<row>", self.name, e.errors()[0]["msg"]) from None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.atomic_type.value}
        if self.primary:
            data["primary"] = True
        if self.generation_strategy:
            data["generation_strategy"] = self.generation_strategy
        if self.table:
            data["table"] = self.table
        if self.column:
            data["column"] = self.column
        if self.constraints:
            data["constraints"] = dict(self.constraints)
        return data


@dataclass
class Component:
    """A relation property pointing at another entity type."""

    target: type | str
    cardinality: Cardinality | str
    join_column: str | None = None
    inverse_join_column: str | None = None
    mapped_by: str | None = None
    on_delete: OnDelete | str | None = None
    name: str = ""

    def __post_init__(self) -> None:
        self.cardinality = _enum_value(Cardinality, self.cardinality, "cardinality")
        if self.on_delete is not None:
            self.on_delete = _enum_value(OnDelete, self.on_delete, "on_delete policy")
        if self.mapped_by is None and not self.join_column:
            raise SchemaError("a relation must define either join_column or mapped_by")
        if self.mapped_by is not None and self.join_column:
            raise SchemaError("join_column must not be set on the mapped_by side of a relation")

    @property
    def target_name(self) -> str:
        if isinstance(self.target, str):
            return self.target
        return getattr(self.target, "__entity_name__", self.target.__name__)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "target": self.target_name,
            "cardinality": Cardinality(self.cardinality).value,
        }
        for key in ("join_column", "inverse_join_column", "mapped_by"):
            value = getattr(self, key)
            if value:
                data[key] = value
        if self.on_delete is not None:
            data["on_delete"] = OnDelete(self.on_delete).value
        return data


@dataclass
class Embedded:
    """An inline value object whose properties live in the owner's table."""

    target: type
    name: str = ""


@dataclass(frozen=True)
class JoinLink:
    """How two entity types are joined through a relation.

    ``fk_property`` is an atomic of the foreign-key holding side and
    ``key_property`` the atomic it references on the other side.
    """

    fk_on_local: bool
    fk_property: str
    key_property: str
    to_many: bool


class MappingSchema:
    """Mapping metadata of one entity type, populated by its ``setup`` hook."""

    def __init__(self, entity_type: type, registry: SchemaRegistry) -> None:
        self.entity_type = entity_type
        self.registry = registry
        self.table: str = ""
        self.secondary_tables: list[str] = []
        self.columns: dict[str, Column] = {}
        self.components: dict[str, Component | Embedded] = {}
        self.embedded: dict[str, EmbeddedSchema] = {}
        self.connection: str = "default"
        self._links: dict[str, JoinLink] = {}
        self._primary_key: str | None = None

    @property
    def entity_name(self) -> str:
        return getattr(self.entity_type, "__entity_name__", self.entity_type.__name__)

    @property
    def atomics(self) -> dict[str, Column]:
        return self.columns

    def primary_key(self) -> str:
        if self._primary_key is None:
            raise SchemaError(f"'{self.entity_name}' has no primary key")
        return self._primary_key

    def primary_column(self) -> Column:
        return self.columns[self.primary_key()]

    def tables(self) -> list[str]:
        return [self.table, *self.secondary_tables]

    def table_for(self, prop: str) -> str:
        return self.get_column(prop).table or self.table

    def column_for(self, prop: str) -> str:
        return self.get_column(prop).column or prop

    def get_column(self, prop: str) -> Column:
        try:
            return self.columns[prop]
        except KeyError:
            raise NoSuchPropertyError(self.entity_name, prop) from None

    def get_component(self, prop: str) -> Component:
        comp = self.components.get(prop)
        if not isinstance(comp, Component):
            raise NoSuchPropertyError(self.entity_name, prop)
        return comp

    def get_property_schema(self, name: str) -> Column | Component | EmbeddedSchema:
        if name in self.columns:
            return self.columns[name]
        if name in self.embedded:
            return self.embedded[name]
        if name in self.components:
            return self.get_component(name)
        raise NoSuchPropertyError(self.entity_name, name)

    def property_kind(self, name: str) -> PropertyKind:
        if name in self.columns:
            return PropertyKind.ATOMIC
        if name in self.embedded:
            return PropertyKind.EMBEDDED
        if name in self.components:
            return PropertyKind.TO_MANY if self.is_to_many_component(name) else PropertyKind.TO_ONE
        raise NoSuchPropertyError(self.entity_name, name)

    def target_schema(self, name: str) -> MappingSchema:
        comp = self.get_component(name)
        return self.registry.schema_for(self.registry.resolve_type(comp.target))

    def is_to_many_component(self, name: str) -> bool:
        return self.join_link(name).to_many

    def join_link(self, name: str) -> JoinLink:
        """Work out which side of a relation holds the foreign key."""
        link = self._links.get(name)
        if link is not None:
            return link
        comp = self.get_component(name)
        target = self.target_schema(name)
        where = f"{self.entity_name}.{name}"
        if comp.mapped_by is None:
            assert comp.join_column is not None
            if comp.cardinality is Cardinality.ONE_TO_MANY:
                link = JoinLink(
                    fk_on_local=False,
                    fk_property=comp.join_column,
                    key_property=comp.inverse_join_column or self.primary_key(),
                    to_many=True,
                )
                holder, referenced = target, self
            else:
                link = JoinLink(
                    fk_on_local=True,
                    fk_property=comp.join_column,
                    key_property=comp.inverse_join_column or target.primary_key(),
                    to_many=False,
                )
                holder, referenced = self, target
            if link.fk_property not in holder.columns:
                raise SchemaError(
                    f"{where}: join column '{link.fk_property}' is not an atomic property "
                    f"of '{holder.entity_name}'"
                )
            if link.key_property not in referenced.columns:
                raise SchemaError(
                    f"{where}: inverse join column '{link.key_property}' is not an atomic "
                    f"property of '{referenced.entity_name}'"
                )
        else:
            remote = target.components.get(comp.mapped_by)
            if not isinstance(remote, Component):
                raise SchemaError(
                    f"{where}: mapped_by '{comp.mapped_by}' is not a relation of "
                    f"'{target.entity_name}'"
                )
            if remote.mapped_by is not None:
                raise SchemaError(f"{where}: both sides of the relation are mapped_by")
            if self.registry.resolve_type(remote.target) is not self.entity_type:
                raise SchemaError(
                    f"{where}: '{target.entity_name}.{comp.mapped_by}' does not point back "
                    f"to '{self.entity_name}'"
                )
            remote_link = target.join_link(comp.mapped_by)
            link = JoinLink(
                fk_on_local=not remote_link.fk_on_local,
                fk_property=remote_link.fk_property,
                key_property=remote_link.key_property,
                to_many=remote.cardinality is Cardinality.MANY_TO_ONE,
            )
            if link.to_many != (comp.cardinality is Cardinality.ONE_TO_MANY):
                raise SchemaError(
                    f"{where}: cardinality '{Cardinality(comp.cardinality).value}' does not "
                    f"match the inverse side '{Cardinality(remote.cardinality).value}'"
                )
        if comp.on_delete is not None and link.fk_on_local:
            raise SchemaError(
                f"{where}: on_delete is only allowed on the side referenced by the foreign key"
            )
        self._links[name] = link
        return link

    def validate(self) -> None:
        """Check every relation against the schemas it points to."""
        for name, comp in self.components.items():
            if isinstance(comp, Component):
                self.join_link(name)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "entity": self.entity_name,
            "table": self.table,
            "columns": {n: c.to_dict() for n, c in self.columns.items()},
            "components": {
                n: c.to_dict() for n, c in self.components.items() if isinstance(c, Component)
            },
        }
        if self.secondary_tables:
            data["secondary_tables"] = list(self.secondary_tables)
        if self.embedded:
            data["embedded"] = {n: e.to_dict() for n, e in self.embedded.items()}
        return data

    def __repr__(self) -> str:
        return f"MappingSchema({self.entity_name!r}, table={self.table!r})"

    # --- construction ---

    def _finalize(self) -> None:
        if not self.table:
            raise SchemaError(f"'{self.entity_name}' does not define a table")
        tables = set(self.tables())
        primaries = []
        for name, col in self.columns.items():
            if not isinstance(col, Column):
                raise SchemaError(f"'{self.entity_name}.{name}' must be a Column")
            col.name = name
            if col.table is not None and col.table not in tables:
                raise SchemaError(
                    f"'{self.entity_name}.{name}' is stored in undeclared table '{col.table}'"
                )
            if col.primary:
                primaries.append(name)
        if len(primaries) != 1:
            raise SchemaError(
                f"'{self.entity_name}' must define exactly one primary column, got {primaries}"
            )
        self._primary_key = primaries[0]
        if self.table_for(self._primary_key) != self.table:
            raise SchemaError(f"'{self.entity_name}': the primary key must be in the primary table")
        for name, comp in self.components.items():
            if name in self.columns:
                raise SchemaError(f"'{self.entity_name}.{name}' is both a column and a relation")
            if not isinstance(comp, (Component, Embedded)):
                raise SchemaError(f"'{self.entity_name}.{name}' must be a Component or Embedded")
            comp.name = name


class EmbeddedSchema:
    """Schema of an embeddable value object, stored in its owner's table."""

    def __init__(self, parent: MappingSchema, name: str, embeddable_type: type) -> None:
        self.parent = parent
        self.name = name
        self.embeddable_type = embeddable_type
        self.table: str = parent.table
        self.columns: dict[str, Column] = {}

    @property
    def entity_name(self) -> str:
        return f"{self.parent.entity_name}.{self.name}"

    def table_for(self, prop: str) -> str:
        return self.columns[prop].table or self.table

    def column_for(self, prop: str) -> str:
        return self.columns[prop].column or f"{self.name}_{prop}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.embeddable_type.__name__,
            "columns": {n: c.to_dict() for n, c in self.columns.items()},
        }

    def _finalize(self) -> None:
        for name, col in self.columns.items():
            col.name = name
            if col.primary:
                raise SchemaError(f"embedded '{self.entity_name}' cannot have a primary column")
            if col.table is not None and col.table not in self.parent.tables():
                raise SchemaError(
                    f"'{self.entity_name}.{name}' is stored in undeclared table '{col.table}'"
                )


class SchemaRegistry:
    """Process-wide owner of every mapping schema, adapter binding and naming cache.

    Schemas are built on first use, exactly once per entity type, and never
    invalidated.
    """

    def __init__(self) -> None:
        self._schemas: dict[type, MappingSchema] = {}
        self._types_by_name: dict[str, type] = {}
        self._adapters: dict[str, DatabaseAdapter] = {}
        self._naming: dict[type | None, NamingService] = {}
        self._lock = threading.RLock()

    # --- entity types ---

    def register_type(self, entity_type: type, name: str) -> None:
        self._types_by_name[name] = entity_type

    def resolve_type(self, target: type | str) -> type:
        if isinstance(target, type):
            return target
        try:
            return self._types_by_name[target]
        except KeyError:
            raise SchemaError(f"unknown entity type '{target}'") from None

    def entity_types(self) -> dict[str, type]:
        return dict(self._types_by_name)

    # --- schemas ---

    def schema_for(self, entity_type: type | str) -> MappingSchema:
        entity_type = self.resolve_type(entity_type)
        schema = self._schemas.get(entity_type)
        if schema is not None:
            return schema
        with self._lock:
            schema = self._schemas.get(entity_type)
            if schema is None:
                schema = self._build(entity_type)
                self._schemas[entity_type] = schema
        return schema

    def property_schema(self, entity_type: type | str, name: str) -> Any:
        return self.schema_for(entity_type).get_property_schema(name)

    def _build(self, entity_type: type) -> MappingSchema:
        setup = getattr(entity_type, "setup", None)
        if setup is None:
            raise SchemaError(f"'{entity_type.__name__}' does not define setup()")
        schema = MappingSchema(entity_type, self)
        setup(schema)
        schema._finalize()
        for name, comp in list(schema.components.items()):
            if isinstance(comp, Embedded):
                schema.embedded[name] = self._build_embedded(schema, name, comp.target)
        install = getattr(entity_type, "__install_properties__", None)
        if install is not None:
            install(schema)
        logger.debug(
            "built mapping schema for %s (table=%s, %d columns, %d components)",
            schema.entity_name,
            schema.table,
            len(schema.columns),
            len(schema.components),
        )
        return schema

    def _build_embedded(
        self, parent: MappingSchema, name: str, embeddable_type: type
    ) -> EmbeddedSchema:
        emb = EmbeddedSchema(parent, name, embeddable_type)
        embeddable_type.setup(emb)  # type: ignore[attr-defined]
        emb.table = parent.table
        emb._finalize()
        return emb

    # --- adapters ---

    def bind(self, adapter: DatabaseAdapter, name: str = "default") -> None:
        self._adapters[name] = adapter

    def unbind(self, name: str = "default") -> None:
        self._adapters.pop(name, None)

    def adapter(self, name: str = "default") -> DatabaseAdapter:
        try:
            return self._adapters[name]
        except KeyError:
            raise PersistenceError(f"no database adapter bound as '{name}'") from None

    def adapter_for(self, schema: MappingSchema) -> DatabaseAdapter:
        return self.adapter(schema.connection)

    # --- naming ---

    def naming(self, implicit_root: type | None = None) -> NamingService:
        """Return the shared naming service for queries scoped to ``implicit_root``."""
        service = self._naming.get(implicit_root)
        if service is not None:
            return service
        from relata.naming import NamingService

        with self._lock:
            service = self._naming.get(implicit_root)
            if service is None:
                service = NamingService(self, implicit_root)
                self._naming[implicit_root] = service
        return service


default_registry = SchemaRegistry()
