"""Relata: schema-driven object-relational mapping over SQL."""

__version__ = "0.1.0"

from relata.adapters import BacktickDialect, DatabaseAdapter, SqliteAdapter, SqliteDialect
from relata.collection import EntityCollection
from relata.config import RelataConfig
from relata.errors import (
    NoSuchPropertyError,
    PersistenceError,
    RelataError,
    RelationTypeError,
    ResolutionError,
    SchemaError,
    StatementError,
    ValidationError,
)
from relata.expressions import Binary, Expression, Parameter, Raw, Set, Unary
from relata.query import CompiledQuery, ObjectQuery
from relata.schema import (
    Column,
    Component,
    Embedded,
    MappingSchema,
    SchemaRegistry,
    default_registry,
)
from relata.statements import DB, Custom, Delete, Insert, Select, Update
from relata.types import Embeddable, Entity

__all__ = [
    "__version__",
    "Entity",
    "Embeddable",
    "EntityCollection",
    "Column",
    "Component",
    "Embedded",
    "MappingSchema",
    "SchemaRegistry",
    "default_registry",
    "ObjectQuery",
    "CompiledQuery",
    "DB",
    "Select",
    "Insert",
    "Update",
    "Delete",
    "Custom",
    "Expression",
    "Binary",
    "Unary",
    "Parameter",
    "Set",
    "Raw",
    "DatabaseAdapter",
    "BacktickDialect",
    "SqliteDialect",
    "SqliteAdapter",
    "RelataConfig",
    "RelataError",
    "SchemaError",
    "NoSuchPropertyError",
    "ResolutionError",
    "RelationTypeError",
    "StatementError",
    "ValidationError",
    "PersistenceError",
]
