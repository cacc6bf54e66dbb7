"""Structured error types for Relata."""

from __future__ import annotations


class RelataError(Exception):
    """Base error for all Relata errors."""


class SchemaError(RelataError):
    """Raised when an entity mapping schema is malformed or misused."""


class NoSuchPropertyError(SchemaError, AttributeError):
    """Raised when an entity type has no property with the requested name."""

    def __init__(self, entity_name: str, property_name: str) -> None:
        self.entity_name = entity_name
        self.property_name = property_name
        super().__init__(f"class '{entity_name}' has no property '{property_name}'")


class ResolutionError(RelataError):
    """Raised when a property chain cannot be resolved against the schema graph."""

    def __init__(self, path: str, detail: str | None = None) -> None:
        self.path = path
        self.detail = detail
        message = f"invalid identifier: {path}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class RelationTypeError(RelataError, TypeError):
    """Raised when a relation property receives a value of the wrong class."""

    def __init__(self, entity_name: str, property_name: str, expected: str, got: str) -> None:
        self.entity_name = entity_name
        self.property_name = property_name
        self.expected = expected
        self.got = got
        super().__init__(
            f"value of {entity_name}.{property_name} must be an instance of {expected}, got {got}"
        )


class StatementError(RelataError):
    """Raised when a statement is malformed or the database rejects it."""

    def __init__(self, message: str, sql: str | None = None) -> None:
        self.sql = sql
        if sql is not None:
            message = f"{message} [SQL: {sql}]"
        super().__init__(message)


class ValidationError(RelataError):
    """Raised when an atomic value violates its declared type or constraints."""

    def __init__(self, entity_name: str, property_name: str, detail: str) -> None:
        self.entity_name = entity_name
        self.property_name = property_name
        self.detail = detail
        super().__init__(f"invalid value for {entity_name}.{property_name}: {detail}")


class PersistenceError(RelataError):
    """Raised when an entity cannot be written consistently."""
