"""SQL expression nodes compiled to text by an escaping dialect.

Operands follow one rule everywhere: an ``Expression`` compiles itself, a bare
``str`` is a column/table reference escaped as an identifier, a list or tuple
becomes a value set, and any other scalar (numbers, booleans, ``None``,
datetimes) is escaped as a literal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from relata.errors import StatementError

if TYPE_CHECKING:
    from relata.adapters import Dialect

BINARY_OPERATORS = frozenset(
    {
        "=",
        "!=",
        "<>",
        "<",
        "<=",
        ">",
        ">=",
        "+",
        "-",
        "*",
        "/",
        "%",
        "||",
        "LIKE",
        "NOT LIKE",
        "IN",
        "NOT IN",
        "IS",
        "IS NOT",
        "AND",
        "OR",
    }
)

PREFIX_OPERATORS = frozenset({"NOT", "EXISTS", "NOT EXISTS", "-", "+"})
POSTFIX_OPERATORS = frozenset({"IS NULL", "IS NOT NULL"})

_LOGICAL = frozenset({"AND", "OR"})


def normalize_operator(op: str) -> str:
    """Uppercase an operator and collapse inner whitespace for validation."""
    return " ".join(op.split()).upper()


class Expression:
    """Base class for SQL expression nodes."""

    def compile_expr(self, adapter: Dialect) -> str:
        raise NotImplementedError

    def __and__(self, other: Any) -> Binary:
        return Binary(self, "AND", other)

    def __or__(self, other: Any) -> Binary:
        return Binary(self, "OR", other)

    def __invert__(self) -> Unary:
        return Unary("NOT", self)


def compile_operand(operand: Any, adapter: Dialect) -> str:
    """Compile one operand of an expression or clause."""
    if isinstance(operand, Expression):
        return operand.compile_expr(adapter)
    if isinstance(operand, str):
        return adapter.escape_identifier(operand)
    if isinstance(operand, (list, tuple, set, frozenset)):
        return Set(tuple(operand)).compile_expr(adapter)
    return adapter.escape_literal(operand)


@dataclass(frozen=True)
class Binary(Expression):
    """``left op right``."""

    left: Any
    op: str
    right: Any

    def compile_expr(self, adapter: Dialect) -> str:
        if normalize_operator(self.op) not in BINARY_OPERATORS:
            raise StatementError(f"unsupported binary operator '{self.op}'")
        left = self.operand_sql(self.left, adapter)
        return f"{left} {self.op} {self.operand_sql(self.right, adapter)}"

    @staticmethod
    def operand_sql(operand: Any, adapter: Dialect) -> str:
        """Compile an operand, parenthesizing nested AND/OR."""
        sql = compile_operand(operand, adapter)
        if isinstance(operand, Binary) and normalize_operator(operand.op) in _LOGICAL:
            return f"({sql})"
        return sql


@dataclass(frozen=True)
class Unary(Expression):
    """``op operand`` (or ``operand op`` for IS NULL / IS NOT NULL)."""

    op: str
    operand: Any

    def compile_expr(self, adapter: Dialect) -> str:
        normalized = normalize_operator(self.op)
        operand_sql = compile_operand(self.operand, adapter)
        if isinstance(self.operand, Binary):
            operand_sql = f"({operand_sql})"
        if normalized in POSTFIX_OPERATORS:
            return f"{operand_sql} {self.op}"
        if normalized not in PREFIX_OPERATORS:
            raise StatementError(f"unsupported unary operator '{self.op}'")
        if normalized in ("-", "+"):
            return f"{self.op}{operand_sql}"
        return f"{self.op} {operand_sql}"


@dataclass(frozen=True)
class Parameter(Expression):
    """A value that is always escaped, never interpolated as an identifier."""

    value: Any

    def compile_expr(self, adapter: Dialect) -> str:
        return adapter.escape_param(self.value)


@dataclass(frozen=True)
class Set(Expression):
    """A parenthesized, comma separated list of escaped values."""

    values: tuple[Any, ...]

    def compile_expr(self, adapter: Dialect) -> str:
        return "(" + ", ".join(adapter.escape_param(v) for v in self.values) + ")"


@dataclass(frozen=True)
class Raw(Expression):
    """An already safe SQL fragment passed through verbatim."""

    sql: str

    def compile_expr(self, adapter: Dialect) -> str:
        return self.sql
