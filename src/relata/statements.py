"""Statement builders: SELECT, INSERT, UPDATE, DELETE and raw statements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator

from relata.errors import StatementError
from relata.expressions import (
    POSTFIX_OPERATORS,
    Binary,
    Expression,
    Parameter,
    Raw,
    Set,
    Unary,
    compile_operand,
    normalize_operator,
)

if TYPE_CHECKING:
    from relata.adapters import DatabaseAdapter, Dialect


def build_condition(*args: Any) -> Expression:
    """Build a condition from ``(expr)``, ``(op, operand)`` or ``(left, op, right)``."""
    if len(args) == 1:
        if not isinstance(args[0], Expression):
            raise StatementError(f"condition must be an expression, got {args[0]!r}")
        return args[0]
    if len(args) == 2:
        if isinstance(args[1], str) and normalize_operator(args[1]) in POSTFIX_OPERATORS:
            return Unary(args[1], args[0])
        return Unary(args[0], args[1])
    if len(args) == 3:
        return Binary(args[0], args[1], args[2])
    raise StatementError(f"a condition takes 1 to 3 arguments, got {len(args)}")


def _compile_conditions(conditions: list[Expression], adapter: Dialect) -> str:
    if len(conditions) == 1:
        return compile_operand(conditions[0], adapter)
    return " AND ".join(Binary.operand_sql(c, adapter) for c in conditions)


def _compile_table(table: Any, adapter: Dialect) -> str:
    if isinstance(table, tuple):
        name, alias = table
        return f"{compile_operand(name, adapter)} AS {adapter.escape_identifier(alias)}"
    return compile_operand(table, adapter)


class Statement(Expression):
    """A complete SQL statement."""

    def compile(self, adapter: Dialect) -> str:
        raise NotImplementedError

    def compile_expr(self, adapter: Dialect) -> str:
        return f"({self.compile(adapter)})"

    def exec(self, adapter: DatabaseAdapter) -> Any:
        raise NotImplementedError


@dataclass
class Join:
    """A joined table with its ON conditions."""

    table: Any
    side: str | None = None
    conditions: list[Expression] = field(default_factory=list)

    def compile(self, adapter: Dialect) -> str:
        keyword = f"{self.side} JOIN" if self.side else "JOIN"
        sql = f"{keyword} {_compile_table(self.table, adapter)}"
        if self.conditions:
            sql += f" ON {_compile_conditions(self.conditions, adapter)}"
        return sql


class Select(Statement):
    """SELECT statement builder.

    Clauses are emitted in a fixed order and skipped entirely when empty::

        SELECT cols FROM tables [LEFT] JOIN ... ON ... WHERE ... GROUP BY ...
        HAVING ... ORDER BY ... LIMIT ... OFFSET ...
    """

    def __init__(self, *columns: Any) -> None:
        self.columns: list[Any] = list(columns) if columns else ["*"]
        self.is_distinct = False
        self.tables: list[Any] = []
        self.joins: list[Join] = []
        self.where_conditions: list[Expression] = []
        self.group_by_columns: list[Any] = []
        self.having_conditions: list[Expression] = []
        self.order_by_items: list[tuple[Any, str | None]] = []
        self.limit_value: int | None = None
        self.offset_value: int | None = None

    def distinct(self, value: bool = True) -> Select:
        self.is_distinct = value
        return self

    def from_(self, *tables: Any) -> Select:
        self.tables.extend(tables)
        return self

    def join(self, table: Any, side: str | None = None) -> Select:
        self.joins.append(Join(table, side))
        return self

    def left_join(self, table: Any) -> Select:
        return self.join(table, "LEFT")

    def on(self, *args: Any) -> Select:
        if not self.joins:
            raise StatementError("on() called before join()")
        self.joins[-1].conditions.append(build_condition(*args))
        return self

    def where(self, *args: Any) -> Select:
        self.where_conditions.append(build_condition(*args))
        return self

    def group_by(self, *columns: Any) -> Select:
        self.group_by_columns.extend(columns)
        return self

    def having(self, *args: Any) -> Select:
        self.having_conditions.append(build_condition(*args))
        return self

    def order_by(self, column: Any, direction: str | None = None) -> Select:
        if direction is not None and direction.upper() not in ("ASC", "DESC"):
            raise StatementError(f"invalid sort direction '{direction}'")
        self.order_by_items.append((column, direction))
        return self

    def limit(self, n: int | None) -> Select:
        self.limit_value = n
        return self

    def offset(self, n: int | None) -> Select:
        self.offset_value = n
        return self

    def _compile_column(self, column: Any, adapter: Dialect) -> str:
        if isinstance(column, tuple):
            expr, alias = column
            return f"{compile_operand(expr, adapter)} AS {adapter.escape_identifier(alias)}"
        return compile_operand(column, adapter)

    def compile(self, adapter: Dialect) -> str:
        keyword = "SELECT DISTINCT" if self.is_distinct else "SELECT"
        parts = [keyword + " " + ", ".join(self._compile_column(c, adapter) for c in self.columns)]
        if self.tables:
            parts.append("FROM " + ", ".join(_compile_table(t, adapter) for t in self.tables))
        parts.extend(j.compile(adapter) for j in self.joins)
        if self.where_conditions:
            parts.append("WHERE " + _compile_conditions(self.where_conditions, adapter))
        if self.group_by_columns:
            parts.append(
                "GROUP BY " + ", ".join(compile_operand(c, adapter) for c in self.group_by_columns)
            )
        if self.having_conditions:
            parts.append("HAVING " + _compile_conditions(self.having_conditions, adapter))
        if self.order_by_items:
            items = []
            for column, direction in self.order_by_items:
                sql = compile_operand(column, adapter)
                items.append(f"{sql} {direction}" if direction else sql)
            parts.append("ORDER BY " + ", ".join(items))
        if self.limit_value is not None:
            parts.append(f"LIMIT {int(self.limit_value)}")
        if self.offset_value is not None:
            parts.append(f"OFFSET {int(self.offset_value)}")
        return " ".join(parts)

    def exec(self, adapter: DatabaseAdapter) -> Iterator[dict[str, Any]]:
        return adapter.exec_select(self.compile(adapter))


class Insert(Statement):
    """INSERT statement builder with one or more value rows."""

    def __init__(self, table: str) -> None:
        self.table = table
        self.rows: list[dict[str, Any]] = []

    def values(self, row: dict[str, Any]) -> Insert:
        self.rows.append(dict(row))
        return self

    def compile(self, adapter: Dialect) -> str:
        if not self.rows:
            raise StatementError(f"no values to insert into '{self.table}'")
        table = adapter.escape_identifier(self.table)
        columns = list(self.rows[0])
        if not columns:
            if len(self.rows) > 1:
                raise StatementError("only a single row can be inserted with default values")
            return f"INSERT INTO {table} DEFAULT VALUES"
        for row in self.rows[1:]:
            if set(row) != set(columns):
                raise StatementError(
                    f"all rows inserted into '{self.table}' must have the same columns"
                )
        column_sql = ", ".join(adapter.escape_identifier(c) for c in columns)
        row_sql = ", ".join(
            "(" + ", ".join(adapter.escape_param(row[c]) for c in columns) + ")"
            for row in self.rows
        )
        return f"INSERT INTO {table} ({column_sql}) VALUES {row_sql}"

    def exec(self, adapter: DatabaseAdapter, return_insert_id: bool = True) -> Any:
        return adapter.exec_insert(self.compile(adapter), return_insert_id)


class Update(Statement):
    """UPDATE statement builder."""

    def __init__(self, table: str) -> None:
        self.table = table
        self.assignments: dict[str, Any] = {}
        self.conditions: list[Expression] = []
        self.limit_value: int | None = None

    def values(self, assignments: dict[str, Any]) -> Update:
        self.assignments.update(assignments)
        return self

    def where(self, *args: Any) -> Update:
        self.conditions.append(build_condition(*args))
        return self

    def limit(self, n: int | None) -> Update:
        self.limit_value = n
        return self

    def compile(self, adapter: Dialect) -> str:
        if not self.assignments:
            raise StatementError(f"no values to update in '{self.table}'")
        sets = ", ".join(
            f"{adapter.escape_identifier(col)} = {adapter.escape_param(val)}"
            for col, val in self.assignments.items()
        )
        sql = f"UPDATE {adapter.escape_identifier(self.table)} SET {sets}"
        if self.conditions:
            sql += " WHERE " + _compile_conditions(self.conditions, adapter)
        if self.limit_value is not None:
            sql += f" LIMIT {int(self.limit_value)}"
        return sql

    def exec(self, adapter: DatabaseAdapter) -> int:
        return adapter.exec_update(self.compile(adapter))


class Delete(Statement):
    """DELETE statement builder."""

    def __init__(self, table: str) -> None:
        self.table = table
        self.conditions: list[Expression] = []
        self.limit_value: int | None = None

    def where(self, *args: Any) -> Delete:
        self.conditions.append(build_condition(*args))
        return self

    def limit(self, n: int | None) -> Delete:
        self.limit_value = n
        return self

    def compile(self, adapter: Dialect) -> str:
        sql = f"DELETE FROM {adapter.escape_identifier(self.table)}"
        if self.conditions:
            sql += " WHERE " + _compile_conditions(self.conditions, adapter)
        if self.limit_value is not None:
            sql += f" LIMIT {int(self.limit_value)}"
        return sql

    def exec(self, adapter: DatabaseAdapter) -> int:
        return adapter.exec_delete(self.compile(adapter))


class Custom(Statement):
    """A hand written statement executed verbatim."""

    def __init__(self, sql: str) -> None:
        self.sql = sql

    def compile(self, adapter: Dialect) -> str:
        return self.sql

    def exec(self, adapter: DatabaseAdapter) -> None:
        adapter.exec_custom(self.sql)


class DB:
    """Factory namespace for statements and expressions."""

    @staticmethod
    def select(*columns: Any) -> Select:
        return Select(*columns)

    @staticmethod
    def insert(table: str) -> Insert:
        return Insert(table)

    @staticmethod
    def update(table: str) -> Update:
        return Update(table)

    @staticmethod
    def delete(table: str) -> Delete:
        return Delete(table)

    @staticmethod
    def query(sql: str) -> Custom:
        return Custom(sql)

    @staticmethod
    def expr(*args: Any) -> Expression:
        """``expr(sql)`` is raw, ``expr(op, x)`` unary, ``expr(a, op, b)`` binary."""
        if len(args) == 1:
            return Raw(args[0])
        return build_condition(*args)

    @staticmethod
    def esc(value: Any) -> Parameter:
        return Parameter(value)

    @staticmethod
    def set(values: Any) -> Set:
        return Set(tuple(values))
