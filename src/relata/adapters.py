"""Database adapters: escaping dialect and the SQLite executor."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from collections.abc import Iterator
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from relata.config import RelataConfig
from relata.errors import StatementError
from relata.expressions import Expression

logger = logging.getLogger(__name__)


class Dialect(Protocol):
    """Escaping rules a statement needs in order to compile."""

    def escape_identifier(self, name: Any) -> str: ...

    def escape_literal(self, value: Any) -> str: ...

    def escape_param(self, value: Any) -> str: ...


@runtime_checkable
class DatabaseAdapter(Dialect, Protocol):
    """Contract between compiled statements and a concrete database driver."""

    def exec_select(self, sql: str) -> Iterator[dict[str, Any]]: ...

    def exec_insert(self, sql: str, return_insert_id: bool = True) -> Any: ...

    def exec_update(self, sql: str) -> int: ...

    def exec_delete(self, sql: str) -> int: ...

    def exec_custom(self, sql: str) -> None: ...

    def close(self) -> None: ...


class BacktickDialect:
    """Backtick-quoting escaping rules shared by every adapter."""

    quote = "`"
    escape_backslash = True

    def escape_identifier(self, name: Any) -> str:
        if not isinstance(name, str):
            return str(name)
        parts = []
        for segment in name.split("."):
            if segment == "*":
                parts.append(segment)
            else:
                escaped = segment.replace(self.quote, self.quote * 2)
                parts.append(f"{self.quote}{escaped}{self.quote}")
        return ".".join(parts)

    def escape_literal(self, value: Any) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "'1'" if value else "'0'"
        if isinstance(value, datetime):
            text = value.strftime("%Y-%m-%d %H:%M:%S")
        elif isinstance(value, date):
            text = value.isoformat()
        else:
            text = str(value)
        if self.escape_backslash:
            text = text.replace("\\", "\\\\")
        text = text.replace("'", "''")
        return f"'{text}'"

    def escape_param(self, value: Any) -> str:
        if isinstance(value, Expression):
            return value.compile_expr(self)
        return self.escape_literal(value)

    # --- DDL ---

    def column_type(self, atomic_type: str, constraints: dict[str, Any]) -> str:
        if atomic_type == "string":
            length = constraints.get("max_length") or constraints.get("length")
            return f"VARCHAR({int(length)})" if length else "TEXT"
        return {
            "int": "INTEGER",
            "float": "DOUBLE",
            "bool": "BOOLEAN",
            "datetime": "DATETIME",
        }[atomic_type]

    def auto_primary_key(self, column: str) -> str:
        return f"{self.escape_identifier(column)} INTEGER AUTO_INCREMENT PRIMARY KEY"


class SqliteDialect(BacktickDialect):
    """Backtick escaping with SQLite column definitions."""

    # SQLite string literals read backslashes verbatim
    escape_backslash = False

    def auto_primary_key(self, column: str) -> str:
        return f"{self.escape_identifier(column)} INTEGER PRIMARY KEY AUTOINCREMENT"


class SqliteAdapter(SqliteDialect):
    """Executes compiled statements on a sqlite3 connection."""

    def __init__(self, database: str | None = None, *, config: RelataConfig | None = None) -> None:
        config = config or RelataConfig()
        if database is not None:
            config = replace(config, database=database)
        self.config = config
        self._conn = sqlite3.connect(
            self.config.database, isolation_level=self.config.isolation_level
        )
        if self.config.foreign_keys:
            self._conn.execute("PRAGMA foreign_keys=ON")

    def _execute(self, sql: str) -> sqlite3.Cursor:
        if self.config.echo_sql:
            logger.info("%s", sql)
        else:
            logger.debug("executing: %s", sql)
        try:
            return self._conn.execute(sql)
        except sqlite3.Error as e:
            raise StatementError(str(e), sql) from e

    def exec_select(self, sql: str) -> Iterator[dict[str, Any]]:
        cursor = self._execute(sql)
        names = [d[0] for d in cursor.description or ()]
        return _iter_rows(cursor, names)

    def exec_insert(self, sql: str, return_insert_id: bool = True) -> Any:
        cursor = self._execute(sql)
        return cursor.lastrowid if return_insert_id else None

    def exec_update(self, sql: str) -> int:
        return self._execute(sql).rowcount

    def exec_delete(self, sql: str) -> int:
        return self._execute(sql).rowcount

    def exec_custom(self, sql: str) -> None:
        if self.config.echo_sql:
            logger.info("%s", sql)
        try:
            self._conn.executescript(sql)
        except sqlite3.Error as e:
            raise StatementError(str(e), sql) from e

    def commit(self) -> None:
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()


def _iter_rows(cursor: sqlite3.Cursor, names: list[str]) -> Iterator[dict[str, Any]]:
    for row in cursor:
        yield dict(zip(names, row))
