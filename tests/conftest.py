"""Shared test fixtures for Relata tests."""

from __future__ import annotations

from typing import Any, Iterator

import pytest

from relata import BacktickDialect, SqliteAdapter, default_registry
from relata.ddl import generate_schema
from tests.models import ALL_TYPES


class RecordingAdapter(BacktickDialect):
    """Adapter fake that records SQL instead of executing it."""

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.statements: list[str] = []
        self.rows = rows or []
        self.next_id = 1

    def exec_select(self, sql: str) -> Iterator[dict[str, Any]]:
        self.statements.append(sql)
        return iter(list(self.rows))

    def exec_insert(self, sql: str, return_insert_id: bool = True) -> Any:
        self.statements.append(sql)
        if not return_insert_id:
            return None
        generated = self.next_id
        self.next_id += 1
        return generated

    def exec_update(self, sql: str) -> int:
        self.statements.append(sql)
        return 1

    def exec_delete(self, sql: str) -> int:
        self.statements.append(sql)
        return 1

    def exec_custom(self, sql: str) -> None:
        self.statements.append(sql)

    def close(self) -> None:
        pass


@pytest.fixture
def dialect():
    return BacktickDialect()


@pytest.fixture
def recorder():
    """Bind a recording adapter as the default connection."""
    adapter = RecordingAdapter()
    default_registry.bind(adapter)
    yield adapter
    default_registry.unbind()


@pytest.fixture
def sqlite_db(tmp_path):
    """A SQLite database with the test tables, bound as the default connection."""
    adapter = SqliteAdapter(str(tmp_path / "relata_test.db"))
    generate_schema(ALL_TYPES, adapter)
    default_registry.bind(adapter)
    yield adapter
    default_registry.unbind()
    adapter.close()
