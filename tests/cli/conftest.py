"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from relata import SqliteAdapter, default_registry
from relata.cli import app
from relata.ddl import generate_schema
from tests.models import ALL_TYPES, Post, User

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """A temp DB path for the CLI --db option."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def seeded_db(cli_db):
    """Create the test tables and one user with two posts."""
    adapter = SqliteAdapter(cli_db)
    generate_schema(ALL_TYPES, adapter)
    default_registry.bind(adapter)
    try:
        user = User(name="Alice", email="alice@example.com")
        user.posts.extend([Post(title="first"), Post(title="second")])
        user.save()
    finally:
        default_registry.unbind()
        adapter.close()
    return cli_db


def invoke(runner: CliRunner, args: list[str], db_path: str | None = None) -> "Result":
    """Invoke CLI with proper state setup."""
    if db_path:
        # Inject --db before subcommand
        args = ["--db", db_path] + args
    result = runner.invoke(app, args, catch_exceptions=False)
    return result
