"""Tests for the top-level relata command."""

from relata import __version__
from tests.cli.conftest import invoke


def test_version(runner):
    result = invoke(runner, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == f"relata {__version__}"


def test_db_from_environment(runner, seeded_db, monkeypatch):
    monkeypatch.setenv("RELATA_DATABASE", seeded_db)
    result = invoke(runner, ["--json", "query", "run", "Topic", "--models", "tests.models"])
    assert result.exit_code == 0
    assert result.output.strip() == "[]"
