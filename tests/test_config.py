"""Tests for RelataConfig."""

from __future__ import annotations

from relata import RelataConfig, SqliteAdapter


class TestRelataConfig:
    def test_defaults(self):
        config = RelataConfig()
        assert config.database == ":memory:"
        assert config.echo_sql is False
        assert config.foreign_keys is False
        assert config.connection_name == "default"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RELATA_DATABASE", "/tmp/app.db")
        monkeypatch.setenv("RELATA_ECHO_SQL", "yes")
        monkeypatch.setenv("RELATA_FOREIGN_KEYS", "0")
        config = RelataConfig.from_env()
        assert config.database == "/tmp/app.db"
        assert config.echo_sql is True
        assert config.foreign_keys is False

    def test_from_env_without_variables(self, monkeypatch):
        for var in ("RELATA_DATABASE", "RELATA_ECHO_SQL", "RELATA_FOREIGN_KEYS"):
            monkeypatch.delenv(var, raising=False)
        assert RelataConfig.from_env() == RelataConfig()


class TestSqliteAdapterConfig:
    def test_database_argument_overrides_config(self, tmp_path):
        path = str(tmp_path / "x.db")
        adapter = SqliteAdapter(path, config=RelataConfig(echo_sql=True))
        try:
            assert adapter.config.database == path
            assert adapter.config.echo_sql is True
        finally:
            adapter.close()

    def test_caller_config_is_left_untouched(self, tmp_path):
        config = RelataConfig()
        adapter = SqliteAdapter(str(tmp_path / "y.db"), config=config)
        try:
            assert config.database == ":memory:"
            assert adapter.config is not config
        finally:
            adapter.close()

    def test_echo_sql_logs_statements(self, caplog):
        adapter = SqliteAdapter(config=RelataConfig(echo_sql=True))
        try:
            with caplog.at_level("INFO", logger="relata.adapters"):
                list(adapter.exec_select("SELECT 1 AS one"))
            assert "SELECT 1 AS one" in caplog.text
        finally:
            adapter.close()
