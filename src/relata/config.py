"""Configuration for Relata database connections."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class RelataConfig:
    """Configuration for a database connection."""

    database: str = ":memory:"
    echo_sql: bool = False
    foreign_keys: bool = False
    connection_name: str = "default"
    isolation_level: str | None = None

    @classmethod
    def from_env(cls) -> RelataConfig:
        """Build a config from RELATA_* environment variables."""
        config = cls()
        database = os.getenv("RELATA_DATABASE")
        if database:
            config.database = database
        echo = os.getenv("RELATA_ECHO_SQL")
        if echo is not None:
            config.echo_sql = echo.strip().lower() in _TRUTHY
        foreign_keys = os.getenv("RELATA_FOREIGN_KEYS")
        if foreign_keys is not None:
            config.foreign_keys = foreign_keys.strip().lower() in _TRUTHY
        return config
