"""
Database configuration for the storage context.

Loads connection settings from the environment and turns them into SQLAlchemy engines.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

# Load environment variables from .env file
load_dotenv()
DATABASE_BACKEND = os.getenv("DATABASE_BACKEND", "postgres")


@dataclass
class DatabaseConfig:
    """Generic database connection configuration."""

    name: str
    backend: str = "postgres"
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Database name is required")

    @classmethod
    def from_env(cls, name: Optional[str] = None, backend: Optional[str] = None):
        """Create DatabaseConfig from environment variables."""
        backend = (backend or DATABASE_BACKEND).lower()

        if backend == "sqlite":
            return cls(name=name or os.getenv("SQLITE_PATH", "jobmeter.db"), backend=backend)

        db_env_setting_keys = ["port", "user", "password", "host"]
        db_settings = {setting: os.getenv(f"POSTGRES_{setting.upper()}") for setting in db_env_setting_keys}

        missing = [key for key, value in db_settings.items() if value is None]
        if missing:
            raise EnvironmentError(
                f"Required environment variable(s) {', '.join('POSTGRES_' + key.upper() for key in missing)} not found. "
                f"Ensure .env file exists and contains them."
            )

        # Cast port to int
        db_settings["port"] = int(db_settings["port"])

        return cls(name=name or os.getenv("POSTGRES_DB", "jobmeter"), backend=backend, **db_settings)

    @property
    def connection_string(self) -> str:
        """Generate the SQLAlchemy connection string for the configured backend."""
        if self.backend == "sqlite":
            if self.name == ":memory:":
                return "sqlite://"
            return f"sqlite:///{self.name}"
        return f"postgresql+psycopg2://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"


def create_db_engine(config: DatabaseConfig) -> Engine:
    """
    Create a SQLAlchemy engine for the given config.

    An in-memory SQLite database only exists inside its one connection, so that
    connection is shared by every thread that uses the engine. It does not
    serialize access itself: JobCountStore holds a lock for engines like this.
    """
    if config.backend == "sqlite" and config.name == ":memory:":
        return create_engine(
            config.connection_string,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(config.connection_string, pool_pre_ping=True)
