from typing import Optional

from sqlalchemy.engine import Engine

from jobmeter.contexts.storage.database import DatabaseConfig, create_db_engine
from jobmeter.contexts.storage.repository import JobCountStore, TrackedRegistry
from jobmeter.contexts.storage.schema import create_tables

# Supported database backends
ALLOWED_BACKENDS = ["postgres", "sqlite"]


def get_engine(config: Optional[DatabaseConfig] = None, ensure_exists: bool = False) -> Engine:
    """
    Factory function to create an engine for the backend named in the config
    (default: DATABASE_BACKEND env var).

    Args:
        config: DatabaseConfig with connection details (default: from environment)
        ensure_exists: If True, create missing tables

    Returns:
        SQLAlchemy Engine for the configured backend

    Raises:
        ValueError: If the backend is unsupported
    """
    config = config or DatabaseConfig.from_env()

    backend = config.backend.lower()
    if backend not in ALLOWED_BACKENDS:
        raise ValueError(
            f"Unsupported database backend: '{config.backend}'. "
            f"Supported backends: {', '.join(ALLOWED_BACKENDS)}"
        )

    engine = create_db_engine(config)
    if ensure_exists:
        create_tables(engine)
    return engine


def get_store_and_registry(
    config: Optional[DatabaseConfig] = None, ensure_exists: bool = True
) -> tuple[JobCountStore, TrackedRegistry]:
    """Build the persistence gateway and registry sharing one engine."""
    engine = get_engine(config, ensure_exists=ensure_exists)
    return JobCountStore(engine), TrackedRegistry(engine)
