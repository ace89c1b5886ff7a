"""
Data storage domain.

Handles persistence of the job count time series and the tracked registry.

Public API exports only the interfaces needed by other contexts.
Credentials and implementation details remain private.
"""

from jobmeter.contexts.storage.models import (
    NaturalKey,
    JobCountRecord,
    TrackedCategory,
    TrackedCity,
)
from jobmeter.contexts.storage.database import DatabaseConfig
from jobmeter.contexts.storage.repository import (
    JobCountStore,
    TrackedRegistry,
)
from jobmeter.contexts.storage.schema import create_tables
from jobmeter.contexts.storage.getter import (
    get_engine,
    get_store_and_registry,
)

__all__ = [
    # Factory functions (primary interface)
    "get_engine",
    "get_store_and_registry",
    # Gateways
    "JobCountStore",
    "TrackedRegistry",
    "DatabaseConfig",
    "create_tables",
    # Records
    "NaturalKey",
    "JobCountRecord",
    "TrackedCategory",
    "TrackedCity",
]
