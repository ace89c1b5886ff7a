"""
Persistence gateway and read-only registry.

JobCountStore owns the job count time series:
- find_existing: idempotency lookup for a natural key on a calendar date
- find_previous: most recent earlier measurement (used for anomaly detection)
- save: append a record (records are never updated)

TrackedRegistry exposes the tracked categories and cities. Creating or editing
them is not this module's concern.
"""

import threading
from contextlib import contextmanager, nullcontext
from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional

import pandas as pd
from loguru import logger
from sqlalchemy import func, insert, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from jobmeter.contexts.storage.models import (
    JobCountRecord,
    NaturalKey,
    TrackedCategory,
    TrackedCity,
)
from jobmeter.contexts.storage.schema import (
    job_count_record,
    tracked_category,
    tracked_city,
)

RECORD_FIELDS = [
    "id",
    "category",
    "metric_type",
    "location",
    "count",
    "fetched_at",
    "record_date",
    "city",
    "experience_level",
    "salary_min",
    "salary_max",
]


def _matches(column, value):
    """Null-safe equality: NULL matches NULL, values match values."""
    if value is None:
        return column.is_(None)
    return column == value


def _key_conditions(key: NaturalKey) -> list:
    table = job_count_record
    return [
        table.c.category == key.category,
        table.c.metric_type == key.metric_type,
        _matches(table.c.city, key.city),
        _matches(table.c.experience_level, key.experience_level),
        _matches(table.c.salary_min, key.salary_min),
        _matches(table.c.salary_max, key.salary_max),
    ]


def _to_record(row) -> JobCountRecord:
    return JobCountRecord(**{field: row[field] for field in RECORD_FIELDS})


class JobCountStore:
    """
    SQL-backed store for job count records.

    An engine with a single shared connection (in-memory SQLite) serializes
    every store call, since one sqlite3 connection cannot interleave transactions
    from several threads.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._guard = threading.RLock() if isinstance(engine.pool, StaticPool) else nullcontext()

    @contextmanager
    def _connect(self, begin: bool = False) -> Iterator[Connection]:
        with self._guard:
            with (self.engine.begin() if begin else self.engine.connect()) as conn:
                yield conn

    def find_existing(self, key: NaturalKey, record_date: date) -> Optional[JobCountRecord]:
        """Return the record already stored for this key on ``record_date``, if any."""
        query = (
            select(job_count_record)
            .where(*_key_conditions(key), job_count_record.c.record_date == record_date)
            .limit(1)
        )
        with self._connect() as conn:
            row = conn.execute(query).mappings().first()
        return _to_record(row) if row is not None else None

    def find_previous(self, key: NaturalKey, before: datetime) -> Optional[JobCountRecord]:
        """Return the most recent record for this key fetched strictly before ``before``."""
        query = (
            select(job_count_record)
            .where(*_key_conditions(key), job_count_record.c.fetched_at < before)
            .order_by(job_count_record.c.fetched_at.desc())
            .limit(1)
        )
        with self._connect() as conn:
            row = conn.execute(query).mappings().first()
        return _to_record(row) if row is not None else None

    def save(self, record: JobCountRecord) -> JobCountRecord:
        values = {field: getattr(record, field) for field in RECORD_FIELDS if field != "id"}
        with self._connect(begin=True) as conn:
            result = conn.execute(insert(job_count_record).values(**values))
            record_id = result.inserted_primary_key[0]

        logger.debug(
            f"Saved {record.category}[{record.metric_type}] city={record.city} "
            f"exp={record.experience_level} salary={record.salary_min}/{record.salary_max}: {record.count}"
        )
        return JobCountRecord(**{**values, "id": record_id})

    def count_records(self, category: Optional[str] = None) -> int:
        query = select(func.count()).select_from(job_count_record)
        if category is not None:
            query = query.where(job_count_record.c.category == category)
        with self._connect() as conn:
            return conn.execute(query).scalar_one()

    def export_history_df(self, category: str, days: Optional[int] = None) -> pd.DataFrame:
        """
        Load the stored time series for a category as a DataFrame.

        Args:
            category: Category slug
            days: Only include records fetched within the last ``days`` days (default: all)

        Returns:
            DataFrame ordered by fetch time, one row per stored record
        """
        query = select(job_count_record).where(job_count_record.c.category == category)
        if days:
            cutoff = datetime.now() - timedelta(days=days)
            query = query.where(job_count_record.c.fetched_at >= cutoff)
        query = query.order_by(job_count_record.c.fetched_at.asc())

        with self._connect() as conn:
            df = pd.read_sql(query, conn)
        return df[RECORD_FIELDS]


class TrackedRegistry:
    """Read-only view of the tracked categories and cities."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def active_categories(self) -> List[TrackedCategory]:
        query = (
            select(tracked_category.c.slug, tracked_category.c.name, tracked_category.c.active)
            .where(tracked_category.c.active.is_(True))
            .order_by(tracked_category.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [TrackedCategory(slug=row["slug"], name=row["name"], active=row["active"]) for row in rows]

    def active_cities(self) -> List[TrackedCity]:
        query = (
            select(tracked_city.c.slug, tracked_city.c.name, tracked_city.c.active)
            .where(tracked_city.c.active.is_(True))
            .order_by(tracked_city.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [TrackedCity(slug=row["slug"], name=row["name"], active=row["active"]) for row in rows]

    def find_category(self, slug: str) -> Optional[TrackedCategory]:
        query = select(tracked_category.c.slug, tracked_category.c.name, tracked_category.c.active).where(
            tracked_category.c.slug == slug
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).mappings().first()
        if row is None:
            return None
        return TrackedCategory(slug=row["slug"], name=row["name"], active=bool(row["active"]))
