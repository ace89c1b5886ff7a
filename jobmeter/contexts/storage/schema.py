"""
Table definitions for the job count time series and the tracked registry.

The natural key of ``job_count_record`` mixes nullable dimensions (city,
experience level, salary bounds), so uniqueness per day is enforced by the
store's lookup-before-insert rather than a database constraint.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

job_count_record = Table(
    "job_count_record",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("category", String(100), nullable=False),
    Column("count", Integer, nullable=False),
    Column("fetched_at", DateTime, nullable=False),
    Column("location", String(100), nullable=False),
    Column("metric_type", String(50), nullable=False, default="TOTAL"),
    Column("city", String(100)),
    Column("experience_level", String(20)),
    Column("salary_min", Integer),
    Column("salary_max", Integer),
    Column("record_date", Date, nullable=False),
    Index("idx_job_count_category", "category"),
    Index("idx_job_count_fetched_at", "fetched_at"),
    Index("idx_job_count_category_location", "category", "location"),
    Index("idx_job_count_category_metric", "category", "metric_type"),
)

tracked_category = Table(
    "tracked_category",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("slug", String(100), nullable=False, unique=True),
    Column("active", Boolean, nullable=False, default=True),
    Index("idx_tracked_category_active", "active"),
)

tracked_city = Table(
    "tracked_city",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("slug", String(100), nullable=False, unique=True),
    Column("active", Boolean, nullable=False, default=False),
    Index("idx_tracked_city_active", "active"),
)


def create_tables(engine: Engine) -> None:
    """Create any missing tables (existing tables are left untouched)."""
    metadata.create_all(engine)
