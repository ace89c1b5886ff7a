from datetime import datetime, timedelta

import pytest
from omegaconf import OmegaConf
from sqlalchemy import insert

from jobmeter.contexts.scraping.filters import MAX_SALARY, SalaryBound
from jobmeter.contexts.storage import (
    DatabaseConfig,
    JobCountRecord,
    JobCountStore,
    TrackedRegistry,
    get_engine,
)
from jobmeter.contexts.storage.schema import tracked_category, tracked_city

# Base values of the java scenario, plus the direct 25-30k filter used by fallbacks
JAVA_COUNTS = {
    None: 230,
    SalaryBound(25000, MAX_SALARY): 180,
    SalaryBound(30000, MAX_SALARY): 50,
    SalaryBound(25000, 30000): 130,
}


class FakeExtractor:
    """
    Scripted count extractor.

    ``counts`` maps a salary bound to the count returned for every group.
    ``scripted`` maps (category, metric, city, experience, salary bound) to a
    list of responses consumed one per call before falling back to ``counts``.
    A response may be an exception instance, which is raised.
    """

    def __init__(self, counts=None, scripted=None, after_call=None):
        self.counts = dict(JAVA_COUNTS if counts is None else counts)
        self.scripted = {key: list(values) for key, values in (scripted or {}).items()}
        self.after_call = after_call
        self.calls = []

    def fetch(self, category_slug, metric_type, city=None, experience_level=None, salary_bound=None):
        key = (category_slug, metric_type, city, experience_level, salary_bound)
        self.calls.append(key)

        if self.scripted.get(key):
            response = self.scripted[key].pop(0)
        else:
            response = self.counts.get(salary_bound)

        if self.after_call is not None:
            self.after_call(len(self.calls))
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def engine():
    engine = get_engine(DatabaseConfig(name=":memory:", backend="sqlite"), ensure_exists=True)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded_engine(engine):
    with engine.begin() as conn:
        conn.execute(
            insert(tracked_category),
            [
                {"name": "Java", "slug": "java", "active": True},
                {"name": "Python", "slug": "python", "active": True},
                {"name": "Cobol", "slug": "cobol", "active": False},
            ],
        )
        conn.execute(
            insert(tracked_city),
            [
                {"name": "Wroclaw", "slug": "wroclaw", "active": True},
                {"name": "Gdansk", "slug": "gdansk", "active": False},
            ],
        )
    return engine


@pytest.fixture
def store(seeded_engine):
    return JobCountStore(seeded_engine)


@pytest.fixture
def registry(seeded_engine):
    return TrackedRegistry(seeded_engine)


@pytest.fixture
def scraper_config():
    return OmegaConf.create(
        {
            "extractor": {
                "web_base_url": "https://justjoin.it/job-offers",
                "user_agent": "pytest",
                "timeout": 1,
                "max_retries": 1,
                "retry_backoff": 0.0,
                "max_consecutive_failures": 3,
            },
            "politeness": {
                "min_delay": 0.0,
                "max_delay": 0.0,
                "pause_every_n_requests": 0,
                "pause_duration": 0.0,
                "pause_jitter": 0.0,
            },
            "anomaly_detection": {
                "enabled": True,
                "drop_threshold": 0.10,
                "retry_delay": 0.0,
                "max_retries": 2,
                "minimum_city_count": 5,
                "minimum_global_count": 50,
            },
            "batch": {"workers": 1, "jitter_minutes": 0},
        }
    )


@pytest.fixture
def save_previous(store):
    """Store a measurement fetched a day ago for the given natural key."""

    def _save(key, count, location="all-locations", fetched_at=None):
        fetched_at = fetched_at or datetime.now() - timedelta(days=1)
        return store.save(
            JobCountRecord(
                category=key.category,
                metric_type=key.metric_type,
                location=location,
                count=count,
                fetched_at=fetched_at,
                record_date=fetched_at.date(),
                city=key.city,
                experience_level=key.experience_level,
                salary_min=key.salary_min,
                salary_max=key.salary_max,
            )
        )

    return _save


@pytest.fixture
def make_extractor():
    return FakeExtractor
