"""
Per-identity outcomes and the batch summary built from them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from jobmeter.contexts.scraping.filters import FilterIdentity
from jobmeter.contexts.storage import JobCountRecord


class ResultSource(str, Enum):
    CACHE = "CACHE"  # read directly from a cached base value
    DERIVED = "DERIVED"  # computed from two cached base values
    FALLBACK = "FALLBACK"  # direct fetch after a cache miss
    HTML = "HTML"  # direct fetch made by the anomaly retry


class AnomalyReason(str, Enum):
    NO_PREVIOUS_DATA = "NO_PREVIOUS_DATA"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    DROP_DETECTED = "DROP_DETECTED"
    NORMAL = "NORMAL"


@dataclass(frozen=True)
class AnomalyCheckResult:
    anomaly_detected: bool
    reason: AnomalyReason
    previous_count: Optional[int] = None
    drop_percentage: Optional[float] = None

    @classmethod
    def no_previous_data(cls):
        return cls(anomaly_detected=False, reason=AnomalyReason.NO_PREVIOUS_DATA)

    @classmethod
    def below_threshold(cls, previous_count: int):
        return cls(anomaly_detected=False, reason=AnomalyReason.BELOW_THRESHOLD, previous_count=previous_count)

    @classmethod
    def drop_detected(cls, previous_count: int, drop_percentage: float):
        return cls(
            anomaly_detected=True,
            reason=AnomalyReason.DROP_DETECTED,
            previous_count=previous_count,
            drop_percentage=drop_percentage,
        )

    @classmethod
    def normal(cls, previous_count: int, drop_percentage: float):
        return cls(
            anomaly_detected=False,
            reason=AnomalyReason.NORMAL,
            previous_count=previous_count,
            drop_percentage=drop_percentage,
        )


@dataclass(frozen=True)
class FetchResult:
    identity: FilterIdentity
    success: bool
    fetched_at: datetime
    count: Optional[int] = None
    source: Optional[ResultSource] = None
    error_message: Optional[str] = None
    anomaly_reason: Optional[AnomalyReason] = None
    previous_count: Optional[int] = None
    retry_attempts: int = 0
    # True when a drop was still anomalous after every retry; count is then the max of all attempts
    anomaly_persisted: bool = False

    @classmethod
    def succeeded(cls, identity: FilterIdentity, count: int, source: ResultSource, fetched_at: datetime):
        return cls(identity=identity, success=True, count=count, source=source, fetched_at=fetched_at)

    @classmethod
    def failed(cls, identity: FilterIdentity, error_message: str, fetched_at: datetime):
        return cls(identity=identity, success=False, error_message=error_message, fetched_at=fetched_at)

    def to_record(self) -> JobCountRecord:
        assert self.success, "Only successful results can be persisted"
        key = self.identity.natural_key()
        return JobCountRecord(
            category=key.category,
            metric_type=key.metric_type,
            location=self.identity.location,
            count=self.count,
            fetched_at=self.fetched_at,
            record_date=self.fetched_at.date(),
            city=key.city,
            experience_level=key.experience_level,
            salary_min=key.salary_min,
            salary_max=key.salary_max,
        )


@dataclass
class BatchSummary:
    scope: str
    planned: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    anomalies: int = 0
    anomalies_persisted: int = 0
    requests: int = 0
    elapsed: float = 0.0
    cancelled: bool = False
    error: Optional[str] = None
    results: List[FetchResult] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return not self.cancelled and self.error is None

    def describe(self) -> str:
        return (
            f"{self.planned} planned | {self.succeeded} saved | {self.skipped} duplicates skipped | "
            f"{self.failed} failed | {self.anomalies} anomalies ({self.anomalies_persisted} unresolved) | "
            f"{self.requests} requests"
        )
