"""
Anomalous drop detection.

The job board occasionally serves a stale cached listing page that under-reports
the number of offers. A count that falls sharply against the previous stored
measurement of the same series is therefore suspicious and gets refetched.

Small series swing wildly in percentage terms, so checks are skipped when the
previous count is below a floor (a lower one for city-scoped series).
"""

from datetime import datetime
from typing import Callable

from jobmeter.contexts.scraping.filters import FilterIdentity
from jobmeter.contexts.scraping.results import AnomalyCheckResult
from jobmeter.contexts.storage import JobCountStore


def drop_fraction(previous: int, current: int) -> float:
    """Relative drop from previous to current (negative means growth)."""
    return (previous - current) / previous


class AnomalyDetector:
    def __init__(self, store: JobCountStore, anomaly_config, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.config = anomaly_config
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled)

    @property
    def drop_threshold(self) -> float:
        return float(self.config.drop_threshold)

    @property
    def retry_delay(self) -> float:
        return float(self.config.retry_delay)

    @property
    def max_retries(self) -> int:
        return int(self.config.max_retries)

    def floor_for(self, identity: FilterIdentity) -> int:
        if identity.city is not None:
            return int(self.config.minimum_city_count)
        return int(self.config.minimum_global_count)

    def check(self, identity: FilterIdentity, current: int) -> AnomalyCheckResult:
        """
        Compare ``current`` against the last stored count of the same series.

        Returns:
            AnomalyCheckResult with reason NO_PREVIOUS_DATA, BELOW_THRESHOLD,
            DROP_DETECTED (the only anomalous outcome) or NORMAL
        """
        previous_record = self.store.find_previous(identity.natural_key(), self.clock())
        if previous_record is None:
            return AnomalyCheckResult.no_previous_data()

        previous = previous_record.count
        if previous <= 0 or previous < self.floor_for(identity):
            return AnomalyCheckResult.below_threshold(previous)

        drop = drop_fraction(previous, current)
        # Strict: a drop exactly at the threshold is still normal
        if drop > self.drop_threshold:
            return AnomalyCheckResult.drop_detected(previous, drop)
        return AnomalyCheckResult.normal(previous, drop)

    def validate_retry_result(self, retry_count: int, previous: int, identity: FilterIdentity) -> bool:
        """
        Re-apply the drop test to a refetched count.

        Returns:
            True if the retry is still anomalous against ``previous``
        """
        if previous <= 0 or previous < self.floor_for(identity):
            return False
        return drop_fraction(previous, retry_count) > self.drop_threshold

    @staticmethod
    def resolve_count(first: int, second: int) -> int:
        """A stale page under-reports, never over-reports, so trust the larger count."""
        return max(first, second)
