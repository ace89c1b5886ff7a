import json
import threading
import time
from datetime import date

import pytest

from jobmeter.contexts.scraping.filters import (
    SALARY_25K_PLUS,
    FilterIdentity,
    MetricType,
    SalaryRange,
)
from jobmeter.contexts.scraping.orchestration import JobCountScraper, UnknownCategoryError, start_jitter_seconds
from jobmeter.contexts.scraping.requests import NetworkCircuitBreakerException
from jobmeter.contexts.scraping.results import AnomalyReason, ResultSource

# java with one active city: 4 metrics x 2 locations x 4 levels = 32 groups
JAVA_PLANNED = 128
JAVA_GROUPS = 32

JAVA_ANY = FilterIdentity("java", MetricType.TOTAL)


@pytest.fixture
def make_scraper(registry, store, scraper_config, tmp_path):
    def _make(extractor, config=scraper_config):
        return JobCountScraper(registry, store, extractor, config, log_dir=tmp_path)

    return _make


def result_for(summary, identity):
    return next(result for result in summary.results if result.identity == identity)


def test_java_batch_end_to_end(make_scraper, make_extractor, store):
    extractor = make_extractor()
    summary = make_scraper(extractor).run_batch("java")

    assert summary.completed
    assert summary.planned == JAVA_PLANNED
    assert (summary.succeeded, summary.skipped, summary.failed) == (JAVA_PLANNED, 0, 0)
    assert summary.requests == 3 * JAVA_GROUPS
    assert len(extractor.calls) == 3 * JAVA_GROUPS
    assert store.count_records("java") == JAVA_PLANNED

    today = date.today()
    counts = {
        salary_range: store.find_existing(JAVA_ANY.group.with_salary(salary_range).natural_key(), today).count
        for salary_range in SalaryRange
    }
    assert counts == {SalaryRange.UNDER_25K: 50, SalaryRange.RANGE_25_30K: 130, SalaryRange.OVER_30K: 50}
    assert sum(counts.values()) == 230
    assert store.find_existing(JAVA_ANY.natural_key(), today).count == 230

    assert result_for(summary, JAVA_ANY).anomaly_reason == AnomalyReason.NO_PREVIOUS_DATA
    assert result_for(summary, JAVA_ANY.group.with_salary(SalaryRange.UNDER_25K)).source == ResultSource.DERIVED


def test_second_run_on_same_day_skips(make_scraper, make_extractor, store):
    make_scraper(make_extractor()).run_batch("java")
    summary = make_scraper(make_extractor()).run_batch("java")

    assert (summary.succeeded, summary.skipped, summary.failed) == (0, JAVA_PLANNED, 0)
    assert store.count_records("java") == JAVA_PLANNED


def test_unknown_category_is_rejected(make_scraper, make_extractor):
    with pytest.raises(UnknownCategoryError):
        make_scraper(make_extractor()).run_batch("rust")
    assert issubclass(UnknownCategoryError, LookupError)


def test_inactive_category_yields_empty_summary(make_scraper, make_extractor):
    extractor = make_extractor()
    summary = make_scraper(extractor).run_batch("cobol")

    assert summary.planned == 0
    assert summary.results == []
    assert extractor.calls == []


def test_batch_for_all_active_categories(make_scraper, make_extractor, store):
    summary = make_scraper(make_extractor()).run_batch_for_all()

    assert summary.scope == "all"
    assert summary.planned == 2 * JAVA_PLANNED
    assert summary.succeeded == 2 * JAVA_PLANNED
    assert store.count_records("python") == JAVA_PLANNED
    assert store.count_records("cobol") == 0


def test_failed_base_value_falls_back(make_scraper, make_extractor):
    extractor = make_extractor(scripted={("java", MetricType.TOTAL, None, None, SALARY_25K_PLUS): [None]})
    summary = make_scraper(extractor).run_batch("java")

    assert summary.failed == 0
    assert summary.requests == 3 * JAVA_GROUPS + 3

    under = result_for(summary, JAVA_ANY.group.with_salary(SalaryRange.UNDER_25K))
    within = result_for(summary, JAVA_ANY.group.with_salary(SalaryRange.RANGE_25_30K))
    assert (under.count, under.source) == (50, ResultSource.FALLBACK)
    assert (within.count, within.source) == (130, ResultSource.FALLBACK)


def test_unrecoverable_identity_fails_without_aborting(make_scraper, make_extractor):
    extractor = make_extractor(scripted={("java", MetricType.TOTAL, None, None, SALARY_25K_PLUS): [None, None]})
    summary = make_scraper(extractor).run_batch("java")

    assert summary.completed
    assert summary.failed == 1
    assert summary.succeeded == JAVA_PLANNED - 1
    assert not result_for(summary, JAVA_ANY.group.with_salary(SalaryRange.UNDER_25K)).success


def test_persisting_drop_uses_max_of_attempts(make_scraper, make_extractor, save_previous, tmp_path):
    save_previous(JAVA_ANY.natural_key(), 1000)
    extractor = make_extractor(scripted={("java", MetricType.TOTAL, None, None, None): [230, 200, 240]})

    summary = make_scraper(extractor).run_batch("java")
    result = result_for(summary, JAVA_ANY)

    assert result.anomaly_reason == AnomalyReason.DROP_DETECTED
    assert result.previous_count == 1000
    assert result.retry_attempts == 2
    assert result.anomaly_persisted
    assert result.count == 240
    assert result.source == ResultSource.HTML
    assert (summary.anomalies, summary.anomalies_persisted) == (1, 1)
    assert summary.requests == 3 * JAVA_GROUPS + 2

    events = (tmp_path / "anomaly_events.txt").read_text().splitlines()
    assert len(events) == 1
    event = json.loads(events[0])
    assert (event["previous_count"], event["first_count"], event["resolved_count"]) == (1000, 230, 240)


def test_retry_resolves_transient_drop(make_scraper, make_extractor, save_previous, tmp_path):
    save_previous(JAVA_ANY.natural_key(), 1000)
    extractor = make_extractor(scripted={("java", MetricType.TOTAL, None, None, None): [230, 990]})

    summary = make_scraper(extractor).run_batch("java")
    result = result_for(summary, JAVA_ANY)

    assert result.retry_attempts == 1
    assert not result.anomaly_persisted
    assert (result.count, result.source) == (990, ResultSource.HTML)
    assert (summary.anomalies, summary.anomalies_persisted) == (1, 0)
    assert not (tmp_path / "anomaly_events.txt").exists()


def test_disabled_detection_skips_checks(make_scraper, make_extractor, save_previous, scraper_config):
    scraper_config.anomaly_detection.enabled = False
    save_previous(JAVA_ANY.natural_key(), 1000)

    summary = make_scraper(make_extractor(), scraper_config).run_batch("java")
    result = result_for(summary, JAVA_ANY)

    assert result.anomaly_reason is None
    assert result.count == 230
    assert summary.requests == 3 * JAVA_GROUPS


def test_cancel_keeps_persisted_results(make_scraper, make_extractor, store):
    extractor = make_extractor()
    scraper = make_scraper(extractor)
    extractor.after_call = lambda n: scraper.cancel() if n == 10 else None

    summary = scraper.run_batch("java")

    assert summary.cancelled
    assert not summary.completed
    assert summary.requests == 10
    # Three full groups were measured before the cancel
    assert summary.succeeded == 12
    assert store.count_records("java") == 12


def test_circuit_breaker_stops_batch(make_scraper, make_extractor, store):
    extractor = make_extractor()
    extractor.after_call = lambda n: _trip(n)

    summary = make_scraper(extractor).run_batch("java")

    assert summary.error is not None
    assert not summary.cancelled
    assert not summary.completed
    assert summary.succeeded == 4
    assert store.count_records("java") == 4


def test_breaker_error_wins_over_cancel_during_fetch(make_scraper, make_extractor, store):
    extractor = make_extractor()
    scraper = make_scraper(extractor)

    def cancel_then_trip(n):
        if n == 5:
            scraper.cancel()
            _trip(n)

    extractor.after_call = cancel_then_trip

    summary = scraper.run_batch("java")

    assert summary.error is not None
    assert not summary.cancelled
    assert summary.succeeded == 4
    assert store.count_records("java") == 4


def _trip(n):
    if n == 5:
        raise NetworkCircuitBreakerException("Circuit breaker: 5 consecutive transient failures")


def test_worker_pool_shares_one_request_channel(make_scraper, make_extractor, scraper_config, store):
    scraper_config.batch.workers = 4
    scraper_config.anomaly_detection.enabled = False

    summary = make_scraper(make_extractor(), scraper_config).run_batch("java")

    assert summary.completed
    assert summary.succeeded == JAVA_PLANNED
    assert summary.requests == 3 * JAVA_GROUPS
    assert store.count_records("java") == JAVA_PLANNED


def test_worker_pool_with_detection_keeps_one_request_in_flight(
    make_scraper, make_extractor, scraper_config, save_previous, store
):
    scraper_config.batch.workers = 4
    save_previous(JAVA_ANY.natural_key(), 1000)

    class OverlapTrackingExtractor(make_extractor):
        def __init__(self):
            super().__init__()
            self.active = 0
            self.max_active = 0
            self._lock = threading.Lock()

        def fetch(self, *args, **kwargs):
            with self._lock:
                self.active += 1
                self.max_active = max(self.max_active, self.active)
            try:
                time.sleep(0.001)
                return super().fetch(*args, **kwargs)
            finally:
                with self._lock:
                    self.active -= 1

    extractor = OverlapTrackingExtractor()
    summary = make_scraper(extractor, scraper_config).run_batch("java")

    assert extractor.max_active == 1
    assert summary.completed
    assert (summary.succeeded, summary.failed) == (JAVA_PLANNED, 0)
    assert summary.requests == 3 * JAVA_GROUPS + 2
    assert result_for(summary, JAVA_ANY).anomaly_persisted
    assert store.count_records("java") == JAVA_PLANNED


def test_series_recorded_today_is_not_retried(make_scraper, make_extractor, save_previous, store):
    make_scraper(make_extractor()).run_batch("java")
    save_previous(JAVA_ANY.natural_key(), 1000)
    extractor = make_extractor(scripted={("java", MetricType.TOTAL, None, None, None): [100]})

    summary = make_scraper(extractor).run_batch("java")

    assert (summary.succeeded, summary.skipped, summary.failed) == (0, JAVA_PLANNED, 0)
    assert summary.requests == 3 * JAVA_GROUPS
    assert result_for(summary, JAVA_ANY).retry_attempts == 0
    assert summary.anomalies == 0
    assert store.find_existing(JAVA_ANY.natural_key(), date.today()).count == 230


def test_start_jitter_within_window():
    assert start_jitter_seconds(0) == 0.0
    assert all(0 <= start_jitter_seconds(30) <= 30 * 60 for _ in range(20))
