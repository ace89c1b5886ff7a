"""
Batch orchestration for job count measurements.

A batch measures every filter combination of one category (or of every active
category). Per (category, metric, city, experience) group it:
- fetches the three base values through the session cache and rate limiter
- derives the four salary buckets from them
- guards each count against anomalous drops, refetching suspicious ones
- hands each result to the aggregator, which persists it idempotently

No per-identity failure aborts a batch. Cancellation and a tripped network
circuit breaker stop it early with a partial summary.
"""

import os
import random
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from dotenv import load_dotenv
from loguru import logger
from tqdm import tqdm

from jobmeter.contexts.scraping.aggregator import ResultAggregator
from jobmeter.contexts.scraping.anomaly import AnomalyDetector
from jobmeter.contexts.scraping.cache import SessionCache
from jobmeter.contexts.scraping.derivation import DerivationEngine
from jobmeter.contexts.scraping.events import log_anomaly_event
from jobmeter.contexts.scraping.extractor import CountExtractor
from jobmeter.contexts.scraping.fetcher import BaseValueFetcher
from jobmeter.contexts.scraping.filters import FilterGroup
from jobmeter.contexts.scraping.planner import SALARY_OPTIONS, plan_groups
from jobmeter.contexts.scraping.requests import NetworkCircuitBreakerException
from jobmeter.contexts.scraping.results import BatchSummary, FetchResult, ResultSource
from jobmeter.contexts.scraping.throttle import BatchCancelled, RateLimiter
from jobmeter.contexts.storage import JobCountStore, TrackedCategory, TrackedRegistry

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))

ALL_CATEGORIES = "all"


class UnknownCategoryError(LookupError):
    """Raised when a batch is requested for a category slug that is not tracked."""


def setup_logger(log_dir: Path = LOGS_PATH) -> Path:
    """
    Configure loguru to write to timestamped log file.

    Args:
        log_dir: Directory for log files (default: LOGS_PATH from environment)

    Returns:
        Path to the created log file
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"batch_{timestamp}.txt"

    # Remove default handler and add file handler
    logger.remove()
    logger.add(log_file, format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}")
    logger.add(
        lambda msg: tqdm.write(msg, end=""),  # Console output that does not break progress bars
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}\n",
        level="INFO",
    )

    return log_file


def start_jitter_seconds(jitter_minutes: float, rng: Optional[random.Random] = None) -> float:
    """Random delay before a scheduled batch so runs do not start on the exact same minute."""
    if jitter_minutes <= 0:
        return 0.0
    return (rng or random).uniform(0, jitter_minutes * 60)


class JobCountScraper:
    """
    Runs measurement batches.

    Args:
        registry: Tracked categories and cities
        store: Job count persistence gateway
        extractor: Anything with a CountExtractor ``fetch`` method
        config: Scraper config with ``politeness``, ``anomaly_detection`` and ``batch`` sections
        clock: Source of "now" for fetch timestamps and anomaly lookups
        log_dir: Directory for the anomaly event log
    """

    def __init__(
        self,
        registry: TrackedRegistry,
        store: JobCountStore,
        extractor: CountExtractor,
        config,
        clock: Callable[[], datetime] = datetime.now,
        log_dir: Path = LOGS_PATH,
    ):
        self.registry = registry
        self.store = store
        self.extractor = extractor
        self.config = config
        self.clock = clock
        self.log_dir = log_dir
        self.detector = AnomalyDetector(store, config.anomaly_detection, clock)
        self._cancel_event = threading.Event()

    @property
    def workers(self) -> int:
        batch_config = self.config.get("batch") or {}
        return max(1, int(batch_config.get("workers", 1)))

    def cancel(self) -> None:
        """Ask the running batch to stop at its next wait or fetch."""
        logger.warning("Cancellation requested")
        self._cancel_event.set()

    def run_batch(self, category_slug: str) -> BatchSummary:
        """
        Measure every filter combination of one category.

        Raises:
            UnknownCategoryError: If no tracked category has this slug
        """
        category = self.registry.find_category(category_slug)
        if category is None:
            raise UnknownCategoryError(f"Unknown category: {category_slug}")

        if not category.active:
            logger.warning(f"Category '{category_slug}' is inactive, nothing to measure")
            return BatchSummary(scope=category_slug)

        return self._run(category_slug, [category])

    def run_batch_for_all(self) -> BatchSummary:
        """Measure every filter combination of every active category in one batch."""
        categories = self.registry.active_categories()
        if not categories:
            logger.warning("No active categories to measure")
        return self._run(ALL_CATEGORIES, categories)

    def _run(self, scope: str, categories: Sequence[TrackedCategory]) -> BatchSummary:
        self._cancel_event.clear()
        cities = self.registry.active_cities()
        groups = list(plan_groups(categories, cities))
        planned = len(groups) * len(SALARY_OPTIONS)
        logger.info(
            f"[{scope}] Planned {planned} combinations "
            f"({len(categories)} categories, {len(cities)} cities, {self.workers} workers)"
        )

        # Fresh per batch: cache, pacing state and request counter
        cache = SessionCache()
        cache.clear()
        limiter = RateLimiter(self.config.politeness, self._cancel_event)
        fetcher = BaseValueFetcher(self.extractor, cache, limiter)
        engine = DerivationEngine(cache, fetcher, self.clock)
        aggregator = ResultAggregator(self.store)

        start_time = time.time()
        cancelled = False
        error = None
        try:
            self._process_groups(groups, fetcher, engine, limiter, aggregator)
        except BatchCancelled:
            cancelled = True
            logger.warning(f"[{scope}] Batch cancelled, keeping results persisted so far")
        except NetworkCircuitBreakerException as e:
            error = str(e)
            logger.error(f"[{scope}] Batch aborted: {error}")
        except KeyboardInterrupt:
            self._cancel_event.set()
            logger.warning(f"[{scope}] Interrupted, keeping results persisted so far")
            raise
        finally:
            cache.clear()

        summary = aggregator.summary(scope, planned)
        summary.requests = limiter.request_count
        summary.elapsed = time.time() - start_time
        summary.cancelled = cancelled
        summary.error = error

        if summary.completed:
            logger.success(f"[{scope}] Completed: {summary.describe()} ({summary.elapsed:.1f}s)")
        else:
            logger.warning(f"[{scope}] Stopped early: {summary.describe()} ({summary.elapsed:.1f}s)")
        return summary

    def _process_groups(
        self,
        groups: List[FilterGroup],
        fetcher: BaseValueFetcher,
        engine: DerivationEngine,
        limiter: RateLimiter,
        aggregator: ResultAggregator,
    ) -> None:
        if self.workers == 1:
            for group in tqdm(groups, desc="Filter groups", unit="group"):
                self._process_group(group, fetcher, engine, limiter, aggregator)
            return

        # Workers share one limiter, so they never fetch faster than a single session
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [
                executor.submit(self._process_group, group, fetcher, engine, limiter, aggregator) for group in groups
            ]
            try:
                for future in tqdm(as_completed(futures), total=len(futures), desc="Filter groups", unit="group"):
                    future.result()
            except BaseException:
                self._cancel_event.set()
                for future in futures:
                    future.cancel()
                raise

    def _process_group(
        self,
        group: FilterGroup,
        fetcher: BaseValueFetcher,
        engine: DerivationEngine,
        limiter: RateLimiter,
        aggregator: ResultAggregator,
    ) -> None:
        # All three base values are in the cache (or failed) before any derivation
        fetcher.fetch_base_values(group)

        for salary_range in SALARY_OPTIONS:
            identity = group.with_salary(salary_range)
            try:
                result = engine.derive(identity)
                if result.success and self.detector.enabled and not self._already_recorded(result):
                    result = self._guard_anomaly(result, fetcher, limiter)
            except (BatchCancelled, NetworkCircuitBreakerException):
                raise
            except Exception as e:
                logger.error(f"Unexpected error measuring {identity}: {e}")
                logger.debug(f"Traceback:\n{traceback.format_exc()}")
                result = FetchResult.failed(identity, str(e), self.clock())

            aggregator.record(result)

    def _already_recorded(self, result: FetchResult) -> bool:
        """A series stored earlier today is skipped on save, so it is not worth retry requests."""
        return self.store.find_existing(result.identity.natural_key(), result.fetched_at.date()) is not None

    def _guard_anomaly(self, result: FetchResult, fetcher: BaseValueFetcher, limiter: RateLimiter) -> FetchResult:
        """
        Check a successful result for an anomalous drop and resolve it by refetching.

        Each retry waits ``retry_delay``, fetches the identity directly and keeps
        the larger count. Retrying stops once a refetch is no longer anomalous.
        If every retry is still anomalous the max of all attempts is used and the
        result is flagged ``anomaly_persisted``.
        """
        identity = result.identity
        check = self.detector.check(identity, result.count)
        result = replace(result, anomaly_reason=check.reason, previous_count=check.previous_count)
        if not check.anomaly_detected:
            return result

        first_count = result.count
        logger.warning(
            f"Anomalous drop for {identity}: {check.previous_count} -> {first_count} "
            f"({check.drop_percentage:.1%}), retrying"
        )

        resolved = first_count
        source = result.source
        attempts = 0
        still_anomalous = True
        while still_anomalous and attempts < self.detector.max_retries:
            attempts += 1
            limiter.wait(self.detector.retry_delay)

            retry_count = fetcher.fetch_direct(identity)
            if retry_count is None:
                logger.warning(f"Retry {attempts}/{self.detector.max_retries} failed for {identity}")
                continue

            best = self.detector.resolve_count(resolved, retry_count)
            if best != resolved:
                resolved = best
                source = ResultSource.HTML
            still_anomalous = self.detector.validate_retry_result(retry_count, check.previous_count, identity)
            logger.info(f"Retry {attempts}/{self.detector.max_retries} for {identity}: {retry_count}")

        result = replace(
            result,
            count=resolved,
            source=source,
            retry_attempts=attempts,
            anomaly_persisted=still_anomalous,
        )

        if still_anomalous:
            logger.warning(
                f"Drop persisted for {identity} after {attempts} retries, "
                f"using max of attempts: {resolved} (previous {check.previous_count})"
            )
            log_anomaly_event(result, first_count, check.drop_percentage, log_dir=self.log_dir)
        else:
            logger.info(f"Anomaly resolved for {identity}: {first_count} -> {resolved}")
        return result
