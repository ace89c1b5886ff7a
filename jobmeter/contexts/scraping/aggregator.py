"""
Result aggregation.

Successful results are persisted as they arrive so an aborted batch keeps what
it already measured. A series already stored for the same calendar date is
skipped, never stored twice.
"""

import threading
from typing import List

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from jobmeter.contexts.scraping.results import AnomalyReason, BatchSummary, FetchResult
from jobmeter.contexts.storage import JobCountStore


class ResultAggregator:
    def __init__(self, store: JobCountStore):
        self.store = store
        self.results: List[FetchResult] = []
        self.succeeded = 0
        self.skipped = 0
        self.failed = 0
        self.anomalies = 0
        self.anomalies_persisted = 0
        self._lock = threading.Lock()

    def record(self, result: FetchResult) -> str:
        """
        Account for one result, persisting it if it is new.

        Returns:
            Outcome: "saved", "skipped" or "failed"
        """
        with self._lock:
            self.results.append(result)
            if result.anomaly_reason == AnomalyReason.DROP_DETECTED:
                self.anomalies += 1
            if result.anomaly_persisted:
                self.anomalies_persisted += 1

            if not result.success:
                self.failed += 1
                logger.error(f"Failed {result.identity}: {result.error_message}")
                return "failed"

            record = result.to_record()
            try:
                if self.store.find_existing(record.key, record.record_date) is not None:
                    self.skipped += 1
                    logger.info(f"Skipping {result.identity}: already recorded on {record.record_date}")
                    return "skipped"
                self.store.save(record)
            except SQLAlchemyError as e:
                self.failed += 1
                logger.error(f"Could not persist {result.identity}: {e}")
                return "failed"

            self.succeeded += 1
            logger.info(f"Saved {result.identity}: {result.count} ({result.source.value})")
            return "saved"

    def summary(self, scope: str, planned: int) -> BatchSummary:
        with self._lock:
            return BatchSummary(
                scope=scope,
                planned=planned,
                succeeded=self.succeeded,
                skipped=self.skipped,
                failed=self.failed,
                anomalies=self.anomalies,
                anomalies_persisted=self.anomalies_persisted,
                results=list(self.results),
            )
