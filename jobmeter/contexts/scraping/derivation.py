"""
Salary bucket derivation.

Derivation rules, from the three cached base values of a filter group:
- None (any salary): ANY                         -> CACHE
- OVER_30K:          30k+                        -> CACHE
- UNDER_25K:         max(0, ANY - 25k+)          -> DERIVED
- RANGE_25_30K:      max(0, 25k+ - 30k+)         -> DERIVED

Counts are clamped at zero because the upstream pages drift between requests
(25k+ can come back larger than ANY). For consistent inputs the three buckets
sum to ANY.
"""

from datetime import datetime
from typing import Callable, Optional, Tuple

from loguru import logger

from jobmeter.contexts.scraping.cache import SessionCache
from jobmeter.contexts.scraping.fetcher import BaseValueFetcher
from jobmeter.contexts.scraping.filters import (
    SALARY_25K_PLUS,
    SALARY_30K_PLUS,
    FilterIdentity,
    SalaryRange,
    cache_key,
)
from jobmeter.contexts.scraping.results import FetchResult, ResultSource


def derive_bucket(
    salary_range: Optional[SalaryRange],
    any_count: Optional[int],
    plus_25k: Optional[int],
    plus_30k: Optional[int],
) -> Optional[Tuple[int, ResultSource]]:
    """
    Compute one salary bucket from the base values.

    Returns:
        (count, source), or None if a base value the bucket needs is missing
    """
    if salary_range is None:
        return (any_count, ResultSource.CACHE) if any_count is not None else None

    if salary_range == SalaryRange.OVER_30K:
        return (plus_30k, ResultSource.CACHE) if plus_30k is not None else None

    if salary_range == SalaryRange.UNDER_25K:
        if any_count is None or plus_25k is None:
            return None
        return max(0, any_count - plus_25k), ResultSource.DERIVED

    if salary_range == SalaryRange.RANGE_25_30K:
        if plus_25k is None or plus_30k is None:
            return None
        return max(0, plus_25k - plus_30k), ResultSource.DERIVED

    raise ValueError(f"Unknown salary range: {salary_range}")


class DerivationEngine:
    def __init__(self, cache: SessionCache, fetcher: BaseValueFetcher, clock: Callable[[], datetime] = datetime.now):
        self.cache = cache
        self.fetcher = fetcher
        self.clock = clock

    def derive(self, identity: FilterIdentity) -> FetchResult:
        """Result for ``identity`` from cached base values, falling back to a direct fetch."""
        group = identity.group
        derived = derive_bucket(
            identity.salary_range,
            self.cache.get(cache_key(group)),
            self.cache.get(cache_key(group, SALARY_25K_PLUS)),
            self.cache.get(cache_key(group, SALARY_30K_PLUS)),
        )

        if derived is not None:
            count, source = derived
            if source == ResultSource.DERIVED:
                logger.debug(f"Derived {identity.salary_range.value} for {group}: {count}")
            return FetchResult.succeeded(identity, count, source, self.clock())

        # Cache miss - fall back to a direct fetch of this one identity
        logger.warning(f"Cache miss for {identity}, falling back to direct fetch")
        count = self.fetcher.fetch_direct(identity)
        if count is None:
            return FetchResult.failed(identity, f"Could not fetch count for {identity}", self.clock())
        return FetchResult.succeeded(identity, count, ResultSource.FALLBACK, self.clock())
