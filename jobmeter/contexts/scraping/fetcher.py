"""
Base-value fetching.

For every filter group three canonical counts are needed, fetched at most once
per batch and in this order:
- ANY: no salary filter (the group's total)
- 25k+: salary=25000,500000
- 30k+: salary=30000,500000

Every salary bucket is derived from these. Direct fetches of a single identity
(fallback after a cache miss, anomaly retries) bypass the cache.
"""

from typing import Dict, Optional

from loguru import logger

from jobmeter.contexts.scraping.cache import SessionCache
from jobmeter.contexts.scraping.extractor import CountExtractor
from jobmeter.contexts.scraping.filters import (
    BASE_SALARY_BOUNDS,
    FilterGroup,
    FilterIdentity,
    SalaryBound,
    cache_key,
    direct_salary_bound,
    subtraction_salary_bound,
)
from jobmeter.contexts.scraping.requests import NetworkCircuitBreakerException
from jobmeter.contexts.scraping.throttle import RateLimiter


def base_label(salary_bound: Optional[SalaryBound]) -> str:
    return "ANY" if salary_bound is None else f"{salary_bound.minimum // 1000}k+"


class BaseValueFetcher:
    def __init__(self, extractor: CountExtractor, cache: SessionCache, limiter: RateLimiter):
        self.extractor = extractor
        self.cache = cache
        self.limiter = limiter

    def _extract(self, group: FilterGroup, salary_bound: Optional[SalaryBound]) -> Optional[int]:
        try:
            return self.extractor.fetch(
                group.category_slug,
                group.metric_type,
                city=group.city,
                experience_level=group.experience_level,
                salary_bound=salary_bound,
            )
        except NetworkCircuitBreakerException:
            raise
        except Exception as e:
            logger.error(f"Extractor error for {group} ({base_label(salary_bound)}): {e}")
            return None

    def physical_fetch(self, group: FilterGroup, salary_bound: Optional[SalaryBound] = None) -> Optional[int]:
        """One request to the job board, paced by the shared rate limiter."""
        return self.limiter.throttled(self._extract, group, salary_bound)

    def fetch_base_values(self, group: FilterGroup) -> Dict[str, Optional[int]]:
        """
        Make sure the three base values of ``group`` are cached.

        Cached values are not fetched again (and cost no politeness delay).
        A failed fetch leaves its value uncached, so the derivation step can
        fall back to a direct fetch for the buckets that need it.

        Returns:
            Dict mapping base label ("ANY", "25k+", "30k+") to its value, None if unavailable
        """
        values = {}
        for salary_bound in BASE_SALARY_BOUNDS:
            label = base_label(salary_bound)
            key = cache_key(group, salary_bound)

            cached = self.cache.get(key)
            if cached is not None:
                values[label] = cached
                continue

            count = self.physical_fetch(group, salary_bound)
            if count is None:
                logger.error(f"Failed to fetch '{label}' base value for {group}")
            else:
                self.cache.put(key, count)
                logger.debug(f"Fetched and cached '{label}' value for {key}: {count}")
            values[label] = count

        return values

    def fetch_direct(self, identity: FilterIdentity) -> Optional[int]:
        """
        Fetch the count of a single identity without using the session cache.

        Buckets without a lower bound cannot be filtered for directly, so they
        are computed as total minus the count above the bucket.
        """
        group = identity.group

        if identity.salary_range is None:
            return self.physical_fetch(group)

        salary_bound = direct_salary_bound(identity.salary_range)
        if salary_bound is not None:
            return self.physical_fetch(group, salary_bound)

        logger.info(f"Using subtraction approach for {identity}")
        total = self.physical_fetch(group)
        if total is None:
            return None

        above = self.physical_fetch(group, subtraction_salary_bound(identity.salary_range))
        if above is None:
            return None

        result = max(0, total - above)
        logger.info(f"Subtraction result: {total} - {above} = {result}")
        return result
