"""
Job count scraping domain.

Plans the filter space, fetches and derives counts from the job board politely,
guards against anomalous drops and hands results to storage.
"""

from jobmeter.contexts.scraping.filters import (
    MetricType,
    ExperienceLevel,
    SalaryRange,
    SalaryBound,
    FilterGroup,
    FilterIdentity,
    build_full_path,
    cache_key,
)
from jobmeter.contexts.scraping.planner import (
    plan_filter_space,
    plan_groups,
    count_combinations,
)
from jobmeter.contexts.scraping.cache import SessionCache
from jobmeter.contexts.scraping.throttle import (
    RateLimiter,
    BatchCancelled,
)
from jobmeter.contexts.scraping.requests import (
    html_request_with_retry,
    URLFetcher,
    NetworkCircuitBreakerException,
    classify_http_outcome,
)
from jobmeter.contexts.scraping.extractor import (
    CountExtractor,
    HTMLCountExtractor,
    extract_job_count,
)
from jobmeter.contexts.scraping.fetcher import BaseValueFetcher
from jobmeter.contexts.scraping.derivation import (
    DerivationEngine,
    derive_bucket,
)
from jobmeter.contexts.scraping.anomaly import AnomalyDetector
from jobmeter.contexts.scraping.results import (
    AnomalyCheckResult,
    AnomalyReason,
    BatchSummary,
    FetchResult,
    ResultSource,
)
from jobmeter.contexts.scraping.aggregator import ResultAggregator
from jobmeter.contexts.scraping.orchestration import (
    JobCountScraper,
    UnknownCategoryError,
    setup_logger,
)

__all__ = [
    # Filter vocabulary
    "MetricType",
    "ExperienceLevel",
    "SalaryRange",
    "SalaryBound",
    "FilterGroup",
    "FilterIdentity",
    "build_full_path",
    "cache_key",
    # Planning
    "plan_filter_space",
    "plan_groups",
    "count_combinations",
    # Fetching
    "SessionCache",
    "RateLimiter",
    "BatchCancelled",
    "html_request_with_retry",
    "URLFetcher",
    "NetworkCircuitBreakerException",
    "classify_http_outcome",
    "CountExtractor",
    "HTMLCountExtractor",
    "extract_job_count",
    "BaseValueFetcher",
    # Derivation and anomaly guarding
    "DerivationEngine",
    "derive_bucket",
    "AnomalyDetector",
    # Results
    "AnomalyCheckResult",
    "AnomalyReason",
    "BatchSummary",
    "FetchResult",
    "ResultSource",
    "ResultAggregator",
    # Orchestration
    "JobCountScraper",
    "UnknownCategoryError",
    "setup_logger",
]
