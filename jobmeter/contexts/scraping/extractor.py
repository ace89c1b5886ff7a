"""
Count extractor: turns a filter combination into a number of open offers.

The orchestration engine only relies on the CountExtractor contract, which
returns None on any transport or parse failure. HTMLCountExtractor is the
production implementation for the job board's listing pages.
"""

import re
from typing import Optional, Protocol

from bs4 import BeautifulSoup
from loguru import logger

from jobmeter.contexts.scraping.filters import (
    ExperienceLevel,
    MetricType,
    SalaryBound,
    build_full_path,
)
from jobmeter.contexts.scraping.requests import LINK_GOOD, URLFetcher

# "N offers" / "N ofert" / "N job offers"
COUNT_PATTERN = re.compile(r"(\d[\d\s,]*)\s*(?:current\s+)?(?:job\s+)?(offers?|ofert)", re.IGNORECASE)
# Header format with a dash separator, e.g. "Remote work - 368 job offers"
HEADER_COUNT_PATTERN = re.compile(r"[-–]\s*(\d[\d\s,]*)\s*(?:job\s+)?(offers?|ofert)", re.IGNORECASE)
WHITESPACE_PATTERN = re.compile(r"[\s\u00A0\u202F\u2007\u2009]+")

COUNTER_SELECTORS = [
    "[data-test='offers-count']",
    ".offers-count",
    "[class*='offers-count']",
    "[class*='job-count']",
]


class CountExtractor(Protocol):
    def fetch(
        self,
        category_slug: str,
        metric_type: MetricType,
        city: Optional[str] = None,
        experience_level: Optional[ExperienceLevel] = None,
        salary_bound: Optional[SalaryBound] = None,
    ) -> Optional[int]:
        ...


def _match_count(pattern: re.Pattern, text: str) -> Optional[int]:
    match = pattern.search(text)
    if not match:
        return None
    digits = re.sub(r"[\s,]", "", match.group(1))
    return int(digits) if digits.isdigit() else None


def extract_count_from_text(text: Optional[str], allow_header_format: bool = True) -> Optional[int]:
    """Find an "N offers" style count in free text."""
    if not text:
        return None

    normalized = WHITESPACE_PATTERN.sub(" ", text)
    count = _match_count(COUNT_PATTERN, normalized)
    if count is None and allow_header_format:
        count = _match_count(HEADER_COUNT_PATTERN, normalized)
    return count


def extract_job_count(html: str) -> Optional[int]:
    """
    Extract the number of offers from a listing page.

    Sources are tried from most to least reliable: page title, meta
    description, dedicated counter elements, then the page body text.
    """
    soup = BeautifulSoup(html, "html.parser")

    # Title and meta description only accept the plain "N offers" form so that
    # unrelated numbers (dates, category counts) are never picked up.
    title = soup.title.get_text() if soup.title else None
    count = extract_count_from_text(title, allow_header_format=False)
    if count is not None:
        return count

    meta = soup.find("meta", attrs={"name": "description"})
    if meta is not None:
        count = extract_count_from_text(meta.get("content"), allow_header_format=False)
        if count is not None:
            return count

    for selector in COUNTER_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            count = extract_count_from_text(element.get_text(" "))
            if count is not None:
                return count

    body = soup.body.get_text(" ") if soup.body else None
    return extract_count_from_text(body)


class HTMLCountExtractor:
    """Fetches listing pages and reads the offer count from them."""

    def __init__(self, extractor_config, fetcher: Optional[URLFetcher] = None):
        self.web_base_url = extractor_config.web_base_url.rstrip("/")
        self.fetcher = fetcher or URLFetcher(
            user_agent=extractor_config.user_agent,
            timeout=extractor_config.timeout,
            max_consecutive_failures=extractor_config.max_consecutive_failures,
            retry_backoff=extractor_config.retry_backoff,
            max_retries=extractor_config.max_retries,
        )

    def build_url(
        self,
        category_slug: str,
        metric_type: MetricType,
        city: Optional[str] = None,
        experience_level: Optional[ExperienceLevel] = None,
        salary_bound: Optional[SalaryBound] = None,
    ) -> str:
        return self.web_base_url + build_full_path(category_slug, metric_type, city, experience_level, salary_bound)

    def fetch(
        self,
        category_slug: str,
        metric_type: MetricType,
        city: Optional[str] = None,
        experience_level: Optional[ExperienceLevel] = None,
        salary_bound: Optional[SalaryBound] = None,
    ) -> Optional[int]:
        url = self.build_url(category_slug, metric_type, city, experience_level, salary_bound)
        logger.info(f"Fetching job count for {category_slug}[{metric_type.value}] ({url})")

        response, classification, error_msg = self.fetcher.fetch(url)
        if classification != LINK_GOOD:
            logger.error(f"Failed to fetch {url}: {error_msg or classification}")
            return None

        count = extract_job_count(response.text)
        if count is None:
            logger.warning(f"Could not extract job count from {url}")
        return count
