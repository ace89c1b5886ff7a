from types import SimpleNamespace

import pytest

from jobmeter.contexts.scraping.extractor import HTMLCountExtractor, extract_count_from_text, extract_job_count
from jobmeter.contexts.scraping.filters import SALARY_25K_PLUS, ExperienceLevel, MetricType
from jobmeter.contexts.scraping.requests import LINK_GOOD, LINK_UNKNOWN, classify_http_outcome


class StubFetcher:
    def __init__(self, html=None, classification=LINK_GOOD):
        self.html = html
        self.classification = classification
        self.urls = []

    def fetch(self, url):
        self.urls.append(url)
        if self.classification != LINK_GOOD:
            return None, self.classification, "timed out"
        return SimpleNamespace(text=self.html, status_code=200), LINK_GOOD, None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Java: 1 234 ofert pracy", 1234),
        ("368 job offers", 368),
        ("2,345 offers", 2345),
        ("12 500 offers", 12500),
        ("Remote work - 42 offers", 42),
        ("no numbers here", None),
        ("", None),
    ],
)
def test_extract_count_from_text(text, expected):
    assert extract_count_from_text(text) == expected


def test_count_from_title():
    html = "<html><head><title>Java - 1 234 ofert pracy | Just Join IT</title></head><body>7 offers</body></html>"
    assert extract_job_count(html) == 1234


def test_count_from_counter_element():
    html = (
        "<html><head><title>Just Join IT</title></head>"
        "<body><nav>Top 10 companies</nav><div class='offers-count'>2,345 offers</div></body></html>"
    )
    assert extract_job_count(html) == 2345


def test_count_from_body_text():
    html = "<html><head><title>Just Join IT</title></head><body><p>We found 57 offers for you</p></body></html>"
    assert extract_job_count(html) == 57


def test_no_count_on_page():
    assert extract_job_count("<html><body>No results</body></html>") is None


def test_build_url(scraper_config):
    extractor = HTMLCountExtractor(scraper_config.extractor, fetcher=StubFetcher())
    url = extractor.build_url("java", MetricType.REMOTE, "wroclaw", ExperienceLevel.MID, SALARY_25K_PLUS)
    assert url == "https://justjoin.it/job-offers/wroclaw/java?workplace=remote&experience-level=mid&salary=25000,500000"


def test_fetch_reads_count_from_page(scraper_config):
    fetcher = StubFetcher(html="<html><head><title>230 offers</title></head></html>")
    extractor = HTMLCountExtractor(scraper_config.extractor, fetcher=fetcher)

    assert extractor.fetch("java", MetricType.TOTAL) == 230
    assert fetcher.urls == ["https://justjoin.it/job-offers/all-locations/java"]


def test_fetch_returns_none_on_failure(scraper_config):
    extractor = HTMLCountExtractor(scraper_config.extractor, fetcher=StubFetcher(classification=LINK_UNKNOWN))
    assert extractor.fetch("java", MetricType.TOTAL) is None


def test_classify_http_outcome():
    assert classify_http_outcome(response=SimpleNamespace(status_code=200)) == LINK_GOOD
    assert classify_http_outcome(response=SimpleNamespace(status_code=503)) == LINK_UNKNOWN
    assert classify_http_outcome() == LINK_UNKNOWN
