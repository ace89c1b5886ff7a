"""HTTP helpers shared by the count extractor."""

from typing import Optional

import requests
import time
from loguru import logger

PermanentCodeSet = (401, 403, 404, 410)
TransientCodeSet = (408, 425, 429, 500, 502, 503, 504)

PermanentErrorTypes = (requests.exceptions.InvalidURL, requests.exceptions.TooManyRedirects)

LINK_GOOD = "success"
LINK_BAD = "failure"
LINK_UNKNOWN = "transient failure"


def classify_http_outcome(
    exception: Optional[requests.RequestException] = None,
    response: Optional[requests.Response] = None,
) -> str:
    if response is None and exception is not None:
        response = getattr(exception, "response", None)

    if response is not None:  # We received a response object.
        status = response.status_code
        if 200 <= status < 300:
            return LINK_GOOD
        elif status in PermanentCodeSet:
            return LINK_BAD
        else:
            return LINK_UNKNOWN

    elif exception is not None:  # No response object, but we did receive an exception.
        if isinstance(exception, PermanentErrorTypes):
            return LINK_BAD
        else:
            return LINK_UNKNOWN
    else:
        # We received nothing. We know nothing about the page.
        return LINK_UNKNOWN


def html_request_with_retry(session, url, max_attempts=3, delay=1.0, **kwargs):
    """
    GET a page, retrying transient failures with exponential backoff.

    Args:
        session (requests.Session): Session carrying the browser-like headers
        url (str): The URL to request
        max_attempts (int): How many times to try the request (default: 3)
        delay (float): Initial delay in seconds between retries (default: 1.0)
        **kwargs: Passed through to session.get() (e.g. timeout)

    Returns:
        requests.Response: The response object from successful request

    Raises:
        requests.RequestException: If all retry attempts fail, or the failure is permanent
    """
    most_recent_exception = None

    for attempt in range(max_attempts):
        try:
            response = session.get(url, **kwargs)
            response.raise_for_status()
            return response

        except requests.RequestException as e:
            most_recent_exception = e
            if classify_http_outcome(exception=e) == LINK_BAD:
                break

            if attempt < max_attempts - 1:
                wait_time = delay * (2**attempt)
                logger.warning(f"Request to {url} failed ({e}), retrying in {wait_time}s...")
                time.sleep(wait_time)

    raise most_recent_exception


class NetworkCircuitBreakerException(Exception):
    pass


class URLFetcher:
    def __init__(
        self,
        user_agent=None,
        timeout=10.0,
        max_consecutive_failures=5,
        retry_backoff=1.0,
        max_retries=3,
    ):
        self.timeout = timeout
        self.max_consecutive_failures = max_consecutive_failures
        self.retry_backoff = retry_backoff
        self.max_retries = max_retries
        self.consecutive_failures = 0

        self.session = requests.Session()
        if user_agent:
            self.session.headers.update({"User-Agent": user_agent})

    def fetch(self, url):
        """
        Fetch URL with retry, classification, and circuit breaking.

        Returns:
            tuple: (response or None, classification string, error_msg or None)

        Raises:
            NetworkCircuitBreakerException: If consecutive transient failures exceed threshold
        """
        error_msg = None

        try:
            response = html_request_with_retry(
                self.session,
                url,
                max_attempts=self.max_retries,
                delay=self.retry_backoff,
                timeout=self.timeout,
            )
            classification = classify_http_outcome(response=response)
        except requests.RequestException as e:
            classification = classify_http_outcome(exception=e)
            response = None
            error_msg = str(e)

        if classification == LINK_UNKNOWN:
            self.consecutive_failures += 1

            if self.consecutive_failures >= self.max_consecutive_failures:
                raise NetworkCircuitBreakerException(
                    f"Circuit breaker: {self.consecutive_failures} consecutive transient failures"
                )
        else:
            self.consecutive_failures = 0

        return response, classification, error_msg
