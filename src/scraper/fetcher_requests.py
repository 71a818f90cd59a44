"""Requests-based transport for environments without a browser.

Fetches raw HTML with a plain GET and renders it to Markdown locally.
Content that only appears after JavaScript runs (lazy loading) is not seen.
"""

import logging
from typing import Optional

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import settings
from src.scraper.markdown import render_html
from src.scraper.transport import PageResult, PageTransport, RateLimiter, TransportError

logger = logging.getLogger(__name__)


def _get_headers(user_agent: str) -> dict:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
    }


class RequestsFetcher(PageTransport):
    """Obtain pages via HTTP GET and convert them to Markdown."""

    name = "requests"

    def __init__(
        self,
        rate_limit: Optional[float] = None,
        user_agent: Optional[str] = None,
        request_timeout: Optional[int] = None,
    ):
        self.rate_limit = rate_limit if rate_limit is not None else settings.rate_limit_seconds
        self.user_agent = user_agent or settings.user_agent
        self.request_timeout = request_timeout or settings.request_timeout
        self._rate_limiter = RateLimiter(self.rate_limit)
        self._session: Optional[requests.Session] = None

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(_get_headers(self.user_agent))
        return self._session

    @retry(
        stop=stop_after_attempt(settings.max_retries),
        wait=wait_exponential(multiplier=settings.retry_base_delay, min=1, max=10),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "Retry attempt %d after error", retry_state.attempt_number
        ),
    )
    def _get(self, url: str) -> requests.Response:
        return self.session.get(url, timeout=self.request_timeout)

    def fetch_html(self, url: str) -> str:
        """GET the raw HTML of a URL."""
        self._rate_limiter.wait()
        logger.info("Fetching: %s", url)
        try:
            r = self._get(url)
            r.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Request failed for %s: %s", url, e)
            raise TransportError(f"Request failed for {url}: {e}", url) from e
        r.encoding = r.apparent_encoding or "utf-8"
        html = r.text
        logger.debug("Fetched %d bytes from %s", len(html), url)
        return html

    def fetch_page(self, url: str) -> PageResult:
        html = self.fetch_html(url)
        markdown, links = render_html(html, base_url=url)
        return PageResult(url=url, markdown=markdown, links=links)
