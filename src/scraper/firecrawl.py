"""Firecrawl scrape API transport.

Posts each URL to the Firecrawl /v1/scrape endpoint and receives the page
already rendered as Markdown, together with the links found on it.
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
from src.scraper.transport import PageResult, PageTransport, RateLimiter, TransportError

logger = logging.getLogger(__name__)

DEFAULT_ERROR = "Firecrawl request failed"


class FirecrawlFetcher(PageTransport):
    """Fetch pages as Markdown through the Firecrawl API."""

    name = "firecrawl"

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        rate_limit: Optional[float] = None,
        request_timeout: Optional[int] = None,
        only_main_content: bool = True,
    ):
        """Initialize the Firecrawl transport.

        Args:
            api_key: Firecrawl API key (uses settings.firecrawl_api_key if None)
            api_url: Scrape endpoint (uses settings.firecrawl_api_url if None)
            rate_limit: Seconds between requests (uses settings default if None)
            request_timeout: Request timeout in seconds
            only_main_content: Ask Firecrawl to strip navigation and footers
        """
        self.api_key = api_key or settings.firecrawl_api_key
        self.api_url = api_url or settings.firecrawl_api_url
        self.request_timeout = request_timeout or settings.request_timeout
        self.only_main_content = only_main_content
        self._rate_limiter = RateLimiter(rate_limit if rate_limit is not None else settings.rate_limit_seconds)
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            })
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    @retry(
        stop=stop_after_attempt(settings.max_retries),
        wait=wait_exponential(multiplier=settings.retry_base_delay, min=1, max=10),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "Firecrawl retry attempt %d after error", retry_state.attempt_number
        ),
    )
    def _post_scrape(self, url: str) -> requests.Response:
        return self.session.post(
            self.api_url,
            json={
                "url": url,
                "formats": ["markdown", "links"],
                "onlyMainContent": self.only_main_content,
            },
            timeout=self.request_timeout,
        )

    def fetch_page(self, url: str) -> PageResult:
        """Scrape one URL through Firecrawl.

        Args:
            url: Page to scrape

        Returns:
            PageResult with the Markdown and links Firecrawl returned

        Raises:
            TransportError: missing API key, network failure, or an
                API response flagged unsuccessful
        """
        if not self.api_key:
            raise TransportError("Firecrawl API key not configured", url)

        self._rate_limiter.wait()
        logger.info("Fetching via Firecrawl: %s", url)
        try:
            response = self._post_scrape(url)
        except requests.RequestException as e:
            raise TransportError(f"{DEFAULT_ERROR}: {e}", url) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if not response.ok or payload.get("success") is False:
            message = payload.get("error") or DEFAULT_ERROR
            logger.warning("Firecrawl error for %s (HTTP %s): %s", url, response.status_code, message)
            raise TransportError(message, url)

        data = payload.get("data") or payload
        if not isinstance(data, dict):
            data = {}
        markdown = data.get("markdown") or ""
        links = [link for link in data.get("links") or [] if isinstance(link, str)]
        logger.debug("Fetched %d chars of Markdown and %d links from %s", len(markdown), len(links), url)
        return PageResult(url=url, markdown=markdown, links=links)
