"""Browser transport with Playwright, rate limiting, and retry logic."""

import logging
from typing import Optional

from playwright.sync_api import Browser, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError
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


class BrowserFetcher(PageTransport):
    """Transport that renders pages in headless Chromium.

    Features:
        - JavaScript rendering for client-side pages
        - Optional scrolling to trigger lazy-loaded feed items
        - Rate limiting and exponential backoff retry
    """

    name = "browser"

    def __init__(
        self,
        headless: Optional[bool] = None,
        rate_limit: Optional[float] = None,
        max_scrolls: Optional[int] = None,
    ):
        """Initialize the browser transport.

        Args:
            headless: Run browser in headless mode (uses settings default if None)
            rate_limit: Seconds between requests (uses settings default if None)
            max_scrolls: Scrolls per page to load lazy content (uses settings default if None)
        """
        self.headless = headless if headless is not None else settings.headless
        self.rate_limit = rate_limit if rate_limit is not None else settings.rate_limit_seconds
        self.max_scrolls = max_scrolls if max_scrolls is not None else settings.browser_scrolls

        self._rate_limiter = RateLimiter(self.rate_limit)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None

    def start(self) -> None:
        """Start Playwright browser."""
        if self._browser is not None:
            return

        logger.info("Starting Playwright browser (headless=%s)", self.headless)
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self.headless)
        self._page = self._browser.new_page(user_agent=settings.user_agent)
        self._page.set_default_timeout(settings.request_timeout * 1000)

    def close(self) -> None:
        """Close browser and cleanup."""
        if self._page:
            self._page.close()
            self._page = None
        if self._browser:
            self._browser.close()
            self._browser = None
        if self._playwright:
            self._playwright.stop()
            self._playwright = None
            logger.info("Browser closed")

    @property
    def page(self) -> Page:
        """Get current page, starting browser if needed."""
        if self._page is None:
            self.start()
        return self._page  # type: ignore

    def scroll_to_load_all(self, max_scrolls: int = 10, scroll_delay: int = 1000) -> None:
        """Scroll page to trigger lazy loading.

        Args:
            max_scrolls: Maximum number of scroll attempts
            scroll_delay: Delay between scrolls in milliseconds
        """
        for i in range(max_scrolls):
            previous_height = self.page.evaluate("document.body.scrollHeight")
            self.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            self.page.wait_for_timeout(scroll_delay)
            new_height = self.page.evaluate("document.body.scrollHeight")

            if new_height == previous_height:
                logger.debug("Reached end of page after %d scrolls", i + 1)
                break

    @retry(
        stop=stop_after_attempt(settings.max_retries),
        wait=wait_exponential(multiplier=settings.retry_base_delay, min=1, max=10),
        retry=retry_if_exception_type(PlaywrightError),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "Retry attempt %d after error", retry_state.attempt_number
        ),
    )
    def fetch_html(self, url: str, wait_time: int = 2000) -> str:
        """Fetch a page with JavaScript rendering.

        Args:
            url: URL to fetch
            wait_time: Additional wait time in milliseconds after page load

        Returns:
            Rendered HTML content
        """
        self._rate_limiter.wait()

        logger.info("Fetching: %s", url)
        self.page.goto(url)
        self.page.wait_for_timeout(wait_time)
        if self.max_scrolls:
            self.scroll_to_load_all(max_scrolls=self.max_scrolls)

        html = self.page.content()
        logger.debug("Fetched %d bytes from %s", len(html), url)
        return html

    def fetch_page(self, url: str) -> PageResult:
        try:
            html = self.fetch_html(url)
        except PlaywrightError as e:
            raise TransportError(f"Browser fetch failed for {url}: {e}", url) from e
        markdown, links = render_html(html, base_url=url)
        return PageResult(url=url, markdown=markdown, links=links)
