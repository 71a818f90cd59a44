"""Page transport contract, rate limiting and on-disk page cache.

A transport turns a URL into a PageResult (Markdown plus discovered links).
Any failure to obtain a page is raised as TransportError.
"""

import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from config.settings import settings

logger = logging.getLogger(__name__)

TRANSPORTS = ("firecrawl", "requests", "browser")


class TransportError(Exception):
    """A page could not be fetched."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


@dataclass
class PageResult:
    """Markdown of one page and the links found on it."""

    url: str
    markdown: str
    links: List[str] = field(default_factory=list)
    from_cache: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("from_cache")
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PageResult":
        return cls(
            url=data["url"],
            markdown=data.get("markdown") or "",
            links=list(data.get("links") or []),
        )


class RateLimiter:
    """Simple rate limiter to respect website load."""

    def __init__(self, min_interval: float):
        """Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between requests
        """
        self.min_interval = min_interval
        self._last_request_time: float = 0

    def wait(self) -> None:
        """Wait if needed to respect rate limit."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self.min_interval:
            sleep_time = self.min_interval - elapsed
            logger.debug("Rate limiting: sleeping %.2f seconds", sleep_time)
            time.sleep(sleep_time)
        self._last_request_time = time.time()


class PageTransport:
    """Base class for transports; usable as a context manager."""

    name = "base"

    def __enter__(self) -> "PageTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def fetch_page(self, url: str) -> PageResult:
        raise NotImplementedError

    def close(self) -> None:
        """Release network resources."""


class PageCache:
    """JSON snapshots of fetched pages, keyed by URL."""

    def __init__(self, cache_dir: Optional[Path] = None):
        self.cache_dir = cache_dir if cache_dir is not None else settings.raw_dir

    def get_cache_filename(self, url: str) -> str:
        """Generate cache filename from URL.

        Args:
            url: URL to generate filename for

        Returns:
            Safe filename string
        """
        parsed = urlparse(url)
        path_safe = parsed.path.replace("/", "_").strip("_") or "index"
        url_hash = hashlib.md5(url.encode()).hexdigest()[:8]
        return f"{path_safe}_{url_hash}.json"

    def load(self, url: str) -> Optional[PageResult]:
        """Load a page from cache if it exists and is readable."""
        filepath = self.cache_dir / self.get_cache_filename(url)
        if not filepath.exists():
            return None
        try:
            data = json.loads(filepath.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", filepath, e)
            return None
        logger.debug("Loading cached page from %s", filepath)
        page = PageResult.from_dict(data)
        page.from_cache = True
        return page

    def save(self, page: PageResult) -> Path:
        """Save a page to the cache directory."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.cache_dir / self.get_cache_filename(page.url)
        filepath.write_text(json.dumps(page.to_dict(), ensure_ascii=False), encoding="utf-8")
        logger.debug("Saved page to %s", filepath)
        return filepath


class CachedTransport(PageTransport):
    """Wraps a transport with the on-disk page cache."""

    def __init__(
        self,
        transport: PageTransport,
        cache: Optional[PageCache] = None,
        force_refresh: bool = False,
    ):
        self.transport = transport
        self.cache = cache or PageCache()
        self.force_refresh = force_refresh
        self.name = f"cached-{transport.name}"

    def fetch_page(self, url: str) -> PageResult:
        if not self.force_refresh:
            cached = self.cache.load(url)
            if cached is not None and cached.markdown:
                return cached
        page = self.transport.fetch_page(url)
        self.cache.save(page)
        return page

    def close(self) -> None:
        self.transport.close()


def create_transport(
    name: Optional[str] = None,
    use_cache: bool = False,
    force_refresh: bool = False,
) -> PageTransport:
    """Build the configured transport.

    Args:
        name: "firecrawl", "requests" or "browser" (defaults to settings.transport)
        use_cache: Serve pages from the on-disk cache when present
        force_refresh: With use_cache, refetch and overwrite cached pages

    Returns:
        PageTransport instance
    """
    name = name or settings.transport
    if name == "firecrawl":
        from src.scraper.firecrawl import FirecrawlFetcher

        transport: PageTransport = FirecrawlFetcher()
    elif name == "requests":
        from src.scraper.fetcher_requests import RequestsFetcher

        transport = RequestsFetcher()
    elif name == "browser":
        from src.scraper.base import BrowserFetcher

        transport = BrowserFetcher()
    else:
        raise ValueError(f"Unknown transport: {name} (expected one of {', '.join(TRANSPORTS)})")

    logger.debug("Using %s transport (cache=%s)", name, use_cache)
    if use_cache:
        return CachedTransport(transport, force_refresh=force_refresh)
    return transport
