"""Target URL discovery and scrape request validation for moltbook.com."""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set
from urllib.parse import urlparse

from config.settings import settings
from src.database.models import JOB_SCOPES
from src.scraper.parsers import extract_post_id_from_url

logger = logging.getLogger(__name__)

_TARGET_ID = re.compile(r"[A-Za-z0-9_-]{1,64}")


class InvalidScrapeRequest(ValueError):
    """Scope, target or URL parameters of a scrape request are malformed."""


@dataclass
class ScrapeRequest:
    """What one scrape cycle should fetch.

    Explicit urls replace the scope's default page; the scope and target are
    still recorded on the job.
    """

    scope: str = "full"
    target_id: Optional[str] = None
    urls: Sequence[str] = field(default_factory=tuple)


def get_agent_url(username: str, base_url: Optional[str] = None) -> str:
    """Get agent profile URL.

    Args:
        username: Agent username

    Returns:
        Full profile URL
    """
    return f"{(base_url or settings.base_url).rstrip('/')}/u/{username}"


def get_submolt_url(name: str, base_url: Optional[str] = None) -> str:
    """Get submolt page URL.

    Args:
        name: Submolt name

    Returns:
        Full submolt URL
    """
    return f"{(base_url or settings.base_url).rstrip('/')}/m/{name}"


def is_http_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def build_target_urls(request: ScrapeRequest, base_url: Optional[str] = None) -> List[str]:
    """Validate a scrape request and resolve the pages it targets.

    Args:
        request: Scope, optional target id, optional explicit URLs
        base_url: Site root (uses settings.base_url if None)

    Returns:
        Ordered, de-duplicated list of URLs to fetch

    Raises:
        InvalidScrapeRequest: unknown scope, missing or malformed target,
            target given for scope 'full', or a non-http(s) URL
    """
    base_url = (base_url or settings.base_url).rstrip("/")

    if request.scope not in JOB_SCOPES:
        raise InvalidScrapeRequest(
            f"Unknown scope {request.scope!r} (expected one of {', '.join(JOB_SCOPES)})"
        )

    target_id = request.target_id
    if request.scope == "full":
        if target_id:
            raise InvalidScrapeRequest("Scope 'full' does not take a target id")
    elif not target_id:
        raise InvalidScrapeRequest(f"Scope {request.scope!r} requires a target id")
    elif not _TARGET_ID.fullmatch(target_id.strip().lstrip("@")):
        raise InvalidScrapeRequest(f"Malformed target id: {target_id!r}")

    for url in request.urls:
        if not is_http_url(url):
            raise InvalidScrapeRequest(f"Not an http(s) URL: {url!r}")

    if request.urls:
        urls = list(request.urls)
    elif request.scope == "submolt":
        urls = [get_submolt_url(target_id.strip().lower(), base_url)]
    elif request.scope == "agent":
        urls = [get_agent_url(target_id.strip().lstrip("@").lower(), base_url)]
    else:
        urls = [base_url]

    return list(dict.fromkeys(urls))


def select_post_links(
    links: Iterable[str],
    limit: int,
    already_fetched: Optional[Set[str]] = None,
) -> List[str]:
    """Pick up to limit post detail URLs from discovered links.

    Args:
        links: Links reported by the transport
        limit: Maximum number of post pages to return
        already_fetched: URLs fetched earlier in the cycle

    Returns:
        Post URLs in discovery order, one per post id
    """
    already_fetched = already_fetched or set()
    selected: List[str] = []
    seen_ids: Set[str] = set()
    for link in links:
        if len(selected) >= limit:
            break
        post_id = extract_post_id_from_url(link)
        if post_id is None or post_id in seen_ids or link in already_fetched:
            continue
        if not is_http_url(link):
            continue
        seen_ids.add(post_id)
        selected.append(link)

    logger.debug("Selected %d post links to follow", len(selected))
    return selected
