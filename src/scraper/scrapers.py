"""Scrape cycle orchestration: fetch, extract, reconcile, record the job."""

import logging
import threading
from datetime import datetime
from typing import List, Optional, Sequence, Set

from config.settings import settings
from src.database.models import ScrapeJob
from src.database.operations import DatabaseOperations
from src.reconciliation import Reconciler, ReconciliationStats
from src.scraper.discovery import ScrapeRequest, build_target_urls, select_post_links
from src.scraper.extractors import extract_all, join_pages
from src.scraper.timestamps import utc_now
from src.scraper.transport import PageResult, PageTransport, TransportError, create_transport

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Scrape cancelled"


class ScrapeCancelled(Exception):
    """The running cycle was cancelled between pages."""


class ScrapeOrchestrator:
    """Runs scrape cycles against one transport and one repository.

    Each cycle:
        - validates the request and creates a job (pending -> running)
        - fetches target pages sequentially, optionally following post links
        - joins page Markdown with boundary markers and extracts candidates
        - reconciles candidates and completes the job with its counters

    A transport failure fails the job before extraction. With
    allow_partial_pages, pages that did fetch are still processed and the
    failed URLs are noted on the job.
    """

    def __init__(
        self,
        db_ops: Optional[DatabaseOperations] = None,
        transport: Optional[PageTransport] = None,
        follow_post_links: Optional[int] = None,
        allow_partial_pages: Optional[bool] = None,
        base_url: Optional[str] = None,
    ):
        """Initialize the orchestrator.

        Args:
            db_ops: Repository (defaults to the configured backend)
            transport: Page transport (defaults to settings.transport)
            follow_post_links: Discovered post pages to fetch per cycle
            allow_partial_pages: Continue when some pages fail to fetch
            base_url: Site root for scope URLs
        """
        self.db_ops = db_ops or DatabaseOperations()
        self.transport = transport or create_transport()
        self.follow_post_links = (
            follow_post_links if follow_post_links is not None else settings.follow_post_links
        )
        self.allow_partial_pages = (
            allow_partial_pages if allow_partial_pages is not None else settings.allow_partial_pages
        )
        self.base_url = base_url or settings.base_url
        self.reconciler = Reconciler(self.db_ops)
        self.last_stats: Optional[ReconciliationStats] = None
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Abort the running cycle at the next page boundary."""
        logger.info("Cancellation requested")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _fetch_all(self, urls: Sequence[str], fetched: Set[str], failures: List[str]) -> List[PageResult]:
        pages: List[PageResult] = []
        for url in urls:
            if self.cancelled:
                raise ScrapeCancelled(CANCELLED_MESSAGE)
            try:
                page = self.transport.fetch_page(url)
            except TransportError as e:
                if not self.allow_partial_pages:
                    raise
                logger.warning("Skipping page %s: %s", url, e)
                failures.append(f"{url}: {e}")
                continue
            fetched.add(url)
            pages.append(page)
        return pages

    def fetch_pages(self, urls: Sequence[str]) -> tuple:
        """Fetch target pages, then any post pages they link to.

        Returns:
            (pages, failures) where failures lists "url: message" strings

        Raises:
            TransportError: a page failed and partial page sets are not allowed,
                or no page could be fetched at all
            ScrapeCancelled: cancel() was called
        """
        fetched: Set[str] = set()
        failures: List[str] = []
        pages = self._fetch_all(urls, fetched, failures)

        if self.follow_post_links and pages:
            links = [link for page in pages for link in page.links]
            post_urls = select_post_links(links, self.follow_post_links, fetched)
            if post_urls:
                logger.info("Following %d post links", len(post_urls))
                pages.extend(self._fetch_all(post_urls, fetched, failures))

        if not pages:
            raise TransportError(failures[0] if failures else "No pages fetched")
        return pages, failures

    def _save_job(self, job: ScrapeJob) -> None:
        self.db_ops.save_job(job)
        logger.debug("Job %s saved with status %s", job.id_job, job.status)

    def run(self, request: ScrapeRequest, now: Optional[datetime] = None) -> ScrapeJob:
        """Run one scrape cycle.

        Args:
            request: What to scrape
            now: Ingestion time (defaults to the current UTC time)

        Returns:
            The job in its terminal state (completed or failed)

        Raises:
            InvalidScrapeRequest: before any job is created
        """
        urls = build_target_urls(request, self.base_url)
        self._cancel.clear()
        now = now or utc_now()

        job = ScrapeJob.create(request.scope, request.target_id)
        self._save_job(job)
        job.start()
        self._save_job(job)
        logger.info("Job %s started: scope=%s target=%s pages=%d", job.id_job, job.scope, job.target_id, len(urls))

        try:
            pages, failures = self.fetch_pages(urls)
            markdown = join_pages((page.url, page.markdown) for page in pages)

            extraction = extract_all(markdown, now)
            counts = extraction.counts()
            job.posts_found = counts["posts"]
            job.agents_found = counts["agents"]
            job.submolts_found = counts["submolts"]
            job.comments_found = counts["comments"]

            stats = self.reconciler.reconcile(extraction, now)
            self.last_stats = stats
            job.posts_scraped = stats.posts.reconciled
            job.agents_discovered = stats.agents.inserted
            job.submolts_discovered = stats.submolts.inserted
            job.comments_scraped = stats.comments.reconciled
            if failures:
                job.error_message = "Skipped pages: " + "; ".join(failures)
            job.complete()
            logger.info(
                "Job %s completed: posts=%d new agents=%d new submolts=%d comments=%d",
                job.id_job,
                job.posts_scraped,
                job.agents_discovered,
                job.submolts_discovered,
                job.comments_scraped,
            )
        except ScrapeCancelled:
            job.fail(CANCELLED_MESSAGE)
            logger.warning("Job %s cancelled", job.id_job)
        except TransportError as e:
            job.fail(str(e))
            logger.error("Job %s failed: %s", job.id_job, e)
        except Exception as e:
            job.fail(f"{type(e).__name__}: {e}")
            logger.exception("Job %s failed unexpectedly", job.id_job)

        self._save_job(job)
        return job


def run_scraper(
    scope: str = "full",
    target_id: Optional[str] = None,
    urls: Sequence[str] = (),
    transport_name: Optional[str] = None,
    use_cache: bool = False,
    force_refresh: bool = False,
    follow_post_links: Optional[int] = None,
    db_ops: Optional[DatabaseOperations] = None,
) -> ScrapeJob:
    """Convenience function to run one scrape cycle (tables created if missing).

    Args:
        scope: "full", "submolt" or "agent"
        target_id: Submolt name or agent username for targeted scopes
        urls: Explicit page URLs overriding the scope default
        transport_name: Transport to use (defaults to settings.transport)
        use_cache: Serve pages from the on-disk cache when present
        force_refresh: Refetch cached pages
        follow_post_links: Discovered post pages to fetch
        db_ops: Repository (defaults to the configured backend)

    Returns:
        The finished ScrapeJob
    """
    db_ops = db_ops or DatabaseOperations()
    db_ops.ensure_tables()
    request = ScrapeRequest(scope=scope, target_id=target_id, urls=tuple(urls))
    build_target_urls(request)

    with create_transport(transport_name, use_cache=use_cache, force_refresh=force_refresh) as transport:
        orchestrator = ScrapeOrchestrator(
            db_ops=db_ops,
            transport=transport,
            follow_post_links=follow_post_links,
        )
        return orchestrator.run(request)
