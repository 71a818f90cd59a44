"""Tests for the scrape cycle orchestrator."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from src.database.connection import init_database
from src.database.models import Comment, Post, ScrapeJob
from src.database.operations import DatabaseOperations
from src.scraper.discovery import InvalidScrapeRequest, ScrapeRequest
from src.scraper.scrapers import CANCELLED_MESSAGE, ScrapeOrchestrator, run_scraper
from src.scraper.transport import PageResult, PageTransport, TransportError

FIXTURES_DIR = Path(__file__).parent / "fixtures"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
BASE_URL = "https://www.moltbook.com"
POST_URL = "https://www.moltbook.com/post/abc-123"


def load_fixture(filename: str) -> str:
    return (FIXTURES_DIR / filename).read_text(encoding="utf-8")


class FakeTransport(PageTransport):
    """Serves canned pages; anything else is a transport failure."""

    name = "fake"

    def __init__(self, pages=None, on_fetch=None):
        self.pages = pages or {}
        self.on_fetch = on_fetch
        self.requested = []
        self.closed = False

    def fetch_page(self, url):
        self.requested.append(url)
        if self.on_fetch is not None:
            self.on_fetch(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            raise TransportError(f"HTTP 404 for {url}", url)
        return page

    def close(self):
        self.closed = True


def feed_page() -> PageResult:
    return PageResult(
        url=BASE_URL,
        markdown=load_fixture("feed.md"),
        links=[POST_URL, "https://www.moltbook.com/post/def-456", "https://www.moltbook.com/m/agentops"],
    )


def post_page() -> PageResult:
    return PageResult(url=POST_URL, markdown=load_fixture("post_page.md"), links=[])


@pytest.fixture
def db_ops():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        schema_path = Path(__file__).parent.parent / "schema.sql"
        init_database(db_path, schema_path, postgres=False)
        yield DatabaseOperations(db_path, use_postgres=False)


def make_orchestrator(db_ops, transport, **kwargs) -> ScrapeOrchestrator:
    kwargs.setdefault("follow_post_links", 0)
    kwargs.setdefault("allow_partial_pages", False)
    return ScrapeOrchestrator(db_ops=db_ops, transport=transport, base_url=BASE_URL, **kwargs)


class TestScrapeCycle:
    """Successful cycles."""

    def test_full_scope(self, db_ops):
        transport = FakeTransport({BASE_URL: feed_page()})
        job = make_orchestrator(db_ops, transport).run(ScrapeRequest(), NOW)

        assert job.status == "completed"
        assert transport.requested == [BASE_URL]
        assert job.posts_found == 2
        assert job.posts_scraped == 2
        assert job.agents_discovered == 2
        assert job.submolts_discovered == 2
        assert job.comments_scraped == 0
        assert job.error_message is None
        assert db_ops.count(Post) == 2

        stored = db_ops.get_job(job.id_job)
        assert stored.status == "completed"
        assert stored.posts_scraped == 2
        assert stored.completed_at is not None

    def test_follows_post_links(self, db_ops):
        transport = FakeTransport({BASE_URL: feed_page(), POST_URL: post_page()})
        orchestrator = make_orchestrator(db_ops, transport, follow_post_links=1)

        job = orchestrator.run(ScrapeRequest(), NOW)

        assert transport.requested == [BASE_URL, POST_URL]
        assert job.status == "completed"
        assert job.comments_scraped == 2
        assert job.agents_discovered == 4
        assert db_ops.count(Comment) == 2
        assert orchestrator.last_stats.comments.inserted == 2

    def test_second_cycle_discovers_nothing_new(self, db_ops):
        orchestrator = make_orchestrator(db_ops, FakeTransport({BASE_URL: feed_page()}))
        orchestrator.run(ScrapeRequest(), NOW)

        job = orchestrator.run(ScrapeRequest(), NOW)

        assert job.posts_scraped == 2
        assert job.agents_discovered == 0
        assert job.submolts_discovered == 0
        assert db_ops.count(ScrapeJob) == 2

    def test_submolt_scope_url(self, db_ops):
        transport = FakeTransport({f"{BASE_URL}/m/agentops": feed_page()})

        job = make_orchestrator(db_ops, transport).run(
            ScrapeRequest(scope="submolt", target_id="AgentOps"), NOW
        )

        assert transport.requested == [f"{BASE_URL}/m/agentops"]
        assert job.scope == "submolt"
        assert job.target_id == "AgentOps"
        assert job.status == "completed"

    def test_explicit_urls(self, db_ops):
        transport = FakeTransport({POST_URL: post_page()})

        job = make_orchestrator(db_ops, transport).run(ScrapeRequest(urls=(POST_URL,)), NOW)

        assert transport.requested == [POST_URL]
        assert job.posts_scraped == 1
        assert job.comments_scraped == 2


class TestFailures:
    """Failed and partial cycles."""

    def test_transport_failure_fails_job(self, db_ops):
        transport = FakeTransport({BASE_URL: TransportError("Firecrawl API key not configured", BASE_URL)})

        job = make_orchestrator(db_ops, transport).run(ScrapeRequest(), NOW)

        assert job.status == "failed"
        assert job.error_message == "Firecrawl API key not configured"
        assert job.posts_found == 0
        assert db_ops.count(Post) == 0
        assert db_ops.get_job(job.id_job).status == "failed"

    def test_one_failed_page_fails_job_by_default(self, db_ops):
        transport = FakeTransport({POST_URL: post_page()})
        request = ScrapeRequest(urls=(POST_URL, "https://www.moltbook.com/post/gone"))

        job = make_orchestrator(db_ops, transport).run(request, NOW)

        assert job.status == "failed"
        assert "post/gone" in job.error_message
        assert db_ops.count(Post) == 0

    def test_partial_pages_allowed(self, db_ops):
        transport = FakeTransport({POST_URL: post_page()})
        request = ScrapeRequest(urls=("https://www.moltbook.com/post/gone", POST_URL))

        job = make_orchestrator(db_ops, transport, allow_partial_pages=True).run(request, NOW)

        assert job.status == "completed"
        assert job.posts_scraped == 1
        assert job.error_message.startswith("Skipped pages: ")
        assert "post/gone" in job.error_message

    def test_partial_pages_all_failed(self, db_ops):
        transport = FakeTransport({})

        job = make_orchestrator(db_ops, transport, allow_partial_pages=True).run(ScrapeRequest(), NOW)

        assert job.status == "failed"
        assert "HTTP 404" in job.error_message

    def test_unexpected_error_fails_job(self, db_ops):
        transport = FakeTransport({BASE_URL: RuntimeError("socket exploded")})

        job = make_orchestrator(db_ops, transport).run(ScrapeRequest(), NOW)

        assert job.status == "failed"
        assert job.error_message == "RuntimeError: socket exploded"

    def test_cancel_between_pages(self, db_ops):
        pages = {POST_URL: post_page(), BASE_URL: feed_page()}
        transport = FakeTransport(pages)
        orchestrator = make_orchestrator(db_ops, transport)
        transport.on_fetch = lambda url: orchestrator.cancel()

        job = orchestrator.run(ScrapeRequest(urls=(POST_URL, BASE_URL)), NOW)

        assert job.status == "failed"
        assert job.error_message == CANCELLED_MESSAGE
        assert transport.requested == [POST_URL]
        assert db_ops.count(Post) == 0

    def test_cancel_flag_reset_for_next_run(self, db_ops):
        orchestrator = make_orchestrator(db_ops, FakeTransport({BASE_URL: feed_page()}))
        orchestrator.cancel()

        job = orchestrator.run(ScrapeRequest(), NOW)

        assert job.status == "completed"

    @pytest.mark.parametrize(
        "request_",
        [
            ScrapeRequest(scope="everything"),
            ScrapeRequest(scope="submolt"),
            ScrapeRequest(scope="agent", target_id="bad name!"),
            ScrapeRequest(scope="full", target_id="agentops"),
            ScrapeRequest(urls=("ftp://www.moltbook.com/",)),
        ],
    )
    def test_invalid_request_creates_no_job(self, db_ops, request_):
        transport = FakeTransport({BASE_URL: feed_page()})

        with pytest.raises(InvalidScrapeRequest):
            make_orchestrator(db_ops, transport).run(request_, NOW)

        assert transport.requested == []
        assert db_ops.count(ScrapeJob) == 0


class TestRunScraper:
    """Tests for the run_scraper convenience function."""

    def test_uses_configured_transport(self, db_ops, monkeypatch):
        transport = FakeTransport({f"{BASE_URL}/u/researcher_bot": feed_page()})
        created = {}

        def fake_create_transport(name=None, use_cache=False, force_refresh=False):
            created.update(name=name, use_cache=use_cache)
            return transport

        monkeypatch.setattr("src.scraper.scrapers.create_transport", fake_create_transport)
        monkeypatch.setattr("src.scraper.scrapers.settings.base_url", BASE_URL)

        job = run_scraper(
            scope="agent",
            target_id="researcher_bot",
            transport_name="requests",
            use_cache=True,
            follow_post_links=0,
            db_ops=db_ops,
        )

        assert created == {"name": "requests", "use_cache": True}
        assert job.status == "completed"
        assert transport.closed

    def test_invalid_request_before_transport(self, db_ops, monkeypatch):
        def fail_create_transport(*args, **kwargs):
            raise AssertionError("transport should not be created")

        monkeypatch.setattr("src.scraper.scrapers.create_transport", fail_create_transport)

        with pytest.raises(InvalidScrapeRequest):
            run_scraper(scope="agent", db_ops=db_ops)
