"""Unit tests for models and database operations."""

import pytest
import tempfile
from pathlib import Path

from src.database.models import (
    Agent,
    Comment,
    JobStateError,
    Post,
    ScrapeJob,
    Submolt,
    generate_id,
)
from src.database.connection import check_database_exists, get_connection, init_database
from src.database.operations import DatabaseOperations, StorageError
from src.processing.text_metrics import compute_text_metrics

SEEN_AT = "2026-03-01T12:00:00+00:00"
LATER = "2026-03-05T12:00:00+00:00"


def make_post(external_id="abc-123", title="Great idea", **kwargs) -> Post:
    return Post.from_scraped_data(
        external_id=external_id,
        title=title,
        metrics=compute_text_metrics(title),
        scraped_at=SEEN_AT,
        **kwargs,
    )


class TestGenerateId:
    """Tests for ID generation function."""

    def test_generate_id_deterministic(self):
        """Same inputs should produce same ID."""
        id1 = generate_id("agent", "test_name")
        id2 = generate_id("agent", "test_name")
        assert id1 == id2

    def test_generate_id_different_inputs(self):
        """Different inputs should produce different IDs."""
        id1 = generate_id("agent", "alice")
        id2 = generate_id("agent", "bob")
        assert id1 != id2

    def test_generate_id_prefix(self):
        """ID should start with the prefix."""
        assert generate_id("agent", "test").startswith("agent_")
        assert generate_id("post", "test").startswith("post_")

    def test_generate_id_length(self):
        """ID should be prefix + 12 char hash."""
        id1 = generate_id("agent", "test_user")
        assert len(id1.split("_")[1]) == 12


class TestModels:
    """Tests for the entity models."""

    def test_agent_case_insensitive_id(self):
        """Agent IDs should be case-insensitive."""
        agent1 = Agent.from_scraped_data("TestAgent")
        agent2 = Agent.from_scraped_data("testagent")
        assert agent1.id_agent == agent2.id_agent
        assert agent1.username == "testagent"

    def test_agent_starts_with_zero_counts(self):
        agent = Agent.from_scraped_data("newbie", display_name="Newbie", seen_at=SEEN_AT)
        assert agent.post_count == 0
        assert agent.comment_count == 0
        assert agent.first_seen_at == agent.last_seen_at == SEEN_AT

    def test_submolt_lowercased(self):
        submolt = Submolt.from_scraped_data("AgentOps", member_count=12)
        assert submolt.name == "agentops"
        assert submolt.id_submolt == Submolt.from_scraped_data("agentops").id_submolt

    def test_post_metrics_and_clamping(self):
        post = make_post(upvotes=-3, comment_count=-1)

        assert post.id_post == generate_id("post", "abc-123")
        assert post.upvotes == 0
        assert post.comment_count == 0
        assert post.word_count == 2
        assert "word_count" in post.to_dict()

    def test_comment_external_id_stable(self):
        first = Comment.synthesize_external_id("abc-123", "bot", "Nice   post!")
        second = Comment.synthesize_external_id("abc-123", "bot", "nice post!")
        assert first == second
        assert first.startswith("cmt_")

    def test_comment_external_id_distinguishes_posts(self):
        first = Comment.synthesize_external_id("abc-123", "bot", "Nice post!")
        second = Comment.synthesize_external_id("def-456", "bot", "Nice post!")
        assert first != second


class TestScrapeJob:
    """Tests for the scrape job lifecycle."""

    def test_create_pending(self):
        job = ScrapeJob.create("submolt", "agentops")
        assert job.status == "pending"
        assert job.id_job.startswith("job_")
        assert not job.is_terminal

    def test_happy_path(self):
        job = ScrapeJob.create("full")
        job.start()
        assert job.status == "running"
        assert job.started_at is not None
        job.complete()
        assert job.status == "completed"
        assert job.completed_at is not None
        assert job.is_terminal

    def test_fail_records_message(self):
        job = ScrapeJob.create("full")
        job.start()
        job.fail("boom")
        assert job.status == "failed"
        assert job.error_message == "boom"
        assert job.is_terminal

    def test_cannot_complete_pending(self):
        job = ScrapeJob.create("full")
        with pytest.raises(JobStateError):
            job.complete()

    def test_terminal_states_are_final(self):
        job = ScrapeJob.create("full")
        job.start()
        job.complete()
        with pytest.raises(JobStateError):
            job.fail("too late")
        with pytest.raises(JobStateError):
            job.start()
        assert job.status == "completed"


class TestConnection:
    """Tests for schema initialization."""

    def test_init_creates_tables(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "test.db"
            assert check_database_exists(db_path, postgres=False) is False

            init_database(db_path, Path(__file__).parent.parent / "schema.sql", postgres=False)

            assert check_database_exists(db_path, postgres=False) is True
            with get_connection(db_path, postgres=False) as conn:
                tables = {
                    row["name"]
                    for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
                }
            assert {"submolts", "agents", "posts", "comments", "scrape_jobs"} <= tables


class TestDatabaseOperations:
    """Tests for database CRUD operations."""

    @pytest.fixture
    def temp_db(self):
        """Create a temporary database for testing."""
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "test.db"
            schema_path = Path(__file__).parent.parent / "schema.sql"
            init_database(db_path, schema_path, postgres=False)
            yield db_path

    def test_upsert_agent(self, temp_db):
        """Test inserting and updating an agent."""
        db_ops = DatabaseOperations(temp_db, use_postgres=False)

        agent = Agent.from_scraped_data("test_agent", display_name="Test", seen_at=SEEN_AT)
        assert db_ops.upsert(agent) is True

        fetched = db_ops.get_by_natural_key(Agent, "test_agent")
        assert fetched["id_agent"] == agent.id_agent
        assert fetched["display_name"] == "Test"

        again = Agent.from_scraped_data("test_agent", display_name="Renamed", seen_at=LATER)
        assert db_ops.upsert(again) is False

        fetched = db_ops.get_by_id(Agent, agent.id_agent)
        assert fetched["display_name"] == "Renamed"
        assert fetched["last_seen_at"] == LATER
        assert fetched["first_seen_at"] == SEEN_AT
        assert db_ops.count(Agent) == 1

    def test_upsert_keeps_known_values(self, temp_db):
        """A NULL description or member count does not erase a stored one."""
        db_ops = DatabaseOperations(temp_db, use_postgres=False)

        db_ops.upsert(Submolt.from_scraped_data(
            "agentops", description="Ops talk", member_count=1200, seen_at=SEEN_AT,
        ))
        db_ops.upsert(Submolt.from_scraped_data("agentops", seen_at=LATER))

        fetched = db_ops.get_by_natural_key(Submolt, "agentops")
        assert fetched["description"] == "Ops talk"
        assert fetched["member_count"] == 1200
        assert fetched["last_scraped_at"] == LATER
        assert fetched["first_seen_at"] == SEEN_AT

    def test_upsert_never_resets_agent_counts(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        agent = Agent.from_scraped_data("poster")
        db_ops.upsert(agent)
        db_ops.update(Agent, agent.id_agent, {"post_count": 4})

        db_ops.upsert(Agent.from_scraped_data("poster"))

        assert db_ops.get_by_id(Agent, agent.id_agent)["post_count"] == 4

    def test_post_overwritten_on_update(self, temp_db):
        """Posts with the same external id are updated, not duplicated."""
        db_ops = DatabaseOperations(temp_db, use_postgres=False)

        db_ops.upsert(make_post(upvotes=1))
        db_ops.upsert(make_post(title="Great idea, revised", upvotes=10))

        assert db_ops.count(Post) == 1
        fetched = db_ops.get_by_natural_key(Post, "abc-123")
        assert fetched["title"] == "Great idea, revised"
        assert fetched["upvotes"] == 10

    def test_insert_duplicate_raises_storage_error(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        db_ops.insert(make_post())

        with pytest.raises(StorageError):
            db_ops.insert(make_post())

    def test_constraint_violation_raises_storage_error(self, temp_db):
        """A post pointing at an unknown agent violates the foreign key."""
        db_ops = DatabaseOperations(temp_db, use_postgres=False)

        with pytest.raises(StorageError):
            db_ops.upsert(make_post(id_agent="agent_missing"))
        assert db_ops.count(Post) == 0

    def test_count_by(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        agent = Agent.from_scraped_data("poster")
        db_ops.upsert(agent)
        for i in range(3):
            db_ops.upsert(make_post(external_id=f"p-{i}", id_agent=agent.id_agent))
        db_ops.upsert(make_post(external_id="orphan"))

        assert db_ops.count_by(Post, "id_agent", agent.id_agent) == 3
        assert db_ops.count(Post) == 4

    def test_count_by_rejects_unknown_column(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        with pytest.raises(ValueError):
            db_ops.count_by(Post, "id_agent; DROP TABLE posts", "x")

    def test_update_returns_rowcount(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        agent = Agent.from_scraped_data("poster")
        db_ops.upsert(agent)

        assert db_ops.update(Agent, agent.id_agent, {"comment_count": 2}) == 1
        assert db_ops.update(Agent, "agent_missing", {"comment_count": 2}) == 0
        assert db_ops.update(Agent, agent.id_agent, {}) == 0

    def test_exists(self, temp_db):
        """Test existence check."""
        db_ops = DatabaseOperations(temp_db, use_postgres=False)

        agent = Agent.from_scraped_data("test")
        assert db_ops.exists(Agent, agent.id_agent) is False

        db_ops.upsert(agent)
        assert db_ops.exists(Agent, agent.id_agent) is True

    def test_get_all_ordered(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        for name in ["bob", "alice", "charlie"]:
            db_ops.upsert(Agent.from_scraped_data(name))

        rows = db_ops.get_all(Agent, order_by="username")
        assert [row["username"] for row in rows] == ["alice", "bob", "charlie"]

        rows = db_ops.get_all(Agent, limit=1, order_by="username DESC")
        assert [row["username"] for row in rows] == ["charlie"]

    def test_table_counts(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        db_ops.upsert(Agent.from_scraped_data("someone"))

        counts = db_ops.table_counts()
        assert counts["agents"] == 1
        assert counts["posts"] == 0
        assert set(counts) == {"submolts", "agents", "posts", "comments", "scrape_jobs"}


class TestJobPersistence:
    """Tests for saving and loading scrape jobs."""

    @pytest.fixture
    def temp_db(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "test.db"
            schema_path = Path(__file__).parent.parent / "schema.sql"
            init_database(db_path, schema_path, postgres=False)
            yield db_path

    def test_save_and_reload(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        job = ScrapeJob.create("agent", "researcher_bot")
        db_ops.save_job(job)
        job.start()
        job.posts_found = 5
        db_ops.save_job(job)

        loaded = db_ops.get_job(job.id_job)
        assert loaded.status == "running"
        assert loaded.target_id == "researcher_bot"
        assert loaded.posts_found == 5
        assert loaded.created_at == job.created_at
        assert db_ops.count(ScrapeJob) == 1

    def test_missing_job(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        assert db_ops.get_job("job_missing") is None

    def test_recent_jobs_newest_first(self, temp_db):
        db_ops = DatabaseOperations(temp_db, use_postgres=False)
        older = ScrapeJob.create("full")
        older.created_at = SEEN_AT
        newer = ScrapeJob.create("full")
        newer.created_at = LATER
        db_ops.save_job(older)
        db_ops.save_job(newer)

        recent = db_ops.get_recent_jobs(limit=5)
        assert [job.id_job for job in recent] == [newer.id_job, older.id_job]
        assert len(db_ops.get_recent_jobs(limit=1)) == 1
