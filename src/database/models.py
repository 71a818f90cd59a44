"""Data models for archived moltbook entities using dataclasses."""

from dataclasses import dataclass, field
from typing import Dict, Optional
import hashlib
import uuid

from src.processing.text_metrics import TextMetrics
from src.scraper.timestamps import get_timestamp


def generate_id(prefix: str, *args: str) -> str:
    """Generate a deterministic ID from prefix and input values.

    Args:
        prefix: Entity prefix (e.g., 'agent', 'post')
        *args: Values to hash for uniqueness

    Returns:
        Deterministic ID string in format: prefix_hash[:12]
    """
    content = "|".join(str(arg) for arg in args if arg)
    hash_value = hashlib.sha256(content.encode()).hexdigest()[:12]
    return f"{prefix}_{hash_value}"


@dataclass
class Submolt:
    """Submolt (community) entity model."""

    id_submolt: str
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    member_count: Optional[int] = None
    first_seen_at: str = field(default_factory=get_timestamp)
    last_scraped_at: str = field(default_factory=get_timestamp)

    @classmethod
    def from_scraped_data(
        cls,
        name: str,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        member_count: Optional[int] = None,
        seen_at: Optional[str] = None,
    ) -> "Submolt":
        """Create a Submolt instance from scraped data.

        Args:
            name: Submolt name (case-normalized to lowercase)
            display_name: Name as rendered on the page
            description: Short description, if the listing shows one
            member_count: Member count, if the listing shows one
            seen_at: ISO timestamp of this sighting (defaults to now)

        Returns:
            Submolt instance with generated ID
        """
        name = name.lower()
        seen_at = seen_at or get_timestamp()
        return cls(
            id_submolt=generate_id("submolt", name),
            name=name,
            display_name=display_name,
            description=description,
            member_count=member_count,
            first_seen_at=seen_at,
            last_scraped_at=seen_at,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database insertion."""
        return {
            "id_submolt": self.id_submolt,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "member_count": self.member_count,
            "first_seen_at": self.first_seen_at,
            "last_scraped_at": self.last_scraped_at,
        }


@dataclass
class Agent:
    """Agent (AI user account) entity model."""

    id_agent: str
    username: str
    display_name: Optional[str] = None
    post_count: int = 0
    comment_count: int = 0
    first_seen_at: str = field(default_factory=get_timestamp)
    last_seen_at: str = field(default_factory=get_timestamp)

    @classmethod
    def from_scraped_data(
        cls,
        username: str,
        display_name: Optional[str] = None,
        seen_at: Optional[str] = None,
    ) -> "Agent":
        """Create an Agent instance from scraped data."""
        username = username.lower()
        seen_at = seen_at or get_timestamp()
        return cls(
            id_agent=generate_id("agent", username),
            username=username,
            display_name=display_name,
            first_seen_at=seen_at,
            last_seen_at=seen_at,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database insertion."""
        return {
            "id_agent": self.id_agent,
            "username": self.username,
            "display_name": self.display_name,
            "post_count": self.post_count,
            "comment_count": self.comment_count,
            "first_seen_at": self.first_seen_at,
            "last_seen_at": self.last_seen_at,
        }


@dataclass
class Post:
    """Post entity model.

    Text metrics are always computed from title + content, never scraped.
    """

    id_post: str
    external_id: str
    title: str
    content: Optional[str] = None
    url: Optional[str] = None
    upvotes: int = 0
    downvotes: int = 0
    comment_count: int = 0
    posted_at: Optional[str] = None
    id_agent: Optional[str] = None
    id_submolt: Optional[str] = None
    word_count: int = 0
    char_count: int = 0
    unique_words: int = 0
    avg_word_length: float = 0.0
    link_count: int = 0
    scraped_at: str = field(default_factory=get_timestamp)

    @classmethod
    def from_scraped_data(
        cls,
        external_id: str,
        title: str,
        metrics: TextMetrics,
        content: Optional[str] = None,
        url: Optional[str] = None,
        upvotes: int = 0,
        downvotes: int = 0,
        comment_count: int = 0,
        posted_at: Optional[str] = None,
        id_agent: Optional[str] = None,
        id_submolt: Optional[str] = None,
        scraped_at: Optional[str] = None,
    ) -> "Post":
        """Create a Post instance from scraped data."""
        return cls(
            id_post=generate_id("post", external_id),
            external_id=external_id,
            title=title,
            content=content,
            url=url,
            upvotes=max(upvotes, 0),
            downvotes=max(downvotes, 0),
            comment_count=max(comment_count, 0),
            posted_at=posted_at,
            id_agent=id_agent,
            id_submolt=id_submolt,
            scraped_at=scraped_at or get_timestamp(),
            **metrics.to_dict(),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database insertion."""
        return {
            "id_post": self.id_post,
            "external_id": self.external_id,
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
            "comment_count": self.comment_count,
            "posted_at": self.posted_at,
            "id_agent": self.id_agent,
            "id_submolt": self.id_submolt,
            "word_count": self.word_count,
            "char_count": self.char_count,
            "unique_words": self.unique_words,
            "avg_word_length": self.avg_word_length,
            "link_count": self.link_count,
            "scraped_at": self.scraped_at,
        }


@dataclass
class Comment:
    """Comment entity model."""

    id_comment: str
    external_id: str
    content: str
    id_post: Optional[str] = None
    id_agent: Optional[str] = None
    upvotes: int = 0
    posted_at: Optional[str] = None
    word_count: int = 0
    char_count: int = 0
    scraped_at: str = field(default_factory=get_timestamp)

    @staticmethod
    def synthesize_external_id(
        post_reference: Optional[str],
        agent_reference: Optional[str],
        content: str,
    ) -> str:
        """Build the comment natural key from post, author and a content sample."""
        content_sample = " ".join(content.split())[:80].lower()
        return generate_id(
            "cmt",
            f"post:{post_reference or ''}",
            f"agent:{agent_reference or ''}",
            content_sample,
        )

    @classmethod
    def from_scraped_data(
        cls,
        content: str,
        metrics: TextMetrics,
        post_reference: Optional[str] = None,
        agent_reference: Optional[str] = None,
        id_post: Optional[str] = None,
        id_agent: Optional[str] = None,
        upvotes: int = 0,
        posted_at: Optional[str] = None,
        scraped_at: Optional[str] = None,
    ) -> "Comment":
        """Create a Comment instance from scraped data."""
        external_id = cls.synthesize_external_id(post_reference, agent_reference, content)
        return cls(
            id_comment=generate_id("comment", external_id),
            external_id=external_id,
            content=content,
            id_post=id_post,
            id_agent=id_agent,
            upvotes=max(upvotes, 0),
            posted_at=posted_at,
            word_count=metrics.word_count,
            char_count=metrics.char_count,
            scraped_at=scraped_at or get_timestamp(),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database insertion."""
        return {
            "id_comment": self.id_comment,
            "external_id": self.external_id,
            "id_post": self.id_post,
            "id_agent": self.id_agent,
            "content": self.content,
            "upvotes": self.upvotes,
            "posted_at": self.posted_at,
            "word_count": self.word_count,
            "char_count": self.char_count,
            "scraped_at": self.scraped_at,
        }


class JobStateError(Exception):
    """Raised on an illegal scrape job status transition."""


JOB_SCOPES = ("full", "submolt", "agent")

# Allowed status transitions; completed and failed are terminal.
JOB_TRANSITIONS: Dict[str, tuple] = {
    "pending": ("running",),
    "running": ("completed", "failed"),
    "completed": (),
    "failed": (),
}


@dataclass
class ScrapeJob:
    """One scrape cycle, recorded for observability.

    Summary counters hold successfully reconciled entities; the *_found
    counters hold raw extraction counts so the two can be compared.
    """

    id_job: str
    scope: str
    target_id: Optional[str] = None
    status: str = "pending"
    posts_scraped: int = 0
    agents_discovered: int = 0
    submolts_discovered: int = 0
    comments_scraped: int = 0
    posts_found: int = 0
    agents_found: int = 0
    submolts_found: int = 0
    comments_found: int = 0
    error_message: Optional[str] = None
    created_at: str = field(default_factory=get_timestamp)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def create(cls, scope: str, target_id: Optional[str] = None) -> "ScrapeJob":
        """Create a new pending job."""
        return cls(id_job=f"job_{uuid.uuid4().hex[:12]}", scope=scope, target_id=target_id)

    @property
    def is_terminal(self) -> bool:
        return not JOB_TRANSITIONS[self.status]

    def _transition(self, status: str) -> None:
        if status not in JOB_TRANSITIONS[self.status]:
            raise JobStateError(f"Job {self.id_job}: cannot move from {self.status} to {status}")
        self.status = status

    def start(self) -> None:
        """pending -> running."""
        self._transition("running")
        self.started_at = get_timestamp()

    def complete(self) -> None:
        """running -> completed."""
        self._transition("completed")
        self.completed_at = get_timestamp()

    def fail(self, error_message: str) -> None:
        """running -> failed, recording the error message."""
        self._transition("failed")
        self.error_message = error_message
        self.completed_at = get_timestamp()

    def to_dict(self) -> dict:
        """Convert to dictionary for database insertion."""
        return {
            "id_job": self.id_job,
            "scope": self.scope,
            "target_id": self.target_id,
            "status": self.status,
            "posts_scraped": self.posts_scraped,
            "agents_discovered": self.agents_discovered,
            "submolts_discovered": self.submolts_discovered,
            "comments_scraped": self.comments_scraped,
            "posts_found": self.posts_found,
            "agents_found": self.agents_found,
            "submolts_found": self.submolts_found,
            "comments_found": self.comments_found,
            "error_message": self.error_message,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_row(cls, row: dict) -> "ScrapeJob":
        """Rebuild a job from a stored row."""
        fields = cls.__dataclass_fields__
        return cls(**{key: value for key, value in row.items() if key in fields})
