"""Transient entities produced by the Markdown extractors.

Candidates are never persisted directly; the reconciliation engine turns
them into stored records.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class PostCandidate:
    """Post found in scraped Markdown."""

    external_id: str
    title: str
    content: Optional[str] = None
    url: Optional[str] = None
    upvotes: int = 0
    downvotes: int = 0
    comment_count: int = 0
    posted_at: Optional[datetime] = None
    agent_reference: Optional[str] = None
    submolt_reference: Optional[str] = None
    strategy: Optional[str] = None

    @property
    def key(self) -> str:
        return self.external_id


@dataclass
class AgentCandidate:
    """Agent username found in scraped Markdown."""

    username: str
    display_name: Optional[str] = None
    strategy: Optional[str] = None

    @property
    def key(self) -> str:
        return self.username


@dataclass
class SubmoltCandidate:
    """Submolt found in scraped Markdown."""

    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    member_count: Optional[int] = None
    strategy: Optional[str] = None

    @property
    def key(self) -> str:
        return self.name


@dataclass
class CommentCandidate:
    """Comment found on a post page.

    Comments have no natural key in the source, so no key-based
    deduplication happens during extraction.
    """

    content: str
    agent_reference: Optional[str] = None
    post_reference: Optional[str] = None
    upvotes: int = 0
    posted_at: Optional[datetime] = None
    strategy: Optional[str] = None

    @property
    def key(self) -> None:
        return None


@dataclass
class ExtractionResult:
    """Candidates of all four entity types found in one scrape cycle."""

    posts: List[PostCandidate] = field(default_factory=list)
    agents: List[AgentCandidate] = field(default_factory=list)
    submolts: List[SubmoltCandidate] = field(default_factory=list)
    comments: List[CommentCandidate] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        """Raw (pre-reconciliation) counts per entity type."""
        return {
            "posts": len(self.posts),
            "agents": len(self.agents),
            "submolts": len(self.submolts),
            "comments": len(self.comments),
        }
