"""Scraper package for the moltbook archive.

Exports the pure extraction API. Transports and the orchestrator live in
src.scraper.transport and src.scraper.scrapers.
"""

from src.scraper.candidates import (
    AgentCandidate,
    CommentCandidate,
    ExtractionResult,
    PostCandidate,
    SubmoltCandidate,
)
from src.scraper.extractors import (
    extract_agents,
    extract_all,
    extract_comments,
    extract_posts,
    extract_submolts,
    join_pages,
    split_pages,
)
from src.scraper.timestamps import resolve_relative_time

__all__ = [
    "AgentCandidate",
    "CommentCandidate",
    "ExtractionResult",
    "PostCandidate",
    "SubmoltCandidate",
    "extract_agents",
    "extract_all",
    "extract_comments",
    "extract_posts",
    "extract_submolts",
    "join_pages",
    "split_pages",
    "resolve_relative_time",
]
