"""Markdown extractors for posts, agents, submolts and comments.

Every extractor is a pure function: Markdown in, candidate list out.
Malformed input never raises; it simply yields fewer candidates.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from config.patterns import PAGE_BOUNDARY, PAGE_BOUNDARY_TEMPLATE
from src.scraper.candidates import (
    AgentCandidate,
    CommentCandidate,
    ExtractionResult,
    PostCandidate,
    SubmoltCandidate,
)
from src.scraper.strategies import (
    AuthorMarkerAgentStrategy,
    ExtractionStrategy,
    InlineCommentStrategy,
    MentionAgentStrategy,
    MentionSubmoltStrategy,
    PageSegment,
    PostHeadingStrategy,
    PostLinkStrategy,
    ProfileLinkAgentStrategy,
    SubmoltLinkStrategy,
    ThreadedCommentStrategy,
    VoteBlockPostStrategy,
)
from src.scraper.timestamps import utc_now

logger = logging.getLogger(__name__)

POST_STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    VoteBlockPostStrategy(),
    PostLinkStrategy(),
    PostHeadingStrategy(),
)
AGENT_STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    ProfileLinkAgentStrategy(),
    MentionAgentStrategy(),
    AuthorMarkerAgentStrategy(),
)
SUBMOLT_STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    SubmoltLinkStrategy(),
    MentionSubmoltStrategy(),
)
COMMENT_STRATEGIES: Tuple[ExtractionStrategy, ...] = (
    ThreadedCommentStrategy(),
    InlineCommentStrategy(),
)


def join_pages(pages: Iterable[Tuple[Optional[str], str]]) -> str:
    """Concatenate page Markdown, separating pages with boundary markers.

    Args:
        pages: (url, markdown) pairs

    Returns:
        Single Markdown document
    """
    parts = []
    for url, markdown in pages:
        parts.append(PAGE_BOUNDARY_TEMPLATE.format(url=url or "-"))
        parts.append(markdown or "")
    return "".join(parts)


def split_pages(markdown: Optional[str], now: Optional[datetime] = None) -> List[PageSegment]:
    """Split concatenated Markdown back into per-page segments.

    Text without boundary markers is treated as one page of unknown URL.
    """
    if not isinstance(markdown, str) or not markdown:
        return []
    now = now or utc_now()

    markers = list(PAGE_BOUNDARY.finditer(markdown))
    if not markers:
        return [PageSegment(text=markdown, now=now)]

    segments: List[PageSegment] = []
    leading = markdown[:markers[0].start()]
    if leading.strip():
        segments.append(PageSegment(text=leading, now=now))
    for index, marker in enumerate(markers):
        end = markers[index + 1].start() if index + 1 < len(markers) else len(markdown)
        url = marker.group("url")
        segments.append(PageSegment(
            text=markdown[marker.end():end],
            now=now,
            url=None if url == "-" else url,
        ))
    return segments


def run_strategies(
    strategies: Sequence[ExtractionStrategy],
    pages: Sequence[PageSegment],
    deduplicate: bool = True,
) -> list:
    """Run strategies in priority order over every page.

    With deduplicate=True the first candidate seen for a key wins and later
    strategies can only add keys that earlier ones missed.
    """
    seen = {}
    unkeyed = []
    for strategy in strategies:
        found = 0
        for page in pages:
            for candidate in strategy.iter_candidates(page):
                found += 1
                if not deduplicate:
                    unkeyed.append(candidate)
                elif candidate.key not in seen:
                    seen[candidate.key] = candidate
        logger.debug("Strategy %s matched %d candidates", strategy.name, found)
    return unkeyed if not deduplicate else list(seen.values())


def _extract(strategies, markdown, now, deduplicate=True) -> list:
    try:
        return run_strategies(strategies, split_pages(markdown, now), deduplicate)
    except Exception as e:
        logger.warning("Extraction aborted on malformed input: %s", e)
        return []


def extract_posts(markdown: Optional[str], now: Optional[datetime] = None) -> List[PostCandidate]:
    """Extract post candidates, deduplicated by external id."""
    return _extract(POST_STRATEGIES, markdown, now)


def extract_agents(markdown: Optional[str], now: Optional[datetime] = None) -> List[AgentCandidate]:
    """Extract agent candidates, deduplicated by lowercased username."""
    return _extract(AGENT_STRATEGIES, markdown, now)


def extract_submolts(markdown: Optional[str], now: Optional[datetime] = None) -> List[SubmoltCandidate]:
    """Extract submolt candidates, deduplicated by lowercased name."""
    return _extract(SUBMOLT_STRATEGIES, markdown, now)


def extract_comments(markdown: Optional[str], now: Optional[datetime] = None) -> List[CommentCandidate]:
    """Extract comment candidates (no deduplication across strategies)."""
    return _extract(COMMENT_STRATEGIES, markdown, now, deduplicate=False)


def extract_all(markdown: Optional[str], now: Optional[datetime] = None) -> ExtractionResult:
    """Run all four extractors over the same Markdown.

    Args:
        markdown: Concatenated page Markdown
        now: Ingestion time used for relative timestamps

    Returns:
        ExtractionResult with the four candidate lists
    """
    now = now or utc_now()
    result = ExtractionResult(
        posts=extract_posts(markdown, now),
        agents=extract_agents(markdown, now),
        submolts=extract_submolts(markdown, now),
        comments=extract_comments(markdown, now),
    )
    logger.info("Extracted candidates: %s", result.counts())
    return result
