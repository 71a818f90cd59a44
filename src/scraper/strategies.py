"""Extraction strategies for moltbook.com Markdown.

Each strategy owns one pattern and turns each of its matches into a
candidate (or None). Extractors run strategies in priority order: the
structured, high-precision strategies first, the looser fallbacks after,
keeping the first candidate seen for each identifying key.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional, Pattern
from urllib.parse import urljoin

from config.patterns import PAGE_BOUNDARY, patterns
from src.scraper.candidates import (
    AgentCandidate,
    CommentCandidate,
    PostCandidate,
    SubmoltCandidate,
)
from src.scraper.parsers import (
    LIMITS,
    clean_title,
    extract_post_id_from_url,
    is_plausible_title,
    is_valid_submolt_name,
    is_valid_username,
    line_context,
    match_value,
    nearest_match,
    normalize_name,
    parse_number,
    strip_markdown,
    synthesize_post_id,
)
from src.scraper.timestamps import resolve_relative_time

logger = logging.getLogger(__name__)

_METADATA_LINE = re.compile(
    r"^(?:[▲▼💬#>]|---|\*\*\*|\[?[um]/|!\[)|posted\s+by|/post/|\breply\b\s*$|^\d{1,6}\s*[a-z]{1,7}\s+ago\b",
    re.I,
)
_RELATIVE_TIME_ONLY = re.compile(r"^[\s•·|—–-]*\d{1,6}\s*[a-z]{1,7}\s+ago\b[\s•·|—–-]*$", re.I)
_LINE_SEPARATORS = " \t•·|—–-:"


@dataclass(frozen=True)
class PageSegment:
    """Markdown of one fetched page plus the context it was scraped in."""

    text: str
    now: datetime
    url: Optional[str] = None

    @property
    def post_id(self) -> Optional[str]:
        """Post id when this segment is a post detail page."""
        return extract_post_id_from_url(self.url)

    def absolute_url(self, href: Optional[str]) -> Optional[str]:
        if not href:
            return None
        return urljoin(self.url, href) if self.url else href


def rest_of_line_after(text: str, position: int) -> str:
    """Text from position to the end of its line (bounded by the line window)."""
    limit = position + LIMITS.line_window
    line_end = text.find("\n", position, limit)
    return text[position:line_end if line_end != -1 else limit]


def excerpt_after(text: str, position: int, skip_first_line: bool = True) -> Optional[str]:
    """Collect body text following a position until the next metadata line.

    Args:
        text: Page Markdown
        position: Offset to start reading from
        skip_first_line: Ignore the remainder of the line containing position

    Returns:
        Plain text excerpt or None
    """
    segment = text[position:position + LIMITS.max_excerpt_length]
    lines = segment.split("\n")
    if skip_first_line:
        lines = lines[1:]

    collected = []
    for line in lines:
        stripped = line.strip()
        if not stripped:
            continue
        if PAGE_BOUNDARY.search(stripped) or _METADATA_LINE.search(stripped):
            break
        collected.append(stripped)

    content = strip_markdown(" ".join(collected))
    return content or None


class ExtractionStrategy:
    """Base strategy: one pattern, one candidate per successful match."""

    name = "base"

    @property
    def pattern(self) -> Pattern:
        raise NotImplementedError

    def iter_candidates(self, page: PageSegment) -> Iterator:
        """Yield every candidate the strategy can extract from a page."""
        for match in self.pattern.finditer(page.text):
            try:
                candidate = self.try_extract(page, match)
            except Exception as e:
                logger.debug("%s dropped match at offset %d: %s", self.name, match.start(), e)
                continue
            if candidate is not None:
                yield candidate

    def try_extract(self, page: PageSegment, match: re.Match):
        """Build a candidate from one match, or return None."""
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


class PostStrategy(ExtractionStrategy):
    """Shared field scraping for the post strategies."""

    def pick_title(self, label: Optional[str], line: str) -> Optional[str]:
        """Choose a title: bold text, then heading markup, then the link label."""
        post_patterns = patterns.post
        for source in (label or "", line):
            for bold in post_patterns.bold.finditer(source):
                text = clean_title(bold.group("text") or bold.group("alt"))
                if is_plausible_title(text):
                    return text

        heading = post_patterns.heading.search(line)
        if heading:
            text = clean_title(heading.group("title"))
            if is_plausible_title(text):
                return text

        text = clean_title(label)
        return text if is_plausible_title(text) else None

    def scrape_author(self, text: str, start: int, end: int) -> Optional[str]:
        mention = nearest_match(patterns.agent.mention, text, start, end)
        if mention and is_valid_username(mention.group("username")):
            return normalize_name(mention.group("username"))
        marker = nearest_match(patterns.agent.author_marker, text, start, end)
        if marker and is_valid_username(marker.group("username")):
            return normalize_name(marker.group("username"))
        return None

    def scrape_submolt(self, text: str, start: int, end: int) -> Optional[str]:
        mention = nearest_match(patterns.submolt.mention, text, start, end)
        if mention and is_valid_submolt_name(mention.group("name")):
            return normalize_name(mention.group("name"))
        return None

    def scrape_count(self, pattern: Pattern, text: str, start: int, end: int) -> int:
        return parse_number(match_value(nearest_match(pattern, text, start, end)))


class VoteBlockPostStrategy(PostStrategy):
    """Structured feed card: vote block, submolt, author, title link, comments."""

    name = "vote_block"

    @property
    def pattern(self) -> Pattern:
        return patterns.post.vote_block_card

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[PostCandidate]:
        label = match.group("label")
        line = line_context(page.text, match.start("label"), match.end("url"), 0, 0)
        title = self.pick_title(label, line)
        if title is None:
            return None

        author = match.group("author")
        submolt = match.group("submolt")
        vote_block = page.text[match.start():match.start("submolt")]
        downvotes = patterns.post.downvotes.search(vote_block)
        body_start = match.end("url")

        return PostCandidate(
            external_id=match.group("post_id"),
            title=title,
            content=excerpt_after(page.text[:match.start("comments")], body_start),
            url=page.absolute_url(match.group("url")),
            upvotes=parse_number(match.group("upvotes")),
            downvotes=parse_number(match_value(downvotes)),
            comment_count=parse_number(match.group("comments")),
            posted_at=resolve_relative_time(match.group("meta"), page.now),
            agent_reference=normalize_name(author) if is_valid_username(author) else None,
            submolt_reference=normalize_name(submolt) if is_valid_submolt_name(submolt) else None,
            strategy=self.name,
        )


class PostLinkStrategy(PostStrategy):
    """Any link to a post page, with fields scraped from its context window."""

    name = "post_link"

    @property
    def pattern(self) -> Pattern:
        return patterns.post.post_link

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[PostCandidate]:
        text = page.text
        start, end = match.span()
        line = line_context(text, start, end, 0, 0)
        title = self.pick_title(match.group("label"), line)
        if title is None:
            return None

        return PostCandidate(
            external_id=match.group("post_id"),
            title=title,
            content=excerpt_after(text, end),
            url=page.absolute_url(match.group("url")),
            upvotes=self.scrape_count(patterns.post.upvotes, text, start, end),
            downvotes=self.scrape_count(patterns.post.downvotes, text, start, end),
            comment_count=self.scrape_count(patterns.post.comment_count, text, start, end),
            posted_at=resolve_relative_time(line_context(text, start, end, 1, 1), page.now),
            agent_reference=self.scrape_author(text, start, end),
            submolt_reference=self.scrape_submolt(text, start, end),
            strategy=self.name,
        )


class PostHeadingStrategy(PostStrategy):
    """Post detail page: heading title near a "Posted by" marker."""

    name = "post_heading"

    @property
    def pattern(self) -> Pattern:
        return patterns.post.heading

    def is_post_heading(self, page: PageSegment, nearby: str) -> bool:
        """Decide whether a heading introduces a post.

        On a post page every heading qualifies (the first one wins). Pages
        of unknown origin need a by-line close by and no feed card
        (vote block or post link) around the heading.
        """
        if page.post_id is not None:
            return True
        if page.url is not None:
            return False
        post_patterns = patterns.post
        if not post_patterns.posted_by.search(nearby):
            return False
        return "▲" not in nearby and not post_patterns.post_link.search(nearby)

    def content_start(self, text: str, end: int) -> int:
        """Body text starts after the by-line when one follows the heading."""
        byline = patterns.post.posted_by.search(text, end, end + LIMITS.line_window * 2)
        return byline.start() if byline else end

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[PostCandidate]:
        text = page.text
        start, end = match.span()
        nearby = line_context(text, start, end, 2, 2)
        if not self.is_post_heading(page, nearby):
            return None

        title = self.pick_title(None, match.group(0))
        if title is None:
            return None

        author = self.scrape_author(text, start, end)
        submolt = self.scrape_submolt(text, start, end)
        external_id = page.post_id or synthesize_post_id(title, author, submolt)

        return PostCandidate(
            external_id=external_id,
            title=title,
            content=excerpt_after(text, self.content_start(text, end)),
            url=page.url if page.post_id else None,
            upvotes=self.scrape_count(patterns.post.upvotes, text, start, end),
            downvotes=self.scrape_count(patterns.post.downvotes, text, start, end),
            comment_count=self.scrape_count(patterns.post.comment_count, text, start, end),
            posted_at=resolve_relative_time(nearby, page.now),
            agent_reference=author,
            submolt_reference=submolt,
            strategy=self.name,
        )


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class ProfileLinkAgentStrategy(ExtractionStrategy):
    """Markdown link to a profile page: [Display Name](/u/username)."""

    name = "profile_link"

    @property
    def pattern(self) -> Pattern:
        return patterns.agent.profile_link

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[AgentCandidate]:
        username = match.group("username")
        if not is_valid_username(username):
            return None
        label = strip_markdown(match.group("label"))
        if label.lower().startswith("u/"):
            label = label[2:]
        label = label.lstrip("@").strip()
        return AgentCandidate(
            username=normalize_name(username),
            display_name=label or username,
            strategy=self.name,
        )


class MentionAgentStrategy(ExtractionStrategy):
    """Plain u/username mention."""

    name = "agent_mention"

    @property
    def pattern(self) -> Pattern:
        return patterns.agent.mention

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[AgentCandidate]:
        username = match.group("username")
        if not is_valid_username(username):
            return None
        return AgentCandidate(username=normalize_name(username), display_name=username, strategy=self.name)


class AuthorMarkerAgentStrategy(ExtractionStrategy):
    """Bare name after an author marker ("Posted by name", "by name")."""

    name = "author_marker"

    @property
    def pattern(self) -> Pattern:
        return patterns.agent.author_marker

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[AgentCandidate]:
        username = match.group("username")
        if not is_valid_username(username):
            return None
        return AgentCandidate(username=normalize_name(username), display_name=username, strategy=self.name)


# ---------------------------------------------------------------------------
# Submolts
# ---------------------------------------------------------------------------


class SubmoltStrategy(ExtractionStrategy):
    """Shared member-count scraping for the submolt strategies."""

    def scrape_member_count(self, text: str, end: int) -> Optional[int]:
        rest_of_line = rest_of_line_after(text, end)
        members = patterns.submolt.member_count.search(rest_of_line)
        if members is None:
            return None
        return parse_number(members.group("value"))


class SubmoltLinkStrategy(SubmoltStrategy):
    """Markdown link to a submolt page, as found on listings and feed cards."""

    name = "submolt_link"

    @property
    def pattern(self) -> Pattern:
        return patterns.submolt.submolt_link

    def scrape_description(self, text: str, end: int) -> Optional[str]:
        rest_of_line = rest_of_line_after(text, end)
        if re.search(r"posted\s+by|\bago\b|[▲▼💬]|\[?u/", rest_of_line, re.I):
            return None
        description = patterns.submolt.member_count.sub("", strip_markdown(rest_of_line))
        description = description.strip(_LINE_SEPARATORS)
        return description if len(description) >= 3 else None

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[SubmoltCandidate]:
        name = match.group("name")
        if not is_valid_submolt_name(name):
            return None
        label = strip_markdown(match.group("label"))
        if label.lower().startswith("m/"):
            label = label[2:]
        end = match.end()
        return SubmoltCandidate(
            name=normalize_name(name),
            display_name=label.strip() or name,
            description=self.scrape_description(page.text, end),
            member_count=self.scrape_member_count(page.text, end),
            strategy=self.name,
        )


class MentionSubmoltStrategy(SubmoltStrategy):
    """Plain m/name mention."""

    name = "submolt_mention"

    @property
    def pattern(self) -> Pattern:
        return patterns.submolt.mention

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[SubmoltCandidate]:
        name = match.group("name")
        if not is_valid_submolt_name(name):
            return None
        end = match.end()
        return SubmoltCandidate(
            name=normalize_name(name),
            display_name=name,
            member_count=self.scrape_member_count(page.text, end),
            strategy=self.name,
        )


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class ThreadedCommentStrategy(ExtractionStrategy):
    """Comment block: author header with relative time, body, vote line."""

    name = "threaded_comment"

    @property
    def pattern(self) -> Pattern:
        return patterns.comment.threaded

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[CommentCandidate]:
        author = match.group("author")
        if not is_valid_username(author):
            return None
        lines = [
            line.strip().lstrip(">").strip()
            for line in match.group("body").split("\n")
        ]
        content = strip_markdown(" ".join(line for line in lines if line))
        if len(content) < LIMITS.min_comment_length:
            return None
        return CommentCandidate(
            content=content,
            agent_reference=normalize_name(author),
            post_reference=page.post_id,
            upvotes=parse_number(match.group("upvotes")),
            posted_at=resolve_relative_time(match.group("meta"), page.now),
            strategy=self.name,
        )


class InlineCommentStrategy(ExtractionStrategy):
    """Single-line comment: "u/name: comment text"."""

    name = "inline_comment"

    @property
    def pattern(self) -> Pattern:
        return patterns.comment.inline

    def try_extract(self, page: PageSegment, match: re.Match) -> Optional[CommentCandidate]:
        author = match.group("author")
        if not is_valid_username(author):
            return None
        body = match.group("body")
        if _RELATIVE_TIME_ONLY.match(body):
            return None
        content = strip_markdown(body)
        if len(content) < LIMITS.min_comment_length:
            return None
        upvotes = patterns.post.upvotes.search(body)
        return CommentCandidate(
            content=content,
            agent_reference=normalize_name(author),
            post_reference=page.post_id,
            upvotes=parse_number(match_value(upvotes)),
            posted_at=resolve_relative_time(body, page.now),
            strategy=self.name,
        )
