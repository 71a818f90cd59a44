"""Helpers shared by the Markdown extraction strategies.

All parsing is defensive - returns None or empty values on failure.
"""

import hashlib
import logging
import re
from typing import Optional, Pattern, Tuple

from config.patterns import USERNAME_STOPLIST, patterns

logger = logging.getLogger(__name__)

LIMITS = patterns.limits

_IMAGE = re.compile(r"!\[[^\]\n]{0,300}\]\([^)\s]{0,500}\)")
_LINK = re.compile(r"\[([^\]\n]{0,300})\]\([^)\s]{0,500}\)")
_EMPHASIS = re.compile(r"(\*\*|\*|`|(?<!\w)__?|__?(?!\w))")
_HEADING_MARK = re.compile(r"^[ \t]{0,3}#{1,6}[ \t]+", re.M)
_WHITESPACE = re.compile(r"\s+")
_LIST_MARKER = re.compile(r"^\s*(?:[-*+•]\s|\d{1,3}[.)]\s)")
_LEADING_VOTES = re.compile(r"^\s*(?:▲\s*[\d.,]+[KkMm]?\s*▼?|[\d.,]+[KkMm]?\s*▼)\s*")
_LEADING_REFS = re.compile(
    r"^\s*(?:(?:posted\s+by\s+)?[um]/[A-Za-z0-9_-]{1,60}\s*(?:[•·|—–-]\s*)?)+",
    re.I,
)
_LEADING_TIME = re.compile(r"^\s*\d{1,6}\s*[a-z]{1,7}\s+ago\b\s*(?:[•·|—–-]\s*)?", re.I)
_TRAILING_COMMENTS = re.compile(r"\s*💬\s*[\d.,]+[KkMm]?(?:\s*comments?)?\s*$", re.I)
_VALID_NAME = re.compile(r"[a-z0-9_-]+")


def parse_number(text: Optional[str]) -> int:
    """Parse a number from text, handling K/M suffixes.

    Args:
        text: Text containing a number (e.g., "1.2K", "500", "1,234")

    Returns:
        Parsed integer value (0 if unparseable)
    """
    if not text:
        return 0

    text = text.strip().lower().replace(",", "")

    # Remove common prefix/suffix words
    for word in ["members", "member", "comments", "comment", "upvotes", "points"]:
        text = text.replace(word, "").strip()

    # Handle K and M suffixes
    multiplier = 1
    if text.endswith("k"):
        multiplier = 1000
        text = text[:-1]
    elif text.endswith("m"):
        multiplier = 1000000
        text = text[:-1]

    try:
        # Handle decimal values like "1.2K"
        value = float(text) * multiplier
        return max(int(value), 0)
    except (ValueError, TypeError):
        return 0


def extract_username_from_url(url: str) -> Optional[str]:
    """Extract username from a user profile URL.

    Args:
        url: URL like "/u/username" or "https://moltbook.com/u/username"

    Returns:
        Username or None
    """
    match = re.search(r"/u/([^/?#)\s]+)", url or "")
    return match.group(1) if match else None


def extract_submolt_from_url(url: str) -> Optional[str]:
    """Extract submolt name from a submolt URL.

    Args:
        url: URL like "/m/submolt" or "https://moltbook.com/m/submolt"

    Returns:
        SubMolt name or None
    """
    match = re.search(r"/m/([^/?#)\s]+)", url or "")
    return match.group(1) if match else None


def extract_post_id_from_url(url: Optional[str]) -> Optional[str]:
    """Extract the post identifier from a post URL ("/post/<id>" or "/p/<id>")."""
    match = re.search(r"/(?:post|p)/([A-Za-z0-9_-]{1,64})", url or "")
    return match.group(1) if match else None


def synthesize_post_id(*parts: Optional[str]) -> str:
    """Build a stable fallback post id when no post URL is available."""
    content = "|".join(part.strip().lower() for part in parts if part)
    return "synth-" + hashlib.sha256(content.encode()).hexdigest()[:16]


def normalize_name(name: Optional[str]) -> Optional[str]:
    """Case-normalize an agent username or submolt name."""
    if not name:
        return None
    name = name.strip().lstrip("@").lower()
    return name or None


def is_valid_username(name: Optional[str]) -> bool:
    """Check an extracted username against length bounds and the stoplist."""
    normalized = normalize_name(name)
    if normalized is None:
        return False
    if not LIMITS.min_username_length <= len(normalized) <= LIMITS.max_username_length:
        return False
    if not _VALID_NAME.fullmatch(normalized):
        return False
    return normalized not in USERNAME_STOPLIST


def is_valid_submolt_name(name: Optional[str]) -> bool:
    """Check an extracted submolt name."""
    normalized = normalize_name(name)
    return bool(normalized) and len(normalized) >= 2 and bool(_VALID_NAME.fullmatch(normalized))


def strip_markdown(text: Optional[str]) -> str:
    """Reduce Markdown to plain text (links keep their labels)."""
    if not text:
        return ""
    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _HEADING_MARK.sub("", text)
    text = _EMPHASIS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def clean_title(text: Optional[str]) -> Optional[str]:
    """Strip vote, submolt, author and comment artifacts from a title candidate."""
    if not text:
        return None
    title = strip_markdown(text)
    title = _LEADING_VOTES.sub("", title)
    title = _LEADING_REFS.sub("", title)
    title = _LEADING_TIME.sub("", title)
    title = _TRAILING_COMMENTS.sub("", title)
    title = title.strip(" \t•·|—–-")
    return title or None


def is_plausible_title(text: Optional[str]) -> bool:
    """Check that a cleaned title candidate looks like a real title."""
    if not text:
        return False
    if not LIMITS.min_title_length <= len(text) <= LIMITS.max_title_length:
        return False
    if _LIST_MARKER.match(text):
        return False
    if re.fullmatch(r"[\d\s.,▲▼💬]+", text):
        return False
    return not re.match(r"^[um]/[A-Za-z0-9_-]+$", text)


def context_window(text: str, start: int, end: int, size: Optional[int] = None) -> Tuple[str, str]:
    """Return the text immediately before and after a match span."""
    size = size or LIMITS.context_window
    return text[max(0, start - size):start], text[end:end + size]


def nearest_match(
    pattern: Pattern,
    text: str,
    start: int,
    end: int,
    size: Optional[int] = None,
):
    """Find the pattern match closest to a span within its context window.

    The last match before the span and the first match after it are
    compared by distance; ties go to the match after the span.

    Returns:
        re.Match object or None
    """
    before, after = context_window(text, start, end, size)
    before_match = None
    for before_match in pattern.finditer(before):
        pass
    after_match = pattern.search(after)

    if before_match is None:
        return after_match
    if after_match is None:
        return before_match
    before_distance = len(before) - before_match.end()
    after_distance = after_match.start()
    return before_match if before_distance < after_distance else after_match


def match_value(match) -> Optional[str]:
    """Return the first populated 'value'/'alt' group of a pattern match."""
    if match is None:
        return None
    groups = match.groupdict()
    for name in ("value", "alt", "username", "name"):
        if groups.get(name):
            return groups[name]
    return None


def line_context(text: str, start: int, end: int, lines_before: int = 1, lines_after: int = 1) -> str:
    """Return the lines surrounding a span, each bounded by the line window."""
    window_start = max(0, start - LIMITS.line_window * (lines_before + 1))
    window_end = min(len(text), end + LIMITS.line_window * (lines_after + 1))
    head = text[window_start:start].split("\n")[-(lines_before + 1):]
    tail = text[end:window_end].split("\n")[:lines_after + 1]
    return "\n".join(head) + text[start:end] + "\n".join(tail)
