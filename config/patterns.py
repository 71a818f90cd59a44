"""Regular expressions for extracting entities from moltbook.com Markdown.

All patterns are centralized here for easy maintenance.
Modify these values if the rendered page layout changes.

Every quantifier is bounded so that garbage input (long runs of brackets,
binary-looking text) cannot trigger runaway backtracking.
"""

import re
from dataclasses import dataclass, field
from typing import FrozenSet, Pattern

# Counts as rendered on the site: "42", "1.2K", "1,234"
NUMBER = r"(?:\d{1,3}(?:,\d{3})+|\d{1,9}(?:\.\d{1,3})?)(?:[KkMm](?![A-Za-z/]))?"
USERNAME = r"[A-Za-z0-9_-]{1,40}"
SUBMOLT = r"[A-Za-z0-9_-]{1,60}"
POST_ID = r"[A-Za-z0-9_-]{1,64}"
URL_CHARS = r"[^)\s]"

PAGE_BOUNDARY_TEMPLATE = "\n\n<!-- moltbook:page {url} -->\n\n"
PAGE_BOUNDARY = re.compile(r"<!-- moltbook:page (?P<url>[^\s>]{0,500}) -->")


@dataclass(frozen=True)
class PostPatterns:
    """Patterns for post cards in feeds and post detail pages."""

    # Structured card: vote block, submolt, author, title link, comment count.
    vote_block_card: Pattern = re.compile(
        r"▲\s{0,5}(?P<upvotes>" + NUMBER + r")\s{0,5}▼"
        r"[^\[\n]{0,40}?\s{0,5}"
        r"\[?m/(?P<submolt>" + SUBMOLT + r")\]?(?:\(" + URL_CHARS + r"{0,300}\))?"
        r"[^\n]{0,80}?"
        r"\[?u/(?P<author>" + USERNAME + r")\]?(?:\(" + URL_CHARS + r"{0,300}\))?"
        r"(?P<meta>[^\n\[]{0,80})\s{0,10}(?:#{1,3}[ \t]{1,3})?"
        r"\[(?P<label>[^\]\n]{1,300})\]"
        r"\((?P<url>" + URL_CHARS + r"{0,300}?/(?:post|p)/(?P<post_id>" + POST_ID + r")" + URL_CHARS + r"{0,100})\)"
        r"(?P<body>(?:(?!▲|/post/)[\s\S]){0,1500}?)"
        r"💬\s{0,5}(?P<comments>" + NUMBER + r")"
    )
    # Any Markdown link pointing at a post page.
    post_link: Pattern = re.compile(
        r"\[(?P<label>[^\]\n]{0,300})\]"
        r"\((?P<url>" + URL_CHARS + r"{0,300}?/(?:post|p)/(?P<post_id>" + POST_ID + r")" + URL_CHARS + r"{0,100})\)"
    )
    # Post detail page: a heading line.
    heading: Pattern = re.compile(r"^[ \t]{0,3}#{1,3}[ \t]{1,5}(?P<title>[^\n]{1,300})$", re.M)
    bold: Pattern = re.compile(r"\*\*(?P<text>[^*\n]{1,300})\*\*|__(?P<alt>[^_\n]{1,300})__")
    upvotes: Pattern = re.compile(
        r"▲\s{0,5}(?P<value>" + NUMBER + r")|(?P<alt>" + NUMBER + r")\s{0,3}(?:upvotes?|points?)\b",
        re.I,
    )
    downvotes: Pattern = re.compile(
        r"▼[ \t]{0,3}(?P<value>\d{1,9})\b(?![ \t]{0,3}(?:m|h|d|w|mins?|minutes?|hours?|days?|weeks?)\b)"
        r"|(?P<alt>" + NUMBER + r")\s{0,3}downvotes?\b",
        re.I,
    )
    comment_count: Pattern = re.compile(
        r"💬\s{0,5}(?P<value>" + NUMBER + r")|(?P<alt>" + NUMBER + r")\s{0,3}comments?\b",
        re.I,
    )
    posted_by: Pattern = re.compile(r"posted\s{1,3}by", re.I)


@dataclass(frozen=True)
class AgentPatterns:
    """Patterns for agent (user) references."""

    profile_link: Pattern = re.compile(
        r"\[(?P<label>[^\]\n]{1,80})\]"
        r"\((?:https?://[^/)\s]{1,100})?/u/(?P<username>" + USERNAME + r")(?:[/?#]" + URL_CHARS + r"{0,200})?\)"
    )
    mention: Pattern = re.compile(r"(?<![\w/])u/(?P<username>" + USERNAME + r")\b")
    author_marker: Pattern = re.compile(
        r"\b(?:posted[ \t]{1,3})?by[ \t]{1,3}@?(?P<username>[A-Za-z][A-Za-z0-9_-]{0,39})(?![\w/-])",
        re.I,
    )


@dataclass(frozen=True)
class SubmoltPatterns:
    """Patterns for submolt (community) references."""

    submolt_link: Pattern = re.compile(
        r"\[(?P<label>[^\]\n]{1,120})\]"
        r"\((?:https?://[^/)\s]{1,100})?/m/(?P<name>" + SUBMOLT + r")(?:[/?#]" + URL_CHARS + r"{0,200})?\)"
    )
    mention: Pattern = re.compile(r"(?<![\w/])m/(?P<name>" + SUBMOLT + r")\b")
    member_count: Pattern = re.compile(r"(?P<value>" + NUMBER + r")\s{0,3}members?\b", re.I)


@dataclass(frozen=True)
class CommentPatterns:
    """Patterns for comments on post detail pages."""

    # "[u/name](...) • 2h ago" header, body lines, then the vote/reply line.
    threaded: Pattern = re.compile(
        r"^[ \t>]{0,12}(?:[-*][ \t]{1,3})?\[?u/(?P<author>" + USERNAME + r")\]?(?:\(" + URL_CHARS + r"{0,300}\))?"
        r"(?P<meta>[^\n]{0,80}?\bago\b[^\n]{0,40})\n"
        r"(?P<body>(?:(?![ \t>]{0,12}(?:[-*][ \t]{1,3})?\[?u/" + USERNAME + r")[^\n]{0,2000}\n){1,30}?)"
        r"[ \t>]{0,12}▲\s{0,5}(?P<upvotes>" + NUMBER + r")",
        re.M,
    )
    # "u/name: comment text" on a single line.
    inline: Pattern = re.compile(
        r"^[ \t>]{0,12}(?:[-*][ \t]{1,3})?(?:\*\*)?u/(?P<author>" + USERNAME + r")(?:\*\*)?"
        r"[ \t]{0,3}[:—][ \t]{0,3}(?P<body>[^\n]{2,2000})$",
        re.M,
    )


@dataclass(frozen=True)
class TimePatterns:
    """Relative time expressions, in resolution priority order."""

    minutes: Pattern = re.compile(r"(?P<value>\d{1,6})\s{0,2}(?:m|mins?|minutes?)\s{1,3}ago\b", re.I)
    hours: Pattern = re.compile(r"(?P<value>\d{1,6})\s{0,2}(?:h|hrs?|hours?)\s{1,3}ago\b", re.I)
    days: Pattern = re.compile(r"(?P<value>\d{1,6})\s{0,2}(?:d|days?)\s{1,3}ago\b", re.I)
    weeks: Pattern = re.compile(r"(?P<value>\d{1,6})\s{0,2}(?:w|wks?|weeks?)\s{1,3}ago\b", re.I)


# Words that follow "by" in ordinary prose and are never agent names.
USERNAME_STOPLIST: FrozenSet[str] = frozenset({
    "a", "about", "accident", "all", "an", "and", "any", "anyone", "at",
    "being", "both", "chance", "clicking", "comparison", "contrast",
    "default", "definition", "design", "doing", "each", "every",
    "everyone", "far", "for", "from", "hand", "having", "her", "him",
    "his", "how", "in", "into", "it", "its", "itself", "making", "me",
    "mistake", "my", "myself", "name", "no", "nobody", "now", "of", "on",
    "one", "or", "our", "over", "people", "posted", "reading", "running",
    "some", "someone", "such", "taking", "that", "the", "their", "them",
    "then", "these", "they", "this", "those", "to", "under", "us", "using",
    "via", "way", "we", "what", "which", "who", "whom", "with", "you",
    "your", "yourself",
})


@dataclass(frozen=True)
class ExtractionLimits:
    """Tunable thresholds for the extraction heuristics."""

    context_window: int = 300
    line_window: int = 160
    min_title_length: int = 3
    max_title_length: int = 300
    min_username_length: int = 2
    max_username_length: int = 40
    max_excerpt_length: int = 2000
    min_comment_length: int = 2


@dataclass(frozen=True)
class Patterns:
    """Container for all pattern groups."""

    post: PostPatterns = field(default_factory=PostPatterns)
    agent: AgentPatterns = field(default_factory=AgentPatterns)
    submolt: SubmoltPatterns = field(default_factory=SubmoltPatterns)
    comment: CommentPatterns = field(default_factory=CommentPatterns)
    time: TimePatterns = field(default_factory=TimePatterns)
    limits: ExtractionLimits = field(default_factory=ExtractionLimits)


# Global patterns instance
patterns = Patterns()
