"""Text metrics derived from post and comment text."""

import re
from dataclasses import asdict, dataclass
from typing import Optional

ALPHA_WORD = re.compile(r"[a-z]+")
LINK = re.compile(r"https?://[^\s<>()\[\]]+", re.I)


@dataclass(frozen=True)
class TextMetrics:
    """Fixed set of metrics computed for a piece of text."""

    word_count: int = 0
    char_count: int = 0
    unique_words: int = 0
    avg_word_length: float = 0.0
    link_count: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for database insertion."""
        return asdict(self)


def compute_text_metrics(text: Optional[str]) -> TextMetrics:
    """Compute word, character, vocabulary and link metrics for text.

    Tokens are whitespace-delimited. Only purely alphabetic tokens (after
    case folding) count towards unique_words, but every token counts towards
    word_count and avg_word_length.

    Args:
        text: Text to measure (None and "" yield all-zero metrics)

    Returns:
        TextMetrics instance
    """
    if not text:
        return TextMetrics()

    tokens = text.split()
    if not tokens:
        return TextMetrics(char_count=len(text), link_count=len(LINK.findall(text)))

    vocabulary = {
        token.casefold()
        for token in tokens
        if ALPHA_WORD.fullmatch(token.casefold())
    }
    avg_length = round(sum(len(token) for token in tokens) / len(tokens), 2)

    return TextMetrics(
        word_count=len(tokens),
        char_count=len(text),
        unique_words=len(vocabulary),
        avg_word_length=avg_length,
        link_count=len(LINK.findall(text)),
    )


def combine_post_text(title: Optional[str], content: Optional[str]) -> str:
    """Join title and content the way post metrics are measured."""
    return " ".join(part for part in (title, content) if part)
