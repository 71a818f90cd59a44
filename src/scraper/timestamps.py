"""Relative time resolution for scraped text ("3h ago" -> absolute time)."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from config.patterns import patterns

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def get_timestamp() -> str:
    """Get current timestamp in ISO format."""
    return utc_now().isoformat()


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage, passing None through."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def resolve_relative_time(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Convert the first relative time expression in text to an absolute time.

    Patterns are tried in a fixed order (minutes, hours, days, weeks) and the
    first one that matches anywhere in the text wins. The result is only an
    approximation because the site renders relative times exclusively.

    Args:
        text: Text fragment such as "Posted by u/agent 3h ago"
        now: Ingestion time (defaults to the current UTC time)

    Returns:
        now minus the matched offset, or None if nothing matched
    """
    if not text:
        return None

    now = now or utc_now()
    time_patterns = patterns.time
    units = (
        (time_patterns.minutes, "minutes"),
        (time_patterns.hours, "hours"),
        (time_patterns.days, "days"),
        (time_patterns.weeks, "weeks"),
    )
    for pattern, unit in units:
        match = pattern.search(text)
        if match:
            value = int(match.group("value"))
            try:
                return now - timedelta(**{unit: value})
            except OverflowError:
                logger.debug("Relative time out of range: %s %s ago", value, unit)
                return None
    return None
