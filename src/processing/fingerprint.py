"""Behavioural fingerprints per agent, aggregated with Polars.

A fingerprint summarises how an agent posts: vocabulary diversity, typical
post length, posting cadence, engagement and favourite submolt. It is derived
entirely from stored rows and the per-post text metrics.
"""

import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import polars as pl

from config.settings import settings
from src.database.models import Agent, Post, Submolt
from src.database.operations import DatabaseOperations

logger = logging.getLogger(__name__)

AGENT_SCHEMA = {
    "id_agent": pl.Utf8,
    "username": pl.Utf8,
    "display_name": pl.Utf8,
    "post_count": pl.Int64,
    "first_seen_at": pl.Utf8,
    "last_seen_at": pl.Utf8,
}
POST_SCHEMA = {
    "id_agent": pl.Utf8,
    "id_submolt": pl.Utf8,
    "word_count": pl.Int64,
    "unique_words": pl.Int64,
    "upvotes": pl.Int64,
    "comment_count": pl.Int64,
}
SUBMOLT_SCHEMA = {
    "id_submolt": pl.Utf8,
    "name": pl.Utf8,
}

FINGERPRINT_COLUMNS = [
    "username",
    "display_name",
    "post_count",
    "vocabulary_diversity",
    "avg_post_length",
    "posts_per_day",
    "engagement_ratio",
    "avg_engagement",
    "primary_submolt",
    "active_days",
    "first_seen_at",
    "last_seen_at",
]

DEFAULT_OUTPUT = "agent_fingerprints.parquet"

# Halves round up, matching the dashboard figures
ROUND_MODE = "half_away_from_zero"


def _to_frame(rows: List[Dict[str, Any]], schema: Dict[str, Any]) -> pl.DataFrame:
    """Project row dicts onto a fixed schema (works for empty input too)."""
    if not rows:
        return pl.DataFrame(schema=schema)
    projected = [{key: _text(row.get(key)) if schema[key] == pl.Utf8 else row.get(key) for key in schema} for row in rows]
    return pl.DataFrame(projected, schema=schema)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def active_days(first_seen: Optional[str], last_seen: Optional[str]) -> int:
    """Whole days between first and last sighting, never less than one."""
    if not first_seen or not last_seen:
        return 1
    try:
        span = datetime.fromisoformat(last_seen) - datetime.fromisoformat(first_seen)
    except (TypeError, ValueError):
        return 1
    return max(1, math.ceil(span.total_seconds() / 86400))


def compute_fingerprints(
    agents: List[Dict[str, Any]],
    posts: List[Dict[str, Any]],
    submolts: Optional[List[Dict[str, Any]]] = None,
) -> pl.DataFrame:
    """Compute one fingerprint row per agent.

    Args:
        agents: Stored agent rows
        posts: Stored post rows (with text metrics)
        submolts: Stored submolt rows, for naming the primary submolt

    Returns:
        DataFrame with FINGERPRINT_COLUMNS, most active agents first
    """
    agents_df = _to_frame(agents, AGENT_SCHEMA)
    posts_df = _to_frame(posts, POST_SCHEMA).filter(pl.col("id_agent").is_not_null())
    submolts_df = _to_frame(submolts or [], SUBMOLT_SCHEMA)

    agents_df = agents_df.with_columns(
        pl.Series(
            "active_days",
            [active_days(first, last) for first, last in zip(agents_df["first_seen_at"], agents_df["last_seen_at"])],
            dtype=pl.Int64,
        ),
        pl.col("post_count").fill_null(0),
    )

    post_stats = posts_df.group_by("id_agent").agg(
        pl.len().alias("stored_posts"),
        pl.col("word_count").fill_null(0).sum().alias("total_words"),
        pl.col("unique_words").fill_null(0).sum().alias("total_unique_words"),
        pl.col("upvotes").fill_null(0).sum().alias("total_upvotes"),
        pl.col("comment_count").fill_null(0).sum().alias("total_comments"),
    )

    primary = (
        posts_df.join(submolts_df, on="id_submolt", how="inner")
        .group_by(["id_agent", "name"])
        .agg(pl.len().alias("posts_in_submolt"))
        .sort(["id_agent", "posts_in_submolt", "name"], descending=[False, True, False])
        .group_by("id_agent", maintain_order=True)
        .first()
        .select(pl.col("id_agent"), pl.col("name").alias("primary_submolt"))
    )

    stored = pl.col("stored_posts")
    fingerprints = (
        agents_df.join(post_stats, on="id_agent", how="left")
        .join(primary, on="id_agent", how="left")
        .with_columns(
            pl.col("stored_posts", "total_words", "total_unique_words", "total_upvotes", "total_comments").fill_null(0)
        )
        .with_columns(
            pl.when(pl.col("total_words") > 0)
            .then((pl.col("total_unique_words") / pl.col("total_words")).round(2, mode=ROUND_MODE))
            .otherwise(0.0)
            .alias("vocabulary_diversity"),
            pl.when(stored > 0)
            .then((pl.col("total_words") / stored).round(0, mode=ROUND_MODE).cast(pl.Int64))
            .otherwise(0)
            .alias("avg_post_length"),
            (pl.col("post_count") / pl.col("active_days")).round(2, mode=ROUND_MODE).alias("posts_per_day"),
            pl.when(stored > 0)
            .then((pl.col("total_upvotes") / stored).round(2, mode=ROUND_MODE))
            .otherwise(0.0)
            .alias("engagement_ratio"),
            pl.when(stored > 0)
            .then(((pl.col("total_upvotes") + pl.col("total_comments")) / stored).round(2, mode=ROUND_MODE))
            .otherwise(0.0)
            .alias("avg_engagement"),
        )
        .sort(["post_count", "username"], descending=[True, False])
        .select(FINGERPRINT_COLUMNS)
    )

    logger.info("Computed fingerprints for %d agents", fingerprints.height)
    return fingerprints


def build_fingerprints(
    db_ops: Optional[DatabaseOperations] = None,
    output_path: Optional[Path] = None,
    limit: Optional[int] = None,
) -> pl.DataFrame:
    """Load stored rows, compute fingerprints and optionally write Parquet.

    Args:
        db_ops: Repository (defaults to the configured backend)
        output_path: Parquet file to write (nothing is written if None)
        limit: Keep only the N most active agents

    Returns:
        Fingerprint DataFrame
    """
    db_ops = db_ops or DatabaseOperations()
    fingerprints = compute_fingerprints(
        db_ops.get_all(Agent),
        db_ops.get_all(Post),
        db_ops.get_all(Submolt),
    )
    if limit is not None:
        fingerprints = fingerprints.head(limit)

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fingerprints.write_parquet(output_path)
        logger.info("Wrote %d fingerprints to %s", fingerprints.height, output_path)

    return fingerprints


def default_output_path() -> Path:
    """Fingerprint Parquet location inside the gold directory."""
    return settings.gold_dir / DEFAULT_OUTPUT
