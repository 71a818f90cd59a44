"""CLI entry point for the moltbook archive.

Usage:
    python -m app init-db
    python -m app scrape --scope submolt --target agentops --follow-posts 5
    python -m app extract page.md --reconcile
    python -m app jobs
    python -m app fingerprint --limit 20
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import settings


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: Enable debug logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("playwright").setLevel(logging.WARNING)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="SQLite database file (defaults to settings.db_path)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db_path: Optional[Path]) -> None:
    """Moltbook archive: scrape, extract and reconcile moltbook.com content."""
    from src.database.operations import DatabaseOperations

    setup_logging(verbose)
    settings.ensure_directories()
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path
    ctx.obj["db_ops"] = DatabaseOperations(db_path, use_postgres=False if db_path else None)


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the archive tables if they do not exist."""
    db_ops = ctx.obj["db_ops"]
    db_ops.ensure_tables()
    click.echo("Database ready")


@cli.command()
@click.option(
    "--scope",
    type=click.Choice(["full", "submolt", "agent"]),
    default="full",
    help="What to scrape",
)
@click.option("--target", "target_id", default=None, help="Submolt name or agent username")
@click.option("--url", "urls", multiple=True, help="Explicit page URL (repeatable)")
@click.option(
    "--transport",
    type=click.Choice(["firecrawl", "requests", "browser"]),
    default=None,
    help="Page transport (defaults to settings.transport)",
)
@click.option("--follow-posts", type=int, default=None, help="Discovered post pages to fetch")
@click.option("--cache/--no-cache", default=False, help="Serve pages from the on-disk cache")
@click.option("--force", is_flag=True, help="Force refresh cached pages")
@click.pass_context
def scrape(
    ctx: click.Context,
    scope: str,
    target_id: Optional[str],
    urls: Tuple[str, ...],
    transport: Optional[str],
    follow_posts: Optional[int],
    cache: bool,
    force: bool,
) -> None:
    """Run one scrape cycle and record it as a job."""
    logger = logging.getLogger(__name__)
    logger.info("Starting scrape cycle")

    from src.scraper.discovery import InvalidScrapeRequest
    from src.scraper.scrapers import run_scraper

    try:
        job = run_scraper(
            scope=scope,
            target_id=target_id,
            urls=urls,
            transport_name=transport,
            use_cache=cache,
            force_refresh=force,
            follow_post_links=follow_posts,
            db_ops=ctx.obj["db_ops"],
        )
    except InvalidScrapeRequest as e:
        raise click.UsageError(str(e)) from e

    click.echo("\n--- Scrape Job ---")
    click.echo(f"Job:      {job.id_job}")
    click.echo(f"Status:   {job.status}")
    click.echo(f"Posts:    {job.posts_scraped} (found {job.posts_found})")
    click.echo(f"Agents:   {job.agents_discovered} new (found {job.agents_found})")
    click.echo(f"SubMolts: {job.submolts_discovered} new (found {job.submolts_found})")
    click.echo(f"Comments: {job.comments_scraped} (found {job.comments_found})")
    if job.error_message:
        click.echo(f"Error:    {job.error_message}")
    if job.status == "failed":
        ctx.exit(1)


@cli.command()
@click.argument("markdown_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--reconcile", is_flag=True, help="Write the extracted entities to the database")
@click.pass_context
def extract(ctx: click.Context, markdown_file: Path, reconcile: bool) -> None:
    """Extract entities from a saved Markdown file."""
    from src.reconciliation import Reconciler
    from src.scraper.extractors import extract_all

    markdown = markdown_file.read_text(encoding="utf-8")
    extraction = extract_all(markdown)

    click.echo("--- Extracted ---")
    for entity, count in extraction.counts().items():
        click.echo(f"{entity}: {count}")

    if reconcile:
        db_ops = ctx.obj["db_ops"]
        db_ops.ensure_tables()
        stats = Reconciler(db_ops).reconcile(extraction)
        click.echo("\n--- Reconciled ---")
        for entity in ("submolts", "agents", "posts", "comments"):
            entity_stats = getattr(stats, entity)
            click.echo(
                f"{entity}: {entity_stats.inserted} inserted, "
                f"{entity_stats.updated} updated, {entity_stats.failed} failed"
            )


@cli.command()
@click.option("--limit", default=10, help="Number of jobs to show")
@click.pass_context
def jobs(ctx: click.Context, limit: int) -> None:
    """List recent scrape jobs."""
    db_ops = ctx.obj["db_ops"]
    db_ops.ensure_tables()
    recent = db_ops.get_recent_jobs(limit)
    if not recent:
        click.echo("No scrape jobs recorded")
        return
    for job in recent:
        click.echo(
            f"{job.id_job}  {job.status:<9}  {job.scope:<7}  {job.target_id or '-':<16}  "
            f"posts={job.posts_scraped} agents={job.agents_discovered} "
            f"comments={job.comments_scraped}  {job.created_at}"
        )
        if job.error_message:
            click.echo(f"    error: {job.error_message}")


@cli.command()
@click.option("--limit", default=None, type=int, help="Show only the N most active agents")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write fingerprints to this Parquet file",
)
@click.option("--save", is_flag=True, help="Write fingerprints to the gold directory")
@click.pass_context
def fingerprint(ctx: click.Context, limit: Optional[int], output: Optional[Path], save: bool) -> None:
    """Compute behavioural fingerprints per agent."""
    from src.processing.fingerprint import build_fingerprints, default_output_path

    db_ops = ctx.obj["db_ops"]
    db_ops.ensure_tables()
    if save and output is None:
        output = default_output_path()

    fingerprints = build_fingerprints(db_ops, output_path=output, limit=limit)
    if fingerprints.is_empty():
        click.echo("No agents archived yet")
        return
    for row in fingerprints.iter_rows(named=True):
        click.echo(
            f"{row['username']:<24} posts={row['post_count']:<4} "
            f"vocab={row['vocabulary_diversity']:.2f} len={row['avg_post_length']:<4} "
            f"per_day={row['posts_per_day']:.2f} engagement={row['engagement_ratio']:.2f} "
            f"submolt={row['primary_submolt'] or '-'}"
        )
    if output is not None:
        click.echo(f"\nFingerprints saved to: {output}")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show archive status.

    Displays database statistics and the latest job.
    """
    from src.database.connection import check_database_exists

    click.echo("--- Archive Status ---\n")

    db_ops = ctx.obj["db_ops"]
    db_path = ctx.obj["db_path"] or settings.db_full_path
    if not check_database_exists(ctx.obj["db_path"], postgres=db_ops.use_postgres):
        click.echo(f"Database: {db_path} (not initialized)")
        return

    click.echo(f"Database: {'PostgreSQL' if db_ops.use_postgres else db_path}")
    for table, count in db_ops.table_counts().items():
        click.echo(f"  {table + ':':<12} {count}")

    recent = db_ops.get_recent_jobs(1)
    if recent:
        job = recent[0]
        click.echo(f"\nLast job: {job.id_job} ({job.status}, {job.created_at})")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
