"""Database connection management.

Supports SQLite (local default) and PostgreSQL. The backend is chosen by
settings.db_type; PostgreSQL connects with settings.postgres_url.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional, Union

from config.settings import settings

logger = logging.getLogger(__name__)

SCHEMA_TABLES = ("submolts", "agents", "posts", "comments", "scrape_jobs")


def use_postgres() -> bool:
    """Whether the configured backend is PostgreSQL."""
    return settings.db_type == "postgres"


def get_sqlite_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Create a SQLite connection with proper configuration.

    Args:
        db_path: Path to database file. Uses settings default if None.

    Returns:
        Configured SQLite connection
    """
    if db_path is None:
        db_path = settings.db_full_path

    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")

    return conn


def get_postgres_connection(dsn: Optional[str] = None) -> Any:
    """Create a PostgreSQL connection.

    Args:
        dsn: libpq connection string. Uses settings.postgres_url if None.

    Returns:
        psycopg2 connection
    """
    import psycopg2

    return psycopg2.connect(dsn or settings.postgres_url)


@contextmanager
def get_connection(
    db_path: Optional[Path] = None,
    *,
    postgres: Optional[bool] = None,
    dsn: Optional[str] = None,
) -> Generator[Union[sqlite3.Connection, Any], None, None]:
    """Context manager for database connections (SQLite or PostgreSQL).

    Commits on success, rolls back and re-raises on error.

    Yields:
        Database connection (sqlite3 or psycopg2)
    """
    pg = postgres if postgres is not None else use_postgres()
    conn = get_postgres_connection(dsn) if pg else get_sqlite_connection(db_path)
    try:
        yield conn
        conn.commit()
    except Exception as e:
        conn.rollback()
        logger.error("Database error: %s", e)
        raise
    finally:
        conn.close()


def init_database(
    db_path: Optional[Path] = None,
    schema_path: Optional[Path] = None,
    *,
    postgres: Optional[bool] = None,
    dsn: Optional[str] = None,
) -> None:
    """Initialize the database with the schema (SQLite or PostgreSQL)."""
    pg = postgres if postgres is not None else use_postgres()
    default_schema = "schema_postgres.sql" if pg else "schema.sql"
    schema_path = schema_path or settings.project_root / default_schema
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")
    schema_sql = schema_path.read_text(encoding="utf-8")

    if pg:
        with get_connection(postgres=True, dsn=dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(schema_sql)
        logger.info("PostgreSQL database initialized successfully")
        return

    with get_connection(db_path, postgres=False) as conn:
        conn.executescript(schema_sql)
    logger.info("SQLite database initialized at %s", db_path or settings.db_full_path)


def check_database_exists(
    db_path: Optional[Path] = None,
    *,
    postgres: Optional[bool] = None,
    dsn: Optional[str] = None,
) -> bool:
    """Check if the database exists and has every schema table."""
    pg = postgres if postgres is not None else use_postgres()
    if pg:
        with get_connection(postgres=True, dsn=dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT table_name FROM information_schema.tables WHERE table_name = ANY(%s)",
                    (list(SCHEMA_TABLES),),
                )
                return len(cur.fetchall()) == len(SCHEMA_TABLES)

    path = db_path or settings.db_full_path
    if not path.exists():
        return False
    with get_connection(path, postgres=False) as conn:
        placeholders = ", ".join("?" for _ in SCHEMA_TABLES)
        cursor = conn.execute(
            f"SELECT name FROM sqlite_master WHERE type='table' AND name IN ({placeholders})",
            SCHEMA_TABLES,
        )
        return len(cursor.fetchall()) == len(SCHEMA_TABLES)
