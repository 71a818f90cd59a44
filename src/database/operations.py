"""Repository operations for archived entities, SQLite and PostgreSQL.

- Ensures tables exist on startup (creates from schema if missing).
- Natural-key upserts are a single INSERT ... ON CONFLICT statement, so
  concurrent cycles resolve a key collision to an update at the storage level.
- Every DB-API error is re-raised as StorageError.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from src.database.connection import (
    check_database_exists,
    get_connection,
    init_database,
    use_postgres as postgres_configured,
)
from src.database.models import Agent, Comment, Post, ScrapeJob, Submolt

logger = logging.getLogger(__name__)

T = TypeVar("T", Submolt, Agent, Post, Comment, ScrapeJob)


class StorageError(Exception):
    """A repository call was rejected by the database."""


class DatabaseOperations:
    """Thin repository over the archive tables."""

    TABLE_MAPPING = {
        Submolt: "submolts",
        Agent: "agents",
        Post: "posts",
        Comment: "comments",
        ScrapeJob: "scrape_jobs",
    }

    PK_MAPPING = {
        Submolt: "id_submolt",
        Agent: "id_agent",
        Post: "id_post",
        Comment: "id_comment",
        ScrapeJob: "id_job",
    }

    NATURAL_KEY_MAPPING = {
        Submolt: "name",
        Agent: "username",
        Post: "external_id",
        Comment: "external_id",
        ScrapeJob: "id_job",
    }

    # Written on insert, never overwritten by an upsert.
    INSERT_ONLY = {
        Submolt: ("first_seen_at",),
        Agent: ("first_seen_at", "post_count", "comment_count"),
        Post: (),
        Comment: (),
        ScrapeJob: ("created_at",),
    }

    # Stored value survives an upsert that carries NULL.
    KEEP_WHEN_NULL = {
        Submolt: ("display_name", "description", "member_count"),
        Agent: ("display_name",),
        Post: (),
        Comment: (),
        ScrapeJob: (),
    }

    def __init__(
        self,
        db_path: Optional[Path] = None,
        use_postgres: Optional[bool] = None,
        dsn: Optional[str] = None,
    ):
        """Initialize database operations.

        Args:
            db_path: Optional path (SQLite only).
            use_postgres: Force PostgreSQL if True; if None, follows settings.db_type.
            dsn: PostgreSQL connection string (defaults to settings.postgres_url).
        """
        self.db_path = db_path
        self.use_postgres = use_postgres if use_postgres is not None else postgres_configured()
        self.dsn = dsn

    def _conn_kw(self) -> dict:
        if self.use_postgres:
            return {"postgres": True, "dsn": self.dsn}
        return {"db_path": self.db_path, "postgres": False}

    def _db_errors(self) -> tuple:
        if self.use_postgres:
            import psycopg2

            return (psycopg2.Error,)
        return (sqlite3.Error,)

    def _execute(self, sql: str, params: Sequence[Any] = (), fetch: Optional[str] = None) -> Any:
        """Run one statement in its own transaction.

        Args:
            sql: Statement with '?' placeholders
            params: Statement parameters
            fetch: None, "one", "all" or "rowcount"

        Returns:
            Row dict, list of row dicts, affected row count, or None
        """
        if self.use_postgres:
            sql = sql.replace("?", "%s")
        try:
            with get_connection(**self._conn_kw()) as conn:
                if self.use_postgres:
                    with conn.cursor() as cur:
                        cur.execute(sql, list(params))
                        return self._collect(cur, fetch, postgres=True)
                cursor = conn.execute(sql, list(params))
                return self._collect(cursor, fetch, postgres=False)
        except self._db_errors() as e:
            raise StorageError(str(e)) from e

    @staticmethod
    def _collect(cursor, fetch: Optional[str], postgres: bool) -> Any:
        if fetch is None:
            return None
        if fetch == "rowcount":
            return cursor.rowcount
        if postgres:
            colnames = [d[0] for d in cursor.description]
            if fetch == "one":
                row = cursor.fetchone()
                return dict(zip(colnames, row)) if row else None
            return [dict(zip(colnames, r)) for r in cursor.fetchall()]
        if fetch == "one":
            row = cursor.fetchone()
            return dict(row) if row else None
        return [dict(row) for row in cursor.fetchall()]

    def _table(self, entity_type: Type[T]) -> str:
        table = self.TABLE_MAPPING.get(entity_type)
        if table is None:
            raise ValueError(f"Unknown entity type: {entity_type}")
        return table

    def ensure_tables(self) -> None:
        """Create tables if they do not exist (using existing schema)."""
        kw = {"postgres": self.use_postgres, "dsn": self.dsn}
        if check_database_exists(self.db_path, **kw):
            logger.debug("Tables already exist")
            return
        init_database(self.db_path, **kw)
        logger.info("%s tables created", "PostgreSQL" if self.use_postgres else "SQLite")

    def get_by_natural_key(self, entity_type: Type[T], key: str) -> Optional[Dict[str, Any]]:
        """Point lookup by natural key (name, username or external_id)."""
        table = self._table(entity_type)
        column = self.NATURAL_KEY_MAPPING[entity_type]
        return self._execute(f"SELECT * FROM {table} WHERE {column} = ?", (key,), fetch="one")

    def get_by_id(self, entity_type: Type[T], id_value: str) -> Optional[Dict[str, Any]]:
        """Get an entity by its surrogate primary key."""
        table = self._table(entity_type)
        pk = self.PK_MAPPING[entity_type]
        return self._execute(f"SELECT * FROM {table} WHERE {pk} = ?", (id_value,), fetch="one")

    def insert(self, entity: T) -> None:
        """Insert a new entity; a natural key collision raises StorageError."""
        table = self._table(type(entity))
        data = entity.to_dict()
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        self._execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", list(data.values()))

    def update(self, entity_type: Type[T], id_value: str, fields: Dict[str, Any]) -> int:
        """Partial update of the named columns.

        Returns:
            Number of rows updated (0 or 1)
        """
        if not fields:
            return 0
        table = self._table(entity_type)
        pk = self.PK_MAPPING[entity_type]
        assignments = ", ".join(f"{col} = ?" for col in fields)
        sql = f"UPDATE {table} SET {assignments} WHERE {pk} = ?"
        return self._execute(sql, [*fields.values(), id_value], fetch="rowcount")

    def _upsert_sql(self, entity_type: Type[T], columns: List[str]) -> str:
        table = self._table(entity_type)
        natural_key = self.NATURAL_KEY_MAPPING[entity_type]
        skipped = {self.PK_MAPPING[entity_type], natural_key, *self.INSERT_ONLY[entity_type]}
        keep_when_null = self.KEEP_WHEN_NULL[entity_type]

        assignments = []
        for col in columns:
            if col in skipped:
                continue
            if col in keep_when_null:
                assignments.append(f"{col} = COALESCE(excluded.{col}, {table}.{col})")
            else:
                assignments.append(f"{col} = excluded.{col}")

        placeholders = ", ".join("?" for _ in columns)
        return (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT ({natural_key}) DO UPDATE SET {', '.join(assignments)}"
        )

    def upsert(self, entity: T) -> bool:
        """Insert or update an entity keyed on its natural key.

        Returns:
            True if the entity was new, False if an existing row was updated
        """
        entity_type = type(entity)
        data = entity.to_dict()
        natural_key = self.NATURAL_KEY_MAPPING[entity_type]
        existing = self.get_by_natural_key(entity_type, data[natural_key])
        self._execute(self._upsert_sql(entity_type, list(data)), list(data.values()))
        return existing is None

    def count(self, entity_type: Type[T]) -> int:
        """Count entities of a type."""
        table = self._table(entity_type)
        row = self._execute(f"SELECT COUNT(*) AS n FROM {table}", fetch="one")
        return row["n"]

    def count_by(self, entity_type: Type[T], column: str, value: Any) -> int:
        """Count entities whose column (usually a foreign key) equals value."""
        table = self._table(entity_type)
        if column not in entity_type.__dataclass_fields__:
            raise ValueError(f"Unknown column for {table}: {column}")
        row = self._execute(f"SELECT COUNT(*) AS n FROM {table} WHERE {column} = ?", (value,), fetch="one")
        return row["n"]

    def get_all(
        self,
        entity_type: Type[T],
        limit: Optional[int] = None,
        offset: int = 0,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Get all entities of a type."""
        table = self._table(entity_type)
        sql = f"SELECT * FROM {table}"
        if order_by is not None:
            column, _, direction = order_by.partition(" ")
            if column not in entity_type.__dataclass_fields__:
                raise ValueError(f"Unknown column for {table}: {column}")
            sql += f" ORDER BY {column} {'DESC' if direction.upper() == 'DESC' else 'ASC'}"
        params: List[Any] = []
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params = [limit, offset]
        return self._execute(sql, params, fetch="all")

    def exists(self, entity_type: Type[T], id_value: str) -> bool:
        """Check if an entity exists."""
        return self.get_by_id(entity_type, id_value) is not None

    def table_counts(self) -> Dict[str, int]:
        """Row count of every archive table."""
        return {table: self.count(entity_type) for entity_type, table in self.TABLE_MAPPING.items()}

    # Scrape jobs

    def save_job(self, job: ScrapeJob) -> None:
        """Persist the current state of a scrape job."""
        self.upsert(job)

    def get_job(self, id_job: str) -> Optional[ScrapeJob]:
        row = self.get_by_id(ScrapeJob, id_job)
        return ScrapeJob.from_row(row) if row else None

    def get_recent_jobs(self, limit: int = 10) -> List[ScrapeJob]:
        """Most recently created jobs first."""
        rows = self.get_all(ScrapeJob, limit=limit, order_by="created_at DESC")
        return [ScrapeJob.from_row(row) for row in rows]

