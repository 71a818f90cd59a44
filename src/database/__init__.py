"""Database package for the moltbook archive."""

from src.database.models import (
    Agent,
    Comment,
    JobStateError,
    Post,
    ScrapeJob,
    Submolt,
    generate_id,
)
from src.database.connection import get_connection, init_database
from src.database.operations import DatabaseOperations, StorageError

__all__ = [
    "Agent",
    "Comment",
    "JobStateError",
    "Post",
    "ScrapeJob",
    "Submolt",
    "generate_id",
    "get_connection",
    "init_database",
    "DatabaseOperations",
    "StorageError",
]
