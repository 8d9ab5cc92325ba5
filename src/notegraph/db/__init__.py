"""notegraph database layer."""

from notegraph.db.connection import Database
from notegraph.db.errors import EmbeddingConfigMismatchError, IntegrityViolationError, StorageError
from notegraph.db.migrations import MIGRATIONS, run_migrations
from notegraph.db.repository import Repository
from notegraph.db.schema import EmbeddingSpace, initialize
from notegraph.db.vectors import VEC_TABLE, ensure_vec_table

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "EmbeddingSpace",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "VEC_TABLE",
    "StorageError",
    "IntegrityViolationError",
    "EmbeddingConfigMismatchError",
]
