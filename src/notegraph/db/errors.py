"""Storage-layer exceptions.

Absence (unknown path, unresolved target) is never an error: lookups return
None or an empty list. These exceptions cover operations that must not be
silently coerced.
"""

from __future__ import annotations


class StorageError(RuntimeError):
    """Base class for index database failures."""


class IntegrityViolationError(StorageError):
    """A write would break a storage invariant; the transaction was rolled back.

    Raised for embeddings of the wrong dimension, rows that reference a
    missing file or note, and vector payloads the index rejects.
    """


class EmbeddingConfigMismatchError(StorageError):
    """The database was built with a different embedding model or dimension."""
