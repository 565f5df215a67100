"""
State Store (SQLite-based).

Persistent repository for:
- Collections (named, pinnable containers)
- Collection rows (extracted cheques with provenance and batch)
- The active-collection pointer, isolated per deployment scope

Deduplicates by natural key within one ingest batch only.
"""

from .sqlite_store import (
    Collection,
    CollectionNotFoundError,
    CollectionRepository,
    CollectionRow,
    NoActiveCollectionError,
    RepositoryError,
)

__all__ = [
    "CollectionRepository",
    "Collection",
    "CollectionRow",
    "RepositoryError",
    "NoActiveCollectionError",
    "CollectionNotFoundError",
]
