"""
SQLite-based collection repository.

Tables:
- collections: Named containers of cheque rows
- collection_rows: Persisted records (JSON data) with natural key, provenance and batch
- kv: Small JSON settings, notably the scoped active-collection pointer

The schema is created and evolved by the migrations package; constructing a
repository brings the database up to date.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import resolve_scope
from ..schemas.cheque import Cheque
from ..schemas.dedupe import dedupe_batch, natural_key

logger = logging.getLogger(__name__)

ACTIVE_KEY_PREFIX = "activeCollectionId"

# Unnamespaced pointer keys written by older versions, newest first
LEGACY_ACTIVE_KEYS = ("activeCollectionId", "activeDatasetId", "activeSelectionId")

UNTITLED = "Untitled"
IMPORTED = "Imported"
DEFAULT_PAGE_SIZE = 200


class RepositoryError(Exception):
    """Base error for repository operations."""

    pass


class NoActiveCollectionError(RepositoryError):
    """Raised when an operation needs an active collection and none is set."""

    def __init__(self, message: str = "No active collection: select or create a collection first"):
        super().__init__(message)


class CollectionNotFoundError(RepositoryError):
    """Raised when a collection id does not exist."""

    def __init__(self, collection_id: str):
        self.collection_id = collection_id
        super().__init__(f"Collection not found: {collection_id}")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass
class Collection:
    """A named container of rows."""

    id: str
    name: str
    note: str
    pinned: bool
    created_at: str  # ISO timestamp
    updated_at: str  # ISO timestamp, bumped by every mutation including add_rows

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Collection":
        """Create from database row."""
        return cls(
            id=row["id"],
            name=row["name"],
            note=row["note"] or "",
            pinned=bool(row["pinned"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CollectionRow:
    """One persisted record. Rows are never updated after insert."""

    id: int
    collection_id: str
    key: str | None
    data: dict[str, Any] = field(default_factory=dict)
    ts: str = ""
    source: str | None = None
    batch: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CollectionRow":
        """Create from database row."""
        return cls(
            id=row["id"],
            collection_id=row["collection_id"],
            key=row["key"],
            data=json.loads(row["data"]) if row["data"] else {},
            ts=row["ts"],
            source=row["source"],
            batch=row["batch"],
        )

    @property
    def cheque(self) -> Cheque:
        """The stored data as a Cheque (row provenance fills a missing source)."""
        cheque = Cheque.from_dict(self.data)
        if not cheque.source and self.source:
            cheque.source = self.source
        return cheque

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _row_data(row: Mapping[str, Any] | Cheque) -> dict[str, Any]:
    if isinstance(row, Cheque):
        return row.to_dict()
    return dict(row)


class CollectionRepository:
    """
    SQLite-backed store of collections and their rows.

    Provides:
    - Collection CRUD (create, rename, note, pin, delete, duplicate)
    - Row append with batch-level dedup, pagination, count and clear
    - The active-collection pointer, namespaced by deployment scope
    - JSON and CSV export, JSON import

    One connection per operation, one transaction per call. The active
    pointer is last-writer-wins.
    """

    def __init__(
        self,
        db_path: Path | str,
        scope: str | None = None,
        run_migrations: bool = True,
    ):
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file
            scope: Deployment scope (resolved from the environment when None)
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.scope = resolve_scope(scope)
        self.active_key = f"{ACTIVE_KEY_PREFIX}::{self.scope}"
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    def schema_version(self) -> int:
        """Get the applied schema version."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            return MigrationRunner(conn).get_current_version()
        finally:
            conn.close()

    # Internal helpers (operate on an open connection)

    @staticmethod
    def _fetch(conn: sqlite3.Connection, collection_id: str) -> Collection | None:
        row = conn.execute("SELECT * FROM collections WHERE id = ?", (collection_id,)).fetchone()
        return Collection.from_row(row) if row else None

    def _require(self, conn: sqlite3.Connection, collection_id: str) -> Collection:
        collection = self._fetch(conn, collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)
        return collection

    @staticmethod
    def _touch(conn: sqlite3.Connection, collection_id: str) -> None:
        conn.execute(
            "UPDATE collections SET updated_at = ? WHERE id = ?", (_now(), collection_id)
        )

    @staticmethod
    def _kv_get(conn: sqlite3.Connection, key: str) -> Any:
        row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None or row["value"] is None:
            return None
        return json.loads(row["value"])

    def _write_active(self, conn: sqlite3.Connection, collection_id: str | None) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
            (self.active_key, json.dumps(collection_id)),
        )
        placeholders = ", ".join("?" for _ in LEGACY_ACTIVE_KEYS)
        conn.execute(f"DELETE FROM kv WHERE key IN ({placeholders})", LEGACY_ACTIVE_KEYS)

    def _insert_collection(
        self, conn: sqlite3.Connection, name: str, note: str = "", pinned: bool = False
    ) -> Collection:
        now = _now()
        collection = Collection(
            id=uuid.uuid4().hex,
            name=name.strip() or UNTITLED,
            note=note or "",
            pinned=bool(pinned),
            created_at=now,
            updated_at=now,
        )
        conn.execute(
            """
            INSERT INTO collections (id, name, note, pinned, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (
                collection.id,
                collection.name,
                collection.note,
                int(collection.pinned),
                collection.created_at,
                collection.updated_at,
            ),
        )
        self._write_active(conn, collection.id)
        return collection

    # === Collection Methods ===

    def create(self, name: str, note: str = "", pinned: bool = False) -> Collection:
        """
        Create a collection and make it active.

        A blank name becomes "Untitled".
        """
        with self._transaction() as conn:
            collection = self._insert_collection(conn, name, note, pinned)
        logger.info(f"Created collection {collection.id} ({collection.name})")
        return collection

    def _update(self, collection_id: str, column: str, value: Any) -> Collection:
        with self._transaction() as conn:
            self._require(conn, collection_id)
            conn.execute(
                f"UPDATE collections SET {column} = ?, updated_at = ? WHERE id = ?",
                (value, _now(), collection_id),
            )
            return self._require(conn, collection_id)

    def rename(self, collection_id: str, name: str) -> Collection:
        """Rename a collection (a blank name becomes "Untitled")."""
        return self._update(collection_id, "name", name.strip() or UNTITLED)

    def update_note(self, collection_id: str, note: str) -> Collection:
        """Replace a collection's note."""
        return self._update(collection_id, "note", note or "")

    def set_pinned(self, collection_id: str, pinned: bool) -> Collection:
        """Pin or unpin a collection."""
        return self._update(collection_id, "pinned", int(bool(pinned)))

    def delete(self, collection_id: str) -> int:
        """
        Delete a collection and all its rows.

        Clears the active pointer if it referenced this collection.

        Returns:
            Number of rows deleted with it
        """
        with self._transaction() as conn:
            self._require(conn, collection_id)
            cursor = conn.execute(
                "DELETE FROM collection_rows WHERE collection_id = ?", (collection_id,)
            )
            deleted_rows = cursor.rowcount
            conn.execute("DELETE FROM collections WHERE id = ?", (collection_id,))

            if self._kv_get(conn, self.active_key) == collection_id:
                self._write_active(conn, None)

        logger.info(f"Deleted collection {collection_id} ({deleted_rows} rows)")
        return deleted_rows

    def duplicate(self, collection_id: str, new_name: str | None = None) -> Collection:
        """
        Copy a collection with all its rows; the copy becomes active.

        The copy is named "<name> (copy)" unless new_name is given.
        """
        with self._transaction() as conn:
            source = self._require(conn, collection_id)
            copy = self._insert_collection(
                conn, new_name or f"{source.name} (copy)", note=source.note
            )
            conn.execute(
                """
                INSERT INTO collection_rows (collection_id, key, data, ts, source, batch)
                SELECT ?, key, data, ts, source, batch
                FROM collection_rows WHERE collection_id = ?
                ORDER BY id
            """,
                (copy.id, collection_id),
            )
        logger.info(f"Duplicated collection {collection_id} as {copy.id}")
        return copy

    def get(self, collection_id: str) -> Collection | None:
        """Get a collection by ID."""
        with self._transaction() as conn:
            return self._fetch(conn, collection_id)

    def find_by_name(self, name: str) -> Collection | None:
        """Get the oldest collection with exactly this name."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM collections WHERE name = ? ORDER BY created_at, rowid LIMIT 1",
                (name,),
            ).fetchone()
            return Collection.from_row(row) if row else None

    def list(self) -> list[Collection]:
        """Get all collections, most recently updated first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM collections ORDER BY updated_at DESC, created_at DESC, rowid DESC"
            ).fetchall()
            return [Collection.from_row(row) for row in rows]

    # === Row Methods ===

    def add_rows(
        self,
        collection_id: str,
        rows: Iterable[Mapping[str, Any] | Cheque],
        source: str | None = None,
        batch: str | None = None,
    ) -> int:
        """
        Append one batch of records to a collection.

        Rows sharing a natural key within this batch are collapsed (last one
        wins). Rows from earlier batches are never compared, so the same
        record ingested twice is stored twice.

        Args:
            collection_id: Target collection
            rows: Records (dicts or Cheques)
            source: Provenance tag stored on every row
            batch: Batch token (generated when omitted)

        Returns:
            Number of rows inserted (0 for an empty batch, which changes nothing)
        """
        deduped = dedupe_batch(_row_data(row) for row in rows)
        if not deduped:
            return 0

        batch = batch or uuid.uuid4().hex
        now = _now()
        values = [
            (
                collection_id,
                natural_key(data),
                json.dumps(data, ensure_ascii=False),
                now,
                source,
                batch,
            )
            for data in deduped
        ]

        with self._transaction() as conn:
            self._require(conn, collection_id)
            conn.executemany(
                """
                INSERT INTO collection_rows (collection_id, key, data, ts, source, batch)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                values,
            )
            self._touch(conn, collection_id)

        logger.debug(f"Added {len(values)} rows to {collection_id} (batch {batch})")
        return len(values)

    def list_rows(
        self, collection_id: str, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> list[CollectionRow]:
        """Get a page of rows in insertion order."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM collection_rows WHERE collection_id = ?
                ORDER BY id LIMIT ? OFFSET ?
            """,
                (collection_id, max(0, limit), max(0, offset)),
            ).fetchall()
            return [CollectionRow.from_row(row) for row in rows]

    def iter_rows(
        self, collection_id: str, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Iterator[CollectionRow]:
        """
        Iterate over all rows of a collection, page by page.

        Raises:
            ValueError: If page_size is not positive
        """
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        offset = 0
        while True:
            page = self.list_rows(collection_id, limit=page_size, offset=offset)
            yield from page
            if len(page) < page_size:
                return
            offset += page_size

    def count_rows(self, collection_id: str) -> int:
        """Count rows of a collection (0 for an unknown id)."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) as count FROM collection_rows WHERE collection_id = ?",
                (collection_id,),
            ).fetchone()
            return row["count"] if row else 0

    def clear_rows(self, collection_id: str) -> int:
        """
        Delete all rows of a collection, keeping the collection.

        Returns:
            Number of rows deleted
        """
        with self._transaction() as conn:
            self._require(conn, collection_id)
            cursor = conn.execute(
                "DELETE FROM collection_rows WHERE collection_id = ?", (collection_id,)
            )
            self._touch(conn, collection_id)
            return cursor.rowcount

    def sources(self, collection_id: str) -> list[str]:
        """Get the provenance tags present in a collection."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT source FROM collection_rows
                WHERE collection_id = ? AND source IS NOT NULL
                ORDER BY source
            """,
                (collection_id,),
            ).fetchall()
            return [row["source"] for row in rows]

    # === Active Collection Methods ===

    def get_active_id(self) -> str | None:
        """
        Get the active collection id for this scope.

        A pointer left under a legacy (unscoped) key is moved to the scoped
        key on first read.
        """
        with self._transaction() as conn:
            value = self._kv_get(conn, self.active_key)
            if value:
                return value

            for legacy_key in LEGACY_ACTIVE_KEYS:
                legacy = self._kv_get(conn, legacy_key)
                if isinstance(legacy, str) and legacy:
                    logger.info(f"Migrating active pointer from {legacy_key} to {self.active_key}")
                    self._write_active(conn, legacy)
                    return legacy
            return None

    def set_active_id(self, collection_id: str | None) -> None:
        """
        Set (or clear, with None) the active collection for this scope.

        Raises:
            CollectionNotFoundError: If collection_id does not exist
        """
        with self._transaction() as conn:
            if collection_id is not None:
                self._require(conn, collection_id)
            self._write_active(conn, collection_id)

    def get_active(self) -> Collection | None:
        """Get the active collection; a pointer to a deleted collection is cleared."""
        collection_id = self.get_active_id()
        if not collection_id:
            return None

        collection = self.get(collection_id)
        if collection is None:
            logger.info(f"Clearing stale active pointer {collection_id}")
            with self._transaction() as conn:
                if self._kv_get(conn, self.active_key) == collection_id:
                    self._write_active(conn, None)
        return collection

    def require_active(self) -> Collection:
        """
        Get the active collection.

        Raises:
            NoActiveCollectionError: If none is set
        """
        collection = self.get_active()
        if collection is None:
            raise NoActiveCollectionError()
        return collection

    def scoped_name(self, name_base: str = "Receipts") -> str:
        """Name of the default collection for this scope."""
        return f"{name_base} [{self.scope}]"

    def ensure_scoped(self, name_base: str = "Receipts", prefer_active: bool = True) -> Collection:
        """
        Resolve the collection new rows should go to, creating it if needed.

        The current active collection wins when prefer_active is set.
        Otherwise the collection named "<name_base> [<scope>]" is used, and
        created if absent. The result is always the active collection
        afterwards; repeated calls return the same collection.
        """
        if prefer_active:
            active = self.get_active()
            if active is not None:
                return active

        target_name = self.scoped_name(name_base)
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM collections WHERE name = ? ORDER BY created_at, rowid LIMIT 1",
                (target_name,),
            ).fetchone()
            if row is not None:
                collection = Collection.from_row(row)
                self._write_active(conn, collection.id)
                return collection

            collection = self._insert_collection(
                conn, target_name, note=f"scoped to {self.scope}"
            )

        logger.info(f"Created scoped collection {collection.name}")
        return collection

    # === Export / Import ===

    def export_json(self, collection_id: str) -> dict[str, Any]:
        """
        Export a collection and its rows.

        Returns:
            {"collection": {...}, "rows": [...]}
        """
        collection = self.get(collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)
        return {
            "collection": collection.to_dict(),
            "rows": [row.to_dict() for row in self.iter_rows(collection_id)],
        }

    def import_json(self, payload: Mapping[str, Any], name: str | None = None) -> Collection:
        """
        Import an exported collection as a new (active) collection.

        Rows keep their key, timestamp, provenance and batch; they are not
        deduplicated. Exports of the older layout ("selection" instead of
        "collection") are accepted.

        Raises:
            RepositoryError: If the payload has no usable shape
        """
        if not isinstance(payload, Mapping):
            raise RepositoryError("Import payload must be an object")

        meta = payload.get("collection") or payload.get("selection") or {}
        rows = payload.get("rows") or []
        if not isinstance(meta, Mapping) or not isinstance(rows, list):
            raise RepositoryError("Import payload must have a collection object and a rows list")

        now = _now()
        prepared = []
        for index, row in enumerate(rows):
            if not isinstance(row, Mapping) or not isinstance(row.get("data"), Mapping):
                raise RepositoryError(f"rows[{index}] has no data object")
            data = dict(row["data"])
            prepared.append(
                (
                    row.get("key") or natural_key(data),
                    json.dumps(data, ensure_ascii=False),
                    row.get("ts") or now,
                    row.get("source"),
                    row.get("batch"),
                )
            )

        with self._transaction() as conn:
            collection = self._insert_collection(
                conn, name or meta.get("name") or IMPORTED, note=meta.get("note") or ""
            )
            conn.executemany(
                """
                INSERT INTO collection_rows (collection_id, key, data, ts, source, batch)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                [(collection.id, *values) for values in prepared],
            )

        logger.info(f"Imported {len(prepared)} rows into {collection.id} ({collection.name})")
        return collection

    @staticmethod
    def export_csv(rows: Iterable[CollectionRow]) -> str:
        """
        Render rows as CSV.

        Columns are id, ts, key followed by the union of data keys in order
        of first appearance. No rows gives an empty string.
        """
        rows = list(rows)
        if not rows:
            return ""

        data_keys: dict[str, None] = {}
        for row in rows:
            for key in row.data:
                data_keys.setdefault(key, None)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["id", "ts", "key", *data_keys])
        for row in rows:
            writer.writerow(
                [
                    row.id,
                    row.ts,
                    row.key or "",
                    *("" if row.data.get(key) is None else row.data[key] for key in data_keys),
                ]
            )
        return buffer.getvalue().rstrip("\n")

    # === Statistics ===

    def get_stats(self) -> dict[str, Any]:
        """Get repository statistics."""
        active_id = self.get_active_id()
        with self._transaction() as conn:
            collections = conn.execute("SELECT COUNT(*) as count FROM collections").fetchone()
            rows = conn.execute("SELECT COUNT(*) as count FROM collection_rows").fetchone()
            by_source = conn.execute(
                """
                SELECT COALESCE(source, '') as source, COUNT(*) as count
                FROM collection_rows GROUP BY COALESCE(source, '') ORDER BY source
            """
            ).fetchall()

            return {
                "scope": self.scope,
                "collections_total": collections["count"] if collections else 0,
                "rows_total": rows["count"] if rows else 0,
                "rows_by_source": {row["source"]: row["count"] for row in by_source},
                "active_collection_id": active_id,
            }
