"""
Migration 002: Collections.

Creates collections and collection_rows next to the old tables and copies
the data over, renaming selection_id to collection_id. The old tables are
kept so this step can be rolled back; 003 drops them.
"""

import sqlite3

VERSION = 2
NAME = "collections"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create collection tables and copy selections into them."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS collections (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            note TEXT NOT NULL DEFAULT '',
            pinned INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS collection_rows (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            collection_id TEXT NOT NULL,
            key TEXT,  -- Natural key (business identifier), NULL when unknown
            data TEXT NOT NULL,  -- JSON object
            ts TEXT NOT NULL,
            source TEXT,  -- Provenance, e.g. PlatformaOFD
            batch TEXT,  -- Rows inserted by one add_rows call share a token

            FOREIGN KEY (collection_id) REFERENCES collections(id) ON DELETE CASCADE
        )
        """
    )

    conn.execute("CREATE INDEX IF NOT EXISTS idx_collections_name ON collections(name)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_collections_updated_at ON collections(updated_at)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_collection_rows_collection_id "
        "ON collection_rows(collection_id)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_collection_rows_key ON collection_rows(key)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_collection_rows_ts ON collection_rows(ts)")

    # Copy existing data (1:1 for collections, renamed owner column for rows)
    conn.execute(
        """
        INSERT OR IGNORE INTO collections (id, name, note, pinned, created_at, updated_at)
        SELECT id, name, note, pinned, created_at, updated_at FROM selections
        """
    )
    conn.execute(
        """
        INSERT OR IGNORE INTO collection_rows (id, collection_id, key, data, ts, source, batch)
        SELECT id, selection_id, key, data, ts, source, batch FROM selection_rows
        WHERE selection_id IN (SELECT id FROM collections)
        """
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove collection tables (the selection tables still hold the data)."""
    conn.execute("DROP INDEX IF EXISTS idx_collection_rows_ts")
    conn.execute("DROP INDEX IF EXISTS idx_collection_rows_key")
    conn.execute("DROP INDEX IF EXISTS idx_collection_rows_collection_id")
    conn.execute("DROP INDEX IF EXISTS idx_collections_updated_at")
    conn.execute("DROP INDEX IF EXISTS idx_collections_name")
    conn.execute("DROP TABLE IF EXISTS collection_rows")
    conn.execute("DROP TABLE IF EXISTS collections")
