"""
Migration 001: Initial layout (selections).

Collections were originally called selections; their rows reference
selection_id. The kv table holds small JSON-encoded settings such as the
active pointer.
"""

import sqlite3

VERSION = 1
NAME = "selections"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create selections, selection_rows and kv."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS selections (
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
        CREATE TABLE IF NOT EXISTS selection_rows (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            selection_id TEXT NOT NULL,
            key TEXT,
            data TEXT NOT NULL,  -- JSON object
            ts TEXT NOT NULL,
            source TEXT,
            batch TEXT,

            FOREIGN KEY (selection_id) REFERENCES selections(id) ON DELETE CASCADE
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            key TEXT PRIMARY KEY,
            value TEXT  -- JSON value
        )
        """
    )

    conn.execute("CREATE INDEX IF NOT EXISTS idx_selections_updated_at ON selections(updated_at)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_selection_rows_selection_id ON selection_rows(selection_id)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove the initial layout."""
    conn.execute("DROP INDEX IF EXISTS idx_selection_rows_selection_id")
    conn.execute("DROP INDEX IF EXISTS idx_selections_updated_at")
    conn.execute("DROP TABLE IF EXISTS selection_rows")
    conn.execute("DROP TABLE IF EXISTS selections")
    conn.execute("DROP TABLE IF EXISTS kv")
