"""
Migration 003: Drop the superseded selection tables.

Rolling back recreates the selection tables from the current collections.
"""

import importlib
import sqlite3

VERSION = 3
NAME = "drop_selections"


def upgrade(conn: sqlite3.Connection) -> None:
    """Drop selection_rows and selections."""
    conn.execute("DROP INDEX IF EXISTS idx_selection_rows_selection_id")
    conn.execute("DROP INDEX IF EXISTS idx_selections_updated_at")
    conn.execute("DROP TABLE IF EXISTS selection_rows")
    conn.execute("DROP TABLE IF EXISTS selections")


def downgrade(conn: sqlite3.Connection) -> None:
    """Recreate the selection tables and copy collections back into them."""
    initial = importlib.import_module("cheque_sync.state_store.migrations.001_selections")
    initial.upgrade(conn)

    conn.execute(
        """
        INSERT OR IGNORE INTO selections (id, name, note, pinned, created_at, updated_at)
        SELECT id, name, note, pinned, created_at, updated_at FROM collections
        """
    )
    conn.execute(
        """
        INSERT OR IGNORE INTO selection_rows (id, selection_id, key, data, ts, source, batch)
        SELECT id, collection_id, key, data, ts, source, batch FROM collection_rows
        """
    )
