"""
Repository schema migrations.

Versioned, ordered migrations for the SQLite collection repository.
Migrations are applied in order and tracked in a migrations table.
"""

from .runner import AppliedMigration, Migration, MigrationRunner, get_all_migrations, latest_version

__all__ = [
    "MigrationRunner",
    "Migration",
    "AppliedMigration",
    "get_all_migrations",
    "latest_version",
]
