"""
Schema migrations for the collection repository.

Every module in this package named NNN_<name>.py is one step and exposes:
- VERSION: int, unique and increasing
- NAME: str
- upgrade(conn) -> None
- downgrade(conn) -> None  (optional; without it the step cannot be undone)

The runner records each applied step in the `migrations` table, so a
database always knows its own schema version.
"""

import importlib
import logging
import pkgutil
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

Step = Callable[[sqlite3.Connection], None]

_STEP_MODULE_LENGTH = 3


@dataclass
class Migration:
    """One versioned schema step."""

    version: int
    name: str
    upgrade: Step
    downgrade: Step | None

    @property
    def label(self) -> str:
        return f"{self.version:03d}_{self.name}"


@dataclass
class AppliedMigration:
    """A step recorded in the migrations table."""

    version: int
    name: str
    applied_at: str


def _is_step_module(module_name: str) -> bool:
    prefix, _, rest = module_name.partition("_")
    return len(prefix) == _STEP_MODULE_LENGTH and prefix.isdigit() and bool(rest)


def get_all_migrations() -> list[Migration]:
    """
    Discover the schema steps of this package, ordered by version.

    A module missing VERSION, NAME or upgrade() is logged and skipped.

    Raises:
        RuntimeError: If two modules declare the same VERSION
    """
    by_version: dict[int, Migration] = {}

    for info in pkgutil.iter_modules([str(Path(__file__).parent)]):
        if not _is_step_module(info.name):
            continue
        try:
            module = importlib.import_module(f"{__package__}.{info.name}")
            step = Migration(
                version=module.VERSION,
                name=module.NAME,
                upgrade=module.upgrade,
                downgrade=getattr(module, "downgrade", None),
            )
        except (ImportError, AttributeError) as e:
            logger.warning(f"Skipping schema step {info.name}: {e}")
            continue

        clash = by_version.get(step.version)
        if clash is not None:
            raise RuntimeError(
                f"Schema steps {clash.label} and {step.label} share version {step.version}"
            )
        by_version[step.version] = step

    return sorted(by_version.values(), key=lambda step: step.version)


def latest_version() -> int:
    """Version the repository schema reaches after every step is applied."""
    steps = get_all_migrations()
    return steps[-1].version if steps else 0


class MigrationRunner:
    """
    Moves one database between schema versions.

    Each step runs in its own transaction together with its bookkeeping row:
    a failing step leaves the database at the previous version.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
        """
        )
        self.conn.commit()

    # === Bookkeeping ===

    def history(self) -> list[AppliedMigration]:
        """Recorded steps, oldest first."""
        rows = self.conn.execute(
            "SELECT version, name, applied_at FROM migrations ORDER BY version"
        ).fetchall()
        return [AppliedMigration(*row) for row in rows]

    def get_applied_versions(self) -> set[int]:
        return {entry.version for entry in self.history()}

    def get_current_version(self) -> int:
        """Highest recorded version (0 for a database without steps)."""
        (version,) = self.conn.execute("SELECT MAX(version) FROM migrations").fetchone()
        return version or 0

    def pending(self) -> list[Migration]:
        """Steps not recorded yet, in version order."""
        applied = self.get_applied_versions()
        return [step for step in get_all_migrations() if step.version not in applied]

    # === Single steps ===

    def _run_step(self, step: Migration, forward: bool) -> None:
        action = "upgrade" if forward else "downgrade"
        logger.info(f"Schema {action}: {step.label}")
        try:
            if forward:
                step.upgrade(self.conn)
                self.conn.execute(
                    "INSERT INTO migrations (version, name, applied_at) VALUES (?, ?, ?)",
                    (
                        step.version,
                        step.name,
                        datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                    ),
                )
            else:
                step.downgrade(self.conn)
                self.conn.execute("DELETE FROM migrations WHERE version = ?", (step.version,))
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error(f"Schema {action} {step.label} failed: {e}")
            raise

    def apply_migration(self, migration: Migration) -> None:
        """Apply one step and record it."""
        self._run_step(migration, forward=True)

    def rollback_migration(self, migration: Migration) -> None:
        """
        Undo one step and forget it.

        Raises:
            NotImplementedError: If the step has no downgrade()
        """
        if migration.downgrade is None:
            raise NotImplementedError(f"Schema step {migration.label} cannot be undone")
        self._run_step(migration, forward=False)

    # === Moving between versions ===

    def run_pending(self) -> list[int]:
        """Apply every pending step. Returns the versions applied."""
        done = []
        for step in self.pending():
            self.apply_migration(step)
            done.append(step.version)

        if done:
            logger.info(f"Repository schema now at version {done[-1]} (applied {done})")
        else:
            logger.debug("Repository schema is up to date")
        return done

    def migrate_to(self, target_version: int) -> None:
        """
        Upgrade or downgrade to target_version.

        Version 0 undoes every step.
        """
        current = self.get_current_version()
        steps = get_all_migrations()

        if target_version > current:
            for step in steps:
                if current < step.version <= target_version:
                    self.apply_migration(step)
        elif target_version < current:
            for step in reversed(steps):
                if target_version < step.version <= current:
                    self.rollback_migration(step)

    def rollback(self, steps: int = 1) -> list[int]:
        """
        Undo the newest recorded steps.

        Returns the versions undone, newest first.

        Raises:
            RuntimeError: If a recorded step has no module anymore
        """
        known = {step.version: step for step in get_all_migrations()}
        newest = sorted(self.get_applied_versions(), reverse=True)[: max(0, steps)]

        undone = []
        for version in newest:
            if version not in known:
                raise RuntimeError(f"Recorded schema version {version} has no step module")
            self.rollback_migration(known[version])
            undone.append(version)
        return undone
