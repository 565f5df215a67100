"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from ..config import Config, create_default_config, load_config
from ..extractors import ExtractorRouter
from ..http_client import PageClient, PageError
from ..pipeline import ChequeWatcher
from ..reconciliation import ReconciliationService
from ..state_store import (
    Collection,
    CollectionNotFoundError,
    CollectionRepository,
    NoActiveCollectionError,
    RepositoryError,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="cheque-sync",
        description="Collect fiscal cheques from observed HTTP responses and reconcile sources",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-config command
    init_parser = subparsers.add_parser("init-config", help="Write a default config file")
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file",
    )

    # collections command
    collections_parser = subparsers.add_parser("collections", help="Manage collections")
    collections_sub = collections_parser.add_subparsers(dest="action", help="Collection action")

    collections_sub.add_parser("list", help="List collections (most recently updated first)")

    create_parser = collections_sub.add_parser("create", help="Create a collection and make it active")
    create_parser.add_argument("name", help="Collection name")
    create_parser.add_argument("--note", default="", help="Free-text note")
    create_parser.add_argument("--pin", action="store_true", help="Pin the collection")

    rename_parser = collections_sub.add_parser("rename", help="Rename a collection")
    rename_parser.add_argument("collection_id")
    rename_parser.add_argument("name")

    note_parser = collections_sub.add_parser("note", help="Replace a collection's note")
    note_parser.add_argument("collection_id")
    note_parser.add_argument("note")

    pin_parser = collections_sub.add_parser("pin", help="Pin or unpin a collection")
    pin_parser.add_argument("collection_id")
    pin_parser.add_argument("--off", action="store_true", help="Unpin instead")

    delete_parser = collections_sub.add_parser("delete", help="Delete a collection and its rows")
    delete_parser.add_argument("collection_id")

    duplicate_parser = collections_sub.add_parser("duplicate", help="Copy a collection with its rows")
    duplicate_parser.add_argument("collection_id")
    duplicate_parser.add_argument("--name", help="Name of the copy (default: '<name> (copy)')")

    use_parser = collections_sub.add_parser("use", help="Make a collection active")
    use_parser.add_argument("collection_id")

    collections_sub.add_parser("active", help="Show the active collection")

    # rows command
    rows_parser = subparsers.add_parser("rows", help="Inspect rows of a collection")
    rows_parser.set_defaults(collection=None)
    rows_sub = rows_parser.add_subparsers(dest="action", help="Row action")

    rows_list_parser = rows_sub.add_parser("list", help="List rows")
    rows_list_parser.add_argument("--collection", help="Collection ID (default: active)")
    rows_list_parser.add_argument("--limit", type=int, default=200, help="Page size (default: 200)")
    rows_list_parser.add_argument("--offset", type=int, default=0, help="Rows to skip (default: 0)")
    rows_list_parser.add_argument("--json", action="store_true", help="Print rows as JSON")

    rows_count_parser = rows_sub.add_parser("count", help="Count rows")
    rows_count_parser.add_argument("--collection", help="Collection ID (default: active)")

    rows_clear_parser = rows_sub.add_parser("clear", help="Delete all rows, keep the collection")
    rows_clear_parser.add_argument("--collection", help="Collection ID (default: active)")

    # ingest command
    ingest_parser = subparsers.add_parser("ingest", help="Extract cheques from a saved response body")
    ingest_parser.add_argument("file", type=Path, help="HTML or JSON response body")
    ingest_parser.add_argument(
        "--source",
        required=True,
        help="Source of the body (e.g. PlatformaOFD, Costviser)",
    )
    ingest_parser.add_argument("--collection", help="Collection ID (default: scoped active)")

    # capture command
    capture_parser = subparsers.add_parser(
        "capture", help="Fetch a page with the interceptor installed and save its cheques"
    )
    capture_parser.add_argument("url", help="Page URL (must match a configured route)")

    # reconcile command
    reconcile_parser = subparsers.add_parser("reconcile", help="Reconcile two sources")
    reconcile_parser.add_argument("--left", help="Left source (default from config)")
    reconcile_parser.add_argument("--right", help="Right source (default from config)")
    reconcile_parser.add_argument("--collection", help="Collection ID (default: active)")
    reconcile_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # export command
    export_parser = subparsers.add_parser("export", help="Export a collection")
    export_parser.add_argument("format", choices=["json", "csv"], help="Export format")
    export_parser.add_argument("--collection", help="Collection ID (default: active)")
    export_parser.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")

    # import command
    import_parser = subparsers.add_parser("import", help="Import a JSON export as a new collection")
    import_parser.add_argument("file", type=Path, help="JSON export file")
    import_parser.add_argument("--name", help="Name of the new collection")

    # status command
    subparsers.add_parser("status", help="Show repository status and statistics")

    return parser


def open_repository(config: Config) -> CollectionRepository:
    """Open the configured repository (runs pending migrations)."""
    return CollectionRepository(config.storage.db_path, scope=config.storage.scope)


def resolve_collection(repo: CollectionRepository, collection_id: str | None) -> Collection:
    """Get the given collection, or the active one."""
    if collection_id is None:
        return repo.require_active()
    collection = repo.get(collection_id)
    if collection is None:
        raise CollectionNotFoundError(collection_id)
    return collection


def _format_collection(collection: Collection, active_id: str | None) -> str:
    marker = "▶" if collection.id == active_id else " "
    pin = "📌" if collection.pinned else "  "
    note = f" - {collection.note}" if collection.note else ""
    return f"  {marker} {pin} [{collection.id}] {collection.name}{note} (updated {collection.updated_at})"


def cmd_init_config(config_path: Path, force: bool) -> int:
    """Write a default config file."""
    if config_path.exists() and not force:
        print(f"❌ {config_path} already exists (use --force to overwrite)")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_collections(config: Config, parsed: argparse.Namespace) -> int:
    """Collection management."""
    repo = open_repository(config)
    action = parsed.action

    if action in (None, "list"):
        collections = repo.list()
        active_id = repo.get_active_id()
        print(f"📚 {len(collections)} collection(s)")
        for collection in collections:
            print(_format_collection(collection, active_id))
        return 0

    if action == "create":
        collection = repo.create(parsed.name, note=parsed.note, pinned=parsed.pin)
        print(f"✓ Created [{collection.id}] {collection.name} (active)")
        return 0

    if action == "rename":
        collection = repo.rename(parsed.collection_id, parsed.name)
        print(f"✓ Renamed [{collection.id}] to {collection.name}")
        return 0

    if action == "note":
        collection = repo.update_note(parsed.collection_id, parsed.note)
        print(f"✓ Updated note of [{collection.id}] {collection.name}")
        return 0

    if action == "pin":
        collection = repo.set_pinned(parsed.collection_id, not parsed.off)
        state = "Pinned" if collection.pinned else "Unpinned"
        print(f"✓ {state} [{collection.id}] {collection.name}")
        return 0

    if action == "delete":
        deleted_rows = repo.delete(parsed.collection_id)
        print(f"✓ Deleted [{parsed.collection_id}] with {deleted_rows} row(s)")
        return 0

    if action == "duplicate":
        copy = repo.duplicate(parsed.collection_id, parsed.name)
        print(f"✓ Created copy [{copy.id}] {copy.name} with {repo.count_rows(copy.id)} row(s) (active)")
        return 0

    if action == "use":
        repo.set_active_id(parsed.collection_id)
        print(f"✓ Active collection: {parsed.collection_id}")
        return 0

    if action == "active":
        collection = repo.require_active()
        print(f"▶ [{collection.id}] {collection.name} ({repo.count_rows(collection.id)} rows)")
        return 0

    print(f"❌ Unknown collections action: {action}")
    return 1


def cmd_rows(config: Config, parsed: argparse.Namespace) -> int:
    """Row inspection."""
    repo = open_repository(config)
    collection = resolve_collection(repo, parsed.collection)
    action = parsed.action

    if action in (None, "count"):
        print(f"{repo.count_rows(collection.id)}")
        return 0

    if action == "list":
        rows = repo.list_rows(collection.id, limit=parsed.limit, offset=parsed.offset)
        if parsed.json:
            print(json.dumps([row.to_dict() for row in rows], ensure_ascii=False, indent=2))
            return 0
        print(f"🧾 {collection.name}: rows {parsed.offset + 1}-{parsed.offset + len(rows)}")
        for row in rows:
            cheque = row.cheque
            print(
                f"  [{row.id}] {cheque.date:<16} {cheque.amount:>14}  {cheque.payment_type:<14} "
                f"{cheque.sign:<16} {row.source or '-'}"
            )
        return 0

    if action == "clear":
        deleted = repo.clear_rows(collection.id)
        print(f"✓ Cleared {deleted} row(s) from {collection.name}")
        return 0

    print(f"❌ Unknown rows action: {action}")
    return 1


def cmd_ingest(config: Config, file: Path, source: str, collection_id: str | None) -> int:
    """Extract cheques from a saved response body."""
    router = ExtractorRouter.from_config(config.routes)
    route = next((r for r in router.routes if r.source.lower() == source.lower()), None)
    if route is None:
        known = ", ".join(r.source for r in router.routes)
        print(f"❌ Unknown source '{source}' (known: {known})")
        return 1

    if not file.exists():
        print(f"❌ File not found: {file}")
        return 1

    print(f"📥 Extracting {route.source} cheques from {file}...")
    result = route.extractor.extract(file.read_text(encoding="utf-8"))

    if not result.recognized:
        print("❌ Payload not recognized")
        for error in result.errors[:10]:
            print(f"   - {error}")
        return 1

    repo = open_repository(config)
    if collection_id is None:
        collection = repo.ensure_scoped(config.storage.default_collection_name)
    else:
        collection = resolve_collection(repo, collection_id)

    inserted = repo.add_rows(collection.id, result.cheques, source=route.source)
    print(f"✓ Extracted {result.count} cheque(s), saved {inserted} to {collection.name}")
    return 0


def cmd_capture(config: Config, url: str) -> int:
    """Fetch a page while the interceptor is installed."""
    repo = open_repository(config)
    watcher = ChequeWatcher(config, repo)

    if watcher.router.route(url) is None:
        print(f"⚠️  {url} does not match any configured route; nothing will be saved")

    print(f"🌐 Fetching {url}...")
    with watcher, PageClient.from_config(config.http) as client:
        try:
            client.get(url)
        except PageError as e:
            print(f"❌ {e}")
            return 1

    stats = watcher.listener.stats
    print(f"  Responses routed:   {stats.events_routed}")
    print(f"  Unrecognized:       {stats.unrecognized}")
    print(f"  Cheques extracted:  {stats.cheques_extracted}")
    print("✓ Capture finished")
    return 0


def cmd_reconcile(
    config: Config,
    left: str | None,
    right: str | None,
    collection_id: str | None,
    as_json: bool,
) -> int:
    """Reconcile two sources of one collection."""
    repo = open_repository(config)
    service = ReconciliationService(repo, config)
    result = service.reconcile(left, right, collection_id)

    if as_json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        return 0

    print()
    print(f"📊 Reconciliation: {result.left_source} vs {result.right_source}")
    print("=" * 40)
    for summary in (result.left_summary, result.right_summary):
        if summary is None:
            continue
        print(f"  {summary.source or '?'}")
        print(f"    Cheques: {summary.count}")
        print(f"    Card:    {summary.card}")
        print(f"    Cash:    {summary.cash}")
        print(f"    Total:   {summary.total}")
    print(f"  Matched:   {len(result.matched)}")
    print()

    if result.is_balanced:
        print("✓ All cheques matched")
        return 0

    print(f"⚠️  {len(result.diff)} cheque(s) without counterpart:")
    for cheque in result.diff:
        print(
            f"   - [{cheque.source}] {cheque.date} {cheque.amount} "
            f"{cheque.payment_type} {cheque.sign} (shift {cheque.shift})"
        )
    return 0


def cmd_export(config: Config, fmt: str, collection_id: str | None, output: Path | None) -> int:
    """Export a collection as JSON or CSV."""
    repo = open_repository(config)
    collection = resolve_collection(repo, collection_id)

    if fmt == "json":
        text = json.dumps(repo.export_json(collection.id), ensure_ascii=False, indent=2)
    else:
        text = repo.export_csv(repo.iter_rows(collection.id))

    if output is None:
        print(text)
        return 0

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    print(f"✓ Exported {collection.name} to {output}")
    return 0


def cmd_import(config: Config, file: Path, name: str | None) -> int:
    """Import a JSON export."""
    if not file.exists():
        print(f"❌ File not found: {file}")
        return 1

    try:
        payload = json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print(f"❌ Invalid JSON: {e}")
        return 1

    repo = open_repository(config)
    collection = repo.import_json(payload, name=name)
    print(f"✓ Imported [{collection.id}] {collection.name} with {repo.count_rows(collection.id)} row(s) (active)")
    return 0


def cmd_status(config: Config) -> int:
    """Show repository status."""
    repo = open_repository(config)
    stats = repo.get_stats()
    active = repo.get_active()

    print("\n📊 Repository Status")
    print("=" * 40)
    print(f"  Database:          {repo.db_path}")
    print(f"  Schema version:    {repo.schema_version()}")
    print(f"  Scope:             {stats['scope']}")
    print(f"  Collections:       {stats['collections_total']}")
    print(f"  Rows:              {stats['rows_total']}")
    for source, count in stats["rows_by_source"].items():
        print(f"    {source or '(none)':<16} {count}")
    print(f"  Active collection: {active.name if active else '-'}")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config, parsed.force)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    errors = config.validate()
    if errors:
        print("❌ Invalid configuration:")
        for error in errors:
            print(f"   - {error}")
        return 1

    # Route to command
    try:
        if parsed.command == "collections":
            return cmd_collections(config, parsed)
        elif parsed.command == "rows":
            return cmd_rows(config, parsed)
        elif parsed.command == "ingest":
            return cmd_ingest(config, parsed.file, parsed.source, parsed.collection)
        elif parsed.command == "capture":
            return cmd_capture(config, parsed.url)
        elif parsed.command == "reconcile":
            return cmd_reconcile(config, parsed.left, parsed.right, parsed.collection, parsed.json)
        elif parsed.command == "export":
            return cmd_export(config, parsed.format, parsed.collection, parsed.output)
        elif parsed.command == "import":
            return cmd_import(config, parsed.file, parsed.name)
        elif parsed.command == "status":
            return cmd_status(config)
        else:
            parser.print_help()
            return 1
    except NoActiveCollectionError as e:
        print(f"❌ {e}")
        return 1
    except CollectionNotFoundError as e:
        print(f"❌ {e}")
        return 1
    except RepositoryError as e:
        print(f"❌ Repository error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
