"""Tests for the collection repository."""

import json
from datetime import datetime, timezone
from itertools import chain, repeat

import pytest

from cheque_sync.extractors.table_extractor import parse_cheques
from cheque_sync.state_store import (
    CollectionNotFoundError,
    CollectionRepository,
    NoActiveCollectionError,
    RepositoryError,
)
from cheque_sync.state_store import sqlite_store
from conftest import make_cheque


class TestRepositoryInit:
    """Tests for repository setup."""

    def test_init_creates_db(self, temp_db):
        CollectionRepository(temp_db, scope="test")
        assert temp_db.exists()

    def test_init_creates_tables(self, repo):
        conn = repo._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = {t[0] for t in tables}

            assert {"collections", "collection_rows", "kv", "migrations"} <= table_names
            assert "selections" not in table_names
            assert "selection_rows" not in table_names
        finally:
            conn.close()

    def test_schema_version(self, repo):
        assert repo.schema_version() == 3

    def test_reopen_keeps_data(self, repo, temp_db):
        collection = repo.create("Октябрь")

        reopened = CollectionRepository(temp_db, scope="test")

        assert reopened.get(collection.id).name == "Октябрь"

    def test_scope_from_environment(self, temp_db, monkeypatch):
        monkeypatch.setenv("CHEQUE_SYNC_SCOPE", "plugin-7")
        assert CollectionRepository(temp_db).scope == "plugin-7"

    def test_default_scope(self, temp_db):
        assert CollectionRepository(temp_db).scope == "default"


class TestCollectionOperations:
    """Tests for collection CRUD."""

    def test_create_makes_active(self, repo):
        collection = repo.create("Октябрь", note="касса 1")

        assert collection.name == "Октябрь"
        assert collection.note == "касса 1"
        assert collection.pinned is False
        assert collection.created_at == collection.updated_at
        assert repo.get_active_id() == collection.id

    def test_blank_name_becomes_untitled(self, repo):
        assert repo.create("   ").name == "Untitled"

    def test_rename(self, repo):
        collection = repo.create("old")

        renamed = repo.rename(collection.id, "new")

        assert renamed.name == "new"
        assert repo.get(collection.id).name == "new"
        assert renamed.updated_at >= collection.updated_at

    def test_rename_blank(self, repo):
        collection = repo.create("old")
        assert repo.rename(collection.id, "").name == "Untitled"

    def test_update_note_and_pin(self, repo):
        collection = repo.create("c")

        repo.update_note(collection.id, "сверка за октябрь")
        pinned = repo.set_pinned(collection.id, True)

        assert pinned.pinned is True
        assert pinned.note == "сверка за октябрь"
        assert repo.set_pinned(collection.id, False).pinned is False

    def test_update_unknown_collection(self, repo):
        with pytest.raises(CollectionNotFoundError):
            repo.rename("missing", "x")
        with pytest.raises(CollectionNotFoundError):
            repo.set_pinned("missing", True)

    def test_list_most_recent_first(self, repo):
        first = repo.create("first")
        second = repo.create("second")
        repo.add_rows(first.id, [make_cheque()])

        names = [c.name for c in repo.list()]

        assert names[0] == "first"
        assert set(names) == {"first", "second"}
        assert second.id in [c.id for c in repo.list()]

    def test_list_orders_whole_second_timestamps(self, repo, monkeypatch):
        """A timestamp on an exact second still sorts before a later one."""
        moments = [
            datetime(2025, 10, 28, 10, 0, 0, tzinfo=timezone.utc),
            datetime(2025, 10, 28, 10, 0, 0, 500000, tzinfo=timezone.utc),
        ]
        clock = chain(moments, repeat(moments[-1]))

        class FrozenDatetime(datetime):
            @classmethod
            def now(cls, tz=None):
                return next(clock)

        monkeypatch.setattr(sqlite_store, "datetime", FrozenDatetime)
        older = repo.create("older")
        repo.create("newer")

        assert older.updated_at == "2025-10-28T10:00:00.000000Z"
        assert [c.name for c in repo.list()] == ["newer", "older"]

    def test_find_by_name(self, repo):
        collection = repo.create("Сентябрь")
        assert repo.find_by_name("Сентябрь").id == collection.id
        assert repo.find_by_name("Август") is None

    def test_get_missing(self, repo):
        assert repo.get("missing") is None

    def test_delete_cascades_rows(self, repo):
        """Deleting a collection removes its rows too."""
        collection = repo.create("c")
        repo.add_rows(collection.id, [make_cheque(id="1"), make_cheque(id="2")])

        deleted = repo.delete(collection.id)

        assert deleted == 2
        assert repo.get(collection.id) is None
        assert repo.count_rows(collection.id) == 0

    def test_delete_clears_active_pointer(self, repo):
        collection = repo.create("c")

        repo.delete(collection.id)

        assert repo.get_active_id() is None
        with pytest.raises(NoActiveCollectionError):
            repo.require_active()

    def test_delete_other_keeps_active(self, repo):
        other = repo.create("other")
        active = repo.create("active")

        repo.delete(other.id)

        assert repo.get_active_id() == active.id

    def test_delete_unknown(self, repo):
        with pytest.raises(CollectionNotFoundError):
            repo.delete("missing")

    def test_duplicate_copies_rows(self, repo):
        source = repo.create("Октябрь", note="n")
        repo.add_rows(source.id, [make_cheque(id="1"), make_cheque(id="2")], source="PlatformaOFD")

        copy = repo.duplicate(source.id)

        assert copy.id != source.id
        assert copy.name == "Октябрь (copy)"
        assert copy.note == "n"
        assert repo.get_active_id() == copy.id
        rows = repo.list_rows(copy.id)
        assert [row.key for row in rows] == ["1", "2"]
        assert all(row.source == "PlatformaOFD" for row in rows)
        assert repo.count_rows(source.id) == 2

    def test_duplicate_with_name(self, repo):
        source = repo.create("a")
        assert repo.duplicate(source.id, "b").name == "b"


class TestRowOperations:
    """Tests for row append, paging and clearing."""

    def test_add_rows(self, repo):
        collection = repo.create("c")

        inserted = repo.add_rows(
            collection.id,
            [make_cheque(id="1"), make_cheque(id="2")],
            source="PlatformaOFD",
            batch="b1",
        )

        assert inserted == 2
        rows = repo.list_rows(collection.id)
        assert [row.key for row in rows] == ["1", "2"]
        assert rows[0].source == "PlatformaOFD"
        assert rows[0].batch == "b1"
        assert rows[0].data["amount"] == "1 234,56 ₽"
        assert rows[0].cheque == make_cheque(id="1")

    def test_add_rows_bumps_updated_at(self, repo):
        collection = repo.create("c")

        repo.add_rows(collection.id, [make_cheque()])

        assert repo.get(collection.id).updated_at >= collection.updated_at

    def test_batch_dedupe_last_wins(self, repo):
        """Within one batch the last row for a key wins."""
        collection = repo.create("c")

        inserted = repo.add_rows(
            collection.id,
            [make_cheque(id="1", amount="10"), make_cheque(id="2"), make_cheque(id="1", amount="20")],
        )

        assert inserted == 2
        rows = repo.list_rows(collection.id)
        assert [(row.key, row.data["amount"]) for row in rows] == [
            ("1", "20"),
            ("2", "1 234,56 ₽"),
        ]

    def test_duplicates_across_batches_kept(self, repo):
        """The same record ingested twice is stored twice."""
        collection = repo.create("c")

        repo.add_rows(collection.id, [make_cheque(id="1")])
        repo.add_rows(collection.id, [make_cheque(id="1")])

        assert repo.count_rows(collection.id) == 2

    def test_batch_token_shared(self, repo):
        collection = repo.create("c")

        repo.add_rows(collection.id, [make_cheque(id="1"), make_cheque(id="2")])
        repo.add_rows(collection.id, [make_cheque(id="3")])

        batches = [row.batch for row in repo.list_rows(collection.id)]
        assert batches[0] == batches[1]
        assert batches[0] != batches[2]

    def test_rows_without_key(self, repo):
        collection = repo.create("c")

        repo.add_rows(collection.id, [{"amount": "1"}, {"amount": "1"}])

        rows = repo.list_rows(collection.id)
        assert [row.key for row in rows] == [None, None]

    def test_empty_batch_changes_nothing(self, repo):
        collection = repo.create("c")

        assert repo.add_rows(collection.id, []) == 0
        assert repo.get(collection.id).updated_at == collection.updated_at

    def test_add_rows_unknown_collection(self, repo):
        with pytest.raises(CollectionNotFoundError):
            repo.add_rows("missing", [make_cheque()])

    def test_pagination(self, repo):
        collection = repo.create("c")
        repo.add_rows(collection.id, [make_cheque(id=str(i)) for i in range(7)])

        page = repo.list_rows(collection.id, limit=3, offset=3)

        assert [row.key for row in page] == ["3", "4", "5"]
        assert [row.key for row in repo.iter_rows(collection.id, page_size=2)] == [
            str(i) for i in range(7)
        ]

    def test_iter_rows_rejects_bad_page_size(self, repo):
        collection = repo.create("c")
        repo.add_rows(collection.id, [make_cheque()])

        with pytest.raises(ValueError):
            list(repo.iter_rows(collection.id, page_size=0))

    def test_table_cheques_survive_storage(self, repo, sample_html):
        """Extracted cheques come back field for field."""
        cheques = parse_cheques(sample_html)
        collection = repo.create("c")

        repo.add_rows(collection.id, cheques, source="PlatformaOFD")

        assert len(cheques) == 2
        assert [row.cheque for row in repo.list_rows(collection.id)] == cheques

    def test_count_unknown_collection(self, repo):
        assert repo.count_rows("missing") == 0

    def test_clear_rows(self, repo):
        collection = repo.create("c")
        repo.add_rows(collection.id, [make_cheque(id="1"), make_cheque(id="2")])

        assert repo.clear_rows(collection.id) == 2
        assert repo.count_rows(collection.id) == 0
        assert repo.get(collection.id) is not None

    def test_sources(self, repo):
        collection = repo.create("c")
        repo.add_rows(collection.id, [make_cheque(id="1")], source="PlatformaOFD")
        repo.add_rows(collection.id, [make_cheque(id="2")], source="Costviser")
        repo.add_rows(collection.id, [make_cheque(id="3")])

        assert repo.sources(collection.id) == ["Costviser", "PlatformaOFD"]


class TestActiveCollection:
    """Tests for the scoped active pointer."""

    def test_no_active(self, repo):
        assert repo.get_active() is None
        with pytest.raises(NoActiveCollectionError) as exc_info:
            repo.require_active()
        assert "No active collection" in str(exc_info.value)

    def test_set_active(self, repo):
        first = repo.create("first")
        repo.create("second")

        repo.set_active_id(first.id)

        assert repo.require_active().id == first.id

    def test_set_active_unknown(self, repo):
        with pytest.raises(CollectionNotFoundError):
            repo.set_active_id("missing")

    def test_clear_active(self, repo):
        repo.create("c")
        repo.set_active_id(None)
        assert repo.get_active_id() is None

    def test_scopes_are_isolated(self, temp_db):
        """Two scopes sharing a database keep separate pointers."""
        first = CollectionRepository(temp_db, scope="a")
        second = CollectionRepository(temp_db, scope="b")

        collection = first.create("only in a")

        assert first.get_active_id() == collection.id
        assert second.get_active_id() is None
        assert second.get(collection.id) is not None

    def test_legacy_pointer_migrated(self, repo):
        collection = repo.create("c")
        conn = repo._get_connection()
        try:
            conn.execute("DELETE FROM kv")
            conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?)",
                ("activeSelectionId", json.dumps(collection.id)),
            )
            conn.commit()
        finally:
            conn.close()

        assert repo.get_active_id() == collection.id

        conn = repo._get_connection()
        try:
            keys = {row[0] for row in conn.execute("SELECT key FROM kv").fetchall()}
        finally:
            conn.close()
        assert keys == {"activeCollectionId::test"}

    def test_stale_pointer_cleared(self, repo):
        collection = repo.create("c")
        conn = repo._get_connection()
        try:
            conn.execute("PRAGMA foreign_keys = OFF")
            conn.execute("DELETE FROM collections WHERE id = ?", (collection.id,))
            conn.commit()
        finally:
            conn.close()

        assert repo.get_active() is None
        assert repo.get_active_id() is None


class TestEnsureScoped:
    """Tests for resolving the collection new rows go to."""

    def test_creates_scoped_collection(self, repo):
        collection = repo.ensure_scoped("Receipts")

        assert collection.name == "Receipts [test]"
        assert repo.get_active_id() == collection.id

    def test_idempotent(self, repo):
        first = repo.ensure_scoped("Receipts")
        second = repo.ensure_scoped("Receipts")

        assert first.id == second.id
        assert len(repo.list()) == 1

    def test_active_collection_wins(self, repo):
        chosen = repo.create("Моя выборка")
        assert repo.ensure_scoped("Receipts").id == chosen.id

    def test_reuses_existing_scoped_collection(self, repo):
        scoped = repo.ensure_scoped("Receipts")
        repo.create("other")

        result = repo.ensure_scoped("Receipts", prefer_active=False)

        assert result.id == scoped.id
        assert repo.get_active_id() == scoped.id

    def test_recreated_after_delete(self, repo):
        scoped = repo.ensure_scoped("Receipts")
        repo.delete(scoped.id)

        again = repo.ensure_scoped("Receipts")

        assert again.id != scoped.id
        assert again.name == "Receipts [test]"


class TestExportImport:
    """Tests for JSON and CSV exchange."""

    def test_export_json(self, repo):
        collection = repo.create("Октябрь")
        repo.add_rows(collection.id, [make_cheque(id="1")], source="PlatformaOFD")

        payload = repo.export_json(collection.id)

        assert payload["collection"]["name"] == "Октябрь"
        assert len(payload["rows"]) == 1
        assert payload["rows"][0]["key"] == "1"
        assert payload["rows"][0]["data"]["id"] == "1"
        json.dumps(payload, ensure_ascii=False)

    def test_export_unknown(self, repo):
        with pytest.raises(CollectionNotFoundError):
            repo.export_json("missing")

    def test_import_restores_rows(self, repo):
        collection = repo.create("Октябрь", note="n")
        repo.add_rows(collection.id, [make_cheque(id="1"), make_cheque(id="2")], source="Costviser")
        payload = json.loads(json.dumps(repo.export_json(collection.id)))

        imported = repo.import_json(payload)

        assert imported.id != collection.id
        assert imported.name == "Октябрь"
        assert imported.note == "n"
        assert repo.get_active_id() == imported.id
        original_rows = repo.list_rows(collection.id)
        imported_rows = repo.list_rows(imported.id)
        assert [(r.key, r.data, r.ts, r.source, r.batch) for r in imported_rows] == [
            (r.key, r.data, r.ts, r.source, r.batch) for r in original_rows
        ]

    def test_import_with_name(self, repo):
        imported = repo.import_json({"collection": {"name": "x"}, "rows": []}, name="Импорт")
        assert imported.name == "Импорт"

    def test_import_legacy_layout(self, repo):
        payload = {
            "selection": {"name": "Старая выборка"},
            "rows": [{"data": {"id": "42", "amount": "5 ₽"}}],
        }

        imported = repo.import_json(payload)

        assert imported.name == "Старая выборка"
        rows = repo.list_rows(imported.id)
        assert rows[0].key == "42"
        assert rows[0].ts

    def test_import_without_name(self, repo):
        assert repo.import_json({"rows": []}).name == "Imported"

    def test_import_rejects_bad_rows(self, repo):
        with pytest.raises(RepositoryError):
            repo.import_json({"collection": {}, "rows": [{"key": "1"}]})
        with pytest.raises(RepositoryError):
            repo.import_json({"collection": {}, "rows": "nope"})
        with pytest.raises(RepositoryError):
            repo.import_json(["not", "an", "object"])
        assert repo.list() == []

    def test_export_csv(self, repo):
        collection = repo.create("c")
        repo.add_rows(collection.id, [{"id": "1", "amount": "10,5"}, {"id": "2", "note": "a, b"}])
        rows = repo.list_rows(collection.id)

        text = repo.export_csv(rows)

        lines = text.split("\n")
        assert lines[0] == "id,ts,key,id,amount,note"
        assert lines[1] == f'{rows[0].id},{rows[0].ts},1,1,"10,5",'
        assert lines[2] == f'{rows[1].id},{rows[1].ts},2,2,,"a, b"'

    def test_export_csv_empty(self, repo):
        assert repo.export_csv([]) == ""


class TestStats:
    """Tests for repository statistics."""

    def test_get_stats(self, repo):
        collection = repo.create("c")
        repo.add_rows(collection.id, [make_cheque(id="1")], source="PlatformaOFD")
        repo.add_rows(collection.id, [make_cheque(id="2"), make_cheque(id="3")], source="Costviser")
        repo.add_rows(collection.id, [make_cheque(id="4")])

        stats = repo.get_stats()

        assert stats["scope"] == "test"
        assert stats["collections_total"] == 1
        assert stats["rows_total"] == 4
        assert stats["rows_by_source"] == {"": 1, "Costviser": 2, "PlatformaOFD": 1}
        assert stats["active_collection_id"] == collection.id
