from __future__ import annotations

import pytest

from repstack.errors import MissingTableError
from repstack.migrations import SchemaVersion
from repstack.schema import KEY_TEXT, TableDef
from repstack.storage import Database, LiveQuery, delete_store

VERSIONS = (
    SchemaVersion(
        1,
        {
            "items": TableDef(KEY_TEXT, ("name", "kind")),
            "others": TableDef(KEY_TEXT),
        },
    ),
)


@pytest.fixture
def db(tmp_path):
    database = Database.open(tmp_path / "items.db", versions=VERSIONS)
    yield database
    database.close()


def test_database_file_respects_env_override(tmp_path, monkeypatch) -> None:
    from repstack.storage import _database_file

    target = tmp_path / "nested" / "custom.db"
    monkeypatch.setenv("REPSTACK_DB_FILE", str(target))
    assert _database_file() == target
    assert target.parent.exists()


def test_nested_transaction_rolls_back_as_a_whole(db) -> None:
    with pytest.raises(RuntimeError):
        with db.transaction() as outer:
            outer.table("items").add({"id": "a", "name": "first"})
            with db.transaction() as inner:
                assert inner is outer
                inner.table("items").add({"id": "b", "name": "second"})
            raise RuntimeError("abort")

    with db.read() as tx:
        assert tx.table("items").count() == 0


def test_table_handle_queries(db) -> None:
    with db.transaction() as tx:
        items = tx.table("items")
        items.bulk_add(
            [
                {"id": "1", "name": "b", "kind": "x"},
                {"id": "2", "name": "a", "kind": "y"},
                {"id": "3", "name": "c", "kind": "x"},
            ]
        )
        assert [doc["id"] for doc in items.to_list(order_by="name")] == ["2", "1", "3"]
        assert [doc["id"] for doc in items.where("kind", "x", order_by="name", descending=True)] == ["3", "1"]
        assert [doc["id"] for doc in items.between("name", "a", "b")] == ["2", "1"]
        assert items.first("kind", "y")["name"] == "a"
        assert items.delete_where("kind", "x") == 2
        assert items.delete("missing") is False
        with pytest.raises(ValueError):
            items.where("unknown", 1)
        with pytest.raises(MissingTableError):
            tx.table("nope")


def test_subscribers_notified_after_commit_only(db) -> None:
    seen: list[set[str]] = []
    unsubscribe = db.subscribe(["items"], seen.append)

    with db.transaction() as tx:
        tx.table("items").add({"id": "a", "name": "first"})
        assert seen == []
    assert seen == [{"items"}]

    with db.transaction() as tx:
        tx.table("others").add({"id": "o"})
    assert len(seen) == 1

    with pytest.raises(RuntimeError):
        with db.transaction() as tx:
            tx.table("items").add({"id": "b", "name": "second"})
            raise RuntimeError("abort")
    assert len(seen) == 1

    unsubscribe()
    with db.transaction() as tx:
        tx.table("items").clear()
    assert len(seen) == 1


def test_live_query_tracks_writes(db) -> None:
    def count_items() -> int:
        with db.read() as tx:
            return tx.table("items").count()

    live = LiveQuery(db, ["items"], count_items)
    values: list[int] = []
    live.add_listener(values.append)
    assert live.value == 0

    with db.transaction() as tx:
        tx.table("items").add({"id": "a", "name": "first"})
    assert live.value == 1
    assert values == [1]

    live.close()
    with db.transaction() as tx:
        tx.table("items").add({"id": "b", "name": "second"})
    assert live.value == 1


def test_delete_store_removes_side_files(tmp_path) -> None:
    target = tmp_path / "gone.db"
    target.write_text("x", encoding="utf-8")
    journal = tmp_path / "gone.db-journal"
    journal.write_text("x", encoding="utf-8")
    delete_store(target)
    assert not target.exists()
    assert not journal.exists()
