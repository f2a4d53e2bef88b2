from __future__ import annotations

import logging
import sqlite3

import pytest

from repstack.errors import MigrationError
from repstack.migrations import SCHEMA_VERSIONS, MigrationRunner, SchemaVersion, get_user_version
from repstack.repository import EntityStore
from repstack.schema import KEY_INTEGER, KEY_TEXT, TableDef, Transaction, table_key_type, user_table_names
from repstack.storage import Database

FINAL_TABLES = {"user_profiles", "exercises", "workouts", "training_sessions", "mesocycles"}


def _legacy_store(path, rows: dict[str, list[dict[str, object]]]) -> None:
    """Create a store at schema version 1 holding integer-keyed legacy rows."""
    conn = sqlite3.connect(str(path), isolation_level=None)
    try:
        MigrationRunner(SCHEMA_VERSIONS[:1]).run(conn)
        tx = Transaction(conn)
        for table, docs in rows.items():
            for doc in docs:
                tx.table(table).add(doc)
    finally:
        conn.close()


def test_fresh_store_is_created_at_latest_version(tmp_path) -> None:
    conn = sqlite3.connect(str(tmp_path / "fresh.db"), isolation_level=None)
    try:
        applied = MigrationRunner().run(conn)
        assert applied == []
        assert get_user_version(conn) == SCHEMA_VERSIONS[-1].version
        assert set(user_table_names(conn)) == FINAL_TABLES
        for table in FINAL_TABLES:
            assert table_key_type(conn, table) == KEY_TEXT
    finally:
        conn.close()


def test_final_schema_folds_deletions() -> None:
    tables = MigrationRunner().final_schema()
    assert set(tables) == FINAL_TABLES
    assert tables["exercises"].key_type == KEY_TEXT


def test_no_version_creates_a_shadow_and_drops_its_source() -> None:
    for version in SCHEMA_VERSIONS:
        created = {name for name, definition in version.tables.items() if definition is not None}
        dropped = {name for name, definition in version.tables.items() if definition is None}
        for name in created:
            if name.endswith("_rekey"):
                assert name[: -len("_rekey")] not in dropped


def test_legacy_store_is_rekeyed_and_references_remapped(tmp_path, caplog) -> None:
    path = tmp_path / "legacy.db"
    _legacy_store(
        path,
        {
            "users": [{"name": "Alex", "trainingExperience": "intermediate", "createdAt": "2023-01-01T09:00:00Z"}],
            "exercises": [
                {"name": "Bench Press", "category": "barbell", "muscleGroups": ["chest", "triceps"], "isCustom": False},
                {"name": "Row", "category": "cable", "muscleGroups": ["back"]},
            ],
            "mesocycles": [
                {
                    "name": "Winter",
                    "startDate": "2023-01-02T00:00:00",
                    "endDate": "2023-01-30T00:00:00",
                    "durationWeeks": 4,
                    "status": "active",
                },
                {
                    "name": "Duplicate",
                    "startDate": "2023-02-06T00:00:00",
                    "endDate": "2023-03-06T00:00:00",
                    "status": "active",
                },
            ],
            "workouts": [
                {
                    "date": "2023-01-10T18:00:00",
                    "completed": True,
                    "mesocycleId": 1,
                    "exercises": [
                        {
                            "exerciseId": 1,
                            "sets": [
                                {"exerciseId": 1, "setNumber": 1, "targetReps": 8, "actualReps": 8,
                                 "weight": 80, "completed": True},
                            ],
                        },
                        {"exerciseId": 2, "sets": [{"targetReps": 12, "weight": 40, "completed": True}]},
                    ],
                }
            ],
        },
    )

    with caplog.at_level(logging.INFO):
        db = Database.open(path)
    store = EntityStore(db)
    try:
        assert db.schema_version == SCHEMA_VERSIONS[-1].version
        assert set(user_table_names(db._conn)) == FINAL_TABLES

        exercises = {exercise.name: exercise for exercise in store.list_exercises()}
        assert set(exercises) == {"Bench Press", "Row"}
        assert exercises["Bench Press"].muscle_groups == ["chest", "triceps"]
        assert exercises["Bench Press"].is_custom is False
        assert len(exercises["Row"].id) == 36

        [workout] = store.list_workouts()
        assert [entry.exercise_id for entry in workout.exercises] == [
            exercises["Bench Press"].id,
            exercises["Row"].id,
        ]
        assert workout.exercises[0].sets[0].exercise_id == exercises["Bench Press"].id
        assert workout.exercises[1].sets[0].exercise_id == exercises["Row"].id
        assert workout.exercises[1].sets[0].set_number == 1

        mesocycles = {mesocycle.name: mesocycle for mesocycle in store.list_mesocycles()}
        assert workout.mesocycle_id == mesocycles["Winter"].id
        assert mesocycles["Winter"].status == "active"
        assert mesocycles["Duplicate"].status == "planned"

        [profile] = store.list_user_profiles()
        assert profile.name == "Alex"
        assert profile.experience_level == "intermediate"
    finally:
        store.close()

    assert "Demoting extra active mesocycle" in caplog.text
    assert "Applied schema version 5." in caplog.text


def test_upgrade_tolerates_missing_legacy_tables(tmp_path) -> None:
    path = tmp_path / "partial.db"
    _legacy_store(path, {"exercises": [{"name": "Squat", "category": "barbell", "muscleGroups": ["quads"]}]})
    conn = sqlite3.connect(str(path), isolation_level=None)
    conn.execute("DROP TABLE users")
    conn.execute("DROP TABLE workouts")
    conn.close()

    with EntityStore.open(path) as store:
        assert [exercise.name for exercise in store.list_exercises()] == ["Squat"]
        assert store.list_workouts() == []
        assert store.list_user_profiles() == []


def test_upgrade_runs_exactly_once(tmp_path) -> None:
    calls: list[int] = []
    versions = (
        SchemaVersion(1, {"items": TableDef(KEY_TEXT, ("name",))}),
        SchemaVersion(2, {"extras": TableDef(KEY_TEXT)}, lambda tx: calls.append(tx.table("items").count())),
    )
    path = tmp_path / "once.db"

    Database.open(path, versions=versions[:1]).close()
    Database.open(path, versions=versions).close()
    Database.open(path, versions=versions).close()
    assert calls == [0]

    fresh_calls_before = len(calls)
    Database.open(tmp_path / "fresh.db", versions=versions).close()
    assert len(calls) == fresh_calls_before


def test_missing_index_columns_are_added_on_open(tmp_path) -> None:
    path = tmp_path / "columns.db"
    Database.open(path, versions=(SchemaVersion(1, {"items": TableDef(KEY_TEXT, ("name",))}),)).close()
    conn = sqlite3.connect(str(path), isolation_level=None)
    conn.execute("""INSERT INTO items (id, name, doc) VALUES ('a', 'x', '{"id": "a", "name": "x", "kind": "k"}')""")
    conn.close()

    db = Database.open(path, versions=(SchemaVersion(1, {"items": TableDef(KEY_TEXT, ("name", "kind"))}),))
    try:
        with db.read() as tx:
            assert tx.table("items").where("kind", "k")[0]["id"] == "a"
    finally:
        db.close()


def _illegal_versions() -> tuple[SchemaVersion, ...]:
    return (
        SchemaVersion(1, {"items": TableDef(KEY_INTEGER, ("name",))}),
        SchemaVersion(2, {"items": TableDef(KEY_TEXT, ("name",))}),
    )


def _store_with_integer_items(path) -> None:
    db = Database.open(path, versions=_illegal_versions()[:1])
    with db.transaction() as tx:
        tx.table("items").add({"name": "legacy"})
    db.close()


def test_primary_key_type_change_raises_when_reset_disabled(tmp_path) -> None:
    path = tmp_path / "illegal.db"
    _store_with_integer_items(path)
    with pytest.raises(MigrationError):
        Database.open(path, versions=_illegal_versions(), reset_on_error=False)

    # The failed upgrade rolled back; the stored data is untouched.
    conn = sqlite3.connect(str(path))
    assert get_user_version(conn) == 1
    assert conn.execute("SELECT COUNT(*) FROM items").fetchone()[0] == 1
    conn.close()


def test_primary_key_type_change_resets_store_and_logs(tmp_path, caplog) -> None:
    path = tmp_path / "illegal.db"
    _store_with_integer_items(path)

    with caplog.at_level(logging.ERROR, logger="repstack.storage"):
        db = Database.open(path, versions=_illegal_versions())
    try:
        assert db.schema_version == 2
        assert table_key_type(db._conn, "items") == KEY_TEXT
        with db.read() as tx:
            assert tx.table("items").count() == 0
    finally:
        db.close()

    records = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert records, "Expected the destructive reset to be logged"
    assert "deleting the store" in records[0].getMessage()


def test_reset_is_controlled_by_config(tmp_path, monkeypatch) -> None:
    from repstack.config import get_config

    config_file = tmp_path / "repstack.toml"
    config_file.write_text("[repstack]\nreset_on_migration_error = false\n", encoding="utf-8")
    monkeypatch.setenv("REPSTACK_CONFIG", str(config_file))
    get_config.cache_clear()

    path = tmp_path / "illegal.db"
    _store_with_integer_items(path)
    with pytest.raises(MigrationError):
        Database.open(path, versions=_illegal_versions())


def test_store_newer_than_code_is_rejected(tmp_path) -> None:
    path = tmp_path / "future.db"
    Database.open(path).close()
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA user_version = 99")
    conn.commit()
    conn.close()

    with pytest.raises(MigrationError):
        Database.open(path, reset_on_error=False)
