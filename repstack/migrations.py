"""
Versioned schema evolution for the on-device store.

Each `SchemaVersion` declares the tables it creates (or deletes, with `None`)
and an optional upgrade transform. A primary key's type cannot change in
place, so string-keyed collections are introduced through shadow tables:

1. legacy integer-keyed `users`, `exercises`, `workouts`, `mesocycles`
2. string-keyed `user_profiles` and `training_sessions`, plus `*_rekey`
   shadow copies of the legacy rows with fresh identifiers
3. legacy tables dropped
4. string-keyed `exercises`, `workouts`, `mesocycles` filled from the shadows
5. shadow tables dropped

The store version lives in `PRAGMA user_version`.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .errors import MigrationError, MissingTableError
from .models import (
    EXERCISE_CATEGORIES,
    EXPERIENCE_LEVELS,
    MESOCYCLE_STATUSES,
    MUSCLE_GROUPS,
    TRAINING_SPLITS,
    UserPreferences,
    new_id,
    parse_datetime,
    to_local_naive,
    utc_now,
)
from .schema import (
    KEY_INTEGER,
    KEY_TEXT,
    TableDef,
    Transaction,
    table_columns,
    table_exists,
    table_key_type,
    user_table_names,
)

LOGGER = logging.getLogger(__name__)

UpgradeFn = Callable[[Transaction], None]


@dataclass(frozen=True)
class SchemaVersion:
    version: int
    tables: Mapping[str, Optional[TableDef]] = field(default_factory=dict)
    upgrade: Optional[UpgradeFn] = None


def _pick(doc: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present value among snake_case and legacy camelCase keys."""
    for key in keys:
        value = doc.get(key)
        if value is not None:
            return value
    return default


def _legacy_rows(tx: Transaction, table: str) -> List[Dict[str, Any]]:
    try:
        return tx.table(table).to_list()
    except MissingTableError:
        LOGGER.debug("Table %s absent; nothing to migrate.", table)
        return []


def _timestamp(value: Any) -> str:
    try:
        return parse_datetime(value).isoformat()
    except ValueError:
        return utc_now().isoformat()


def _domain_timestamp(value: Any, fallback: Any = None) -> str:
    for candidate in (value, fallback):
        if candidate is None:
            continue
        try:
            return to_local_naive(parse_datetime(candidate)).isoformat()
        except ValueError:
            continue
    return datetime.now().isoformat()


def _int_in_range(value: Any, default: int, low: int, high: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return min(max(number, low), high)


def _upgrade_to_v2(tx: Transaction) -> None:
    for user in _legacy_rows(tx, "users"):
        experience = _pick(user, "experience_level", "trainingExperience")
        created = _timestamp(_pick(user, "created_at", "createdAt"))
        tx.table("user_profiles").add(
            {
                "id": new_id(),
                "name": _pick(user, "name", default="User"),
                "experience_level": experience if experience in EXPERIENCE_LEVELS else "beginner",
                "preferences": UserPreferences().to_dict(),
                "created_at": created,
                "updated_at": _timestamp(_pick(user, "updated_at", "updatedAt", default=created)),
            }
        )

    exercise_ids: dict[str, str] = {}
    for legacy in _legacy_rows(tx, "exercises"):
        new_key = new_id()
        exercise_ids[str(legacy.get("id"))] = new_key
        category = legacy.get("category")
        groups = _pick(legacy, "muscle_groups", "muscleGroups", default=[])
        created = _timestamp(_pick(legacy, "created_at", "createdAt"))
        tx.table("exercises_rekey").add(
            {
                "id": new_key,
                "legacy_id": legacy.get("id"),
                "name": legacy.get("name") or "Unnamed Exercise",
                "category": category if category in EXERCISE_CATEGORIES else "other",
                "muscle_groups": [group for group in groups if group in MUSCLE_GROUPS],
                "equipment": legacy.get("equipment"),
                "notes": legacy.get("notes"),
                "is_custom": bool(_pick(legacy, "is_custom", "isCustom", default=True)),
                "created_at": created,
                "updated_at": created,
            }
        )

    mesocycle_ids: dict[str, str] = {}
    active_seen = False
    for legacy in _legacy_rows(tx, "mesocycles"):
        new_key = new_id()
        mesocycle_ids[str(legacy.get("id"))] = new_key
        start = _domain_timestamp(_pick(legacy, "start_date", "startDate"))
        end = _domain_timestamp(_pick(legacy, "end_date", "endDate"), start)
        span_days = (datetime.fromisoformat(end) - datetime.fromisoformat(start)).days
        duration = _int_in_range(
            _pick(legacy, "duration_weeks", "durationWeeks", default=round(span_days / 7)), 4, 4, 6
        )
        status = legacy.get("status") if legacy.get("status") in MESOCYCLE_STATUSES else "planned"
        if status == "active":
            if active_seen:
                LOGGER.warning("Demoting extra active mesocycle %s to planned.", legacy.get("id"))
                status = "planned"
            active_seen = True
        split = _pick(legacy, "training_split", "trainingSplit")
        created = _timestamp(_pick(legacy, "created_at", "createdAt"))
        tx.table("mesocycles_rekey").add(
            {
                "id": new_key,
                "legacy_id": legacy.get("id"),
                "name": legacy.get("name") or "Mesocycle",
                "start_date": start,
                "end_date": end,
                "duration_weeks": duration,
                "current_week": _int_in_range(
                    _pick(legacy, "current_week", "currentWeek", "weekNumber"), 1, 1, duration
                ),
                "deload_week": _int_in_range(
                    _pick(legacy, "deload_week", "deloadWeek"), duration, 1, duration
                ),
                "training_split": split if split in TRAINING_SPLITS else "custom",
                "split_days": [],
                "status": status,
                "notes": legacy.get("notes"),
                "created_at": created,
                "updated_at": created,
            }
        )

    for legacy in _legacy_rows(tx, "workouts"):
        entries = []
        for entry in legacy.get("exercises") or []:
            exercise_id = str(_pick(entry, "exercise_id", "exerciseId", default=""))
            exercise_id = exercise_ids.get(exercise_id, exercise_id)
            sets = []
            for number, item in enumerate(entry.get("sets") or [], start=1):
                set_exercise = str(_pick(item, "exercise_id", "exerciseId", default=exercise_id))
                sets.append(
                    {
                        "id": new_id(),
                        "exercise_id": exercise_ids.get(set_exercise, set_exercise),
                        "set_number": _pick(item, "set_number", "setNumber", default=number),
                        "target_reps": _pick(item, "target_reps", "targetReps", default=10),
                        "actual_reps": _pick(item, "actual_reps", "actualReps"),
                        "weight": item.get("weight", 0),
                        "rir": item.get("rir"),
                        "completed": bool(item.get("completed", False)),
                    }
                )
            entries.append({"exercise_id": exercise_id, "sets": sets, "notes": entry.get("notes")})

        created_raw = _pick(legacy, "created_at", "createdAt")
        created = _timestamp(created_raw)
        mesocycle_ref = _pick(legacy, "mesocycle_id", "mesocycleId")
        tx.table("workouts_rekey").add(
            {
                "id": new_id(),
                "legacy_id": legacy.get("id"),
                "date": _domain_timestamp(legacy.get("date"), created_raw),
                "mesocycle_id": mesocycle_ids.get(str(mesocycle_ref)) if mesocycle_ref is not None else None,
                "week_number": _pick(legacy, "week_number", "weekNumber"),
                "split_day_id": None,
                "exercises": entries,
                "notes": legacy.get("notes"),
                "completed": bool(legacy.get("completed", False)),
                "duration": legacy.get("duration"),
                "feedback": None,
                "created_at": created,
                "updated_at": created,
            }
        )


def _upgrade_to_v4(tx: Transaction) -> None:
    for shadow, target in (
        ("exercises_rekey", "exercises"),
        ("mesocycles_rekey", "mesocycles"),
        ("workouts_rekey", "workouts"),
    ):
        for doc in _legacy_rows(tx, shadow):
            doc.pop("legacy_id", None)
            tx.table(target).add(doc)


SCHEMA_VERSIONS: tuple[SchemaVersion, ...] = (
    SchemaVersion(
        1,
        {
            "users": TableDef(KEY_INTEGER, ("email", "created_at")),
            "exercises": TableDef(KEY_INTEGER, ("name", "category", "created_at")),
            "workouts": TableDef(KEY_INTEGER, ("date", "completed", "created_at")),
            "mesocycles": TableDef(KEY_INTEGER, ("start_date", "end_date", "status", "created_at")),
        },
    ),
    SchemaVersion(
        2,
        {
            "user_profiles": TableDef(KEY_TEXT, ("created_at", "updated_at")),
            "training_sessions": TableDef(KEY_TEXT, ("workout_id", "exercise_id", "date", "created_at")),
            "exercises_rekey": TableDef(KEY_TEXT, ("legacy_id",)),
            "workouts_rekey": TableDef(KEY_TEXT, ("legacy_id",)),
            "mesocycles_rekey": TableDef(KEY_TEXT, ("legacy_id",)),
        },
        _upgrade_to_v2,
    ),
    SchemaVersion(
        3,
        {"users": None, "exercises": None, "workouts": None, "mesocycles": None},
    ),
    SchemaVersion(
        4,
        {
            "exercises": TableDef(KEY_TEXT, ("name", "category", "is_custom", "created_at")),
            "workouts": TableDef(KEY_TEXT, ("date", "completed", "mesocycle_id", "created_at")),
            "mesocycles": TableDef(KEY_TEXT, ("start_date", "end_date", "status", "created_at")),
        },
        _upgrade_to_v4,
    ),
    SchemaVersion(
        5,
        {"exercises_rekey": None, "workouts_rekey": None, "mesocycles_rekey": None},
    ),
)


def get_user_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def _set_user_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(f"PRAGMA user_version = {int(version)}")


class MigrationRunner:
    """Applies schema versions in order, one transaction per version."""

    def __init__(self, versions: Sequence[SchemaVersion] = SCHEMA_VERSIONS) -> None:
        numbers = [version.version for version in versions]
        if not numbers or numbers != sorted(set(numbers)) or numbers[0] < 1:
            raise ValueError("Schema versions must be unique, ascending and start at 1 or above.")
        self.versions = tuple(versions)

    @property
    def latest(self) -> int:
        return self.versions[-1].version

    def final_schema(self) -> Dict[str, TableDef]:
        """Fold every version's declarations into the latest table set."""
        tables: Dict[str, TableDef] = {}
        for version in self.versions:
            for name, definition in version.tables.items():
                if definition is None:
                    tables.pop(name, None)
                else:
                    tables[name] = definition
        return tables

    def run(self, conn: sqlite3.Connection) -> list[int]:
        """Bring the store to the latest version; returns versions applied."""
        current = get_user_version(conn)
        if current > self.latest:
            raise MigrationError(
                f"Store is at schema version {current}, newer than supported {self.latest}."
            )

        if current == 0 and not user_table_names(conn):
            self._in_transaction(conn, lambda tx: self._create_fresh(tx))
            LOGGER.info("Created new store at schema version %s.", self.latest)
            return []

        applied: list[int] = []
        for version in self.versions:
            if version.version <= current:
                continue
            self._in_transaction(conn, lambda tx, v=version: self._apply(tx, v))
            LOGGER.info("Applied schema version %s.", version.version)
            applied.append(version.version)

        self._in_transaction(conn, self._verify)
        return applied

    def _in_transaction(self, conn: sqlite3.Connection, step: Callable[[Transaction], None]) -> None:
        conn.execute("BEGIN IMMEDIATE")
        try:
            step(Transaction(conn))
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def _create_fresh(self, tx: Transaction) -> None:
        for name, definition in self.final_schema().items():
            self._ensure_table(tx, name, definition)
        _set_user_version(tx.conn, self.latest)

    def _apply(self, tx: Transaction, version: SchemaVersion) -> None:
        for name, definition in version.tables.items():
            if definition is not None:
                self._ensure_table(tx, name, definition)
        if version.upgrade is not None:
            version.upgrade(tx)
        for name, definition in version.tables.items():
            if definition is None:
                tx.conn.execute(f"DROP TABLE IF EXISTS {name}")
                tx.forget(name)
        _set_user_version(tx.conn, version.version)

    def _verify(self, tx: Transaction) -> None:
        for name, definition in self.final_schema().items():
            self._ensure_table(tx, name, definition)

    def _ensure_table(self, tx: Transaction, name: str, definition: TableDef) -> None:
        conn = tx.conn
        if not table_exists(conn, name):
            conn.execute(definition.create_sql(name))
        else:
            existing_key = table_key_type(conn, name)
            if existing_key != definition.key_type:
                raise MigrationError(
                    f"Cannot change primary key of {name} from {existing_key} to "
                    f"{definition.key_type} in place."
                )
            missing = [col for col in definition.indexes if col not in table_columns(conn, name)]
            for column in missing:
                conn.execute(f"ALTER TABLE {name} ADD COLUMN {column}")
            if missing:
                tx.forget(name)
                handle = tx.table(name)
                for doc in handle.to_list():
                    handle.put(doc)
        for statement in definition.index_sql(name):
            conn.execute(statement)
        tx.forget(name)
