from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from .errors import NotFoundError, ReferentialIntegrityError
from .models import (
    Exercise,
    ExercisePatch,
    Mesocycle,
    MesocyclePatch,
    TrainingSession,
    TrainingSessionPatch,
    UserPreferences,
    UserProfile,
    UserProfilePatch,
    Workout,
    WorkoutPatch,
    WorkoutSet,
    new_id,
    parse_datetime,
    to_local_naive,
    utc_now,
)
from .progression import ProgressionEngine
from .schema import Transaction
from .storage import Database, LiveQuery
from .validation import (
    ensure_valid,
    sanitize_string,
    validate_exercise,
    validate_mesocycle,
    validate_training_session,
    validate_user_profile,
    validate_workout,
)

LOGGER = logging.getLogger(__name__)

USER_PROFILES = "user_profiles"
EXERCISES = "exercises"
WORKOUTS = "workouts"
TRAINING_SESSIONS = "training_sessions"
MESOCYCLES = "mesocycles"
TABLES: tuple[str, ...] = (USER_PROFILES, EXERCISES, WORKOUTS, TRAINING_SESSIONS, MESOCYCLES)

# Keys holding user-entered free text, at any nesting depth.
FREE_TEXT_KEYS = frozenset({"name", "notes", "equipment"})
# Keys a patch may never overwrite.
PROTECTED_KEYS = frozenset({"id", "created_at", "updated_at"})

M = TypeVar("M")


def _sanitize(value: Any, previous: Any = None, key: str | None = None) -> Any:
    """
    Escape free-text strings that differ from `previous`.

    Values equal to the stored ones were sanitized when first written and are
    left untouched so they are not escaped twice.
    """
    if isinstance(value, dict):
        prior = previous if isinstance(previous, dict) else {}
        return {name: _sanitize(item, prior.get(name), name) for name, item in value.items()}
    if isinstance(value, list):
        prior_list = previous if isinstance(previous, list) else []
        return [
            _sanitize(item, _stored_counterpart(item, prior_list, index), key)
            for index, item in enumerate(value)
        ]
    if isinstance(value, str) and key in FREE_TEXT_KEYS and value != previous:
        return sanitize_string(value)
    return value


def _identity(item: Mapping[str, Any]) -> Optional[tuple[Any, ...]]:
    if item.get("id"):
        return ("id", item["id"])
    if item.get("exercise_id"):
        return ("exercise_id", item["exercise_id"], item.get("order"))
    return None


def _stored_counterpart(item: Any, prior_list: Sequence[Any], index: int) -> Any:
    """
    Stored list element `item` should be compared against.

    Nested records are matched by id (split days, sets) or by exercise and
    order (split-day and workout exercises), so reordering a list does not
    make unchanged text look new. Plain values fall back to the position.
    """
    if isinstance(item, dict):
        identity = _identity(item)
        if identity is not None:
            for candidate in prior_list:
                if isinstance(candidate, dict) and _identity(candidate) == identity:
                    return candidate
            return None
    return prior_list[index] if index < len(prior_list) else None


def _jsonable(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Shallow copy with datetimes rendered as ISO strings."""
    result: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        result[key] = value
    return result


def _domain_iso(value: Any, *, end_of_day: bool = False) -> str:
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, time.max if end_of_day else time.min)
    return to_local_naive(parse_datetime(value)).isoformat()


def create_empty_set(
    exercise_id: str,
    set_number: int,
    previous_set: Optional[WorkoutSet] = None,
) -> WorkoutSet:
    """New set for logging, seeded from the previous set when there is one."""
    if previous_set is not None:
        reps = previous_set.actual_reps if previous_set.actual_reps is not None else previous_set.target_reps
        weight = previous_set.weight
    else:
        reps, weight = 8, 0.0
    return WorkoutSet(exercise_id=exercise_id, set_number=set_number, target_reps=reps, weight=weight)


@dataclass(frozen=True)
class PreviousPerformance:
    date: datetime
    sets: List[WorkoutSet]
    workout_id: str


class EntityStore:
    """
    Typed create/read/update/delete access to every collection.

    Writes validate the full record, sanitize free text and enforce the
    cross-record invariants before anything is persisted.
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.progression = ProgressionEngine(self)

    @classmethod
    def open(cls, path: Path | str | None = None) -> "EntityStore":
        return cls(Database.open(path))

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "EntityStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ----- generic plumbing -----

    def _insert(self, tx: Transaction, table: str, record: Dict[str, Any], model: Callable[[Mapping[str, Any]], M]) -> M:
        now = utc_now().isoformat()
        record = _sanitize(record)
        record.update(id=new_id(), created_at=now, updated_at=now)
        instance = model(record)
        tx.table(table).add(instance.to_dict())  # type: ignore[attr-defined]
        return instance

    def _merge(
        self,
        tx: Transaction,
        table: str,
        entity: str,
        identifier: str,
        patch: Mapping[str, Any],
    ) -> tuple[Dict[str, Any], Dict[str, Any]]:
        stored = tx.table(table).get(identifier)
        if stored is None:
            raise NotFoundError(entity, identifier)
        changes = {key: value for key, value in _jsonable(patch).items() if key not in PROTECTED_KEYS}
        return stored, {**stored, **changes}

    def _persist(
        self,
        tx: Transaction,
        table: str,
        stored: Dict[str, Any],
        merged: Dict[str, Any],
        model: Callable[[Mapping[str, Any]], M],
    ) -> M:
        record = _sanitize(merged, stored)
        record["updated_at"] = utc_now().isoformat()
        instance = model(record)
        tx.table(table).put(instance.to_dict())  # type: ignore[attr-defined]
        return instance

    def _fetch(self, table: str, model: Callable[[Mapping[str, Any]], M], identifier: str) -> Optional[M]:
        with self.db.read() as tx:
            doc = tx.table(table).get(identifier)
        return model(doc) if doc is not None else None

    def _delete(self, table: str, entity: str, identifier: str) -> None:
        with self.db.transaction() as tx:
            if not tx.table(table).delete(identifier):
                raise NotFoundError(entity, identifier)

    def live(self, table: str, query: Callable[..., M], *args: Any) -> LiveQuery[M]:
        """Subscribe to `query(*args)`, re-run after every commit touching `table`."""
        return LiveQuery(self.db, [table], lambda: query(*args))

    # ----- user profiles -----

    def create_user_profile(self, payload: Mapping[str, Any]) -> str:
        record = {"experience_level": "beginner", **_jsonable(payload)}
        preferences = UserPreferences().to_dict()
        preferences.update(record.get("preferences") or {})
        record["preferences"] = preferences
        ensure_valid(validate_user_profile(record))
        with self.db.transaction() as tx:
            return self._insert(tx, USER_PROFILES, record, UserProfile.from_dict).id

    def get_user_profile(self, profile_id: str) -> Optional[UserProfile]:
        return self._fetch(USER_PROFILES, UserProfile.from_dict, profile_id)

    def list_user_profiles(self) -> List[UserProfile]:
        with self.db.read() as tx:
            docs = tx.table(USER_PROFILES).to_list(order_by="created_at")
        return [UserProfile.from_dict(doc) for doc in docs]

    def current_user_profile(self) -> Optional[UserProfile]:
        profiles = self.list_user_profiles()
        return profiles[0] if profiles else None

    def update_user_profile(self, profile_id: str, patch: UserProfilePatch) -> None:
        with self.db.transaction() as tx:
            stored, merged = self._merge(tx, USER_PROFILES, "User profile", profile_id, patch)
            if "preferences" in patch:
                preferences = dict(stored.get("preferences") or {})
                preferences.update(patch["preferences"] or {})
                merged["preferences"] = preferences
            ensure_valid(validate_user_profile(merged))
            self._persist(tx, USER_PROFILES, stored, merged, UserProfile.from_dict)

    def delete_user_profile(self, profile_id: str) -> None:
        self._delete(USER_PROFILES, "User profile", profile_id)

    # ----- exercises -----

    def create_exercise(self, payload: Mapping[str, Any]) -> str:
        record = {"is_custom": True, **_jsonable(payload)}
        ensure_valid(validate_exercise(record))
        with self.db.transaction() as tx:
            return self._insert(tx, EXERCISES, record, Exercise.from_dict).id

    def get_exercise(self, exercise_id: str) -> Optional[Exercise]:
        return self._fetch(EXERCISES, Exercise.from_dict, exercise_id)

    def list_exercises(self) -> List[Exercise]:
        with self.db.read() as tx:
            docs = tx.table(EXERCISES).to_list(order_by="name")
        return [Exercise.from_dict(doc) for doc in docs]

    def exercises_by_category(self, category: str) -> List[Exercise]:
        with self.db.read() as tx:
            docs = tx.table(EXERCISES).where("category", category, order_by="name")
        return [Exercise.from_dict(doc) for doc in docs]

    def custom_exercises(self) -> List[Exercise]:
        with self.db.read() as tx:
            docs = tx.table(EXERCISES).where("is_custom", True, order_by="name")
        return [Exercise.from_dict(doc) for doc in docs]

    def update_exercise(self, exercise_id: str, patch: ExercisePatch) -> None:
        with self.db.transaction() as tx:
            stored, merged = self._merge(tx, EXERCISES, "Exercise", exercise_id, patch)
            ensure_valid(validate_exercise(merged))
            self._persist(tx, EXERCISES, stored, merged, Exercise.from_dict)

    def exercise_references(self, exercise_id: str) -> tuple[int, int]:
        """Number of workouts and training sessions referencing an exercise."""
        with self.db.read() as tx:
            workouts = sum(
                1
                for doc in tx.table(WORKOUTS).to_list()
                if exercise_id in Workout.from_dict(doc).exercise_ids()
            )
            sessions = len(tx.table(TRAINING_SESSIONS).where("exercise_id", exercise_id))
        return workouts, sessions

    def delete_exercise(self, exercise_id: str) -> None:
        with self.db.transaction() as tx:
            if tx.table(EXERCISES).get(exercise_id) is None:
                raise NotFoundError("Exercise", exercise_id)
            workouts, sessions = self.exercise_references(exercise_id)
            if workouts or sessions:
                raise ReferentialIntegrityError(
                    f"Cannot delete exercise {exercise_id}: referenced by "
                    f"{workouts} workout(s) and {sessions} training session(s)"
                )
            tx.table(EXERCISES).delete(exercise_id)

    # ----- workouts -----

    def create_workout(self, payload: Mapping[str, Any]) -> str:
        record = {"exercises": [], "completed": False, **_jsonable(payload)}
        ensure_valid(validate_workout(record))
        with self.db.transaction() as tx:
            if not record.get("mesocycle_id"):
                link = self.progression.auto_associate(parse_datetime(record["date"]))
                if link is not None:
                    record["mesocycle_id"] = link["mesocycle_id"]
                    if record.get("week_number") is None:
                        record["week_number"] = link["week_number"]
            workout = self._insert(tx, WORKOUTS, record, Workout.from_dict)
            if workout.completed and workout.mesocycle_id:
                self.progression.update_progress(workout.mesocycle_id)
            return workout.id

    def get_workout(self, workout_id: str) -> Optional[Workout]:
        return self._fetch(WORKOUTS, Workout.from_dict, workout_id)

    def list_workouts(self) -> List[Workout]:
        """Every workout, newest first."""
        with self.db.read() as tx:
            docs = tx.table(WORKOUTS).to_list(order_by="date", descending=True)
        return [Workout.from_dict(doc) for doc in docs]

    def workouts_in_range(self, start: Any, end: Any) -> List[Workout]:
        """Workouts dated within [start, end]; a bare `date` end covers the whole day."""
        low = _domain_iso(start)
        high = _domain_iso(end, end_of_day=True)
        with self.db.read() as tx:
            docs = tx.table(WORKOUTS).between("date", low, high, descending=True)
        return [Workout.from_dict(doc) for doc in docs]

    def completed_workouts(self) -> List[Workout]:
        with self.db.read() as tx:
            docs = tx.table(WORKOUTS).where("completed", True, order_by="date", descending=True)
        return [Workout.from_dict(doc) for doc in docs]

    def workouts_for_mesocycle(self, mesocycle_id: str, *, completed: bool | None = None) -> List[Workout]:
        with self.db.read() as tx:
            docs = tx.table(WORKOUTS).where("mesocycle_id", mesocycle_id, order_by="date", descending=True)
        workouts = [Workout.from_dict(doc) for doc in docs]
        if completed is None:
            return workouts
        return [workout for workout in workouts if workout.completed == completed]

    def update_workout(self, workout_id: str, patch: WorkoutPatch) -> None:
        with self.db.transaction() as tx:
            stored, merged = self._merge(tx, WORKOUTS, "Workout", workout_id, patch)
            ensure_valid(validate_workout(merged))
            workout = self._persist(tx, WORKOUTS, stored, merged, Workout.from_dict)
            if workout.completed and workout.mesocycle_id:
                self.progression.update_progress(workout.mesocycle_id)

    def delete_workout(self, workout_id: str) -> None:
        """Delete a workout together with its training sessions."""
        with self.db.transaction() as tx:
            if tx.table(WORKOUTS).get(workout_id) is None:
                raise NotFoundError("Workout", workout_id)
            removed = tx.table(TRAINING_SESSIONS).delete_where("workout_id", workout_id)
            tx.table(WORKOUTS).delete(workout_id)
        LOGGER.debug("Deleted workout %s and %s training session(s).", workout_id, removed)

    def previous_performance(self, exercise_id: str) -> Optional[PreviousPerformance]:
        """Sets from the most recent completed workout that trained `exercise_id`."""
        for workout in self.completed_workouts():
            for entry in workout.exercises:
                if entry.exercise_id == exercise_id:
                    return PreviousPerformance(date=workout.date, sets=list(entry.sets), workout_id=workout.id)
        return None

    # ----- training sessions -----

    def create_training_session(self, payload: Mapping[str, Any]) -> str:
        record = _jsonable(payload)
        ensure_valid(validate_training_session(record))
        with self.db.transaction() as tx:
            return self._insert(tx, TRAINING_SESSIONS, record, TrainingSession.from_dict).id

    def get_training_session(self, session_id: str) -> Optional[TrainingSession]:
        return self._fetch(TRAINING_SESSIONS, TrainingSession.from_dict, session_id)

    def list_training_sessions(self) -> List[TrainingSession]:
        with self.db.read() as tx:
            docs = tx.table(TRAINING_SESSIONS).to_list(order_by="date", descending=True)
        return [TrainingSession.from_dict(doc) for doc in docs]

    def sessions_for_workout(self, workout_id: str) -> List[TrainingSession]:
        with self.db.read() as tx:
            docs = tx.table(TRAINING_SESSIONS).where("workout_id", workout_id, order_by="date")
        return [TrainingSession.from_dict(doc) for doc in docs]

    def sessions_for_exercise(self, exercise_id: str) -> List[TrainingSession]:
        with self.db.read() as tx:
            docs = tx.table(TRAINING_SESSIONS).where("exercise_id", exercise_id, order_by="date", descending=True)
        return [TrainingSession.from_dict(doc) for doc in docs]

    def update_training_session(self, session_id: str, patch: TrainingSessionPatch) -> None:
        with self.db.transaction() as tx:
            stored, merged = self._merge(tx, TRAINING_SESSIONS, "Training session", session_id, patch)
            ensure_valid(validate_training_session(merged))
            self._persist(tx, TRAINING_SESSIONS, stored, merged, TrainingSession.from_dict)

    def delete_training_session(self, session_id: str) -> None:
        self._delete(TRAINING_SESSIONS, "Training session", session_id)

    # ----- mesocycles -----

    def _ensure_single_active(self, tx: Transaction, status: Any, exclude: str | None = None) -> None:
        if status != "active":
            return
        for doc in tx.table(MESOCYCLES).where("status", "active"):
            if doc["id"] != exclude:
                raise ReferentialIntegrityError(
                    f"Mesocycle {doc.get('name')!r} is already active; complete or abandon it first"
                )

    def create_mesocycle(self, payload: Mapping[str, Any]) -> str:
        record = {
            "duration_weeks": 4,
            "current_week": 1,
            "training_split": "custom",
            "split_days": [],
            "status": "planned",
            **_jsonable(payload),
        }
        record.setdefault("deload_week", record["duration_weeks"])
        ensure_valid(validate_mesocycle(record))
        with self.db.transaction() as tx:
            self._ensure_single_active(tx, record["status"])
            return self._insert(tx, MESOCYCLES, record, Mesocycle.from_dict).id

    def get_mesocycle(self, mesocycle_id: str) -> Optional[Mesocycle]:
        return self._fetch(MESOCYCLES, Mesocycle.from_dict, mesocycle_id)

    def list_mesocycles(self) -> List[Mesocycle]:
        """Every mesocycle, most recent start first."""
        with self.db.read() as tx:
            docs = tx.table(MESOCYCLES).to_list(order_by="start_date", descending=True)
        return [Mesocycle.from_dict(doc) for doc in docs]

    def mesocycles_by_status(self, status: str) -> List[Mesocycle]:
        with self.db.read() as tx:
            docs = tx.table(MESOCYCLES).where("status", status, order_by="start_date", descending=True)
        return [Mesocycle.from_dict(doc) for doc in docs]

    def get_active_mesocycle(self) -> Optional[Mesocycle]:
        active = self.mesocycles_by_status("active")
        return active[0] if active else None

    def update_mesocycle(self, mesocycle_id: str, patch: MesocyclePatch) -> None:
        with self.db.transaction() as tx:
            stored, merged = self._merge(tx, MESOCYCLES, "Mesocycle", mesocycle_id, patch)
            ensure_valid(validate_mesocycle(merged))
            self._ensure_single_active(tx, merged.get("status"), exclude=mesocycle_id)
            self._persist(tx, MESOCYCLES, stored, merged, Mesocycle.from_dict)

    def delete_mesocycle(self, mesocycle_id: str) -> None:
        self._delete(MESOCYCLES, "Mesocycle", mesocycle_id)

    # ----- whole store -----

    def counts(self) -> Dict[str, int]:
        with self.db.read() as tx:
            return {table: tx.table(table).count() for table in TABLES}

    def clear_all_data(self, tables: Sequence[str] = TABLES) -> None:
        with self.db.transaction() as tx:
            for table in tables:
                tx.table(table).clear()
        LOGGER.info("Cleared all stored data.")
