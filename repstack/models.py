from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, TypedDict

MUSCLE_GROUPS: tuple[str, ...] = (
    "chest",
    "back",
    "shoulders",
    "biceps",
    "triceps",
    "forearms",
    "abs",
    "obliques",
    "quads",
    "hamstrings",
    "glutes",
    "calves",
)
EXPERIENCE_LEVELS: tuple[str, ...] = ("beginner", "intermediate", "advanced")
UNITS: tuple[str, ...] = ("metric", "imperial")
THEMES: tuple[str, ...] = ("light", "dark", "system")
EXERCISE_CATEGORIES: tuple[str, ...] = (
    "machine",
    "barbell",
    "dumbbell",
    "bodyweight",
    "cable",
    "other",
)
TRAINING_SPLITS: tuple[str, ...] = (
    "upper_lower",
    "push_pull_legs",
    "full_body",
    "bro_split",
    "custom",
)
MESOCYCLE_STATUSES: tuple[str, ...] = ("planned", "active", "completed", "abandoned")
PERFORMANCE_RATINGS: tuple[str, ...] = ("excellent", "good", "average", "poor")
RECOVERY_STATUSES: tuple[str, ...] = (
    "well_recovered",
    "moderately_recovered",
    "fatigued",
    "very_fatigued",
)

__all__ = [
    "new_id",
    "utc_now",
    "parse_datetime",
    "parse_optional_datetime",
    "to_local_naive",
    "format_datetime",
    "UserPreferences",
    "UserProfile",
    "Exercise",
    "WorkoutSet",
    "WorkoutExercise",
    "MuscleGroupFeedback",
    "WorkoutFeedback",
    "Workout",
    "TrainingSession",
    "MesocycleExercise",
    "MesocycleSplitDay",
    "Mesocycle",
]


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_local_naive(value: datetime) -> datetime:
    """Express an aware datetime in local wall-clock time without tzinfo."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_datetime(value: Any, *, field: str = "date") -> datetime:
    """
    Parse user-supplied ISO-8601 timestamps.

    Accepts `datetime.datetime`, `datetime.date` (midnight) or ISO strings,
    including a trailing `Z`. Raises `ValueError` with a readable message
    when the payload cannot be parsed.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if not isinstance(value, str):
        raise ValueError(f"{field} must be an ISO-8601 timestamp; received {value!r}.")

    candidate = value.strip()
    if not candidate:
        raise ValueError(f"{field} cannot be empty.")
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError(
            f"{field} must be an ISO-8601 timestamp; received {value!r}."
        ) from exc


def parse_optional_datetime(value: Any, *, field: str = "date") -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_datetime(value, field=field)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _domain_datetime(value: Any, *, field: str) -> datetime:
    # Calendar-facing dates are kept as naive local wall-clock time.
    return to_local_naive(parse_datetime(value, field=field))


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


@dataclass
class UserPreferences:
    units: str = "metric"
    theme: str = "system"
    first_day_of_week: int = 0  # 0 = Monday, matches date.weekday()
    default_rest_seconds: int = 90
    audio_enabled: bool = True
    vibration_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "units": self.units,
            "theme": self.theme,
            "first_day_of_week": self.first_day_of_week,
            "default_rest_seconds": self.default_rest_seconds,
            "audio_enabled": self.audio_enabled,
            "vibration_enabled": self.vibration_enabled,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "UserPreferences":
        data = dict(payload or {})
        base = cls()
        return cls(
            units=data.get("units", base.units),
            theme=data.get("theme", base.theme),
            first_day_of_week=int(data.get("first_day_of_week", base.first_day_of_week)),
            default_rest_seconds=int(data.get("default_rest_seconds", base.default_rest_seconds)),
            audio_enabled=bool(data.get("audio_enabled", base.audio_enabled)),
            vibration_enabled=bool(data.get("vibration_enabled", base.vibration_enabled)),
        )


@dataclass
class UserProfile:
    """The single on-device profile."""

    name: str
    experience_level: str = "beginner"
    preferences: UserPreferences = field(default_factory=UserPreferences)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "experience_level": self.experience_level,
            "preferences": self.preferences.to_dict(),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "UserProfile":
        return cls(
            id=str(payload["id"]),
            name=payload.get("name", ""),
            experience_level=payload.get("experience_level", "beginner"),
            preferences=UserPreferences.from_dict(payload.get("preferences")),
            created_at=parse_optional_datetime(payload.get("created_at")) or utc_now(),
            updated_at=parse_optional_datetime(payload.get("updated_at")) or utc_now(),
        )


@dataclass
class Exercise:
    name: str
    category: str = "other"
    muscle_groups: List[str] = field(default_factory=list)
    equipment: Optional[str] = None
    notes: Optional[str] = None
    is_custom: bool = True
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "muscle_groups": list(self.muscle_groups),
            "equipment": self.equipment,
            "notes": self.notes,
            "is_custom": self.is_custom,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Exercise":
        return cls(
            id=str(payload["id"]),
            name=payload.get("name", ""),
            category=payload.get("category", "other"),
            muscle_groups=list(payload.get("muscle_groups") or []),
            equipment=_optional_str(payload.get("equipment")),
            notes=_optional_str(payload.get("notes")),
            is_custom=bool(payload.get("is_custom", True)),
            created_at=parse_optional_datetime(payload.get("created_at")) or utc_now(),
            updated_at=parse_optional_datetime(payload.get("updated_at")) or utc_now(),
        )


@dataclass
class WorkoutSet:
    exercise_id: str
    set_number: int
    target_reps: int
    weight: float = 0.0
    actual_reps: Optional[int] = None
    rir: Optional[int] = None
    completed: bool = False
    id: str = field(default_factory=new_id)

    @property
    def reps(self) -> int:
        """Performed reps, falling back to the prescription."""
        return self.actual_reps if self.actual_reps is not None else self.target_reps

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "exercise_id": self.exercise_id,
            "set_number": self.set_number,
            "target_reps": self.target_reps,
            "actual_reps": self.actual_reps,
            "weight": self.weight,
            "rir": self.rir,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkoutSet":
        return cls(
            id=str(payload.get("id") or new_id()),
            exercise_id=str(payload.get("exercise_id", "")),
            set_number=int(payload.get("set_number", 1)),
            target_reps=int(payload.get("target_reps", 0)),
            actual_reps=_optional_int(payload.get("actual_reps")),
            weight=float(payload.get("weight", 0.0)),
            rir=_optional_int(payload.get("rir")),
            completed=bool(payload.get("completed", False)),
        )


@dataclass
class WorkoutExercise:
    """Sets logged for one exercise inside a workout."""

    exercise_id: str
    sets: List[WorkoutSet] = field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise_id": self.exercise_id,
            "sets": [item.to_dict() for item in self.sets],
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WorkoutExercise":
        return cls(
            exercise_id=str(payload.get("exercise_id", "")),
            sets=[WorkoutSet.from_dict(item) for item in payload.get("sets") or []],
            notes=_optional_str(payload.get("notes")),
        )


@dataclass
class MuscleGroupFeedback:
    muscle_group: str
    pump: Optional[int] = None
    soreness: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"muscle_group": self.muscle_group, "pump": self.pump, "soreness": self.soreness}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MuscleGroupFeedback":
        return cls(
            muscle_group=str(payload.get("muscle_group", "")),
            pump=_optional_int(payload.get("pump")),
            soreness=_optional_int(payload.get("soreness")),
        )


@dataclass
class WorkoutFeedback:
    """Auto-regulation feedback captured after a workout."""

    overall_recovery: Optional[str] = None
    muscle_group_feedback: List[MuscleGroupFeedback] = field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_recovery": self.overall_recovery,
            "muscle_group_feedback": [item.to_dict() for item in self.muscle_group_feedback],
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> Optional["WorkoutFeedback"]:
        if not payload:
            return None
        return cls(
            overall_recovery=_optional_str(payload.get("overall_recovery")),
            muscle_group_feedback=[
                MuscleGroupFeedback.from_dict(item)
                for item in payload.get("muscle_group_feedback") or []
            ],
            notes=_optional_str(payload.get("notes")),
        )


@dataclass
class Workout:
    date: datetime
    exercises: List[WorkoutExercise] = field(default_factory=list)
    mesocycle_id: Optional[str] = None
    week_number: Optional[int] = None
    split_day_id: Optional[str] = None
    notes: Optional[str] = None
    completed: bool = False
    duration: Optional[float] = None  # minutes
    feedback: Optional[WorkoutFeedback] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def exercise_ids(self) -> set[str]:
        """Every exercise id referenced by the workout or any of its sets."""
        ids: set[str] = set()
        for entry in self.exercises:
            ids.add(entry.exercise_id)
            ids.update(item.exercise_id for item in entry.sets)
        return ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": format_datetime(self.date),
            "mesocycle_id": self.mesocycle_id,
            "week_number": self.week_number,
            "split_day_id": self.split_day_id,
            "exercises": [entry.to_dict() for entry in self.exercises],
            "notes": self.notes,
            "completed": self.completed,
            "duration": self.duration,
            "feedback": self.feedback.to_dict() if self.feedback else None,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Workout":
        duration = payload.get("duration")
        return cls(
            id=str(payload["id"]),
            date=_domain_datetime(payload.get("date"), field="date"),
            mesocycle_id=_optional_str(payload.get("mesocycle_id")),
            week_number=_optional_int(payload.get("week_number")),
            split_day_id=_optional_str(payload.get("split_day_id")),
            exercises=[WorkoutExercise.from_dict(item) for item in payload.get("exercises") or []],
            notes=_optional_str(payload.get("notes")),
            completed=bool(payload.get("completed", False)),
            duration=float(duration) if duration is not None else None,
            feedback=WorkoutFeedback.from_dict(payload.get("feedback")),
            created_at=parse_optional_datetime(payload.get("created_at")) or utc_now(),
            updated_at=parse_optional_datetime(payload.get("updated_at")) or utc_now(),
        )


@dataclass
class TrainingSession:
    """Per-exercise feedback attached to a workout."""

    workout_id: str
    exercise_id: str
    date: datetime
    pump: int
    soreness: int
    fatigue: int
    performance: str
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workout_id": self.workout_id,
            "exercise_id": self.exercise_id,
            "date": format_datetime(self.date),
            "pump": self.pump,
            "soreness": self.soreness,
            "fatigue": self.fatigue,
            "performance": self.performance,
            "notes": self.notes,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TrainingSession":
        return cls(
            id=str(payload["id"]),
            workout_id=str(payload.get("workout_id", "")),
            exercise_id=str(payload.get("exercise_id", "")),
            date=_domain_datetime(payload.get("date"), field="date"),
            pump=int(payload.get("pump", 0)),
            soreness=int(payload.get("soreness", 0)),
            fatigue=int(payload.get("fatigue", 0)),
            performance=str(payload.get("performance", "")),
            notes=_optional_str(payload.get("notes")),
            created_at=parse_optional_datetime(payload.get("created_at")) or utc_now(),
            updated_at=parse_optional_datetime(payload.get("updated_at")) or utc_now(),
        )


@dataclass
class MesocycleExercise:
    """One exercise prescription inside a split day."""

    exercise_id: str
    order: int = 0
    target_sets: int = 3
    target_reps_min: int = 8
    target_reps_max: int = 12
    rest_seconds: int = 120
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise_id": self.exercise_id,
            "order": self.order,
            "target_sets": self.target_sets,
            "target_reps_min": self.target_reps_min,
            "target_reps_max": self.target_reps_max,
            "rest_seconds": self.rest_seconds,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MesocycleExercise":
        base = cls(exercise_id="")
        return cls(
            exercise_id=str(payload.get("exercise_id", "")),
            order=int(payload.get("order", base.order)),
            target_sets=int(payload.get("target_sets", base.target_sets)),
            target_reps_min=int(payload.get("target_reps_min", base.target_reps_min)),
            target_reps_max=int(payload.get("target_reps_max", base.target_reps_max)),
            rest_seconds=int(payload.get("rest_seconds", base.rest_seconds)),
            notes=_optional_str(payload.get("notes")),
        )


@dataclass
class MesocycleSplitDay:
    name: str
    day_order: int
    exercises: List[MesocycleExercise] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "day_order": self.day_order,
            "exercises": [item.to_dict() for item in self.exercises],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MesocycleSplitDay":
        return cls(
            id=str(payload.get("id") or new_id()),
            name=str(payload.get("name", "")),
            day_order=int(payload.get("day_order", 1)),
            exercises=[MesocycleExercise.from_dict(item) for item in payload.get("exercises") or []],
        )


@dataclass
class Mesocycle:
    """A 4-6 week training block with a scheduled deload week."""

    name: str
    start_date: datetime
    end_date: datetime
    duration_weeks: int = 4
    current_week: int = 1
    deload_week: int = 4
    training_split: str = "custom"
    split_days: List[MesocycleSplitDay] = field(default_factory=list)
    status: str = "planned"
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def ordered_split_days(self) -> List[MesocycleSplitDay]:
        return sorted(self.split_days, key=lambda day: day.day_order)

    def find_split_day(self, split_day_id: str) -> Optional[MesocycleSplitDay]:
        for day in self.split_days:
            if day.id == split_day_id:
                return day
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "start_date": format_datetime(self.start_date),
            "end_date": format_datetime(self.end_date),
            "duration_weeks": self.duration_weeks,
            "current_week": self.current_week,
            "deload_week": self.deload_week,
            "training_split": self.training_split,
            "split_days": [day.to_dict() for day in self.split_days],
            "status": self.status,
            "notes": self.notes,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Mesocycle":
        return cls(
            id=str(payload["id"]),
            name=payload.get("name", ""),
            start_date=_domain_datetime(payload.get("start_date"), field="start_date"),
            end_date=_domain_datetime(payload.get("end_date"), field="end_date"),
            duration_weeks=int(payload.get("duration_weeks", 4)),
            current_week=int(payload.get("current_week", 1)),
            deload_week=int(payload.get("deload_week", 4)),
            training_split=payload.get("training_split", "custom"),
            split_days=[MesocycleSplitDay.from_dict(item) for item in payload.get("split_days") or []],
            status=payload.get("status", "planned"),
            notes=_optional_str(payload.get("notes")),
            created_at=parse_optional_datetime(payload.get("created_at")) or utc_now(),
            updated_at=parse_optional_datetime(payload.get("updated_at")) or utc_now(),
        )


class UserProfilePatch(TypedDict, total=False):
    name: str
    experience_level: str
    preferences: Dict[str, Any]


class ExercisePatch(TypedDict, total=False):
    name: str
    category: str
    muscle_groups: List[str]
    equipment: Optional[str]
    notes: Optional[str]
    is_custom: bool


class WorkoutPatch(TypedDict, total=False):
    date: Any
    mesocycle_id: Optional[str]
    week_number: Optional[int]
    split_day_id: Optional[str]
    exercises: List[Dict[str, Any]]
    notes: Optional[str]
    completed: bool
    duration: Optional[float]
    feedback: Optional[Dict[str, Any]]


class TrainingSessionPatch(TypedDict, total=False):
    workout_id: str
    exercise_id: str
    date: Any
    pump: int
    soreness: int
    fatigue: int
    performance: str
    notes: Optional[str]


class MesocyclePatch(TypedDict, total=False):
    name: str
    start_date: Any
    end_date: Any
    duration_weeks: int
    current_week: int
    deload_week: int
    training_split: str
    split_days: List[Dict[str, Any]]
    status: str
    notes: Optional[str]
