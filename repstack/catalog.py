from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import MUSCLE_GROUPS, Exercise, MesocycleSplitDay
from .progression import calculate_week
from .repository import EntityStore

LOGGER = logging.getLogger(__name__)


def _starter(name: str, category: str, groups: Tuple[str, ...], notes: str | None = None) -> Dict[str, Any]:
    return {
        "name": name,
        "category": category,
        "muscle_groups": list(groups),
        "is_custom": False,
        "notes": notes,
    }


STARTER_EXERCISES: Tuple[Dict[str, Any], ...] = (
    _starter("Barbell Bench Press", "barbell", ("chest", "triceps", "shoulders"), "Compound upper body exercise"),
    _starter("Dumbbell Incline Press", "dumbbell", ("chest", "shoulders", "triceps")),
    _starter("Chest Press Machine", "machine", ("chest", "triceps")),
    _starter("Cable Chest Fly", "cable", ("chest",)),
    _starter("Push-ups", "bodyweight", ("chest", "triceps", "shoulders")),
    _starter("Barbell Row", "barbell", ("back", "biceps"), "Compound back exercise"),
    _starter("Lat Pulldown", "machine", ("back", "biceps")),
    _starter("Seated Cable Row", "cable", ("back", "biceps")),
    _starter("Dumbbell Row", "dumbbell", ("back", "biceps")),
    _starter("Pull-ups", "bodyweight", ("back", "biceps")),
    _starter("Overhead Press", "barbell", ("shoulders", "triceps"), "Compound shoulder exercise"),
    _starter("Dumbbell Lateral Raise", "dumbbell", ("shoulders",)),
    _starter("Cable Face Pull", "cable", ("shoulders", "back")),
    _starter("Shoulder Press Machine", "machine", ("shoulders", "triceps")),
    _starter("Barbell Curl", "barbell", ("biceps",)),
    _starter("Dumbbell Hammer Curl", "dumbbell", ("biceps", "forearms")),
    _starter("Cable Tricep Pushdown", "cable", ("triceps",)),
    _starter("Dumbbell Overhead Tricep Extension", "dumbbell", ("triceps",)),
    _starter("Barbell Squat", "barbell", ("quads", "glutes", "hamstrings"), "Compound lower body exercise"),
    _starter("Leg Press", "machine", ("quads", "glutes")),
    _starter("Romanian Deadlift", "barbell", ("hamstrings", "glutes", "back")),
    _starter("Leg Curl Machine", "machine", ("hamstrings",)),
    _starter("Leg Extension Machine", "machine", ("quads",)),
    _starter("Bulgarian Split Squat", "dumbbell", ("quads", "glutes")),
    _starter("Calf Raise Machine", "machine", ("calves",)),
    _starter("Walking Lunges", "bodyweight", ("quads", "glutes", "hamstrings")),
    _starter("Plank", "bodyweight", ("abs", "obliques")),
    _starter("Cable Crunch", "cable", ("abs",)),
    _starter("Russian Twist", "bodyweight", ("abs", "obliques")),
)

DEFAULT_SPLIT_DAYS: Dict[str, Tuple[str, ...]] = {
    "upper_lower": ("Upper A", "Lower A", "Upper B", "Lower B"),
    "push_pull_legs": ("Push", "Pull", "Legs"),
    "full_body": ("Full Body A", "Full Body B", "Full Body C"),
    "bro_split": ("Chest", "Back", "Shoulders", "Arms", "Legs"),
    "custom": ("Day 1",),
}


def seed_starter_exercises(store: EntityStore) -> bool:
    """Add the starter exercise library to an empty store; returns whether it did."""
    with store.db.transaction():
        if store.list_exercises():
            return False
        for exercise in STARTER_EXERCISES:
            store.create_exercise(exercise)
    LOGGER.info("Seeded %s starter exercises.", len(STARTER_EXERCISES))
    return True


def generate_default_split_days(training_split: str) -> List[MesocycleSplitDay]:
    """Empty split days named after the chosen training split."""
    names = DEFAULT_SPLIT_DAYS.get(training_split, ())
    return [MesocycleSplitDay(name=name, day_order=order) for order, name in enumerate(names, start=1)]


# Checked in order against the lowercased split day name; first match wins.
_SPLIT_DAY_MUSCLES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("push", ("chest", "shoulders", "triceps")),
    ("pull", ("back", "biceps", "forearms")),
    ("leg", ("quads", "hamstrings", "glutes", "calves")),
    ("upper", ("chest", "back", "shoulders", "biceps", "triceps", "forearms", "abs", "obliques")),
    ("lower", ("quads", "hamstrings", "glutes", "calves", "abs", "obliques")),
    ("chest", ("chest", "triceps", "shoulders")),
    ("back", ("back", "biceps", "forearms")),
    ("shoulder", ("shoulders", "triceps")),
    ("arm", ("biceps", "triceps", "forearms")),
    ("full", MUSCLE_GROUPS),
)


def expected_muscle_groups(split_day_name: str) -> Tuple[str, ...]:
    """
    Muscle groups a split day is expected to train, judged from its name.

    Names such as "Push Day" or "Lower B" map to their usual groups. Names
    that match no known pattern allow every group.
    """
    lowered = split_day_name.lower()
    for keyword, groups in _SPLIT_DAY_MUSCLES:
        if keyword in lowered:
            return groups
    return MUSCLE_GROUPS


def is_exercise_valid_for_split_day(muscle_groups: Iterable[str], split_day_name: str) -> bool:
    expected = expected_muscle_groups(split_day_name)
    return any(group in expected for group in muscle_groups)


@dataclass(frozen=True)
class TemplateExercise:
    name: str
    description: str
    muscle_groups: Tuple[str, ...]
    target_sets: str
    target_reps: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "muscle_groups": list(self.muscle_groups),
            "target_sets": self.target_sets,
            "target_reps": self.target_reps,
        }


@dataclass(frozen=True)
class TemplateDay:
    name: str
    exercises: Tuple[TemplateExercise, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "exercises": [item.to_dict() for item in self.exercises]}


@dataclass(frozen=True)
class ProgramTemplate:
    """A ready-made training split; exercises are slots, not concrete lifts."""

    id: str
    name: str
    description: str
    days_per_week: int
    target_level: str
    days: Tuple[TemplateDay, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "days_per_week": self.days_per_week,
            "target_level": self.target_level,
            "days": [day.to_dict() for day in self.days],
        }


def _slot(name: str, description: str, groups: Tuple[str, ...], sets: str, reps: str) -> TemplateExercise:
    return TemplateExercise(name, description, groups, f"{sets} sets", f"{reps} reps")


_FULL_BODY = ProgramTemplate(
    id="full_body",
    name="Full Body",
    description=(
        "3 days per week full body training. Perfect for beginners or those with limited time. "
        "Hits all major muscle groups each session with adequate recovery."
    ),
    days_per_week=3,
    target_level="beginner",
    days=(
        TemplateDay(
            "Day A",
            (
                _slot("Compound Push", "Bench press, overhead press, or push-ups",
                      ("chest", "shoulders", "triceps"), "3", "8-12"),
                _slot("Compound Pull", "Barbell row, lat pulldown, or pull-ups", ("back", "biceps"), "3", "8-12"),
                _slot("Leg Compound", "Squat, leg press, or goblet squat", ("quads", "glutes"), "3", "8-12"),
                _slot("Isolation - Biceps", "Any curl variation", ("biceps",), "2-3", "10-15"),
                _slot("Isolation - Calves", "Calf raises", ("calves",), "2-3", "12-20"),
            ),
        ),
        TemplateDay(
            "Day B",
            (
                _slot("Compound Push", "Different variation than Day A",
                      ("chest", "shoulders", "triceps"), "3", "8-12"),
                _slot("Compound Pull", "Different pulling pattern than Day A", ("back", "biceps"), "3", "8-12"),
                _slot("Leg Compound", "Romanian deadlift or leg press", ("hamstrings", "glutes"), "3", "8-12"),
                _slot("Isolation - Triceps", "Tricep pushdown or overhead extension", ("triceps",), "2-3", "10-15"),
                _slot("Isolation - Shoulders", "Lateral raises", ("shoulders",), "2-3", "12-15"),
            ),
        ),
        TemplateDay(
            "Day C",
            (
                _slot("Compound Push", "Third variation of pressing movement",
                      ("chest", "shoulders", "triceps"), "3", "8-12"),
                _slot("Compound Pull", "Third variation of pulling movement", ("back", "biceps"), "3", "8-12"),
                _slot("Leg Compound", "Different leg exercise than Day A & B",
                      ("quads", "hamstrings", "glutes"), "3", "8-12"),
                _slot("Isolation - Abs", "Crunches, planks, or cable crunch", ("abs",), "2-3", "12-20"),
                _slot("Isolation - Hamstrings", "Leg curl variation", ("hamstrings",), "2-3", "10-15"),
            ),
        ),
    ),
)

_UPPER_LOWER = ProgramTemplate(
    id="upper_lower",
    name="Upper/Lower Split",
    description=(
        "4 days per week training split alternating between upper and lower body. "
        "Great for building strength and size with balanced recovery."
    ),
    days_per_week=4,
    target_level="intermediate",
    days=(
        TemplateDay(
            "Upper Day A",
            (
                _slot("Horizontal Push (chest focus)", "Bench press, dumbbell press, or chest press machine",
                      ("chest", "triceps", "shoulders"), "3-4", "8-12"),
                _slot("Horizontal Pull (back focus)", "Barbell row, dumbbell row, or seated cable row",
                      ("back", "biceps"), "3-4", "8-12"),
                _slot("Vertical Push (shoulders)", "Overhead press, shoulder press machine, or dumbbell press",
                      ("shoulders", "triceps"), "2-3", "10-15"),
                _slot("Vertical Pull (lats)", "Lat pulldown, pull-ups, or high cable row",
                      ("back", "biceps"), "2-3", "10-15"),
                _slot("Biceps", "Barbell curl, dumbbell curl, or cable curl", ("biceps",), "2-3", "10-15"),
                _slot("Triceps", "Tricep pushdown, overhead extension, or dips", ("triceps",), "2-3", "10-15"),
            ),
        ),
        TemplateDay(
            "Lower Day A",
            (
                _slot("Quad-dominant (squat pattern)", "Barbell squat, front squat, or goblet squat",
                      ("quads", "glutes"), "3-4", "8-12"),
                _slot("Hip-hinge (hamstring focus)", "Romanian deadlift, stiff-leg deadlift, or good mornings",
                      ("hamstrings", "glutes", "back"), "3-4", "8-12"),
                _slot("Leg Press/Hack Squat", "Additional quad volume with machine work",
                      ("quads", "glutes"), "3", "10-15"),
                _slot("Leg Curl", "Lying, seated, or standing leg curl", ("hamstrings",), "3", "10-15"),
                _slot("Calves", "Standing or seated calf raise", ("calves",), "3-4", "12-20"),
            ),
        ),
        TemplateDay(
            "Upper Day B",
            (
                _slot("Horizontal Push (chest focus)", "Incline press, decline press, or different angle than Day A",
                      ("chest", "triceps", "shoulders"), "3-4", "8-12"),
                _slot("Horizontal Pull (back focus)", "Different rowing variation than Day A",
                      ("back", "biceps"), "3-4", "8-12"),
                _slot("Vertical Push (shoulders)", "Lateral raises or upright row", ("shoulders",), "2-3", "12-15"),
                _slot("Vertical Pull (lats)", "Different vertical pull than Day A",
                      ("back", "biceps"), "2-3", "10-15"),
                _slot("Biceps", "Different curl variation than Day A", ("biceps",), "2-3", "10-15"),
                _slot("Triceps", "Different tricep exercise than Day A", ("triceps",), "2-3", "10-15"),
            ),
        ),
        TemplateDay(
            "Lower Day B",
            (
                _slot("Quad-dominant (squat pattern)", "Different squat variation than Day A",
                      ("quads", "glutes"), "3-4", "8-12"),
                _slot("Hip-hinge (hamstring focus)", "Different hinge variation than Day A",
                      ("hamstrings", "glutes", "back"), "3-4", "8-12"),
                _slot("Leg Extension", "Quad isolation", ("quads",), "3", "12-15"),
                _slot("Leg Curl", "Different leg curl variation than Day A", ("hamstrings",), "3", "10-15"),
                _slot("Calves", "Different calf variation than Day A", ("calves",), "3-4", "12-20"),
            ),
        ),
    ),
)

_PUSH_PULL_LEGS = ProgramTemplate(
    id="push_pull_legs",
    name="Push/Pull/Legs",
    description=(
        "6 days per week split (or 3 days for beginners). Separates pushing, pulling, and leg "
        "movements for focused training and optimal recovery."
    ),
    days_per_week=6,
    target_level="intermediate",
    days=(
        TemplateDay(
            "Push Day",
            (
                _slot("Chest Compound", "Barbell or dumbbell press (flat, incline, or decline)",
                      ("chest", "triceps", "shoulders"), "3-4", "8-12"),
                _slot("Chest Isolation", "Chest fly, cable crossover, or pec deck", ("chest",), "2-3", "10-15"),
                _slot("Shoulder Press", "Overhead press with barbell, dumbbells, or machine",
                      ("shoulders", "triceps"), "3", "8-12"),
                _slot("Lateral Raises", "Dumbbell or cable lateral raises for side delts",
                      ("shoulders",), "3", "12-15"),
                _slot("Triceps", "Tricep pushdown, overhead extension, or dips", ("triceps",), "3-4", "10-15"),
            ),
        ),
        TemplateDay(
            "Pull Day",
            (
                _slot("Back Compound", "Deadlift, barbell row, or T-bar row", ("back", "biceps"), "3-4", "6-10"),
                _slot("Lat-focused", "Lat pulldown, pull-ups, or straight-arm pulldown", ("back",), "3", "8-12"),
                _slot("Rear Delts", "Face pulls, reverse fly, or rear delt machine",
                      ("shoulders", "back"), "2-3", "12-15"),
                _slot("Biceps", "Barbell curl, dumbbell curl, or cable curl", ("biceps",), "3-4", "10-15"),
            ),
        ),
        TemplateDay(
            "Leg Day",
            (
                _slot("Squat Variation", "Barbell squat, front squat, or safety bar squat",
                      ("quads", "glutes"), "4", "6-10"),
                _slot("Leg Press", "Heavy leg press for quad development", ("quads", "glutes"), "3", "10-15"),
                _slot("Romanian Deadlift", "RDL for hamstring and glute development",
                      ("hamstrings", "glutes"), "3", "8-12"),
                _slot("Leg Curl", "Lying, seated, or standing leg curl", ("hamstrings",), "3", "10-15"),
                _slot("Calves", "Standing or seated calf raise", ("calves",), "4", "12-20"),
            ),
        ),
    ),
)

PROGRAM_TEMPLATES: Tuple[ProgramTemplate, ...] = (_FULL_BODY, _UPPER_LOWER, _PUSH_PULL_LEGS)


def get_template(template_id: str) -> Optional[ProgramTemplate]:
    for template in PROGRAM_TEMPLATES:
        if template.id == template_id:
            return template
    return None


_SAMPLE_GROUPS: Dict[str, Tuple[str, ...]] = {
    "Push": ("chest", "shoulders", "triceps"),
    "Pull": ("back", "biceps"),
    "Legs": ("quads", "hamstrings", "glutes", "calves"),
}
_SAMPLE_EXERCISES_PER_DAY = 5
_SAMPLE_WEEKS = 6


def _pick(exercises: Sequence[Exercise], groups: Tuple[str, ...]) -> List[Exercise]:
    matches = [exercise for exercise in exercises if any(group in groups for group in exercise.muscle_groups)]
    return matches[:_SAMPLE_EXERCISES_PER_DAY]


def _sample_split_day(name: str, order: int, exercises: Sequence[Exercise]) -> MesocycleSplitDay:
    legs = name == "Legs"
    return MesocycleSplitDay.from_dict(
        {
            "name": name,
            "day_order": order,
            "exercises": [
                {
                    "exercise_id": exercise.id,
                    "order": index,
                    "target_sets": 4 if legs else 3,
                    "target_reps_min": 10 if legs else 8,
                    "target_reps_max": 15 if legs else 12,
                    "rest_seconds": 120 if legs else 90,
                }
                for index, exercise in enumerate(exercises)
            ],
        }
    )


def _sample_workout(
    split_day: MesocycleSplitDay,
    mesocycle_id: str,
    when: datetime,
    week: Optional[int],
    base_weight: float,
    pull: bool,
) -> Dict[str, Any]:
    entries = []
    for index, prescription in enumerate(split_day.exercises):
        sets = [
            {
                "exercise_id": prescription.exercise_id,
                "set_number": number,
                "target_reps": 10,
                "actual_reps": 8 + number if pull else 10,
                "weight": base_weight + index * 10,
                "rir": 2,
                "completed": True,
            }
            for number in range(1, 4)
        ]
        entries.append({"exercise_id": prescription.exercise_id, "sets": sets})
    return {
        "date": when,
        "exercises": entries,
        "completed": True,
        "duration": 70 if pull else 75,
        "notes": "Pull day - Back, Biceps" if pull else "Push day - Chest, Shoulders, Triceps",
        "mesocycle_id": mesocycle_id,
        "week_number": week,
        "split_day_id": split_day.id,
    }


def seed_sample_mesocycle(store: EntityStore, now: datetime | None = None) -> bool:
    """
    Add an active push/pull/legs block with two logged workouts for demos.

    The block starts two days before `now`; push was trained that day and
    pull yesterday, so legs is next. Nothing happens when any mesocycle
    exists or the exercise library is empty. Returns whether it seeded.
    """
    reference = now or datetime.now()
    with store.db.transaction():
        if store.list_mesocycles():
            return False
        exercises = store.list_exercises()
        if not exercises:
            LOGGER.warning("No exercises found; skipping sample mesocycle.")
            return False

        split_days = [
            _sample_split_day(name, order, _pick(exercises, groups))
            for order, (name, groups) in enumerate(_SAMPLE_GROUPS.items(), start=1)
        ]
        push_date = reference - timedelta(days=2)
        start = datetime.combine(push_date.date(), time.min)
        mesocycle_id = store.create_mesocycle(
            {
                "name": f"Hypertrophy Block - {reference:%B %Y}",
                "start_date": start,
                "end_date": start + timedelta(weeks=_SAMPLE_WEEKS),
                "duration_weeks": _SAMPLE_WEEKS,
                "current_week": 1,
                "deload_week": _SAMPLE_WEEKS,
                "training_split": "push_pull_legs",
                "split_days": [day.to_dict() for day in split_days],
                "status": "active",
                "notes": "Focus on progressive overload and muscle building",
            }
        )
        mesocycle = store.get_mesocycle(mesocycle_id)

        push, pull = split_days[0], split_days[1]
        for split_day, when, base_weight, is_pull in (
            (push, push_date, 100.0, False),
            (pull, reference - timedelta(days=1), 90.0, True),
        ):
            if split_day.exercises:
                week = calculate_week(mesocycle, when)
                store.create_workout(_sample_workout(split_day, mesocycle_id, when, week, base_weight, is_pull))
    LOGGER.info("Seeded sample mesocycle %s.", mesocycle_id)
    return True
