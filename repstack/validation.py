"""
Declarative validation rules for every persisted entity.

Each `validate_*` function inspects a full record (a mapping shaped like the
entity's `to_dict()` output) and returns the complete list of violated rules.
`ensure_valid` turns a non-empty list into a `ValidationError`.
"""

from __future__ import annotations

import html
from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Sequence

from .config import get_config
from .errors import ValidationError
from .models import (
    EXERCISE_CATEGORIES,
    EXPERIENCE_LEVELS,
    MESOCYCLE_STATUSES,
    MUSCLE_GROUPS,
    PERFORMANCE_RATINGS,
    RECOVERY_STATUSES,
    THEMES,
    TRAINING_SPLITS,
    UNITS,
    parse_datetime,
    to_local_naive,
)

USER_NAME_MAX = 100
EXERCISE_NAME_MAX = 200
MESOCYCLE_NAME_MAX = 100
SPLIT_DAY_NAME_MAX = 50
MAX_DURATION_MINUTES = 720

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
}


def sanitize_string(value: Optional[str]) -> str:
    """Trim and HTML-escape a free-text field."""
    text = (value or "").strip()
    return "".join(_HTML_ESCAPES.get(char, char) for char in text)


def ensure_valid(errors: Sequence[str]) -> None:
    if errors:
        raise ValidationError(errors)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _check_range(
    errors: List[str],
    value: Any,
    label: str,
    minimum: float | None = None,
    maximum: float | None = None,
    *,
    required: bool = False,
) -> None:
    if value is None:
        if required:
            errors.append(f"{label} is required")
        return
    number = _number(value)
    if number is None:
        errors.append(f"{label} must be a number")
        return
    if minimum is not None and maximum is not None:
        if number < minimum or number > maximum:
            errors.append(f"{label} must be between {minimum:g} and {maximum:g}")
    elif minimum is not None and number < minimum:
        errors.append(f"{label} must be at least {minimum:g}")
    elif maximum is not None and number > maximum:
        errors.append(f"{label} must be at most {maximum:g}")


def _check_name(errors: List[str], value: Any, label: str, max_length: int) -> None:
    # Limits apply to the text as typed. Stored names are HTML-escaped and may
    # be longer, so escaped values are measured in their unescaped form.
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{label} is required")
        return
    if len(html.unescape(value.strip())) > max_length:
        errors.append(f"{label} must be less than {max_length} characters")


def _check_choice(
    errors: List[str], value: Any, choices: Sequence[str], label: str, *, required: bool = False
) -> None:
    if value is None:
        if required:
            errors.append(f"{label} is required")
        return
    if value not in choices:
        errors.append(f"Invalid {label.lower()}")


def _check_id(errors: List[str], value: Any, label: str) -> None:
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{label} is required")


def _check_date(errors: List[str], value: Any, label: str) -> Optional[datetime]:
    if value is None or value == "":
        errors.append(f"{label} is required")
        return None
    try:
        return to_local_naive(parse_datetime(value, field=label))
    except ValueError:
        errors.append(f"{label} must be a valid date")
        return None


def validate_user_profile(record: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_name(errors, record.get("name"), "Name", USER_NAME_MAX)
    _check_choice(errors, record.get("experience_level"), EXPERIENCE_LEVELS, "Experience level")

    preferences = record.get("preferences")
    if preferences is None:
        return errors
    if not isinstance(preferences, Mapping):
        errors.append("Preferences must be an object")
        return errors
    _check_choice(errors, preferences.get("units"), UNITS, "Units preference")
    _check_choice(errors, preferences.get("theme"), THEMES, "Theme preference")
    _check_range(errors, preferences.get("first_day_of_week"), "First day of week", 0, 6)
    _check_range(errors, preferences.get("default_rest_seconds"), "Default rest time", 30, 300)
    return errors


def validate_exercise(record: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_name(errors, record.get("name"), "Exercise name", EXERCISE_NAME_MAX)
    _check_choice(errors, record.get("category"), EXERCISE_CATEGORIES, "Exercise category", required=True)

    muscle_groups = record.get("muscle_groups")
    if not isinstance(muscle_groups, (list, tuple)) or len(muscle_groups) == 0:
        errors.append("At least one muscle group is required")
    else:
        invalid = [str(group) for group in muscle_groups if group not in MUSCLE_GROUPS]
        if invalid:
            errors.append(f"Invalid muscle groups: {', '.join(invalid)}")
    return errors


def validate_workout_set(record: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_id(errors, record.get("exercise_id"), "Exercise ID")
    _check_range(errors, record.get("set_number"), "Set number", minimum=1, required=True)
    _check_range(errors, record.get("target_reps"), "Target reps", 1, 100, required=True)
    _check_range(errors, record.get("actual_reps"), "Actual reps", 1, 100)
    _check_range(errors, record.get("weight"), "Weight", minimum=0, required=True)
    _check_range(errors, record.get("rir"), "RIR", 0, 10)
    return errors


def _validate_feedback(feedback: Any) -> List[str]:
    errors: List[str] = []
    if not isinstance(feedback, Mapping):
        return ["Feedback must be an object"]
    _check_choice(errors, feedback.get("overall_recovery"), RECOVERY_STATUSES, "Recovery status")
    for index, entry in enumerate(feedback.get("muscle_group_feedback") or [], start=1):
        if not isinstance(entry, Mapping):
            errors.append(f"Muscle group feedback {index} must be an object")
            continue
        _check_choice(errors, entry.get("muscle_group"), MUSCLE_GROUPS, "Muscle group", required=True)
        _check_range(errors, entry.get("pump"), "Pump rating", 1, 5)
        _check_range(errors, entry.get("soreness"), "Soreness rating", 1, 5)
    return errors


def validate_workout(record: Mapping[str, Any], *, now: datetime | None = None) -> List[str]:
    errors: List[str] = []
    workout_date = _check_date(errors, record.get("date"), "Workout date")
    if workout_date is not None:
        reference = now or datetime.now()
        tolerance = timedelta(seconds=get_config().future_tolerance_seconds)
        if workout_date - reference > tolerance:
            errors.append("Workout date cannot be in the future")

    _check_range(errors, record.get("duration"), "Duration", 0, MAX_DURATION_MINUTES)
    _check_range(errors, record.get("week_number"), "Week number", 1, 6)

    exercises = record.get("exercises")
    if exercises is None:
        exercises = []
    if not isinstance(exercises, (list, tuple)):
        errors.append("Exercises must be a list")
        exercises = []
    for ex_index, entry in enumerate(exercises, start=1):
        if not isinstance(entry, Mapping):
            errors.append(f"Exercise {ex_index} must be an object")
            continue
        _check_id(errors, entry.get("exercise_id"), f"Exercise {ex_index}: Exercise ID")
        for set_index, item in enumerate(entry.get("sets") or [], start=1):
            if not isinstance(item, Mapping):
                errors.append(f"Exercise {ex_index}, set {set_index} must be an object")
                continue
            set_errors = validate_workout_set(item)
            if set_errors:
                errors.append(f"Exercise {ex_index}, set {set_index}: {', '.join(set_errors)}")

    feedback = record.get("feedback")
    if feedback is not None:
        errors.extend(_validate_feedback(feedback))
    return errors


def validate_training_session(record: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_id(errors, record.get("workout_id"), "Workout ID")
    _check_id(errors, record.get("exercise_id"), "Exercise ID")
    _check_date(errors, record.get("date"), "Session date")
    _check_range(errors, record.get("pump"), "Pump rating", 1, 5, required=True)
    _check_range(errors, record.get("soreness"), "Soreness rating", 1, 5, required=True)
    _check_range(errors, record.get("fatigue"), "Fatigue rating", 1, 5, required=True)
    _check_choice(errors, record.get("performance"), PERFORMANCE_RATINGS, "Performance rating", required=True)
    return errors


def validate_mesocycle_exercise(record: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_id(errors, record.get("exercise_id"), "Exercise ID")
    _check_range(errors, record.get("order"), "Exercise order", minimum=0)
    _check_range(errors, record.get("target_sets"), "Target sets", 1, 10)
    _check_range(errors, record.get("target_reps_min"), "Target minimum reps", 1, 50)
    _check_range(errors, record.get("target_reps_max"), "Target maximum reps", 1, 50)
    low = _number(record.get("target_reps_min"))
    high = _number(record.get("target_reps_max"))
    if low is not None and high is not None and low > high:
        errors.append("Target minimum reps cannot exceed maximum reps")
    _check_range(errors, record.get("rest_seconds"), "Rest time", 0, 600)
    return errors


def validate_split_day(record: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_name(errors, record.get("name"), "Split day name", SPLIT_DAY_NAME_MAX)
    _check_range(errors, record.get("day_order"), "Day order", minimum=1)
    for index, entry in enumerate(record.get("exercises") or [], start=1):
        if not isinstance(entry, Mapping):
            errors.append(f"Exercise {index} must be an object")
            continue
        entry_errors = validate_mesocycle_exercise(entry)
        if entry_errors:
            errors.append(f"Exercise {index}: {', '.join(entry_errors)}")
    return errors


def validate_mesocycle(record: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_name(errors, record.get("name"), "Mesocycle name", MESOCYCLE_NAME_MAX)
    start = _check_date(errors, record.get("start_date"), "Start date")
    end = _check_date(errors, record.get("end_date"), "End date")
    if start is not None and end is not None and end <= start:
        errors.append("End date must be after start date")

    duration = record.get("duration_weeks")
    _check_range(errors, duration, "Duration", 4, 6, required=True)
    duration_value = _number(duration)
    upper = int(duration_value) if duration_value is not None and 4 <= duration_value <= 6 else 6
    _check_range(errors, record.get("current_week"), "Current week", 1, upper, required=True)
    _check_range(errors, record.get("deload_week"), "Deload week", 1, upper, required=True)

    _check_choice(errors, record.get("training_split"), TRAINING_SPLITS, "Training split", required=True)
    _check_choice(errors, record.get("status"), MESOCYCLE_STATUSES, "Mesocycle status", required=True)

    split_days = record.get("split_days") or []
    if not isinstance(split_days, (list, tuple)):
        errors.append("Split days must be a list")
        split_days = []
    for index, day in enumerate(split_days, start=1):
        if not isinstance(day, Mapping):
            errors.append(f"Split day {index} must be an object")
            continue
        day_errors = validate_split_day(day)
        if day_errors:
            errors.append(f"Split day {index}: {', '.join(day_errors)}")
    return errors
