from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from repstack.errors import ValidationError
from repstack.validation import (
    ensure_valid,
    sanitize_string,
    validate_exercise,
    validate_mesocycle,
    validate_training_session,
    validate_user_profile,
    validate_workout,
)


def _workout(**overrides: object) -> dict[str, object]:
    record: dict[str, object] = {
        "date": "2024-03-01T18:00:00",
        "completed": False,
        "exercises": [
            {
                "exercise_id": "ex-1",
                "sets": [
                    {"exercise_id": "ex-1", "set_number": 1, "target_reps": 8, "weight": 60.0},
                ],
            }
        ],
    }
    record.update(overrides)
    return record


def _mesocycle(**overrides: object) -> dict[str, object]:
    record: dict[str, object] = {
        "name": "Spring block",
        "start_date": "2024-01-01T00:00:00",
        "end_date": "2024-01-28T00:00:00",
        "duration_weeks": 4,
        "current_week": 1,
        "deload_week": 4,
        "training_split": "upper_lower",
        "status": "planned",
        "split_days": [],
    }
    record.update(overrides)
    return record


def test_sanitize_string_trims_and_escapes_html() -> None:
    assert sanitize_string("  <b>\"Tom's\" & co</b> ") == "&lt;b&gt;&quot;Tom&#39;s&quot; &amp; co&lt;/b&gt;"
    assert sanitize_string(None) == ""


def test_validate_exercise_reports_every_violation() -> None:
    errors = validate_exercise({"name": "", "category": "kettlebell", "muscle_groups": []})
    assert "Exercise name is required" in errors
    assert "Invalid exercise category" in errors
    assert "At least one muscle group is required" in errors
    assert len(errors) == 3


def test_validate_exercise_lists_unknown_muscle_groups() -> None:
    errors = validate_exercise({"name": "Curl", "category": "dumbbell", "muscle_groups": ["biceps", "wings"]})
    assert errors == ["Invalid muscle groups: wings"]


def test_validate_exercise_name_length_bound() -> None:
    errors = validate_exercise({"name": "x" * 201, "category": "other", "muscle_groups": ["abs"]})
    assert errors == ["Exercise name must be less than 200 characters"]


def test_validate_user_profile_checks_preferences() -> None:
    errors = validate_user_profile(
        {
            "name": "Sam",
            "experience_level": "expert",
            "preferences": {"units": "metric", "theme": "neon", "first_day_of_week": 7, "default_rest_seconds": 10},
        }
    )
    assert "Invalid experience level" in errors
    assert "Invalid theme preference" in errors
    assert "First day of week must be between 0 and 6" in errors
    assert "Default rest time must be between 30 and 300" in errors


def test_validate_workout_accepts_valid_record() -> None:
    assert validate_workout(_workout()) == []


def test_validate_workout_collects_set_errors_with_position() -> None:
    record = _workout(
        duration=800,
        exercises=[
            {
                "exercise_id": "ex-1",
                "sets": [
                    {"exercise_id": "ex-1", "set_number": 0, "target_reps": 0, "weight": -5, "rir": 11},
                ],
            }
        ],
    )
    errors = validate_workout(record)
    assert "Duration must be between 0 and 720" in errors
    set_errors = [error for error in errors if error.startswith("Exercise 1, set 1:")]
    assert len(set_errors) == 1
    for fragment in (
        "Set number must be at least 1",
        "Target reps must be between 1 and 100",
        "Weight must be at least 0",
        "RIR must be between 0 and 10",
    ):
        assert fragment in set_errors[0]


def test_validate_workout_future_tolerance() -> None:
    now = datetime(2024, 3, 1, 12, 0, 0)
    slightly_ahead = _workout(date=(now + timedelta(seconds=30)).isoformat())
    too_far = _workout(date=(now + timedelta(minutes=5)).isoformat())
    assert validate_workout(slightly_ahead, now=now) == []
    assert validate_workout(too_far, now=now) == ["Workout date cannot be in the future"]


def test_validate_workout_requires_date() -> None:
    assert validate_workout(_workout(date=None)) == ["Workout date is required"]
    assert validate_workout(_workout(date="yesterday")) == ["Workout date must be a valid date"]


def test_validate_training_session_ratings() -> None:
    errors = validate_training_session(
        {
            "workout_id": "w-1",
            "exercise_id": "ex-1",
            "date": "2024-03-01T18:00:00",
            "pump": 6,
            "soreness": 0,
            "performance": "legendary",
        }
    )
    assert errors == [
        "Pump rating must be between 1 and 5",
        "Soreness rating must be between 1 and 5",
        "Fatigue rating is required",
        "Invalid performance rating",
    ]


def test_validate_mesocycle_cross_field_rules() -> None:
    errors = validate_mesocycle(
        _mesocycle(end_date="2023-12-01T00:00:00", deload_week=5, duration_weeks=4, status="paused")
    )
    assert "End date must be after start date" in errors
    assert "Deload week must be between 1 and 4" in errors
    assert "Invalid mesocycle status" in errors


def test_validate_mesocycle_split_day_rules() -> None:
    record = _mesocycle(
        split_days=[
            {
                "name": "Upper A",
                "day_order": 1,
                "exercises": [
                    {"exercise_id": "ex-1", "order": 0, "target_sets": 12, "target_reps_min": 12,
                     "target_reps_max": 8, "rest_seconds": 700},
                ],
            }
        ]
    )
    errors = validate_mesocycle(record)
    assert len(errors) == 1
    message = errors[0]
    assert message.startswith("Split day 1: Exercise 1:")
    assert "Target sets must be between 1 and 10" in message
    assert "Target minimum reps cannot exceed maximum reps" in message
    assert "Rest time must be between 0 and 600" in message


@pytest.mark.parametrize("duration", [3, 7])
def test_validate_mesocycle_duration_bounds(duration: int) -> None:
    errors = validate_mesocycle(_mesocycle(duration_weeks=duration, deload_week=1))
    assert "Duration must be between 4 and 6" in errors


def test_ensure_valid_raises_with_all_errors() -> None:
    with pytest.raises(ValidationError) as excinfo:
        ensure_valid(["first", "second"])
    assert excinfo.value.errors == ["first", "second"]
    assert "first, second" in str(excinfo.value)
    ensure_valid([])
