from __future__ import annotations

from datetime import datetime

import pytest

from repstack.metrics import (
    SET_COLUMNS,
    WEEKLY_COLUMNS,
    progress_slope,
    weekly_volume_summary,
    workouts_to_dataframe,
)
from repstack.models import Exercise, Workout, WorkoutExercise, WorkoutSet

SQUAT = Exercise(name="Squat", category="barbell", muscle_groups=["quads"], id="squat")


def _sets(weight: float, reps: int, count: int = 2) -> list[WorkoutSet]:
    return [
        WorkoutSet(
            exercise_id="squat",
            set_number=number,
            target_reps=reps,
            actual_reps=reps,
            weight=weight,
            rir=2 if number == 1 else None,
            completed=True,
        )
        for number in range(1, count + 1)
    ]


def _make_workouts() -> list[Workout]:
    return [
        Workout(date=datetime(2024, 1, 8, 18), exercises=[WorkoutExercise("squat", _sets(110, 5))], completed=True,
                id="w2"),
        Workout(date=datetime(2024, 1, 1, 18), exercises=[WorkoutExercise("squat", _sets(100, 5))], completed=True,
                id="w1"),
        Workout(date=datetime(2024, 1, 9, 18), exercises=[WorkoutExercise("squat", _sets(200, 5))], id="draft"),
    ]


def test_workouts_to_dataframe_has_one_row_per_completed_set() -> None:
    df = workouts_to_dataframe(_make_workouts(), [SQUAT])
    assert list(df.columns) == SET_COLUMNS
    assert len(df) == 4
    assert list(df["workout_id"]) == ["w1", "w1", "w2", "w2"]
    assert set(df["exercise"]) == {"Squat"}
    assert list(df["week"].unique()) == ["2024-W01", "2024-W02"]
    assert df.loc[0, "volume"] == pytest.approx(500)
    assert df.loc[0, "e1rm"] == pytest.approx(116.667, rel=1e-4)
    assert df.loc[0, "rir"] == 2


def test_workouts_to_dataframe_empty() -> None:
    df = workouts_to_dataframe([])
    assert df.empty
    assert list(df.columns) == SET_COLUMNS
    assert list(weekly_volume_summary(df).columns) == WEEKLY_COLUMNS


def test_weekly_volume_summary() -> None:
    summary = weekly_volume_summary(workouts_to_dataframe(_make_workouts(), {"squat": SQUAT}))
    assert list(summary["week"]) == ["2024-W01", "2024-W02"]
    first = summary.iloc[0]
    assert first["workouts"] == 1
    assert first["sets"] == 2
    assert first["volume"] == pytest.approx(1000)
    assert summary.iloc[1]["best_e1rm"] == pytest.approx(128.333, rel=1e-4)


def test_progress_slope_per_week() -> None:
    df = workouts_to_dataframe(_make_workouts())
    assert progress_slope(df, "squat") == pytest.approx(11.667, rel=1e-3)
    assert progress_slope(df, "bench") is None
    assert progress_slope(df[df["workout_id"] == "w1"], "squat") is None
