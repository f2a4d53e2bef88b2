from __future__ import annotations

from datetime import date, datetime

import pytest

from repstack.analysis import (
    brzycki_one_rep_max,
    calculate_streaks,
    epley_one_rep_max,
    exercise_progress_trend,
    exercise_volume,
    find_personal_records,
    muscle_group_volume,
    training_statistics,
    volume_by_exercise,
    workout_calendar,
    workout_volume,
)
from repstack.models import Exercise, Workout, WorkoutExercise, WorkoutSet

BENCH = Exercise(name="Bench Press", category="barbell", muscle_groups=["chest", "triceps"], id="bench")
ROW = Exercise(name="Row", category="cable", muscle_groups=["back"], id="row")


def _set(exercise_id: str, weight: float, reps: int, completed: bool = True, number: int = 1) -> WorkoutSet:
    return WorkoutSet(
        exercise_id=exercise_id,
        set_number=number,
        target_reps=reps,
        actual_reps=reps,
        weight=weight,
        completed=completed,
    )


def _workout(when: datetime, *entries: WorkoutExercise, completed: bool = True, **extra: object) -> Workout:
    return Workout(date=when, exercises=list(entries), completed=completed, **extra)


def test_one_rep_max_formulas_known_values() -> None:
    assert epley_one_rep_max(100, 10) == pytest.approx(133.333, rel=1e-4)
    assert brzycki_one_rep_max(100, 10) == pytest.approx(133.333, rel=1e-4)
    assert epley_one_rep_max(100, 5) == pytest.approx(116.667, rel=1e-4)
    assert brzycki_one_rep_max(100, 5) == pytest.approx(112.5)


@pytest.mark.parametrize("reps", range(2, 11))
def test_epley_not_below_brzycki_up_to_ten_reps(reps: int) -> None:
    assert epley_one_rep_max(80, reps) >= brzycki_one_rep_max(80, reps) - 1e-9


def test_one_rep_max_edge_cases() -> None:
    assert epley_one_rep_max(120, 1) == brzycki_one_rep_max(120, 1) == 120
    assert epley_one_rep_max(0, 5) == 0.0
    assert brzycki_one_rep_max(100, 0) == 0.0
    assert epley_one_rep_max(-10, 5) == 0.0
    assert brzycki_one_rep_max(50, 37) == 50
    assert brzycki_one_rep_max(50, 45) == 50


def test_volume_counts_completed_sets_only() -> None:
    entry = WorkoutExercise(
        exercise_id="bench",
        sets=[_set("bench", 100, 5), _set("bench", 100, 5, completed=False), _set("bench", 60, 10)],
    )
    assert exercise_volume(entry) == pytest.approx(1100)
    workout = _workout(datetime(2024, 1, 1, 18), entry, WorkoutExercise("row", [_set("row", 50, 10)]))
    assert workout_volume(workout) == pytest.approx(1600)


def test_set_volume_falls_back_to_target_reps() -> None:
    pending = WorkoutSet(exercise_id="bench", set_number=1, target_reps=8, weight=50, completed=True)
    entry = WorkoutExercise(exercise_id="bench", sets=[pending])
    assert exercise_volume(entry) == pytest.approx(400)


def test_personal_records_bucketed_by_rep_range() -> None:
    first = _workout(
        datetime(2024, 1, 1, 18),
        WorkoutExercise(
            "bench",
            [
                _set("bench", 100, 1),
                _set("bench", 80, 5),
                _set("bench", 200, 1, completed=False),
                _set("bench", 40, 40),
            ],
        ),
        id="first",
    )
    second = _workout(
        datetime(2024, 1, 8, 18),
        WorkoutExercise("bench", [_set("bench", 100, 1), _set("bench", 60, 10)]),
        id="second",
    )
    skipped = _workout(datetime(2024, 1, 9, 18), WorkoutExercise("bench", [_set("bench", 300, 1)]), completed=False)

    records = find_personal_records([second, skipped, first], "bench")
    assert [record.rep_range for record in records] == ["1RM", "5RM", "10RM"]
    one_rm = records[0]
    assert (one_rm.weight, one_rm.workout_id) == (100, "first")
    assert records[1].estimated_one_rep_max == pytest.approx(epley_one_rep_max(80, 5))
    assert find_personal_records([first], "row") == []


def test_muscle_group_volume_credits_every_group() -> None:
    workouts = [
        _workout(
            datetime(2024, 1, 2, 18),
            WorkoutExercise("bench", [_set("bench", 100, 10)]),
            WorkoutExercise("row", [_set("row", 50, 10)]),
            WorkoutExercise("deleted", [_set("deleted", 10, 10)]),
        ),
        _workout(datetime(2024, 2, 2, 18), WorkoutExercise("row", [_set("row", 50, 10)])),
    ]
    totals = muscle_group_volume(workouts, [BENCH, ROW], start=date(2024, 1, 1), end=date(2024, 1, 31))
    assert [(item.muscle_group, item.volume, item.sets) for item in totals] == [
        ("chest", 1000, 1),
        ("triceps", 1000, 1),
        ("back", 500, 1),
    ]
    unbounded = {item.muscle_group: item.volume for item in muscle_group_volume(workouts, [BENCH, ROW])}
    assert unbounded["back"] == 1000


def test_calculate_streaks() -> None:
    days = [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 10)]
    assert calculate_streaks(days, today=date(2024, 1, 10)) == (1, 3)
    assert calculate_streaks(days, today=date(2024, 1, 11)) == (1, 3)
    assert calculate_streaks(days, today=date(2024, 1, 12)) == (0, 3)
    assert calculate_streaks([], today=date(2024, 1, 12)) == (0, 0)
    # A last training day after `today` still keeps the streak.
    assert calculate_streaks([date(2024, 1, 1), date(2024, 1, 2)], today=date(2023, 12, 31)) == (2, 2)
    # Two workouts on one day count once.
    same_day = [datetime(2024, 1, 4, 8), datetime(2024, 1, 4, 19), datetime(2024, 1, 5, 7)]
    assert calculate_streaks(same_day, today=date(2024, 1, 5)) == (2, 2)


def test_training_statistics() -> None:
    workouts = [
        _workout(datetime(2024, 1, 1, 18), WorkoutExercise("bench", [_set("bench", 100, 5)]), duration=60),
        _workout(datetime(2024, 1, 15, 18), WorkoutExercise("bench", [_set("bench", 100, 5)]), duration=40),
        _workout(datetime(2024, 1, 16, 18), WorkoutExercise("bench", [_set("bench", 100, 5)]), completed=False),
    ]
    stats = training_statistics(workouts, today=date(2024, 1, 16))
    assert stats.total_workouts == 3
    assert stats.completed_workouts == 2
    assert stats.total_sets == 2
    assert stats.total_volume == pytest.approx(1000)
    assert stats.average_duration == pytest.approx(50)
    assert stats.workouts_per_week == pytest.approx(1.0)
    assert (stats.current_streak, stats.longest_streak) == (1, 1)
    assert stats.first_workout == datetime(2024, 1, 1, 18)
    assert stats.to_dict()["last_workout"] == "2024-01-15T18:00:00"


def test_training_statistics_edge_cases() -> None:
    assert training_statistics([]).completed_workouts == 0
    single_day = [
        _workout(datetime(2024, 1, 1, 8), WorkoutExercise("bench", [_set("bench", 100, 5)])),
        _workout(datetime(2024, 1, 1, 18), WorkoutExercise("bench", [_set("bench", 100, 5)])),
    ]
    stats = training_statistics(single_day, today=date(2024, 1, 1))
    assert stats.workouts_per_week == 0.0
    assert stats.average_duration is None


def test_workout_calendar_covers_every_day() -> None:
    workouts = [
        _workout(datetime(2024, 1, 2, 7), id="a"),
        _workout(datetime(2024, 1, 2, 19), id="b"),
        _workout(datetime(2024, 1, 3, 7), id="c", completed=False),
    ]
    calendar = workout_calendar(workouts, date(2024, 1, 1), date(2024, 1, 3))
    assert [(day.day.day, day.count) for day in calendar] == [(1, 0), (2, 2), (3, 0)]
    assert calendar[1].to_dict()["workout_ids"] == ["a", "b"]
    assert workout_calendar(workouts, date(2024, 1, 3), date(2024, 1, 1)) == []


def test_exercise_progress_trend_picks_best_set_per_workout() -> None:
    workouts = [
        _workout(
            datetime(2024, 1, 8, 18),
            WorkoutExercise("bench", [_set("bench", 90, 5), _set("bench", 70, 10)]),
            id="later",
        ),
        _workout(datetime(2024, 1, 1, 18), WorkoutExercise("bench", [_set("bench", 80, 5)]), id="earlier"),
        _workout(datetime(2024, 1, 3, 18), WorkoutExercise("row", [_set("row", 80, 5)])),
    ]
    points = exercise_progress_trend(workouts, "bench")
    assert [point.workout_id for point in points] == ["earlier", "later"]
    assert (points[1].weight, points[1].reps, points[1].volume) == (70, 10, 700)


def test_volume_by_exercise() -> None:
    workouts = [
        _workout(datetime(2024, 1, 1, 18), WorkoutExercise("bench", [_set("bench", 100, 5)])),
        _workout(datetime(2024, 1, 2, 18), WorkoutExercise("bench", [_set("bench", 50, 10)])),
        _workout(datetime(2024, 1, 3, 18), WorkoutExercise("row", [_set("row", 50, 10)]), completed=False),
    ]
    assert volume_by_exercise(workouts) == {"bench": pytest.approx(1000)}
