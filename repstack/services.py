from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Mapping, Sequence

import pandas as pd

from .analysis import (
    PersonalRecord,
    TrainingStatistics,
    find_personal_records,
    training_statistics,
)
from .catalog import ProgramTemplate
from .metrics import progress_slope, weekly_volume_summary, workouts_to_dataframe
from .models import Exercise
from .progression import SplitDayStatus
from .repository import EntityStore


def render_table(headers: Sequence[str], rows: Sequence[Mapping[str, str]]) -> str:
    """Render right-aligned fixed-width columns."""
    widths = {key: len(key) for key in headers}
    for row in rows:
        for key in headers:
            widths[key] = max(widths[key], len(row[key]))

    def _format_line(values: Mapping[str, str]) -> str:
        return "  ".join(values[key].rjust(widths[key]) for key in headers)

    header_line = "  ".join(key.upper().rjust(widths[key]) for key in headers)
    body = "\n".join(_format_line(row) for row in rows)
    return "\n".join(filter(None, [header_line, body]))


def render_exercises(exercises: Sequence[Exercise]) -> str:
    headers = ("name", "category", "muscles", "custom")
    rows = [
        {
            "name": exercise.name,
            "category": exercise.category,
            "muscles": ", ".join(exercise.muscle_groups),
            "custom": "yes" if exercise.is_custom else "no",
        }
        for exercise in exercises
    ]
    return render_table(headers, rows)


def render_statistics(stats: TrainingStatistics) -> list[str]:
    duration = f"{stats.average_duration:.0f} min" if stats.average_duration is not None else "n/a"
    first = stats.first_workout.date().isoformat() if stats.first_workout else "n/a"
    last = stats.last_workout.date().isoformat() if stats.last_workout else "n/a"
    return [
        f"Workouts: {stats.completed_workouts} completed of {stats.total_workouts}",
        f"Sets: {stats.total_sets}, volume {stats.total_volume:.1f}",
        f"Average duration: {duration}",
        f"Frequency: {stats.workouts_per_week:.2f} workouts/week",
        f"Streak: current {stats.current_streak} day(s), longest {stats.longest_streak} day(s)",
        f"Range: {first} to {last}",
    ]


def render_records(records: Sequence[PersonalRecord]) -> str:
    headers = ("range", "weight", "reps", "e1rm", "date")
    rows = [
        {
            "range": record.rep_range,
            "weight": f"{record.weight:g}",
            "reps": str(record.reps),
            "e1rm": f"{record.estimated_one_rep_max:.1f}",
            "date": record.date.date().isoformat(),
        }
        for record in records
    ]
    return render_table(headers, rows)


def render_weekly_summary(summary: pd.DataFrame) -> str:
    headers = ("week", "workouts", "sets", "volume", "best_e1rm")
    rows = [
        {
            "week": str(row["week"]),
            "workouts": str(int(row["workouts"])),
            "sets": str(int(row["sets"])),
            "volume": f"{float(row['volume']):.1f}",
            "best_e1rm": f"{float(row['best_e1rm']):.1f}",
        }
        for row in summary.to_dict("records")
    ]
    return render_table(headers, rows)


def render_split_status(statuses: Sequence[SplitDayStatus]) -> str:
    headers = ("order", "split", "done", "date")
    rows = [
        {
            "order": str(status.split_day.day_order),
            "split": status.split_day.name,
            "done": "yes" if status.completed else "no",
            "date": status.completed_date.date().isoformat() if status.completed_date else "",
        }
        for status in statuses
    ]
    return render_table(headers, rows)


def render_templates(templates: Sequence[ProgramTemplate]) -> str:
    headers = ("id", "name", "days", "level", "split days")
    rows = [
        {
            "id": template.id,
            "name": template.name,
            "days": f"{template.days_per_week}/week",
            "level": template.target_level,
            "split days": ", ".join(day.name for day in template.days),
        }
        for template in templates
    ]
    return render_table(headers, rows)


@dataclass(frozen=True)
class ExerciseReport:
    """Records and trend for one exercise, ready for display."""

    exercise: Exercise
    records: list[PersonalRecord]
    slope_per_week: float | None


def build_exercise_report(store: EntityStore, exercise: Exercise) -> ExerciseReport:
    workouts = store.completed_workouts()
    df_sets = workouts_to_dataframe(workouts, [exercise])
    return ExerciseReport(
        exercise=exercise,
        records=find_personal_records(workouts, exercise.id),
        slope_per_week=progress_slope(df_sets, exercise.id),
    )


def build_statistics(store: EntityStore, today: date | None = None) -> TrainingStatistics:
    return training_statistics(store.list_workouts(), today=today)


def build_weekly_summary(store: EntityStore) -> pd.DataFrame:
    df_sets = workouts_to_dataframe(store.completed_workouts(), store.list_exercises())
    return weekly_volume_summary(df_sets)


def find_exercise(store: EntityStore, name_or_id: str) -> Exercise | None:
    """Look an exercise up by id, then by case-insensitive name."""
    exercise = store.get_exercise(name_or_id)
    if exercise is not None:
        return exercise
    wanted = name_or_id.strip().lower()
    for candidate in store.list_exercises():
        if candidate.name.lower() == wanted:
            return candidate
    return None
