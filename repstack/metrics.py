from __future__ import annotations

from typing import Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from .analysis import epley_one_rep_max, set_volume
from .models import Exercise, Workout

SET_COLUMNS = [
    "workout_id",
    "date",
    "week",
    "exercise_id",
    "exercise",
    "set_number",
    "reps",
    "weight",
    "rir",
    "volume",
    "e1rm",
]
WEEKLY_COLUMNS = ["week", "workouts", "sets", "volume", "best_e1rm"]


def _iso_week(value: pd.Timestamp) -> str:
    iso_year, iso_week, _ = value.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def workouts_to_dataframe(
    workouts: Sequence[Workout],
    exercises: Iterable[Exercise] | Mapping[str, Exercise] = (),
) -> pd.DataFrame:
    """One row per completed set of every completed workout."""
    if isinstance(exercises, Mapping):
        names = {key: exercise.name for key, exercise in exercises.items()}
    else:
        names = {exercise.id: exercise.name for exercise in exercises}

    records: list[dict[str, object]] = []
    for workout in workouts:
        if not workout.completed:
            continue
        stamp = pd.Timestamp(workout.date)
        for entry in workout.exercises:
            for item in entry.sets:
                if not item.completed:
                    continue
                records.append(
                    {
                        "workout_id": workout.id,
                        "date": stamp,
                        "week": _iso_week(stamp),
                        "exercise_id": item.exercise_id or entry.exercise_id,
                        "exercise": names.get(entry.exercise_id, entry.exercise_id),
                        "set_number": item.set_number,
                        "reps": item.reps,
                        "weight": float(item.weight),
                        "rir": item.rir if item.rir is not None else pd.NA,
                        "volume": set_volume(item),
                        "e1rm": epley_one_rep_max(item.weight, item.reps),
                    }
                )

    if not records:
        return pd.DataFrame(columns=SET_COLUMNS)
    df = pd.DataFrame(records, columns=SET_COLUMNS)
    df.sort_values(["date", "workout_id", "set_number"], inplace=True)
    df.reset_index(drop=True, inplace=True)
    return df


def weekly_volume_summary(df_sets: pd.DataFrame) -> pd.DataFrame:
    """Aggregate per ISO week: distinct workouts, completed sets, volume and best e1RM."""
    if df_sets.empty:
        return pd.DataFrame(columns=WEEKLY_COLUMNS)
    summary = (
        df_sets.groupby("week", as_index=False)
        .agg(
            workouts=("workout_id", "nunique"),
            sets=("set_number", "count"),
            volume=("volume", "sum"),
            best_e1rm=("e1rm", "max"),
        )
        .sort_values("week")
        .reset_index(drop=True)
    )
    return summary[WEEKLY_COLUMNS]


def progress_slope(df_sets: pd.DataFrame, exercise_id: str) -> float | None:
    """
    Least-squares change in best estimated 1RM per week for one exercise.

    Uses the best e1RM of each training day; needs at least two distinct days.
    """
    if df_sets.empty:
        return None
    subset = df_sets[df_sets["exercise_id"] == exercise_id]
    if subset.empty:
        return None
    daily = subset.groupby(subset["date"].dt.normalize())["e1rm"].max().sort_index()
    if len(daily) < 2:
        return None
    weeks = (daily.index - daily.index[0]).days.to_numpy(dtype=float) / 7.0
    slope, _intercept = np.polyfit(weeks, daily.to_numpy(dtype=float), 1)
    return float(slope)
