"""
Mesocycle progression: week arithmetic, split rotation and workout drafts.

The module-level functions are pure. `ProgressionEngine` wires them to an
`EntityStore` so workouts can be linked to the active block and the block's
current week follows the training log.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from math import floor
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from .config import get_config
from .errors import NotFoundError
from .models import (
    Mesocycle,
    MesocycleSplitDay,
    Workout,
    WorkoutExercise,
    WorkoutSet,
    to_local_naive,
)

if TYPE_CHECKING:  # pragma: no cover
    from .repository import EntityStore

LOGGER = logging.getLogger(__name__)


def _day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return to_local_naive(value).date()
    return value


def calculate_week(mesocycle: Mesocycle, when: date | datetime) -> Optional[int]:
    """
    Week of the mesocycle that `when` falls in, or `None` outside its dates.

    Both dates are compared at local-midnight granularity, so any time on the
    start or end day counts as inside the block.
    """
    start = _day(mesocycle.start_date)
    end = _day(mesocycle.end_date)
    day = _day(when)
    if day < start or day > end:
        return None
    week = (day - start).days // 7 + 1
    return min(week, mesocycle.duration_weeks)


def week_bounds(mesocycle: Mesocycle, week: int) -> Optional[Tuple[datetime, datetime]]:
    """First and last instant of `week`, or `None` when out of range."""
    if week < 1 or week > mesocycle.duration_weeks:
        return None
    first = datetime.combine(_day(mesocycle.start_date), time.min) + timedelta(days=(week - 1) * 7)
    last = datetime.combine(first.date() + timedelta(days=6), time.max)
    return first, last


def describe_week(mesocycle: Mesocycle, week: int) -> str:
    if week == mesocycle.deload_week:
        return f"Week {week} - Deload"
    if week <= 2:
        return f"Week {week} - Accumulation"
    if week == mesocycle.duration_weeks - 1:
        return f"Week {week} - Intensification"
    if week == mesocycle.duration_weeks:
        return f"Week {week} - Peak"
    return f"Week {week}"


def calendar_week_window(today: date | datetime, week_start: int = 0) -> Tuple[date, date]:
    """Calendar week containing `today`, starting on weekday `week_start` (0=Monday)."""
    day = _day(today)
    first = day - timedelta(days=(day.weekday() - week_start) % 7)
    return first, first + timedelta(days=6)


def get_next_split_day(
    mesocycle: Mesocycle,
    completed_workouts: Iterable[Workout],
    today: date | datetime | None = None,
    week_start: int = 0,
) -> Optional[MesocycleSplitDay]:
    """
    First split day (by day order) not yet trained this calendar week.

    Once every split day has at least one completed workout in the window the
    rotation starts over at the first split day.
    """
    days = mesocycle.ordered_split_days()
    if not days:
        return None

    first, last = calendar_week_window(today or datetime.now(), week_start)
    done = {
        workout.split_day_id
        for workout in completed_workouts
        if workout.completed and workout.split_day_id and first <= _day(workout.date) <= last
    }
    for split_day in days:
        if split_day.id not in done:
            return split_day
    return days[0]


def _raw_text(value: Optional[str]) -> Optional[str]:
    # Stored free text is HTML-escaped; drafts carry what the user typed so
    # saving them escapes it exactly once.
    return html.unescape(value) if value is not None else None


def deload_sets(target_sets: int, factor: float) -> int:
    return max(1, floor(target_sets * factor))


def draft_target_reps(reps_min: int, reps_max: int, default: int) -> int:
    return (reps_min + reps_max) // 2 or default


@dataclass(frozen=True)
class SplitDayStatus:
    split_day: MesocycleSplitDay
    completed: bool
    completed_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "split_day": self.split_day.to_dict(),
            "completed": self.completed,
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
        }


class ProgressionEngine:
    """Keeps mesocycle state in step with the workouts logged against it."""

    def __init__(self, store: "EntityStore") -> None:
        self._store = store

    def auto_associate(self, workout_date: date | datetime) -> Optional[Dict[str, Any]]:
        """Link a workout date to the active mesocycle and its week, if any."""
        active = self._store.get_active_mesocycle()
        if active is None:
            return None
        week = calculate_week(active, workout_date)
        if week is None:
            return None
        return {"mesocycle_id": active.id, "week_number": week}

    def update_progress(self, mesocycle_id: str) -> Optional[int]:
        """
        Move `current_week` to the week of the latest completed workout.

        Returns the resulting current week, or `None` when the mesocycle is
        missing, inactive or has no completed workouts yet.
        """
        with self._store.db.transaction():
            mesocycle = self._store.get_mesocycle(mesocycle_id)
            if mesocycle is None or mesocycle.status != "active":
                return None
            completed = self._store.workouts_for_mesocycle(mesocycle_id, completed=True)
            if not completed:
                return None

            latest = max(completed, key=lambda workout: workout.date)
            week = calculate_week(mesocycle, latest.date)
            if week is None or week == mesocycle.current_week:
                return mesocycle.current_week
            self._store.update_mesocycle(mesocycle_id, {"current_week": week})
            LOGGER.info("Mesocycle %s advanced to week %s.", mesocycle_id, week)
            return week

    def check_completion(self, mesocycle_id: str, now: datetime | None = None) -> bool:
        """Mark an active mesocycle completed once `now` is past its end date."""
        with self._store.db.transaction():
            mesocycle = self._store.get_mesocycle(mesocycle_id)
            if mesocycle is None or mesocycle.status != "active":
                return False
            reference = to_local_naive(now) if now is not None else datetime.now()
            if reference <= mesocycle.end_date:
                return False
            self._store.update_mesocycle(mesocycle_id, {"status": "completed"})
            LOGGER.info("Mesocycle %s completed.", mesocycle_id)
            return True

    def next_split_day(self, mesocycle_id: str, today: date | datetime | None = None) -> Optional[MesocycleSplitDay]:
        mesocycle = self._store.get_mesocycle(mesocycle_id)
        if mesocycle is None:
            return None
        completed = self._store.workouts_for_mesocycle(mesocycle_id, completed=True)
        profile = self._store.current_user_profile()
        week_start = profile.preferences.first_day_of_week if profile else 0
        return get_next_split_day(mesocycle, completed, today=today, week_start=week_start)

    def split_completion_status(self, mesocycle_id: str) -> List[SplitDayStatus]:
        """Per split day, whether it was trained during the current mesocycle week."""
        mesocycle = self._store.get_mesocycle(mesocycle_id)
        if mesocycle is None:
            return []
        bounds = week_bounds(mesocycle, mesocycle.current_week)
        if bounds is None:
            return []
        first, last = bounds
        completed = [
            workout
            for workout in self._store.workouts_for_mesocycle(mesocycle_id, completed=True)
            if first <= workout.date <= last
        ]

        statuses: List[SplitDayStatus] = []
        for split_day in mesocycle.split_days:
            matches = [workout for workout in completed if workout.split_day_id == split_day.id]
            latest = max(matches, key=lambda workout: workout.date) if matches else None
            statuses.append(
                SplitDayStatus(
                    split_day=split_day,
                    completed=latest is not None,
                    completed_date=latest.date if latest else None,
                )
            )
        return statuses

    def start_workout_from_split(
        self,
        mesocycle_id: str,
        split_day_id: str,
        now: datetime | None = None,
    ) -> Workout:
        """
        Build an unsaved workout prefilled from a split day's prescriptions.

        Sets are cut on the deload week and weights start from the most recent
        completed performance. Exercises deleted since the split was planned
        are skipped.
        """
        mesocycle = self._store.get_mesocycle(mesocycle_id)
        if mesocycle is None:
            raise NotFoundError("Mesocycle", mesocycle_id)
        split_day = mesocycle.find_split_day(split_day_id)
        if split_day is None:
            raise NotFoundError("Split day", split_day_id)

        config = get_config()
        workout_date = to_local_naive(now) if now is not None else datetime.now()
        week = calculate_week(mesocycle, workout_date)
        is_deload = week is not None and week == mesocycle.deload_week

        entries: List[WorkoutExercise] = []
        for prescription in sorted(split_day.exercises, key=lambda item: item.order):
            if self._store.get_exercise(prescription.exercise_id) is None:
                LOGGER.warning(
                    "Exercise %s from split day %s no longer exists; skipping.",
                    prescription.exercise_id,
                    split_day.name,
                )
                continue

            previous = self._store.previous_performance(prescription.exercise_id)
            last_set = previous.sets[-1] if previous and previous.sets else None
            target_sets = prescription.target_sets
            if is_deload:
                target_sets = deload_sets(target_sets, config.deload_set_factor)
            reps = draft_target_reps(
                prescription.target_reps_min,
                prescription.target_reps_max,
                config.default_target_reps,
            )
            sets = [
                WorkoutSet(
                    exercise_id=prescription.exercise_id,
                    set_number=number,
                    target_reps=reps,
                    weight=last_set.weight if last_set else 0.0,
                )
                for number in range(1, target_sets + 1)
            ]
            entries.append(
                WorkoutExercise(
                    exercise_id=prescription.exercise_id,
                    sets=sets,
                    notes=_raw_text(prescription.notes),
                )
            )

        return Workout(
            date=workout_date,
            exercises=entries,
            mesocycle_id=mesocycle.id,
            week_number=week,
            split_day_id=split_day.id,
        )
