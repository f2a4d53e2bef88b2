from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from .models import Exercise, Workout, WorkoutExercise, WorkoutSet, to_local_naive

# Rep ranges used to bucket personal records, in display order.
REP_RANGES: Tuple[Tuple[str, int, int], ...] = (
    ("1RM", 1, 1),
    ("3RM", 2, 3),
    ("5RM", 4, 6),
    ("8RM", 7, 9),
    ("10RM", 10, 12),
    ("15RM", 13, 15),
    ("20RM", 16, 30),
)

_MIN_WEEKS = 1e-9


def epley_one_rep_max(weight: float, reps: int) -> float:
    """Estimate 1RM as weight x (1 + reps/30)."""
    if weight <= 0 or reps <= 0:
        return 0.0
    if reps == 1:
        return float(weight)
    return weight * (1 + reps / 30)


def brzycki_one_rep_max(weight: float, reps: int) -> float:
    """
    Estimate 1RM as weight x 36 / (37 - reps).

    The formula breaks down at 37 reps and above, where the weight itself is
    returned.
    """
    if weight <= 0 or reps <= 0:
        return 0.0
    if reps == 1 or reps >= 37:
        return float(weight)
    return weight * 36 / (37 - reps)


def set_volume(workout_set: WorkoutSet) -> float:
    return workout_set.reps * workout_set.weight


def exercise_volume(entry: WorkoutExercise) -> float:
    """Volume over completed sets only."""
    return sum(set_volume(item) for item in entry.sets if item.completed)


def workout_volume(workout: Workout) -> float:
    return sum(exercise_volume(entry) for entry in workout.exercises)


def _completed(workouts: Iterable[Workout]) -> List[Workout]:
    return [workout for workout in workouts if workout.completed]


def _calendar_day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return to_local_naive(value).date()
    return value


@dataclass(frozen=True)
class PersonalRecord:
    rep_range: str
    weight: float
    reps: int
    estimated_one_rep_max: float
    date: datetime
    workout_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rep_range": self.rep_range,
            "weight": self.weight,
            "reps": self.reps,
            "estimated_one_rep_max": self.estimated_one_rep_max,
            "date": self.date.isoformat(),
            "workout_id": self.workout_id,
        }


def _rep_range(reps: int) -> Optional[str]:
    for label, low, high in REP_RANGES:
        if low <= reps <= high:
            return label
    return None


def find_personal_records(workouts: Iterable[Workout], exercise_id: str) -> List[PersonalRecord]:
    """
    Heaviest completed set per rep range for one exercise.

    Workouts are scanned oldest first and the first set reaching a weight
    keeps the record. Ranges with no qualifying set are left out.
    """
    best: Dict[str, PersonalRecord] = {}
    for workout in sorted(_completed(workouts), key=lambda item: item.date):
        for entry in workout.exercises:
            if entry.exercise_id != exercise_id:
                continue
            for item in entry.sets:
                if not item.completed:
                    continue
                label = _rep_range(item.reps)
                if label is None:
                    continue
                current = best.get(label)
                if current is None or item.weight > current.weight:
                    best[label] = PersonalRecord(
                        rep_range=label,
                        weight=item.weight,
                        reps=item.reps,
                        estimated_one_rep_max=epley_one_rep_max(item.weight, item.reps),
                        date=workout.date,
                        workout_id=workout.id,
                    )
    return [best[label] for label, _, _ in REP_RANGES if label in best]


@dataclass
class MuscleGroupVolume:
    muscle_group: str
    volume: float = 0.0
    sets: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"muscle_group": self.muscle_group, "volume": self.volume, "sets": self.sets}


def muscle_group_volume(
    workouts: Iterable[Workout],
    exercises: Iterable[Exercise],
    start: date | datetime | None = None,
    end: date | datetime | None = None,
) -> List[MuscleGroupVolume]:
    """
    Completed volume and set count per muscle group, optionally within [start, end].

    An exercise's whole volume is credited to each muscle group it targets,
    so summing across groups counts multi-group exercises more than once.
    """
    lookup = {exercise.id: exercise for exercise in exercises}
    low = _calendar_day(start) if start is not None else None
    high = _calendar_day(end) if end is not None else None

    totals: Dict[str, MuscleGroupVolume] = {}
    for workout in _completed(workouts):
        day = _calendar_day(workout.date)
        if (low is not None and day < low) or (high is not None and day > high):
            continue
        for entry in workout.exercises:
            exercise = lookup.get(entry.exercise_id)
            if exercise is None:
                continue
            volume = exercise_volume(entry)
            completed_sets = sum(1 for item in entry.sets if item.completed)
            for group in exercise.muscle_groups:
                bucket = totals.setdefault(group, MuscleGroupVolume(group))
                bucket.volume += volume
                bucket.sets += completed_sets
    return sorted(totals.values(), key=lambda item: (-item.volume, item.muscle_group))


def calculate_streaks(days: Iterable[date | datetime], today: date | datetime | None = None) -> Tuple[int, int]:
    """
    Return `(current, longest)` runs of consecutive training days.

    The current streak only counts when the last training day is at most one
    day before `today`; a last day after `today` keeps it as well.
    """
    ordered = sorted({_calendar_day(day) for day in days})
    if not ordered:
        return 0, 0

    longest = running = 1
    for previous, following in zip(ordered, ordered[1:]):
        gap = (following - previous).days
        if gap == 1:
            running += 1
        else:
            longest = max(longest, running)
            running = 1
    longest = max(longest, running)

    reference = _calendar_day(today) if today is not None else date.today()
    current = running if (reference - ordered[-1]).days <= 1 else 0
    return current, longest


@dataclass(frozen=True)
class TrainingStatistics:
    total_workouts: int = 0
    completed_workouts: int = 0
    total_sets: int = 0
    total_volume: float = 0.0
    average_duration: Optional[float] = None
    workouts_per_week: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0
    first_workout: Optional[datetime] = None
    last_workout: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_workouts": self.total_workouts,
            "completed_workouts": self.completed_workouts,
            "total_sets": self.total_sets,
            "total_volume": self.total_volume,
            "average_duration": self.average_duration,
            "workouts_per_week": self.workouts_per_week,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "first_workout": self.first_workout.isoformat() if self.first_workout else None,
            "last_workout": self.last_workout.isoformat() if self.last_workout else None,
        }


def training_statistics(workouts: Sequence[Workout], today: date | datetime | None = None) -> TrainingStatistics:
    """Aggregate counts, volume, frequency and streaks over the training log."""
    completed = sorted(_completed(workouts), key=lambda item: item.date)
    if not completed:
        return TrainingStatistics(total_workouts=len(workouts))

    total_sets = sum(
        1 for workout in completed for entry in workout.exercises for item in entry.sets if item.completed
    )
    durations = [workout.duration for workout in completed if workout.duration is not None]
    first, last = completed[0].date, completed[-1].date
    span_days = (_calendar_day(last) - _calendar_day(first)).days
    # A log spanning a single day has no meaningful weekly rate.
    per_week = len(completed) / max(span_days / 7, _MIN_WEEKS) if span_days > 0 else 0.0
    current, longest = calculate_streaks((workout.date for workout in completed), today)

    return TrainingStatistics(
        total_workouts=len(workouts),
        completed_workouts=len(completed),
        total_sets=total_sets,
        total_volume=sum(workout_volume(workout) for workout in completed),
        average_duration=sum(durations) / len(durations) if durations else None,
        workouts_per_week=per_week,
        current_streak=current,
        longest_streak=longest,
        first_workout=first,
        last_workout=last,
    )


@dataclass
class CalendarDay:
    day: date
    workouts: List[Workout] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.workouts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "count": self.count,
            "workout_ids": [workout.id for workout in self.workouts],
        }


def workout_calendar(
    workouts: Iterable[Workout],
    start: date | datetime,
    end: date | datetime,
) -> List[CalendarDay]:
    """One entry per day in [start, end] with that day's completed workouts."""
    first = _calendar_day(start)
    last = _calendar_day(end)
    if last < first:
        return []
    days = {
        first + timedelta(days=offset): CalendarDay(first + timedelta(days=offset))
        for offset in range((last - first).days + 1)
    }
    for workout in sorted(_completed(workouts), key=lambda item: item.date):
        bucket = days.get(_calendar_day(workout.date))
        if bucket is not None:
            bucket.workouts.append(workout)
    return list(days.values())


@dataclass(frozen=True)
class ProgressPoint:
    date: datetime
    weight: float
    reps: int
    volume: float
    estimated_one_rep_max: float
    workout_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "weight": self.weight,
            "reps": self.reps,
            "volume": self.volume,
            "estimated_one_rep_max": self.estimated_one_rep_max,
            "workout_id": self.workout_id,
        }


def exercise_progress_trend(workouts: Iterable[Workout], exercise_id: str) -> List[ProgressPoint]:
    """Best completed set (by volume) per workout, oldest first."""
    points: List[ProgressPoint] = []
    for workout in sorted(_completed(workouts), key=lambda item: item.date):
        best: Optional[WorkoutSet] = None
        for entry in workout.exercises:
            if entry.exercise_id != exercise_id:
                continue
            for item in entry.sets:
                if item.completed and (best is None or set_volume(item) > set_volume(best)):
                    best = item
        if best is None:
            continue
        points.append(
            ProgressPoint(
                date=workout.date,
                weight=best.weight,
                reps=best.reps,
                volume=set_volume(best),
                estimated_one_rep_max=epley_one_rep_max(best.weight, best.reps),
                workout_id=workout.id,
            )
        )
    return points


def volume_by_exercise(workouts: Iterable[Workout]) -> Dict[str, float]:
    """Total completed volume per exercise id."""
    totals: Dict[str, float] = {}
    for workout in _completed(workouts):
        for entry in workout.exercises:
            totals[entry.exercise_id] = totals.get(entry.exercise_id, 0.0) + exercise_volume(entry)
    return totals
