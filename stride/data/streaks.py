"""Streak and goal evaluation derived from a habit's completion days."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

from stride.data.schemas import HabitRecord, HabitStats

_ONE_DAY = timedelta(days=1)
STATS_WINDOW_DAYS = 30


def _count_run_backward(date_set: set[date], start: date) -> int:
    """Count consecutive days backwards from start (inclusive)."""
    streak = 0
    cursor = start
    while cursor in date_set:
        streak += 1
        cursor -= _ONE_DAY
    return streak


def compute_streak(completed_dates: Iterable[date], today: date) -> int:
    """Return the run of consecutive successful days ending today or yesterday.

    A habit not yet done today keeps yesterday's streak until the day is
    over; once a full day is skipped the streak is 0.
    """
    date_set = set(completed_dates)
    if not date_set:
        return 0
    last = max(date_set)
    if last not in (today, today - _ONE_DAY):
        return 0
    return _count_run_backward(date_set, last)


def best_streak(completed_dates: Iterable[date]) -> int:
    """Return the longest run of consecutive days anywhere in the history."""
    date_set = set(completed_dates)
    best = 0
    for day in date_set:
        # runs are measured from their last day
        if day + _ONE_DAY in date_set:
            continue
        best = max(best, _count_run_backward(date_set, day))
    return best


def is_counted_success(habit: HabitRecord, day: date) -> bool:
    """Evaluate a counted habit's success predicate for one day.

    Non-quitting: progress meets or exceeds dailyGoal.
    Quitting: progress stays at or under the limit, and the day has been
    touched (an untouched day is not an automatic pass).
    """
    if day not in habit.daily_progress:
        return False
    progress = habit.daily_progress[day]
    if habit.is_quitting:
        return progress <= habit.daily_goal
    return progress >= habit.daily_goal


def is_day_successful(habit: HabitRecord, day: date) -> bool:
    """Whether the day counts as a success for the habit."""
    return day in habit.completed_dates


def completion_rate(habit: HabitRecord, today: date, window_days: int = STATS_WINDOW_DAYS) -> float:
    """Fraction of the trailing window (ending today) with a successful day."""
    if window_days <= 0:
        return 0.0
    window_start = today - timedelta(days=window_days - 1)
    hits = sum(1 for d in habit.completed_dates if window_start <= d <= today)
    return hits / window_days


def habit_stats(habit: HabitRecord, today: date, window_days: int = STATS_WINDOW_DAYS) -> HabitStats:
    """Summarize a habit's consistency as of today."""
    return HabitStats(
        habit_id=habit.id,
        current_streak=compute_streak(habit.completed_dates, today),
        best_streak=best_streak(habit.completed_dates),
        total_completions=len(habit.completed_dates),
        completion_rate=completion_rate(habit, today, window_days),
    )
