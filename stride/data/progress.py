"""Progress mutations: the only code that changes a habit's completion state.

Each mutation takes the caller's latest snapshot of a habit and returns the
fields to persist together (completedDates, dailyProgress, streak), or None
when the call is a no-op. The snapshot is never modified. There is no
concurrency control between the read that produced the snapshot and the
write: two devices mutating the same habit at once can lose an update.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from datetime import date
from enum import StrEnum

from stride.data.schemas import (
    HabitRecord,
    HabitType,
    HabitUpdate,
    day_key,
    new_habit_document,
    parse_day_key,
)
from stride.data.store import DocumentStore
from stride.data.streaks import compute_streak, is_counted_success

logger = logging.getLogger(__name__)


class ProgressAction(StrEnum):
    """Mutation requested by an event source."""

    TOGGLE = "toggle"
    INCREMENT = "increment"
    DECREMENT = "decrement"
    COMPLETE = "complete"
    UNCOMPLETE = "uncomplete"


def _build_update(
    completed: set[date],
    today: date,
    progress: dict[date, int] | None = None,
) -> HabitUpdate:
    update = HabitUpdate(
        completedDates=[day_key(d) for d in sorted(completed)],
        streak=compute_streak(completed, today),
    )
    if progress is not None:
        update["dailyProgress"] = {day_key(d): n for d, n in sorted(progress.items())}
    return update


def toggle_simple_completion(habit: HabitRecord, day: date, today: date) -> HabitUpdate:
    """Flip whether day is a success."""
    completed = set(habit.completed_dates)
    if day in completed:
        completed.discard(day)
    else:
        completed.add(day)
    return _build_update(completed, today)


def set_completion(habit: HabitRecord, day: date, desired: bool, today: date) -> HabitUpdate | None:
    """Make day a success (or not). None if it already is."""
    if (day in habit.completed_dates) == desired:
        return None
    return toggle_simple_completion(habit, day, today)


def _apply_count(habit: HabitRecord, day: date, new_count: int, today: date) -> HabitUpdate:
    progress = dict(habit.daily_progress)
    progress[day] = new_count
    probe = dataclasses.replace(habit, daily_progress=progress)

    completed = set(habit.completed_dates)
    if is_counted_success(probe, day):
        completed.add(day)
    else:
        completed.discard(day)
    return _build_update(completed, today, progress)


def increment_counted(habit: HabitRecord, day: date, today: date) -> HabitUpdate:
    """Add one to the day's counter and re-evaluate the day."""
    return _apply_count(habit, day, habit.daily_progress.get(day, 0) + 1, today)


def decrement_counted(habit: HabitRecord, day: date, today: date) -> HabitUpdate | None:
    """Subtract one from the day's counter. None when it is already zero."""
    current = habit.daily_progress.get(day, 0)
    if current <= 0:
        return None
    return _apply_count(habit, day, current - 1, today)


def with_update(habit: HabitRecord, update: HabitUpdate | None) -> HabitRecord:
    """Return the snapshot the habit would have after persisting update."""
    if update is None:
        return habit
    changes: dict[str, object] = {}
    if "completedDates" in update:
        changes["completed_dates"] = [parse_day_key(k) for k in update["completedDates"]]
    if "dailyProgress" in update:
        changes["daily_progress"] = {parse_day_key(k): n for k, n in update["dailyProgress"].items()}
    if "streak" in update:
        changes["streak"] = update["streak"]
    return dataclasses.replace(habit, **changes)  # type: ignore[arg-type]


_Mutation = Callable[[HabitRecord, date, date], HabitUpdate | None]

_SIMPLE_ACTIONS: dict[ProgressAction, _Mutation] = {
    ProgressAction.TOGGLE: toggle_simple_completion,
    ProgressAction.COMPLETE: lambda h, d, t: set_completion(h, d, True, t),
    ProgressAction.UNCOMPLETE: lambda h, d, t: set_completion(h, d, False, t),
}

_COUNTED_ACTIONS: dict[ProgressAction, _Mutation] = {
    ProgressAction.INCREMENT: increment_counted,
    ProgressAction.DECREMENT: decrement_counted,
}


def mutation_for(habit: HabitRecord, action: ProgressAction) -> _Mutation:
    """Return the mutation for an action, rejecting ones the habit type cannot take."""
    table = _COUNTED_ACTIONS if habit.habit_type == HabitType.COUNTED else _SIMPLE_ACTIONS
    mutation = table.get(action)
    if mutation is None:
        msg = f"Action '{action}' is not valid for {habit.habit_type} habit {habit.id}"
        raise ValueError(msg)
    return mutation


async def apply_progress(
    store: DocumentStore,
    user_id: str,
    habit: HabitRecord,
    action: ProgressAction,
    day: date,
    today: date,
) -> HabitUpdate | None:
    """Compute a mutation on the snapshot and persist it as one partial update."""
    update = mutation_for(habit, action)(habit, day, today)
    if update is None:
        logger.debug("No-op %s on habit %s for %s", action, habit.id, day)
        return None
    await store.write_habit(user_id, habit.id, dict(update))
    logger.info("Habit %s %s on %s, streak=%d", habit.id, action, day, update["streak"])
    return update


# ---------------------------------------------------------------------------
# Habit lifecycle
# ---------------------------------------------------------------------------


async def create_habit(
    store: DocumentStore,
    user_id: str,
    name: str,
    habit_type: HabitType = HabitType.SIMPLE,
    daily_goal: int | None = None,
    is_quitting: bool = False,
    color: str | None = None,
    reminder_time: str | None = None,
) -> str:
    """Create a habit at the bottom of the user's list. Returns its id."""
    existing = await store.list_habits(user_id)
    order = max((h.order for h in existing), default=-1) + 1
    doc = new_habit_document(
        name,
        habit_type=habit_type,
        daily_goal=daily_goal,
        is_quitting=is_quitting,
        color=color,
        reminder_time=reminder_time,
        order=order,
    )
    habit_id = await store.add_habit(user_id, doc)
    logger.info("Created habit %s (%s) for user %s", habit_id, habit_type, user_id)
    return habit_id


async def reorder_habits(store: DocumentStore, user_id: str, habit_ids: list[str]) -> None:
    """Persist display order: each habit's order becomes its index in habit_ids."""
    for index, habit_id in enumerate(habit_ids):
        await store.write_habit(user_id, habit_id, {"order": index})
