"""Tests for stride/data/progress.py: habit completion mutations."""

from __future__ import annotations

from datetime import date

import pytest

from stride.data.progress import (
    ProgressAction,
    apply_progress,
    create_habit,
    decrement_counted,
    increment_counted,
    mutation_for,
    reorder_habits,
    set_completion,
    toggle_simple_completion,
    with_update,
)
from stride.data.schemas import HabitRecord, HabitType
from stride.data.store import InMemoryDocumentStore
from stride.data.streaks import compute_streak

DAY = date(2024, 1, 5)
TODAY = date(2024, 1, 5)


def _simple(completed: list[date] | None = None) -> HabitRecord:
    return HabitRecord(id="s1", name="Meditate", completed_dates=completed or [])


def _counted(goal: int, quitting: bool = False) -> HabitRecord:
    return HabitRecord(
        id="c1",
        name="Cigarettes" if quitting else "Water",
        habit_type=HabitType.COUNTED,
        is_quitting=quitting,
        daily_goal=goal,
    )


# ---------------------------------------------------------------------------
# Simple habits
# ---------------------------------------------------------------------------


class TestToggleSimple:
    def test_adds_absent_day(self) -> None:
        update = toggle_simple_completion(_simple([date(2024, 1, 4)]), DAY, TODAY)
        assert update["completedDates"] == ["2024-01-04", "2024-01-05"]
        assert update["streak"] == 2
        assert "dailyProgress" not in update

    def test_removes_present_day(self) -> None:
        update = toggle_simple_completion(_simple([date(2024, 1, 4), DAY]), DAY, TODAY)
        assert update["completedDates"] == ["2024-01-04"]
        assert update["streak"] == 1  # yesterday still counts

    def test_keeps_dates_sorted_when_back_filling(self) -> None:
        habit = _simple([date(2024, 1, 3), DAY])
        update = toggle_simple_completion(habit, date(2024, 1, 4), TODAY)
        assert update["completedDates"] == ["2024-01-03", "2024-01-04", "2024-01-05"]
        assert update["streak"] == 3

    def test_snapshot_is_not_modified(self) -> None:
        habit = _simple([date(2024, 1, 4)])
        toggle_simple_completion(habit, DAY, TODAY)
        assert habit.completed_dates == [date(2024, 1, 4)]


class TestSetCompletion:
    def test_noop_when_already_complete(self) -> None:
        assert set_completion(_simple([DAY]), DAY, True, TODAY) is None

    def test_noop_when_already_incomplete(self) -> None:
        assert set_completion(_simple(), DAY, False, TODAY) is None

    def test_sets_and_clears(self) -> None:
        done = set_completion(_simple(), DAY, True, TODAY)
        assert done is not None
        assert done["completedDates"] == ["2024-01-05"]
        cleared = set_completion(_simple([DAY]), DAY, False, TODAY)
        assert cleared is not None
        assert cleared["completedDates"] == []
        assert cleared["streak"] == 0


# ---------------------------------------------------------------------------
# Counted habits
# ---------------------------------------------------------------------------


class TestCounted:
    def test_goal_round_trip(self) -> None:
        habit = _counted(goal=3)
        for _ in range(4):
            habit = with_update(habit, increment_counted(habit, DAY, TODAY))
        habit = with_update(habit, decrement_counted(habit, DAY, TODAY))

        assert habit.daily_progress[DAY] == 3
        assert DAY in habit.completed_dates
        assert habit.streak == 1

    def test_below_goal_not_completed(self) -> None:
        habit = _counted(goal=3)
        habit = with_update(habit, increment_counted(habit, DAY, TODAY))
        assert habit.daily_progress[DAY] == 1
        assert DAY not in habit.completed_dates
        assert habit.streak == 0

    def test_decrement_below_goal_removes_day(self) -> None:
        habit = _counted(goal=1)
        habit = with_update(habit, increment_counted(habit, DAY, TODAY))
        assert DAY in habit.completed_dates
        habit = with_update(habit, decrement_counted(habit, DAY, TODAY))
        assert habit.daily_progress[DAY] == 0
        assert habit.completed_dates == []

    def test_decrement_at_zero_is_noop(self) -> None:
        assert decrement_counted(_counted(goal=2), DAY, TODAY) is None

    def test_update_carries_all_fields_together(self) -> None:
        update = increment_counted(_counted(goal=1), DAY, TODAY)
        assert set(update) == {"completedDates", "dailyProgress", "streak"}
        assert update["dailyProgress"] == {"2024-01-05": 1}

    def test_other_days_progress_preserved(self) -> None:
        habit = _counted(goal=1)
        habit = with_update(habit, increment_counted(habit, date(2024, 1, 4), TODAY))
        habit = with_update(habit, increment_counted(habit, DAY, TODAY))
        assert habit.daily_progress == {date(2024, 1, 4): 1, DAY: 1}
        assert habit.streak == 2


class TestQuittingLimit:
    def test_limit_transition(self) -> None:
        habit = _counted(goal=2, quitting=True)

        habit = with_update(habit, increment_counted(habit, DAY, TODAY))
        assert habit.daily_progress[DAY] == 1
        assert habit.completed_dates == [DAY]

        habit = with_update(habit, increment_counted(habit, DAY, TODAY))
        habit = with_update(habit, increment_counted(habit, DAY, TODAY))
        assert habit.daily_progress[DAY] == 3
        assert habit.completed_dates == []
        assert habit.streak == 0

    def test_back_under_limit_restores_success(self) -> None:
        habit = _counted(goal=1, quitting=True)
        for _ in range(2):
            habit = with_update(habit, increment_counted(habit, DAY, TODAY))
        assert habit.completed_dates == []
        habit = with_update(habit, decrement_counted(habit, DAY, TODAY))
        assert habit.completed_dates == [DAY]

    def test_untouched_day_is_not_counted(self) -> None:
        habit = _counted(goal=2, quitting=True)
        habit = with_update(habit, increment_counted(habit, date(2024, 1, 4), TODAY))
        assert DAY not in habit.completed_dates


def test_streak_cache_matches_engine_after_every_mutation() -> None:
    habit = _counted(goal=2)
    for day in (date(2024, 1, 3), date(2024, 1, 4), DAY, DAY, date(2024, 1, 4)):
        habit = with_update(habit, increment_counted(habit, day, TODAY))
        assert habit.streak == compute_streak(habit.completed_dates, TODAY)


# ---------------------------------------------------------------------------
# Store-backed application
# ---------------------------------------------------------------------------


class TestMutationFor:
    def test_simple_rejects_increment(self) -> None:
        with pytest.raises(ValueError, match="not valid"):
            mutation_for(_simple(), ProgressAction.INCREMENT)

    def test_counted_rejects_toggle(self) -> None:
        with pytest.raises(ValueError, match="not valid"):
            mutation_for(_counted(goal=1), ProgressAction.TOGGLE)


class TestApplyProgress:
    async def test_persists_one_update(self) -> None:
        store = InMemoryDocumentStore()
        habit_id = await create_habit(store, "u1", "Water", HabitType.COUNTED, daily_goal=1)
        habit = await store.get_habit("u1", habit_id)

        update = await apply_progress(store, "u1", habit, ProgressAction.INCREMENT, DAY, TODAY)

        assert update is not None
        stored = await store.get_habit("u1", habit_id)
        assert stored.daily_progress == {DAY: 1}
        assert stored.completed_dates == [DAY]
        assert stored.streak == 1

    async def test_noop_writes_nothing(self) -> None:
        store = InMemoryDocumentStore()
        habit_id = await create_habit(store, "u1", "Water", HabitType.COUNTED, daily_goal=1)
        habit = await store.get_habit("u1", habit_id)
        changes: list[int] = []
        store.subscribe_habits("u1", lambda habits: changes.append(len(habits)))

        update = await apply_progress(store, "u1", habit, ProgressAction.DECREMENT, DAY, TODAY)

        assert update is None
        assert changes == []


class TestHabitLifecycle:
    async def test_create_appends_to_bottom(self) -> None:
        store = InMemoryDocumentStore()
        first = await create_habit(store, "u1", "Read")
        second = await create_habit(store, "u1", "Run", reminder_time="7:30")
        habits = await store.list_habits("u1")
        assert [h.id for h in habits] == [first, second]
        assert habits[1].reminder_time == "07:30"

    async def test_create_rejects_bad_reminder_time(self) -> None:
        store = InMemoryDocumentStore()
        with pytest.raises(ValueError, match="HH:MM"):
            await create_habit(store, "u1", "Read", reminder_time="25:00")

    async def test_reorder(self) -> None:
        store = InMemoryDocumentStore()
        a = await create_habit(store, "u1", "A")
        b = await create_habit(store, "u1", "B")
        c = await create_habit(store, "u1", "C")
        await reorder_habits(store, "u1", [c, a, b])
        assert [h.id for h in await store.list_habits("u1")] == [c, a, b]
