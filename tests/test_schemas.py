"""Tests for stride.data.schemas: record conversions at the document boundary."""

from __future__ import annotations

from datetime import date

import pytest

from stride.data.schemas import (
    DEFAULT_HABIT_COLOR,
    HabitRecord,
    HabitType,
    Priority,
    QuranProgress,
    Recurrence,
    format_hhmm,
    habit_from_document,
    habit_to_document,
    new_habit_document,
    parse_day_key,
    parse_hhmm,
    quran_from_document,
    quran_to_document,
    task_from_document,
)


class TestTimeParsing:
    @pytest.mark.parametrize("value,expected", [("00:00", 0), ("09:47", 587), ("9:05", 545), ("23:59", 1439)])
    def test_parse_hhmm(self, value: str, expected: int) -> None:
        assert parse_hhmm(value) == expected

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "", "12-30"])
    def test_parse_hhmm_rejects(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_hhmm(value)

    def test_format_hhmm_wraps_midnight(self) -> None:
        assert format_hhmm(1440) == "00:00"
        assert format_hhmm(587) == "09:47"

    def test_parse_day_key_rejects_garbage(self) -> None:
        with pytest.raises(ValueError, match="Invalid day key"):
            parse_day_key("2024-13-01")


class TestHabitFromDocument:
    def test_legacy_document_gets_defaults(self) -> None:
        habit = habit_from_document("h1", {"name": "Read", "completedDates": ["2024-01-02"]})
        assert habit.habit_type == HabitType.SIMPLE
        assert habit.daily_progress == {}
        assert habit.order == 0
        assert habit.daily_goal == 1
        assert habit.reminder_time is None
        assert habit.color == DEFAULT_HABIT_COLOR

    def test_completed_dates_sorted_and_deduplicated(self) -> None:
        doc = {"name": "Read", "completedDates": ["2024-01-03", "2024-01-01", "2024-01-03", "bogus"]}
        habit = habit_from_document("h1", doc)
        assert habit.completed_dates == [date(2024, 1, 1), date(2024, 1, 3)]

    def test_counted_quitting_document(self) -> None:
        doc = {
            "name": "Coffee",
            "habitType": "count",
            "isQuitting": True,
            "dailyGoal": 2,
            "dailyProgress": {"2024-01-01": 3, "2024-01-02": 1},
            "reminderTime": "08:00",
        }
        habit = habit_from_document("h2", doc)
        assert habit.is_counted
        assert habit.is_quitting
        assert habit.daily_goal == 2
        assert habit.daily_progress == {date(2024, 1, 1): 3, date(2024, 1, 2): 1}
        assert habit.reminder_time == "08:00"

    def test_invalid_reminder_time_dropped(self) -> None:
        habit = habit_from_document("h3", {"name": "Run", "reminderTime": "later"})
        assert habit.reminder_time is None

    def test_round_trip(self) -> None:
        habit = HabitRecord(
            id="h4",
            name="Pushups",
            habit_type=HabitType.COUNTED,
            daily_goal=20,
            completed_dates=[date(2024, 1, 1)],
            daily_progress={date(2024, 1, 1): 25},
            streak=1,
            order=3,
            reminder_time="18:30",
        )
        assert habit_from_document("h4", habit_to_document(habit)) == habit


class TestNewHabitDocument:
    def test_simple_has_no_goal(self) -> None:
        doc = new_habit_document("Read")
        assert doc["dailyGoal"] is None
        assert doc["completedDates"] == []
        assert doc["streak"] == 0

    def test_counted_default_goal(self) -> None:
        doc = new_habit_document("Water", habit_type=HabitType.COUNTED)
        assert doc["dailyGoal"] == 1

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError, match="name"):
            new_habit_document("  ")

    def test_non_positive_goal_rejected(self) -> None:
        with pytest.raises(ValueError, match="dailyGoal"):
            new_habit_document("Water", habit_type=HabitType.COUNTED, daily_goal=0)


class TestTaskFromDocument:
    def test_defaults(self) -> None:
        task = task_from_document("t1", {"title": "Pay rent"})
        assert task.due_date is None
        assert task.due_time is None
        assert task.completed is False
        assert task.recurrence == Recurrence.NONE
        assert task.priority == Priority.MEDIUM

    def test_full_document(self) -> None:
        doc = {
            "title": "Standup",
            "dueDate": "2024-01-05",
            "dueTime": "09:47",
            "completed": True,
            "recurrence": "weekly",
            "priority": "high",
        }
        task = task_from_document("t2", doc)
        assert task.due_date == date(2024, 1, 5)
        assert task.due_time == "09:47"
        assert task.completed is True
        assert task.recurrence == Recurrence.WEEKLY
        assert task.priority == Priority.HIGH

    def test_unknown_recurrence_falls_back(self) -> None:
        task = task_from_document("t3", {"title": "x", "recurrence": "yearly"})
        assert task.recurrence == Recurrence.NONE


def test_quran_document_round_trip() -> None:
    progress = QuranProgress(
        memorized_pages={1: date(2024, 1, 1), 2: date(2024, 1, 2)},
        juz_reviews={30: [date(2024, 1, 3)]},
        hizb_reviews={60: [date(2024, 1, 4)]},
    )
    doc = quran_to_document(progress)
    assert doc["memorizedPages"] == {"1": "2024-01-01", "2": "2024-01-02"}
    assert quran_from_document(doc) == progress


def test_quran_missing_document_is_empty() -> None:
    assert quran_from_document(None) == QuranProgress()
