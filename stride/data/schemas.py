"""Habit, task and Quran progress records plus their document converters."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import Any, TypedDict

logger = logging.getLogger(__name__)

DEFAULT_HABIT_COLOR = "#3B82F6"

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
MINUTES_PER_DAY = 24 * 60


class HabitType(StrEnum):
    """How a habit's daily success is recorded."""

    SIMPLE = "simple"  # done / not done
    COUNTED = "count"  # daily counter compared against dailyGoal


class Recurrence(StrEnum):
    """Task repetition unit."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Priority(StrEnum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ---------------------------------------------------------------------------
# Day keys and wall-clock times
# ---------------------------------------------------------------------------


def parse_day_key(key: str) -> date:
    """Parse a 'YYYY-MM-DD' calendar-day key."""
    try:
        return date.fromisoformat(key)
    except (TypeError, ValueError) as exc:
        msg = f"Invalid day key: {key!r}"
        raise ValueError(msg) from exc


def day_key(day: date) -> str:
    """Format a date as a 'YYYY-MM-DD' calendar-day key."""
    return day.isoformat()


def parse_hhmm(value: str) -> int:
    """Parse 'HH:MM' into minutes since midnight."""
    match = _HHMM_RE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        msg = f"Invalid time (expected HH:MM): {value!r}"
        raise ValueError(msg)
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        msg = f"Invalid time (expected HH:MM): {value!r}"
        raise ValueError(msg)
    return hours * 60 + minutes


def format_hhmm(minute_of_day: int) -> str:
    """Format minutes since midnight as 'HH:MM', wrapping past 24:00."""
    minute_of_day %= MINUTES_PER_DAY
    return f"{minute_of_day // 60:02d}:{minute_of_day % 60:02d}"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class HabitRecord:
    """A user's habit, fully populated. Owned by exactly one user."""

    id: str
    name: str
    habit_type: HabitType = HabitType.SIMPLE
    is_quitting: bool = False
    daily_goal: int = 1  # target for counted habits, limit for counted quitting habits
    completed_dates: list[date] = field(default_factory=list)  # sorted, unique
    daily_progress: dict[date, int] = field(default_factory=dict)
    streak: int = 0  # derived cache of compute_streak(completed_dates)
    order: int = 0
    reminder_time: str | None = None  # "HH:MM", matched against the UTC tick window
    color: str = DEFAULT_HABIT_COLOR

    @property
    def is_counted(self) -> bool:
        return self.habit_type == HabitType.COUNTED


@dataclass
class TaskRecord:
    """A to-do item with an optional due date/time and recurrence."""

    id: str
    title: str
    due_date: date | None = None
    due_time: str | None = None  # "HH:MM"
    completed: bool = False
    recurrence: Recurrence = Recurrence.NONE
    priority: Priority = Priority.MEDIUM
    description: str = ""


@dataclass
class QuranProgress:
    """Memorized pages and per-unit review history."""

    memorized_pages: dict[int, date] = field(default_factory=dict)
    juz_reviews: dict[int, list[date]] = field(default_factory=dict)
    hizb_reviews: dict[int, list[date]] = field(default_factory=dict)


class HabitUpdate(TypedDict, total=False):
    """Fields persisted together by one progress mutation (document form)."""

    completedDates: list[str]  # sorted day keys
    dailyProgress: dict[str, int]
    streak: int


class HabitStats(TypedDict):
    """Summary numbers for one habit."""

    habit_id: str
    current_streak: int
    best_streak: int
    total_completions: int
    completion_rate: float  # 0-1 over the trailing window


# ---------------------------------------------------------------------------
# Document boundary: defaults for documents written by older clients
# ---------------------------------------------------------------------------


def _parse_day_keys(raw: Any) -> list[date]:
    """Parse, dedupe and sort a list of day keys, dropping unparseable ones."""
    days: set[date] = set()
    if not isinstance(raw, list):
        return []
    for item in raw:
        try:
            days.add(parse_day_key(item))
        except ValueError:
            logger.debug("Dropping unparseable day key: %s", item)
    return sorted(days)


def _optional_hhmm(raw: Any, record_id: str) -> str | None:
    if not raw:
        return None
    try:
        return format_hhmm(parse_hhmm(str(raw)))
    except ValueError:
        logger.warning("Ignoring invalid time %r on record %s", raw, record_id)
        return None


def habit_from_document(habit_id: str, doc: dict[str, Any]) -> HabitRecord:
    """Build a HabitRecord from a stored document, filling missing fields."""
    try:
        habit_type = HabitType(doc.get("habitType") or HabitType.SIMPLE)
    except ValueError:
        logger.warning("Unknown habitType %r on habit %s, using simple", doc.get("habitType"), habit_id)
        habit_type = HabitType.SIMPLE

    progress: dict[date, int] = {}
    raw_progress = doc.get("dailyProgress") or {}
    if isinstance(raw_progress, dict):
        for key, value in raw_progress.items():
            try:
                progress[parse_day_key(key)] = max(int(value), 0)
            except (TypeError, ValueError):
                logger.debug("Dropping dailyProgress entry %s=%s on habit %s", key, value, habit_id)

    goal = doc.get("dailyGoal")
    daily_goal = int(goal) if isinstance(goal, int | float) and goal > 0 else 1

    return HabitRecord(
        id=habit_id,
        name=str(doc.get("name", "")),
        habit_type=habit_type,
        is_quitting=bool(doc.get("isQuitting", False)),
        daily_goal=daily_goal,
        completed_dates=_parse_day_keys(doc.get("completedDates")),
        daily_progress=progress,
        streak=int(doc.get("streak") or 0),
        order=int(doc.get("order") or 0),
        reminder_time=_optional_hhmm(doc.get("reminderTime"), habit_id),
        color=str(doc.get("color") or DEFAULT_HABIT_COLOR),
    )


def habit_to_document(habit: HabitRecord) -> dict[str, Any]:
    """Serialize a HabitRecord to its stored document form."""
    return {
        "name": habit.name,
        "habitType": str(habit.habit_type),
        "isQuitting": habit.is_quitting,
        "dailyGoal": habit.daily_goal if habit.is_counted else None,
        "completedDates": [day_key(d) for d in habit.completed_dates],
        "dailyProgress": {day_key(d): n for d, n in sorted(habit.daily_progress.items())},
        "streak": habit.streak,
        "order": habit.order,
        "reminderTime": habit.reminder_time,
        "color": habit.color,
    }


def new_habit_document(
    name: str,
    habit_type: HabitType = HabitType.SIMPLE,
    daily_goal: int | None = None,
    is_quitting: bool = False,
    color: str | None = None,
    reminder_time: str | None = None,
    order: int = 0,
) -> dict[str, Any]:
    """Return the document for a freshly created habit."""
    if not name.strip():
        msg = "Habit name must not be empty"
        raise ValueError(msg)
    if daily_goal is not None and daily_goal < 1:
        msg = "dailyGoal must be a positive integer"
        raise ValueError(msg)
    record = HabitRecord(
        id="",
        name=name.strip(),
        habit_type=habit_type,
        is_quitting=is_quitting,
        daily_goal=daily_goal or 1,
        order=order,
        reminder_time=format_hhmm(parse_hhmm(reminder_time)) if reminder_time else None,
        color=color or DEFAULT_HABIT_COLOR,
    )
    return habit_to_document(record)


def task_from_document(task_id: str, doc: dict[str, Any]) -> TaskRecord:
    """Build a TaskRecord from a stored document, filling missing fields."""
    due_date: date | None = None
    if doc.get("dueDate"):
        try:
            due_date = parse_day_key(doc["dueDate"])
        except ValueError:
            logger.warning("Ignoring invalid dueDate %r on task %s", doc["dueDate"], task_id)

    try:
        recurrence = Recurrence(doc.get("recurrence") or Recurrence.NONE)
    except ValueError:
        recurrence = Recurrence.NONE
    try:
        priority = Priority(doc.get("priority") or Priority.MEDIUM)
    except ValueError:
        priority = Priority.MEDIUM

    return TaskRecord(
        id=task_id,
        title=str(doc.get("title", "")),
        due_date=due_date,
        due_time=_optional_hhmm(doc.get("dueTime"), task_id),
        completed=bool(doc.get("completed", False)),
        recurrence=recurrence,
        priority=priority,
        description=str(doc.get("description") or ""),
    )


def task_to_document(task: TaskRecord) -> dict[str, Any]:
    """Serialize a TaskRecord to its stored document form."""
    return {
        "title": task.title,
        "description": task.description,
        "completed": task.completed,
        "priority": str(task.priority),
        "dueDate": day_key(task.due_date) if task.due_date else None,
        "dueTime": task.due_time,
        "recurrence": str(task.recurrence),
        "isRecurring": task.recurrence != Recurrence.NONE,
    }


def quran_from_document(doc: dict[str, Any] | None) -> QuranProgress:
    """Build QuranProgress from its document; a missing document is empty progress."""
    if not doc:
        return QuranProgress()
    pages: dict[int, date] = {}
    for page, key in (doc.get("memorizedPages") or {}).items():
        try:
            pages[int(page)] = parse_day_key(key)
        except (TypeError, ValueError):
            logger.debug("Dropping memorizedPages entry %s=%s", page, key)
    return QuranProgress(
        memorized_pages=pages,
        juz_reviews={int(k): _parse_day_keys(v) for k, v in (doc.get("juzReviews") or {}).items()},
        hizb_reviews={int(k): _parse_day_keys(v) for k, v in (doc.get("hizbReviews") or {}).items()},
    )


def quran_to_document(progress: QuranProgress) -> dict[str, Any]:
    """Serialize QuranProgress; integer keys become strings as in JSON documents."""
    return {
        "memorizedPages": {str(p): day_key(d) for p, d in sorted(progress.memorized_pages.items())},
        "juzReviews": {str(j): [day_key(d) for d in ds] for j, ds in sorted(progress.juz_reviews.items())},
        "hizbReviews": {str(h): [day_key(d) for d in ds] for h, ds in sorted(progress.hizb_reviews.items())},
    }
