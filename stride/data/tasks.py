"""Task completion and recurrence."""

from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta

from stride.data.schemas import (
    Priority,
    Recurrence,
    TaskRecord,
    format_hhmm,
    parse_hhmm,
    task_to_document,
)
from stride.data.store import DocumentStore

logger = logging.getLogger(__name__)


def _add_months(day: date, months: int) -> date:
    """Shift by calendar months, clamping to the target month's last day."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def next_due_date(current: date, recurrence: Recurrence) -> date:
    """Advance a due date by one recurrence unit."""
    if recurrence == Recurrence.WEEKLY:
        return current + timedelta(weeks=1)
    if recurrence == Recurrence.MONTHLY:
        return _add_months(current, 1)
    return current + timedelta(days=1)


async def create_task(
    store: DocumentStore,
    user_id: str,
    title: str,
    due_date: date | None = None,
    due_time: str | None = None,
    recurrence: Recurrence = Recurrence.NONE,
    priority: Priority = Priority.MEDIUM,
    description: str = "",
) -> str:
    """Create an open task. Returns its id."""
    if not title.strip():
        msg = "Task title must not be empty"
        raise ValueError(msg)
    task = TaskRecord(
        id="",
        title=title.strip(),
        due_date=due_date,
        due_time=format_hhmm(parse_hhmm(due_time)) if due_time else None,
        recurrence=recurrence,
        priority=priority,
        description=description,
    )
    return await store.add_task(user_id, task_to_document(task))


async def toggle_task_completion(
    store: DocumentStore,
    user_id: str,
    task: TaskRecord,
    today: date,
) -> str | None:
    """Flip a task's completed flag; completing a recurring task spawns its successor.

    The completed original is kept. Returns the successor's id, if any.
    """
    completed = not task.completed
    await store.write_task(user_id, task.id, {"completed": completed})
    logger.info("Task %s completed=%s for user %s", task.id, completed, user_id)

    if not completed or task.recurrence == Recurrence.NONE:
        return None

    successor = TaskRecord(
        id="",
        title=task.title,
        due_date=next_due_date(task.due_date or today, task.recurrence),
        due_time=task.due_time,
        recurrence=task.recurrence,
        priority=task.priority,
        description=task.description,
    )
    successor_id = await store.add_task(user_id, task_to_document(successor))
    logger.info("Created recurring successor %s (due %s) for task %s", successor_id, successor.due_date, task.id)
    return successor_id
