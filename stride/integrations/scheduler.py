"""Time-window reminder scheduler for due tasks and habits.

Each tick owns the half-open UTC window ``[bucket_start, bucket_start +
cadence)``, floor-aligned to the cadence, so every minute of the day is
covered by exactly one tick. Windows missed because a tick ran late or not
at all are not retried.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

from stride.core.clock import Clock, SystemClock
from stride.core.config import Settings
from stride.core.config import settings as default_settings
from stride.data.schemas import TaskRecord, format_hhmm, parse_hhmm
from stride.data.store import DocumentStore
from stride.data.streaks import is_day_successful
from stride.integrations.dispatch import (
    DispatchStatus,
    NotificationDispatcher,
    Reminder,
    ReminderKind,
    habit_reminder,
    mask_token,
    task_reminder,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeBucket:
    """The window a tick is responsible for, in UTC minutes of the day."""

    day: date
    start: int
    cadence: int

    @property
    def end(self) -> int:
        return self.start + self.cadence

    @property
    def start_label(self) -> str:
        return format_hhmm(self.start)

    @property
    def end_label(self) -> str:
        """Exclusive end as HH:MM; the last bucket of the day ends at 00:00."""
        return format_hhmm(self.end)

    def contains(self, hhmm: str | None) -> bool:
        if not hhmm:
            return False
        try:
            minute = parse_hhmm(hhmm)
        except ValueError:
            return False
        # integer comparison: the last bucket ends at 1440, never at "00:00"
        return self.start <= minute < self.end


def compute_bucket(now: datetime, cadence_minutes: int) -> TimeBucket:
    """Floor now (UTC) to its cadence window."""
    if cadence_minutes <= 0 or 60 % cadence_minutes != 0:
        msg = f"Cadence must be a positive divisor of 60 minutes, got {cadence_minutes}"
        raise ValueError(msg)
    utc_now = now.replace(tzinfo=UTC) if now.tzinfo is None else now.astimezone(UTC)
    start = utc_now.hour * 60 + (utc_now.minute // cadence_minutes) * cadence_minutes
    return TimeBucket(day=utc_now.date(), start=start, cadence=cadence_minutes)


@dataclass
class TickReport:
    """What one tick did."""

    day: str
    bucket_start: str
    bucket_end: str
    users: int = 0
    tasks_sent: int = 0
    habits_sent: int = 0
    suppressed: int = 0  # habit reminders skipped because today is already a success
    invalid_tokens: list[str] = field(default_factory=list)  # user ids
    failed_dispatches: int = 0
    failed_users: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return dataclasses.asdict(self)


class ReminderScheduler:
    """Periodically finds due tasks and habits and dispatches reminders."""

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: NotificationDispatcher,
        clock: Clock | None = None,
        cadence_minutes: int | None = None,
        config: Settings | None = None,
    ) -> None:
        cfg = config or default_settings
        self.store = store
        self.dispatcher = dispatcher
        self.clock: Clock = clock or SystemClock()
        self.cadence_minutes = cadence_minutes or cfg.reminder_cadence_minutes
        # fail fast on a bad cadence rather than on the first tick
        compute_bucket(self.clock.now(), self.cadence_minutes)
        self._tick_lock = asyncio.Lock()
        self._last_bucket: tuple[date, int] | None = None  # (day, start) of the last claimed window
        self._task: asyncio.Task[None] | None = None
        self._running = False

    async def start(self) -> None:
        """Start the scheduler loop."""
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Reminder scheduler started, cadence %d min", self.cadence_minutes)

    async def stop(self) -> None:
        """Stop the scheduler loop."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Reminder scheduler stopped")

    def _seconds_to_next_boundary(self) -> float:
        now = self.clock.now()
        into = (now.minute % self.cadence_minutes) * 60 + now.second + now.microsecond / 1_000_000
        return self.cadence_minutes * 60 - into

    async def _loop(self) -> None:
        """Sleep to each cadence boundary, then tick."""
        while self._running:
            await asyncio.sleep(self._seconds_to_next_boundary())
            if not self._running:
                break
            try:
                await self.run_tick()
            except Exception:
                logger.exception("Reminder tick failed")

    async def run_tick(self, now: datetime | None = None) -> TickReport | None:
        """Run one tick. Returns None if a tick is still in flight or the window was already processed.

        Raises if the user enumeration itself fails; per-user and per-item
        failures are logged and counted in the report.
        """
        if self._tick_lock.locked():
            logger.warning("Previous reminder tick still running, skipping this one")
            return None
        async with self._tick_lock:
            now = now or self.clock.now()
            bucket = compute_bucket(now, self.cadence_minutes)
            key = (bucket.day, bucket.start)
            if key == self._last_bucket:
                logger.warning("Window %s %s already processed, skipping", bucket.day, bucket.start_label)
                return None
            # claimed before dispatch; a failed window is not retried
            self._last_bucket = key
            return await self._tick(now, bucket)

    async def _tick(self, now: datetime, bucket: TimeBucket) -> TickReport:
        report = TickReport(day=bucket.day.isoformat(), bucket_start=bucket.start_label, bucket_end=bucket.end_label)
        logger.info("Reminder tick at %s, window [%s, %s)", now.isoformat(), bucket.start_label, bucket.end_label)

        users = await self.store.list_users_with_token()
        report.users = len(users)
        seen: set[tuple[str, ReminderKind, str]] = set()

        for user_id, token in users:
            try:
                reminders = await self._due_reminders(user_id, bucket, report)
            except Exception:
                logger.exception("Failed to load reminders for user %s", user_id)
                report.failed_users.append(user_id)
                continue

            for reminder in reminders:
                key = (user_id, reminder.kind, reminder.item_id)
                if key in seen:
                    continue
                seen.add(key)

                status = await self.dispatcher.send_reminder(token, reminder)
                if status == DispatchStatus.INVALID_TOKEN:
                    logger.warning("Skipping remaining reminders for user %s (token %s)", user_id, mask_token(token))
                    report.invalid_tokens.append(user_id)
                    break
                if status == DispatchStatus.FAILED:
                    report.failed_dispatches += 1
                elif reminder.kind == ReminderKind.TASK:
                    report.tasks_sent += 1
                else:
                    report.habits_sent += 1

        logger.info(
            "Reminder tick done: %d users, %d task and %d habit reminders, %d suppressed",
            report.users,
            report.tasks_sent,
            report.habits_sent,
            report.suppressed,
        )
        return report

    async def _due_reminders(self, user_id: str, bucket: TimeBucket, report: TickReport) -> list[Reminder]:
        tasks, habits = await asyncio.gather(
            self.store.list_tasks_due_on(user_id, bucket.day),
            self.store.list_habits(user_id),
        )
        reminders = [task_reminder(t) for t in tasks if self._task_is_due(t, bucket)]
        for habit in habits:
            if not bucket.contains(habit.reminder_time):
                continue
            # UTC bucket day, not the local day: suppression follows the tick's clock
            if is_day_successful(habit, bucket.day):
                report.suppressed += 1
                continue
            reminders.append(habit_reminder(habit))
        return reminders

    @staticmethod
    def _task_is_due(task: TaskRecord, bucket: TimeBucket) -> bool:
        return task.due_date == bucket.day and not task.completed and bucket.contains(task.due_time)
