"""Notification dispatch: logical reminders → transport delivery calls."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum

from stride.data.schemas import HabitRecord, TaskRecord

logger = logging.getLogger(__name__)

TASK_REMINDER_TITLE = "⏰ Task Reminder"
HABIT_REMINDER_TITLE = "🎯 Habit Reminder"


class ReminderKind(StrEnum):
    """What a reminder is about."""

    TASK = "task"
    HABIT = "habit"


class DispatchStatus(StrEnum):
    """Outcome of one delivery attempt."""

    SENT = "sent"
    INVALID_TOKEN = "invalid_token"  # terminal for this token, never retried
    FAILED = "failed"  # transient, not retried within the tick


class InvalidTokenError(Exception):
    """Raised by a transport when the destination token is invalid or unregistered."""


@dataclass(frozen=True)
class Reminder:
    """A single notification about a task or habit."""

    kind: ReminderKind
    item_id: str
    title: str
    body: str

    @property
    def metadata(self) -> dict[str, str]:
        return {"type": str(self.kind), "id": self.item_id}


def task_reminder(task: TaskRecord) -> Reminder:
    return Reminder(
        kind=ReminderKind.TASK,
        item_id=task.id,
        title=TASK_REMINDER_TITLE,
        body=task.title or "You have a task due now!",
    )


def habit_reminder(habit: HabitRecord) -> Reminder:
    return Reminder(
        kind=ReminderKind.HABIT,
        item_id=habit.id,
        title=HABIT_REMINDER_TITLE,
        body=f"Time for: {habit.name}",
    )


def mask_token(token: str) -> str:
    """Shorten a token for logging."""
    return f"{token[:8]}..." if len(token) > 8 else token


class ReminderTransport(ABC):
    """Abstract push delivery channel.

    Implementations: TelegramTransport.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique transport name (e.g. 'telegram')."""

    @abstractmethod
    async def send(self, token: str, title: str, body: str, metadata: dict[str, str]) -> None:
        """Deliver one notification.

        Raises InvalidTokenError when the token can never be delivered to.
        Any other exception is a transient failure.
        """

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the transport (called during app startup)."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Clean shutdown (called during app teardown)."""


class NotificationDispatcher:
    """Sends reminders through a transport and classifies the outcome.

    Never raises: token invalidation and delivery errors are logged and
    reported as a DispatchStatus.
    """

    def __init__(self, transport: ReminderTransport | None = None) -> None:
        self._transport = transport

    @property
    def transport(self) -> ReminderTransport | None:
        return self._transport

    async def send_reminder(self, token: str, reminder: Reminder) -> DispatchStatus:
        if self._transport is None:
            logger.warning("No reminder transport configured, dropping %s %s", reminder.kind, reminder.item_id)
            return DispatchStatus.FAILED
        try:
            await self._transport.send(token, reminder.title, reminder.body, reminder.metadata)
        except InvalidTokenError:
            logger.warning("Invalid notification token: %s", mask_token(token))
            return DispatchStatus.INVALID_TOKEN
        except Exception:
            logger.exception("Failed to send %s reminder %s via %s", reminder.kind, reminder.item_id, self._transport.name)
            return DispatchStatus.FAILED
        logger.info("Sent %s reminder %s: %s", reminder.kind, reminder.item_id, reminder.body)
        return DispatchStatus.SENT
