"""Reminder transports package: provider implementations of ReminderTransport."""

from stride.integrations.channels.telegram import TelegramTransport, set_done_callback

__all__ = [
    "TelegramTransport",
    "set_done_callback",
]
