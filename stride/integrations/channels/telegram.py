"""Telegram implementation of ReminderTransport.

A user's notification token is their Telegram chat id.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest, Forbidden
from telegram.ext import Application, ApplicationBuilder, CallbackQueryHandler, ContextTypes

from stride.core.config import settings
from stride.integrations.dispatch import InvalidTokenError, ReminderKind, ReminderTransport, mask_token

logger = logging.getLogger(__name__)

DONE_PREFIX = "done:"

# BadRequest messages that mean the chat can never be reached
_DEAD_CHAT_MARKERS = ("chat not found", "user not found", "chat_id is empty")

# (token, habit_id) -> reply text; set from app.py
DoneCallback = Callable[[str, str], Awaitable[str]]
_done_callback: DoneCallback | None = None


def set_done_callback(fn: DoneCallback | None) -> None:
    """Set the handler for "Mark as Done" presses on habit reminders."""
    global _done_callback  # noqa: PLW0603
    _done_callback = fn


def _chat_id(token: str) -> int | str:
    try:
        return int(token)
    except ValueError:
        return token  # @channel usernames


class TelegramTransport(ReminderTransport):
    """Delivers reminders as Telegram messages via python-telegram-bot."""

    def __init__(self, bot_token: str = "") -> None:
        self._bot_token = bot_token or settings.telegram_bot_token
        self._bot: Bot | None = None
        self._app: Application[Any, Any, Any, Any, Any, Any] | None = None

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def bot(self) -> Bot:
        """Return the bot instance, creating lazily if needed."""
        if self._bot is None:
            self._bot = Bot(token=self._bot_token)
        return self._bot

    def set_bot(self, bot: Bot) -> None:
        """Override the bot instance (useful for testing)."""
        self._bot = bot

    async def initialize(self) -> None:
        """Build and start the Telegram Application with polling."""
        if not self._bot_token:
            logger.warning("No Telegram bot token, transport disabled")
            return
        self._app = ApplicationBuilder().token(self._bot_token).build()
        self._app.add_handler(CallbackQueryHandler(self._handle_callback, pattern=f"^{DONE_PREFIX}"))
        await self._app.initialize()
        await self._app.start()
        if self._app.updater is not None:
            await self._app.updater.start_polling()
        self._bot = self._app.bot
        logger.info("TelegramTransport initialized")

    async def shutdown(self) -> None:
        """Stop polling and shut down the Application."""
        if self._app is not None:
            if self._app.updater is not None:
                await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            logger.info("TelegramTransport shut down")

    async def send(self, token: str, title: str, body: str, metadata: dict[str, str]) -> None:
        keyboard = None
        if metadata.get("type") == ReminderKind.HABIT:
            keyboard = InlineKeyboardMarkup(
                [[InlineKeyboardButton("Mark as Done", callback_data=f"{DONE_PREFIX}{metadata['id']}")]]
            )
        try:
            await self.bot.send_message(
                chat_id=_chat_id(token),
                text=f"{title}\n{body}",
                reply_markup=keyboard,
            )
        except Forbidden as exc:
            # bot blocked or kicked, the chat is gone
            raise InvalidTokenError(mask_token(token)) from exc
        except BadRequest as exc:
            if any(marker in str(exc).lower() for marker in _DEAD_CHAT_MARKERS):
                raise InvalidTokenError(mask_token(token)) from exc
            raise

    async def _handle_callback(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Process "Mark as Done" presses."""
        query = update.callback_query
        if query is None or query.data is None or query.message is None:
            return

        habit_id = query.data.removeprefix(DONE_PREFIX)
        token = str(query.message.chat.id)

        if _done_callback is None:
            await query.answer(text="Not available right now.", show_alert=True)
            return

        try:
            reply = await _done_callback(token, habit_id)
        except Exception:
            logger.exception("Mark-as-done failed for habit %s", habit_id)
            await query.answer(text="Could not update the habit.", show_alert=True)
            return

        await query.answer(text=reply)
        await query.edit_message_reply_markup(reply_markup=None)
