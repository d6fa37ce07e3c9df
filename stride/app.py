"""FastAPI entrypoint with reminder scheduler and Telegram transport lifespan."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from stride.core.clock import Clock, SystemClock
from stride.core.config import Settings, settings
from stride.data.progress import ProgressAction, apply_progress
from stride.data.schemas import day_key
from stride.data.store import DocumentStore, InMemoryDocumentStore, RecordNotFoundError
from stride.data.streaks import habit_stats
from stride.data.tasks import toggle_task_completion
from stride.integrations.channels import TelegramTransport, set_done_callback
from stride.integrations.dispatch import NotificationDispatcher
from stride.integrations.scheduler import ReminderScheduler

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

_store: DocumentStore | None = None
_transport: TelegramTransport | None = None
_scheduler: ReminderScheduler | None = None
_clock: Clock = SystemClock()


def build_store(config: Settings) -> DocumentStore:
    """Create the configured document store backend."""
    if config.store_backend == "lake":
        from stride.data.lake import LakeDocumentStore

        return LakeDocumentStore(config)
    if config.store_backend != "memory":
        logger.warning("Unknown store_backend %r, using in-memory store", config.store_backend)
    return InMemoryDocumentStore()


def _require_store() -> DocumentStore:
    if _store is None:
        raise HTTPException(status_code=503, detail="Store not initialized")
    return _store


def _local_today() -> date:
    return _clock.today(settings.timezone)


async def _mark_done_from_reminder(token: str, habit_id: str) -> str:
    """Handle "Mark as Done" on a habit reminder for the user owning token."""
    store = _require_store()
    owner = next((uid for uid, t in await store.list_users_with_token() if t == token), None)
    if owner is None:
        logger.warning("Mark-as-done from unregistered chat for habit %s", habit_id)
        return "This chat is not linked to an account."
    habit = await store.get_habit(owner, habit_id)
    if habit.is_counted:
        return "Counted habits are logged in the app."
    today = _local_today()
    update = await apply_progress(store, owner, habit, ProgressAction.COMPLETE, today, today)
    return "Already done today." if update is None else f"Marked as done! Streak: {update['streak']}"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start and stop the transport and scheduler alongside the FastAPI server."""
    global _store, _transport, _scheduler  # noqa: PLW0603

    _store = build_store(settings)

    if settings.telegram_bot_token:
        _transport = TelegramTransport()
        await _transport.initialize()
        set_done_callback(_mark_done_from_reminder)
        logger.info("Telegram transport started")
    else:
        logger.warning("TELEGRAM_BOT_TOKEN not set, reminders will not be delivered")

    _scheduler = ReminderScheduler(_store, NotificationDispatcher(_transport), clock=_clock, config=settings)
    if settings.schedule_enabled:
        await _scheduler.start()

    yield

    if _scheduler is not None:
        await _scheduler.stop()

    if _transport is not None:
        set_done_callback(None)
        await _transport.shutdown()


app = FastAPI(title="Stride", version="0.1.0", lifespan=lifespan)

_bearer_scheme = HTTPBearer()


async def _verify_api_key(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),  # noqa: B008
) -> str:
    """Validate the Bearer token against the configured api_key."""
    if not settings.api_key or credentials.credentials != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return credentials.credentials


class HealthResponse(BaseModel):
    """Response for the /health endpoint."""

    status: str


class TickResponse(BaseModel):
    """Summary of one reminder tick."""

    skipped: bool
    report: dict[str, object] | None = None


class ProgressRequest(BaseModel):
    """Body for the habit progress endpoint. day defaults to the local today."""

    action: ProgressAction
    day: date | None = None


class ProgressResponse(BaseModel):
    """Fields persisted by a progress mutation."""

    changed: bool
    streak: int
    completed_dates: list[str]
    daily_progress: dict[str, int]


class TaskToggleResponse(BaseModel):
    """Result of toggling a task."""

    completed: bool
    successor_id: str | None = None


class TokenRequest(BaseModel):
    """Body for registering a notification token."""

    token: str


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok")


@app.post("/scheduler/tick", response_model=TickResponse)
async def run_tick(_key: str = Depends(_verify_api_key)) -> TickResponse:
    """Run one reminder tick now. Requires Bearer auth."""
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not initialized")
    report = await _scheduler.run_tick()
    if report is None:
        return TickResponse(skipped=True)
    return TickResponse(skipped=False, report=report.as_dict())


@app.post("/users/{user_id}/habits/{habit_id}/progress", response_model=ProgressResponse)
async def record_progress(
    user_id: str,
    habit_id: str,
    body: ProgressRequest,
    _key: str = Depends(_verify_api_key),
) -> ProgressResponse:
    """Apply a completion/progress change to a habit. Requires Bearer auth."""
    store = _require_store()
    today = _local_today()
    try:
        habit = await store.get_habit(user_id, habit_id)
        update = await apply_progress(store, user_id, habit, body.action, body.day or today, today)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Habit not found") from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    if update is None:
        return ProgressResponse(
            changed=False,
            streak=habit.streak,
            completed_dates=[day_key(d) for d in habit.completed_dates],
            daily_progress={day_key(d): n for d, n in habit.daily_progress.items()},
        )
    return ProgressResponse(
        changed=True,
        streak=update["streak"],
        completed_dates=update["completedDates"],
        daily_progress=update.get("dailyProgress", {day_key(d): n for d, n in habit.daily_progress.items()}),
    )


@app.get("/users/{user_id}/habits/{habit_id}/stats")
async def get_habit_stats(user_id: str, habit_id: str, _key: str = Depends(_verify_api_key)) -> dict[str, object]:
    """Streak and completion summary for one habit. Requires Bearer auth."""
    store = _require_store()
    try:
        habit = await store.get_habit(user_id, habit_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Habit not found") from exc
    return dict(habit_stats(habit, _local_today()))


@app.post("/users/{user_id}/tasks/{task_id}/toggle", response_model=TaskToggleResponse)
async def toggle_task(user_id: str, task_id: str, _key: str = Depends(_verify_api_key)) -> TaskToggleResponse:
    """Flip a task's completion, spawning the next occurrence of recurring tasks."""
    store = _require_store()
    try:
        task = await store.get_task(user_id, task_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Task not found") from exc
    successor_id = await toggle_task_completion(store, user_id, task, _local_today())
    return TaskToggleResponse(completed=not task.completed, successor_id=successor_id)


@app.post("/users/{user_id}/token", response_model=HealthResponse)
async def register_token(user_id: str, body: TokenRequest, _key: str = Depends(_verify_api_key)) -> HealthResponse:
    """Register the user's notification token. Requires Bearer auth."""
    store = _require_store()
    try:
        await store.register_token(user_id, body.token)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return HealthResponse(status="registered")
