"""Per-user document store interface and the in-memory backend."""

from __future__ import annotations

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date
from typing import Any

from stride.data.schemas import (
    HabitRecord,
    QuranProgress,
    TaskRecord,
    day_key,
    habit_from_document,
    quran_from_document,
    quran_to_document,
    task_from_document,
)

logger = logging.getLogger(__name__)

HABITS = "habits"
TASKS = "tasks"
QURAN = "quran_progress"
TOKENS = "tokens"

_QURAN_DOC_ID = "main"
_TOKEN_DOC_ID = "default"

Document = dict[str, Any]
HabitListener = Callable[[list[HabitRecord]], None]
Unsubscribe = Callable[[], None]


class RecordNotFoundError(KeyError):
    """Raised when a requested document does not exist."""


class DocumentStore(ABC):
    """Typed access to per-user collections of JSON-like documents.

    Backends implement the raw document primitives; this class layers the
    record conversions, habit subscriptions and the token registry on top.
    Writes are point updates with no cross-document transactions.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[HabitListener]] = {}

    # --- raw primitives -------------------------------------------------

    @abstractmethod
    async def _get_doc(self, user_id: str, collection: str, doc_id: str) -> Document | None:
        """Return a copy of the document, or None."""

    @abstractmethod
    async def _put_doc(self, user_id: str, collection: str, doc_id: str, doc: Document) -> None:
        """Create or replace a document."""

    @abstractmethod
    async def _delete_doc(self, user_id: str, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it did not exist."""

    @abstractmethod
    async def _list_docs(self, user_id: str, collection: str) -> dict[str, Document]:
        """Return all documents of a collection keyed by id."""

    @abstractmethod
    async def _list_users(self) -> list[str]:
        """Return all user ids that own at least one document."""

    async def _merge_doc(self, user_id: str, collection: str, doc_id: str, fields: Document) -> None:
        """Apply a partial update to an existing document."""
        current = await self._get_doc(user_id, collection, doc_id)
        if current is None:
            msg = f"{collection}/{doc_id} not found for user {user_id}"
            raise RecordNotFoundError(msg)
        current.update(copy.deepcopy(fields))
        await self._put_doc(user_id, collection, doc_id, current)

    # --- habits ---------------------------------------------------------

    async def list_habits(self, user_id: str) -> list[HabitRecord]:
        """Return the user's habits in display order."""
        docs = await self._list_docs(user_id, HABITS)
        habits = [habit_from_document(habit_id, doc) for habit_id, doc in docs.items()]
        return sorted(habits, key=lambda h: (h.order, h.id))

    async def get_habit(self, user_id: str, habit_id: str) -> HabitRecord:
        doc = await self._get_doc(user_id, HABITS, habit_id)
        if doc is None:
            msg = f"Habit {habit_id} not found for user {user_id}"
            raise RecordNotFoundError(msg)
        return habit_from_document(habit_id, doc)

    async def find_habit_by_name(self, user_id: str, name: str) -> HabitRecord | None:
        for habit in await self.list_habits(user_id):
            if habit.name == name:
                return habit
        return None

    async def add_habit(self, user_id: str, doc: Document) -> str:
        habit_id = uuid.uuid4().hex
        await self._put_doc(user_id, HABITS, habit_id, copy.deepcopy(doc))
        await self._publish_habits(user_id)
        return habit_id

    async def write_habit(self, user_id: str, habit_id: str, fields: Document) -> None:
        """Atomically apply a partial update to one habit."""
        await self._merge_doc(user_id, HABITS, habit_id, fields)
        await self._publish_habits(user_id)

    async def delete_habit(self, user_id: str, habit_id: str) -> None:
        if not await self._delete_doc(user_id, HABITS, habit_id):
            msg = f"Habit {habit_id} not found for user {user_id}"
            raise RecordNotFoundError(msg)
        await self._publish_habits(user_id)

    def subscribe_habits(self, user_id: str, on_change: HabitListener) -> Unsubscribe:
        """Register a listener that receives the full habit list after every change."""
        self._listeners.setdefault(user_id, []).append(on_change)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(user_id, [])
            if on_change in listeners:
                listeners.remove(on_change)

        return _unsubscribe

    async def _publish_habits(self, user_id: str) -> None:
        listeners = list(self._listeners.get(user_id, []))
        if not listeners:
            return
        habits = await self.list_habits(user_id)
        for listener in listeners:
            try:
                listener(habits)
            except Exception:
                logger.exception("Habit listener failed for user %s", user_id)

    # --- tasks ----------------------------------------------------------

    async def get_task(self, user_id: str, task_id: str) -> TaskRecord:
        doc = await self._get_doc(user_id, TASKS, task_id)
        if doc is None:
            msg = f"Task {task_id} not found for user {user_id}"
            raise RecordNotFoundError(msg)
        return task_from_document(task_id, doc)

    async def add_task(self, user_id: str, doc: Document) -> str:
        task_id = uuid.uuid4().hex
        await self._put_doc(user_id, TASKS, task_id, copy.deepcopy(doc))
        return task_id

    async def write_task(self, user_id: str, task_id: str, fields: Document) -> None:
        await self._merge_doc(user_id, TASKS, task_id, fields)

    async def list_tasks_due_on(self, user_id: str, day: date) -> list[TaskRecord]:
        """Return the user's tasks whose dueDate is the given day."""
        key = day_key(day)
        docs = await self._list_docs(user_id, TASKS)
        return [task_from_document(task_id, doc) for task_id, doc in docs.items() if doc.get("dueDate") == key]

    # --- quran progress -------------------------------------------------

    async def get_quran_progress(self, user_id: str) -> QuranProgress:
        return quran_from_document(await self._get_doc(user_id, QURAN, _QURAN_DOC_ID))

    async def write_quran_progress(self, user_id: str, progress: QuranProgress) -> None:
        await self._put_doc(user_id, QURAN, _QURAN_DOC_ID, quran_to_document(progress))

    # --- notification tokens --------------------------------------------

    async def register_token(self, user_id: str, token: str) -> None:
        if not token:
            msg = "Notification token must not be empty"
            raise ValueError(msg)
        await self._put_doc(user_id, TOKENS, _TOKEN_DOC_ID, {"token": token})

    async def list_users_with_token(self) -> list[tuple[str, str]]:
        """Return (user_id, token) for every user with a registered token."""
        result: list[tuple[str, str]] = []
        for user_id in await self._list_users():
            doc = await self._get_doc(user_id, TOKENS, _TOKEN_DOC_ID)
            token = doc.get("token") if doc else None
            if token:
                result.append((user_id, str(token)))
        return result


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store; documents are deep-copied in and out."""

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[str, dict[str, dict[str, Document]]] = {}

    async def _get_doc(self, user_id: str, collection: str, doc_id: str) -> Document | None:
        doc = self._data.get(user_id, {}).get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def _put_doc(self, user_id: str, collection: str, doc_id: str, doc: Document) -> None:
        self._data.setdefault(user_id, {}).setdefault(collection, {})[doc_id] = copy.deepcopy(doc)

    async def _delete_doc(self, user_id: str, collection: str, doc_id: str) -> bool:
        return self._data.get(user_id, {}).get(collection, {}).pop(doc_id, None) is not None

    async def _list_docs(self, user_id: str, collection: str) -> dict[str, Document]:
        return copy.deepcopy(self._data.get(user_id, {}).get(collection, {}))

    async def _list_users(self) -> list[str]:
        return sorted(self._data)
