"""Quran memorization and review tracking.

Pages map to the day they were memorized; juz and hizb units keep a sorted
list of review days. Memorizing a page or reviewing a juz also marks the
matching linked habit as done for that day, unless it is a counted habit.
"""

from __future__ import annotations

import logging
from datetime import date

from stride.data.progress import create_habit, set_completion
from stride.data.schemas import QuranProgress
from stride.data.store import DocumentStore

logger = logging.getLogger(__name__)

TOTAL_PAGES = 604
TOTAL_JUZ = 30
TOTAL_HIZB = 60

MEMORIZE_HABIT_NAME = "Memorize a page"
REVIEW_HABIT_NAME = "Review a Juz"


def _check_range(kind: str, number: int, upper: int) -> None:
    if not 1 <= number <= upper:
        msg = f"{kind} must be between 1 and {upper}, got {number}"
        raise ValueError(msg)


def _add_review(reviews: dict[int, list[date]], unit: int, day: date) -> bool:
    days = reviews.get(unit, [])
    if day in days:
        return False
    reviews[unit] = sorted([*days, day])
    return True


def _remove_review(reviews: dict[int, list[date]], unit: int, day: date) -> bool:
    days = reviews.get(unit, [])
    if day not in days:
        return False
    reviews[unit] = [d for d in days if d != day]
    return True


async def _complete_linked_habit(store: DocumentStore, user_id: str, name: str, day: date, today: date) -> None:
    habit = await store.find_habit_by_name(user_id, name)
    if habit is None:
        habit_id = await create_habit(store, user_id, name)
        habit = await store.get_habit(user_id, habit_id)
    if habit.is_counted:
        # completion of a counted habit follows its daily progress
        logger.info("Linked habit %s is counted, not marking %s complete", habit.id, day)
        return
    update = set_completion(habit, day, True, today)
    if update is not None:
        await store.write_habit(user_id, habit.id, dict(update))


async def mark_page_memorized(store: DocumentStore, user_id: str, page: int, day: date, today: date) -> QuranProgress:
    _check_range("page", page, TOTAL_PAGES)
    progress = await store.get_quran_progress(user_id)
    progress.memorized_pages[page] = day
    await store.write_quran_progress(user_id, progress)
    await _complete_linked_habit(store, user_id, MEMORIZE_HABIT_NAME, day, today)
    return progress


async def remove_page_memorization(store: DocumentStore, user_id: str, page: int) -> QuranProgress:
    _check_range("page", page, TOTAL_PAGES)
    progress = await store.get_quran_progress(user_id)
    if progress.memorized_pages.pop(page, None) is not None:
        await store.write_quran_progress(user_id, progress)
    return progress


async def log_juz_review(store: DocumentStore, user_id: str, juz: int, day: date, today: date) -> QuranProgress:
    _check_range("juz", juz, TOTAL_JUZ)
    progress = await store.get_quran_progress(user_id)
    if _add_review(progress.juz_reviews, juz, day):
        await store.write_quran_progress(user_id, progress)
        await _complete_linked_habit(store, user_id, REVIEW_HABIT_NAME, day, today)
    return progress


async def remove_juz_review(store: DocumentStore, user_id: str, juz: int, day: date) -> QuranProgress:
    _check_range("juz", juz, TOTAL_JUZ)
    progress = await store.get_quran_progress(user_id)
    if _remove_review(progress.juz_reviews, juz, day):
        await store.write_quran_progress(user_id, progress)
    return progress


async def log_hizb_review(store: DocumentStore, user_id: str, hizb: int, day: date) -> QuranProgress:
    _check_range("hizb", hizb, TOTAL_HIZB)
    progress = await store.get_quran_progress(user_id)
    if _add_review(progress.hizb_reviews, hizb, day):
        await store.write_quran_progress(user_id, progress)
    return progress


async def remove_hizb_review(store: DocumentStore, user_id: str, hizb: int, day: date) -> QuranProgress:
    _check_range("hizb", hizb, TOTAL_HIZB)
    progress = await store.get_quran_progress(user_id)
    if _remove_review(progress.hizb_reviews, hizb, day):
        await store.write_quran_progress(user_id, progress)
    return progress


def pages_memorized_on(progress: QuranProgress, day: date) -> list[int]:
    """Pages memorized on the given day, ascending."""
    return sorted(p for p, d in progress.memorized_pages.items() if d == day)


def memorization_ratio(progress: QuranProgress) -> float:
    """Share of the mushaf memorized, 0-1."""
    return len(progress.memorized_pages) / TOTAL_PAGES
