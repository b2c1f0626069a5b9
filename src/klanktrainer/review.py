"""Spaced-review scheduling for completed lessons."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime, timedelta

from .models import DueLesson, round_half_up

# Days to wait before the next review, indexed by completed review count.
REVIEW_INTERVALS: tuple[int, ...] = (1, 3, 7, 14, 30)
DEFAULT_REVIEW_LIMIT = 5


def review_interval(review_count: int) -> int:
    """Return the interval in days for a lesson reviewed ``review_count`` times."""
    index = min(max(review_count, 0), len(REVIEW_INTERVALS) - 1)
    return REVIEW_INTERVALS[index]


def _as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def _elapsed_days(last_review: datetime, now: datetime | None) -> float:
    current = _as_utc(now or datetime.now(UTC))
    return (current - _as_utc(last_review)) / timedelta(days=1)


def is_lesson_due_for_review(last_review: datetime, review_count: int, now: datetime | None = None) -> bool:
    return _elapsed_days(last_review, now) >= review_interval(review_count)


def review_urgency(last_review: datetime, review_count: int, now: datetime | None = None) -> int:
    """Return 0-100 where 100 means at least one full interval has passed."""
    ratio = _elapsed_days(last_review, now) / review_interval(review_count)
    return min(max(round_half_up(min(ratio, 1) * 100), 0), 100)


def lessons_due_for_review(
    completed_lesson_ids: Iterable[str],
    review_dates: Mapping[str, datetime],
    review_counts: Mapping[str, int],
    now: datetime | None = None,
) -> list[DueLesson]:
    """Return due lessons, most urgent first.

    Lessons without a recorded review date are skipped.
    """
    current = now or datetime.now(UTC)
    due: list[DueLesson] = []
    for lesson_id in completed_lesson_ids:
        last_review = review_dates.get(lesson_id)
        if last_review is None:
            continue
        count = review_counts.get(lesson_id, 0)
        if not is_lesson_due_for_review(last_review, count, current):
            continue
        due.append(
            DueLesson(
                lesson_id=lesson_id,
                urgency=review_urgency(last_review, count, current),
                last_review=last_review,
                review_count=count,
            )
        )
    due.sort(key=lambda item: item.urgency, reverse=True)
    return due


def select_review_lessons(due: Sequence[DueLesson], max_lessons: int = DEFAULT_REVIEW_LIMIT) -> list[DueLesson]:
    return list(due[: max(max_lessons, 0)])
