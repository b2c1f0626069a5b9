"""SQLite persistence for the learner's progress records."""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .models import EarnedBadge, QuizAttemptRecord, ReviewState

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

COMPLETED_LESSONS_KEY = "completed_lessons"
TOTAL_POINTS_KEY = "total_points"
EARNED_BADGES_KEY = "earned_badges"
QUIZ_HISTORY_KEY = "quiz_history"
REVIEW_STATE_KEY = "review_state"
PROGRESS_KEYS = (
    COMPLETED_LESSONS_KEY,
    TOTAL_POINTS_KEY,
    EARNED_BADGES_KEY,
    QUIZ_HISTORY_KEY,
    REVIEW_STATE_KEY,
)


class ProgressStore:
    """Key/value access layer for the five independent progress records.

    Every record is stored as a JSON string under its own key. A record that
    cannot be parsed reads as its empty default without touching the others.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize database and schema."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )

    def _migrate_to_v1(self) -> None:
        """Create the key/value progress table."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS progress_records (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)

    def get_raw(self, key: str) -> str | None:
        """Return the serialized value stored under key."""
        row = self._conn.execute("SELECT value FROM progress_records WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_raw(self, key: str, value: str) -> None:
        """Store a serialized value under key."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO progress_records (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, datetime.now(UTC).isoformat()),
            )

    def _read_json(self, key: str) -> Any:
        stored = self.get_raw(key)
        if not stored:
            return None
        try:
            return json.loads(stored)
        except ValueError:
            logger.warning("Ignoring unparsable progress record %r", key)
            return None

    def _write_json(self, key: str, value: Any) -> None:
        self.set_raw(key, json.dumps(value))

    def completed_lessons(self) -> list[str]:
        """Return completed lesson ids in completion order."""
        parsed = self._read_json(COMPLETED_LESSONS_KEY)
        if not isinstance(parsed, list):
            return []
        return [item for item in parsed if isinstance(item, str)]

    def is_lesson_completed(self, lesson_id: str) -> bool:
        return lesson_id in self.completed_lessons()

    def mark_lesson_complete(self, lesson_id: str) -> bool:
        """Add lesson to the completed set; return False if it was already there."""
        completed = self.completed_lessons()
        if lesson_id in completed:
            return False
        completed.append(lesson_id)
        self._write_json(COMPLETED_LESSONS_KEY, completed)
        return True

    def total_points(self) -> int:
        parsed = self._read_json(TOTAL_POINTS_KEY)
        if isinstance(parsed, bool) or not isinstance(parsed, int | float):
            return 0
        if not math.isfinite(parsed):
            logger.warning("Ignoring non-finite points total %r", parsed)
            return 0
        return int(parsed)

    def add_points(self, points: int) -> int:
        """Add points to the stored total and return the new total."""
        new_total = self.total_points() + points
        self._write_json(TOTAL_POINTS_KEY, new_total)
        return new_total

    def earned_badges(self) -> list[EarnedBadge]:
        """Return earned badges in award order."""
        parsed = self._read_json(EARNED_BADGES_KEY)
        if not isinstance(parsed, list):
            return []
        badges: list[EarnedBadge] = []
        for item in parsed:
            if not isinstance(item, dict):
                continue
            badge_id = item.get("id")
            earned_at = _parse_timestamp(item.get("earned_at"))
            if not isinstance(badge_id, str) or earned_at is None:
                continue
            badges.append(EarnedBadge(badge_id=badge_id, earned_at=earned_at))
        return badges

    def is_badge_earned(self, badge_id: str) -> bool:
        return any(badge.badge_id == badge_id for badge in self.earned_badges())

    def award_badge(self, badge_id: str, earned_at: datetime | None = None) -> bool:
        """Append a badge unless already earned; return whether it was newly awarded."""
        earned = self.earned_badges()
        if any(badge.badge_id == badge_id for badge in earned):
            return False
        earned.append(EarnedBadge(badge_id=badge_id, earned_at=earned_at or datetime.now(UTC)))
        self._write_json(
            EARNED_BADGES_KEY,
            [{"id": badge.badge_id, "earned_at": badge.earned_at.isoformat()} for badge in earned],
        )
        return True

    def quiz_history(self) -> list[QuizAttemptRecord]:
        """Return all recorded attempts in the order they were recorded."""
        parsed = self._read_json(QUIZ_HISTORY_KEY)
        if not isinstance(parsed, list):
            return []
        records: list[QuizAttemptRecord] = []
        for item in parsed:
            record = _attempt_from_dict(item)
            if record is not None:
                records.append(record)
        return records

    def quiz_attempts_for_lesson(self, lesson_id: str) -> list[QuizAttemptRecord]:
        return [record for record in self.quiz_history() if record.lesson_id == lesson_id]

    def record_quiz_attempt(
        self,
        lesson_id: str,
        score: int,
        total: int,
        passed: bool,
        timestamp: datetime | None = None,
    ) -> QuizAttemptRecord:
        """Append one attempt summary to the history."""
        record = QuizAttemptRecord(
            lesson_id=lesson_id,
            score=score,
            total=total,
            passed=passed,
            timestamp=timestamp or datetime.now(UTC),
        )
        history = self.quiz_history()
        history.append(record)
        self._write_json(QUIZ_HISTORY_KEY, [_attempt_to_dict(item) for item in history])
        return record

    def review_states(self) -> dict[str, ReviewState]:
        """Return review bookkeeping keyed by lesson id."""
        parsed = self._read_json(REVIEW_STATE_KEY)
        if not isinstance(parsed, dict):
            return {}
        states: dict[str, ReviewState] = {}
        for lesson_id, item in parsed.items():
            if not isinstance(item, dict):
                continue
            last_review = _parse_timestamp(item.get("last_review"))
            count = item.get("review_count", 0)
            if last_review is None or isinstance(count, bool) or not isinstance(count, int):
                continue
            states[str(lesson_id)] = ReviewState(last_review=last_review, review_count=max(0, count))
        return states

    def review_dates(self) -> dict[str, datetime]:
        return {lesson_id: state.last_review for lesson_id, state in self.review_states().items()}

    def review_counts(self) -> dict[str, int]:
        return {lesson_id: state.review_count for lesson_id, state in self.review_states().items()}

    def start_review_tracking(self, lesson_id: str, reviewed_at: datetime) -> ReviewState:
        """Create review state for a newly completed lesson; keep existing state untouched."""
        states = self.review_states()
        existing = states.get(lesson_id)
        if existing is not None:
            return existing
        state = ReviewState(last_review=reviewed_at, review_count=0)
        states[lesson_id] = state
        self._write_review_states(states)
        return state

    def record_review(self, lesson_id: str, reviewed_at: datetime) -> ReviewState:
        """Register a passing review: bump the count and reset the review clock."""
        states = self.review_states()
        existing = states.get(lesson_id)
        if existing is None:
            state = ReviewState(last_review=reviewed_at, review_count=0)
        else:
            state = ReviewState(last_review=reviewed_at, review_count=existing.review_count + 1)
        states[lesson_id] = state
        self._write_review_states(states)
        return state

    def _write_review_states(self, states: dict[str, ReviewState]) -> None:
        self._write_json(
            REVIEW_STATE_KEY,
            {
                lesson_id: {"last_review": state.last_review.isoformat(), "review_count": state.review_count}
                for lesson_id, state in states.items()
            },
        )

    def reset(self) -> None:
        """Delete all progress records in a single transaction."""
        placeholders = ", ".join("?" for _ in PROGRESS_KEYS)
        with self._conn:
            self._conn.execute(f"DELETE FROM progress_records WHERE key IN ({placeholders})", PROGRESS_KEYS)
        logger.info("Progress reset")

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def _parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO timestamp, assuming UTC when no offset is stored."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _attempt_to_dict(record: QuizAttemptRecord) -> dict[str, object]:
    return {
        "lesson_id": record.lesson_id,
        "score": record.score,
        "total": record.total,
        "passed": record.passed,
        "timestamp": record.timestamp.isoformat(),
    }


def _attempt_from_dict(raw: object) -> QuizAttemptRecord | None:
    """Rebuild one attempt, skipping entries with missing or mistyped fields."""
    if not isinstance(raw, dict):
        return None
    lesson_id = raw.get("lesson_id")
    score = raw.get("score")
    total = raw.get("total")
    passed = raw.get("passed")
    timestamp = _parse_timestamp(raw.get("timestamp"))
    if not isinstance(lesson_id, str) or timestamp is None or not isinstance(passed, bool):
        return None
    if isinstance(score, bool) or not isinstance(score, int):
        return None
    if isinstance(total, bool) or not isinstance(total, int):
        return None
    return QuizAttemptRecord(lesson_id=lesson_id, score=score, total=total, passed=passed, timestamp=timestamp)
