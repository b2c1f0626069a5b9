"""Application service for quizzes, scoring, rewards, and spaced review."""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from . import quiz
from .badges import BadgeEvaluator
from .content_loader import Curriculum, load_curriculum
from .milestones import MilestoneTracker
from .models import (
    Badge,
    DueLesson,
    Lesson,
    Milestone,
    NextMilestone,
    QuizAttemptRecord,
    QuizQuestion,
    QuizResult,
    UserAnswer,
    round_half_up,
)
from .progress import ProgressStore
from .review import DEFAULT_REVIEW_LIMIT, lessons_due_for_review, select_review_lessons


@dataclass(frozen=True)
class AttemptOutcome:
    """Everything that changed when one quiz attempt was recorded."""

    result: QuizResult
    record: QuizAttemptRecord
    new_milestone: Milestone | None
    new_badges: tuple[str, ...]
    total_points: int
    first_completion: bool


@dataclass(frozen=True)
class ProgressSummary:
    """Overall learner progress for display."""

    completed: int
    total: int
    percentage: int
    points: int
    current_milestone: Milestone | None
    next_milestone: NextMilestone | None
    earned_badges: tuple[Badge, ...]


class LearnService:
    """Coordinates reference content, progress state, and learning flows."""

    def __init__(
        self,
        db_path: Path | str,
        curriculum: Curriculum | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize service with database path."""
        self.curriculum = curriculum or load_curriculum()
        self.progress = ProgressStore(db_path)
        self.milestones = MilestoneTracker(self.curriculum.get_milestone_tiers(), self.progress)
        self.badges = BadgeEvaluator(self.curriculum, self.progress)
        self._rng = rng

    def list_lessons(self) -> list[Lesson]:
        return self.curriculum.get_all_lessons()

    def get_lesson(self, lesson_id: str) -> Lesson | None:
        return self.curriculum.get_lesson_by_id(lesson_id)

    def is_lesson_unlocked(self, lesson_id: str) -> bool:
        return self.curriculum.is_lesson_unlocked(lesson_id, self.progress.completed_lessons())

    def is_lesson_completed(self, lesson_id: str) -> bool:
        return self.progress.is_lesson_completed(lesson_id)

    def generate_quiz(self, lesson_id: str, question_count: int | None = None) -> list[QuizQuestion]:
        """Return a fresh question set, or nothing for an unknown lesson."""
        lesson = self.curriculum.get_lesson_by_id(lesson_id)
        if lesson is None:
            return []
        return quiz.generate_quiz(lesson, self.curriculum, question_count, rng=self._rng)

    def calculate_score(self, lesson_id: str, answers: Sequence[UserAnswer]) -> QuizResult | None:
        lesson = self.curriculum.get_lesson_by_id(lesson_id)
        if lesson is None:
            return None
        return quiz.calculate_score(answers, lesson)

    def record_attempt_and_evaluate(
        self, lesson_id: str, result: QuizResult, now: datetime | None = None
    ) -> AttemptOutcome:
        """Persist a scored attempt and apply completion, review, milestone, and badge effects."""
        timestamp = now or datetime.now(UTC)
        record = self.progress.record_quiz_attempt(
            lesson_id, result.score, result.total, result.passed, timestamp=timestamp
        )

        first_completion = False
        if result.passed:
            first_completion = self.progress.mark_lesson_complete(lesson_id)
            if first_completion:
                self.progress.start_review_tracking(lesson_id, timestamp)
            else:
                self.progress.record_review(lesson_id, timestamp)

        new_milestone = self.milestones.check_new_milestone(result.points)
        total_points = self.progress.add_points(result.points)
        new_badges = self.badges.check_and_award_badges(record)
        return AttemptOutcome(
            result=result,
            record=record,
            new_milestone=new_milestone,
            new_badges=tuple(new_badges),
            total_points=total_points,
            first_completion=first_completion,
        )

    def progress_summary(self) -> ProgressSummary:
        completed = len(set(self.progress.completed_lessons()))
        total = len(self.curriculum.get_all_lessons())
        points = self.progress.total_points()
        earned: list[Badge] = []
        for item in self.progress.earned_badges():
            badge = self.curriculum.get_badge_by_id(item.badge_id)
            if badge is not None:
                earned.append(badge)
        return ProgressSummary(
            completed=completed,
            total=total,
            percentage=round_half_up(completed / total * 100) if total else 0,
            points=points,
            current_milestone=self.milestones.current_milestone(points),
            next_milestone=self.milestones.next_milestone(points),
            earned_badges=tuple(earned),
        )

    def due_reviews(self, now: datetime | None = None, limit: int = DEFAULT_REVIEW_LIMIT) -> list[DueLesson]:
        """Return the most urgent completed lessons waiting for review."""
        due = lessons_due_for_review(
            self.progress.completed_lessons(),
            self.progress.review_dates(),
            self.progress.review_counts(),
            now=now,
        )
        return select_review_lessons(due, limit)

    def reset_progress(self) -> None:
        self.progress.reset()

    def close(self) -> None:
        """Close underlying resources."""
        self.progress.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort cleanup."""
        try:
            self.close()
        except Exception:
            pass
