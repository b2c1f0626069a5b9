"""Badge rule evaluation against recorded quiz attempts."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from .content_loader import Curriculum
from .models import (
    LEVEL_ADVANCED,
    LEVEL_BEGINNER,
    BadgeCriteria,
    FailThenPass,
    LessonsCompleted,
    PerfectQuiz,
    QuizAttemptRecord,
    QuizPassCount,
    SoundMastery,
    ZeroScoreRetry,
)
from .progress import ProgressStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Rule = Callable[[Any, QuizAttemptRecord], bool]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class BadgeEvaluator:
    """Award catalog badges whose rules hold after an attempt is recorded."""

    def __init__(self, curriculum: Curriculum, store: ProgressStore, clock: Clock | None = None) -> None:
        self.curriculum = curriculum
        self.store = store
        self.clock = clock or _utc_now
        self._rules: dict[type, Rule] = {
            ZeroScoreRetry: self._zero_score_retry,
            QuizPassCount: self._quiz_pass_count,
            FailThenPass: self._fail_then_pass,
            PerfectQuiz: self._perfect_quiz,
            LessonsCompleted: self._lessons_completed,
            SoundMastery: self._sound_mastery,
        }

    def criteria_met(self, criteria: BadgeCriteria, attempt: QuizAttemptRecord) -> bool:
        rule = self._rules.get(type(criteria))
        if rule is None:
            return False
        return rule(criteria, attempt)

    def check_and_award_badges(self, attempt: QuizAttemptRecord) -> list[str]:
        """Award every newly satisfied badge and return their ids in catalog order.

        Expects the attempt to be in history already and, when it passed, the
        lesson to be marked complete.
        """
        earned = {badge.badge_id for badge in self.store.earned_badges()}
        awarded: list[str] = []
        for badge in self.curriculum.get_all_badges():
            if badge.id in earned:
                continue
            if not self.criteria_met(badge.criteria, attempt):
                continue
            if self.store.award_badge(badge.id, self.clock()):
                awarded.append(badge.id)
                logger.info("Badge awarded: %s", badge.id)
        return awarded

    def _zero_score_retry(self, criteria: ZeroScoreRetry, attempt: QuizAttemptRecord) -> bool:
        attempts = self.store.quiz_attempts_for_lesson(attempt.lesson_id)
        earlier = attempts[:-1]
        return any(record.score == 0 for record in earlier)

    def _quiz_pass_count(self, criteria: QuizPassCount, attempt: QuizAttemptRecord) -> bool:
        passes = sum(1 for record in self.store.quiz_history() if record.passed)
        return passes >= criteria.count

    def _fail_then_pass(self, criteria: FailThenPass, attempt: QuizAttemptRecord) -> bool:
        failed: set[str] = set()
        for record in self.store.quiz_history():
            if not record.passed:
                failed.add(record.lesson_id)
            elif record.lesson_id in failed:
                return True
        return False

    def _perfect_quiz(self, criteria: PerfectQuiz, attempt: QuizAttemptRecord) -> bool:
        return attempt.total > 0 and attempt.percentage == 100

    def _lessons_completed(self, criteria: LessonsCompleted, attempt: QuizAttemptRecord) -> bool:
        return len(set(self.store.completed_lessons())) >= criteria.count

    def _sound_mastery(self, criteria: SoundMastery, attempt: QuizAttemptRecord) -> bool:
        lessons = self.curriculum.get_lessons_by_sound(criteria.sound)
        beginner = [lesson.id for lesson in lessons if lesson.level == LEVEL_BEGINNER]
        advanced = [lesson.id for lesson in lessons if lesson.level == LEVEL_ADVANCED]
        if not beginner or not advanced:
            return False
        completed = set(self.store.completed_lessons())
        return all(lesson_id in completed for lesson_id in beginner + advanced)
