"""Core domain models for lessons, quizzes, badges, and learner progress."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

LEVEL_BEGINNER = "beginner"
LEVEL_ADVANCED = "advanced"
VALID_LEVELS = (LEVEL_BEGINNER, LEVEL_ADVANCED)


@dataclass(frozen=True)
class Sound:
    """Target vowel combination with pronunciation notes."""

    combination: str
    ipa: str
    description_es: str
    description_en: str


@dataclass(frozen=True)
class Word:
    """One practice word built as ``prefix + sound + suffix``."""

    id: str
    word: str
    prefix: str
    suffix: str
    translation: dict[str, str]
    syllables: int


@dataclass(frozen=True)
class QuizConfig:
    """Per-lesson quiz and scoring settings."""

    question_count: int
    passing_score: float
    points_per_correct: int
    completion_bonus: int
    mastery_bonus: int


@dataclass(frozen=True)
class Lesson:
    """Curriculum unit targeting one sound at one level."""

    id: str
    phase: int
    sound: Sound
    level: str
    unlock_requires: str | None
    words: tuple[Word, ...]
    quiz: QuizConfig
    estimated_minutes: int
    distractor_pool: tuple[str, ...] = ()


@dataclass(frozen=True)
class ZeroScoreRetry:
    type: ClassVar[str] = "zero_score_retry"


@dataclass(frozen=True)
class QuizPassCount:
    count: int
    type: ClassVar[str] = "quiz_pass_count"


@dataclass(frozen=True)
class FailThenPass:
    type: ClassVar[str] = "fail_then_pass"


@dataclass(frozen=True)
class PerfectQuiz:
    type: ClassVar[str] = "perfect_quiz"


@dataclass(frozen=True)
class LessonsCompleted:
    count: int
    type: ClassVar[str] = "lessons_completed"


@dataclass(frozen=True)
class SoundMastery:
    sound: str
    type: ClassVar[str] = "sound_mastery"


BadgeCriteria = ZeroScoreRetry | QuizPassCount | FailThenPass | PerfectQuiz | LessonsCompleted | SoundMastery


@dataclass(frozen=True)
class Badge:
    """Achievement catalog entry."""

    id: str
    category: str
    name_es: str
    name_en: str
    description_es: str
    description_en: str
    icon: str
    criteria: BadgeCriteria


@dataclass(frozen=True)
class Milestone:
    """Cumulative point tier."""

    level: str
    points: int
    color: str
    name_es: str
    name_en: str


@dataclass(frozen=True)
class NextMilestone:
    """Upcoming tier and the points still missing to reach it."""

    milestone: Milestone
    remaining: int


@dataclass(frozen=True)
class QuizQuestion:
    """One generated multiple-choice question."""

    question_id: str
    word_id: str
    correct_answer: str
    options: tuple[str, ...]
    sound: str
    ipa: str
    description_es: str
    description_en: str
    translation: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class UserAnswer:
    """Learner's answer to one question."""

    question_id: str
    selected_answer: str
    correct_answer: str
    is_correct: bool


@dataclass(frozen=True)
class PointsBreakdown:
    correct_points: int
    completion_bonus: int
    mastery_bonus: int


@dataclass(frozen=True)
class QuizResult:
    """Scored quiz attempt."""

    score: int
    total: int
    percentage: int
    passed: bool
    points: int
    breakdown: PointsBreakdown


@dataclass(frozen=True)
class QuizFeedback:
    """Headline and encouragement shown after a scored quiz."""

    kind: str
    title: str
    message: str


@dataclass(frozen=True)
class QuizAttemptRecord:
    """Persisted summary of one quiz attempt."""

    lesson_id: str
    score: int
    total: int
    passed: bool
    timestamp: datetime

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return round_half_up(self.score / self.total * 100)


@dataclass(frozen=True)
class EarnedBadge:
    badge_id: str
    earned_at: datetime


@dataclass(frozen=True)
class ReviewState:
    """Spaced-review bookkeeping for one completed lesson."""

    last_review: datetime
    review_count: int


@dataclass(frozen=True)
class DueLesson:
    """Lesson waiting for review, ranked by urgency."""

    lesson_id: str
    urgency: int
    last_review: datetime
    review_count: int


def round_half_up(value: float) -> int:
    """Round to the nearest integer with ties going up."""
    return math.floor(value + 0.5)
