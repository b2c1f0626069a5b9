"""Quiz question generation, distractor selection, and scoring."""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Iterator, Sequence
from uuid import uuid4

from .content_loader import Curriculum
from .models import (
    Lesson,
    PointsBreakdown,
    QuizFeedback,
    QuizQuestion,
    QuizResult,
    UserAnswer,
    Word,
    round_half_up,
)

logger = logging.getLogger(__name__)

DEFAULT_DISTRACTOR_COUNT = 3
DEFAULT_PASSING_PERCENTAGE = 80

# Neighbouring vowels a learner is likely to confuse with each target sound.
SUBSTITUTIONS: dict[str, tuple[str, ...]] = {
    "aa": ("a", "ae", "ee"),
    "ee": ("e", "ie", "aa"),
    "oo": ("o", "oe", "aa"),
    "uu": ("u", "eu", "oe"),
}

FEEDBACK_PERFECT = "perfect"
FEEDBACK_PASSED = "passed"
FEEDBACK_FAILED = "failed"
FEEDBACK_MESSAGES: dict[str, tuple[str, str]] = {
    FEEDBACK_PERFECT: ("Perfect!", "You got all questions correct. Excellent work!"),
    FEEDBACK_PASSED: ("Great job!", "You passed the quiz. Keep practicing!"),
    FEEDBACK_FAILED: ("Keep trying", "You didn't reach the minimum score. Practice more and try again."),
}


def _shuffled(items: Iterable[str], rng: random.Random | None) -> list[str]:
    shuffled = list(items)
    (rng or random).shuffle(shuffled)
    return shuffled


def pool_candidates(word: Word, lesson: Lesson, rng: random.Random | None = None) -> Iterator[str]:
    """Yield the lesson's hand-picked distractors."""
    yield from _shuffled(lesson.distractor_pool, rng)


def lesson_candidates(word: Word, lesson: Lesson, rng: random.Random | None = None) -> Iterator[str]:
    """Yield the other words of the same lesson."""
    yield from _shuffled((item.word for item in lesson.words if item.id != word.id), rng)


def sibling_candidates(
    word: Word, lesson: Lesson, curriculum: Curriculum, rng: random.Random | None = None
) -> Iterator[str]:
    """Yield words from other lessons that practice the same sound."""
    for sibling in curriculum.get_lessons_by_sound(lesson.sound.combination):
        if sibling.id == lesson.id:
            continue
        yield from _shuffled((item.word for item in sibling.words), rng)


def cross_sound_candidates(
    word: Word, lesson: Lesson, curriculum: Curriculum, rng: random.Random | None = None
) -> Iterator[str]:
    """Yield words from lessons of other sounds, visiting sounds in random order."""
    other_sounds = [sound for sound in curriculum.all_sounds() if sound != lesson.sound.combination]
    for sound in _shuffled(other_sounds, rng):
        for other in curriculum.get_lessons_by_sound(sound):
            yield from _shuffled((item.word for item in other.words), rng)


def substitution_candidates(word: Word, lesson: Lesson) -> Iterator[str]:
    """Yield the target word with its vowel swapped for a neighbouring one."""
    sound = lesson.sound.combination
    lowered = word.word.lower()
    if sound not in lowered:
        return
    for replacement in SUBSTITUTIONS.get(sound, ()):
        yield lowered.replace(sound, replacement, 1)


def get_distractors(
    word: Word,
    lesson: Lesson,
    curriculum: Curriculum,
    count: int = DEFAULT_DISTRACTOR_COUNT,
    rng: random.Random | None = None,
) -> list[str]:
    """Return up to ``count`` unique wrong answers for ``word``, best candidates first."""
    if count <= 0:
        return []
    tiers: tuple[Iterator[str], ...] = (
        pool_candidates(word, lesson, rng),
        lesson_candidates(word, lesson, rng),
        sibling_candidates(word, lesson, curriculum, rng),
        cross_sound_candidates(word, lesson, curriculum, rng),
        substitution_candidates(word, lesson),
    )
    distractors: list[str] = []
    seen = {word.word}
    for tier in tiers:
        for candidate in tier:
            if candidate in seen:
                continue
            seen.add(candidate)
            distractors.append(candidate)
            if len(distractors) >= count:
                return distractors
    return distractors


def is_standalone_sound(word: Word, lesson: Lesson) -> bool:
    """Return whether the word is just the bare target sound."""
    return word.word.lower() == lesson.sound.combination


def generate_quiz(
    lesson: Lesson,
    curriculum: Curriculum,
    question_count: int | None = None,
    rng: random.Random | None = None,
) -> list[QuizQuestion]:
    """Build a multiple-choice question set for the lesson."""
    # None or 0 falls back to the lesson default.
    requested = question_count or lesson.quiz.question_count
    eligible = [word for word in lesson.words if not is_standalone_sound(word, lesson)]
    selected = (rng or random).sample(eligible, min(max(requested, 0), len(eligible)))

    questions: list[QuizQuestion] = []
    for word in selected:
        options = [word.word, *get_distractors(word, lesson, curriculum, rng=rng)]
        (rng or random).shuffle(options)
        questions.append(
            QuizQuestion(
                question_id=f"{lesson.id}-{word.id}-{uuid4().hex[:9]}",
                word_id=word.id,
                correct_answer=word.word,
                options=tuple(options),
                sound=lesson.sound.combination,
                ipa=lesson.sound.ipa,
                description_es=lesson.sound.description_es,
                description_en=lesson.sound.description_en,
                translation=dict(word.translation),
            )
        )
    logger.debug("Generated %d of %d requested questions for %s", len(questions), requested, lesson.id)
    return questions


def create_user_answer(question: QuizQuestion, selected_answer: str) -> UserAnswer:
    return UserAnswer(
        question_id=question.question_id,
        selected_answer=selected_answer,
        correct_answer=question.correct_answer,
        is_correct=validate_answer(selected_answer, question),
    )


def validate_answer(selected_answer: str, question: QuizQuestion) -> bool:
    return selected_answer == question.correct_answer


def calculate_score(answers: Sequence[UserAnswer], lesson: Lesson) -> QuizResult:
    """Score answered questions and compute the points earned.

    The completion bonus is paid for every finished attempt; the mastery bonus
    only when the attempt passes.
    """
    total = len(answers)
    score = sum(1 for answer in answers if answer.is_correct)
    percentage = round_half_up(score / total * 100) if total > 0 else 0
    passed = percentage / 100 >= lesson.quiz.passing_score

    breakdown = PointsBreakdown(
        correct_points=score * lesson.quiz.points_per_correct,
        completion_bonus=lesson.quiz.completion_bonus,
        mastery_bonus=lesson.quiz.mastery_bonus if passed else 0,
    )
    return QuizResult(
        score=score,
        total=total,
        percentage=percentage,
        passed=passed,
        points=breakdown.correct_points + breakdown.completion_bonus + breakdown.mastery_bonus,
        breakdown=breakdown,
    )


def quiz_feedback(result: QuizResult) -> QuizFeedback:
    """Pick the perfect, passed, or failed message for a scored attempt."""
    if result.total > 0 and result.percentage == 100:
        kind = FEEDBACK_PERFECT
    elif result.passed:
        kind = FEEDBACK_PASSED
    else:
        kind = FEEDBACK_FAILED
    title, message = FEEDBACK_MESSAGES[kind]
    return QuizFeedback(kind=kind, title=title, message=message)


def max_points(lesson: Lesson) -> int:
    """Return the best possible points for one attempt at the lesson."""
    quiz = lesson.quiz
    return quiz.question_count * quiz.points_per_correct + quiz.completion_bonus + quiz.mastery_bonus


def passing_percentage(lesson_id: str, curriculum: Curriculum) -> int:
    lesson = curriculum.get_lesson_by_id(lesson_id)
    if lesson is None:
        return DEFAULT_PASSING_PERCENTAGE
    return round_half_up(lesson.quiz.passing_score * 100)
