import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from klanktrainer.badges import BadgeEvaluator
from klanktrainer.content_loader import load_curriculum
from klanktrainer.models import QuizAttemptRecord
from klanktrainer.progress import ProgressStore

FIXED_NOW = datetime(2026, 4, 1, 8, 30, tzinfo=UTC)


class _Session:
    """Records attempts the same way the service does before badges are checked."""

    def __init__(self) -> None:
        self.store = ProgressStore(":memory:")
        self.evaluator = BadgeEvaluator(load_curriculum(), self.store, clock=lambda: FIXED_NOW)
        self._tick = 0

    def attempt(self, lesson_id: str, score: int, total: int = 5, passed: bool | None = None) -> list[str]:
        self._tick += 1
        did_pass = score / total >= 0.8 if passed is None else passed
        record = self.store.record_quiz_attempt(
            lesson_id, score, total, did_pass, timestamp=FIXED_NOW + timedelta(minutes=self._tick)
        )
        if did_pass:
            self.store.mark_lesson_complete(lesson_id)
        return self.evaluator.check_and_award_badges(record)


def test_first_perfect_pass_awards_first_steps_and_perfect_score() -> None:
    session = _Session()
    assert session.attempt("P1-AA-BEG", 5) == ["first-steps", "perfect-score"]
    earned = session.store.earned_badges()
    assert [badge.badge_id for badge in earned] == ["first-steps", "perfect-score"]
    assert all(badge.earned_at == FIXED_NOW for badge in earned)


def test_passing_both_levels_awards_sound_mastery() -> None:
    session = _Session()
    session.attempt("P1-AA-BEG", 5)
    assert session.attempt("P1-AA-ADV", 4) == ["sound-master-aa"]


def test_reevaluation_is_idempotent() -> None:
    session = _Session()
    record = session.store.record_quiz_attempt("P1-AA-BEG", 5, 5, True, timestamp=FIXED_NOW)
    session.store.mark_lesson_complete("P1-AA-BEG")
    first = session.evaluator.check_and_award_badges(record)
    second = session.evaluator.check_and_award_badges(record)
    assert first == ["first-steps", "perfect-score"]
    assert second == []
    assert len(session.store.earned_badges()) == 2


def test_retry_after_zero_score_awards_never_give_up() -> None:
    session = _Session()
    assert session.attempt("P1-EE-BEG", 0) == []
    assert "never-give-up" in session.attempt("P1-EE-BEG", 2)


def test_zero_score_on_other_lesson_does_not_count_as_retry() -> None:
    session = _Session()
    session.attempt("P1-EE-BEG", 0)
    assert "never-give-up" not in session.attempt("P1-OO-BEG", 2)


def test_fail_then_pass_awards_perseverance() -> None:
    session = _Session()
    session.attempt("P1-OO-BEG", 2)
    awarded = session.attempt("P1-OO-BEG", 4)
    assert "perseverance" in awarded
    assert "first-steps" in awarded
    assert "perfect-score" not in awarded


def test_pass_on_different_lesson_is_not_perseverance() -> None:
    session = _Session()
    session.attempt("P1-OO-BEG", 2)
    assert "perseverance" not in session.attempt("P1-UU-BEG", 4)


def test_practice_master_needs_ten_passes() -> None:
    session = _Session()
    for _ in range(9):
        assert "practice-master" not in session.attempt("P1-AA-BEG", 4)
    assert session.attempt("P1-AA-BEG", 4) == ["practice-master"]


def test_perfect_score_needs_questions() -> None:
    session = _Session()
    assert "perfect-score" not in session.attempt("P1-AA-BEG", 0, total=0, passed=False)


def test_level_badges_follow_completed_count() -> None:
    session = _Session()
    curriculum = load_curriculum()
    awarded: list[str] = []
    for lesson in curriculum.get_lessons_by_phase(1):
        awarded.extend(session.attempt(lesson.id, 4))
    assert "level-1-complete" in awarded
    assert "level-2-complete" not in awarded
    for lesson in curriculum.get_lessons_by_phase(2):
        awarded.extend(session.attempt(lesson.id, 4))
    assert "level-2-complete" in awarded
    assert len(awarded) == len(set(awarded))
    assert {f"sound-master-{sound}" for sound in curriculum.all_sounds()} <= set(awarded)


def test_badge_awards_are_logged(caplog: Any) -> None:
    session = _Session()
    with caplog.at_level(logging.INFO, logger="klanktrainer.badges"):
        session.attempt("P1-AA-BEG", 5)
    assert any("first-steps" in record.getMessage() for record in caplog.records)


def test_unknown_criteria_kind_is_never_met() -> None:
    session = _Session()
    record = QuizAttemptRecord(lesson_id="P1-AA-BEG", score=5, total=5, passed=True, timestamp=FIXED_NOW)
    assert session.evaluator.criteria_met(object(), record) is False  # type: ignore[arg-type]
