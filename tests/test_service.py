import random
from datetime import UTC, datetime, timedelta
from pathlib import Path

from klanktrainer.models import QuizResult, UserAnswer
from klanktrainer.quiz import create_user_answer
from klanktrainer.service import LearnService

START = datetime(2026, 6, 1, 10, 0, tzinfo=UTC)


def _answer_all(service: LearnService, lesson_id: str, correct: int) -> QuizResult:
    questions = service.generate_quiz(lesson_id)
    answers: list[UserAnswer] = []
    for idx, question in enumerate(questions):
        if idx < correct:
            selected = question.correct_answer
        else:
            selected = next(option for option in question.options if option != question.correct_answer)
        answers.append(create_user_answer(question, selected))
    result = service.calculate_score(lesson_id, answers)
    assert result is not None
    return result


def test_unknown_lesson_yields_empty_quiz_and_no_score() -> None:
    service = LearnService(":memory:")
    assert service.generate_quiz("P9-ZZ-BEG") == []
    assert service.calculate_score("P9-ZZ-BEG", []) is None
    assert service.is_lesson_unlocked("P9-ZZ-BEG") is False


def test_generate_quiz_respects_requested_count() -> None:
    service = LearnService(":memory:", rng=random.Random(5))
    assert len(service.generate_quiz("P1-AA-BEG")) == 5
    assert len(service.generate_quiz("P1-AA-BEG", question_count=2)) == 2


def test_end_to_end_first_pass_then_advanced_mastery() -> None:
    service = LearnService(":memory:")

    result = _answer_all(service, "P1-AA-BEG", 5)
    outcome = service.record_attempt_and_evaluate("P1-AA-BEG", result, now=START)
    assert outcome.result.points == 100
    assert outcome.total_points == 100
    assert outcome.first_completion is True
    assert outcome.new_milestone is None
    assert outcome.new_badges == ("first-steps", "perfect-score")
    assert service.is_lesson_unlocked("P1-AA-ADV") is True

    result = _answer_all(service, "P1-AA-ADV", 4)
    outcome = service.record_attempt_and_evaluate("P1-AA-ADV", result, now=START + timedelta(minutes=10))
    assert result.points == 4 * 12 + 25 + 35
    assert outcome.total_points == 208
    assert outcome.new_milestone is not None
    assert outcome.new_milestone.level == "bronze"
    assert outcome.new_badges == ("sound-master-aa",)


def test_failed_attempt_adds_points_but_not_completion() -> None:
    service = LearnService(":memory:")
    result = _answer_all(service, "P1-EE-BEG", 1)
    outcome = service.record_attempt_and_evaluate("P1-EE-BEG", result, now=START)
    assert result.passed is False
    assert outcome.first_completion is False
    assert outcome.total_points == 10 + 20
    assert service.progress.completed_lessons() == []
    assert service.progress.review_states() == {}
    assert len(service.progress.quiz_history()) == 1


def test_review_schedule_follows_passes() -> None:
    service = LearnService(":memory:")
    result = _answer_all(service, "P1-AA-BEG", 5)
    service.record_attempt_and_evaluate("P1-AA-BEG", result, now=START)

    assert service.due_reviews(now=START + timedelta(hours=12)) == []
    due = service.due_reviews(now=START + timedelta(days=1))
    assert [item.lesson_id for item in due] == ["P1-AA-BEG"]
    assert due[0].urgency == 100

    reviewed_at = START + timedelta(days=2)
    outcome = service.record_attempt_and_evaluate("P1-AA-BEG", result, now=reviewed_at)
    assert outcome.first_completion is False
    assert service.progress.review_counts() == {"P1-AA-BEG": 1}
    assert service.due_reviews(now=reviewed_at + timedelta(days=2)) == []
    assert len(service.due_reviews(now=reviewed_at + timedelta(days=3))) == 1


def test_failed_review_leaves_schedule_untouched() -> None:
    service = LearnService(":memory:")
    service.record_attempt_and_evaluate("P1-AA-BEG", _answer_all(service, "P1-AA-BEG", 5), now=START)
    failed = _answer_all(service, "P1-AA-BEG", 0)
    service.record_attempt_and_evaluate("P1-AA-BEG", failed, now=START + timedelta(days=5))
    assert service.progress.review_dates() == {"P1-AA-BEG": START}
    assert service.progress.review_counts() == {"P1-AA-BEG": 0}


def test_due_reviews_limit() -> None:
    service = LearnService(":memory:")
    for lesson in service.list_lessons()[:8]:
        if service.is_lesson_unlocked(lesson.id):
            service.record_attempt_and_evaluate(lesson.id, _answer_all(service, lesson.id, 5), now=START)
    assert len(service.due_reviews(now=START + timedelta(days=1))) == 5
    assert len(service.due_reviews(now=START + timedelta(days=1), limit=2)) == 2


def test_progress_summary() -> None:
    service = LearnService(":memory:")
    summary = service.progress_summary()
    assert (summary.completed, summary.total, summary.percentage, summary.points) == (0, 24, 0, 0)
    assert summary.current_milestone is None
    assert summary.next_milestone is not None
    assert summary.next_milestone.remaining == 200
    assert summary.earned_badges == ()

    service.record_attempt_and_evaluate("P1-AA-BEG", _answer_all(service, "P1-AA-BEG", 5), now=START)
    summary = service.progress_summary()
    assert (summary.completed, summary.percentage, summary.points) == (1, 4, 100)
    assert [badge.id for badge in summary.earned_badges] == ["first-steps", "perfect-score"]


def test_reset_progress_clears_state(tmp_path: Path) -> None:
    db_path = tmp_path / "progress.db"
    service = LearnService(db_path)
    service.record_attempt_and_evaluate("P1-AA-BEG", _answer_all(service, "P1-AA-BEG", 5), now=START)
    service.close()

    reopened = LearnService(db_path)
    assert reopened.progress_summary().points == 100
    reopened.reset_progress()
    summary = reopened.progress_summary()
    assert (summary.completed, summary.points, summary.earned_badges) == (0, 0, ())
    assert reopened.due_reviews(now=START + timedelta(days=30)) == []
    reopened.close()
