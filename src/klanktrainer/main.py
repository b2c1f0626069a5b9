"""CLI entrypoint for the Dutch vowel pronunciation trainer."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from pathlib import Path

from .models import Lesson, UserAnswer
from .quiz import create_user_answer, quiz_feedback
from .service import AttemptOutcome, LearnService

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
DEFAULT_DB_PATH = Path(".klanktrainer") / "progress.db"
BACK_COMMANDS = {":back", ":b", "back", "b"}
MENU_QUIT_COMMANDS = {"q"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _service(db_path: Path | str = DEFAULT_DB_PATH) -> LearnService:
    """Create app service with local database path."""
    return LearnService(db_path=db_path)


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="klanktrainer", description="Dutch vowel pronunciation practice")
    parser.add_argument("command", nargs="?", default="play", choices=["play"])
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH, help="progress database path")
    parser.add_argument("--verbose", action="store_true", help="log progress events to stderr")
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return play_shell(db_path=args.db)


def play_shell(input_fn: InputFn = input, print_fn: PrintFn = print, db_path: Path | str = DEFAULT_DB_PATH) -> int:
    """Run persistent menu-driven shell."""
    service = _service(db_path)
    try:
        try:
            while True:
                due_count = len(service.due_reviews())
                print_fn("\n=== Klanktrainer ===")
                print_fn("1) Take a lesson quiz")
                print_fn(f"2) Review due lessons ({due_count})")
                print_fn("3) Status")
                print_fn("4) Reset progress")
                print_fn("q) Quit")
                choice = input_fn("Choose: ").strip().lower()

                if choice == "1":
                    _lesson_flow(service, input_fn, print_fn)
                elif choice == "2":
                    _review_flow(service, input_fn, print_fn)
                elif choice == "3":
                    _status_flow(service, print_fn)
                elif choice == "4":
                    _reset_flow(service, input_fn, print_fn)
                elif choice in MENU_QUIT_COMMANDS:
                    return 0
                else:
                    print_fn("Invalid choice.")
        except QuitApp:
            return 0
    finally:
        service.close()


def _lesson_label(service: LearnService, lesson: Lesson) -> str:
    if service.is_lesson_completed(lesson.id):
        state = "done"
    elif service.is_lesson_unlocked(lesson.id):
        state = "open"
    else:
        state = "locked"
    return f"{lesson.id} [{lesson.sound.combination}] {lesson.level} ({state})"


def _lesson_flow(service: LearnService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Pick an unlocked lesson and run its quiz."""
    lessons = service.list_lessons()
    print_fn("\nLessons")
    for idx, lesson in enumerate(lessons, start=1):
        print_fn(f"{idx}) {_lesson_label(service, lesson)}")
    print_fn("b) Back")
    choice = input_fn("Choose lesson: ").strip().lower()
    if choice in BACK_COMMANDS:
        return
    if choice in FLOW_EXIT_COMMANDS:
        raise QuitApp()
    if not choice.isdigit() or not 1 <= int(choice) <= len(lessons):
        print_fn("Invalid lesson selection.")
        return

    lesson = lessons[int(choice) - 1]
    if not service.is_lesson_unlocked(lesson.id):
        print_fn(f"Locked. Complete {lesson.unlock_requires} first.")
        return
    _run_quiz(service, lesson, input_fn, print_fn)


def _review_flow(service: LearnService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Run quizzes for lessons whose review is due, most urgent first."""
    due = service.due_reviews()
    if not due:
        print_fn("\nNo lessons are due for review.")
        return
    print_fn("\nDue for review")
    for idx, item in enumerate(due, start=1):
        print_fn(f"{idx}) {item.lesson_id} urgency={item.urgency} reviews={item.review_count}")
    print_fn("a) Review all")
    print_fn("b) Back")
    choice = input_fn("Choose: ").strip().lower()
    if choice in BACK_COMMANDS:
        return
    if choice in FLOW_EXIT_COMMANDS:
        raise QuitApp()
    if choice == "a":
        selected = due
    elif choice.isdigit() and 1 <= int(choice) <= len(due):
        selected = [due[int(choice) - 1]]
    else:
        print_fn("Invalid choice.")
        return

    for item in selected:
        lesson = service.get_lesson(item.lesson_id)
        if lesson is None:
            continue
        if not _run_quiz(service, lesson, input_fn, print_fn):
            return


def _run_quiz(service: LearnService, lesson: Lesson, input_fn: InputFn, print_fn: PrintFn) -> bool:
    """Ask every question of a fresh quiz; return False when the learner backed out."""
    questions = service.generate_quiz(lesson.id)
    if not questions:
        print_fn("This lesson has no questions.")
        return False

    print_fn(f"\n=== {lesson.id}: '{lesson.sound.combination}' {lesson.sound.ipa} ===")
    print_fn(lesson.sound.description_en)
    print_fn("Type the option number. Commands: :back, :quit")
    answers: list[UserAnswer] = []
    for number, question in enumerate(questions, start=1):
        meaning = question.translation.get("en", "")
        print_fn(f"\nQuestion {number}/{len(questions)}: which word means '{meaning}'?")
        for idx, option in enumerate(question.options, start=1):
            print_fn(f"  {idx}) {option}")
        while True:
            raw = input_fn("> ").strip()
            lowered = raw.lower()
            if lowered in BACK_COMMANDS:
                print_fn("Quiz abandoned; nothing recorded.")
                return False
            if lowered in FLOW_EXIT_COMMANDS:
                raise QuitApp()
            if raw.isdigit() and 1 <= int(raw) <= len(question.options):
                break
            print_fn("Pick one of the listed numbers.")
        answer = create_user_answer(question, question.options[int(raw) - 1])
        answers.append(answer)
        if answer.is_correct:
            print_fn("Correct.")
        else:
            print_fn(f"Incorrect. Answer: {question.correct_answer}")

    result = service.calculate_score(lesson.id, answers)
    if result is None:
        return False
    outcome = service.record_attempt_and_evaluate(lesson.id, result)
    _print_outcome(outcome, print_fn)
    return True


def _print_outcome(outcome: AttemptOutcome, print_fn: PrintFn) -> None:
    result = outcome.result
    verdict = "passed" if result.passed else "not passed"
    print_fn(f"\nScore: {result.score}/{result.total} ({result.percentage}%) - {verdict}")
    feedback = quiz_feedback(result)
    print_fn(f"{feedback.title} {feedback.message}")
    breakdown = result.breakdown
    print_fn(
        f"Points: +{result.points} "
        f"(answers {breakdown.correct_points}, completion {breakdown.completion_bonus}, "
        f"mastery {breakdown.mastery_bonus}) total {outcome.total_points}"
    )
    if outcome.first_completion:
        print_fn("Lesson completed.")
    if outcome.new_milestone is not None:
        print_fn(f"Milestone reached: {outcome.new_milestone.name_en}")
    for badge_id in outcome.new_badges:
        print_fn(f"Badge earned: {badge_id}")


def _status_flow(service: LearnService, print_fn: PrintFn) -> None:
    """Print progress, milestone, and badge status."""
    summary = service.progress_summary()
    print_fn("\n=== Status ===")
    print_fn(f"Lessons: {summary.completed}/{summary.total} ({summary.percentage}%)")
    print_fn(f"Points: {summary.points}")
    current = summary.current_milestone.name_en if summary.current_milestone else "none"
    print_fn(f"Milestone: {current}")
    if summary.next_milestone is not None:
        print_fn(f"Next: {summary.next_milestone.milestone.name_en} in {summary.next_milestone.remaining} points")
    else:
        print_fn("Next: all milestones reached")
    if summary.earned_badges:
        print_fn("Badges:")
        for badge in summary.earned_badges:
            print_fn(f"  {badge.icon} {badge.name_en}")
    else:
        print_fn("Badges: none yet")


def _reset_flow(service: LearnService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Reset progress after explicit confirmation."""
    confirm = input_fn("Type RESET to erase all progress: ").strip()
    if confirm != "RESET":
        print_fn("Reset cancelled.")
        return
    service.reset_progress()
    print_fn("Progress reset.")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
