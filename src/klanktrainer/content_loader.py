"""Load the declarative curriculum, badge catalog, and milestone tiers from bundled JSON."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

from .models import (
    VALID_LEVELS,
    Badge,
    BadgeCriteria,
    FailThenPass,
    Lesson,
    LessonsCompleted,
    Milestone,
    PerfectQuiz,
    QuizConfig,
    QuizPassCount,
    Sound,
    SoundMastery,
    Word,
    ZeroScoreRetry,
)

CONTENT_PACKAGE = "klanktrainer.content"
LESSONS_PACKAGE = "klanktrainer.content.lessons"
LESSON_ID_PATTERN = re.compile(r"^P(\d+)-([A-Z]{2,3})-([A-Z]{3})$")
LEVEL_CODES = {"BEG": "beginner", "ADV": "advanced"}


@dataclass(frozen=True)
class LessonIdParts:
    """Components encoded in a lesson id such as ``P1-AA-BEG``."""

    phase: int
    sound: str
    level: str | None


@dataclass(frozen=True)
class CurriculumStats:
    total_lessons: int
    total_words: int
    total_minutes: int
    phases: int


def parse_lesson_id(lesson_id: str) -> LessonIdParts | None:
    """Split a lesson id into phase, sound, and level."""
    match = LESSON_ID_PATTERN.match(lesson_id)
    if match is None:
        return None
    phase, sound, level_code = match.groups()
    return LessonIdParts(phase=int(phase), sound=sound.lower(), level=LEVEL_CODES.get(level_code))


def is_valid_lesson_id(lesson_id: object) -> bool:
    return isinstance(lesson_id, str) and LESSON_ID_PATTERN.match(lesson_id) is not None


class Curriculum:
    """Read-only reference data: lessons, sounds, badges, and milestone tiers."""

    def __init__(
        self,
        lessons: Iterable[Lesson],
        sounds: dict[str, Sound],
        badges: Iterable[Badge],
        milestones: Iterable[Milestone],
    ) -> None:
        self._lessons: dict[str, Lesson] = {}
        for lesson in lessons:
            self._lessons[lesson.id] = lesson
        self._sounds = dict(sounds)
        self._badges = tuple(badges)
        self._milestones = tuple(milestones)
        self.lesson_order: tuple[str, ...] = tuple(self._lessons)

    def get_lesson_by_id(self, lesson_id: str) -> Lesson | None:
        return self._lessons.get(lesson_id)

    def get_lessons_by_sound(self, sound: str) -> list[Lesson]:
        """Return lessons for a sound in catalog order."""
        normalized = sound.lower()
        return [lesson for lesson in self._lessons.values() if lesson.sound.combination == normalized]

    def get_lessons_by_phase(self, phase: int) -> list[Lesson]:
        return [lesson for lesson in self._lessons.values() if lesson.phase == phase]

    def get_all_lessons(self) -> list[Lesson]:
        return list(self._lessons.values())

    def get_all_badges(self) -> list[Badge]:
        return list(self._badges)

    def get_badge_by_id(self, badge_id: str) -> Badge | None:
        for badge in self._badges:
            if badge.id == badge_id:
                return badge
        return None

    def get_badges_by_category(self, category: str) -> list[Badge]:
        return [badge for badge in self._badges if badge.category == category]

    def get_milestone_tiers(self) -> list[Milestone]:
        return list(self._milestones)

    def get_sound_info(self, sound: str) -> Sound | None:
        return self._sounds.get(sound.lower())

    def all_sounds(self) -> list[str]:
        return list(self._sounds)

    def next_lesson(self, lesson_id: str) -> Lesson | None:
        """Return the lesson after ``lesson_id`` in the learning sequence."""
        if lesson_id not in self._lessons:
            return None
        index = self.lesson_order.index(lesson_id)
        if index == len(self.lesson_order) - 1:
            return None
        return self._lessons[self.lesson_order[index + 1]]

    def previous_lesson(self, lesson_id: str) -> Lesson | None:
        if lesson_id not in self._lessons:
            return None
        index = self.lesson_order.index(lesson_id)
        if index == 0:
            return None
        return self._lessons[self.lesson_order[index - 1]]

    def is_lesson_unlocked(self, lesson_id: str, completed_lesson_ids: Iterable[str] = ()) -> bool:
        """Return whether the lesson's unlock requirement is among the completed ids."""
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            return False
        if lesson.unlock_requires is None:
            return True
        return lesson.unlock_requires in set(completed_lesson_ids)

    def available_lessons(self, completed_lesson_ids: Iterable[str] = ()) -> list[Lesson]:
        completed = set(completed_lesson_ids)
        return [lesson for lesson in self._lessons.values() if self.is_lesson_unlocked(lesson.id, completed)]

    def find_lessons_by_word(self, word: str) -> list[tuple[str, Word]]:
        """Return ``(lesson_id, word)`` pairs whose surface form matches case-insensitively."""
        normalized = word.lower()
        matches: list[tuple[str, Word]] = []
        for lesson in self._lessons.values():
            for item in lesson.words:
                if item.word.lower() == normalized:
                    matches.append((lesson.id, item))
                    break
        return matches

    def stats(self) -> CurriculumStats:
        lessons = list(self._lessons.values())
        return CurriculumStats(
            total_lessons=len(lessons),
            total_words=sum(len(lesson.words) for lesson in lessons),
            total_minutes=sum(lesson.estimated_minutes for lesson in lessons),
            phases=len({lesson.phase for lesson in lessons}),
        )


def _word_from_dict(sound: str, raw: dict[str, Any]) -> Word:
    """Build a word from raw JSON content."""
    word = str(raw["word"]).strip()
    if not word:
        raise ValueError(f"Word '{raw.get('id', '<unknown>')}' has an empty surface form.")

    prefix = raw.get("prefix")
    suffix = raw.get("suffix")
    if prefix is None or suffix is None:
        prefix, suffix = _infer_affixes(word, sound)

    translation = {str(locale): str(text) for locale, text in dict(raw.get("translation", {})).items()}
    syllables = int(raw.get("syllables", 1))
    if syllables < 1:
        raise ValueError(f"Word '{raw['id']}' must have at least one syllable.")

    return Word(
        id=str(raw["id"]),
        word=word,
        prefix=str(prefix),
        suffix=str(suffix),
        translation=translation,
        syllables=syllables,
    )


def _quiz_from_dict(raw: dict[str, Any], lesson_id: str) -> QuizConfig:
    """Build quiz settings from raw JSON content."""
    passing_score = float(raw.get("passing_score", 0.8))
    if not 0 <= passing_score <= 1:
        raise ValueError(f"Lesson '{lesson_id}' passing_score must be between 0 and 1.")
    question_count = int(raw.get("question_count", 5))
    if question_count < 1:
        raise ValueError(f"Lesson '{lesson_id}' question_count must be positive.")
    return QuizConfig(
        question_count=question_count,
        passing_score=passing_score,
        points_per_correct=int(raw.get("points_per_correct", 10)),
        completion_bonus=int(raw.get("completion_bonus", 0)),
        mastery_bonus=int(raw.get("mastery_bonus", 0)),
    )


def _lesson_from_dict(
    phase: int,
    sounds: dict[str, Sound],
    quiz_defaults: dict[str, Any],
    raw: dict[str, Any],
) -> Lesson:
    """Build a lesson from raw JSON content."""
    lesson_id = str(raw["id"])
    if not is_valid_lesson_id(lesson_id):
        raise ValueError(f"Invalid lesson id format: {lesson_id}")

    level = str(raw["level"])
    if level not in VALID_LEVELS:
        raise ValueError(f"Lesson '{lesson_id}' level must be one of: {', '.join(VALID_LEVELS)}")

    combination = str(raw["sound"]).lower()
    sound = sounds.get(combination)
    if sound is None:
        raise ValueError(f"Lesson '{lesson_id}' references unknown sound '{combination}'.")

    quiz_raw = dict(quiz_defaults.get(level, {}))
    quiz_raw.update(raw.get("quiz", {}))

    unlock_requires = raw.get("unlock_requires")
    words = tuple(_word_from_dict(combination, item) for item in raw.get("words", []))
    if not words:
        raise ValueError(f"Lesson '{lesson_id}' has no words.")

    return Lesson(
        id=lesson_id,
        phase=int(raw.get("phase", phase)),
        sound=sound,
        level=level,
        unlock_requires=str(unlock_requires) if unlock_requires is not None else None,
        words=words,
        quiz=_quiz_from_dict(quiz_raw, lesson_id),
        estimated_minutes=int(raw.get("estimated_minutes", 5)),
        distractor_pool=tuple(str(item) for item in raw.get("distractor_pool", [])),
    )


def _phase_from_dict(raw: dict[str, Any]) -> tuple[dict[str, Sound], list[Lesson]]:
    """Build the sounds and lessons of one phase file."""
    phase = int(raw["phase"])
    sounds = {
        str(key).lower(): Sound(
            combination=str(key).lower(),
            ipa=str(value["ipa"]),
            description_es=str(value.get("description_es", "")),
            description_en=str(value.get("description_en", "")),
        )
        for key, value in raw.get("sounds", {}).items()
    }
    quiz_defaults = dict(raw.get("quiz_defaults", {}))
    lessons = [_lesson_from_dict(phase, sounds, quiz_defaults, item) for item in raw.get("lessons", [])]
    return sounds, lessons


def _criteria_from_dict(badge_id: str, raw: dict[str, Any]) -> BadgeCriteria:
    """Build the tagged criteria variant for one badge."""
    kind = str(raw.get("type", ""))
    if kind == ZeroScoreRetry.type:
        return ZeroScoreRetry()
    if kind == QuizPassCount.type:
        return QuizPassCount(count=int(raw["count"]))
    if kind == FailThenPass.type:
        return FailThenPass()
    if kind == PerfectQuiz.type:
        return PerfectQuiz()
    if kind == LessonsCompleted.type:
        return LessonsCompleted(count=int(raw["count"]))
    if kind == SoundMastery.type:
        return SoundMastery(sound=str(raw["sound"]).lower())
    raise ValueError(f"Badge '{badge_id}' has unknown criteria type '{kind}'.")


def _badges_from_dict(raw: dict[str, Any]) -> list[Badge]:
    categories = {str(item) for item in raw.get("categories", [])}
    badges: list[Badge] = []
    for item in raw.get("badges", []):
        badge_id = str(item["id"])
        category = str(item["category"])
        if categories and category not in categories:
            raise ValueError(f"Badge '{badge_id}' has unknown category '{category}'.")
        badges.append(
            Badge(
                id=badge_id,
                category=category,
                name_es=str(item["name_es"]),
                name_en=str(item["name_en"]),
                description_es=str(item.get("description_es", "")),
                description_en=str(item.get("description_en", "")),
                icon=str(item.get("icon", "")),
                criteria=_criteria_from_dict(badge_id, dict(item.get("criteria", {}))),
            )
        )
    return badges


def _milestones_from_dict(raw: dict[str, Any]) -> list[Milestone]:
    return [
        Milestone(
            level=str(item["level"]),
            points=int(item["points"]),
            color=str(item.get("color", "")),
            name_es=str(item.get("name_es", "")),
            name_en=str(item.get("name_en", "")),
        )
        for item in raw.get("milestones", [])
    ]


def _build_curriculum(
    phase_payloads: list[dict[str, Any]],
    badges_payload: dict[str, Any],
    milestones_payload: dict[str, Any],
) -> Curriculum:
    sounds: dict[str, Sound] = {}
    lessons: list[Lesson] = []
    for payload in sorted(phase_payloads, key=lambda item: int(item["phase"])):
        phase_sounds, phase_lessons = _phase_from_dict(payload)
        sounds.update(phase_sounds)
        lessons.extend(phase_lessons)

    badges = _badges_from_dict(badges_payload)
    milestones = _milestones_from_dict(milestones_payload)
    _validate_lessons(lessons)
    _validate_unique_badge_ids(badges)
    _validate_milestones(milestones)
    return Curriculum(lessons=lessons, sounds=sounds, badges=badges, milestones=milestones)


def load_curriculum() -> Curriculum:
    """Load the bundled curriculum."""
    phase_payloads: list[dict[str, Any]] = []
    for entry in sorted(resources.files(LESSONS_PACKAGE).iterdir(), key=lambda item: item.name):
        if entry.name.endswith(".json"):
            phase_payloads.append(json.loads(entry.read_text(encoding="utf-8-sig")))
    content = resources.files(CONTENT_PACKAGE)
    badges_payload = json.loads(content.joinpath("badges.json").read_text(encoding="utf-8-sig"))
    milestones_payload = json.loads(content.joinpath("milestones.json").read_text(encoding="utf-8-sig"))
    return _build_curriculum(phase_payloads, badges_payload, milestones_payload)


def load_curriculum_from_dir(path: Path) -> Curriculum:
    """Load a curriculum laid out like the bundled one for tests/tools.

    Expects ``lessons/*.json`` phase files plus optional ``badges.json`` and
    ``milestones.json`` beside them.
    """
    phase_payloads = [
        json.loads(file_path.read_text(encoding="utf-8-sig")) for file_path in sorted((path / "lessons").glob("*.json"))
    ]
    badges_path = path / "badges.json"
    milestones_path = path / "milestones.json"
    badges_payload = json.loads(badges_path.read_text(encoding="utf-8-sig")) if badges_path.exists() else {}
    milestones_payload = json.loads(milestones_path.read_text(encoding="utf-8-sig")) if milestones_path.exists() else {}
    return _build_curriculum(phase_payloads, badges_payload, milestones_payload)


def _validate_lessons(lessons: list[Lesson]) -> None:
    """Validate lesson and word ids are unique and unlock requirements exist."""
    lesson_ids: set[str] = set()
    for lesson in lessons:
        if lesson.id in lesson_ids:
            raise ValueError(f"Duplicate lesson id: {lesson.id}")
        lesson_ids.add(lesson.id)

    seen_words: dict[str, str] = {}
    for lesson in lessons:
        if lesson.unlock_requires is not None and lesson.unlock_requires not in lesson_ids:
            raise ValueError(f"Lesson '{lesson.id}' has unknown unlock requirement '{lesson.unlock_requires}'.")
        for word in lesson.words:
            previous = seen_words.get(word.id)
            if previous is not None:
                raise ValueError(f"Duplicate word id: {word.id} (in {previous} and {lesson.id})")
            seen_words[word.id] = lesson.id


def _validate_unique_badge_ids(badges: list[Badge]) -> None:
    seen: set[str] = set()
    for badge in badges:
        if badge.id in seen:
            raise ValueError(f"Duplicate badge id: {badge.id}")
        seen.add(badge.id)


def _validate_milestones(milestones: list[Milestone]) -> None:
    """Validate milestone thresholds are strictly increasing."""
    for previous, current in zip(milestones, milestones[1:]):
        if current.points <= previous.points:
            raise ValueError(
                f"Milestone '{current.level}' threshold {current.points} must exceed "
                f"'{previous.level}' threshold {previous.points}."
            )


def _infer_affixes(word: str, sound: str) -> tuple[str, str]:
    """Split a word around the first occurrence of its target sound."""
    index = word.lower().find(sound)
    if index < 0:
        return (word, "")
    return (word[:index], word[index + len(sound) :])
