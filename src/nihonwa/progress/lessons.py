"""Lesson completion arithmetic and unlock rules."""

import re

from nihonwa.errors import InvalidInputError
from nihonwa.models.jlpt import JLPTLevel
from nihonwa.models.progress import LessonProgressRecord
from nihonwa.rounding import round_half_up

_LESSON_LEVEL_PATTERN = re.compile(r"^(n[1-5])[-_]", re.IGNORECASE)


def level_from_lesson_id(lesson_id: str) -> JLPTLevel:
    """Level prefix of a bundled lesson id such as ``n5-lesson-3``.

    Only used when a record is first created without an explicit level;
    the level is stored on the record from then on.

    Raises:
        InvalidInputError: If the id carries no level prefix.
    """
    match = _LESSON_LEVEL_PATTERN.match(lesson_id)
    if match is None:
        raise InvalidInputError(f"Cannot infer JLPT level from lesson id {lesson_id!r}")
    return JLPTLevel.parse(match.group(1))


def lesson_percentage(correct: int, total: int) -> float:
    if total <= 0:
        raise InvalidInputError(f"Lesson must have at least one question, got total={total}")
    return max(0.0, min(100.0, 100 * correct / total))


def lesson_xp(percentage: float, xp_per_percent: int = 10) -> int:
    """XP for a lesson: 10 per percent correct by default, 1000 max."""
    return round_half_up(percentage * xp_per_percent)


def unlocked_lessons(
    lesson_ids: list[str],
    lesson_progress: list[LessonProgressRecord],
) -> dict[str, bool]:
    """Which lessons in a sequence can be started.

    The first lesson is always open; every other lesson opens once the
    lesson before it has been completed.
    """
    completed = {record.lesson_id for record in lesson_progress if record.completed}
    unlocked = {}
    for index, lesson_id in enumerate(lesson_ids):
        unlocked[lesson_id] = index == 0 or lesson_ids[index - 1] in completed
    return unlocked
