"""JLPT score estimation from lesson performance.

JLPT reports scaled scores rather than raw percentages. The conversions
here are a simplified linear model for app purposes.
"""

from collections.abc import Iterable

import structlog

from nihonwa.errors import InvalidInputError
from nihonwa.models.jlpt import (
    JLPTLevel,
    JLPTScore,
    JLPTSectionScores,
    LessonScore,
    ScoreBreakdown,
    SectionsStatus,
    SectionType,
    get_requirements,
)
from nihonwa.rounding import round_half_up

logger = structlog.get_logger()

SECTION_MAX_SCORE = 60
COMBINED_SECTION_MAX_SCORE = 120


def percentage_to_scaled_score(percentage: float, max_score: int) -> int:
    """Convert a percentage to a scaled score in [0, max_score].

    Args:
        percentage: Percent correct; clamped to 0-100.
        max_score: Maximum scaled score of the section.

    Returns:
        Scaled score rounded to the nearest integer.
    """
    clamped = max(0.0, min(100.0, percentage))
    return round_half_up(clamped / 100 * max_score)


def section_max_score(section_type: SectionType | str, level: JLPTLevel | str) -> int:
    """Maximum scaled score for a section at a level."""
    requirements = get_requirements(level)
    if (
        SectionType(section_type) == SectionType.LANGUAGE_KNOWLEDGE
        and not requirements.has_separate_reading
    ):
        return COMBINED_SECTION_MAX_SCORE
    return SECTION_MAX_SCORE


def section_minimum(section_type: SectionType | str, level: JLPTLevel | str) -> int:
    """Minimum passing score for a section (38 for the combined N4/N5 section)."""
    requirements = get_requirements(level)
    if (
        SectionType(section_type) == SectionType.LANGUAGE_KNOWLEDGE
        and not requirements.has_separate_reading
    ):
        return requirements.section_minimum * 2
    return requirements.section_minimum


def section_name(section_type: SectionType | str, level: JLPTLevel | str) -> str:
    """Display name of a section at a level."""
    section_type = SectionType(section_type)
    if section_type == SectionType.LANGUAGE_KNOWLEDGE:
        if get_requirements(level).has_separate_reading:
            return "Language Knowledge (Vocabulary/Grammar)"
        return "Language Knowledge (Vocabulary/Grammar/Reading)"
    if section_type == SectionType.LISTENING:
        return "Listening"
    return "Reading"


def lesson_score(
    correct: int,
    total: int,
    section_type: SectionType | str,
    level: JLPTLevel | str,
) -> int:
    """Scaled section score earned by one lesson.

    Args:
        correct: Number of correct answers.
        total: Number of questions in the lesson.
        section_type: Section the lesson contributes to.
        level: JLPT level of the lesson.

    Returns:
        Score in [0, 120] for the combined N4/N5 language knowledge
        section, otherwise in [0, 60].

    Raises:
        InvalidInputError: If ``total`` is not positive.
        UnknownLevelError: If ``level`` is not a JLPT level.
    """
    if total <= 0:
        raise InvalidInputError(f"Lesson must have at least one question, got total={total}")
    percentage = 100 * correct / total
    return percentage_to_scaled_score(percentage, section_max_score(section_type, level))


def _average(scores: list[int]) -> int:
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def estimated_score(
    lesson_scores: Iterable[LessonScore | tuple[SectionType | str, int]],
    level: JLPTLevel | str,
) -> JLPTScore:
    """Estimate a JLPT result by averaging lesson scores per section.

    For N4/N5 reading is folded into the 120-point language knowledge
    section, so separate reading scores are ignored there rather than
    counted twice. Listening is not practised in lessons and is always 0.

    Args:
        lesson_scores: Scaled scores of completed lessons.
        level: Level to estimate.

    Returns:
        Section averages, total and pass/fail breakdown.

    Raises:
        InvalidInputError: On negative scores or scores above the
            section maximum.
        UnknownLevelError: If ``level`` is not a JLPT level.
    """
    level = JLPTLevel.parse(level)
    requirements = get_requirements(level)

    groups: dict[SectionType, list[int]] = {section: [] for section in SectionType}
    for entry in lesson_scores:
        if not isinstance(entry, LessonScore):
            section_type, score = entry
            if score < 0:
                raise InvalidInputError(f"Lesson score must be non-negative, got {score}")
            entry = LessonScore(section_type=section_type, score=score)
        maximum = section_max_score(entry.section_type, level)
        if entry.score > maximum:
            raise InvalidInputError(
                f"{entry.section_type} score {entry.score} exceeds {maximum} for {level}"
            )
        groups[entry.section_type].append(entry.score)

    avg_language_knowledge = _average(groups[SectionType.LANGUAGE_KNOWLEDGE])
    avg_reading = (
        _average(groups[SectionType.READING]) if requirements.has_separate_reading else 0
    )
    total = avg_language_knowledge + avg_reading

    if requirements.has_separate_reading:
        status = SectionsStatus(
            language_knowledge=avg_language_knowledge >= requirements.section_minimum,
            reading=avg_reading >= requirements.section_minimum,
        )
    else:
        status = SectionsStatus(
            language_knowledge=avg_language_knowledge >= requirements.section_minimum * 2,
            reading=True,
        )
    sections_passed = status.language_knowledge and status.reading
    passed = total >= requirements.total_pass_mark and sections_passed

    logger.debug(
        "jlpt_score_estimated",
        jlpt_level=level.value,
        total=total,
        passed=passed,
        lessons=sum(len(scores) for scores in groups.values()),
    )

    return JLPTScore(
        level=level,
        total=total,
        sections=JLPTSectionScores(
            language_knowledge=avg_language_knowledge,
            reading=avg_reading,
        ),
        passed=passed,
        sections_passed=sections_passed,
        breakdown=ScoreBreakdown(
            total_required=requirements.total_pass_mark,
            section_minimum=requirements.section_minimum,
            sections_status=status,
        ),
    )
