"""JLPT level, section and score models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from nihonwa.errors import UnknownLevelError
from nihonwa.timeutil import UtcDatetime, utcnow


class JLPTLevel(StrEnum):
    """JLPT levels, N5 (easiest) to N1 (hardest)."""

    N5 = "N5"
    N4 = "N4"
    N3 = "N3"
    N2 = "N2"
    N1 = "N1"

    @classmethod
    def parse(cls, value: "str | JLPTLevel") -> "JLPTLevel":
        """Coerce a level key, accepting lower case ("n5").

        Raises:
            UnknownLevelError: If the key is not one of N5..N1.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise UnknownLevelError(value) from None


class SectionType(StrEnum):
    """Exam section a lesson contributes to."""

    LANGUAGE_KNOWLEDGE = "languageKnowledge"
    READING = "reading"
    LISTENING = "listening"


class JLPTRequirements(BaseModel):
    """Passing requirements for one JLPT level."""

    total_pass_mark: int
    section_minimum: int = 19
    has_separate_reading: bool  # False for N4-N5


# Official pass marks (https://www.jlpt.jp/e/about/levelsummary.html)
JLPT_REQUIREMENTS: dict[JLPTLevel, JLPTRequirements] = {
    JLPTLevel.N5: JLPTRequirements(total_pass_mark=80, has_separate_reading=False),
    JLPTLevel.N4: JLPTRequirements(total_pass_mark=90, has_separate_reading=False),
    JLPTLevel.N3: JLPTRequirements(total_pass_mark=95, has_separate_reading=True),
    JLPTLevel.N2: JLPTRequirements(total_pass_mark=90, has_separate_reading=True),
    JLPTLevel.N1: JLPTRequirements(total_pass_mark=100, has_separate_reading=True),
}

JLPT_LEVELS: list[JLPTLevel] = [
    JLPTLevel.N5,
    JLPTLevel.N4,
    JLPTLevel.N3,
    JLPTLevel.N2,
    JLPTLevel.N1,
]


class LevelInfo(BaseModel):
    """Descriptive data and study targets for a level."""

    name: str
    description: str
    vocabulary: int
    kanji: int


JLPT_LEVEL_INFO: dict[JLPTLevel, LevelInfo] = {
    JLPTLevel.N5: LevelInfo(
        name="N5 - Beginner",
        description="Basic Japanese for everyday situations",
        vocabulary=800,
        kanji=100,
    ),
    JLPTLevel.N4: LevelInfo(
        name="N4 - Elementary",
        description="Understand basic Japanese in daily contexts",
        vocabulary=1500,
        kanji=300,
    ),
    JLPTLevel.N3: LevelInfo(
        name="N3 - Intermediate",
        description="Understand Japanese in everyday situations",
        vocabulary=3750,
        kanji=650,
    ),
    JLPTLevel.N2: LevelInfo(
        name="N2 - Advanced",
        description="Understand Japanese in a variety of contexts",
        vocabulary=6000,
        kanji=1000,
    ),
    JLPTLevel.N1: LevelInfo(
        name="N1 - Native Level",
        description="Understand Japanese in a wide range of situations",
        vocabulary=10000,
        kanji=2000,
    ),
}


def get_requirements(level: str | JLPTLevel) -> JLPTRequirements:
    """Look up the requirements row for a level key."""
    return JLPT_REQUIREMENTS[JLPTLevel.parse(level)]


def next_level(level: str | JLPTLevel) -> JLPTLevel | None:
    """Level after ``level`` (towards N1), or None at N1."""
    index = JLPT_LEVELS.index(JLPTLevel.parse(level))
    if index == len(JLPT_LEVELS) - 1:
        return None
    return JLPT_LEVELS[index + 1]


def previous_level(level: str | JLPTLevel) -> JLPTLevel | None:
    """Level before ``level`` (towards N5), or None at N5."""
    index = JLPT_LEVELS.index(JLPTLevel.parse(level))
    if index == 0:
        return None
    return JLPT_LEVELS[index - 1]


class LessonScore(BaseModel):
    """Scaled score of one completed lesson."""

    section_type: SectionType
    score: int = Field(ge=0)


class JLPTSectionScores(BaseModel):
    """Averaged section scores (0-60, or 0-120 for combined N4/N5 language knowledge)."""

    language_knowledge: int = 0
    reading: int = 0
    listening: int = 0


class SectionsStatus(BaseModel):
    language_knowledge: bool
    reading: bool


class ScoreBreakdown(BaseModel):
    total_required: int
    section_minimum: int
    sections_status: SectionsStatus


class JLPTScore(BaseModel):
    """Result of aggregating lesson scores for one level."""

    level: JLPTLevel
    total: int
    sections: JLPTSectionScores
    passed: bool
    sections_passed: bool
    breakdown: ScoreBreakdown


class EstimatedJLPTScore(BaseModel):
    """Cached score estimate shown on the progress dashboard."""

    total: int = Field(default=0, ge=0, le=180)
    language_knowledge: int = Field(default=0, ge=0, le=120)
    reading: int = Field(default=0, ge=0, le=60)
    listening: int = Field(default=0, ge=0, le=60)
    passed: bool = False
    last_updated: UtcDatetime = Field(default_factory=utcnow)

    @classmethod
    def from_score(cls, score: JLPTScore, now: datetime | None = None) -> "EstimatedJLPTScore":
        return cls(
            total=score.total,
            language_knowledge=score.sections.language_knowledge,
            reading=score.sections.reading,
            listening=score.sections.listening,
            passed=score.passed,
            last_updated=now or utcnow(),
        )
