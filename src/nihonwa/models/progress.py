"""Learner profile and progress models."""

from enum import StrEnum

from pydantic import BaseModel, Field

from nihonwa.models.jlpt import JLPT_LEVELS, EstimatedJLPTScore, JLPTLevel, SectionType
from nihonwa.timeutil import UtcDatetime, utcnow


class UserProfile(BaseModel):
    id: str
    name: str
    current_level: JLPTLevel = JLPTLevel.N5
    created_at: UtcDatetime = Field(default_factory=utcnow)
    last_active: UtcDatetime = Field(default_factory=utcnow)


class SkillProgress(BaseModel):
    """Skill percentages (0-100 each)."""

    vocabulary: float = Field(default=0.0, ge=0, le=100)
    kanji: float = Field(default=0.0, ge=0, le=100)
    grammar: float = Field(default=0.0, ge=0, le=100)
    reading: float = Field(default=0.0, ge=0, le=100)


class MasteryCategory(StrEnum):
    VOCABULARY = "vocabulary"
    KANJI = "kanji"
    GRAMMAR = "grammar"
    READING = "reading"


# Counter field on LevelProgress incremented for each mastery category
MASTERY_COUNTERS: dict[MasteryCategory, str] = {
    MasteryCategory.VOCABULARY: "vocabulary_mastered",
    MasteryCategory.KANJI: "kanji_mastered",
    MasteryCategory.GRAMMAR: "grammar_patterns_mastered",
    MasteryCategory.READING: "articles_read",
}


class LevelProgress(BaseModel):
    level: JLPTLevel
    skills: SkillProgress = Field(default_factory=SkillProgress)
    vocabulary_mastered: int = Field(default=0, ge=0)
    kanji_mastered: int = Field(default=0, ge=0)
    grammar_patterns_mastered: int = Field(default=0, ge=0)
    articles_read: int = Field(default=0, ge=0)
    # Ids already counted per category, so a repeat pass is not counted twice
    mastered_items: dict[MasteryCategory, list[str]] = Field(default_factory=dict)
    estimated_jlpt_score: EstimatedJLPTScore | None = None


class LessonProgressRecord(BaseModel):
    """Latest attempt at a lesson. Retakes overwrite, no history is kept."""

    lesson_id: str
    level: JLPTLevel
    completed: bool = False
    section_type: SectionType = SectionType.LANGUAGE_KNOWLEDGE
    section_score: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)
    total_questions: int = Field(default=0, ge=0)
    completed_at: UtcDatetime | None = None
    score: int | None = None  # percentage correct
    xp: int = 0


def default_level_progress() -> list[LevelProgress]:
    return [LevelProgress(level=level) for level in JLPT_LEVELS]


class ProfileProgress(BaseModel):
    """Everything the store tracks for one profile."""

    lesson_progress: list[LessonProgressRecord] = Field(default_factory=list)
    total_xp: int = 0
    progress: list[LevelProgress] = Field(default_factory=default_level_progress)

    def level(self, level: JLPTLevel) -> LevelProgress:
        for entry in self.progress:
            if entry.level == level:
                return entry
        entry = LevelProgress(level=level)
        self.progress.append(entry)
        return entry

    def lesson(self, lesson_id: str) -> LessonProgressRecord | None:
        for record in self.lesson_progress:
            if record.lesson_id == lesson_id:
                return record
        return None


class ProgressStoreState(BaseModel):
    """Serialized as one unit under a single storage key."""

    profiles: list[UserProfile] = Field(default_factory=list)
    active_profile_id: str | None = None
    progress_by_profile: dict[str, ProfileProgress] = Field(default_factory=dict)

    def profile(self, profile_id: str) -> UserProfile | None:
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        return None

    def progress_for(self, profile_id: str) -> ProfileProgress:
        """Return the profile's progress entry, creating it on first use."""
        if profile_id not in self.progress_by_profile:
            self.progress_by_profile[profile_id] = ProfileProgress()
        return self.progress_by_profile[profile_id]


class MutationResult(BaseModel):
    """Outcome of a store mutation.

    ``applied`` is False when the operation was a no-op, e.g. because no
    profile is active; ``reason`` then names why.
    """

    applied: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.applied
