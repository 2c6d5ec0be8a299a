"""Profile-scoped progress store.

Owns every profile's lesson records, XP and per-level progress, and
routes all changes through a small set of operations. Each operation
works on a deep copy of the state, writes the whole copy through the
blob store and only then makes it visible, so a failed write leaves the
previous state intact and a successful one is visible to the next read.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError

from nihonwa.config import Settings, get_settings
from nihonwa.errors import (
    InvalidInputError,
    PersistenceError,
    ProfileExistsError,
    ProfileNotFoundError,
)
from nihonwa.models.jlpt import (
    JLPT_LEVEL_INFO,
    EstimatedJLPTScore,
    JLPTLevel,
    LessonScore,
    SectionType,
)
from nihonwa.models.progress import (
    MASTERY_COUNTERS,
    LessonProgressRecord,
    LevelProgress,
    MasteryCategory,
    MutationResult,
    ProfileProgress,
    ProgressStoreState,
    UserProfile,
)
from nihonwa.progress.lessons import lesson_percentage, lesson_xp, level_from_lesson_id
from nihonwa.rounding import round_half_up
from nihonwa.scoring.jlpt import estimated_score, lesson_score, section_max_score
from nihonwa.storage.blob_store import BlobStore
from nihonwa.timeutil import ensure_utc, utcnow

logger = structlog.get_logger()

NO_ACTIVE_PROFILE = "no_active_profile"
UNKNOWN_PROFILE = "unknown_profile"
NO_COMPLETED_LESSONS = "no_completed_lessons"
BELOW_PASS_MARK = "below_pass_mark"
ALREADY_MASTERED = "already_mastered"


class ProgressStore:
    """Per-profile progress with the active profile as implicit scope.

    Args:
        blob_store: Persistence backend; the whole state lives under one key.
        settings: Lesson and mastery thresholds. Defaults to app settings.
        clock: Source of "now", injectable for tests.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.blob_store = blob_store
        self.settings = settings or get_settings()
        self.storage_key = self.settings.storage_key
        self._clock = clock
        self._state = self._load()

    def clock(self) -> datetime:
        return ensure_utc(self._clock())

    def _load(self) -> ProgressStoreState:
        raw = self.blob_store.get(self.storage_key)
        if raw is None:
            return ProgressStoreState()
        try:
            state = ProgressStoreState.model_validate_json(raw)
        except ValidationError as e:
            raise PersistenceError(f"Corrupt progress state under {self.storage_key!r}") from e
        logger.info(
            "progress_loaded",
            profiles=len(state.profiles),
            active_profile_id=state.active_profile_id,
        )
        return state

    def _commit(self, state: ProgressStoreState, operation: str, **context: Any) -> None:
        try:
            self.blob_store.set(self.storage_key, state.model_dump_json())
        except PersistenceError:
            logger.error("progress_persist_failed", operation=operation, **context)
            raise
        except (OSError, ValueError) as e:
            logger.error("progress_persist_failed", operation=operation, error=str(e), **context)
            raise PersistenceError(f"Failed to persist progress after {operation}") from e
        self._state = state
        logger.info(operation, **context)

    def _mutate_active(
        self,
        operation: str,
        apply: Callable[[ProfileProgress], MutationResult | None],
        **context: Any,
    ) -> MutationResult:
        profile_id = self._state.active_profile_id
        if profile_id is None:
            logger.warning(
                "progress_mutation_skipped", operation=operation, reason=NO_ACTIVE_PROFILE
            )
            return MutationResult(applied=False, reason=NO_ACTIVE_PROFILE)

        state = self._state.model_copy(deep=True)
        outcome = apply(state.progress_for(profile_id))
        if outcome is not None and not outcome.applied:
            logger.info("progress_mutation_skipped", operation=operation, reason=outcome.reason)
            return outcome
        self._commit(state, operation, profile_id=profile_id, **context)
        return MutationResult(applied=True)

    # Reads

    @property
    def profiles(self) -> list[UserProfile]:
        return [profile.model_copy() for profile in self._state.profiles]

    @property
    def active_profile_id(self) -> str | None:
        return self._state.active_profile_id

    @property
    def active_profile(self) -> UserProfile | None:
        if self._state.active_profile_id is None:
            return None
        profile = self._state.profile(self._state.active_profile_id)
        return profile.model_copy() if profile else None

    def _active_view(self) -> ProfileProgress:
        profile_id = self._state.active_profile_id
        if profile_id is None or profile_id not in self._state.progress_by_profile:
            return ProfileProgress()
        return self._state.progress_by_profile[profile_id]

    @property
    def progress(self) -> list[LevelProgress]:
        return [entry.model_copy(deep=True) for entry in self._active_view().progress]

    @property
    def lesson_progress(self) -> list[LessonProgressRecord]:
        return [record.model_copy() for record in self._active_view().lesson_progress]

    @property
    def total_xp(self) -> int:
        return self._active_view().total_xp

    def level_progress(self, level: JLPTLevel | str) -> LevelProgress:
        level = JLPTLevel.parse(level)
        for entry in self._active_view().progress:
            if entry.level == level:
                return entry.model_copy(deep=True)
        return LevelProgress(level=level)

    def profile_progress(self, profile_id: str) -> ProfileProgress:
        """Progress of any registered profile, active or not."""
        if self._state.profile(profile_id) is None:
            raise ProfileNotFoundError(profile_id)
        entry = self._state.progress_by_profile.get(profile_id)
        return entry.model_copy(deep=True) if entry else ProfileProgress()

    def snapshot(self) -> ProgressStoreState:
        return self._state.model_copy(deep=True)

    # Profiles

    def create_profile(self, profile: UserProfile) -> MutationResult:
        """Register a profile. Its progress entry is created on first use."""
        if self._state.profile(profile.id) is not None:
            raise ProfileExistsError(f"Profile {profile.id!r} already exists")
        state = self._state.model_copy(deep=True)
        state.profiles.append(profile.model_copy())
        self._commit(state, "profile_created", profile_id=profile.id)
        return MutationResult(applied=True)

    def set_active_profile(self, profile: UserProfile | str | None) -> MutationResult:
        """Switch the active profile, or clear it with None.

        A ``UserProfile`` that is not registered yet is registered first;
        a bare id must belong to a registered profile.
        """
        state = self._state.model_copy(deep=True)
        if profile is None:
            state.active_profile_id = None
            self._commit(state, "active_profile_cleared")
            return MutationResult(applied=True)

        profile_id = profile if isinstance(profile, str) else profile.id
        registered = state.profile(profile_id)
        if registered is None:
            if isinstance(profile, str):
                logger.warning("active_profile_unknown", profile_id=profile_id)
                return MutationResult(applied=False, reason=UNKNOWN_PROFILE)
            registered = profile.model_copy()
            state.profiles.append(registered)

        registered.last_active = self.clock()
        state.active_profile_id = profile_id
        state.progress_for(profile_id)
        self._commit(state, "active_profile_set", profile_id=profile_id)
        return MutationResult(applied=True)

    def delete_profile(self, profile_id: str) -> MutationResult:
        """Remove a profile and its progress; clears the active pointer if needed."""
        if self._state.profile(profile_id) is None:
            logger.warning("profile_delete_unknown", profile_id=profile_id)
            return MutationResult(applied=False, reason=UNKNOWN_PROFILE)
        state = self._state.model_copy(deep=True)
        state.profiles = [p for p in state.profiles if p.id != profile_id]
        state.progress_by_profile.pop(profile_id, None)
        if state.active_profile_id == profile_id:
            state.active_profile_id = None
        self._commit(state, "profile_deleted", profile_id=profile_id)
        return MutationResult(applied=True)

    # Progress

    def update_level_progress(self, level: JLPTLevel | str, **fields: Any) -> MutationResult:
        """Merge ``fields`` into the active profile's progress for ``level``.

        Unspecified fields keep their values; ``skills`` given as a dict is
        merged key by key as well.
        """
        level = JLPTLevel.parse(level)
        _check_fields(LevelProgress, fields, exclude={"level"})

        def apply(entry: ProfileProgress) -> None:
            current = entry.level(level)
            merged = current.model_dump()
            for key, value in fields.items():
                if hasattr(value, "model_dump"):
                    value = value.model_dump()
                if key == "skills" and isinstance(value, dict):
                    merged["skills"] = {**merged["skills"], **value}
                else:
                    merged[key] = value
            _replace_level(entry, LevelProgress.model_validate(merged))

        return self._mutate_active("level_progress_updated", apply, jlpt_level=level.value)

    def record_lesson_result(self, lesson_id: str, **fields: Any) -> MutationResult:
        """Create or overwrite the record for ``lesson_id`` (last write wins).

        A new record takes its level from ``fields["level"]`` or, failing
        that, from the lesson id prefix (``n5-...``).
        """
        _check_fields(LessonProgressRecord, fields, exclude={"lesson_id"})

        def apply(entry: ProfileProgress) -> None:
            _upsert_lesson(entry, lesson_id, fields)

        return self._mutate_active("lesson_result_recorded", apply, lesson_id=lesson_id)

    def award_xp(self, amount: int) -> MutationResult:
        def apply(entry: ProfileProgress) -> None:
            entry.total_xp += amount

        return self._mutate_active("xp_awarded", apply, amount=amount)

    def recalculate_estimated_score(self, level: JLPTLevel | str) -> MutationResult:
        """Recompute the cached JLPT estimate from completed lessons.

        With no completed lessons at ``level`` the previous estimate is
        kept as is and the result reports ``no_completed_lessons``.
        """
        level = JLPTLevel.parse(level)

        def apply(entry: ProfileProgress) -> MutationResult | None:
            if not self._recalculate(entry, level):
                return MutationResult(applied=False, reason=NO_COMPLETED_LESSONS)
            return None

        return self._mutate_active("estimated_score_recalculated", apply, jlpt_level=level.value)

    def _recalculate(self, entry: ProfileProgress, level: JLPTLevel) -> bool:
        scores = [
            LessonScore(section_type=record.section_type, score=record.section_score)
            for record in entry.lesson_progress
            if record.level == level and record.completed
        ]
        if not scores:
            return False
        result = estimated_score(scores, level)
        entry.level(level).estimated_jlpt_score = EstimatedJLPTScore.from_score(
            result, now=self.clock()
        )
        return True

    def complete_lesson(
        self,
        lesson_id: str,
        level: JLPTLevel | str,
        correct: int,
        total: int,
        section_type: SectionType | str = SectionType.LANGUAGE_KNOWLEDGE,
    ) -> MutationResult:
        """Record a finished lesson, award its XP and refresh the estimate.

        All three changes are committed together.

        Raises:
            InvalidInputError: If ``total`` is not positive.
        """
        level = JLPTLevel.parse(level)
        section_type = SectionType(section_type)
        percentage = lesson_percentage(correct, total)
        xp = lesson_xp(percentage, self.settings.xp_per_percent)
        result_fields = {
            "level": level,
            "completed": percentage >= self.settings.lesson_pass_percentage,
            "section_type": section_type,
            "section_score": lesson_score(correct, total, section_type, level),
            "correct_answers": correct,
            "total_questions": total,
            "completed_at": self.clock(),
            "score": round_half_up(percentage),
            "xp": xp,
        }

        def apply(entry: ProfileProgress) -> None:
            _upsert_lesson(entry, lesson_id, result_fields)
            entry.total_xp += xp
            self._recalculate(entry, level)

        return self._mutate_active(
            "lesson_completed",
            apply,
            lesson_id=lesson_id,
            xp=xp,
            passed=result_fields["completed"],
        )

    def record_mastery(
        self,
        level: JLPTLevel | str,
        category: MasteryCategory | str,
        item_id: str | None = None,
    ) -> MutationResult:
        """Count one more mastered item and update the skill percentage.

        With an ``item_id`` the item is counted at most once per level; a
        repeat returns ``already_mastered`` and changes nothing.
        """
        level = JLPTLevel.parse(level)
        category = MasteryCategory(category)
        target = self._mastery_target(level, category)

        def apply(entry: ProfileProgress) -> MutationResult | None:
            progress = entry.level(level)
            if item_id is not None:
                seen = progress.mastered_items.setdefault(category, [])
                if item_id in seen:
                    return MutationResult(applied=False, reason=ALREADY_MASTERED)
                seen.append(item_id)
            counter = MASTERY_COUNTERS[category]
            count = getattr(progress, counter) + 1
            setattr(progress, counter, count)
            setattr(progress.skills, category.value, min(100.0, count / target * 100))
            self._recalculate(entry, level)
            return None

        return self._mutate_active(
            "mastery_recorded",
            apply,
            jlpt_level=level.value,
            category=category.value,
            item_id=item_id,
        )

    def complete_practice(
        self,
        level: JLPTLevel | str,
        category: MasteryCategory | str,
        correct: int,
        total: int,
        item_id: str,
    ) -> MutationResult:
        """Grammar or reading practice on one pattern or passage.

        Counts the item as mastered the first time it reaches the pass mark.
        """
        category = MasteryCategory(category)
        if category == MasteryCategory.GRAMMAR:
            pass_mark = self.settings.grammar_pass_percentage
        elif category == MasteryCategory.READING:
            pass_mark = self.settings.reading_pass_percentage
        else:
            raise InvalidInputError(f"No practice flow for {category.value}")

        if lesson_percentage(correct, total) < pass_mark:
            return MutationResult(applied=False, reason=BELOW_PASS_MARK)
        return self.record_mastery(level, category, item_id=item_id)

    def _mastery_target(self, level: JLPTLevel, category: MasteryCategory) -> int:
        if category == MasteryCategory.VOCABULARY:
            return JLPT_LEVEL_INFO[level].vocabulary
        if category == MasteryCategory.KANJI:
            return JLPT_LEVEL_INFO[level].kanji
        if category == MasteryCategory.GRAMMAR:
            return self.settings.grammar_patterns_per_level
        return self.settings.reading_passages_per_level


def _check_fields(model: type, fields: dict[str, Any], exclude: set[str]) -> None:
    unknown = set(fields) - (set(model.model_fields) - exclude)
    if unknown:
        raise InvalidInputError(f"Unknown {model.__name__} fields: {sorted(unknown)}")


def _replace_level(entry: ProfileProgress, updated: LevelProgress) -> None:
    entry.progress = [updated if p.level == updated.level else p for p in entry.progress]


def _upsert_lesson(entry: ProfileProgress, lesson_id: str, fields: dict[str, Any]) -> None:
    record = entry.lesson(lesson_id)
    if record is None:
        level = fields.get("level") or level_from_lesson_id(lesson_id)
        base = {"lesson_id": lesson_id, "level": level}
    else:
        base = record.model_dump()
    updated = LessonProgressRecord.model_validate({**base, **fields, "lesson_id": lesson_id})
    max_score = section_max_score(updated.section_type, updated.level)
    if updated.section_score > max_score:
        raise InvalidInputError(
            f"{updated.section_type.value} score {updated.section_score} exceeds {max_score} "
            f"for {updated.level.value}"
        )
    if record is None:
        entry.lesson_progress.append(updated)
    else:
        entry.lesson_progress = [
            updated if r.lesson_id == lesson_id else r for r in entry.lesson_progress
        ]
