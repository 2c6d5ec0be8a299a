"""Tests for the profile-scoped progress store."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from nihonwa.config import Settings
from nihonwa.errors import (
    InvalidInputError,
    PersistenceError,
    ProfileExistsError,
    ProfileNotFoundError,
)
from nihonwa.models.jlpt import JLPTLevel, SectionType
from nihonwa.models.progress import MasteryCategory, UserProfile
from nihonwa.progress.store import (
    ALREADY_MASTERED,
    BELOW_PASS_MARK,
    NO_ACTIVE_PROFILE,
    NO_COMPLETED_LESSONS,
    UNKNOWN_PROFILE,
    ProgressStore,
)
from nihonwa.storage.blob_store import InMemoryBlobStore

NOW = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path)


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def store(blob_store, settings):
    return ProgressStore(blob_store, settings=settings, clock=lambda: NOW)


@pytest.fixture
def alice():
    return UserProfile(id="alice", name="Alice")


@pytest.fixture
def bob():
    return UserProfile(id="bob", name="Bob", current_level=JLPTLevel.N3)


@pytest.fixture
def active_store(store, alice):
    store.create_profile(alice)
    store.set_active_profile(alice)
    return store


class TestDefaults:
    def test_fresh_store_reads(self, store):
        assert store.active_profile is None
        assert store.total_xp == 0
        assert store.lesson_progress == []
        assert [p.level for p in store.progress] == ["N5", "N4", "N3", "N2", "N1"]

    def test_fresh_profile_reads_zero_defaults(self, active_store):
        level = active_store.level_progress("N5")
        assert level.vocabulary_mastered == 0
        assert level.skills.kanji == 0
        assert level.estimated_jlpt_score is None
        assert active_store.total_xp == 0

    def test_created_profile_without_progress_entry(self, store, alice):
        store.create_profile(alice)
        assert "alice" not in store.snapshot().progress_by_profile
        assert store.profile_progress("alice").total_xp == 0


class TestProfiles:
    def test_duplicate_profile_rejected(self, store, alice):
        store.create_profile(alice)
        with pytest.raises(ProfileExistsError):
            store.create_profile(alice)

    def test_set_active_registers_unknown_profile(self, store, alice):
        store.set_active_profile(alice)
        assert [p.id for p in store.profiles] == ["alice"]
        assert store.active_profile.last_active == NOW

    def test_set_active_by_unknown_id(self, store):
        result = store.set_active_profile("ghost")
        assert result.applied is False
        assert result.reason == UNKNOWN_PROFILE

    def test_clear_active_profile(self, active_store):
        active_store.award_xp(10)
        active_store.set_active_profile(None)
        assert active_store.active_profile_id is None
        assert active_store.total_xp == 0

    def test_delete_active_profile(self, active_store):
        active_store.award_xp(500)
        result = active_store.delete_profile("alice")
        assert result.applied is True
        assert active_store.active_profile_id is None
        assert active_store.total_xp == 0
        assert "alice" not in active_store.snapshot().progress_by_profile
        with pytest.raises(ProfileNotFoundError):
            active_store.profile_progress("alice")

    def test_delete_inactive_profile_keeps_active(self, active_store, bob):
        active_store.create_profile(bob)
        active_store.delete_profile("bob")
        assert active_store.active_profile_id == "alice"

    def test_delete_unknown_profile(self, store):
        result = store.delete_profile("ghost")
        assert result.reason == UNKNOWN_PROFILE


class TestProfileIsolation:
    def test_xp_does_not_leak_between_profiles(self, store, alice, bob):
        store.create_profile(alice)
        store.create_profile(bob)
        store.set_active_profile(alice)
        store.award_xp(250)

        store.set_active_profile(bob)
        assert store.total_xp == 0

        store.set_active_profile(alice)
        assert store.total_xp == 250

    def test_lessons_do_not_leak(self, store, alice, bob):
        store.set_active_profile(alice)
        store.record_lesson_result("n5-lesson-1", completed=True)
        store.set_active_profile(bob)
        assert store.lesson_progress == []
        assert len(store.profile_progress("alice").lesson_progress) == 1


class TestNoActiveProfile:
    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.award_xp(10),
            lambda s: s.update_level_progress("N5", vocabulary_mastered=3),
            lambda s: s.record_lesson_result("n5-lesson-1", completed=True),
            lambda s: s.recalculate_estimated_score("N5"),
            lambda s: s.complete_lesson("n5-lesson-1", "N5", 8, 10),
            lambda s: s.record_mastery("N5", "kanji"),
        ],
    )
    def test_mutations_are_observable_noops(self, store, blob_store, call):
        result = call(store)
        assert result.applied is False
        assert result.reason == NO_ACTIVE_PROFILE
        assert not result
        assert blob_store.get("nihonwa-storage") is None

    def test_noop_after_clear_leaves_other_profiles(self, active_store):
        active_store.award_xp(40)
        active_store.set_active_profile(None)
        active_store.award_xp(1000)
        assert active_store.profile_progress("alice").total_xp == 40


class TestUpdateLevelProgress:
    def test_partial_merge(self, active_store):
        active_store.update_level_progress("N5", vocabulary_mastered=12, skills={"vocabulary": 30})
        active_store.update_level_progress("N5", kanji_mastered=4, skills={"kanji": 5})

        level = active_store.level_progress("N5")
        assert level.vocabulary_mastered == 12
        assert level.kanji_mastered == 4
        assert level.skills.vocabulary == 30
        assert level.skills.kanji == 5

    def test_other_levels_untouched(self, active_store):
        active_store.update_level_progress("N4", articles_read=2)
        assert active_store.level_progress("N5").articles_read == 0

    def test_unknown_field_rejected(self, active_store):
        with pytest.raises(InvalidInputError):
            active_store.update_level_progress("N5", streak=3)

    def test_invalid_value_leaves_state(self, active_store):
        with pytest.raises(ValidationError):
            active_store.update_level_progress("N5", skills={"grammar": 140})
        assert active_store.level_progress("N5").skills.grammar == 0


class TestRecordLessonResult:
    def test_creates_with_defaults_and_level_from_id(self, active_store):
        active_store.record_lesson_result("n4-lesson-2", completed=True, section_score=70)
        (record,) = active_store.lesson_progress
        assert record.level == JLPTLevel.N4
        assert record.section_type == SectionType.LANGUAGE_KNOWLEDGE
        assert record.section_score == 70

    def test_explicit_level(self, active_store):
        active_store.record_lesson_result("greetings", level="N3")
        assert active_store.lesson_progress[0].level == JLPTLevel.N3

    def test_id_without_level_rejected(self, active_store):
        with pytest.raises(InvalidInputError):
            active_store.record_lesson_result("greetings", completed=True)

    def test_repeat_call_keeps_single_record(self, active_store):
        payload = {
            "completed": True,
            "section_score": 90,
            "correct_answers": 9,
            "total_questions": 10,
        }
        active_store.record_lesson_result("n5-lesson-1", **payload)
        active_store.record_lesson_result("n5-lesson-1", **payload)

        records = active_store.lesson_progress
        assert len(records) == 1
        assert records[0].section_score == 90
        assert records[0].correct_answers == 9

    def test_retake_overwrites(self, active_store):
        active_store.record_lesson_result("n5-lesson-1", completed=True, section_score=110)
        active_store.record_lesson_result("n5-lesson-1", completed=False, section_score=40)
        (record,) = active_store.lesson_progress
        assert record.completed is False
        assert record.section_score == 40

    def test_score_above_section_max_rejected(self, active_store):
        with pytest.raises(InvalidInputError):
            active_store.record_lesson_result("n3-lesson-1", completed=True, section_score=100)
        assert active_store.lesson_progress == []

        assert active_store.complete_lesson("n3-lesson-2", "N3", 10, 10).applied is True
        assert active_store.record_mastery("N3", "kanji").applied is True

    def test_section_change_rechecks_max(self, active_store):
        active_store.record_lesson_result("n5-lesson-1", completed=True, section_score=110)
        with pytest.raises(InvalidInputError):
            active_store.record_lesson_result("n5-lesson-1", section_type="reading")
        (record,) = active_store.lesson_progress
        assert record.section_type == SectionType.LANGUAGE_KNOWLEDGE
        assert record.section_score == 110


class TestAwardXP:
    def test_accumulates(self, active_store):
        active_store.award_xp(100)
        active_store.award_xp(50)
        assert active_store.total_xp == 150

    def test_sign_not_validated(self, active_store):
        active_store.award_xp(-30)
        assert active_store.total_xp == -30


class TestRecalculateEstimatedScore:
    def test_uses_completed_lessons_of_level(self, active_store):
        active_store.record_lesson_result("n5-lesson-1", completed=True, section_score=80)
        active_store.record_lesson_result("n5-lesson-2", completed=True, section_score=100)
        active_store.record_lesson_result("n5-lesson-3", completed=False, section_score=10)
        active_store.record_lesson_result("n4-lesson-1", completed=True, section_score=5)

        result = active_store.recalculate_estimated_score("N5")

        assert result.applied is True
        score = active_store.level_progress("N5").estimated_jlpt_score
        assert score.total == 90
        assert score.language_knowledge == 90
        assert score.reading == 0
        assert score.passed is True
        assert score.last_updated == NOW

    def test_no_completed_lessons_keeps_previous(self, active_store):
        active_store.record_lesson_result("n3-lesson-1", completed=True, section_score=50)
        active_store.record_lesson_result(
            "n3-lesson-2", completed=True, section_type="reading", section_score=15
        )
        active_store.recalculate_estimated_score("N3")
        before = active_store.level_progress("N3").estimated_jlpt_score
        assert before.passed is False

        active_store.record_lesson_result("n3-lesson-1", completed=False)
        active_store.record_lesson_result("n3-lesson-2", completed=False)
        result = active_store.recalculate_estimated_score("N3")

        assert result.reason == NO_COMPLETED_LESSONS
        assert active_store.level_progress("N3").estimated_jlpt_score == before


class TestCompleteLesson:
    def test_records_awards_and_scores(self, active_store):
        result = active_store.complete_lesson("n5-lesson-1", "N5", 8, 10)

        assert result.applied is True
        (record,) = active_store.lesson_progress
        assert record.completed is True
        assert record.score == 80
        assert record.xp == 800
        assert record.section_score == 96
        assert record.completed_at == NOW
        assert active_store.total_xp == 800
        assert active_store.level_progress("N5").estimated_jlpt_score.total == 96

    def test_below_pass_mark_not_completed(self, active_store):
        active_store.complete_lesson("n5-lesson-1", "N5", 6, 10)
        assert active_store.lesson_progress[0].completed is False
        assert active_store.total_xp == 600
        assert active_store.level_progress("N5").estimated_jlpt_score is None

    def test_zero_questions_rejected_without_changes(self, active_store):
        with pytest.raises(InvalidInputError):
            active_store.complete_lesson("n5-lesson-1", "N5", 0, 0)
        assert active_store.total_xp == 0
        assert active_store.lesson_progress == []


class TestMastery:
    def test_grammar_skill_percentage(self, active_store):
        active_store.record_mastery("N5", "grammar")
        active_store.record_mastery("N5", "grammar")
        level = active_store.level_progress("N5")
        assert level.grammar_patterns_mastered == 2
        assert level.skills.grammar == pytest.approx(20.0)

    def test_kanji_target_from_level_info(self, active_store):
        active_store.record_mastery("N5", "kanji")
        assert active_store.level_progress("N5").skills.kanji == pytest.approx(1.0)

    def test_skill_capped_at_100(self, active_store):
        active_store.update_level_progress("N5", articles_read=10)
        active_store.record_mastery("N5", "reading")
        level = active_store.level_progress("N5")
        assert level.articles_read == 11
        assert level.skills.reading == 100

    def test_practice_below_pass_mark(self, active_store):
        result = active_store.complete_practice("N5", "grammar", 7, 10, item_id="n5-g1")
        assert result.reason == BELOW_PASS_MARK
        assert active_store.level_progress("N5").grammar_patterns_mastered == 0

    def test_practice_at_pass_mark(self, active_store):
        result = active_store.complete_practice("N5", "reading", 4, 5, item_id="n5-r1")
        assert result.applied is True
        assert active_store.level_progress("N5").articles_read == 1

    def test_practice_for_vocabulary_rejected(self, active_store):
        with pytest.raises(InvalidInputError):
            active_store.complete_practice("N5", "vocabulary", 4, 5, item_id="v1")

    def test_repeat_pass_counted_once(self, active_store):
        first = active_store.complete_practice("N5", "grammar", 10, 10, item_id="n5-g1")
        second = active_store.complete_practice("N5", "grammar", 10, 10, item_id="n5-g1")
        assert first.applied is True
        assert second.applied is False
        assert second.reason == ALREADY_MASTERED

        level = active_store.level_progress("N5")
        assert level.grammar_patterns_mastered == 1
        assert level.skills.grammar == pytest.approx(10.0)
        assert level.mastered_items == {MasteryCategory.GRAMMAR: ["n5-g1"]}

    def test_mastered_ids_are_per_level(self, active_store):
        active_store.record_mastery("N5", "reading", item_id="passage-1")
        assert active_store.record_mastery("N4", "reading", item_id="passage-1").applied is True
        assert active_store.level_progress("N4").articles_read == 1


class TestPersistenceFailures:
    def test_failed_write_leaves_state_untouched(self, settings, alice):
        blob_store = MagicMock()
        blob_store.get.return_value = None
        store = ProgressStore(blob_store, settings=settings, clock=lambda: NOW)
        store.set_active_profile(alice)
        store.award_xp(100)

        blob_store.set.side_effect = PersistenceError("disk full")
        with pytest.raises(PersistenceError):
            store.complete_lesson("n5-lesson-1", "N5", 10, 10)

        assert store.total_xp == 100
        assert store.lesson_progress == []

    def test_os_error_is_wrapped(self, settings, alice):
        blob_store = MagicMock()
        blob_store.get.return_value = None
        blob_store.set.side_effect = OSError("read-only file system")
        store = ProgressStore(blob_store, settings=settings)
        with pytest.raises(PersistenceError):
            store.create_profile(alice)
        assert store.profiles == []

    def test_every_mutation_writes_full_state(self, active_store, blob_store):
        active_store.award_xp(5)
        raw = blob_store.get("nihonwa-storage")
        assert '"alice"' in raw
        assert '"total_xp":5' in raw
