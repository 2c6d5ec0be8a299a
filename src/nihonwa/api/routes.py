"""REST API routes exposing the progress store to the web front end."""

import functools
import uuid
from collections.abc import Callable
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from nihonwa.config import get_settings
from nihonwa.errors import ItemNotFoundError, PersistenceError, ProfileExistsError
from nihonwa.models.content import ItemKind
from nihonwa.models.jlpt import JLPTLevel, JLPTScore, LessonScore, SectionType
from nihonwa.models.progress import MasteryCategory, MutationResult, UserProfile
from nihonwa.models.srs import ReviewResponse
from nihonwa.progress.review import next_card, review_item
from nihonwa.progress.store import NO_ACTIVE_PROFILE, UNKNOWN_PROFILE, ProgressStore
from nihonwa.scheduling.due import review_stats
from nihonwa.scoring.jlpt import estimated_score
from nihonwa.storage.blob_store import JsonFileBlobStore
from nihonwa.storage.content_store import JsonContentStore

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


@functools.lru_cache
def get_store() -> ProgressStore:
    """Process-wide store backed by the configured storage directory."""
    settings = get_settings()
    return ProgressStore(JsonFileBlobStore(settings.storage_dir), settings=settings)


@functools.lru_cache
def get_content_store(kind: ItemKind) -> JsonContentStore:
    return JsonContentStore(JsonFileBlobStore(get_settings().content_dir), kind=kind)


class ProfileCreate(BaseModel):
    name: str = Field(min_length=1)
    current_level: JLPTLevel = JLPTLevel.N5
    id: str | None = None


class ActiveProfileRequest(BaseModel):
    profile_id: str | None = None


class XPRequest(BaseModel):
    amount: int


class LessonCompletion(BaseModel):
    level: JLPTLevel
    correct: int = Field(ge=0)
    total: int = Field(gt=0)
    section_type: SectionType = SectionType.LANGUAGE_KNOWLEDGE


def _call(operation: Callable[..., MutationResult], *args: Any, **kwargs: Any) -> dict:
    """Run a store operation and translate its failures to HTTP errors."""
    try:
        result = operation(*args, **kwargs)
    except ProfileExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        logger.error("api_persistence_error", error=str(e))
        raise HTTPException(status_code=503, detail="Progress storage unavailable")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if result.reason == NO_ACTIVE_PROFILE:
        raise HTTPException(status_code=409, detail="No active profile")
    if result.reason == UNKNOWN_PROFILE:
        raise HTTPException(status_code=404, detail="Profile not found")
    return result.model_dump()


def _progress_view(store: ProgressStore) -> dict:
    return {
        "profile_id": store.active_profile_id,
        "progress": [entry.model_dump(mode="json") for entry in store.progress],
        "lesson_progress": [record.model_dump(mode="json") for record in store.lesson_progress],
        "total_xp": store.total_xp,
    }


@router.get("/profiles")
async def list_profiles() -> dict:
    """List all local profiles and the active one."""
    store = get_store()
    return {
        "profiles": [profile.model_dump(mode="json") for profile in store.profiles],
        "active_profile_id": store.active_profile_id,
    }


@router.post("/profiles", status_code=201)
async def create_profile(request: ProfileCreate) -> dict:
    profile = UserProfile(
        id=request.id or str(uuid.uuid4()),
        name=request.name,
        current_level=request.current_level,
    )
    _call(get_store().create_profile, profile)
    return profile.model_dump(mode="json")


@router.delete("/profiles/{profile_id}")
async def delete_profile(profile_id: str) -> dict:
    return _call(get_store().delete_profile, profile_id)


@router.put("/profiles/active")
async def set_active_profile(request: ActiveProfileRequest) -> dict:
    store = get_store()
    _call(store.set_active_profile, request.profile_id)
    return _progress_view(store)


@router.get("/progress")
async def get_progress() -> dict:
    """Progress, lesson records and XP of the active profile."""
    return _progress_view(get_store())


@router.patch("/progress/{level}")
async def update_level_progress(level: JLPTLevel, fields: dict[str, Any]) -> dict:
    store = get_store()
    _call(store.update_level_progress, level, **fields)
    return store.level_progress(level).model_dump(mode="json")


@router.put("/lessons/{lesson_id}")
async def record_lesson_result(lesson_id: str, fields: dict[str, Any]) -> dict:
    return _call(get_store().record_lesson_result, lesson_id, **fields)


@router.post("/lessons/{lesson_id}/complete")
async def complete_lesson(lesson_id: str, request: LessonCompletion) -> dict:
    store = get_store()
    _call(
        store.complete_lesson,
        lesson_id,
        request.level,
        request.correct,
        request.total,
        request.section_type,
    )
    return _progress_view(store)


@router.post("/xp")
async def award_xp(request: XPRequest) -> dict:
    store = get_store()
    _call(store.award_xp, request.amount)
    return {"total_xp": store.total_xp}


@router.post("/mastery/{level}/{category}")
async def record_mastery(
    level: JLPTLevel, category: MasteryCategory, item_id: str | None = None
) -> dict:
    store = get_store()
    _call(store.record_mastery, level, category, item_id=item_id)
    return store.level_progress(level).model_dump(mode="json")


@router.post("/scores/{level}/recalculate")
async def recalculate_score(level: JLPTLevel) -> dict:
    return _call(get_store().recalculate_estimated_score, level)


@router.post("/scores/{level}/estimate")
async def estimate_score(level: JLPTLevel, lesson_scores: list[LessonScore]) -> JLPTScore:
    """Stateless estimate for an arbitrary set of lesson scores."""
    try:
        return estimated_score(lesson_scores, level)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/review/{kind}/{level}")
async def get_review_deck(kind: ItemKind, level: JLPTLevel) -> dict:
    """Deck counts and the card to show next."""
    store = get_content_store(kind)
    card = next_card(store, level)
    return {
        "stats": review_stats(store.get_by_level(level)),
        "next_card": card.model_dump(mode="json") if card else None,
    }


@router.post("/review/{kind}/items/{item_id}")
async def review(kind: ItemKind, item_id: str, response: ReviewResponse) -> dict:
    try:
        item = review_item(get_content_store(kind), item_id, response)
    except ItemNotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    except PersistenceError as e:
        logger.error("api_persistence_error", error=str(e))
        raise HTTPException(status_code=503, detail="Content storage unavailable")
    return item.model_dump(mode="json")


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
