"""Flashcard review flow: scheduler output written back to the item store."""

from datetime import datetime
from typing import Protocol

import structlog

from nihonwa.models.content import LearnableItem
from nihonwa.models.jlpt import JLPTLevel
from nihonwa.models.srs import ReviewResponse
from nihonwa.scheduling.due import due_items
from nihonwa.scheduling.scheduler import next_state, quality_from_response
from nihonwa.timeutil import ensure_utc, utcnow

logger = structlog.get_logger()


class ItemStore(Protocol):
    def get(self, item_id: str) -> LearnableItem: ...

    def put(self, item: LearnableItem) -> None: ...

    def get_by_level(self, level: JLPTLevel | str) -> list[LearnableItem]: ...


def review_item(
    store: ItemStore,
    item_id: str,
    response: ReviewResponse | str,
    now: datetime | None = None,
) -> LearnableItem:
    """Apply a flashcard answer to an item and persist it.

    Args:
        store: Item store holding the card.
        item_id: Card id.
        response: Button pressed by the learner.
        now: Review time, defaults to the current time.

    Returns:
        The updated item as stored.

    Raises:
        ItemNotFoundError: If the store has no such item.
    """
    now = ensure_utc(now) if now else utcnow()
    response = ReviewResponse(response)
    item = store.get(item_id)

    result = next_state(quality_from_response(response), item.srs, now=now)
    updated = item.model_copy(
        update={
            "mastered": response in (ReviewResponse.CORRECT, ReviewResponse.PERFECT),
            "last_reviewed": now,
            "next_review": result.next_review,
            "srs": result.srs_state,
        }
    )
    store.put(updated)

    logger.info(
        "item_reviewed",
        item_id=item_id,
        response=response.value,
        interval=result.srs_state.interval,
        ease_factor=round(result.srs_state.ease_factor, 2),
    )
    return updated


def next_card(
    store: ItemStore,
    level: JLPTLevel | str,
    now: datetime | None = None,
) -> LearnableItem | None:
    """First due card for a level, else the first card, else None."""
    items = store.get_by_level(level)
    due = due_items(items, now)
    if due:
        return due[0]
    return items[0] if items else None
