"""Due-item selection for review queues."""

from collections.abc import Iterable
from datetime import datetime

from nihonwa.models.content import LearnableItem
from nihonwa.timeutil import ensure_utc, utcnow


def is_due(next_review: datetime | None, now: datetime | None = None) -> bool:
    """True if the item was never reviewed or its review time has come.

    Naive datetimes on either side are read as UTC.
    """
    if next_review is None:
        return True
    now = ensure_utc(now) if now else utcnow()
    return now >= ensure_utc(next_review)


def due_items(items: Iterable[LearnableItem], now: datetime | None = None) -> list[LearnableItem]:
    """Items due for review, in input order."""
    now = ensure_utc(now) if now else utcnow()
    return [item for item in items if is_due(item.next_review, now)]


def review_stats(items: Iterable[LearnableItem], now: datetime | None = None) -> dict[str, int]:
    """Counts shown above a review deck.

    Returns:
        Dict with total, mastered, due and new (never reviewed) counts.
    """
    now = ensure_utc(now) if now else utcnow()
    items = list(items)
    return {
        "total": len(items),
        "mastered": sum(1 for item in items if item.mastered),
        "due": sum(1 for item in items if is_due(item.next_review, now)),
        "new": sum(1 for item in items if item.last_reviewed is None),
    }
