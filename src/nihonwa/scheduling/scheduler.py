"""SM-2 interval scheduler for flashcard reviews."""

from datetime import datetime, timedelta

import structlog

from nihonwa.models.srs import MIN_EASE_FACTOR, ReviewResponse, ScheduleResult, SRSState
from nihonwa.rounding import round_half_up
from nihonwa.timeutil import ensure_utc, utcnow

logger = structlog.get_logger()

MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3

RESPONSE_QUALITY: dict[ReviewResponse, int] = {
    ReviewResponse.INCORRECT: 1,
    ReviewResponse.CORRECT: 4,
    ReviewResponse.PERFECT: 5,
}


def next_state(
    quality: int,
    current: SRSState | None = None,
    now: datetime | None = None,
) -> ScheduleResult:
    """Compute the SRS state and due date after one review.

    Quality scale:
        0: complete blackout
        1: incorrect, but recognized
        2: incorrect, but easy to recall
        3: correct, but difficult
        4: correct, with hesitation
        5: correct, perfect recall

    Quality outside 0-5 is clamped into range, so the ease factor update
    never sees a value the SM-2 formula was not designed for.

    Args:
        quality: Response quality.
        current: State before the review; None for a never-reviewed item.
        now: Review time, defaults to the current time.

    Returns:
        Next review timestamp and the updated state.
    """
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        logger.warning("srs_quality_clamped", quality=quality)
        quality = max(MIN_QUALITY, min(MAX_QUALITY, quality))

    state = current or SRSState()
    ease_factor = state.ease_factor
    interval = state.interval
    repetitions = state.repetitions

    if quality >= PASSING_QUALITY:
        if repetitions == 0:
            interval = 1
        elif repetitions == 1:
            interval = 6
        else:
            interval = round_half_up(interval * ease_factor)
        repetitions += 1
    else:
        # Ease factor is kept, only the streak restarts
        repetitions = 0
        interval = 1

    ease_factor += 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
    ease_factor = max(MIN_EASE_FACTOR, ease_factor)

    reviewed_at = ensure_utc(now) if now else utcnow()
    return ScheduleResult(
        next_review=reviewed_at + timedelta(days=interval),
        srs_state=SRSState(
            ease_factor=ease_factor,
            interval=interval,
            repetitions=repetitions,
        ),
    )


def quality_from_response(response: ReviewResponse | str) -> int:
    """Map a three-button flashcard answer to SM-2 quality."""
    try:
        return RESPONSE_QUALITY[ReviewResponse(response)]
    except ValueError:
        return PASSING_QUALITY


def interval_text(days: int) -> str:
    """Human-readable review interval, e.g. "6 days" or "2 months"."""
    if days == 0:
        return "Now"
    if days == 1:
        return "1 day"
    if days < 30:
        return f"{days} days"
    if days < 365:
        months = round_half_up(days / 30)
        return "1 month" if months == 1 else f"{months} months"
    years = round_half_up(days / 365)
    return "1 year" if years == 1 else f"{years} years"
