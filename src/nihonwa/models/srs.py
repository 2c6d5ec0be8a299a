"""Spaced repetition state models."""

from enum import StrEnum

from pydantic import BaseModel, Field

from nihonwa.timeutil import UtcDatetime

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5


class SRSState(BaseModel):
    """SM-2 scheduling state embedded in a learnable item."""

    ease_factor: float = Field(default=DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    interval: int = Field(default=0, ge=0)  # days
    repetitions: int = Field(default=0, ge=0)


class ReviewResponse(StrEnum):
    """Answer buttons offered on a flashcard."""

    INCORRECT = "incorrect"
    CORRECT = "correct"
    PERFECT = "perfect"


class ScheduleResult(BaseModel):
    """Output of one scheduler step."""

    next_review: UtcDatetime
    srs_state: SRSState
