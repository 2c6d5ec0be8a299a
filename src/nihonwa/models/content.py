"""Learnable content item model."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from nihonwa.models.jlpt import JLPTLevel
from nihonwa.models.srs import SRSState
from nihonwa.timeutil import UtcDatetime


class ItemKind(StrEnum):
    VOCABULARY = "vocabulary"
    KANJI = "kanji"
    GRAMMAR = "grammar"


class LearnableItem(BaseModel):
    """A vocabulary word, kanji character or grammar pattern.

    Only ``mastered``, ``last_reviewed``, ``next_review`` and ``srs`` are
    touched by the review flow; everything else is display content.
    """

    id: str
    kind: ItemKind = ItemKind.VOCABULARY
    level: JLPTLevel
    text: str = ""  # word, character or pattern
    reading: str = ""
    meaning: str = ""
    mastered: bool = False
    last_reviewed: UtcDatetime | None = None
    next_review: UtcDatetime | None = None
    srs: SRSState | None = None
    extra: dict[str, Any] = Field(default_factory=dict)
