"""Learnable item store with by-level and by-mastery lookups."""

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from nihonwa.errors import ItemNotFoundError, PersistenceError
from nihonwa.models.content import ItemKind, LearnableItem
from nihonwa.models.jlpt import JLPTLevel
from nihonwa.storage.blob_store import BlobStore

logger = structlog.get_logger()


class JsonContentStore:
    """Items of one kind, kept as a single JSON blob keyed by item id.

    Secondary indexes by level and mastery flag are rebuilt in memory
    on load and maintained on every ``put``.

    Args:
        blob_store: Persistence backend.
        kind: Item kind; the blob key is ``content-<kind>``.
    """

    def __init__(self, blob_store: BlobStore, kind: ItemKind = ItemKind.VOCABULARY):
        self.blob_store = blob_store
        self.kind = kind
        self.key = f"content-{kind.value}"
        self._items: dict[str, LearnableItem] = {}
        self._by_level: dict[JLPTLevel, set[str]] = {}
        self._load()

    def _load(self) -> None:
        raw = self.blob_store.get(self.key)
        if raw is None:
            return
        try:
            items = [LearnableItem.model_validate(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(f"Corrupt content blob {self.key!r}: {e}") from e
        for item in items:
            self._index(item)
        logger.debug("content_loaded", kind=self.kind.value, count=len(items))

    def _index(self, item: LearnableItem) -> None:
        previous = self._items.get(item.id)
        if previous is not None:
            self._by_level.get(previous.level, set()).discard(item.id)
        self._items[item.id] = item
        self._by_level.setdefault(item.level, set()).add(item.id)

    def _save(self, items: dict[str, LearnableItem]) -> None:
        payload = json.dumps([item.model_dump(mode="json") for item in items.values()])
        self.blob_store.set(self.key, payload)

    def get(self, item_id: str) -> LearnableItem:
        try:
            return self._items[item_id].model_copy(deep=True)
        except KeyError:
            raise ItemNotFoundError(item_id) from None

    def put(self, item: LearnableItem) -> None:
        """Insert or replace an item, persisting before it becomes visible."""
        pending = dict(self._items)
        pending[item.id] = item
        self._save(pending)
        self._index(item.model_copy(deep=True))

    def put_many(self, items: list[LearnableItem]) -> None:
        """Bulk upsert used when seeding bundled datasets."""
        pending = dict(self._items)
        for item in items:
            pending[item.id] = item
        self._save(pending)
        for item in items:
            self._index(item.model_copy(deep=True))
        logger.info("content_seeded", kind=self.kind.value, count=len(items))

    def get_by_level(self, level: JLPTLevel | str) -> list[LearnableItem]:
        ids = self._by_level.get(JLPTLevel.parse(level), set())
        return [self._items[i].model_copy(deep=True) for i in sorted(ids)]

    def get_by_mastered(self, mastered: bool) -> list[LearnableItem]:
        return [
            item.model_copy(deep=True)
            for item in self._items.values()
            if item.mastered == mastered
        ]

    def __len__(self) -> int:
        return len(self._items)
