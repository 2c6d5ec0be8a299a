"""Smoke tests for API routes."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from nihonwa.api.routes import router
from nihonwa.config import Settings
from nihonwa.models.content import ItemKind, LearnableItem
from nihonwa.progress.store import ProgressStore
from nihonwa.storage.blob_store import InMemoryBlobStore
from nihonwa.storage.content_store import JsonContentStore


@pytest.fixture
def store(tmp_path):
    return ProgressStore(InMemoryBlobStore(), settings=Settings(data_dir=tmp_path))


@pytest.fixture
def content_store():
    store = JsonContentStore(InMemoryBlobStore(), kind=ItemKind.VOCABULARY)
    store.put(LearnableItem(id="v1", level="N5", text="水", meaning="water"))
    return store


@pytest.fixture
def client(store, content_store):
    app = FastAPI()
    app.include_router(router)
    with (
        patch("nihonwa.api.routes.get_store", return_value=store),
        patch("nihonwa.api.routes.get_content_store", return_value=content_store),
    ):
        with TestClient(app) as c:
            yield c


def _activate(client, profile_id="p1", name="Aiko"):
    client.post("/api/profiles", json={"id": profile_id, "name": name})
    return client.put("/api/profiles/active", json={"profile_id": profile_id})


class TestHealthCheck:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestProfiles:
    def test_create_and_list(self, client):
        response = client.post("/api/profiles", json={"name": "Aiko", "current_level": "N4"})
        assert response.status_code == 201
        profile_id = response.json()["id"]

        listing = client.get("/api/profiles").json()
        assert [p["id"] for p in listing["profiles"]] == [profile_id]
        assert listing["active_profile_id"] is None

    def test_duplicate_is_conflict(self, client):
        client.post("/api/profiles", json={"id": "p1", "name": "Aiko"})
        response = client.post("/api/profiles", json={"id": "p1", "name": "Aiko"})
        assert response.status_code == 409

    def test_activate_unknown_is_not_found(self, client):
        response = client.put("/api/profiles/active", json={"profile_id": "ghost"})
        assert response.status_code == 404

    def test_delete(self, client):
        _activate(client)
        response = client.delete("/api/profiles/p1")
        assert response.status_code == 200
        assert client.get("/api/progress").json()["profile_id"] is None


class TestProgress:
    def test_mutation_without_active_profile(self, client):
        response = client.post("/api/xp", json={"amount": 10})
        assert response.status_code == 409

    def test_award_xp(self, client):
        _activate(client)
        response = client.post("/api/xp", json={"amount": 120})
        assert response.json() == {"total_xp": 120}

    def test_complete_lesson(self, client):
        _activate(client)
        response = client.post(
            "/api/lessons/n5-lesson-1/complete",
            json={"level": "N5", "correct": 9, "total": 10},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total_xp"] == 900
        assert body["lesson_progress"][0]["section_score"] == 108
        n5 = next(p for p in body["progress"] if p["level"] == "N5")
        assert n5["estimated_jlpt_score"]["passed"] is True

    def test_patch_level_progress(self, client):
        _activate(client)
        response = client.patch("/api/progress/N4", json={"kanji_mastered": 7})
        assert response.status_code == 200
        assert response.json()["kanji_mastered"] == 7

    def test_patch_unknown_field(self, client):
        _activate(client)
        response = client.patch("/api/progress/N4", json={"streak": 7})
        assert response.status_code == 400

    def test_record_lesson_result(self, client):
        _activate(client)
        response = client.put(
            "/api/lessons/n3-lesson-1", json={"completed": True, "section_score": 40}
        )
        assert response.json() == {"applied": True, "reason": None}

    def test_recalculate_without_lessons(self, client):
        _activate(client)
        response = client.post("/api/scores/N5/recalculate")
        assert response.json() == {"applied": False, "reason": "no_completed_lessons"}

    def test_record_mastery(self, client):
        _activate(client)
        response = client.post("/api/mastery/N5/grammar")
        assert response.json()["grammar_patterns_mastered"] == 1

    def test_record_mastery_once_per_item(self, client):
        _activate(client)
        client.post("/api/mastery/N5/grammar", params={"item_id": "n5-g1"})
        response = client.post("/api/mastery/N5/grammar", params={"item_id": "n5-g1"})
        assert response.status_code == 200
        assert response.json()["grammar_patterns_mastered"] == 1

    def test_lesson_score_above_max(self, client):
        _activate(client)
        response = client.put("/api/lessons/n3-lesson-1", json={"section_score": 100})
        assert response.status_code == 400


class TestScores:
    def test_stateless_estimate(self, client):
        response = client.post(
            "/api/scores/N3/estimate",
            json=[
                {"section_type": "languageKnowledge", "score": 50},
                {"section_type": "reading", "score": 15},
            ],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 65
        assert body["passed"] is False

    def test_unknown_level(self, client):
        response = client.post("/api/scores/N7/estimate", json=[])
        assert response.status_code == 422


class TestReview:
    def test_deck_and_answer(self, client):
        deck = client.get("/api/review/vocabulary/N5").json()
        assert deck["stats"]["due"] == 1
        assert deck["next_card"]["id"] == "v1"

        response = client.post("/api/review/vocabulary/items/v1", params={"response": "correct"})
        assert response.status_code == 200
        assert response.json()["srs"]["interval"] == 1

    def test_deck_with_aware_schedule(self, client, content_store):
        content_store.put(
            LearnableItem(
                id="v2",
                level="N5",
                text="本",
                next_review=datetime(2020, 1, 1, tzinfo=timezone.utc),
            )
        )
        response = client.get("/api/review/vocabulary/N5")
        assert response.status_code == 200
        assert response.json()["stats"]["due"] == 2

    def test_unknown_item(self, client):
        response = client.post("/api/review/vocabulary/items/v9", params={"response": "correct"})
        assert response.status_code == 404
