import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from cadence.application.factory import build_engine
from cadence.consts import VERSION
from cadence.domain.memory.models import CardLearningState, CardMemoryState
from cadence.server import app, get_engine

NOW = "2025-03-01T09:00:00Z"


@pytest.fixture
def engine(config, graph):
    return build_engine(config, graph)


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version(client):
    assert client.get("/version").json() == {"version": VERSION}


class TestCards:
    def test_register_rate_and_inspect(self, client):
        response = client.post("/cards", json={"card_ids": ["a", "b", "a"], "now": NOW})
        assert response.json() == {"created": ["a", "b"]}

        assert client.get("/cards/count-due", params={"now": NOW}).json() == {"count": 2}

        response = client.post("/review", json={"card_id": "a", "rating": 3, "now": NOW})
        assert response.status_code == 200
        card = response.json()
        assert card["state"] == "learning"
        assert card["reps"] == 1
        assert card["mastery"] == "Learning"
        assert card["mastery_score"] == 25

        due = client.get("/cards/due", params={"now": NOW}).json()
        assert [c["card_id"] for c in due] == ["b"]

        history = client.get("/cards/a/history").json()
        assert len(history) == 1
        assert history[0]["rating"] == 3
        assert history[0]["state_before"] == "new"

    def test_preview(self, client):
        client.post("/cards", json={"card_ids": ["a"], "now": NOW})
        response = client.get("/cards/a/preview", params={"now": NOW})
        assert set(response.json()) == {"again", "hard", "good", "easy"}

    def test_unknown_card(self, client):
        assert client.get("/cards/ghost").status_code == 404
        response = client.post("/review", json={"card_id": "ghost", "rating": 3})
        assert response.status_code == 404

    def test_invalid_rating(self, client):
        client.post("/cards", json={"card_ids": ["a"], "now": NOW})
        response = client.post("/review", json={"card_id": "a", "rating": 7, "now": NOW})
        assert response.status_code == 422
        assert client.get("/cards/a").json()["reps"] == 0


class TestLessons:
    def test_list_unlocks_roots(self, client):
        lessons = {p["lesson_id"]: p["status"] for p in client.get("/lessons").json()}
        assert lessons == {"1.1": "available", "1.2": "locked", "2.1": "locked"}

    def test_complete_flow(self, client):
        client.get("/lessons")
        for section in ("intro", "shapes"):
            response = client.post(f"/lessons/1.1/sections/{section}/read", json={"now": NOW})
            assert response.status_code == 200

        blocked = client.post("/lessons/1.1/complete", json={"now": NOW}).json()
        assert not blocked["changed"]

        client.post("/cards", json={"card_ids": ["c-tensor-rank", "c-tensor-shape"], "now": NOW})
        for card_id in ("c-tensor-rank", "c-tensor-shape"):
            client.post("/review", json={"card_id": card_id, "rating": 3, "now": NOW})

        result = client.post("/lessons/1.1/complete", json={"now": NOW}).json()
        assert result["changed"]
        assert result["current"] == "completed"
        assert client.get("/lessons/1.2").json()["status"] == "available"

        evaluated = client.post("/lessons/1.1/evaluate", json={"now": NOW}).json()
        assert not evaluated["changed"]
        assert evaluated["reason"].startswith("weakest card is")

        mastery = client.get("/lessons/1.1/mastery").json()
        assert mastery["total_cards"] == 2
        assert mastery["state_distribution"]["learning"] == 2

    def test_lapse_through_review_demotes_mastered_lesson(self, client, engine):
        client.get("/lessons")
        for section in ("intro", "shapes"):
            client.post(f"/lessons/1.1/sections/{section}/read", json={"now": NOW})
        cards = ["c-tensor-rank", "c-tensor-shape"]
        client.post("/cards", json={"card_ids": cards, "now": NOW})
        for card_id in cards:
            client.post("/review", json={"card_id": card_id, "rating": 3, "now": NOW})
        client.post("/lessons/1.1/complete", json={"now": NOW})

        reviewed = datetime(2025, 3, 1, 9, tzinfo=timezone.utc)
        for card_id in cards:
            asyncio.run(
                engine.cards.save(
                    CardMemoryState(
                        card_id=card_id,
                        stability=60.0,
                        difficulty=4.0,
                        due_at=reviewed + timedelta(days=60),
                        last_reviewed_at=reviewed,
                        reps=6,
                        state=CardLearningState.REVIEW,
                        learning_step=3,
                    )
                )
            )
        evaluated = client.post("/lessons/1.1/evaluate", json={"now": NOW}).json()
        assert evaluated["current"] == "mastered"

        later = "2025-04-30T09:00:00Z"
        card = client.post(
            "/review", json={"card_id": "c-tensor-rank", "rating": 1, "now": later}
        ).json()

        assert card["lapses"] == 1
        [change] = card["lesson_changes"]
        assert change["lesson_id"] == "1.1"
        assert change["previous"] == "mastered"
        assert change["current"] == "completed"
        assert client.get("/lessons/1.1").json()["status"] == "completed"

    def test_quiz_attempts_are_recorded(self, client):
        client.get("/lessons")

        response = client.post("/lessons/1.1/quiz", json={"correct": 3, "total": 4, "now": NOW})
        assert response.status_code == 200
        data = response.json()
        assert data["current"] == "in-progress"
        assert data["score"] == 75
        assert data["passed"]

        client.post("/lessons/1.1/quiz", json={"correct": 1, "total": 4, "now": NOW})
        progress = client.get("/lessons/1.1").json()
        assert progress["quiz_attempts"] == 2
        assert progress["best_quiz_score"] == 0.75
        assert progress["quiz_passed"]

    def test_quiz_rejects_bad_counts_and_locked_lessons(self, client):
        client.get("/lessons")
        too_many = client.post("/lessons/1.1/quiz", json={"correct": 5, "total": 4})
        assert too_many.status_code == 422
        locked = client.post("/lessons/1.2/quiz", json={"correct": 4, "total": 4})
        assert locked.status_code == 409

    def test_invalid_transition(self, client):
        response = client.post(
            "/lessons/1.1/transition", json={"target": "mastered", "now": NOW}
        )
        assert response.status_code == 409

    def test_unknown_lesson_and_module(self, client):
        assert client.get("/lessons/9.9").status_code == 404
        assert client.get("/lessons/9.9/mastery").status_code == 404
        assert client.get("/modules/9/mastery").status_code == 404

    def test_module_mastery(self, client):
        data = client.get("/modules/1/mastery").json()
        assert data["level"] == "New"
        assert data["lessons"] == {"1.1": "New", "1.2": "New"}
