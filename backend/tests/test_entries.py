"""
Tests for the mood and activity recorders.

Usage:
    pytest backend/tests/test_entries.py -v
"""
import pytest
from fastapi.testclient import TestClient

from conftest import register_and_login, run_db, count_rows
from therapy_api.main import app
from therapy_api.models import Mood, Activity


class TestMood:

    @pytest.mark.parametrize("score", [0, 1, 42, 99, 100])
    def test_valid_score_is_stored_for_caller(self, client, session_factory, score):
        headers, user = register_and_login(client)
        r = client.post("/mood", json={"score": score, "note": " rough day ", "activities": ["walking"]}, headers=headers)

        assert r.status_code == 201
        body = r.json()
        assert body["success"] is True
        assert body["data"]["score"] == score
        assert body["data"]["userId"] == user["id"]
        assert body["data"]["note"] == "rough day"
        assert body["data"]["activities"] == ["walking"]
        assert body["data"]["timestamp"]

        async def _stored(db):
            return await db.get(Mood, body["data"]["id"])
        stored = run_db(session_factory, _stored)
        assert stored.score == score
        assert stored.user_id == user["id"]

    @pytest.mark.parametrize("score", [-1, 101, 250])
    def test_out_of_range_score_is_rejected_before_storage(self, client, session_factory, event_bus, score):
        headers, _ = register_and_login(client)
        r = client.post("/mood", json={"score": score}, headers=headers)

        assert r.status_code == 400
        assert run_db(session_factory, lambda db: count_rows(db, Mood)) == 0
        assert event_bus.named("mood/updated") == []

    def test_publishes_mood_updated(self, client, event_bus):
        headers, user = register_and_login(client)
        r = client.post("/mood", json={"score": 15, "context": "work"}, headers=headers)
        assert r.status_code == 201

        [event] = event_bus.named("mood/updated")
        assert event["userId"] == user["id"]
        assert event["mood"] == 15
        assert event["moodId"] == r.json()["data"]["id"]
        assert event["context"] == "work"
        assert event["note"] is None
        assert event["activities"] == []
        assert event["timestamp"]

    def test_requires_auth(self, client):
        r = client.post("/mood", json={"score": 50})
        assert r.status_code == 401

    def test_publish_failure_fails_request_but_keeps_entry(self, client, session_factory, event_bus):
        headers, _ = register_and_login(client)
        event_bus.fail = True
        failing = TestClient(app, raise_server_exceptions=False)

        r = failing.post("/mood", json={"score": 60}, headers=headers)

        assert r.status_code == 500
        assert r.json() == {"status": "error", "message": "Something went wrong"}
        assert run_db(session_factory, lambda db: count_rows(db, Mood)) == 1


class TestActivity:

    def test_valid_activity_is_stored(self, client, event_bus):
        headers, user = register_and_login(client)
        r = client.post(
            "/activity",
            json={"type": "meditation", "name": "Body scan", "duration": 10, "difficulty": "easy"},
            headers=headers,
        )

        assert r.status_code == 201
        data = r.json()["data"]
        assert data["type"] == "meditation"
        assert data["name"] == "Body scan"
        assert data["duration"] == 10
        assert data["userId"] == user["id"]

        [event] = event_bus.named("activity/completed")
        assert event["activityId"] == data["id"]
        assert event["type"] == "meditation"
        assert event["feedback"] is None

    def test_unknown_type_is_rejected(self, client, session_factory, event_bus):
        headers, _ = register_and_login(client)
        r = client.post("/activity", json={"type": "skydiving", "name": "Jump"}, headers=headers)

        assert r.status_code == 400
        assert run_db(session_factory, lambda db: count_rows(db, Activity)) == 0
        assert event_bus.sent == []

    def test_negative_duration_is_rejected(self, client, session_factory):
        headers, _ = register_and_login(client)
        r = client.post("/activity", json={"type": "walking", "name": "Walk", "duration": -5}, headers=headers)

        assert r.status_code == 400
        assert run_db(session_factory, lambda db: count_rows(db, Activity)) == 0

    def test_requires_name(self, client):
        headers, _ = register_and_login(client)
        r = client.post("/activity", json={"type": "reading"}, headers=headers)
        assert r.status_code == 400
