"""
Tests for the FastAPI surface in backend/main.py

Dependencies are overridden with an in-memory database, a fixed user and a
fresh SessionManager per test.

Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.auth import verify_api_key
from backend.core.selector_config import SelectorConfig
from backend.main import app
from backend.models import Base, get_db
from backend.services.session_selector import SessionManager, get_session_manager


def _matches(n, live=()):
    return [
        {
            "matchId": f"m{i}",
            "participantName": f"F{i}",
            "opponentName": f"D{i}",
            "oddsDecimal": 1.5,
            "opponentOddsDecimal": 2.5,
            "isFavorite": True,
            "isLive": i in live,
        }
        for i in range(1, n + 1)
    ]


@pytest.fixture
def manager():
    return SessionManager(config=SelectorConfig.standard())


@pytest.fixture
def client(manager):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[verify_api_key] = lambda: "user1"
    app.dependency_overrides[get_session_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()


class TestPublicEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "operational"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["active_session"] is None


class TestMatchesAndCombinations:

    def test_group(self, client):
        response = client.post("/api/matches/group", json={"matches": _matches(3, live={3})})
        assert response.status_code == 200
        body = response.json()
        assert len(body["units"]) == 2
        assert body["dropped_live"] == 1
        assert body["synthesized_sides"] == 2
        assert body["units"][0]["picks"][0]["is_favorite"] is True

    def test_count(self, client):
        body = client.post("/api/combinations/count", json={"matches": _matches(5)}).json()
        assert body["valid_combinations"] == 10
        assert body["total_combinations"] == 32
        assert (body["target_favorites"], body["target_underdogs"]) == (3, 2)

    def test_count_strict_split_rejected(self, client):
        response = client.post(
            "/api/combinations/count",
            json={"matches": _matches(5), "target_favorites": 4, "target_underdogs": 4,
                  "strict_split": True},
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_SPLIT"

    def test_generate(self, client):
        response = client.post(
            "/api/combinations/generate",
            json={"matches": _matches(5), "stake": 0.10, "max_combinations": 4},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "complete"
        assert len(body["combinations"]) == 4
        assert body["stats"]["valid_possible_combinations"] == 10
        assert all(c["favorite_count"] == 3 for c in body["combinations"])

    def test_generate_excludes_previous_keys(self, client):
        first = client.post(
            "/api/combinations/generate", json={"matches": _matches(4), "max_combinations": 6}
        ).json()
        keys = [c["key"] for c in first["combinations"]]

        second = client.post(
            "/api/combinations/generate",
            json={"matches": _matches(4), "previous_keys": keys},
        ).json()
        assert second["status"] == "exhausted"
        assert second["combinations"] == []

    def test_generate_rejects_null_limit(self, client):
        response = client.post(
            "/api/combinations/generate",
            json={"matches": _matches(18), "max_combinations": None},
        )
        assert response.status_code == 422

    def test_generate_rejects_limit_above_bound(self, client):
        response = client.post(
            "/api/combinations/generate",
            json={"matches": _matches(18), "max_combinations": 10_001},
        )
        assert response.status_code == 422

    def test_loose_records_are_degraded_not_rejected(self, client):
        """Bad odds default to even money and numeric ids are kept as text."""
        records = _matches(3) + [
            {"matchId": "m99", "participantName": "X", "oddsDecimal": "n/a"},
            {"matchId": 42, "participantName": "Y", "oddsDecimal": {"bad": 1}},
        ]
        response = client.post("/api/matches/group", json={"matches": records})

        assert response.status_code == 200
        units = {u["match_id"]: u for u in response.json()["units"]}
        assert len(units) == 5
        assert {p["odds_decimal"] for p in units["m99"]["picks"]} == {2.0}
        assert units["42"]["picks"][0]["odds_decimal"] == 2.0

    def test_record_without_match_id_is_dropped(self, client):
        records = _matches(2) + [{"matchId": None, "participantName": "Ghost", "oddsDecimal": 1.4}]
        body = client.post("/api/matches/group", json={"matches": records}).json()
        assert len(body["units"]) == 2
        assert body["dropped_malformed"] == 1

    def test_generate_empty(self, client):
        body = client.post("/api/combinations/generate", json={"matches": []}).json()
        assert body["status"] == "empty"


class TestSessions:

    def test_full_session_flow(self, client):
        started = client.post("/api/sessions", json={"matches": _matches(4), "stake": 1.0})
        assert started.status_code == 200
        session_id = started.json()["session_id"]
        assert started.json()["valid_combinations"] == 6

        keys = []
        while True:
            body = client.post(f"/api/sessions/{session_id}/next").json()
            if body["exhausted"]:
                break
            keys.append(body["combination"]["key"])
        assert len(keys) == 6
        assert len(set(keys)) == 6
        assert body["remaining_combinations"] == 0

        outcome = client.post(
            f"/api/sessions/{session_id}/outcome", json={"key": keys[0], "success": True}
        ).json()
        assert outcome["completed_bets"] == 1
        assert outcome["log_id"] is not None

        log = client.get("/api/bets/log", params={"session_id": session_id}).json()
        assert len(log) == 1
        assert log[0]["combination_key"] == keys[0]

        settled = client.put(f"/api/bets/log/{log[0]['id']}/result", json={"result": "win"})
        assert settled.json()["result"] == "win"

        summary = client.post(f"/api/sessions/{session_id}/stop").json()
        assert summary["used_combinations"] == 6
        assert summary["average_favorite_pct"] == 50.0

        assert client.get(f"/api/sessions/{session_id}").status_code == 404

    def test_second_session_conflicts(self, client):
        client.post("/api/sessions", json={"matches": _matches(3)})
        response = client.post("/api/sessions", json={"matches": _matches(3)})
        assert response.status_code == 409
        assert response.json()["error_code"] == "SESSION_STATE_ERROR"

    def test_all_live_rejected(self, client):
        response = client.post("/api/sessions", json={"matches": _matches(2, live={1, 2})})
        assert response.status_code == 422
        assert response.json()["error_code"] == "EMPTY_INPUT"

    def test_active_session(self, client):
        assert client.get("/api/sessions/active").status_code == 404
        session_id = client.post("/api/sessions", json={"matches": _matches(3)}).json()["session_id"]
        assert client.get("/api/sessions/active").json()["session_id"] == session_id

    def test_terminate(self, client, manager):
        session_id = client.post("/api/sessions", json={"matches": _matches(3)}).json()["session_id"]
        response = client.post(f"/api/sessions/{session_id}/terminate")
        assert response.status_code == 200
        assert manager.active_session() is None

    def test_unknown_session(self, client):
        response = client.post("/api/sessions/nope/next")
        assert response.status_code == 404
        assert response.json()["error_code"] == "SESSION_NOT_FOUND"


class TestBetLogEndpoints:

    def test_missing_log_entry(self, client):
        response = client.put("/api/bets/log/42/result", json={"result": "loss"})
        assert response.status_code == 404

    def test_admin_clear(self, client):
        response = client.delete("/api/bets/log")
        assert response.status_code == 200
        assert response.json()["removed"] == 0


class TestAuth:

    @pytest.fixture
    def secured_client(self, client):
        app.dependency_overrides.pop(verify_api_key, None)
        return client

    def test_missing_key(self, secured_client, monkeypatch):
        monkeypatch.setenv("API_KEY_USER1", "secret")
        response = secured_client.post("/api/matches/group", json={"matches": []})
        assert response.status_code == 401

    def test_valid_key(self, secured_client, monkeypatch):
        monkeypatch.setenv("API_KEY_USER1", "secret")
        response = secured_client.post(
            "/api/matches/group", json={"matches": []}, headers={"X-API-Key": "secret"}
        )
        assert response.status_code == 200

    def test_unknown_key(self, secured_client, monkeypatch):
        monkeypatch.setenv("API_KEY_USER1", "secret")
        response = secured_client.post(
            "/api/matches/group", json={"matches": []}, headers={"X-API-Key": "wrong"}
        )
        assert response.status_code == 401

    def test_unconfigured_service(self, secured_client, monkeypatch):
        for i in range(1, 6):
            monkeypatch.delenv(f"API_KEY_USER{i}", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "production")
        response = secured_client.post(
            "/api/matches/group", json={"matches": []}, headers={"X-API-Key": "anything"}
        )
        assert response.status_code == 503

    def test_development_key(self, secured_client, monkeypatch):
        for i in range(1, 6):
            monkeypatch.delenv(f"API_KEY_USER{i}", raising=False)
        monkeypatch.setenv("ENVIRONMENT", "development")
        response = secured_client.post(
            "/api/matches/group", json={"matches": []}, headers={"X-API-Key": "dev-key-insecure"}
        )
        assert response.status_code == 200

    def test_non_admin_cannot_clear(self, secured_client, monkeypatch):
        monkeypatch.setenv("API_KEY_USER1", "admin")
        monkeypatch.setenv("API_KEY_USER2", "other")
        response = secured_client.delete("/api/bets/log", headers={"X-API-Key": "other"})
        assert response.status_code == 403
