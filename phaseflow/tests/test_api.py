"""
Tests for API layer.

Tests:
- API service methods
- HTTP endpoints through FastAPI's TestClient
- Error responses and codes
"""

import pytest
from fastapi.testclient import TestClient

from ..api.app import create_app
from ..api.schemas import CreateSessionRequest, ErrorCode, SessionStatus, SubmitActionRequest, LoopStatus
from ..api.service import APIService
from ..config import Settings
from ..errors import ArtifactValidationError, OperationError, SessionNotFoundError
from ..session import SessionManager


@pytest.fixture
def service(referee):
    return APIService(session_manager=SessionManager(judge=referee, random_seed=3))


@pytest.fixture
def client(service):
    return TestClient(create_app(service=service, settings=Settings()))


@pytest.fixture
def create_body(transitions_data, instructions_data, player_ids):
    return {
        "transitions": transitions_data,
        "instructions": instructions_data,
        "players": player_ids,
    }


class TestAPIService:
    """Tests for APIService."""

    def test_create_session_runs_setup(self, service, create_body):
        response = service.create_session(CreateSessionRequest(**create_body))

        assert response.session.status == SessionStatus.ACTIVE
        assert response.session.current_phase == "choose"
        assert response.turn.loop_state == LoopStatus.WAITING_FOR_INPUT
        assert sorted(response.session.awaiting_players) == ["u-alpha", "u-zed"]
        assert response.warnings == []

    def test_create_without_start(self, service, create_body):
        response = service.create_session(CreateSessionRequest(**create_body, auto_start=False))

        assert response.turn is None
        assert response.session.status == SessionStatus.CREATED

        turn = service.start_session(response.session.session_id)
        assert turn.current_phase == "choose"

    def test_invalid_artifacts(self, service, create_body):
        del create_body["instructions"]["transitions"]["all_chosen"]

        with pytest.raises(ArtifactValidationError):
            service.create_session(CreateSessionRequest(**create_body))

    def test_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            service.get_session("nope")
        with pytest.raises(SessionNotFoundError):
            service.submit_action("nope", SubmitActionRequest(player_id="u-alpha", action="rock"))

    def test_play_through(self, service, create_body):
        sid = service.create_session(CreateSessionRequest(**create_body)).session.session_id

        service.submit_action(sid, SubmitActionRequest(player_id="u-alpha", action="scissors"))
        turn = service.submit_action(sid, SubmitActionRequest(player_id="u-zed", action="paper"))

        assert turn.success
        assert turn.loop_state == LoopStatus.GAME_OVER
        assert turn.status == SessionStatus.GAME_OVER
        assert turn.public_message == "player1 wins: scissors beats paper"
        assert service.list_sessions(active_only=True) == []

    def test_export(self, service, create_body):
        sid = service.create_session(CreateSessionRequest(**create_body)).session.session_id

        exported = service.export_session(sid)

        assert exported["sessionId"] == sid
        assert exported["isInitialized"] is True


class TestEndpoints:
    """Tests for the HTTP surface."""

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_session_flow(self, client, create_body):
        created = client.post("/api/v1/sessions", json=create_body)
        assert created.status_code == 201
        sid = created.json()["session"]["session_id"]

        first = client.post(f"/api/v1/sessions/{sid}/actions", json={"player_id": "u-zed", "action": "rock"})
        assert first.status_code == 200
        assert first.json()["awaiting_players"] == ["u-alpha"]

        second = client.post(f"/api/v1/sessions/{sid}/actions", json={"player_id": "u-alpha", "action": "rock"})
        body = second.json()
        assert body["loop_state"] == "game_over"
        assert body["state"]["game"]["winner"] == "tie"

        status = client.get(f"/api/v1/sessions/{sid}")
        assert status.json()["status"] == "game_over"

    def test_list_and_delete(self, client, create_body):
        sid = client.post("/api/v1/sessions", json=create_body).json()["session"]["session_id"]

        listed = client.get("/api/v1/sessions").json()
        assert listed == {"sessions": [sid], "count": 1}

        deleted = client.delete(f"/api/v1/sessions/{sid}")
        assert deleted.json() == {"success": True, "session_id": sid}
        assert client.get("/api/v1/sessions").json()["count"] == 0

    def test_export_endpoint(self, client, create_body):
        sid = client.post("/api/v1/sessions", json=create_body).json()["session"]["session_id"]

        exported = client.get(f"/api/v1/sessions/{sid}/export")

        assert exported.status_code == 200
        assert exported.json()["playerMapping"] == {"player1": "u-alpha", "player2": "u-zed"}

    def test_session_not_found(self, client):
        response = client.get("/api/v1/sessions/unknown")

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == ErrorCode.SESSION_NOT_FOUND.value
        assert body["details"] == {"session_id": "unknown"}

    def test_action_for_unknown_session(self, client):
        response = client.post("/api/v1/sessions/unknown/actions", json={"player_id": "a", "action": "rock"})

        assert response.status_code == 404

    def test_invalid_artifact(self, client, create_body):
        create_body["transitions"]["phases"] = []

        response = client.post("/api/v1/sessions", json=create_body)

        assert response.status_code == 422
        assert response.json()["error_code"] == ErrorCode.INVALID_ARTIFACT.value
        assert response.json()["details"]["errors"]

    def test_malformed_request(self, client):
        response = client.post("/api/v1/sessions", json={"players": []})

        assert response.status_code == 422
        assert response.json()["error_code"] == ErrorCode.VALIDATION_ERROR.value

    def test_delete_unknown_session(self, client):
        response = client.delete("/api/v1/sessions/unknown")

        assert response.json() == {"success": False, "session_id": "unknown"}

    def test_engine_failure_is_internal_error(self, service, client, create_body, monkeypatch):
        def fail(request):
            raise OperationError([{"index": 0, "op": {"op": "set"}, "error": "bad path"}])

        monkeypatch.setattr(service, "create_session", fail)

        response = client.post("/api/v1/sessions", json=create_body)

        assert response.status_code == 500
        assert response.json()["error_code"] == ErrorCode.INTERNAL_ERROR.value
        assert response.json()["error"] == "1 operation(s) failed to apply"
