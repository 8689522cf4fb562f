"""
Tests for sessions and the session manager.

Tests:
- Session lifecycle (create, list, end)
- Lossless JSON round-trip, including mid-game resume
- Unknown session handling
"""

import json

import pytest

from ..engine_core.router import PlayerAction
from ..errors import SessionNotFoundError
from ..session import Session, SessionManager, SessionState, initial_state


class TestSessionLifecycle:
    """Tests for SessionManager bookkeeping."""

    def test_create_session(self, manager, artifacts, player_ids):
        session = manager.create_session(*artifacts, player_ids=player_ids, metadata={"table": 4})

        assert session.status == SessionState.CREATED
        assert session.random_seed == 7
        assert session.metadata == {"table": 4}
        assert manager.get_session(session.session_id) is session
        assert set(session.state["players"]) == set(player_ids)
        assert session.state["game"]["currentPhase"] == "setup"

    def test_explicit_seed_wins(self, manager, artifacts, player_ids):
        session = manager.create_session(*artifacts, player_ids=player_ids, random_seed=99)

        assert session.random_seed == 99

    def test_list_and_end(self, manager, artifacts, player_ids):
        first = manager.create_session(*artifacts, player_ids=player_ids)
        second = manager.create_session(*artifacts, player_ids=player_ids)

        assert set(manager.list_sessions()) == {first.session_id, second.session_id}
        assert manager.end_session(first.session_id) is True
        assert manager.end_session(first.session_id) is False
        assert manager.list_sessions() == [second.session_id]

    def test_active_only(self, manager, artifacts, player_ids):
        session = manager.create_session(*artifacts, player_ids=player_ids)
        manager.start(session.session_id)
        manager.submit_action(session.session_id, "u-alpha", "rock")
        manager.submit_action(session.session_id, "u-zed", "rock")
        other = manager.create_session(*artifacts, player_ids=player_ids)

        assert manager.list_sessions(active_only=True) == [other.session_id]

    def test_unknown_session(self, manager):
        assert manager.get_session("missing") is None
        with pytest.raises(SessionNotFoundError):
            manager.require_session("missing")
        with pytest.raises(SessionNotFoundError):
            manager.submit_action("missing", "u-alpha", "rock")

    def test_initial_state(self, transitions):
        state = initial_state(transitions, ["p"])

        assert state == {
            "game": {"currentPhase": "setup", "gameEnded": False},
            "players": {"p": {"actionRequired": False, "actionsAllowed": None}},
        }


class TestSessionPersistence:
    """Session.to_json()/from_json() keep everything needed to resume."""

    def test_round_trip_is_lossless(self, manager, artifacts, player_ids):
        session = manager.create_session(*artifacts, player_ids=player_ids)
        manager.start(session.session_id)
        manager.submit_action(session.session_id, "u-zed", "scissors")

        restored = Session.from_json(session.to_json())

        assert restored.to_dict() == session.to_dict()
        assert restored.transitions == session.transitions
        assert restored.instructions == session.instructions
        assert restored.mapping == session.mapping
        assert restored.is_initialized

    def test_wire_format_keys(self, manager, artifacts, player_ids):
        session = manager.create_session(*artifacts, player_ids=player_ids)

        data = json.loads(manager.export_session(session.session_id))

        assert {"sessionId", "state", "playerMapping", "isInitialized", "randomSeed"} <= set(data)
        assert data["transitions"]["phases"] == ["setup", "choose", "reveal", "finished"]

    def test_resume_in_another_manager(self, manager, artifacts, player_ids, referee):
        """A game exported mid-way finishes identically elsewhere."""
        session = manager.create_session(*artifacts, player_ids=player_ids)
        manager.start(session.session_id)
        manager.submit_action(session.session_id, "u-zed", "scissors")
        exported = manager.export_session(session.session_id)

        other = SessionManager(judge=referee)
        resumed = other.import_session(exported)
        result = other.submit_action(resumed.session_id, "u-alpha", "rock")

        assert result.success
        assert resumed.state["game"]["winner"] == "player1"
        assert resumed.state["game"]["gameEnded"] is True

    def test_pending_action_survives(self, manager, artifacts, player_ids):
        session = manager.create_session(*artifacts, player_ids=player_ids)
        session.pending_action = PlayerAction(player_id="u-alpha", action={"pick": "rock"})

        restored = Session.from_json(session.to_json())

        assert restored.pending_action == session.pending_action
