"""
Tests for the WebSocket game channel and HTTP endpoints.

Tests:
- Complete game over the WebSocket
- Acknowledgements
- Client mistakes (bad JSON, bad play, bad moves)
- Launch failures
- Health and session listing
"""

import asyncio
import sys
import time

import pytest
from fastapi.testclient import TestClient

from ..api.app import create_app, send_safely
from ..config import RelaySettings
from ..session.messages import ErrorCode, error_message
from .conftest import FAKE_ENGINE


def play_message(kind="minimax", option=3, message_id=1):
    return {"type": "play", "payload": {"opponent_kind": kind, "opponent_option": option}, "id": message_id}


def move_message(row, col, message_id=2):
    return {"type": "move", "payload": {"row": row, "col": col}, "id": message_id}


def wait_for_empty_registry(app, timeout=5.0):
    deadline = time.monotonic() + timeout
    while len(app.state.registry) and time.monotonic() < deadline:
        time.sleep(0.02)
    return len(app.state.registry) == 0


@pytest.fixture
def settings() -> RelaySettings:
    return RelaySettings(
        engine_path=str(FAKE_ENGINE),
        engine_prefix=(sys.executable,),
        disconnect_grace_ms=20,
        kill_grace_ms=300,
    )


@pytest.fixture
def app(settings, engine_mode):
    return create_app(settings=settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class TestGameChannel:
    """A full game over the WebSocket."""

    def test_connection_message(self, client):
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == {"type": "connection", "payload": {}}

    def test_full_game_x_wins(self, client, app):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()  # connection

            ws.send_json(play_message())
            assert ws.receive_json() == {
                "type": "ack", "payload": {"message": "Acknowledged submit"}, "id": 1,
            }

            assert ws.receive_json() == {"type": "opponent_move", "payload": {"turn": 1, "row": 0, "col": 0}}
            assert ws.receive_json()["type"] == "request_move"

            ws.send_json(move_message(1, 1, message_id=2))
            assert ws.receive_json() == {
                "type": "ack", "payload": {"message": "Acknowledged move"}, "id": 2,
            }
            assert ws.receive_json() == {"type": "opponent_move", "payload": {"turn": 3, "row": 0, "col": 1}}
            assert ws.receive_json()["type"] == "request_move"

            ws.send_json(move_message(2, 2, message_id=3))
            assert ws.receive_json()["id"] == 3
            assert ws.receive_json() == {"type": "opponent_move", "payload": {"turn": 5, "row": 0, "col": 2}}
            assert ws.receive_json() == {"type": "result", "payload": {"outcome": "xWon"}}

        assert wait_for_empty_registry(app)

    def test_legacy_play_fields(self, client):
        """The original client's {type, option} play payload still works."""
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "play", "payload": {"type": "montecarlo", "option": "50"}, "id": 7})
            assert ws.receive_json()["id"] == 7
            assert ws.receive_json()["type"] == "opponent_move"

    def test_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong", "payload": {}}


class TestClientMistakes:
    """Mistakes are acknowledged or reported, never fatal."""

    def test_invalid_json(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["payload"]["code"] == "VALIDATION_ERROR"

            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "resign"})
            assert ws.receive_json()["payload"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("kind,option", [("minimax", 10), ("montecarlo", 0), ("random", 3)])
    def test_invalid_launch_spec(self, client, app, kind, option):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json(play_message(kind, option))
            assert ws.receive_json()["type"] == "ack"
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["payload"]["code"] == "INVALID_LAUNCH_SPEC"
            assert len(app.state.registry) == 0

    def test_move_before_play_only_acknowledged(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json(move_message(0, 0))
            assert ws.receive_json()["type"] == "ack"
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

    def test_bad_moves_only_acknowledged(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json(play_message())
            ws.receive_json()  # ack
            ws.receive_json()  # opponent_move (0, 0)
            ws.receive_json()  # request_move

            for row, col in [(0, 0), (3, 1), (-1, 2)]:
                ws.send_json(move_message(row, col))
                assert ws.receive_json()["type"] == "ack"
            ws.send_json({"type": "move", "payload": {"row": "middle"}, "id": 9})
            assert ws.receive_json()["type"] == "ack"

            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

            # The session is still usable
            ws.send_json(move_message(1, 1))
            assert ws.receive_json()["type"] == "ack"
            assert ws.receive_json() == {"type": "opponent_move", "payload": {"turn": 3, "row": 0, "col": 1}}


class TestFaults:
    """Engine faults over the WebSocket."""

    def test_launch_failure(self, engine_mode):
        app = create_app(settings=RelaySettings(engine_path="/nonexistent/TicTacToeGameAI/play"))
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_json(play_message())
                assert ws.receive_json()["type"] == "ack"
                message = ws.receive_json()
                assert message["type"] == "error"
                assert message["payload"]["code"] == "LAUNCH_FAILED"

    def test_stderr_fault(self, client, app, engine_mode):
        engine_mode("stderr")
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json(play_message())
            ws.receive_json()  # ack
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["payload"]["code"] == "PROCESS_FAULT"
            assert ws.receive_json() == {"type": "over", "payload": {}}
        assert wait_for_empty_registry(app)


class TestHttpEndpoints:
    """Health and session listing."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "tictactoe-relay"
        assert data["active_sessions"] == 0

    def test_sessions_listed_while_playing(self, client, app):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json(play_message())
            ws.receive_json()  # ack
            ws.receive_json()  # opponent_move
            ws.receive_json()  # request_move

            data = client.get("/api/v1/sessions").json()
            assert data["count"] == 1
            session = data["sessions"][0]
            assert session["phase"] == "awaiting_client_move"
            assert session["turn"] == 1
            assert session["engine_pid"] is not None

        assert wait_for_empty_registry(app)
        assert client.get("/api/v1/sessions").json()["count"] == 0


class TestSendSafely:
    """Error reports to a closed channel never escape the receive loop."""

    def test_closed_channel(self):
        async def closed_send(message):
            raise RuntimeError('Cannot call "send" once a close message has been sent.')

        message = error_message(ErrorCode.INTERNAL_ERROR, "Internal relay error")
        assert asyncio.run(send_safely(closed_send, message, "conn-1")) is False

    def test_open_channel(self):
        sent = []

        async def send(message):
            sent.append(message)

        message = error_message(ErrorCode.INTERNAL_ERROR, "Internal relay error")
        assert asyncio.run(send_safely(send, message, "conn-1")) is True
        assert sent == [message]
