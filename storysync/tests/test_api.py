"""
Tests for the HTTP / WebSocket API.

Tests:
- Sync endpoint: fan-out, snapshot on join, rejection without a code
- REST endpoints: health, session code, session introspection
- Page and CORS preflight
"""

import json
import time
import pytest

from fastapi.testclient import TestClient
from fastapi import WebSocketDisconnect

from ..api.app import create_app
from ..session.manager import SessionRegistry


def wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll until predicate() is true (cleanup runs on the server's loop)."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def client(registry):
    # Context manager keeps every WebSocket on one event loop
    with TestClient(create_app(registry=registry)) as test_client:
        yield test_client


class TestSyncEndpoint:
    """Tests for WS /ws."""

    def test_relay_between_two_clients(self, client):
        with client.websocket_connect("/ws?session=ROOM1") as a:
            with client.websocket_connect("/ws?session=ROOM1") as b:
                frame = json.dumps({"type": "text-update", "content": "hello"})
                a.send_text(frame)
                assert b.receive_text() == frame

                reply = json.dumps({"type": "cursor", "pos": 3})
                b.send_text(reply)
                assert a.receive_text() == reply

    def test_late_joiner_receives_snapshot_first(self, client):
        frames = [
            {"type": "text-update", "content": "hello"},
            {"type": "column-update", "content": "c1"},
            {"type": "card-update", "cardId": "k1", "cardIndex": 0, "data": "x"},
            {"type": "card-update", "cardId": "k2", "cardIndex": 1, "data": "y"},
        ]
        with client.websocket_connect("/ws?session=ROOM2") as a:
            with client.websocket_connect("/ws?session=ROOM2") as observer:
                for frame in frames:
                    a.send_text(json.dumps(frame))
                # Once the observer has the last card, every frame was applied
                for frame in frames:
                    assert json.loads(observer.receive_text()) == frame

                with client.websocket_connect("/ws?session=ROOM2") as late:
                    a.send_text(json.dumps({"type": "text-update", "content": "live"}))
                    received = [json.loads(late.receive_text()) for _ in range(5)]

        assert received == frames + [{"type": "text-update", "content": "live"}]

    def test_malformed_frame_keeps_connection_open(self, client):
        with client.websocket_connect("/ws?session=ROOM3") as a:
            with client.websocket_connect("/ws?session=ROOM3") as b:
                a.send_text("not json at all")
                frame = json.dumps({"type": "text-update", "content": "still here"})
                a.send_text(frame)
                assert b.receive_text() == frame

    def test_binary_frame_is_relayed_as_text(self, client):
        with client.websocket_connect("/ws?session=ROOM4") as a:
            with client.websocket_connect("/ws?session=ROOM4") as b:
                a.send_bytes(b'{"type":"column-update","content":"c"}')
                assert b.receive_text() == '{"type":"column-update","content":"c"}'

    def test_missing_session_code_rejected(self, client, registry):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass
        assert exc_info.value.code == 1008
        assert len(registry) == 0

    def test_blank_session_code_rejected(self, client, registry):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?session=%20%20"):
                pass
        assert len(registry) == 0

    def test_oversized_session_code_rejected(self, client, registry):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?session=" + "A" * 500):
                pass
        assert len(registry) == 0

    def test_plain_http_requires_upgrade(self, client):
        response = client.get("/ws?session=ROOM")
        assert response.status_code == 426
        assert response.text == "Expected Upgrade: websocket"

    def test_session_destroyed_after_last_disconnect(self, client, registry):
        with client.websocket_connect("/ws?session=GONE") as a:
            with client.websocket_connect("/ws?session=GONE") as b:
                frame = json.dumps({"type": "text-update", "content": "bye"})
                a.send_text(frame)
                assert b.receive_text() == frame
            assert "GONE" in registry

        assert wait_for(lambda: "GONE" not in registry)

        # A new join starts from scratch: no snapshot, state empty
        with client.websocket_connect("/ws?session=GONE"):
            assert wait_for(lambda: registry.get("GONE") is not None)
            assert registry.get("GONE").state.text == ""


class TestSessionEndpoints:
    """Tests for the REST session endpoints."""

    def test_session_code(self, client):
        response = client.get("/api/v1/session-code")
        assert response.status_code == 200
        code = response.json()["code"]
        assert len(code) == 6
        assert code.isalnum() and code.upper() == code

    def test_list_sessions(self, client):
        with client.websocket_connect("/ws?session=LISTED"):
            assert wait_for(
                lambda: any(s["connections"] == 1 for s in client.get("/api/v1/sessions").json()["sessions"])
            )
            data = client.get("/api/v1/sessions").json()

        assert data["total"] == 1
        assert data["sessions"][0]["name"] == "LISTED"

    def test_get_session_state(self, client):
        with client.websocket_connect("/ws?session=VIEW") as a:
            with client.websocket_connect("/ws?session=VIEW") as b:
                card = {"type": "card-update", "cardId": "k1", "cardIndex": 0, "data": {"hp": 3}}
                a.send_text(json.dumps(card))
                b.receive_text()

                response = client.get("/api/v1/sessions/VIEW")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "VIEW"
        assert data["connections"] == 2
        assert data["cards"] == [{"card_id": "k1", "card_index": 0, "data": {"hp": 3}}]
        assert data["frames_relayed"] == 1

    def test_get_unknown_session(self, client):
        response = client.get("/api/v1/sessions/NOPE")
        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "SESSION_NOT_FOUND"
        assert "NOPE" in body["error"]


class TestSystemEndpoints:
    """Tests for page, health and CORS."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "storysync"
        assert data["sessions"] == 0

    @pytest.mark.parametrize("path", ["/", "/index.html"])
    def test_index_page(self, client, path):
        response = client.get(path)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "/ws?session=" in response.text

    def test_cors_preflight(self, client):
        response = client.options(
            "/api/v1/session-code",
            headers={
                "Origin": "http://example.com",
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unknown_path(self, client):
        assert client.get("/nowhere").status_code == 404
