import pytest
from fastapi.testclient import TestClient

from revvoice import server
from revvoice.core.errors import RateLimited
from revvoice.core.health import ServerHealth
from revvoice.services.dialogue import DialogueTurnService
from revvoice.services.session_store import SessionStore


@pytest.fixture
def client(monkeypatch, backend, clock):
    dialogue = DialogueTurnService(
        SessionStore(primary_model="primary", clock=clock),
        backend,
        primary_model="primary",
        fallback_model="fallback",
    )
    monkeypatch.setattr(server, "dialogue", dialogue)
    monkeypatch.setattr(server, "server_health", ServerHealth())
    with TestClient(server.app) as test_client:
        yield test_client


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["activeSessions"] == 0
    assert body["activeConnections"] == 0
    assert "timestamp" in body
    assert body["uptime"] >= 0


def test_status(client):
    body = client.get("/api/status").json()
    assert body["status"] == "running"
    assert body["model"] == "primary"
    assert body["fallback"] == "fallback"
    assert body["languageSupport"] == ["en", "es", "fr", "de", "hi", "zh", "ja", "ko"]


def test_full_conversation_then_expiry(client, backend):
    started = client.post("/api/chat/start", json={})
    assert started.status_code == 200
    data = started.json()
    assert data["success"] is True
    assert data["sessionId"].startswith("session_")
    assert data["model"] == "primary"
    assert data["isFallback"] is False
    sid = data["sessionId"]

    backend.replies = ["The RV400 charges fully in about four and a half hours."]
    reply = client.post("/api/chat/message", json={"sessionId": sid, "message": "How long to charge?"})
    assert reply.status_code == 200
    body = reply.json()
    assert body["success"] is True
    assert body["response"].startswith("The RV400")
    assert body["messageType"] == "voice"
    assert isinstance(body["responseTime"], int)

    ended = client.delete(f"/api/chat/session/{sid}")
    assert ended.json() == {"success": True, "message": "Session ended successfully"}

    gone = client.post("/api/chat/message", json={"sessionId": sid, "message": "still there?"})
    assert gone.status_code == 404
    assert gone.json() == {
        "error": "Session not found",
        "details": "Chat session has expired or does not exist",
    }


def test_start_reports_fallback(client, backend):
    backend.unusable_models = {"primary"}
    data = client.post("/api/chat/start", json={}).json()
    assert data["model"] == "fallback"
    assert data["isFallback"] is True


def test_start_fails_when_all_models_unavailable(client, backend):
    backend.unusable_models = {"primary", "fallback"}
    response = client.post("/api/chat/start")
    assert response.status_code == 500
    assert response.json() == {
        "error": "Failed to start chat session",
        "details": "All AI models are currently unavailable",
    }


@pytest.mark.parametrize(
    "payload",
    [{}, {"sessionId": "session_1"}, {"message": "hello"}, {"sessionId": "session_1", "message": "   "}],
)
def test_message_requires_fields(client, payload):
    response = client.post("/api/chat/message", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields"


def test_message_with_malformed_body(client):
    response = client.post(
        "/api/chat/message", content=b"not json", headers={"content-type": "application/json"}
    )
    assert response.status_code == 400


def test_rate_limit_maps_to_429(client, backend):
    sid = client.post("/api/chat/start", json={}).json()["sessionId"]
    backend.error = RateLimited(retry_after="60s", details="Too many requests.")
    response = client.post("/api/chat/message", json={"sessionId": sid, "message": "hello"})
    assert response.status_code == 429
    assert response.json() == {
        "error": "Rate limit exceeded",
        "details": "Too many requests.",
        "retryAfter": "60s",
    }


def test_completion_failure_maps_to_500(client, backend):
    sid = client.post("/api/chat/start", json={}).json()["sessionId"]
    backend.error = RuntimeError("upstream exploded")
    response = client.post("/api/chat/message", json={"sessionId": sid, "message": "hello"})
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to get AI response"


def test_delete_unknown_session(client):
    response = client.delete("/api/chat/session/session_missing")
    assert response.status_code == 404
    assert response.json() == {"error": "Session not found"}


def test_websocket_start_and_messages(client, backend):
    with client.websocket_connect("/ws") as ws:
        assert client.get("/health").json()["activeConnections"] == 1

        ws.send_json({"type": "startSession"})
        started = ws.receive_json()
        assert started["type"] == "sessionStarted"
        assert started["model"] == "primary"
        assert started["fallback"] is False
        sid = started["sessionId"]

        backend.replies = ["Typed answer", "Spoken answer"]
        ws.send_json({"type": "textInput", "sessionId": sid, "text": "typed question"})
        assert ws.receive_json() == {"type": "textResponse", "text": "Typed answer", "model": "primary"}

        ws.send_json({"type": "voiceInput", "sessionId": sid, "text": "spoken question"})
        assert ws.receive_json() == {"type": "voiceResponse", "text": "Spoken answer", "model": "primary"}


@pytest.mark.parametrize(
    "message, expected",
    [
        ({"sessionId": "x"}, "Message type is required"),
        ({"type": "dance"}, "Unknown message type: dance"),
        ({"type": "textInput", "text": "hi"}, "Session ID is required"),
        ({"type": "textInput", "sessionId": "session_missing", "text": "hi"}, "Session not found"),
    ],
)
def test_websocket_errors(client, message, expected):
    with client.websocket_connect("/ws") as ws:
        ws.send_json(message)
        assert ws.receive_json() == {"type": "error", "message": expected}


def test_websocket_rejects_invalid_json(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("{not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}
        ws.send_json({"type": "startSession"})
        assert ws.receive_json()["type"] == "sessionStarted"
