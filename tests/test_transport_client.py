import json

import httpx
import pytest

from revvoice.client.transport import TransportClient
from revvoice.core.errors import (
    HttpRequestFailed,
    NetworkUnavailable,
    RateLimited,
    RequestTimedOut,
    SessionNotFound,
    UnexpectedResponse,
)


async def _online():
    return True


async def _offline():
    return False


class _Server:
    """Records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes[(request.method, request.url.path)]
        return handler(request)


def _client(server, probe=_online) -> TransportClient:
    return TransportClient(
        "http://revvoice.test", probe=probe, transport=httpx.MockTransport(server)
    )


def _started(request):
    return httpx.Response(200, json={
        "success": True, "sessionId": "session_1_abcdefghi",
        "model": "gemini-2.0-flash-001", "isFallback": False,
    })


@pytest.mark.asyncio
async def test_start_then_message():
    server = _Server({
        ("POST", "/api/chat/start"): _started,
        ("POST", "/api/chat/message"): lambda r: httpx.Response(200, json={
            "success": True, "response": "Hi there", "messageType": "voice",
            "model": "gemini-2.0-flash-001", "isFallback": False, "responseTime": 812,
        }),
    })
    async with _client(server) as api:
        started = await api.start_session()
        assert started.session_id == "session_1_abcdefghi"
        assert api.session_id == "session_1_abcdefghi"

        reply = await api.send_message("Hello")
        assert reply.response == "Hi there"
        assert reply.response_time_ms == 812

    assert json.loads(server.requests[0].content) == {}
    assert json.loads(server.requests[1].content) == {
        "sessionId": "session_1_abcdefghi", "message": "Hello", "messageType": "voice",
    }


@pytest.mark.asyncio
async def test_start_reuses_known_session():
    server = _Server({("POST", "/api/chat/start"): _started})
    async with _client(server) as api:
        api.session_id = "session_1_abcdefghi"
        await api.start_session()
    assert json.loads(server.requests[0].content) == {"sessionId": "session_1_abcdefghi"}


@pytest.mark.asyncio
async def test_404_is_session_not_found_and_forgets_id():
    server = _Server({
        ("POST", "/api/chat/message"): lambda r: httpx.Response(
            404, json={"error": "Session not found", "details": "expired"}
        ),
    })
    async with _client(server) as api:
        api.session_id = "session_old"
        with pytest.raises(SessionNotFound):
            await api.send_message("Hello")
        assert api.session_id is None


@pytest.mark.asyncio
async def test_429_carries_retry_after():
    server = _Server({
        ("POST", "/api/chat/message"): lambda r: httpx.Response(
            429, json={"error": "Rate limit exceeded", "details": "slow", "retryAfter": "60s"}
        ),
    })
    async with _client(server) as api:
        api.session_id = "session_1"
        with pytest.raises(RateLimited) as exc_info:
            await api.send_message("Hello")
    assert exc_info.value.retry_after == "60s"


@pytest.mark.asyncio
async def test_other_status_is_http_failure():
    server = _Server({
        ("GET", "/health"): lambda r: httpx.Response(500, json={"error": "Internal server error"}),
    })
    async with _client(server) as api:
        with pytest.raises(HttpRequestFailed) as exc_info:
            await api.check_health()
    assert exc_info.value.status == 500
    assert exc_info.value.error == "Internal server error"
    assert "Server error" in exc_info.value.user_message


@pytest.mark.asyncio
async def test_non_json_error_body():
    server = _Server({("GET", "/health"): lambda r: httpx.Response(502, text="Bad Gateway")})
    async with _client(server) as api:
        with pytest.raises(HttpRequestFailed) as exc_info:
            await api.check_health()
    assert exc_info.value.status == 502


@pytest.mark.asyncio
async def test_timeout_maps_to_request_timed_out():
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(_Server({("GET", "/health"): slow})) as api:
        with pytest.raises(RequestTimedOut):
            await api.check_health()


@pytest.mark.asyncio
async def test_connection_error_maps_to_network_unavailable():
    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(_Server({("GET", "/health"): refused})) as api:
        with pytest.raises(NetworkUnavailable):
            await api.check_health()


@pytest.mark.asyncio
async def test_offline_probe_short_circuits():
    server = _Server({("GET", "/health"): lambda r: httpx.Response(200, json={})})
    async with _client(server, probe=_offline) as api:
        with pytest.raises(NetworkUnavailable):
            await api.check_health()
    assert server.requests == []


@pytest.mark.asyncio
async def test_end_session_logs_instead_of_raising():
    server = _Server({
        ("DELETE", "/api/chat/session/session_1"): lambda r: httpx.Response(500, json={}),
    })
    async with _client(server) as api:
        api.session_id = "session_1"
        await api.end_session()
        assert api.session_id is None
        await api.end_session()
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_send_without_session():
    async with _client(_Server({})) as api:
        with pytest.raises(SessionNotFound):
            await api.send_message("Hello")


@pytest.mark.asyncio
async def test_status_endpoint():
    server = _Server({
        ("GET", "/api/status"): lambda r: httpx.Response(200, json={"status": "running"}),
    })
    async with _client(server) as api:
        assert (await api.get_status())["status"] == "running"


def test_user_messages_are_distinct():
    errors = [
        SessionNotFound(),
        RateLimited(),
        NetworkUnavailable(),
        RequestTimedOut(),
        HttpRequestFailed(500),
        HttpRequestFailed(400),
    ]
    messages = [e.user_message for e in errors]
    assert len(set(messages)) == len(messages)


@pytest.mark.asyncio
async def test_html_body_on_success_is_unexpected():
    server = _Server({("GET", "/health"): lambda r: httpx.Response(
        200, text="<html>Sign in to Wi-Fi</html>", headers={"content-type": "text/html"},
    )})
    async with _client(server) as api:
        with pytest.raises(UnexpectedResponse) as exc:
            await api.check_health()
    assert exc.value.user_message == UnexpectedResponse.user_message


@pytest.mark.asyncio
async def test_non_object_body_is_unexpected():
    server = _Server({("GET", "/api/status"): lambda r: httpx.Response(200, json=["running"])})
    async with _client(server) as api:
        with pytest.raises(UnexpectedResponse):
            await api.get_status()


@pytest.mark.asyncio
async def test_start_without_session_id_is_unexpected():
    server = _Server({("POST", "/api/chat/start"): lambda r: httpx.Response(200, json={"success": True})})
    async with _client(server) as api:
        with pytest.raises(UnexpectedResponse):
            await api.start_session()
        assert api.session_id is None
