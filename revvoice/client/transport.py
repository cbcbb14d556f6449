"""
RevVoice — Transport Client

Async HTTP client for the RevVoice server.  Every call is preceded by a
connectivity probe and carries its own timeout; failures come back as the
shared error taxonomy so the controller never sees an httpx exception.

Usage:
    async with TransportClient("http://localhost:3000") as api:
        await api.check_health()
        started = await api.start_session()
        reply = await api.send_message("Tell me about the RV400")
        await api.end_session()
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlsplit

import httpx

from ..core.config import ClientConfig, client_cfg
from ..core.errors import (
    HttpRequestFailed,
    NetworkUnavailable,
    RateLimited,
    RequestTimedOut,
    SessionNotFound,
    UnexpectedResponse,
)
from ..core.models import TurnReply, TurnStart

logger = logging.getLogger("revvoice.transport")

ConnectivityProbe = Callable[[], Awaitable[bool]]


def tcp_probe(base_url: str, timeout: float = 2.0) -> ConnectivityProbe:
    """Probe that succeeds when a TCP connection to the API host opens."""
    parts = urlsplit(base_url)
    host = parts.hostname or "localhost"
    port = parts.port or (443 if parts.scheme == "https" else 80)

    async def probe() -> bool:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    return probe


class TransportClient:
    """Talks to /health, /api/status and /api/chat/*.  Remembers the session id."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        config: ClientConfig = client_cfg,
        probe: Optional[ConnectivityProbe] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._cfg = config
        self.base_url = (base_url or config.api_base_url).rstrip("/")
        self._probe = probe or tcp_probe(self.base_url)
        self._client = httpx.AsyncClient(base_url=self.base_url, transport=transport)
        self.session_id: Optional[str] = None

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Core request path ───────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        timeout: float,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not await self._probe():
            raise NetworkUnavailable("No internet connection")

        try:
            response = await self._client.request(method, path, json=json, timeout=timeout)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out after {timeout:.0f}s")
            raise RequestTimedOut(f"Request timeout after {timeout:.0f}s") from e
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise NetworkUnavailable(f"Network error: {e}") from e

        if response.is_success:
            return self._success_payload(method, path, response)

        body = self._error_payload(response)
        error = str(body.get("error") or "")
        details = str(body.get("details") or "")
        status = response.status_code
        logger.warning(f"{method} {path} → {status} {error}")

        if status == 404:
            raise SessionNotFound(self.session_id or "", error or "Session not found")
        if status == 429:
            raise RateLimited(
                error or "Rate limit exceeded",
                retry_after=body.get("retryAfter"),
                details=details,
            )
        raise HttpRequestFailed(status, error, details)

    @staticmethod
    def _success_payload(method: str, path: str, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            logger.warning(f"{method} {path} → {response.status_code} with a non-JSON body")
            raise UnexpectedResponse(f"Invalid JSON from {path}") from e
        if not isinstance(body, dict):
            logger.warning(f"{method} {path} → {response.status_code} with a non-object body")
            raise UnexpectedResponse(f"Expected a JSON object from {path}")
        return body

    @staticmethod
    def _error_payload(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    # ── Endpoints ───────────────────────────────────────────────────────

    async def check_health(self) -> Dict[str, Any]:
        return await self._request("GET", "/health", self._cfg.health_timeout)

    async def get_status(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/status", self._cfg.health_timeout)

    async def start_session(self, session_id: Optional[str] = None) -> TurnStart:
        payload: Dict[str, Any] = {}
        if session_id or self.session_id:
            payload["sessionId"] = session_id or self.session_id
        data = await self._request("POST", "/api/chat/start", self._cfg.start_timeout, json=payload)
        if not isinstance(data.get("sessionId"), str) or not data["sessionId"]:
            raise UnexpectedResponse("Session start response has no sessionId")
        started = TurnStart(
            session_id=data["sessionId"],
            model=data.get("model", ""),
            is_fallback=bool(data.get("isFallback", False)),
        )
        self.session_id = started.session_id
        logger.info(
            f"Session {started.session_id} on {started.model}"
            + (" (fallback)" if started.is_fallback else "")
        )
        return started

    async def send_message(self, text: str, message_type: str = "voice") -> TurnReply:
        if not self.session_id:
            raise SessionNotFound("", "No active session")
        started = time.monotonic()
        try:
            data = await self._request(
                "POST",
                "/api/chat/message",
                self._cfg.message_timeout,
                json={"sessionId": self.session_id, "message": text, "messageType": message_type},
            )
        except SessionNotFound:
            self.session_id = None
            raise
        logger.debug(f"Round trip {int((time.monotonic() - started) * 1000)}ms")
        return TurnReply(
            response=data.get("response", ""),
            model=data.get("model", ""),
            is_fallback=bool(data.get("isFallback", False)),
            message_type=data.get("messageType", message_type),
            response_time_ms=int(data.get("responseTime", 0)),
        )

    async def end_session(self) -> None:
        session_id, self.session_id = self.session_id, None
        if not session_id:
            return
        try:
            await self._request("DELETE", f"/api/chat/session/{session_id}", self._cfg.end_timeout)
            logger.info(f"Session {session_id} ended")
        except Exception as e:
            logger.error(f"Error ending session {session_id}: {e}")
