"""
RevVoice — Health & Status Snapshots

Owns process uptime and the live WebSocket connection count, and renders the
/health and /api/status payloads.  The HTTP layer never assembles these
itself; it asks this module.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict

logger = logging.getLogger("revvoice.health")


class ServerHealth:
    """Process-level counters shared by the REST and WebSocket surfaces."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started_at = clock()
        self._connections = 0

    # ── Signal setters (called by the WebSocket handler) ────────────────

    def connection_opened(self) -> None:
        self._connections += 1
        logger.debug(f"Connection opened (active: {self._connections})")

    def connection_closed(self) -> None:
        self._connections = max(0, self._connections - 1)
        logger.debug(f"Connection closed (active: {self._connections})")

    # ── Snapshots ───────────────────────────────────────────────────────

    @property
    def active_connections(self) -> int:
        return self._connections

    @property
    def uptime(self) -> float:
        return round(self._clock() - self._started_at, 3)

    def health(self, active_sessions: int) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "activeConnections": self._connections,
            "activeSessions": active_sessions,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": self.uptime,
        }

    def status(self, service_status: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "status": "running",
            **service_status,
            "activeConnections": self._connections,
        }
