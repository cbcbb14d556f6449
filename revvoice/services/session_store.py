"""
RevVoice — Session Store

Maps session_id → Session.  In-memory only; sessions idle for longer than the
TTL are removed by a background sweeper.  Each Session carries its own
asyncio.Lock so two turns against one session never interleave their history
appends.
"""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from typing import Callable, Dict, List, Optional

from ..core.config import DEFAULT_LANGUAGE, model_cfg, session_cfg
from ..core.errors import SessionNotFound
from ..core.models import ASSISTANT, USER, Session
from .prompts import system_prompt, welcome_message

logger = logging.getLogger("revvoice.session")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id(now: Optional[float] = None) -> str:
    """session_<epoch-ms>_<9 base36 chars>."""
    millis = int((now if now is not None else time.time()) * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"session_{millis}_{suffix}"


class SessionStore:
    """Maps session_id → Session.  Safe within one asyncio loop."""

    def __init__(
        self,
        ttl: float = session_cfg.ttl_seconds,
        sweep_interval: float = session_cfg.sweep_interval_seconds,
        primary_model: str = model_cfg.primary_model,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions: Dict[str, Session] = {}
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._primary_model = primary_model
        self._clock = clock
        self._sweeper_task: Optional[asyncio.Task] = None

    # ── CRUD ────────────────────────────────────────────────────────────

    def create(
        self,
        session_id: Optional[str] = None,
        model: Optional[str] = None,
        is_fallback: bool = False,
    ) -> Session:
        now = self._clock()
        sid = session_id or generate_session_id(now)
        session = Session(
            id=sid,
            model=model or self._primary_model,
            is_fallback=is_fallback,
            created_at=now,
            last_activity_at=now,
        )
        session.append(USER, system_prompt(DEFAULT_LANGUAGE))
        session.append(ASSISTANT, welcome_message(DEFAULT_LANGUAGE))
        self._sessions[sid] = session
        logger.info(
            f"SessionStore: created {sid} model={session.model}"
            + (" (fallback)" if is_fallback else "")
            + f" (total: {len(self._sessions)})"
        )
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def append_turn(self, session_id: str, role: str, text: str) -> None:
        self.require(session_id).append(role, text)

    def touch(self, session_id: str) -> Session:
        session = self.require(session_id)
        session.last_activity_at = self._clock()
        session.message_count += 1
        return session

    def delete(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info(f"SessionStore: removed {session_id} (total: {len(self._sessions)})")
        return True

    def lock(self, session_id: str) -> asyncio.Lock:
        """Serialization point for one session's history.  Raises SessionNotFound."""
        return self.require(session_id).lock

    # ── Expiry ──────────────────────────────────────────────────────────

    def sweep_expired(self) -> List[str]:
        """Remove every session idle for longer than the TTL."""
        cutoff = self._clock() - self._ttl
        expired = [
            sid for sid, s in self._sessions.items()
            if s.last_activity_at < cutoff
        ]
        for sid in expired:
            logger.info(f"Cleaning up expired session: {sid}")
            self.delete(sid)
        return expired

    async def _sweeper(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep_expired()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def start_sweeper(self) -> None:
        if self._sweeper_task is None or self._sweeper_task.done():
            self._sweeper_task = asyncio.create_task(self._sweeper(), name="session-sweeper")
            logger.info(
                f"Session sweeper started (ttl={self._ttl:.0f}s, every {self._sweep_interval:.0f}s)"
            )

    async def stop_sweeper(self) -> None:
        task, self._sweeper_task = self._sweeper_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ── Introspection ───────────────────────────────────────────────────

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def ids(self) -> List[str]:
        return list(self._sessions)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    @property
    def primary_model(self) -> str:
        return self._primary_model
