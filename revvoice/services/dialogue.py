"""
RevVoice — Dialogue Turn Service

================================================================================
ONE REQUEST = ONE TURN
================================================================================

  start_turn(session_id?)       → create (or reuse) a session, choosing the
                                  primary model and falling back once.
  submit_utterance(id, text)    → resolve language, shape the prompt, call the
                                  completion backend with the full history,
                                  record the turn, return a bounded reply.
  end_turn(id)                  → delete the session.

Model fallback happens at session creation only.  If the primary model fails
mid-conversation the error is reported; the session is not migrated.

Every submit_utterance holds the session's lock, so two requests against one
session run one after the other.  The Session object is captured at the start
of the turn: if the sweeper or a DELETE removes it meanwhile, the in-flight
turn still completes and only the next request sees SessionNotFound.
================================================================================
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from ..core.config import (
    SUPPORTED_LANGUAGES,
    SessionConfig,
    model_cfg,
    server_cfg,
    session_cfg,
)
from ..core.errors import (
    CompletionFailed,
    ModelUnavailable,
    RateLimited,
    SessionNotFound,
)
from ..core.interfaces import CompletionBackend
from ..core.language import is_supported, resolve_language
from ..core.models import ASSISTANT, USER, Turn, TurnReply, TurnStart
from .completion import classify_completion_error
from .prompts import build_user_prompt
from .session_store import SessionStore

logger = logging.getLogger("revvoice.dialogue")


def truncate_reply(text: str, max_chars: int, marker: str = "...") -> tuple[str, bool]:
    """Cut `text` to at most `max_chars` characters, marker included."""
    if len(text) <= max_chars:
        return text, False
    if max_chars < len(marker):
        return text[:max_chars], True
    return text[:max_chars - len(marker)] + marker, True


class DialogueTurnService:
    """Server-side turn handler shared by the REST and WebSocket surfaces."""

    def __init__(
        self,
        store: SessionStore,
        backend: CompletionBackend,
        primary_model: str = model_cfg.primary_model,
        fallback_model: str = model_cfg.fallback_model,
        config: SessionConfig = session_cfg,
    ) -> None:
        self.store = store
        self._backend = backend
        self._primary_model = primary_model
        self._fallback_model = fallback_model
        self._cfg = config

    # ── Session lifecycle ───────────────────────────────────────────────

    def start_turn(self, session_id: Optional[str] = None) -> TurnStart:
        if session_id:
            existing = self.store.get(session_id)
            if existing is not None:
                logger.info(f"[{session_id}] Reusing session (model={existing.model})")
                return TurnStart(existing.id, existing.model, existing.is_fallback)

        model = self._primary_model
        is_fallback = False
        try:
            self._backend.prepare(model)
        except Exception as e:
            logger.error(f"Primary model {model} failed, trying fallback: {e}")
            model = self._fallback_model
            is_fallback = True
            try:
                self._backend.prepare(model)
            except Exception as fallback_error:
                logger.error(f"All models failed: {fallback_error}")
                raise ModelUnavailable(
                    "Failed to start chat session",
                    details="All AI models are currently unavailable",
                ) from fallback_error

        session = self.store.create(session_id, model=model, is_fallback=is_fallback)
        return TurnStart(session.id, session.model, session.is_fallback)

    def end_turn(self, session_id: str) -> bool:
        if not self.store.delete(session_id):
            raise SessionNotFound(session_id)
        return True

    # ── Turns ───────────────────────────────────────────────────────────

    async def submit_utterance(
        self,
        session_id: str,
        text: str,
        kind: str = "voice",
    ) -> TurnReply:
        session = self.store.require(session_id)

        async with session.lock:
            # Re-checked under the lock: a DELETE (or DELETE + re-create) may have won the race
            if self.store.get(session_id) is not session:
                raise SessionNotFound(session_id)

            started = time.monotonic()
            self.store.touch(session_id)

            detected = resolve_language(text)
            language = detected if is_supported(detected) else "en"
            prompt = build_user_prompt(text, language, session.message_count)
            user_turn = Turn(role=USER, text=prompt)

            try:
                reply = await self._backend.complete(session.model, [*session.history, user_turn])
            except (RateLimited, CompletionFailed) as e:
                logger.warning(f"[{session_id}] Completion failed on {session.model}: {e}")
                raise
            except Exception as e:
                classified = classify_completion_error(e)
                logger.error(f"[{session_id}] Completion error on {session.model}: {e}")
                raise classified from e

            session.history.append(user_turn)
            session.append(ASSISTANT, reply)

        response, truncated = truncate_reply(
            reply, self._cfg.max_reply_chars, self._cfg.truncation_marker
        )
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"[{session_id}] Turn {session.message_count} ({kind}, {language}) "
            f"answered in {elapsed_ms}ms" + (" [truncated]" if truncated else "")
        )
        return TurnReply(
            response=response,
            model=session.model,
            is_fallback=session.is_fallback,
            message_type=kind,
            response_time_ms=elapsed_ms,
            language=language,
            truncated=truncated,
        )

    # ── Diagnostics ─────────────────────────────────────────────────────

    def status(self) -> Dict[str, Any]:
        return {
            "model": self._primary_model,
            "fallback": self._fallback_model,
            "environment": server_cfg.environment,
            "languageSupport": list(SUPPORTED_LANGUAGES),
            "activeSessions": self.store.active_count,
        }
