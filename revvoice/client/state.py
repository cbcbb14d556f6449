"""
RevVoice — Client Conversation State

The single source of truth for whether capture and playback should be
active.  Immutable: only the turn-taking machine produces new values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.config import DEFAULT_LANGUAGE, client_cfg
from ..core.state_machine import ConversationPhase


@dataclass(frozen=True)
class ConversationState:
    phase: ConversationPhase = ConversationPhase.IDLE

    # Capture / playback
    recording_active: bool = False
    continuous_mode_active: bool = False
    ai_speaking: bool = False
    current_utterance: Optional[int] = None
    synthesis_available: bool = True

    # Recognizer bookkeeping
    recognizer_starting: bool = False     # in-flight start guard
    recognizer_running: bool = False
    start_race_retried: bool = False
    restart_scheduled: bool = False
    language: str = DEFAULT_LANGUAGE

    # Timing (controller clock, seconds)
    last_speech_at: float = 0.0
    last_interruption_at: Optional[float] = None

    # Recovery
    retry_count: int = 0
    backoff: float = client_cfg.backoff_floor

    # Server conversation
    probing: bool = False
    awaiting_reply: bool = False
    session_id: Optional[str] = None
    model: str = ""
    is_fallback: bool = False

    # Sequence numbers used to drop stale callbacks/results
    utterance_seq: int = 0
    turn_seq: int = 0
