"""
RevVoice — Data Models

Dataclasses for the server-side conversation record and the values the
Dialogue Turn Service hands back to the HTTP layer.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import List


USER = "user"
ASSISTANT = "assistant"


# ---------------------------------------------------------------------------
# Conversation history
# ---------------------------------------------------------------------------

@dataclass
class Turn:
    """One history entry.  role is "user" | "assistant"."""
    role: str = USER
    text: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class Session:
    """
    Server-side record of one conversation.

    history is append-only and alternates user/assistant, starting with the
    seed pair (system prompt as user, welcome as assistant).
    """
    id: str = ""
    model: str = ""
    is_fallback: bool = False
    history: List[Turn] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)
    message_count: int = 0
    # Serializes turns on this conversation; a recreated id gets a new lock
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def append(self, role: str, text: str) -> Turn:
        turn = Turn(role=role, text=text)
        self.history.append(turn)
        return turn


# ---------------------------------------------------------------------------
# Dialogue Turn Service results
# ---------------------------------------------------------------------------

@dataclass
class TurnStart:
    session_id: str = ""
    model: str = ""
    is_fallback: bool = False


@dataclass
class TurnReply:
    response: str = ""
    model: str = ""
    is_fallback: bool = False
    message_type: str = "voice"   # "voice" | "text"
    response_time_ms: int = 0
    language: str = "en"
    truncated: bool = False
