"""
RevVoice — Conversation Phase Machine

Enforces the client lifecycle: IDLE → CONNECTING → LISTENING ⇄ SPEAKING → IDLE.
Every phase change goes through this module so illegitimate phases are
impossible and every transition is logged.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

logger = logging.getLogger("revvoice.state")


class ConversationPhase(str, Enum):
    """Client turn-taking phases."""
    IDLE = "idle"                # Not capturing; waiting for a tap
    CONNECTING = "connecting"    # Session + microphone being acquired
    LISTENING = "listening"      # Recognizer owns the turn
    SPEAKING = "speaking"        # Synthesizer is playing a reply


# Legal phase transitions
_TRANSITIONS: Dict[ConversationPhase, Set[ConversationPhase]] = {
    ConversationPhase.IDLE:       {ConversationPhase.CONNECTING},
    ConversationPhase.CONNECTING: {ConversationPhase.LISTENING, ConversationPhase.IDLE},
    ConversationPhase.LISTENING:  {ConversationPhase.SPEAKING, ConversationPhase.IDLE},
    ConversationPhase.SPEAKING:   {ConversationPhase.LISTENING, ConversationPhase.IDLE},
}


def is_legal(current: ConversationPhase, target: ConversationPhase) -> bool:
    return target == current or target in _TRANSITIONS.get(current, set())


def check_transition(current: ConversationPhase, target: ConversationPhase, reason: str = "") -> None:
    """Raises ValueError on an illegal transition; same-phase is a no-op."""
    if not is_legal(current, target):
        allowed = _TRANSITIONS.get(current, set())
        raise ValueError(
            f"Illegal phase transition: {current.value} → {target.value}. "
            f"Allowed from {current.value}: {[p.value for p in allowed]}. "
            f"Reason: {reason}"
        )


class PhaseTracker:
    """
    Records phase changes observed by the controller runtime and notifies a
    listener.  The reducer decides the phase; this class only validates,
    logs and keeps history.
    """

    def __init__(
        self,
        on_transition: Optional[Callable[[ConversationPhase, ConversationPhase, str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._phase = ConversationPhase.IDLE
        self._on_transition = on_transition
        self._clock = clock
        self._history: List[Dict] = []
        self._entered_at = clock()

    @property
    def phase(self) -> ConversationPhase:
        return self._phase

    @property
    def history(self) -> List[Dict]:
        return list(self._history)

    def transition(self, target: ConversationPhase, reason: str = "") -> None:
        if target == self._phase:
            return

        check_transition(self._phase, target, reason)

        prev = self._phase
        now = self._clock()
        self._history.append({
            "from": prev.value,
            "to": target.value,
            "reason": reason,
            "duration_in_prev_ms": round((now - self._entered_at) * 1000, 1),
        })
        self._phase = target
        self._entered_at = now

        logger.info(
            f"PHASE: {prev.value} → {target.value}"
            + (f" ({reason})" if reason else "")
        )

        if self._on_transition:
            try:
                self._on_transition(prev, target, reason)
            except Exception as e:
                logger.error(f"Phase transition callback error: {e}")
