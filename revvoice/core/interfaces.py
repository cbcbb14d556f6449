"""
RevVoice — Collaborator Interfaces

Protocol definitions for everything the engine consumes but does not
implement:
  1. Completion — "given conversation history, return a text completion"
  2. Capture    — speech recognizer + microphone permission
  3. Playback   — speech synthesizer
  4. Timing     — scheduler for delayed events

The controller and the turn service talk to these protocols — never to a
concrete engine.
"""

from __future__ import annotations

from typing import Any, Callable, List, Protocol, Sequence, runtime_checkable

from .models import Turn


# ═══════════════════════════════════════════════════════════════════════════
# Completion — server side
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class CompletionBackend(Protocol):
    """Wraps the generative-AI service."""

    def prepare(self, model: str) -> None:
        """Initialise `model` for a new session.  Raises if it is unusable."""
        ...

    async def complete(self, model: str, history: Sequence[Turn]) -> str:
        """
        Return the completion for `history`.
        Raises RateLimited on quota/rate signals, CompletionFailed otherwise.
        """
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Capture — client side
# ═══════════════════════════════════════════════════════════════════════════

class RecognizerBusy(Exception):
    """Raised by Recognizer.start() when recognition is already running."""


@runtime_checkable
class Recognizer(Protocol):
    """
    Continuous speech recognizer with interim results.

    The adapter reports back through the controller's callbacks:
    on_recognizer_start / on_recognition_result / on_recognizer_error /
    on_recognizer_end.
    """

    language: str

    def start(self) -> None:
        """Begin recognition.  Raises RecognizerBusy if already running."""
        ...

    def stop(self) -> None:
        ...


@runtime_checkable
class Microphone(Protocol):
    async def request_access(self) -> None:
        """Raises PermissionDenied or HardwareUnavailable."""
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Playback — client side
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class Synthesizer(Protocol):
    """
    Text-to-speech output.  Reports on_speech_start / on_speech_end /
    on_speech_error with the utterance id it was given.
    """

    def voices(self) -> List[Any]:
        ...

    def speak(
        self,
        text: str,
        voice: Any,
        utterance_id: int,
        *,
        rate: float = 1.0,
        pitch: float = 1.0,
        volume: float = 1.0,
    ) -> None:
        ...

    def cancel(self) -> None:
        ...


# ═══════════════════════════════════════════════════════════════════════════
# Timing
# ═══════════════════════════════════════════════════════════════════════════

class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


@runtime_checkable
class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...
