"""
RevVoice — Simulated Capture & Playback

In-process stand-ins for the speech recognizer, speech synthesizer and
microphone.  They satisfy the collaborator protocols so the controller can be
driven end-to-end without audio hardware: demos, headless runs and tests.

Each adapter reports to a listener (normally the ConversationController)
through the same on_* callbacks a real platform adapter would use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from ..core.errors import HardwareUnavailable, PermissionDenied, RevVoiceError
from ..core.interfaces import RecognizerBusy
from .voices import Voice

logger = logging.getLogger("revvoice.simulated")


DEFAULT_VOICES: tuple[Voice, ...] = (
    Voice("Samantha", "en-US", default=True),
    Voice("Monica", "es-ES"),
    Voice("Thomas", "fr-FR"),
    Voice("Anna", "de-DE"),
    Voice("Lekha", "hi-IN"),
    Voice("Tingting", "zh-CN"),
    Voice("Kyoko", "ja-JP"),
    Voice("Yuna", "ko-KR"),
)


# ---------------------------------------------------------------------------
# Recognizer
# ---------------------------------------------------------------------------

class ScriptedRecognizer:
    """
    Recognizer driven by the caller: hear() delivers transcripts, fail()
    raises a recognizer error code, end() ends the recognition session.
    """

    def __init__(self, language: str = "en-US") -> None:
        self.language = language
        self.running = False
        self.starts = 0
        self.stops = 0
        self.busy_once = False
        self.start_error: Optional[str] = None
        self._listener: Any = None

    def attach(self, listener: Any) -> None:
        self._listener = listener

    def start(self) -> None:
        if self.running or self.busy_once:
            self.busy_once = False
            raise RecognizerBusy("recognition has already started")
        self.running = True
        self.starts += 1
        logger.debug(f"Recognizer started ({self.language})")
        if self.start_error:
            self.fail(self.start_error)
            self.end()
            return
        if self._listener:
            self._listener.on_recognizer_start()

    def stop(self) -> None:
        self.stops += 1
        if not self.running:
            return
        self.end()

    # ── Driving ─────────────────────────────────────────────────────────

    def hear(self, interim: str = "", final: str = "") -> None:
        if self._listener:
            self._listener.on_recognition_result(interim=interim, final=final)

    def fail(self, code: str) -> None:
        if self._listener:
            self._listener.on_recognizer_error(code)

    def end(self) -> None:
        self.running = False
        if self._listener:
            self._listener.on_recognizer_end()


# ---------------------------------------------------------------------------
# Synthesizer
# ---------------------------------------------------------------------------

@dataclass
class SpokenUtterance:
    text: str
    voice: Optional[Voice]
    utterance_id: int
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0


class RecordingSynthesizer:
    """Records what it was asked to say.  finish() completes the current utterance."""

    def __init__(self, voices: Sequence[Voice] = DEFAULT_VOICES) -> None:
        self._voices = list(voices)
        self.spoken: List[SpokenUtterance] = []
        self.cancelled = 0
        self.current: Optional[int] = None
        self._listener: Any = None

    def attach(self, listener: Any) -> None:
        self._listener = listener

    def voices(self) -> List[Voice]:
        return list(self._voices)

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
        self.spoken.append(SpokenUtterance(text, voice, utterance_id, rate, pitch, volume))
        self.current = utterance_id
        logger.debug(f"Speaking #{utterance_id} with {voice.name if voice else 'default voice'}")
        if self._listener:
            self._listener.on_speech_start(utterance_id)

    def cancel(self) -> None:
        self.cancelled += 1
        utterance_id, self.current = self.current, None
        if utterance_id is not None and self._listener:
            self._listener.on_speech_error(utterance_id, "interrupted")

    def finish(self) -> None:
        utterance_id, self.current = self.current, None
        if utterance_id is not None and self._listener:
            self._listener.on_speech_end(utterance_id)


# ---------------------------------------------------------------------------
# Microphone
# ---------------------------------------------------------------------------

class GrantedMicrophone:
    def __init__(self) -> None:
        self.requests = 0

    async def request_access(self) -> None:
        self.requests += 1


class DeniedMicrophone:
    """Refuses access with the given error (PermissionDenied by default)."""

    def __init__(self, error: Optional[RevVoiceError] = None) -> None:
        self._error = error or PermissionDenied("Microphone access denied")

    async def request_access(self) -> None:
        raise self._error


class MissingMicrophone(DeniedMicrophone):
    def __init__(self) -> None:
        super().__init__(HardwareUnavailable("No microphone found"))
