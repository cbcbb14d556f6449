"""
RevVoice — Controller Events & Effects

Events are what happened (user taps, recognizer/synthesizer callbacks,
network results, timers).  Effects are what the runtime must do next.  The
turn-taking machine maps (state, event) → (state, effects) and never touches
a device, socket or clock itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..core.errors import RevVoiceError


# ═══════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Tap:
    """The microphone button."""


@dataclass(frozen=True)
class Stop:
    reason: str = "user"


@dataclass(frozen=True)
class ServerProbed:
    error: Optional[RevVoiceError] = None


@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    model: str = ""
    is_fallback: bool = False


@dataclass(frozen=True)
class SessionFailed:
    error: RevVoiceError


@dataclass(frozen=True)
class MicrophoneGranted:
    pass


@dataclass(frozen=True)
class MicrophoneDenied:
    error: RevVoiceError


@dataclass(frozen=True)
class RecognizerStarted:
    pass


@dataclass(frozen=True)
class RecognizerStartFailed:
    already_running: bool = False
    message: str = ""


@dataclass(frozen=True)
class RecognitionResult:
    interim: str = ""
    final: str = ""


@dataclass(frozen=True)
class RecognizerError:
    code: str


@dataclass(frozen=True)
class RecognizerEnded:
    pass


@dataclass(frozen=True)
class RestartDue:
    """A scheduled recognizer restart came due."""


@dataclass(frozen=True)
class ReplyReceived:
    turn: int
    text: str
    model: str = ""
    is_fallback: bool = False


@dataclass(frozen=True)
class ReplyFailed:
    turn: int
    error: RevVoiceError


@dataclass(frozen=True)
class SpeechStarted:
    utterance_id: int


@dataclass(frozen=True)
class SpeechEnded:
    utterance_id: int


@dataclass(frozen=True)
class SpeechFailed:
    utterance_id: int
    reason: str = ""


Event = Union[
    Tap, Stop, ServerProbed, SessionStarted, SessionFailed,
    MicrophoneGranted, MicrophoneDenied, RecognizerStarted,
    RecognizerStartFailed, RecognitionResult, RecognizerError,
    RecognizerEnded, RestartDue, ReplyReceived, ReplyFailed,
    SpeechStarted, SpeechEnded, SpeechFailed,
]


# ═══════════════════════════════════════════════════════════════════════════
# Effects
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProbeServer:
    pass


@dataclass(frozen=True)
class StartSession:
    session_id: Optional[str] = None


@dataclass(frozen=True)
class RequestMicrophone:
    pass


@dataclass(frozen=True)
class StartRecognizer:
    pass


@dataclass(frozen=True)
class StopRecognizer:
    pass


@dataclass(frozen=True)
class SetRecognizerLanguage:
    locale: str


@dataclass(frozen=True)
class SubmitUtterance:
    turn: int
    text: str


@dataclass(frozen=True)
class Speak:
    utterance_id: int
    text: str
    language: str


@dataclass(frozen=True)
class CancelSpeech:
    pass


@dataclass(frozen=True)
class ScheduleEvent:
    delay: float
    event: Event


@dataclass(frozen=True)
class CancelTimers:
    pass


@dataclass(frozen=True)
class Notify:
    message: str
    level: str = "info"     # "info" | "user" | "ai" | "error" | "debug"


@dataclass(frozen=True)
class ReportError:
    error: RevVoiceError


Effect = Union[
    ProbeServer, StartSession, RequestMicrophone, StartRecognizer,
    StopRecognizer, SetRecognizerLanguage, SubmitUtterance, Speak,
    CancelSpeech, ScheduleEvent, CancelTimers, Notify, ReportError,
]
