"""
RevVoice — Turn-Taking Machine

================================================================================
(state, event, now) → (state, effects)
================================================================================

Pure: no IO, no clock reads, no timers.  `now` is supplied by the runtime and
every delay is returned as a ScheduleEvent effect, so the whole conversation
can be replayed deterministically in tests.

Phases:  IDLE → CONNECTING → LISTENING ⇄ SPEAKING → IDLE

  • Interim speech while the assistant is talking interrupts playback, at most
    once per cooldown window.  Interruption never stops recognition.
  • A final transcript stops the recognizer, re-targets its language and
    submits the utterance.  One reply is awaited at a time.
  • Recognizer failures are either recovered locally (restart, counted
    backoff) or terminal (permission/hardware/retry ceiling → IDLE).
  • A stop always wins and is idempotent.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, List, Tuple

from ..core.config import ClientConfig, client_cfg
from ..core.errors import (
    HardwareUnavailable,
    NetworkUnavailable,
    PermissionDenied,
    RecognitionTerminal,
    RequestTimedOut,
    RevVoiceError,
    SessionNotFound,
)
from ..core.language import recognizer_locale, resolve_language
from ..core.state_machine import ConversationPhase, check_transition
from .events import (
    CancelSpeech,
    CancelTimers,
    Effect,
    Event,
    MicrophoneDenied,
    MicrophoneGranted,
    Notify,
    ProbeServer,
    RecognitionResult,
    RecognizerEnded,
    RecognizerError,
    RecognizerStarted,
    RecognizerStartFailed,
    ReplyFailed,
    ReplyReceived,
    ReportError,
    RequestMicrophone,
    RestartDue,
    ScheduleEvent,
    ServerProbed,
    SessionFailed,
    SessionStarted,
    SetRecognizerLanguage,
    Speak,
    SpeechEnded,
    SpeechFailed,
    SpeechStarted,
    StartRecognizer,
    StartSession,
    Stop,
    StopRecognizer,
    SubmitUtterance,
    Tap,
)
from .state import ConversationState

logger = logging.getLogger("revvoice.turn_taking")

Transition = Tuple[ConversationState, List[Effect]]

IDLE = ConversationPhase.IDLE
CONNECTING = ConversationPhase.CONNECTING
LISTENING = ConversationPhase.LISTENING
SPEAKING = ConversationPhase.SPEAKING

# Recognizer error codes
ABORTED = "aborted"
NETWORK = "network"
NO_SPEECH = "no-speech"
AUDIO_CAPTURE = "audio-capture"
NOT_ALLOWED = "not-allowed"
SERVICE_NOT_ALLOWED = "service-not-allowed"

# Reply failures that are recovered by listening again instead of stopping
_TRANSIENT_REPLY_ERRORS = (RequestTimedOut, NetworkUnavailable)


class TurnTakingMachine:
    """Reducer for the client conversation.  Holds configuration only."""

    def __init__(
        self,
        config: ClientConfig = client_cfg,
        resolve: Callable[[str], str] = resolve_language,
    ) -> None:
        self._cfg = config
        self._resolve = resolve
        self._handlers: Dict[type, Callable[[ConversationState, Event, float], Transition]] = {
            Tap: self._on_tap,
            Stop: self._on_stop,
            ServerProbed: self._on_server_probed,
            SessionStarted: self._on_session_started,
            SessionFailed: self._on_session_failed,
            MicrophoneGranted: self._on_microphone_granted,
            MicrophoneDenied: self._on_microphone_denied,
            RecognizerStarted: self._on_recognizer_started,
            RecognizerStartFailed: self._on_recognizer_start_failed,
            RecognitionResult: self._on_recognition_result,
            RecognizerError: self._on_recognizer_error,
            RecognizerEnded: self._on_recognizer_ended,
            RestartDue: self._on_restart_due,
            ReplyReceived: self._on_reply_received,
            ReplyFailed: self._on_reply_failed,
            SpeechStarted: self._on_speech_started,
            SpeechEnded: self._on_speech_finished,
            SpeechFailed: self._on_speech_finished,
        }

    def initial_state(self, synthesis_available: bool = True) -> ConversationState:
        return ConversationState(
            backoff=self._cfg.backoff_floor,
            synthesis_available=synthesis_available,
        )

    def dispatch(self, state: ConversationState, event: Event, now: float) -> Transition:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning(f"Unhandled event: {event!r}")
            return state, []
        new_state, effects = handler(state, event, now)
        check_transition(state.phase, new_state.phase, reason=type(event).__name__)
        return new_state, effects

    # ── Helpers ─────────────────────────────────────────────────────────

    def _continuous(self, s: ConversationState) -> bool:
        return s.recording_active and s.continuous_mode_active

    def _schedule_restart(self, s: ConversationState, delay: float) -> Transition:
        return replace(s, restart_scheduled=True), [ScheduleEvent(delay, RestartDue())]

    def _start_recognition(self, s: ConversationState) -> Transition:
        """No-op while a start is in flight or the recognizer already runs."""
        if s.recognizer_starting or s.recognizer_running or not s.recording_active:
            return s, []
        return replace(s, recognizer_starting=True), [StartRecognizer()]

    def _stop(self, s: ConversationState, reason: str, error: RevVoiceError | None = None) -> Transition:
        active = s.recording_active or s.phase != IDLE or s.probing
        if not active:
            return s, []

        effects: List[Effect] = [CancelTimers()]
        if s.recording_active or s.recognizer_running or s.recognizer_starting:
            effects.append(StopRecognizer())
        if s.ai_speaking:
            effects.append(CancelSpeech())

        new = replace(
            s,
            phase=IDLE,
            recording_active=False,
            continuous_mode_active=False,
            ai_speaking=False,
            current_utterance=None,
            recognizer_starting=False,
            recognizer_running=False,
            start_race_retried=False,
            restart_scheduled=False,
            retry_count=0,
            backoff=self._cfg.backoff_floor,
            awaiting_reply=False,
            probing=False,
        )
        if error is not None:
            effects += [
                Notify(f"❌ {error.user_message}", "error"),
                ReportError(error),
                Notify("💡 Tap the microphone button to try again."),
            ]
        if s.recording_active:
            effects.append(Notify(f"🔇 Voice input stopped ({reason})."))
        return new, effects

    def _fail_connecting(self, s: ConversationState, error: RevVoiceError) -> Transition:
        if s.phase != CONNECTING:
            return s, []
        return replace(s, phase=IDLE), [
            Notify(f"❌ {error.user_message}", "error"),
            ReportError(error),
        ]

    # ── User ────────────────────────────────────────────────────────────

    def _on_tap(self, s: ConversationState, e: Tap, now: float) -> Transition:
        if s.phase == IDLE:
            if s.probing:
                return s, []
            return replace(s, probing=True), [ProbeServer()]
        if s.phase == CONNECTING:
            s, effects = self._stop(s, "user")
            return s, [Notify("Connection cancelled."), *effects]
        return self._stop(s, "user")

    def _on_stop(self, s: ConversationState, e: Stop, now: float) -> Transition:
        return self._stop(s, e.reason)

    # ── Connecting ──────────────────────────────────────────────────────

    def _on_server_probed(self, s: ConversationState, e: ServerProbed, now: float) -> Transition:
        if not s.probing or s.phase != IDLE:
            return s, []
        s = replace(s, probing=False)
        if e.error is not None:
            return s, [Notify(f"❌ {e.error.user_message}", "error"), ReportError(e.error)]

        s = replace(s, phase=CONNECTING)
        if s.session_id:
            return s, [RequestMicrophone()]
        return s, [Notify("Connecting to Rev..."), StartSession()]

    def _on_session_started(self, s: ConversationState, e: SessionStarted, now: float) -> Transition:
        s = replace(s, session_id=e.session_id, model=e.model, is_fallback=e.is_fallback)
        if s.phase != CONNECTING:
            return s, []
        label = f"{e.model} model - fallback" if e.is_fallback else f"{e.model} model"
        return s, [
            Notify(f"✅ Connected! (Using {label})"),
            RequestMicrophone(),
        ]

    def _on_session_failed(self, s: ConversationState, e: SessionFailed, now: float) -> Transition:
        return self._fail_connecting(s, e.error)

    def _on_microphone_granted(self, s: ConversationState, e: MicrophoneGranted, now: float) -> Transition:
        if s.phase != CONNECTING:
            return s, []
        s = replace(
            s,
            phase=LISTENING,
            recording_active=True,
            continuous_mode_active=True,
            retry_count=0,
            backoff=self._cfg.backoff_floor,
            start_race_retried=False,
            last_speech_at=now,
        )
        s, effects = self._start_recognition(s)
        return s, [Notify("🎤 Start speaking... (You can interrupt the AI anytime)"), *effects]

    def _on_microphone_denied(self, s: ConversationState, e: MicrophoneDenied, now: float) -> Transition:
        return self._fail_connecting(s, e.error)

    # ── Recognizer lifecycle ────────────────────────────────────────────

    def _on_recognizer_started(self, s: ConversationState, e: RecognizerStarted, now: float) -> Transition:
        s = replace(
            s,
            recognizer_starting=False,
            recognizer_running=True,
            start_race_retried=False,
            retry_count=0,
            backoff=self._cfg.backoff_floor,
        )
        if not s.recording_active:
            return s, [StopRecognizer()]
        return s, [Notify("🎤 Listening...", "debug")]

    def _on_recognizer_start_failed(self, s: ConversationState, e: RecognizerStartFailed, now: float) -> Transition:
        s = replace(s, recognizer_starting=False)
        if not s.recording_active:
            return s, []
        if e.already_running and not s.start_race_retried:
            s, effects = self._schedule_restart(
                replace(s, start_race_retried=True), self._cfg.quick_restart_delay
            )
            return s, effects
        return self._stop(
            s, "failure",
            RecognitionTerminal(f"Could not start speech recognition{': ' + e.message if e.message else ''}"),
        )

    def _on_recognizer_error(self, s: ConversationState, e: RecognizerError, now: float) -> Transition:
        s = replace(s, recognizer_starting=False)
        code = e.code
        if code == ABORTED or not s.recording_active:
            return s, []

        if code == NETWORK:
            retries = s.retry_count + 1
            ceiling = self._cfg.max_network_retries
            if retries < ceiling:
                delay = s.backoff
                s = replace(s, retry_count=retries, backoff=min(s.backoff * 2, self._cfg.backoff_cap))
                s, effects = self._schedule_restart(s, delay)
                return s, [Notify(f"🔄 Network error, retrying... ({retries}/{ceiling})", "debug"), *effects]
            return self._stop(
                replace(s, retry_count=retries), "failure",
                RecognitionTerminal("Speech recognition failed after multiple retries."),
            )

        if code == NO_SPEECH:
            if not self._continuous(s):
                return s, []
            return self._schedule_restart(s, self._cfg.quick_restart_delay)

        if code == AUDIO_CAPTURE:
            return self._stop(s, "failure", HardwareUnavailable(
                "Microphone not detected. Please check your microphone and permissions."
            ))
        if code == NOT_ALLOWED:
            return self._stop(s, "failure", PermissionDenied(
                "Microphone access denied. Please allow microphone permissions in your browser."
            ))
        if code == SERVICE_NOT_ALLOWED:
            return self._stop(s, "failure", PermissionDenied(
                "Speech recognition service not allowed. Please check your browser settings."
            ))

        effects: List[Effect] = [Notify(f"Speech recognition error: {code}", "debug")]
        if self._continuous(s):
            s, restart = self._schedule_restart(s, self._cfg.recovery_restart_delay)
            effects += restart
        return s, effects

    def _on_recognizer_ended(self, s: ConversationState, e: RecognizerEnded, now: float) -> Transition:
        s = replace(s, recognizer_running=False, recognizer_starting=False)
        if not self._continuous(s):
            return s, []

        idle_for = now - s.last_speech_at
        if not s.ai_speaking and not s.awaiting_reply and idle_for > self._cfg.silence_timeout:
            s, effects = self._stop(s, "inactivity")
            return s, [Notify("💤 Going to sleep due to inactivity. Tap to wake up."), *effects]

        if s.restart_scheduled:
            return s, []
        return self._schedule_restart(s, self._cfg.quick_restart_delay)

    def _on_restart_due(self, s: ConversationState, e: RestartDue, now: float) -> Transition:
        s = replace(s, restart_scheduled=False)
        if not self._continuous(s):
            return s, []
        return self._start_recognition(s)

    # ── Speech input ────────────────────────────────────────────────────

    def _on_recognition_result(self, s: ConversationState, e: RecognitionResult, now: float) -> Transition:
        if not s.recording_active:
            return s, []
        effects: List[Effect] = []

        interim = e.interim.strip()
        if (
            interim
            and s.ai_speaking
            and len(interim) > self._cfg.interruption_min_chars
            and (
                s.last_interruption_at is None
                or now - s.last_interruption_at > self._cfg.interruption_cooldown
            )
        ):
            s = replace(
                s,
                ai_speaking=False,
                current_utterance=None,
                last_interruption_at=now,
                phase=LISTENING,
            )
            effects += [
                CancelSpeech(),
                Notify("🔇 AI interrupted"),
                Notify("🎤 Interruption detected - listening to you..."),
            ]

        final = e.final.strip()
        if not final:
            return s, effects

        if s.awaiting_reply:
            effects.append(Notify(f"Reply pending, dropped transcript: {final}", "debug"))
            return s, effects

        if s.ai_speaking:
            s = replace(s, ai_speaking=False, current_utterance=None, phase=LISTENING)
            effects.append(CancelSpeech())

        language = self._resolve(final)
        s = replace(s, last_speech_at=now, awaiting_reply=True, turn_seq=s.turn_seq + 1)
        effects.append(Notify(f"🎤 You: {final}", "user"))
        if language != s.language:
            s = replace(s, language=language)
            effects += [
                SetRecognizerLanguage(recognizer_locale(language)),
                Notify(f"🌍 Switched to {language.upper()} recognition"),
            ]
        effects += [StopRecognizer(), SubmitUtterance(turn=s.turn_seq, text=final)]
        return s, effects

    # ── Replies ─────────────────────────────────────────────────────────

    def _on_reply_received(self, s: ConversationState, e: ReplyReceived, now: float) -> Transition:
        if not s.awaiting_reply or e.turn != s.turn_seq:
            return s, []
        s = replace(s, awaiting_reply=False, model=e.model or s.model, is_fallback=e.is_fallback)
        if not s.recording_active:
            return s, []

        effects: List[Effect] = [Notify(f"⚡ Rev: {e.text}", "ai")]
        if not s.synthesis_available:
            if self._continuous(s):
                s, restart = self._schedule_restart(s, self._cfg.recovery_restart_delay)
                effects += restart
            return s, effects

        utterance_id = s.utterance_seq + 1
        s = replace(
            s,
            ai_speaking=True,
            current_utterance=utterance_id,
            utterance_seq=utterance_id,
            phase=SPEAKING,
        )
        effects.append(Speak(utterance_id, e.text, self._resolve(e.text)))
        return s, effects

    def _on_reply_failed(self, s: ConversationState, e: ReplyFailed, now: float) -> Transition:
        if not s.awaiting_reply or e.turn != s.turn_seq:
            return s, []
        s = replace(s, awaiting_reply=False)
        error = e.error

        if isinstance(error, _TRANSIENT_REPLY_ERRORS):
            effects: List[Effect] = [Notify(f"❌ Error: {error.user_message}", "error")]
            if self._continuous(s):
                s, restart = self._schedule_restart(s, self._cfg.recovery_restart_delay)
                effects += restart
            return s, effects

        if isinstance(error, SessionNotFound):
            s = replace(s, session_id=None)
        return self._stop(s, "failure", error)

    # ── Playback ────────────────────────────────────────────────────────

    def _on_speech_started(self, s: ConversationState, e: SpeechStarted, now: float) -> Transition:
        if e.utterance_id != s.current_utterance:
            return s, []
        return s, [Notify("🔊 AI speaking...", "debug")]

    def _on_speech_finished(self, s: ConversationState, e: SpeechEnded | SpeechFailed, now: float) -> Transition:
        if e.utterance_id != s.current_utterance:
            return s, []
        s = replace(
            s,
            ai_speaking=False,
            current_utterance=None,
            phase=LISTENING if s.phase == SPEAKING else s.phase,
        )
        if isinstance(e, SpeechFailed):
            effects: List[Effect] = [Notify(f"Speech synthesis error: {e.reason}", "debug")]
        else:
            effects = [Notify("✅ AI finished speaking", "debug")]
        if self._continuous(s):
            s, restart = self._schedule_restart(s, self._cfg.post_speech_restart_delay)
            effects += restart
        return s, effects
