"""
RevVoice — Conversation Controller

================================================================================
ONE CONTROLLER PER CONVERSATION — THE RUNTIME AROUND THE TURN-TAKING MACHINE
================================================================================

The controller owns:
  • The current ConversationState (replaced on every event, never mutated)
  • One event queue, drained by a re-entrancy-safe dispatch loop
  • The pending timers (restarts) and in-flight tasks (network calls)
  • A PhaseTracker that validates and logs every phase change

Event flow:
  adapter callback / task result / timer → post(event) → queue
      → TurnTakingMachine.dispatch(state, event, now) → (state', effects)
      → _execute(effect) for each effect

Adapters (recognizer, synthesizer, microphone) only ever call the on_*
callbacks below.  Those callbacks only post events, so an adapter firing
synchronously from inside start()/stop()/cancel() is safe.
================================================================================
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Callable, Coroutine, Deque, Dict, List, Optional, Set

from ..core.config import ClientConfig, client_cfg
from ..core.errors import HardwareUnavailable, RevVoiceError, UnexpectedResponse
from ..core.interfaces import (
    Microphone,
    Recognizer,
    RecognizerBusy,
    Scheduler,
    Synthesizer,
    TimerHandle,
)
from ..core.state_machine import ConversationPhase, PhaseTracker
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
from .transport import TransportClient
from .turn_taking import TurnTakingMachine
from .voices import select_voice

logger = logging.getLogger("revvoice.controller")

_NOTIFY_LEVELS = {
    "error": logging.ERROR,
    "debug": logging.DEBUG,
}


class LoopScheduler:
    """Scheduler backed by the running asyncio loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class ConversationController:
    """
    Drives one spoken conversation against the RevVoice server.

    All collaborators are injected so the controller runs the same against
    real devices, simulated adapters, a fake clock and a fake scheduler.
    """

    def __init__(
        self,
        transport: TransportClient,
        recognizer: Optional[Recognizer] = None,
        synthesizer: Optional[Synthesizer] = None,
        microphone: Optional[Microphone] = None,
        *,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        config: ClientConfig = client_cfg,
        machine: Optional[TurnTakingMachine] = None,
        on_notify: Optional[Callable[[str, str], None]] = None,
        on_error: Optional[Callable[[RevVoiceError], None]] = None,
        on_phase: Optional[Callable[[ConversationPhase, ConversationPhase, str], None]] = None,
    ) -> None:
        self._transport = transport
        self._recognizer = recognizer
        self._synthesizer = synthesizer
        self._microphone = microphone
        self._scheduler: Scheduler = scheduler or LoopScheduler()
        self._clock = clock
        self._cfg = config
        self._machine = machine or TurnTakingMachine(config)

        self._on_notify = on_notify
        self._on_error = on_error

        self._state = self._machine.initial_state(synthesis_available=synthesizer is not None)
        self._phases = PhaseTracker(on_transition=on_phase, clock=clock)

        self._queue: Deque[Event] = deque()
        self._draining = False
        self._timers: Set[TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()

    # ── Introspection ───────────────────────────────────────────────────

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def phase(self) -> ConversationPhase:
        return self._state.phase

    @property
    def phase_history(self) -> List[Dict[str, Any]]:
        return self._phases.history

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    # ── User actions ────────────────────────────────────────────────────

    def tap(self) -> None:
        """The microphone button: start when idle, stop otherwise."""
        if self._recognizer is None:
            self._notify("❌ Speech recognition not supported on this device.", "error")
            return
        self.post(Tap())

    def stop(self, reason: str = "user") -> None:
        self.post(Stop(reason))

    async def close(self) -> None:
        """Stop, abandon in-flight requests and end the server session."""
        self.stop("closed")
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._transport.end_session()
        logger.info("Conversation closed")

    async def drain(self) -> None:
        """Wait until no network task is in flight (tasks may spawn tasks)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Adapter callbacks ───────────────────────────────────────────────

    def on_recognizer_start(self) -> None:
        self.post(RecognizerStarted())

    def on_recognition_result(self, interim: str = "", final: str = "") -> None:
        self.post(RecognitionResult(interim=interim, final=final))

    def on_recognizer_error(self, code: str) -> None:
        self.post(RecognizerError(code))

    def on_recognizer_end(self) -> None:
        self.post(RecognizerEnded())

    def on_speech_start(self, utterance_id: int) -> None:
        self.post(SpeechStarted(utterance_id))

    def on_speech_end(self, utterance_id: int) -> None:
        self.post(SpeechEnded(utterance_id))

    def on_speech_error(self, utterance_id: int, reason: str = "") -> None:
        self.post(SpeechFailed(utterance_id, reason))

    # ── Dispatch loop ───────────────────────────────────────────────────

    def post(self, event: Event) -> None:
        self._queue.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                self._step(self._queue.popleft())
        finally:
            self._draining = False

    def _step(self, event: Event) -> None:
        new_state, effects = self._machine.dispatch(self._state, event, self._clock())
        self._state = new_state
        self._phases.transition(new_state.phase, reason=type(event).__name__)
        for effect in effects:
            try:
                self._execute(effect)
            except Exception as e:
                logger.error(f"Effect {type(effect).__name__} failed: {e}", exc_info=True)

    def _execute(self, effect: Effect) -> None:
        if isinstance(effect, Notify):
            self._notify(effect.message, effect.level)
        elif isinstance(effect, ReportError):
            if self._on_error:
                self._on_error(effect.error)
        elif isinstance(effect, ScheduleEvent):
            self._schedule(effect.delay, effect.event)
        elif isinstance(effect, CancelTimers):
            self._cancel_timers()
        elif isinstance(effect, ProbeServer):
            self._spawn(self._probe_server())
        elif isinstance(effect, StartSession):
            self._spawn(self._start_session(effect.session_id))
        elif isinstance(effect, RequestMicrophone):
            self._request_microphone()
        elif isinstance(effect, StartRecognizer):
            self._start_recognizer()
        elif isinstance(effect, StopRecognizer):
            if self._recognizer is not None:
                self._recognizer.stop()
        elif isinstance(effect, SetRecognizerLanguage):
            if self._recognizer is not None:
                self._recognizer.language = effect.locale
        elif isinstance(effect, SubmitUtterance):
            self._spawn(self._submit(effect.turn, effect.text))
        elif isinstance(effect, Speak):
            self._speak(effect)
        elif isinstance(effect, CancelSpeech):
            if self._synthesizer is not None:
                self._synthesizer.cancel()
        else:
            logger.warning(f"Unknown effect: {effect!r}")

    # ── Effect helpers ──────────────────────────────────────────────────

    def _notify(self, message: str, level: str = "info") -> None:
        logger.log(_NOTIFY_LEVELS.get(level, logging.INFO), message)
        if self._on_notify:
            self._on_notify(message, level)

    def _schedule(self, delay: float, event: Event) -> None:
        handle: Optional[TimerHandle] = None

        def fire() -> None:
            self._timers.discard(handle)
            self.post(event)

        handle = self._scheduler.call_later(delay, fire)
        self._timers.add(handle)

    def _cancel_timers(self) -> None:
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Controller task failed: {task.exception()}")

    def _start_recognizer(self) -> None:
        if self._recognizer is None:
            self.post(RecognizerStartFailed(message="no recognizer"))
            return
        try:
            self._recognizer.start()
        except RecognizerBusy:
            logger.warning("Recognizer already running")
            self.post(RecognizerStartFailed(already_running=True))
        except Exception as e:
            logger.error(f"Failed to start recognition: {e}")
            self.post(RecognizerStartFailed(message=str(e)))

    def _request_microphone(self) -> None:
        if self._microphone is None:
            self.post(MicrophoneDenied(HardwareUnavailable("No microphone available")))
            return
        self._spawn(self._await_microphone(self._microphone))

    def _speak(self, effect: Speak) -> None:
        if self._synthesizer is None:
            self.post(SpeechFailed(effect.utterance_id, "no synthesizer"))
            return
        voice = select_voice(self._synthesizer.voices(), effect.language)
        try:
            self._synthesizer.speak(
                effect.text,
                voice,
                effect.utterance_id,
                rate=self._cfg.speech_rate,
                pitch=self._cfg.speech_pitch,
                volume=self._cfg.speech_volume,
            )
        except Exception as e:
            logger.error(f"Speech synthesis failed: {e}")
            self.post(SpeechFailed(effect.utterance_id, str(e)))

    # ── Async effects: each posts exactly one result event ─────────────

    async def _probe_server(self) -> None:
        try:
            health = await self._transport.check_health()
        except RevVoiceError as e:
            self.post(ServerProbed(error=e))
            return
        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            self.post(ServerProbed(error=UnexpectedResponse(str(e))))
            return
        logger.info(f"Server health: {health.get('status', 'unknown')}")
        self.post(ServerProbed())

    async def _start_session(self, session_id: Optional[str]) -> None:
        try:
            started = await self._transport.start_session(session_id)
        except RevVoiceError as e:
            self.post(SessionFailed(e))
            return
        except Exception as e:
            logger.error(f"Session start failed: {e}", exc_info=True)
            self.post(SessionFailed(UnexpectedResponse(str(e))))
            return
        self.post(SessionStarted(started.session_id, started.model, started.is_fallback))

    async def _await_microphone(self, microphone: Microphone) -> None:
        try:
            await microphone.request_access()
        except RevVoiceError as e:
            self.post(MicrophoneDenied(e))
            return
        except Exception as e:
            logger.error(f"Microphone request failed: {e}", exc_info=True)
            self.post(MicrophoneDenied(HardwareUnavailable(str(e))))
            return
        self.post(MicrophoneGranted())

    async def _submit(self, turn: int, text: str) -> None:
        try:
            reply = await self._transport.send_message(text, "voice")
        except RevVoiceError as e:
            self.post(ReplyFailed(turn, e))
            return
        except Exception as e:
            logger.error(f"Message send failed: {e}", exc_info=True)
            self.post(ReplyFailed(turn, UnexpectedResponse(str(e))))
            return
        self.post(ReplyReceived(turn, reply.response, reply.model, reply.is_fallback))
