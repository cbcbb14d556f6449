import asyncio
from typing import Callable, List, Optional, Sequence

import pytest

from revvoice.core.models import Turn


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """CompletionBackend double: scripted replies, failures and an optional gate."""

    def __init__(self, replies: Optional[Sequence[str]] = None) -> None:
        self.replies: List[str] = list(replies or [])
        self.default_reply = "Sure, happy to help with that."
        self.unusable_models: set = set()
        self.prepared: List[str] = []
        self.calls: List[tuple] = []
        self.error: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None
        self.delay = 0.0
        self.active = 0
        self.max_active = 0

    def prepare(self, model: str) -> None:
        self.prepared.append(model)
        if model in self.unusable_models:
            raise RuntimeError(f"model {model} unavailable")

    async def complete(self, model: str, history: Sequence[Turn]) -> str:
        self.calls.append((model, list(history)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.replies.pop(0) if self.replies else self.default_reply
        finally:
            self.active -= 1


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Collects timers; tests fire them explicitly."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def fire_all(self) -> int:
        due = self.pending
        self.timers = []
        for timer in due:
            timer.callback()
        return len(due)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def english() -> Callable[[str], str]:
    return lambda text: "en"
