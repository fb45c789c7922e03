import asyncio
from typing import List, Optional

import pytest

from narrator.interfaces.audio import ABCAudioOutput
from narrator.interfaces.backend import ABCSpeechBackend, Readiness
from narrator.orchestrator.events import Event, SegmentEvent
from narrator.orchestrator.router import EventRouter


class FakeBackend(ABCSpeechBackend):
    """Backend double: records calls, events are fired by the test."""

    def __init__(self, router: EventRouter, name: str = "ondevice", ready: bool = True,
                 fail_reason: Optional[str] = None):
        self.router = router
        self.name = name
        self._ready = ready
        self._loading = False
        self.fail_reason = fail_reason
        self.prepare_gate: Optional[asyncio.Event] = None
        self.spoken = []  # (segment, settings, generation)
        self.calls: List[str] = []

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def is_loading(self) -> bool:
        return self._loading

    async def prepare(self, hint=None) -> Readiness:
        self.calls.append("prepare")
        self.hint = hint
        if self.prepare_gate is not None:
            self._loading = True
            try:
                await self.prepare_gate.wait()
            finally:
                self._loading = False
        if self.fail_reason:
            return Readiness.failed(self.fail_reason)
        self._ready = True
        return Readiness.ready()

    async def speak_segment(self, segment, settings, generation) -> None:
        self.calls.append("speak")
        self.spoken.append((segment, settings, generation))

    async def pause(self) -> None:
        self.calls.append("pause")

    async def resume(self) -> None:
        self.calls.append("resume")

    async def stop(self) -> None:
        self.calls.append("stop")

    async def close(self) -> None:
        self.calls.append("close")

    async def emit(self, event: Event, generation: Optional[int] = None, index: Optional[int] = None, **fields):
        segment, _, last_generation = self.spoken[-1]
        await self.router.dispatch(event, SegmentEvent(
            backend=self.name,
            generation=last_generation if generation is None else generation,
            index=segment.index if index is None else index,
            **fields
        ))

    async def finish(self):
        await self.emit(Event.SEGMENT_ENDED)


class FakeOutput(ABCAudioOutput):
    def __init__(self):
        self.frames: List[bytes] = []
        self.opened_rates: List[int] = []
        self.stopped = 0
        self.closed = False
        self.gate: Optional[asyncio.Event] = None

    async def open(self, sample_rate: int) -> None:
        self.opened_rates.append(sample_rate)

    async def play_frame(self, frame: bytes) -> None:
        if self.gate is not None:
            await self.gate.wait()
        self.frames.append(frame)

    async def stop(self) -> None:
        self.stopped += 1

    async def close(self) -> None:
        self.closed = True


class EventRecorder:
    """Registers on every event and keeps what it saw."""

    def __init__(self, router: EventRouter):
        self.events = []
        self.finished = asyncio.Event()
        for event in Event:
            router.register(event, self._handler(event))

    def _handler(self, event: Event):
        async def handle(payload: SegmentEvent):
            self.events.append((event, payload))
            if event in (Event.SEGMENT_ENDED, Event.SEGMENT_ERROR):
                self.finished.set()
        return handle

    def kinds(self) -> List[Event]:
        return [event for event, _ in self.events if event is not Event.SEGMENT_PROGRESS]

    def payloads(self, kind: Event) -> List[SegmentEvent]:
        return [payload for event, payload in self.events if event is kind]

    async def wait_for(self, kind: Event, timeout: float = 2.0):
        async def _poll():
            while not self.payloads(kind):
                await asyncio.sleep(0.005)
        await asyncio.wait_for(_poll(), timeout)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def settle(rounds: int = 20):
    """Let pending tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def router():
    return EventRouter()
