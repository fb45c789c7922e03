import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from narrator.core.config import VoiceSettings
from narrator.interfaces.backend import ABCSpeechBackend
from narrator.orchestrator.events import Event, SegmentEvent
from narrator.orchestrator.router import EventRouter
from narrator.text.chunker import Segment

logger = logging.getLogger(__name__)


@dataclass
class BackendState:
    """Runtime handle owned by exactly one adapter."""
    ready: bool = False
    loading: bool = False
    segment: Optional[Segment] = None
    settings: Optional[VoiceSettings] = None
    generation: int = 0
    paused: bool = False
    # Model playback only: decoded buffer and clock anchors
    pcm: Optional[bytes] = None
    sample_rate: int = 0
    duration: float = 0.0
    start_time: Optional[float] = None
    paused_offset: float = 0.0

    def reset_playback(self):
        self.segment = None
        self.settings = None
        self.paused = False
        self.pcm = None
        self.sample_rate = 0
        self.duration = 0.0
        self.start_time = None
        self.paused_offset = 0.0


class BaseSpeechBackend(ABCSpeechBackend):
    """Event emission and task bookkeeping shared by the concrete backends."""

    def __init__(self, router: EventRouter):
        self.router = router
        self.state = BackendState()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        return self.state.ready

    @property
    def is_loading(self) -> bool:
        return self.state.loading

    @property
    def is_speaking(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _emit(self, event: Event, segment: Segment, generation: int, **fields) -> None:
        payload = SegmentEvent(backend=self.name, generation=generation, index=segment.index, **fields)
        await self.router.dispatch(event, payload)

    async def _fail(self, segment: Segment, generation: int, reason: str) -> None:
        logger.error(f"{self.name} backend error on segment {segment.index}: {reason}",
                     extra={"backend": self.name})
        self._release_task()
        await self._emit(Event.SEGMENT_ERROR, segment, generation, reason=reason)

    def _release_task(self) -> None:
        """Called by a playback task that is about to report its final event."""
        if self._task is asyncio.current_task():
            self._task = None

    async def _cancel_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
