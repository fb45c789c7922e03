import asyncio
import logging
from typing import Callable, Optional

from narrator.core.config import VoiceSettings
from narrator.core.exceptions import EmptyInput
from narrator.core.logging import set_session_id
from narrator.core.metrics import metrics
from narrator.interfaces.backend import ABCSpeechBackend
from narrator.orchestrator.events import Event, SegmentEvent
from narrator.orchestrator.router import EventRouter
from narrator.orchestrator.session import PlaybackSession, SessionManager
from narrator.orchestrator.state import State
from narrator.text.chunker import Chunker, Segment

logger = logging.getLogger(__name__)

class PlaybackController:
    """
    State machine that feeds a document to a speech backend one segment at
    a time.

    Progress is whole-document and character based: each finished segment
    adds its length to the spoken total. Backends that report time within a
    segment move progress inside that segment's share, never past it, so
    the value never decreases and only reaches 100 when the last segment ends.
    """

    def __init__(self, router: EventRouter, chunker: Optional[Chunker] = None,
                 settings: Optional[VoiceSettings] = None):
        self.state = State.IDLE
        self.router = router
        self.chunker = chunker or Chunker()
        self.settings = (settings or VoiceSettings()).clamped()
        self.session_manager = SessionManager()
        self.backend: Optional[ABCSpeechBackend] = None
        self.backend_hint: Optional[str] = None
        self.progress = 0.0
        self.error: Optional[str] = None
        self._last_text: Optional[str] = None
        self._prepare_task: Optional[asyncio.Task] = None
        self._on_change: Optional[Callable[[], None]] = None

        router.register(Event.SEGMENT_STARTED, self._on_started)
        router.register(Event.SEGMENT_PROGRESS, self._on_progress)
        router.register(Event.SEGMENT_ENDED, self._on_ended)
        router.register(Event.SEGMENT_ERROR, self._on_error)

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self.session_manager.current_session

    @property
    def current_segment(self) -> Optional[Segment]:
        session = self.session
        return session.current_segment if session else None

    def on_change(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked after every state or progress change."""
        self._on_change = callback

    def _notify(self):
        if self._on_change:
            self._on_change()

    def attach(self, backend: ABCSpeechBackend, hint: Optional[str] = None) -> None:
        """Route subsequent calls to `backend`. Callers stop playback first."""
        self.backend = backend
        self.backend_hint = hint
        granularity = "time" if backend.reports_progress else "segment"
        logger.info(f"Active backend: {backend.name} ({granularity} progress)")

    async def transition(self, new_state: State):
        if self.state == new_state:
            return

        old_state = self.state
        self.state = new_state
        logger.info(f"Playback transition: {old_state.name} -> {new_state.name}",
                    extra={"old_state": old_state.name, "new_state": new_state.name})
        self._notify()

    async def speak(self, text: str, settings: Optional[VoiceSettings] = None) -> None:
        """
        Start reading `text` from the beginning.
        Any previous session is discarded; errors end up in `self.error`.
        """
        if settings is not None:
            self.settings = settings.clamped()

        await self._halt()
        self.session_manager.clear()
        self.error = None
        self.progress = 0.0
        self._last_text = text

        try:
            segments = self.chunker.split(text)
        except EmptyInput as e:
            await self._fail(str(e))
            return

        if self.backend is None:
            await self._fail("No speech backend selected")
            return

        session = self.session_manager.start_new_session(
            text, segments, self.settings.speed, self.backend.name
        )
        set_session_id(session.session_id)
        logger.info(f"Speaking {len(segments)} segments ({session.total_chars} chars) on {self.backend.name}",
                    extra={"segments": len(segments), "backend": self.backend.name})

        if not self.backend.is_ready:
            await self.transition(State.LOADING)
            self._prepare_task = asyncio.create_task(self._prepare_then_play(session.generation))
            return

        await self._submit(session, 0)

    async def _prepare_then_play(self, generation: int, index: int = 0) -> None:
        readiness = await self.backend.prepare(self.backend_hint)
        if not self.session_manager.is_current(generation):
            return
        self._prepare_task = None
        if not readiness.ok:
            await self._fail(readiness.reason or "Speech backend is not ready")
            return
        await self._submit(self.session, index)

    async def _submit(self, session: PlaybackSession, index: int) -> None:
        session.current_index = index
        session.awaiting_submit = False
        await self.transition(State.PLAYING)
        self._notify()
        await self.backend.speak_segment(session.segments[index], self.settings, session.generation)

    async def pause(self) -> None:
        if self.state != State.PLAYING:
            return
        await self.backend.pause()
        await self.transition(State.PAUSED)

    async def resume(self) -> None:
        session = self.session
        if self.state == State.PAUSED and session is not None:
            if session.awaiting_submit:
                await self._submit(session, session.current_index)
                return
            await self.backend.resume()
            await self.transition(State.PLAYING)
            return

        if self.state == State.ERROR and session is not None and not session.finished:
            # Retry the segment that failed, keeping what was already spoken
            logger.info(f"Retrying segment {session.current_index}")
            self.error = None
            if not self.backend.is_ready:
                await self.transition(State.LOADING)
                self._prepare_task = asyncio.create_task(
                    self._prepare_then_play(session.generation, session.current_index)
                )
                return
            await self._submit(session, session.current_index)
            return

        if self.state in (State.PLAYING, State.LOADING):
            return

        if self._last_text is None:
            logger.warning("Nothing to resume")
            return
        await self.speak(self._last_text)

    async def stop(self) -> None:
        await self._halt()
        self.session_manager.clear()
        self.progress = 0.0
        self.error = None
        await self.transition(State.IDLE)
        self._notify()

    async def _halt(self) -> None:
        task, self._prepare_task = self._prepare_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self.backend is not None:
            await self.backend.stop()

    async def _fail(self, message: str) -> None:
        logger.error(f"Playback error: {message}")
        self.error = message
        await self.transition(State.ERROR)
        self._notify()

    def _accept(self, event: SegmentEvent) -> Optional[PlaybackSession]:
        """Return the session an event belongs to, or None for stale events."""
        session = self.session
        if (
            session is None
            or self.backend is None
            or event.backend != self.backend.name
            or not self.session_manager.is_current(event.generation)
            or event.index != session.current_index
        ):
            logger.debug(f"Dropping stale event for segment {event.index} (generation {event.generation})")
            return None
        return session

    async def _on_started(self, event: SegmentEvent):
        if self._accept(event) is None:
            return
        if self.state in (State.LOADING, State.PLAYING):
            await self.transition(State.PLAYING)

    async def _on_progress(self, event: SegmentEvent):
        session = self._accept(event)
        if session is None or self.state != State.PLAYING or event.duration <= 0:
            return
        fraction = min(1.0, event.elapsed / event.duration)
        segment = session.segments[event.index]
        value = (session.spoken_chars + fraction * segment.length) / session.total_chars * 100
        if self.progress < value < 100:
            self.progress = value
            self._notify()

    async def _on_ended(self, event: SegmentEvent):
        session = self._accept(event)
        if session is None:
            return

        session.mark_spoken(event.index)
        metrics.count_segment(event.backend)

        if session.finished:
            self.progress = 100.0
            logger.info("Finished reading document")
            await self.transition(State.IDLE)
            self._notify()
            return

        self.progress = max(self.progress, session.character_progress())
        if self.state == State.PLAYING:
            await self._submit(session, session.current_index)
        else:
            # Paused right as the segment finished; resume() picks it up
            session.awaiting_submit = True
            self._notify()

    async def _on_error(self, event: SegmentEvent):
        if self._accept(event) is None:
            return
        await self._fail(event.reason or "Speech synthesis failed")
