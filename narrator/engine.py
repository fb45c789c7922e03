import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from typing import Callable, Dict, List, Optional

from narrator.backends.factory import create_backend
from narrator.core.config import BackendKind, Config, VoiceSettings, parse_engine
from narrator.interfaces.backend import ABCSpeechBackend
from narrator.orchestrator.controller import PlaybackController
from narrator.orchestrator.router import EventRouter
from narrator.orchestrator.state import State
from narrator.text.chunker import Chunker

logger = logging.getLogger(__name__)

BackendFactory = Callable[..., ABCSpeechBackend]
StateListener = Callable[["UnifiedPlaybackState"], None]


@dataclass(frozen=True)
class UnifiedPlaybackState:
    """The only view of playback that callers get, whichever backend is active."""
    is_playing: bool = False
    is_loading: bool = False
    progress: float = 0.0
    error: Optional[str] = None
    is_ready: bool = False
    current_segment_text: Optional[str] = None

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


class SpeechEngine:
    """
    Facade over the playback controller and the two speech backends.

    Only one backend is ever attached to the controller. Switching stops
    playback first, and a backend that fails to load never replaces the
    one already in use.
    """

    def __init__(self, config: Optional[Config] = None, backend_factory: BackendFactory = create_backend):
        self.config = config or Config()
        self.router = EventRouter()
        self.controller = PlaybackController(
            self.router,
            Chunker(self.config.chunker.max_length),
            self.config.voice,
        )
        self._backend_factory = backend_factory
        self._backends: Dict[BackendKind, ABCSpeechBackend] = {}
        self._backend_models: Dict[BackendKind, Optional[str]] = {}
        self._listeners: List[StateListener] = []
        self.active_kind = self.config.engine
        self.model_id = self.config.model.model_id
        # Set while switch_backend() waits for a backend to load
        self._switching: Optional[asyncio.Event] = None

        self.controller.on_change(self._publish)
        self.controller.attach(self._backend_for(self.active_kind, self.model_id), self._hint(self.active_kind))

    @property
    def backend(self) -> ABCSpeechBackend:
        return self.controller.backend

    @property
    def state(self) -> UnifiedPlaybackState:
        controller = self.controller
        segment = controller.current_segment if controller.state in (State.PLAYING, State.PAUSED) else None
        return UnifiedPlaybackState(
            is_playing=controller.state == State.PLAYING,
            is_loading=controller.state == State.LOADING or self.backend.is_loading or self._switching is not None,
            progress=controller.progress,
            error=controller.error,
            is_ready=self.backend.is_ready,
            current_segment_text=segment.text if segment else None,
        )

    @property
    def settings(self) -> VoiceSettings:
        return self.controller.settings

    def on_state_change(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _publish(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    def _hint(self, kind: BackendKind) -> Optional[str]:
        return self.model_id if kind is BackendKind.MODEL else self.config.ondevice.voice

    def _backend_for(self, kind: BackendKind, model_id: Optional[str]) -> ABCSpeechBackend:
        backend = self._backends.get(kind)
        if backend is None:
            backend = self._backend_factory(kind, self.config, self.router, model_id=model_id)
            self._backends[kind] = backend
            self._backend_models[kind] = model_id if kind is BackendKind.MODEL else None
        return backend

    async def start(self) -> UnifiedPlaybackState:
        """Prepare the active backend ahead of the first speak()."""
        readiness = await self.backend.prepare(self._hint(self.active_kind))
        if not readiness.ok:
            self.controller.error = readiness.reason
        self._publish()
        return self.state

    async def speak(self, text: str, speed: Optional[float] = None, volume: Optional[float] = None,
                    pitch: Optional[float] = None) -> None:
        settings = self._merge_settings(speed, volume, pitch)
        await self._wait_for_switch()
        await self.controller.speak(text, settings)

    async def pause(self) -> None:
        await self.controller.pause()

    async def resume(self) -> None:
        await self._wait_for_switch()
        await self.controller.resume()

    async def stop(self) -> None:
        await self.controller.stop()

    def update_settings(self, speed: Optional[float] = None, volume: Optional[float] = None,
                        pitch: Optional[float] = None) -> VoiceSettings:
        """Store new voice settings; they apply from the next segment on."""
        self.controller.settings = self._merge_settings(speed, volume, pitch)
        return self.controller.settings

    def _merge_settings(self, speed, volume, pitch) -> VoiceSettings:
        changes = {name: value for name, value in
                   (("speed", speed), ("volume", volume), ("pitch", pitch)) if value is not None}
        return replace(self.controller.settings, **changes).clamped()

    async def switch_backend(self, kind, model_id: Optional[str] = None) -> bool:
        """
        Make `kind` the active backend, stopping current playback first.

        Returns:
            True when the new backend is active. On a failed load the
            previous backend stays active and the reason is in state.error.
        """
        kind = parse_engine(kind)
        await self._wait_for_switch()
        model_id = model_id or self.model_id
        if kind == self.active_kind and (kind is not BackendKind.MODEL or model_id == self.model_id):
            return True

        switching = self._switching = asyncio.Event()
        try:
            if self.controller.state != State.IDLE or self.controller.session is not None:
                logger.info(f"Stopping playback before switching to {kind.value}")
            await self.controller.stop()

            hint = model_id if kind is BackendKind.MODEL else self.config.ondevice.voice
            previous = self._backends.get(kind)
            candidate = previous
            if candidate is None or (kind is BackendKind.MODEL and self._backend_models.get(kind) != model_id):
                # A different model needs its own adapter
                candidate = self._backend_factory(kind, self.config, self.router, model_id=model_id)

            readiness = await candidate.prepare(hint)
            if not readiness.ok:
                logger.error(f"Could not switch to {kind.value}: {readiness.reason}")
                if candidate is not previous:
                    await candidate.close()
                self.controller.error = readiness.reason
                return False

            # Nothing may still be sounding on the old backend when the new one takes over
            await self.controller.stop()
            if previous is not None and candidate is not previous:
                await previous.close()
            self._backends[kind] = candidate
            self._backend_models[kind] = model_id if kind is BackendKind.MODEL else None
            self.active_kind = kind
            if kind is BackendKind.MODEL:
                self.model_id = model_id
            self.controller.attach(candidate, hint)
            return True
        finally:
            self._switching = None
            switching.set()
            self._publish()

    async def _wait_for_switch(self) -> None:
        while self._switching is not None:
            logger.info("Waiting for the backend switch to finish")
            await self._switching.wait()

    async def close(self) -> None:
        await self.controller.stop()
        for backend in self._backends.values():
            await backend.close()
        self._backends.clear()
