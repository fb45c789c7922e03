import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from narrator.backends.base import BaseSpeechBackend
from narrator.core.config import OnDeviceConfig, VoiceSettings
from narrator.core.exceptions import SynthesisError, UnsupportedPlatform
from narrator.interfaces.backend import Readiness
from narrator.orchestrator.events import Event
from narrator.orchestrator.router import EventRouter
from narrator.text.chunker import Segment

# Try to import pyttsx3, handle missing dependency gracefully
try:
    import pyttsx3
except ImportError:
    pyttsx3 = None

logger = logging.getLogger(__name__)


class Pyttsx3Backend(BaseSpeechBackend):
    """
    Host speech synthesis through pyttsx3 (SAPI5, NSSpeechSynthesizer, eSpeak).

    The platform only reports when an utterance starts and finishes, so this
    backend emits started/ended and no intra-segment progress. pyttsx3 has no
    pause of its own: pause() interrupts the utterance and resume() speaks
    the segment again from its first word.
    """

    name = "ondevice"
    reports_progress = False

    def __init__(self, router: EventRouter, config: OnDeviceConfig):
        super().__init__(router)
        self.config = config
        self._engine = None
        # pyttsx3 engines are not thread-safe; every call goes through one worker,
        # except stop() in _interrupt(), which must reach a worker stuck in runAndWait()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pyttsx3")

    async def _run(self, fn: Callable[..., Any], *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    async def prepare(self, hint: Optional[str] = None) -> Readiness:
        if self.state.ready:
            return Readiness.ready()
        if self.state.loading:
            return Readiness.loading()

        if pyttsx3 is None:
            error = UnsupportedPlatform("pyttsx3 library not found. Please install it with 'pip install pyttsx3'.")
            logger.error(str(error))
            return Readiness.failed(str(error))

        self.state.loading = True
        try:
            self._engine = await self._run(self._init_engine, hint or self.config.voice)
        except Exception as e:
            # Drivers raise RuntimeError, OSError or ImportError depending on the host
            error = UnsupportedPlatform(f"Speech synthesis is not supported on this host: {e}")
            logger.error(str(error))
            return Readiness.failed(str(error))
        finally:
            self.state.loading = False

        self.state.ready = True
        logger.info(f"Pyttsx3Backend ready (driver: {self.config.driver or 'default'})")
        return Readiness.ready()

    def _init_engine(self, hint: Optional[str]):
        engine = pyttsx3.init(driverName=self.config.driver)
        if hint:
            voice = _find_voice(engine.getProperty("voices") or [], hint)
            if voice is not None:
                engine.setProperty("voice", voice.id)
                logger.info(f"Selected voice '{voice.name}' for hint '{hint}'")
            else:
                logger.warning(f"No host voice matches '{hint}', keeping the default voice")
        return engine

    def _say(self, text: str, settings: VoiceSettings) -> None:
        self._engine.setProperty("rate", int(self.config.base_rate * settings.speed))
        self._engine.setProperty("volume", settings.volume)
        self._engine.say(text)
        self._engine.runAndWait()

    async def speak_segment(self, segment: Segment, settings: VoiceSettings, generation: int) -> None:
        await self._cancel_task()
        self.state.segment = segment
        self.state.settings = settings
        self.state.generation = generation
        self.state.paused = False

        if not self.state.ready:
            await self._fail(segment, generation, "On-device speech is not ready")
            return

        if settings.pitch != 1.0:
            logger.debug("Pitch is not adjustable through pyttsx3, ignoring it")
        self._task = asyncio.create_task(self._utter(segment, settings, generation))

    async def _utter(self, segment: Segment, settings: VoiceSettings, generation: int) -> None:
        await self._emit(Event.SEGMENT_STARTED, segment, generation)
        try:
            await self._run(self._say, segment.text, settings)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._fail(segment, generation, str(SynthesisError(f"Speech synthesis failed: {e}")))
            return

        self._release_task()
        self.state.segment = None
        await self._emit(Event.SEGMENT_ENDED, segment, generation)

    def _interrupt(self) -> None:
        if self._engine is not None:
            self._engine.stop()

    async def pause(self) -> None:
        if not self.is_speaking or self.state.paused:
            return
        self.state.paused = True
        self._interrupt()
        await self._cancel_task()
        logger.info("Pyttsx3Backend paused")

    async def resume(self) -> None:
        if not self.state.paused or self.state.segment is None:
            return
        self.state.paused = False
        self._task = asyncio.create_task(
            self._utter(self.state.segment, self.state.settings, self.state.generation)
        )
        logger.info("Pyttsx3Backend resumed")

    async def stop(self) -> None:
        if self.is_speaking:
            self._interrupt()
        await self._cancel_task()
        self.state.reset_playback()

    async def close(self) -> None:
        await self.stop()
        self._executor.shutdown(wait=False)


def _find_voice(voices, hint: str):
    """Match a hint against voice id, name or language, e.g. "es" or "Zira"."""
    needle = hint.lower()
    for voice in voices:
        languages = [_language_code(lang) for lang in (getattr(voice, "languages", None) or [])]
        if any(lang.startswith(needle) for lang in languages):
            return voice
    for voice in voices:
        if needle in (voice.name or "").lower() or needle in (voice.id or "").lower():
            return voice
    return None


def _language_code(lang) -> str:
    # eSpeak reports languages as bytes with a leading priority byte, e.g. b"\x05en"
    if isinstance(lang, bytes):
        lang = lang.decode("utf-8", errors="ignore")
    return "".join(ch for ch in str(lang) if ch.isprintable()).strip().lower()
