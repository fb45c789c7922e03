import asyncio
import logging
import time
from typing import Callable, Optional

import torch

from narrator.audio.dsp import apply_volume, coerce_samples, time_stretch, to_pcm16
from narrator.backends.base import BaseSpeechBackend
from narrator.backends.catalog import get_model
from narrator.core.config import AudioConfig, ModelConfig, VoiceSettings
from narrator.core.exceptions import FormatUnsupported, LoadFailed, SynthesisError
from narrator.core.metrics import metrics
from narrator.interfaces.audio import ABCAudioOutput
from narrator.interfaces.backend import Readiness
from narrator.orchestrator.events import Event
from narrator.orchestrator.router import EventRouter
from narrator.text.chunker import Segment

# Try to import transformers, handle missing dependency gracefully
try:
    from transformers import pipeline
except ImportError:
    pipeline = None

logger = logging.getLogger(__name__)

PCM_SAMPLE_WIDTH = 2


class TransformersBackend(BaseSpeechBackend):
    """
    Speech synthesis with a downloadable Hugging Face text-to-speech model.

    Each segment is synthesized into a fixed-length buffer, so playback
    position is known: progress is reported as elapsed/duration, sampled on
    a timer against a monotonic clock. Pause records the offset in seconds
    and resume restarts the buffer from that offset.
    """

    name = "model"
    reports_progress = True

    def __init__(
        self,
        router: EventRouter,
        config: ModelConfig,
        audio_config: Optional[AudioConfig] = None,
        output: Optional[ABCAudioOutput] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(router)
        self.config = config
        self.audio_config = audio_config or AudioConfig()
        if output is None:
            from narrator.audio.playback import PyAudioOutput
            output = PyAudioOutput(self.audio_config)
        self.output = output
        self._clock = clock
        self._synthesizer = None
        self._load_task: Optional[asyncio.Task] = None
        self.model_id: Optional[str] = None

    async def prepare(self, hint: Optional[str] = None) -> Readiness:
        """
        Download and initialize the model. Awaiting callers share one load; a
        caller that gives up waiting leaves it running, only close() cancels it.
        """
        model_id = hint or self.config.model_id
        if self.state.ready and model_id == self.model_id:
            return Readiness.ready()

        if self._load_task is None:
            self._load_task = asyncio.create_task(self._load(model_id))
        return await asyncio.shield(self._load_task)

    async def _load(self, model_id: str) -> Readiness:
        if pipeline is None:
            error = LoadFailed("transformers library not found. Please install it with 'pip install transformers'.")
            logger.error(str(error))
            self._load_task = None
            return Readiness.failed(str(error))

        if get_model(model_id) is None:
            logger.warning(f"Model {model_id} is not in the catalog, trying to load it anyway")

        self.state.loading = True
        self.state.ready = False
        logger.info(f"Loading speech model {model_id}...")
        try:
            self._synthesizer = await asyncio.wait_for(
                asyncio.to_thread(self._build_pipeline, model_id),
                timeout=self.config.load_timeout
            )
        except asyncio.TimeoutError:
            error = LoadFailed(f"Loading {model_id} timed out after {self.config.load_timeout:.0f}s")
            logger.error(str(error))
            return Readiness.failed(str(error))
        except Exception as e:
            error = LoadFailed(f"Error loading speech model {model_id}: {e}")
            logger.error(str(error))
            return Readiness.failed(str(error))
        finally:
            self.state.loading = False
            self._load_task = None

        self.model_id = model_id
        self.state.ready = True
        logger.info(f"Speech model {model_id} loaded")
        return Readiness.ready()

    def _resolve_device(self) -> str:
        if self.config.device != "auto":
            return self.config.device
        return "cuda" if torch.cuda.is_available() else "cpu"

    def _build_pipeline(self, model_id: str):
        device = self._resolve_device()
        try:
            return pipeline("text-to-speech", model=model_id, device=device)
        except Exception as e:
            if device == "cpu":
                raise
            logger.warning(f"Could not load {model_id} on {device} ({e}), falling back to CPU")
            return pipeline("text-to-speech", model=model_id, device="cpu")

    async def speak_segment(self, segment: Segment, settings: VoiceSettings, generation: int) -> None:
        await self._cancel_task()
        self.state.reset_playback()
        self.state.segment = segment
        self.state.settings = settings
        self.state.generation = generation

        if not self.state.ready:
            await self._fail(segment, generation, "Speech model is not ready")
            return

        self._task = asyncio.create_task(self._render(segment, settings, generation))

    async def _render(self, segment: Segment, settings: VoiceSettings, generation: int) -> None:
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._synthesizer, segment.text),
                timeout=self.config.synthesis_timeout
            )
            samples = coerce_samples(result.get("audio") if isinstance(result, dict) else None)
            sample_rate = int(result.get("sampling_rate") or self.config.default_sample_rate)
        except asyncio.CancelledError:
            raise
        except FormatUnsupported as e:
            await self._fail(segment, generation, f"Unsupported audio format: {e}")
            return
        except asyncio.TimeoutError:
            error = SynthesisError(f"Synthesis timed out after {self.config.synthesis_timeout:.0f}s")
            await self._fail(segment, generation, str(error))
            return
        except Exception as e:
            await self._fail(segment, generation, str(SynthesisError(f"Error in speech synthesis: {e}")))
            return

        metrics.record_synthesis(self.name, (time.perf_counter() - started) * 1000)

        if settings.pitch != 1.0:
            logger.debug("Pitch is not adjustable for model voices, ignoring it")
        samples = apply_volume(time_stretch(samples, settings.speed), settings.volume)

        self.state.pcm = to_pcm16(samples)
        self.state.sample_rate = sample_rate
        self.state.duration = len(samples) / sample_rate
        self.state.paused_offset = 0.0

        await self._emit(Event.SEGMENT_STARTED, segment, generation)
        await self._play(segment, generation, 0.0)

    async def _play(self, segment: Segment, generation: int, offset: float) -> None:
        try:
            await self.output.open(self.state.sample_rate)
        except Exception as e:
            await self._fail(segment, generation, str(SynthesisError(f"Audio output failed: {e}")))
            return

        pcm = self.state.pcm
        block = self.audio_config.frames_per_buffer * PCM_SAMPLE_WIDTH
        position = int(offset * self.state.sample_rate) * PCM_SAMPLE_WIDTH
        self.state.start_time = self._clock() - offset

        ticker = asyncio.create_task(self._report_progress(segment, generation))
        try:
            while position < len(pcm):
                await self.output.play_frame(pcm[position:position + block])
                position += block
        except Exception as e:
            error = SynthesisError(f"Audio output failed: {e}")
        else:
            error = None
        finally:
            # No progress sample may follow the segment's last event
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass

        if error is not None:
            await self._fail(segment, generation, str(error))
            return

        self._release_task()
        duration = self.state.duration
        self.state.reset_playback()
        await self._emit(Event.SEGMENT_PROGRESS, segment, generation, elapsed=duration, duration=duration)
        await self._emit(Event.SEGMENT_ENDED, segment, generation)

    def _elapsed(self) -> float:
        if self.state.start_time is None:
            return self.state.paused_offset
        return min(self._clock() - self.state.start_time, self.state.duration)

    async def _report_progress(self, segment: Segment, generation: int) -> None:
        while True:
            await asyncio.sleep(self.config.progress_interval)
            await self._emit(
                Event.SEGMENT_PROGRESS, segment, generation,
                elapsed=self._elapsed(), duration=self.state.duration
            )

    async def pause(self) -> None:
        if not self.is_speaking or self.state.paused:
            return
        # Still synthesizing: nothing has played yet, resume starts over
        offset = self._elapsed() if self.state.pcm is not None else 0.0
        await self._cancel_task()
        await self.output.stop()
        self.state.paused = True
        self.state.paused_offset = offset
        self.state.start_time = None
        logger.info(f"TransformersBackend paused at {offset:.2f}s")

    async def resume(self) -> None:
        if not self.state.paused or self.state.segment is None:
            return
        self.state.paused = False
        segment, generation = self.state.segment, self.state.generation
        if self.state.pcm is None:
            self._task = asyncio.create_task(self._render(segment, self.state.settings, generation))
        else:
            self._task = asyncio.create_task(self._play(segment, generation, self.state.paused_offset))
        logger.info(f"TransformersBackend resumed at {self.state.paused_offset:.2f}s")

    async def stop(self) -> None:
        await self._cancel_task()
        await self.output.stop()
        self.state.reset_playback()

    async def close(self) -> None:
        if self._load_task is not None:
            self._load_task.cancel()
        await self.stop()
        await self.output.close()
