import asyncio
import logging
import threading
import pyaudio
from typing import Optional
from narrator.interfaces.audio import ABCAudioOutput
from narrator.core.config import AudioConfig
from narrator.core.exceptions import UnsupportedPlatform

logger = logging.getLogger(__name__)

class PyAudioOutput(ABCAudioOutput):
    """
    Implementation of ABCAudioOutput using PyAudio for speaker playback.
    Frames are 16-bit mono PCM; blocking writes run in a worker thread so
    the event loop keeps servicing progress and control calls.
    """
    def __init__(self, config: AudioConfig):
        self.config = config
        self.pa: Optional[pyaudio.PyAudio] = None
        self.stream: Optional[pyaudio.Stream] = None
        self.sample_rate: Optional[int] = None
        # Held across write() and close() so PortAudio never sees both at once
        self._lock = threading.Lock()

    def _open_stream(self, sample_rate: int) -> None:
        if self.pa is None:
            self.pa = pyaudio.PyAudio()

        idx = self.config.output_device_index if self.config.output_device_index != -1 else None
        with self._lock:
            self.stream = self.pa.open(
                format=pyaudio.paInt16,
                channels=1,
                rate=sample_rate,
                output=True,
                output_device_index=idx,
                frames_per_buffer=self.config.frames_per_buffer,
            )
            self.sample_rate = sample_rate
        logger.info(f"PyAudioOutput opened at {sample_rate}Hz")

    def _write(self, frame: bytes) -> None:
        with self._lock:
            if self.stream is not None:
                self.stream.write(frame)

    def _close_stream(self) -> None:
        with self._lock:
            if self.stream is None:
                return
            try:
                self.stream.stop_stream()
                self.stream.close()
            except OSError as e:
                logger.warning(f"Error closing output stream: {e}")
            self.stream = None

    async def open(self, sample_rate: int) -> None:
        if self.stream and self.sample_rate == sample_rate:
            return
        await self.stop()
        try:
            await asyncio.to_thread(self._open_stream, sample_rate)
        except OSError as e:
            raise UnsupportedPlatform(f"No audio output device available: {e}") from e

    async def play_frame(self, frame: bytes) -> None:
        if not self.stream:
            return
        await asyncio.to_thread(self._write, frame)

    async def stop(self) -> None:
        if self.stream:
            await asyncio.to_thread(self._close_stream)
            logger.debug("PyAudioOutput stream stopped")

    async def close(self) -> None:
        await self.stop()
        if self.pa is not None:
            self.pa.terminate()
            self.pa = None
        logger.info("PyAudioOutput closed")
