from abc import ABC, abstractmethod

class ABCAudioOutput(ABC):
    """
    Interface for low-level audio output.
    Responsibility: Write 16-bit mono PCM frames to the speaker.
    """

    @abstractmethod
    async def open(self, sample_rate: int) -> None:
        """Open (or reopen) the output stream at the given sample rate."""
        pass

    @abstractmethod
    async def play_frame(self, frame: bytes) -> None:
        """
        Write a frame of audio to the output device.
        Returns when the device has accepted the frame, which paces playback.
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the stream, discarding anything not yet played."""
        pass

    async def close(self) -> None:
        """Release the device."""
        await self.stop()
