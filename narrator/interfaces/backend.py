from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from narrator.core.config import VoiceSettings
from narrator.text.chunker import Segment


class ReadinessStatus(Enum):
    READY = auto()
    LOADING = auto()
    FAILED = auto()


@dataclass(frozen=True)
class Readiness:
    status: ReadinessStatus
    reason: Optional[str] = None

    @classmethod
    def ready(cls) -> "Readiness":
        return cls(ReadinessStatus.READY)

    @classmethod
    def loading(cls) -> "Readiness":
        return cls(ReadinessStatus.LOADING)

    @classmethod
    def failed(cls, reason: str) -> "Readiness":
        return cls(ReadinessStatus.FAILED, reason)

    @property
    def ok(self) -> bool:
        return self.status is ReadinessStatus.READY


class ABCSpeechBackend(ABC):
    """
    Interface for speech synthesis backends.
    Responsibility: Speak one segment at a time and report its lifecycle
    (started, progress, ended, error) as events tagged with the caller's
    generation.
    """

    name: str = "backend"
    reports_progress: bool = False

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """True once prepare() succeeded and segments may be submitted."""
        pass

    @property
    @abstractmethod
    def is_loading(self) -> bool:
        """True while prepare() is in flight."""
        pass

    @abstractmethod
    async def prepare(self, hint: Optional[str] = None) -> Readiness:
        """
        Make the backend ready to speak.
        The hint is a voice selector (on-device) or a model id (model-based).
        """
        pass

    @abstractmethod
    async def speak_segment(self, segment: Segment, settings: VoiceSettings, generation: int) -> None:
        """
        Submit exactly one segment. Returns once submitted; completion is
        reported through events, never by raising.
        """
        pass

    @abstractmethod
    async def pause(self) -> None:
        """Pause the current segment. No-op when nothing is speaking."""
        pass

    @abstractmethod
    async def resume(self) -> None:
        """Continue a paused segment. No-op when not paused."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """
        Immediately stop speech playback and forget the current segment.
        """
        pass

    async def close(self) -> None:
        """Release host resources (audio devices, worker threads)."""
        await self.stop()
