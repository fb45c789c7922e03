import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List

from narrator.text.chunker import Segment

@dataclass
class PlaybackSession:
    text: str
    segments: List[Segment]
    speed: float
    backend: str
    generation: int
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    current_index: int = 0
    spoken_chars: int = 0
    # Set when a segment ended while paused; resume() submits current_index
    awaiting_submit: bool = False
    total_chars: int = field(init=False)

    def __post_init__(self):
        self.total_chars = sum(segment.length for segment in self.segments)

    @property
    def current_segment(self) -> Optional[Segment]:
        if 0 <= self.current_index < len(self.segments):
            return self.segments[self.current_index]
        return None

    @property
    def finished(self) -> bool:
        return self.current_index >= len(self.segments)

    def mark_spoken(self, index: int) -> None:
        """Account for segment `index` and move the cursor past it."""
        self.spoken_chars += self.segments[index].length
        self.current_index = index + 1

    def character_progress(self) -> float:
        """Whole-document progress in percent, at segment granularity."""
        if not self.total_chars:
            return 0.0
        return self.spoken_chars / self.total_chars * 100

class SessionManager:
    """
    Owns the current playback session and the generation counter.

    Every new session and every clear() bumps the generation, so events
    tagged with an older generation can be recognised and dropped.
    """
    def __init__(self):
        self._current_session: Optional[PlaybackSession] = None
        self._generation = 0

    def start_new_session(self, text: str, segments: List[Segment], speed: float, backend: str) -> PlaybackSession:
        self._generation += 1
        self._current_session = PlaybackSession(
            text=text,
            segments=segments,
            speed=speed,
            backend=backend,
            generation=self._generation,
        )
        return self._current_session

    def clear(self):
        self._generation += 1
        self._current_session = None

    def is_current(self, generation: int) -> bool:
        return self._current_session is not None and generation == self._generation

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_session(self) -> Optional[PlaybackSession]:
        return self._current_session
