from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

class Event(Enum):
    SEGMENT_STARTED = auto()
    SEGMENT_PROGRESS = auto()
    SEGMENT_ENDED = auto()
    SEGMENT_ERROR = auto()

@dataclass(frozen=True)
class SegmentEvent:
    """Payload carried by every backend event."""
    backend: str
    generation: int
    index: int
    elapsed: float = 0.0 # seconds into the segment (progress only)
    duration: float = 0.0
    reason: Optional[str] = None # error only
