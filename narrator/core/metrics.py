from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

logger = logging.getLogger("metrics")

@dataclass
class PlaybackMetrics:
    segments_spoken: Dict[str, int] = field(default_factory=dict)
    synthesis_ms: Dict[str, List[float]] = field(default_factory=dict)

    def count_segment(self, backend: str):
        self.segments_spoken[backend] = self.segments_spoken.get(backend, 0) + 1
        logger.debug(f"Segments spoken on {backend}: {self.segments_spoken[backend]}")

    def record_synthesis(self, backend: str, value_ms: float):
        self.synthesis_ms.setdefault(backend, []).append(value_ms)
        logger.debug(f"Synthesis on {backend} took {value_ms:.0f}ms",
                     extra={"latency_ms": value_ms, "backend": backend})

    def mean_synthesis_ms(self, backend: str) -> Optional[float]:
        samples = self.synthesis_ms.get(backend)
        if not samples:
            return None
        return sum(samples) / len(samples)

    def reset(self):
        self.segments_spoken.clear()
        self.synthesis_ms.clear()

# Global instance
metrics = PlaybackMetrics()
