"""
Narrator - read long-form text aloud, chapter by chapter.

Main Components:
- SpeechEngine: speak/pause/resume/stop over whichever backend is active
- UnifiedPlaybackState: the playback view published to callers
- Chunker: splits text into bounded speech segments

Example Usage:
    from narrator import SpeechEngine
    from narrator.core.config import Config

    engine = SpeechEngine(Config.load())
    await engine.start()
    await engine.speak(chapter_text, speed=1.2)
    print(engine.state.progress)
"""

from narrator.engine import SpeechEngine, UnifiedPlaybackState
from narrator.text.chunker import Chunker, Segment

__all__ = [
    "SpeechEngine",
    "UnifiedPlaybackState",
    "Chunker",
    "Segment",
]
