from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str
    size: str
    quality: str # "high", "medium" or "fast"


AVAILABLE_MODELS: List[ModelInfo] = [
    ModelInfo(
        id="microsoft/speecht5_tts",
        name="SpeechT5",
        description="Balanced Microsoft model with good quality and speed",
        size="~180MB",
        quality="medium",
    ),
    ModelInfo(
        id="suno/bark",
        name="Bark",
        description="Advanced model with very natural voices",
        size="~1.2GB",
        quality="high",
    ),
    ModelInfo(
        id="coqui/XTTS-v2",
        name="XTTS v2",
        description="Fast and efficient synthesis",
        size="~50MB",
        quality="fast",
    ),
]


def get_model(model_id: str) -> Optional[ModelInfo]:
    for model in AVAILABLE_MODELS:
        if model.id == model_id:
            return model
    return None
