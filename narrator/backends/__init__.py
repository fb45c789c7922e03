"""
Speech backends - Narrator

Adapters that turn one text segment at a time into audible speech.

Main Components:
- Pyttsx3Backend: host speech synthesis (SAPI5, NSSpeechSynthesizer, eSpeak)
- TransformersBackend: downloadable Hugging Face text-to-speech models
- create_backend: build the adapter for a BackendKind
- AVAILABLE_MODELS: models offered for the model backend

The concrete adapters are imported lazily by create_backend so that a
host without torch can still use the on-device backend.
"""

from narrator.backends.catalog import AVAILABLE_MODELS, ModelInfo, get_model
from narrator.backends.factory import create_backend

__all__ = [
    "AVAILABLE_MODELS",
    "ModelInfo",
    "get_model",
    "create_backend",
]
