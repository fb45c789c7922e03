from dataclasses import replace
from typing import Optional

from narrator.core.config import BackendKind, Config, parse_engine
from narrator.interfaces.backend import ABCSpeechBackend
from narrator.orchestrator.router import EventRouter


def create_backend(kind: BackendKind, config: Config, router: EventRouter,
                   model_id: Optional[str] = None) -> ABCSpeechBackend:
    """
    Build the adapter for a backend kind. Library imports happen here so a
    host without torch/transformers can still use the on-device backend.
    """
    kind = parse_engine(kind)
    if kind is BackendKind.ONDEVICE:
        from narrator.backends.ondevice import Pyttsx3Backend
        return Pyttsx3Backend(router, config.ondevice)

    from narrator.backends.model import TransformersBackend
    model_config = replace(config.model, model_id=model_id or config.model.model_id)
    return TransformersBackend(router, model_config, config.audio)
