import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional

from narrator.core.exceptions import ConfigurationError


class BackendKind(str, Enum):
    ONDEVICE = "ondevice"
    MODEL = "model"


SPEED_RANGE = (0.5, 2.0)
VOLUME_RANGE = (0.0, 1.0)
PITCH_RANGE = (0.0, 2.0)


def _clamp(value: float, bounds: tuple) -> float:
    low, high = bounds
    return max(low, min(high, float(value)))


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"

@dataclass
class AudioConfig:
    output_device_index: int = -1
    frames_per_buffer: int = 1024

@dataclass
class ChunkerConfig:
    max_length: int = 200

@dataclass
class VoiceSettings:
    speed: float = 1.0
    volume: float = 0.8
    pitch: float = 1.0

    def clamped(self) -> "VoiceSettings":
        """Return a copy with every value forced into its accepted range."""
        return VoiceSettings(
            speed=_clamp(self.speed, SPEED_RANGE),
            volume=_clamp(self.volume, VOLUME_RANGE),
            pitch=_clamp(self.pitch, PITCH_RANGE),
        )

@dataclass
class OnDeviceConfig:
    driver: Optional[str] = None # None = pyttsx3 picks the platform default
    voice: Optional[str] = None
    base_rate: int = 200 # words per minute at speed 1.0

@dataclass
class ModelConfig:
    model_id: str = "microsoft/speecht5_tts"
    device: str = "auto" # "auto", "cpu", "cuda", "cuda:1", ...
    default_sample_rate: int = 16000
    load_timeout: float = 600.0
    synthesis_timeout: float = 120.0
    progress_interval: float = 0.1

@dataclass
class Config:
    engine: BackendKind = BackendKind.ONDEVICE
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    chunker: ChunkerConfig = field(default_factory=ChunkerConfig)
    voice: VoiceSettings = field(default_factory=VoiceSettings)
    ondevice: OnDeviceConfig = field(default_factory=OnDeviceConfig)
    model: ModelConfig = field(default_factory=ModelConfig)

    def __post_init__(self):
        self.engine = parse_engine(self.engine)
        self.voice = self.voice.clamped()

    @classmethod
    def load(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build the default configuration and apply NARRATOR_* overrides.

        Args:
            environ: Mapping to read overrides from (defaults to os.environ)

        Raises:
            ConfigurationError: on an unknown engine or a malformed number
        """
        env = os.environ if environ is None else environ
        config = cls()

        if "NARRATOR_ENGINE" in env:
            config.engine = parse_engine(env["NARRATOR_ENGINE"])
        if "NARRATOR_MODEL_ID" in env:
            config.model.model_id = env["NARRATOR_MODEL_ID"]
        if "NARRATOR_DEVICE" in env:
            config.model.device = env["NARRATOR_DEVICE"]
        if "NARRATOR_VOICE" in env:
            config.ondevice.voice = env["NARRATOR_VOICE"] or None
        if "NARRATOR_LOG_LEVEL" in env:
            config.logging.level = env["NARRATOR_LOG_LEVEL"].upper()
        if "NARRATOR_LOG_FORMAT" in env:
            config.logging.format = env["NARRATOR_LOG_FORMAT"]
        if "NARRATOR_MAX_SEGMENT_LENGTH" in env:
            length = int(_parse_number("NARRATOR_MAX_SEGMENT_LENGTH", env["NARRATOR_MAX_SEGMENT_LENGTH"]))
            if length < 1:
                raise ConfigurationError(f"NARRATOR_MAX_SEGMENT_LENGTH must be positive, got {length}")
            config.chunker.max_length = length

        overrides = {}
        for name in ("speed", "volume", "pitch"):
            key = f"NARRATOR_{name.upper()}"
            if key in env:
                overrides[name] = _parse_number(key, env[key])
        if overrides:
            config.voice = replace(config.voice, **overrides).clamped()

        return config


def parse_engine(value) -> BackendKind:
    if isinstance(value, BackendKind):
        return value
    try:
        return BackendKind(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(kind.value for kind in BackendKind)
        raise ConfigurationError(f"Unknown engine '{value}' (expected one of: {choices})") from None


def _parse_number(key: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got '{raw}'") from None
