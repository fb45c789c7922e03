import numpy as np

from narrator.core.exceptions import FormatUnsupported


def coerce_samples(audio) -> np.ndarray:
    """
    Turn whatever a synthesis pipeline returned into mono float32 in [-1, 1].

    Accepts numpy arrays, plain sequences of numbers, and tensors exposing
    detach()/cpu()/numpy(). Batched output of shape (1, n) is squeezed and
    multi-channel output is mixed down.

    Raises:
        FormatUnsupported: for anything that is not numeric audio
    """
    if hasattr(audio, "detach"):
        audio = audio.detach().cpu().numpy()

    if isinstance(audio, np.ndarray):
        arr = audio
    elif isinstance(audio, (list, tuple)):
        try:
            arr = np.asarray(audio)
        except ValueError as e:
            raise FormatUnsupported(f"Ragged audio sequence: {e}") from e
    else:
        raise FormatUnsupported(f"Unsupported audio type: {type(audio).__name__}")

    if arr.dtype.kind not in "fiu":
        raise FormatUnsupported(f"Audio samples must be numeric, got dtype {arr.dtype}")

    arr = np.squeeze(arr)
    if arr.ndim == 2:
        # channels are on the shorter axis
        arr = arr.mean(axis=0 if arr.shape[0] <= arr.shape[1] else 1)
    if arr.ndim != 1:
        raise FormatUnsupported(f"Audio must be mono or stereo, got shape {arr.shape}")
    if arr.size == 0:
        raise FormatUnsupported("Synthesis returned no audio samples")

    if arr.dtype.kind in "iu":
        scale = float(np.iinfo(arr.dtype).max)
        return (arr.astype(np.float32) / scale).astype(np.float32)
    return np.clip(arr.astype(np.float32), -1.0, 1.0)


def time_stretch(samples: np.ndarray, speed: float) -> np.ndarray:
    """Resample so playback takes 1/speed of the time (pitch shifts with it)."""
    if speed == 1.0 or len(samples) < 2:
        return samples
    target_len = max(1, int(round(len(samples) / speed)))
    return np.interp(
        np.linspace(0, len(samples) - 1, target_len),
        np.arange(len(samples)),
        samples
    ).astype(np.float32)


def apply_volume(samples: np.ndarray, volume: float) -> np.ndarray:
    if volume == 1.0:
        return samples
    return np.clip(samples * volume, -1.0, 1.0).astype(np.float32)


def to_pcm16(samples: np.ndarray) -> bytes:
    return (np.clip(samples, -1.0, 1.0) * 32767.0).astype(np.int16).tobytes()
