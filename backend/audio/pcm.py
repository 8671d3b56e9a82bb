"""PCM conversion utilities."""
import numpy as np

from spec import AUDIO_SAMPLE_WIDTH_BYTES, PCM16_MAX, PCM16_MIN, PCM16_SCALE


def float32_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """
    Convert float samples to int16 PCM.

    Input is clamped to [-1.0, 1.0] before scaling and the scaled value is
    clamped again to the int16 range, so out-of-range input saturates
    (1.0 -> 32767, -1.0 -> -32768) and never wraps around.
    """
    clamped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.clip(clamped.astype(np.float64) * PCM16_SCALE, PCM16_MIN, PCM16_MAX)
    return scaled.astype(np.int16)


def pcm16_to_float32(samples: np.ndarray) -> np.ndarray:
    """
    Convert int16 PCM samples to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.
    """
    return np.asarray(samples, dtype=np.int16).astype(np.float32) / PCM16_SCALE


def pcm16le_to_int16(pcm_bytes: bytes) -> np.ndarray:
    """
    Interpret little-endian PCM16 bytes as int16 samples.

    Raises:
        ValueError if the byte count is odd (truncated sample).
    """
    if len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        raise ValueError(f"odd PCM16 byte count: {len(pcm_bytes)}")
    return np.frombuffer(pcm_bytes, dtype="<i2").astype(np.int16)
