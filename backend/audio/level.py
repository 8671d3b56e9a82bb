"""
Microphone level meter.

Maps the RMS energy of one frame onto a 0..100 scale for UI meters:
RMS -> dBFS -> linear map of [LEVEL_NOISE_FLOOR_DB, 0 dB] onto [0, 100].
"""
import numpy as np

from spec import LEVEL_MAX, LEVEL_NOISE_FLOOR_DB


def measure(samples: np.ndarray) -> float:
    """
    Return the level of a float32 frame in [0, 100].

    Empty and all-zero frames return 0.0. Values above full scale clamp
    to 100.0.
    """
    if samples.size == 0:
        return 0.0

    rms = float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))
    if rms <= 0.0:
        return 0.0

    db = 20.0 * np.log10(rms)
    level = (db - LEVEL_NOISE_FLOOR_DB) / -LEVEL_NOISE_FLOOR_DB * LEVEL_MAX
    return float(min(max(level, 0.0), LEVEL_MAX))
