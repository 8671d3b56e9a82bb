"""
Audio payload codec for the relay wire protocol.

Audio travels as base64 text holding little-endian PCM16 mono samples:

    float32 samples --clamp/scale--> int16 --LE bytes--> base64 text

Usage example:

    payload = encode(frame_samples)        # outbound append
    try:
        samples = decode(message["delta"])  # inbound audio delta
    except DecodeError:
        ...                                 # drop this fragment only
"""

from __future__ import annotations

import base64
import binascii

import numpy as np

from audio.pcm import float32_to_pcm16, pcm16le_to_int16


# -------------------------
# Exceptions
# -------------------------

class DecodeError(Exception):
    """A single audio fragment could not be decoded."""


# -------------------------
# Encode
# -------------------------

def encode(samples: np.ndarray) -> str:
    """Encode float samples in [-1, 1] as base64 PCM16 text."""
    return encode_pcm16(float32_to_pcm16(samples))


def encode_pcm16(samples: np.ndarray) -> str:
    """Encode int16 samples as base64 PCM16 text."""
    raw = np.asarray(samples, dtype=np.int16).astype("<i2").tobytes()
    return base64.b64encode(raw).decode("ascii")


# -------------------------
# Decode
# -------------------------

def decode(payload: str) -> np.ndarray:
    """
    Decode base64 PCM16 text into int16 samples.

    Raises:
        DecodeError for non-base64 input or an odd byte count.
    """
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64 audio payload: {e}") from e

    try:
        return pcm16le_to_int16(raw)
    except ValueError as e:
        raise DecodeError(str(e)) from e
