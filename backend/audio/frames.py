"""
Audio data primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np


@dataclass(frozen=True)
class AudioFrame:
    """
    One capture tick of microphone samples.

    samples:
        float32 mono samples in [-1.0, 1.0], normally
        spec.CAPTURE_FRAME_SAMPLES long. Owned transiently by the capture
        engine; never retained past one encode cycle.

    ts_ms:
        Wall-clock timestamp (milliseconds) when the frame was delivered.
        Used for observability only (not control logic).
    """
    samples: np.ndarray = field(compare=False)
    ts_ms: int = 0


@dataclass(frozen=True)
class OutboundAudioChunk:
    """
    Encoded audio ready for input_audio_buffer.append.

    sequence_num:
        Monotonic counter for diagnostics only. Ordering is implied by send
        order over the single socket.
    """
    sequence_num: int
    payload: str


@dataclass
class PlaybackItem:
    """
    A decoded buffer scheduled on the output sink.

    Owned by PlaybackScheduler from enqueue until its end fires or the
    scheduler is flushed.
    """
    samples: np.ndarray = field(repr=False)
    start_time: float
    end_time: float
    on_complete: Callable[[], None] | None = None
    handle: Any = None
