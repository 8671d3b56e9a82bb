"""
Microphone capture engine.

Per frame:
    measure level (always) -> encode -> submit, but ONLY while the
    eligibility gate is open (state RECORDING and connection OPEN).
    Ineligible frames are discarded, never buffered.

The engine never requests state transitions; it only reads the gate.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Protocol

import numpy as np

from audio.frames import AudioFrame, OutboundAudioChunk
from audio.level import measure
from observability.logger import log_event
from protocol.codec import encode
from spec import AUDIO_SAMPLE_RATE_HZ, CAPTURE_FRAME_SAMPLES


# -------------------------
# Exceptions
# -------------------------

class CaptureError(Exception):
    """Base class for microphone acquisition failures."""


class PermissionDenied(CaptureError):
    """The host refused microphone access."""


class DeviceUnavailable(CaptureError):
    """No usable input device (missing, busy, or failed to open)."""


# -------------------------
# Device protocol
# -------------------------

@dataclass(frozen=True)
class CaptureConstraints:
    """Requested input stream shape."""
    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ
    frame_samples: int = CAPTURE_FRAME_SAMPLES
    device: int | str | None = None


class AudioInputDevice(Protocol):
    """
    Host microphone.

    on_frame MUST be invoked on the event loop thread with float32 mono
    samples.
    """

    def open(
        self,
        on_frame: Callable[[np.ndarray], None],
        constraints: CaptureConstraints,
    ) -> None:
        """Open the device. Raises CaptureError on failure."""

    def close(self) -> None: ...


# -------------------------
# Engine
# -------------------------

class AudioCaptureEngine:
    """Owns the input device between start() and stop()."""

    def __init__(
        self,
        device: AudioInputDevice,
        *,
        can_send: Callable[[], bool],
        send_chunk: Callable[[OutboundAudioChunk], None],
        on_level: Callable[[float], None] | None = None,
    ) -> None:
        self._device = device
        self._can_send = can_send
        self._send_chunk = send_chunk
        self._on_level = on_level

        self._running = False
        self._sequence_num = 0
        self.level: float = 0.0
        self.frames_sent: int = 0
        self.frames_discarded: int = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, constraints: CaptureConstraints | None = None) -> None:
        """
        Acquire the microphone. No-op if already running.

        Raises:
            PermissionDenied, DeviceUnavailable
        """
        if self._running:
            return

        self._device.open(self._on_frame, constraints or CaptureConstraints())
        self._running = True
        log_event({
            "ts_ms": time.time_ns() // 1_000_000,
            "event_type": "CAPTURE_STARTED",
        })

    def stop(self) -> None:
        """
        Release the microphone synchronously and reset the level to 0.

        Sends no protocol message. Safe to call when not running.
        """
        if self._running:
            self._running = False
            self._device.close()
            log_event({
                "ts_ms": time.time_ns() // 1_000_000,
                "event_type": "CAPTURE_STOPPED",
                "frames_sent": self.frames_sent,
                "frames_discarded": self.frames_discarded,
            })
        self._set_level(0.0)

    def _on_frame(self, samples: np.ndarray) -> None:
        # Device callbacks may still land after stop(); drop them
        if not self._running:
            return

        frame = AudioFrame(samples=samples, ts_ms=time.time_ns() // 1_000_000)
        self._set_level(measure(frame.samples))

        if not self._can_send():
            self.frames_discarded += 1
            return

        self._sequence_num += 1
        self._send_chunk(
            OutboundAudioChunk(
                sequence_num=self._sequence_num,
                payload=encode(frame.samples),
            )
        )
        self.frames_sent += 1

    def _set_level(self, level: float) -> None:
        self.level = level
        if self._on_level is not None:
            self._on_level(level)
