"""
PortAudio-backed host devices (sounddevice).

SoundDeviceInput implements capture.AudioInputDevice and
SoundDeviceOutput implements playback.AudioOutputSink.

PortAudio invokes stream callbacks on its own thread. Everything that
touches client state is handed to the event loop with
loop.call_soon_threadsafe; the output mixer only shares its schedule
list with the audio thread, under a lock.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
import sounddevice as sd

from audio.capture import CaptureConstraints, DeviceUnavailable, PermissionDenied
from observability.logger import log_event
from spec import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ, PCM16_MAX, PCM16_MIN


def _map_portaudio_error(exc: Exception) -> Exception:
    message = str(exc)
    if "permission" in message.lower() or "not authorized" in message.lower():
        return PermissionDenied(message)
    return DeviceUnavailable(message)


# =============================================================================
# Input
# =============================================================================

class SoundDeviceInput:
    """Microphone via sd.InputStream (float32 mono)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._stream: sd.InputStream | None = None

    def open(
        self,
        on_frame: Callable[[np.ndarray], None],
        constraints: CaptureConstraints,
    ) -> None:
        loop = self._loop or asyncio.get_running_loop()

        def _callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:  # pylint: disable=unused-argument
            if status:
                loop.call_soon_threadsafe(
                    log_event,
                    {"event_type": "CAPTURE_STATUS", "level": "debug", "status": str(status)},
                )
            loop.call_soon_threadsafe(on_frame, indata[:, 0].copy())

        try:
            stream = sd.InputStream(
                samplerate=constraints.sample_rate_hz,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                blocksize=constraints.frame_samples,
                device=constraints.device,
                callback=_callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise _map_portaudio_error(e) from e

        self._stream = stream

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()


# =============================================================================
# Output
# =============================================================================

@dataclass
class _Scheduled:
    handle: int
    start_frame: int
    samples: np.ndarray
    on_ended: Callable[[], None]


class SoundDeviceOutput:
    """
    Speaker via sd.OutputStream with a sample-clock mixer.

    current_time() is the number of frames handed to PortAudio divided by
    the sample rate, so scheduling is sample accurate and gapless.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        *,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
        device: int | str | None = None,
    ) -> None:
        self._loop = loop
        self._sample_rate_hz = sample_rate_hz
        self._device = device
        self._lock = threading.Lock()
        self._scheduled: dict[int, _Scheduled] = {}
        self._handles = itertools.count(1)
        self._frames_played = 0
        self._stream: sd.OutputStream | None = None

    def open(self) -> None:
        if self._stream is not None:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        try:
            stream = sd.OutputStream(
                samplerate=self._sample_rate_hz,
                channels=AUDIO_CHANNELS,
                dtype="int16",
                device=self._device,
                callback=self._callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise _map_portaudio_error(e) from e

        self._stream = stream

    def close(self) -> None:
        stream, self._stream = self._stream, None
        with self._lock:
            self._scheduled.clear()
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    # ------------------------------------------------------------------
    # AudioOutputSink
    # ------------------------------------------------------------------

    def current_time(self) -> float:
        with self._lock:
            return self._frames_played / self._sample_rate_hz

    def play_at(
        self,
        samples: np.ndarray,
        start_time: float,
        on_ended: Callable[[], None],
    ) -> int:
        handle = next(self._handles)
        with self._lock:
            self._scheduled[handle] = _Scheduled(
                handle=handle,
                start_frame=int(round(start_time * self._sample_rate_hz)),
                samples=np.asarray(samples, dtype=np.int16),
                on_ended=on_ended,
            )
        return handle

    def stop(self, handle: Any) -> None:
        with self._lock:
            self._scheduled.pop(handle, None)

    # ------------------------------------------------------------------
    # PortAudio thread
    # ------------------------------------------------------------------

    def _callback(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:  # pylint: disable=unused-argument
        mix = np.zeros(frames, dtype=np.int32)
        finished: list[Callable[[], None]] = []

        with self._lock:
            block_start = self._frames_played
            block_end = block_start + frames

            for handle, item in list(self._scheduled.items()):
                item_end = item.start_frame + item.samples.size
                lo = max(block_start, item.start_frame)
                hi = min(block_end, item_end)
                if lo < hi:
                    mix[lo - block_start:hi - block_start] += item.samples[
                        lo - item.start_frame:hi - item.start_frame
                    ]
                if item_end <= block_end:
                    del self._scheduled[handle]
                    finished.append(item.on_ended)

            self._frames_played = block_end

        outdata[:, 0] = np.clip(mix, PCM16_MIN, PCM16_MAX).astype(np.int16)

        loop = self._loop
        if loop is not None:
            for on_ended in finished:
                loop.call_soon_threadsafe(on_ended)
