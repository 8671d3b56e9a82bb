"""
Gapless playback scheduling for assistant audio.

Decoded buffers are placed back to back on the output sink's clock:
each item starts at max(sink.current_time(), end of previous item), so
consecutive deltas play without gaps or overlap even when they arrive in
bursts.

The scheduler is single-threaded: the sink MUST deliver on_ended
callbacks on the event loop thread.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

import numpy as np

from audio.frames import PlaybackItem
from observability.logger import log_event
from spec import AUDIO_SAMPLE_RATE_HZ


class AudioOutputSink(Protocol):
    """Host output device with a sample-accurate playback clock (seconds)."""

    def current_time(self) -> float: ...

    def play_at(
        self,
        samples: np.ndarray,
        start_time: float,
        on_ended: Callable[[], None],
    ) -> Any: ...

    def stop(self, handle: Any) -> None:
        """Stop a scheduled source. Must be a no-op for finished sources."""


class PlaybackScheduler:
    """
    Owns the in-flight list of scheduled PlaybackItems.

    Signals:
        on_drained: called when the last in-flight item finishes playing.
            Not called by flush().
    """

    def __init__(
        self,
        sink: AudioOutputSink,
        *,
        on_drained: Callable[[], None] | None = None,
        sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
    ) -> None:
        self._sink = sink
        self._on_drained = on_drained
        self._sample_rate_hz = sample_rate_hz
        self._in_flight: list[PlaybackItem] = []
        self._next_start: float = 0.0

    @property
    def is_active(self) -> bool:
        return bool(self._in_flight)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def enqueue(
        self,
        samples: np.ndarray,
        on_complete: Callable[[], None] | None = None,
    ) -> PlaybackItem | None:
        """
        Schedule a decoded int16 buffer directly after the previous one.

        Empty buffers are ignored and return None.
        """
        if samples.size == 0:
            return None

        start = max(self._sink.current_time(), self._next_start)
        end = start + samples.size / self._sample_rate_hz

        item = PlaybackItem(
            samples=samples,
            start_time=start,
            end_time=end,
            on_complete=on_complete,
        )
        self._in_flight.append(item)
        self._next_start = end

        item.handle = self._sink.play_at(
            samples,
            start,
            lambda: self._on_item_ended(item),
        )
        return item

    def flush(self) -> int:
        """
        Stop every scheduled source and reset the schedule cursor.

        Returns the number of items stopped. Never raises.
        """
        items, self._in_flight = self._in_flight, []
        self._next_start = 0.0

        for item in items:
            try:
                self._sink.stop(item.handle)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # Already-finished or torn-down sources are expected here
                log_event({
                    "event_type": "PLAYBACK_STOP_FAILED",
                    "level": "debug",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
        return len(items)

    def _on_item_ended(self, item: PlaybackItem) -> None:
        # Late end callbacks for flushed items are ignored
        if item not in self._in_flight:
            return

        self._in_flight.remove(item)
        if item.on_complete is not None:
            item.on_complete()

        if not self._in_flight and self._on_drained is not None:
            self._on_drained()
