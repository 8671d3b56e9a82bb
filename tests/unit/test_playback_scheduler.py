# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.playback import PlaybackScheduler
from fakes import FakeSink, audio


def make_scheduler() -> tuple[PlaybackScheduler, FakeSink, list[str]]:
    sink = FakeSink()
    drained: list[str] = []
    scheduler = PlaybackScheduler(
        sink, on_drained=lambda: drained.append("drained"), sample_rate_hz=24_000
    )
    return scheduler, sink, drained


# ---------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------

def test_items_are_scheduled_back_to_back() -> None:
    scheduler, sink, _ = make_scheduler()

    first = scheduler.enqueue(audio(2400))
    second = scheduler.enqueue(audio(1200))

    assert first is not None and second is not None
    assert first.start_time == 0.0
    assert first.end_time == pytest.approx(0.1)
    assert second.start_time == first.end_time
    assert [s.start for s in sink.sources] == [first.start_time, second.start_time]


def test_late_delta_starts_at_sink_clock() -> None:
    scheduler, sink, _ = make_scheduler()
    scheduler.enqueue(audio(2400))
    sink.now = 0.5

    item = scheduler.enqueue(audio(2400))

    assert item is not None
    assert item.start_time == 0.5


def test_empty_buffer_is_ignored() -> None:
    scheduler, sink, _ = make_scheduler()

    assert scheduler.enqueue(np.array([], dtype=np.int16)) is None
    assert not sink.sources
    assert not scheduler.is_active


# ---------------------------------------------------------------------
# Drain
# ---------------------------------------------------------------------

def test_drained_fires_once_after_last_item() -> None:
    scheduler, sink, drained = make_scheduler()
    scheduler.enqueue(audio())
    scheduler.enqueue(audio())

    sink.finish(0)
    assert not drained
    assert scheduler.in_flight == 1

    sink.finish(1)
    assert drained == ["drained"]
    assert not scheduler.is_active


def test_item_completion_callback_runs() -> None:
    scheduler, sink, _ = make_scheduler()
    done: list[int] = []

    scheduler.enqueue(audio(), on_complete=lambda: done.append(1))
    sink.finish_all()

    assert done == [1]


# ---------------------------------------------------------------------
# Flush
# ---------------------------------------------------------------------

def test_flush_stops_everything_without_signalling_drained() -> None:
    scheduler, sink, drained = make_scheduler()
    scheduler.enqueue(audio())
    scheduler.enqueue(audio())

    stopped = scheduler.flush()

    assert stopped == 2
    assert all(s.stopped for s in sink.sources)
    assert not scheduler.is_active
    assert not drained


def test_late_end_callback_after_flush_is_ignored() -> None:
    scheduler, sink, drained = make_scheduler()
    scheduler.enqueue(audio())
    scheduler.flush()

    sink.sources[0].on_ended()

    assert not drained


def test_flush_resets_schedule_cursor() -> None:
    scheduler, sink, _ = make_scheduler()
    scheduler.enqueue(audio(24_000))
    scheduler.flush()
    sink.now = 0.25

    item = scheduler.enqueue(audio())

    assert item is not None
    assert item.start_time == 0.25


def test_flush_swallows_sink_errors() -> None:
    scheduler, sink, _ = make_scheduler()
    scheduler.enqueue(audio())

    def broken_stop(handle: object) -> None:
        raise RuntimeError(f"already stopped: {handle}")

    sink.stop = broken_stop  # type: ignore[method-assign]

    assert scheduler.flush() == 1
