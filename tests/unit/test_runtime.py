# pylint: disable=missing-module-docstring,missing-function-docstring

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from audio.capture import CaptureError, DeviceUnavailable
from fakes import FakeClock, audio, ev
from orchestrator.enums.state import State
from orchestrator.events import (
    AudioDelta,
    BufferCommitted,
    ConnectionClosed,
    PlaybackDrained,
    RecordStart,
    ResponseCreated,
    ResponseDone,
)
from orchestrator.runtime import Runtime
from orchestrator.state_dataclass import ConversationState
from session.connection_status import ConnectionStatus


@dataclass
class FakeCapture:
    error: CaptureError | None = None
    calls: list[str] = field(default_factory=list)

    def start(self) -> None:
        self.calls.append("start")
        if self.error is not None:
            raise self.error

    def stop(self) -> None:
        self.calls.append("stop")


@dataclass
class FakePlayback:
    enqueued: list[np.ndarray] = field(default_factory=list)
    flushes: int = 0

    def enqueue(self, samples: np.ndarray) -> object:
        self.enqueued.append(samples)
        return object()

    def flush(self) -> int:
        self.flushes += 1
        stopped = len(self.enqueued)
        self.enqueued.clear()
        return stopped


@dataclass
class FakeDedup:
    resets: int = 0

    def reset(self) -> None:
        self.resets += 1


@dataclass
class FakeContext:
    session_id: str | None = "sess_test"
    connection_status: ConnectionStatus = ConnectionStatus.OPEN
    capture: FakeCapture = field(default_factory=FakeCapture)
    playback: FakePlayback = field(default_factory=FakePlayback)
    dedup: FakeDedup = field(default_factory=FakeDedup)
    timers: FakeClock = field(default_factory=FakeClock)
    responses_requested: int = 0
    closed: list[str] = field(default_factory=list)
    notifications: list[str] = field(default_factory=list)

    def request_response(self) -> bool:
        self.responses_requested += 1
        return True

    def close_connection(self, reason: str) -> None:
        self.closed.append(reason)

    def notify_user(self, message: str) -> None:
        self.notifications.append(message)


def make_runtime(
    state: State, ctx: FakeContext | None = None, **flags: Any
) -> tuple[Runtime, FakeContext, list[tuple[State, State]]]:
    ctx = ctx or FakeContext()
    transitions: list[tuple[State, State]] = []
    runtime = Runtime(
        initial_state=ConversationState(state=state, **flags),
        context=ctx,
        on_transition=lambda prev, new: transitions.append((prev.state, new.state)),
    )
    return runtime, ctx, transitions


# ---------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------

def test_record_start_starts_capture() -> None:
    runtime, ctx, transitions = make_runtime(State.READY)

    runtime.handle_event(ev(RecordStart))

    assert runtime.state.state is State.RECORDING
    assert ctx.capture.calls == ["start"]
    assert transitions == [(State.READY, State.RECORDING)]


def test_capture_failure_is_fed_back_as_event() -> None:
    ctx = FakeContext(capture=FakeCapture(error=DeviceUnavailable("no input device")))
    runtime, _, transitions = make_runtime(State.READY, ctx)

    runtime.handle_event(ev(RecordStart))

    assert runtime.state.state is State.READY
    assert not runtime.state.capture_active
    assert ctx.notifications == ["No microphone is available: no input device"]
    assert transitions == [(State.READY, State.RECORDING), (State.RECORDING, State.READY)]


def test_audio_delta_is_enqueued_for_playback() -> None:
    runtime, ctx, _ = make_runtime(State.AWAITING_RESPONSE)

    runtime.handle_event(ev(AudioDelta, samples=audio(240)))

    assert runtime.state.state is State.SPEAKING
    assert len(ctx.playback.enqueued) == 1


def test_abnormal_close_tears_down_and_notifies_once() -> None:
    runtime, ctx, _ = make_runtime(State.SPEAKING, capture_active=True, playback_active=True)
    ctx.playback.enqueued.append(audio())

    runtime.handle_event(ev(ConnectionClosed, code=1006))

    assert runtime.state.state is State.ERROR
    assert ctx.capture.calls == ["stop"]
    assert ctx.playback.flushes == 1
    assert ctx.dedup.resets == 1
    assert ctx.closed == ["connection_closed:1006"]
    assert len(ctx.notifications) == 1


# ---------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------

def test_events_raised_during_processing_are_queued() -> None:
    """An event emitted from inside a command runs after the current one."""
    ctx = FakeContext()
    runtime, _, transitions = make_runtime(
        State.SPEAKING, ctx, playback_active=True, response_started=True
    )

    def flush_and_drain() -> int:
        # A sink that reports drained synchronously from flush
        runtime.handle_event(ev(PlaybackDrained))
        assert runtime.state.state is State.CLOSED  # current event already applied
        return 0

    ctx.playback.flush = flush_and_drain  # type: ignore[method-assign]

    runtime.handle_event(ev(ConnectionClosed, code=1000))

    # ConnectionClosed -> CLOSED first; the queued drain is then ignored
    assert transitions == [(State.SPEAKING, State.CLOSED)]
    assert runtime.state.state is State.CLOSED


# ---------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------

def test_fallback_fires_response_create_after_grace_period() -> None:
    runtime, ctx, _ = make_runtime(State.RECORDING, capture_active=True)

    runtime.handle_event(ev(BufferCommitted))
    ctx.timers.advance(0.05)
    assert ctx.responses_requested == 0

    ctx.timers.advance(0.05)
    assert ctx.responses_requested == 1
    assert not runtime.state.fallback_armed


def test_response_created_cancels_fallback() -> None:
    runtime, ctx, _ = make_runtime(State.RECORDING, capture_active=True)

    runtime.handle_event(ev(BufferCommitted))
    runtime.handle_event(ev(ResponseCreated))
    ctx.timers.advance(1.0)

    assert ctx.responses_requested == 0
    assert ctx.timers.timers[0].cancelled


def test_repeated_commit_replaces_the_timer() -> None:
    runtime, ctx, _ = make_runtime(State.RECORDING, capture_active=True)

    runtime.handle_event(ev(BufferCommitted))
    ctx.timers.advance(0.08)
    runtime.handle_event(ev(BufferCommitted))
    ctx.timers.advance(0.08)
    assert ctx.responses_requested == 0

    ctx.timers.advance(0.05)
    assert ctx.responses_requested == 1


def test_shutdown_cancels_pending_timers() -> None:
    runtime, ctx, _ = make_runtime(State.RECORDING, capture_active=True)
    runtime.handle_event(ev(BufferCommitted))

    runtime.shutdown()
    ctx.timers.advance(1.0)

    assert ctx.responses_requested == 0


def test_turn_completes_and_next_turn_can_record() -> None:
    runtime, ctx, _ = make_runtime(State.AWAITING_RESPONSE)

    runtime.handle_event(ev(AudioDelta, samples=audio()))
    runtime.handle_event(ev(ResponseDone))
    assert runtime.state.state is State.SPEAKING

    runtime.handle_event(ev(PlaybackDrained))
    assert runtime.state.state is State.READY

    runtime.handle_event(ev(RecordStart))
    assert runtime.state.state is State.RECORDING
    assert ctx.capture.calls == ["start"]
