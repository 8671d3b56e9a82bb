# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring
"""
Hand-written fakes shared by the unit tests.

- FakeClock: TimerScheduler driven by advance()
- FakeSink: AudioOutputSink whose sources end when the test says so
- FakeMic: AudioInputDevice that emits frames on demand
- FakeSocket: relay socket with an inbox the test pushes into
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from orchestrator.events import (
    AudioDelta,
    AudioDone,
    AuthSucceeded,
    BufferCommitted,
    CaptureFailed,
    ConnectFailed,
    ConnectionClosed as ConnectionClosedEvent,
    DisconnectRequested,
    Event,
    EventType,
    FallbackTimeout,
    PlaybackDrained,
    RecordStart,
    RecordStop,
    ResponseCancelled,
    ResponseCreated,
    ResponseDone,
    ServerError,
    SessionUpdated,
    SocketOpened,
    SpeechStarted,
    SpeechStopped,
    StartRequested,
    TranscriptDelta,
)


# ---------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------

_EVENT_TYPES: dict[type[Event], EventType] = {
    StartRequested: EventType.START_REQUESTED,
    RecordStart: EventType.RECORD_START,
    RecordStop: EventType.RECORD_STOP,
    DisconnectRequested: EventType.DISCONNECT_REQUESTED,
    SocketOpened: EventType.SOCKET_OPENED,
    AuthSucceeded: EventType.AUTH_SUCCEEDED,
    ConnectFailed: EventType.CONNECT_FAILED,
    SessionUpdated: EventType.SESSION_UPDATED,
    ConnectionClosedEvent: EventType.CONNECTION_CLOSED,
    ServerError: EventType.SERVER_ERROR,
    CaptureFailed: EventType.CAPTURE_FAILED,
    SpeechStarted: EventType.SPEECH_STARTED,
    SpeechStopped: EventType.SPEECH_STOPPED,
    BufferCommitted: EventType.BUFFER_COMMITTED,
    ResponseCreated: EventType.RESPONSE_CREATED,
    TranscriptDelta: EventType.TRANSCRIPT_DELTA,
    AudioDelta: EventType.AUDIO_DELTA,
    AudioDone: EventType.AUDIO_DONE,
    ResponseDone: EventType.RESPONSE_DONE,
    ResponseCancelled: EventType.RESPONSE_CANCELLED,
    PlaybackDrained: EventType.PLAYBACK_DRAINED,
    FallbackTimeout: EventType.FALLBACK_TIMEOUT,
}


def ev(cls: type[Event], **kwargs: Any) -> Any:
    """Build an event the way the runtime does, with ts_ms=0."""
    return cls(event_type=_EVENT_TYPES[cls], ts_ms=0, **kwargs)


def audio(n: int = 480, value: int = 1000) -> np.ndarray:
    return np.full(n, value, dtype=np.int16)


# ---------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------

@dataclass
class FakeTimer:
    due: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(due=self.now + delay_s, callback=callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = max(self.now, timer.due)
            timer.fired = True
            timer.callback()
        self.now = target


# ---------------------------------------------------------------------
# Output sink
# ---------------------------------------------------------------------

@dataclass
class ScheduledSource:
    handle: int
    samples: np.ndarray
    start: float
    on_ended: Callable[[], None]
    stopped: bool = False
    ended: bool = False


class FakeSink:
    def __init__(self) -> None:
        self.now = 0.0
        self.sources: list[ScheduledSource] = []

    def current_time(self) -> float:
        return self.now

    def play_at(
        self,
        samples: np.ndarray,
        start_time: float,
        on_ended: Callable[[], None],
    ) -> int:
        handle = len(self.sources)
        self.sources.append(ScheduledSource(handle, samples, start_time, on_ended))
        return handle

    def stop(self, handle: Any) -> None:
        self.sources[handle].stopped = True

    @property
    def playing(self) -> list[ScheduledSource]:
        return [s for s in self.sources if not s.stopped and not s.ended]

    def finish(self, handle: int) -> None:
        source = self.sources[handle]
        source.ended = True
        source.on_ended()

    def finish_all(self) -> None:
        for source in self.playing:
            self.finish(source.handle)


# ---------------------------------------------------------------------
# Microphone
# ---------------------------------------------------------------------

class FakeMic:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.opened = 0
        self.closed = 0
        self.on_frame: Callable[[np.ndarray], None] | None = None

    def open(self, on_frame: Callable[[np.ndarray], None], constraints: Any) -> None:  # pylint: disable=unused-argument
        if self.error is not None:
            raise self.error
        self.opened += 1
        self.on_frame = on_frame

    def close(self) -> None:
        self.closed += 1

    @property
    def is_open(self) -> bool:
        return self.opened > self.closed

    def emit(self, samples: np.ndarray | None = None) -> None:
        assert self.on_frame is not None
        self.on_frame(samples if samples is not None else np.full(4096, 0.1, dtype=np.float32))


# ---------------------------------------------------------------------
# Socket
# ---------------------------------------------------------------------

class FakeSocket:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosed(None, Close(1000, ""))
        self.sent.append(json.loads(message))

    async def recv(self) -> str:
        item = await self._inbox.get()
        if isinstance(item, Close):
            raise ConnectionClosed(item, None)
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, message: dict[str, Any] | str) -> None:
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def push_close(self, code: int, reason: str = "") -> None:
        self._inbox.put_nowait(Close(code, reason))

    def sent_types(self) -> list[str]:
        return [m["type"] for m in self.sent]


def opener_for(socket: FakeSocket) -> Callable[[str], Any]:
    async def _open(url: str) -> FakeSocket:  # pylint: disable=unused-argument
        return socket
    return _open


async def hanging_opener(url: str) -> FakeSocket:  # pylint: disable=unused-argument
    await asyncio.Event().wait()
    raise AssertionError("unreachable")


async def refusing_opener(url: str) -> FakeSocket:
    raise OSError(f"connection refused: {url}")


async def settle(rounds: int = 10) -> None:
    """Let queued tasks (reader, writer, open) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass
class Recorder:
    items: list[Any] = field(default_factory=list)

    def __call__(self, item: Any) -> None:
        self.items.append(item)
