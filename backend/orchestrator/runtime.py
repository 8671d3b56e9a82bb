"""
Runtime execution shell for the voice client.

Responsibilities:
- Own the conversation state
- Call the pure reducer
- Execute commands with side effects (capture, playback, transport)
- Schedule and cancel timers
- Convert timer expiry into events

Non-responsibilities:
- Socket I/O (ConnectionManager)
- Wire message parsing (EventDispatcher)
"""

from __future__ import annotations

import time
from collections import deque
from typing import TYPE_CHECKING, Callable

from audio.capture import CaptureError, PermissionDenied
from observability.logger import log_event
from observability.metrics import discard_timer, start_timer, stop_timer
from orchestrator.commands import (
    CancelTimer,
    CloseConnection,
    Command,
    EnqueuePlayback,
    FlushPlayback,
    LogEvent,
    NotifyUser,
    ResetDedup,
    SendResponseCreate,
    StartCapture,
    StartMetric,
    StartTimer,
    StopCapture,
    StopMetric,
)
from orchestrator.events import CaptureFailed, Event, EventType, FallbackTimeout
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import ConversationState
from orchestrator.timers import TimerHandle

if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


TransitionListener = Callable[[ConversationState, ConversationState], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for the voice client.

    Responsibilities:
    - Own the authoritative conversation state
    - Act as the universal event sink
      (host commands, connection, dispatcher, playback, timers)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects

    Guarantees:
    - Reducer is called exactly once per incoming event
    - Events are processed strictly in arrival order
    - Processing is never re-entrant: events raised while commands
      execute (capture failure, drained playback, timers) are queued
      behind the current one
    - All side effects occur *after* state has been updated
    """

    def __init__(
        self,
        *,
        initial_state: ConversationState | None = None,
        context: RuntimeExecutionContext,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self._state = initial_state or ConversationState()
        self._ctx = context
        self._on_transition = on_transition

        self._pending: deque[Event] = deque()
        self._processing = False

        # timer_id -> (token, handle); the token guards against late fires
        self._timers: dict[str, tuple[object, TimerHandle]] = {}
        # metric name -> observability timer id
        self._metric_timers: dict[str, str] = {}

    @property
    def state(self) -> ConversationState:
        """
        Return the current immutable conversation state.

        Consumers must never modify this state directly.
        """
        return self._state

    def handle_event(self, event: Event) -> None:
        """
        Process an event through the reducer pipeline.

        This method is the *only* entry point for events affecting
        conversation state. If called while another event is being
        processed, the event is queued and handled afterwards.
        """
        self._pending.append(event)
        if self._processing:
            return

        self._processing = True
        try:
            while self._pending:
                self._process(self._pending.popleft())
        finally:
            self._processing = False

    def shutdown(self) -> None:
        """Cancel all timers and abandon running measurements."""
        for timer_id in list(self._timers):
            self._cancel_timer(timer_id)
        for timer_id in self._metric_timers.values():
            discard_timer(timer_id)
        self._metric_timers.clear()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _process(self, event: Event) -> None:
        prev = self._state
        new_state, commands = reduce(prev, event)
        self._state = new_state

        for cmd in commands:
            self._execute_command(cmd)

        if self._on_transition is not None and new_state != prev:
            self._on_transition(prev, new_state)

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
                "connection_status": self._ctx.connection_status.value,
            })

        elif isinstance(cmd, StartCapture):
            try:
                self._ctx.capture.start()
            except CaptureError as exc:
                kind = (
                    "permission_denied"
                    if isinstance(exc, PermissionDenied)
                    else "device_unavailable"
                )
                self.handle_event(
                    CaptureFailed(
                        event_type=EventType.CAPTURE_FAILED,
                        ts_ms=_now_ms(),
                        kind=kind,
                        reason=str(exc),
                    )
                )

        elif isinstance(cmd, StopCapture):
            self._ctx.capture.stop()

        elif isinstance(cmd, EnqueuePlayback):
            self._ctx.playback.enqueue(cmd.samples)

        elif isinstance(cmd, FlushPlayback):
            stopped = self._ctx.playback.flush()
            self._ctx.dedup.reset()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PLAYBACK_FLUSHED",
                "session_id": self._ctx.session_id,
                "items_stopped": stopped,
            })

        elif isinstance(cmd, ResetDedup):
            self._ctx.dedup.reset()

        elif isinstance(cmd, SendResponseCreate):
            sent = self._ctx.request_response()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "FALLBACK_RESPONSE_CREATE",
                "session_id": self._ctx.session_id,
                "sent": sent,
            })

        elif isinstance(cmd, CloseConnection):
            self._ctx.close_connection(cmd.reason)

        elif isinstance(cmd, NotifyUser):
            self._ctx.notify_user(cmd.message)

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
            )

        elif isinstance(cmd, CancelTimer):
            self._cancel_timer(cmd.timer_id)

        elif isinstance(cmd, StartMetric):
            previous = self._metric_timers.pop(cmd.name, None)
            if previous is not None:
                discard_timer(previous)
            self._metric_timers[cmd.name] = start_timer(cmd.name)

        elif isinstance(cmd, StopMetric):
            timer_id = self._metric_timers.pop(cmd.name, None)
            if timer_id is None:
                return
            if cmd.emit:
                stop_timer(
                    timer_id,
                    session_id=self._ctx.session_id,
                    state=self._state.state.value,
                    details={"turn_id": self._state.turn_id},
                )
            else:
                discard_timer(timer_id)

        else:
            raise ValueError(f"Unknown command: {cmd!r}")

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Expiry re-enters handle_event(), maintaining the single event
        entry point invariant.
        """
        self._cancel_timer(timer_id)
        token = object()

        def _on_expire() -> None:
            entry = self._timers.get(timer_id)
            if entry is None or entry[0] is not token:
                return
            del self._timers[timer_id]
            self.handle_event(self._construct_timeout_event(timeout_event_type))

        handle = self._ctx.timers.call_later(duration_ms / 1000.0, _on_expire)
        self._timers[timer_id] = (token, handle)

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        entry = self._timers.pop(timer_id, None)
        if entry is not None:
            entry[1].cancel()

    def _construct_timeout_event(self, timeout_event_type: EventType) -> Event:
        if timeout_event_type is EventType.FALLBACK_TIMEOUT:
            return FallbackTimeout(
                event_type=EventType.FALLBACK_TIMEOUT,
                ts_ms=_now_ms(),
            )

        raise ValueError(f"Unknown timeout event type: {timeout_event_type}")
