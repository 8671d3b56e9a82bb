"""
Pure reducer for the conversation state machine.

    reduce(state, event) -> (new_state, commands)

Transition table (summary):

    IDLE/ERROR/CLOSED  --StartRequested-->   CONNECTING
    CONNECTING         --SocketOpened-->     AUTHENTICATING
    AUTHENTICATING     --AuthSucceeded-->    READY
    READY              --RecordStart-->      RECORDING          [StartCapture]
    RECORDING          --RecordStop-->       READY              [StopCapture]
    RECORDING          --SpeechStopped-->    AWAITING_RESPONSE
    RECORDING          --BufferCommitted-->  AWAITING_RESPONSE  [StartTimer fallback]
    AWAITING_RESPONSE  --AudioDelta-->       SPEAKING           [EnqueuePlayback]
    SPEAKING           --ResponseDone + PlaybackDrained--> READY
    AWAITING_RESPONSE  --ResponseDone-->     READY              (no audio)
    *live*             --ResponseCancelled-> READY              [FlushPlayback]
    *live*             --ServerError-->      READY              [StopCapture, NotifyUser]
    *any session*      --abnormal close/connect failure--> ERROR
    *any session*      --DisconnectRequested--> CLOSED

The reducer never logs directly; it emits LogEvent commands. State-change
logs are always emitted last so they describe the settled state.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

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
from orchestrator.enums.state import State
from orchestrator.events import (
    AudioDelta,
    AudioDone,
    AuthSucceeded,
    BufferCommitted,
    CaptureFailed,
    ConnectFailed,
    ConnectionClosed,
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
from orchestrator.state_dataclass import ConversationState
from spec import (
    METRIC_RESPONSE_LATENCY,
    NORMAL_CLOSE_CODES,
    RESPONSE_FALLBACK_GRACE_MS,
)

TIMER_RESPONSE_FALLBACK = "response_fallback"

# States with a live Session behind them
SESSION_STATES = frozenset({
    State.CONNECTING,
    State.AUTHENTICATING,
    State.READY,
    State.RECORDING,
    State.AWAITING_RESPONSE,
    State.SPEAKING,
})

# Authenticated states
LIVE_STATES = frozenset({
    State.READY,
    State.RECORDING,
    State.AWAITING_RESPONSE,
    State.SPEAKING,
})

# States from which response activity moves the turn to SPEAKING
_PRE_SPEAKING_STATES = frozenset({
    State.READY,
    State.RECORDING,
    State.AWAITING_RESPONSE,
})

_CONNECT_FAILURE_MESSAGES: dict[str, str] = {
    "connect": "Could not connect to the voice service: {reason}",
    "auth_timeout": "The voice service did not confirm the session in time.",
    "auth_rejected": "The voice service rejected the session: {reason}",
}

_CAPTURE_FAILURE_MESSAGES: dict[str, str] = {
    "permission_denied": "Microphone access was denied.",
    "device_unavailable": "No microphone is available: {reason}",
}


# =============================================================================
# Helpers
# =============================================================================

def _log(
    state: ConversationState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "turn_id": state.turn_id,
            "capture_active": state.capture_active,
            "playback_active": state.playback_active,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: ConversationState, event: Event, reason: str
) -> tuple[ConversationState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _transition(
    prev: ConversationState,
    new_state: ConversationState,
    event: Event,
    source: str,
    commands: list[Command] | None = None,
) -> tuple[ConversationState, tuple[Command, ...]]:
    cmds: list[Command] = list(commands or [])
    if prev.state is not new_state.state:
        cmds.append(
            _log(
                new_state,
                event,
                "state_changed",
                {
                    "from_state": prev.state.value,
                    "to_state": new_state.state.value,
                    "source": source,
                },
            )
        )
    else:
        cmds.append(_log(new_state, event, source))
    return new_state, _logs_last(tuple(cmds))


def _teardown(state: ConversationState) -> list[Command]:
    """Release capture, playback, timers and pending metrics."""
    cmds: list[Command] = []
    if state.capture_active:
        cmds.append(StopCapture())
    cmds.append(FlushPlayback())
    if state.fallback_armed:
        cmds.append(CancelTimer(timer_id=TIMER_RESPONSE_FALLBACK))
    if state.response_latency_pending:
        cmds.append(StopMetric(name=METRIC_RESPONSE_LATENCY, emit=False))
    return cmds


def _end_session_flags(state: ConversationState, to: State) -> ConversationState:
    return replace(
        state,
        state=to,
        capture_active=False,
        response_started=False,
        response_done=False,
        playback_active=False,
        response_cancelled=False,
        fallback_armed=False,
        response_latency_pending=False,
    )


def _enter_error(
    state: ConversationState,
    event: Event,
    reason: str,
    message: str,
) -> tuple[ConversationState, tuple[Command, ...]]:
    new_state = replace(_end_session_flags(state, State.ERROR), last_error=reason)
    cmds = _teardown(state)
    cmds.append(CloseConnection(reason=reason))
    cmds.append(NotifyUser(message=message))
    cmds.append(_log(new_state, event, "enter_error", {"reason": reason}))
    return _transition(state, new_state, event, "enter_error", cmds)


def _complete_turn(
    state: ConversationState,
    event: Event,
    source: str,
    extra: list[Command] | None = None,
) -> tuple[ConversationState, tuple[Command, ...]]:
    cmds: list[Command] = list(extra or [])
    if state.fallback_armed:
        cmds.append(CancelTimer(timer_id=TIMER_RESPONSE_FALLBACK))
    if state.response_latency_pending:
        cmds.append(StopMetric(name=METRIC_RESPONSE_LATENCY, emit=False))

    new_state = replace(
        state,
        state=State.READY,
        turn_id=state.turn_id + 1,
        response_started=False,
        response_done=False,
        playback_active=False,
        fallback_armed=False,
        response_latency_pending=False,
    )
    return _transition(state, new_state, event, source, cmds)


def _response_activity(state: ConversationState) -> tuple[ConversationState, list[Command]]:
    """Mark the response as started and disarm the fallback timer."""
    cmds: list[Command] = []
    if state.fallback_armed:
        cmds.append(CancelTimer(timer_id=TIMER_RESPONSE_FALLBACK))
    return replace(state, response_started=True, fallback_armed=False), cmds


def _begin_speaking(
    state: ConversationState,
    event: Event,
    playback: list[Command],
) -> tuple[ConversationState, tuple[Command, ...]]:
    new_state, cmds = _response_activity(state)
    cmds.extend(playback)

    if state.state is not State.SPEAKING:
        if new_state.response_latency_pending:
            cmds.append(StopMetric(name=METRIC_RESPONSE_LATENCY))
        new_state = replace(new_state, state=State.SPEAKING, response_latency_pending=False)

    if playback:
        new_state = replace(new_state, playback_active=True)

    return _transition(state, new_state, event, "response_activity", cmds)


def _await_response(state: ConversationState, cmds: list[Command]) -> ConversationState:
    if not state.response_latency_pending:
        cmds.append(StartMetric(name=METRIC_RESPONSE_LATENCY))
    return replace(state, state=State.AWAITING_RESPONSE, response_latency_pending=True)


# =============================================================================
# Reducer
# =============================================================================

def reduce(
    state: ConversationState, event: Event
) -> tuple[ConversationState, tuple[Command, ...]]:
    """
    Pure reducer for the voice client state machine.

    Given the current conversation state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    """
    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    if isinstance(event, StartRequested):
        if state.state in (State.IDLE, State.ERROR, State.CLOSED):
            new_state = ConversationState(state=State.CONNECTING, turn_id=state.turn_id)
            return _transition(state, new_state, event, "start_requested")
        return _ignore(state, event, "session_active")

    if isinstance(event, DisconnectRequested):
        if state.state in SESSION_STATES:
            cmds = _teardown(state)
            cmds.append(CloseConnection(reason="disconnect_requested"))
            new_state = _end_session_flags(state, State.CLOSED)
            return _transition(state, new_state, event, "disconnect_requested", cmds)
        if state.state is State.ERROR:
            new_state = _end_session_flags(state, State.CLOSED)
            return _transition(state, new_state, event, "disconnect_requested")
        return _ignore(state, event, "no_session")

    if state.state not in SESSION_STATES:
        return _ignore(state, event, "no_session")

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------
    if isinstance(event, SocketOpened):
        if state.state is State.CONNECTING:
            return _transition(
                state, replace(state, state=State.AUTHENTICATING), event, "socket_opened"
            )
        return _ignore(state, event, "not_connecting")

    if isinstance(event, AuthSucceeded):
        if state.state is State.AUTHENTICATING:
            return _transition(
                state, replace(state, state=State.READY), event, "auth_succeeded"
            )
        return _ignore(state, event, "not_authenticating")

    if isinstance(event, ConnectFailed):
        if state.state in (State.CONNECTING, State.AUTHENTICATING):
            template = _CONNECT_FAILURE_MESSAGES.get(
                event.kind, _CONNECT_FAILURE_MESSAGES["connect"]
            )
            return _enter_error(
                state,
                event,
                f"{event.kind}:{event.reason}",
                template.format(reason=event.reason),
            )
        return _ignore(state, event, "late_connect_failure")

    if isinstance(event, ConnectionClosed):
        if event.code in NORMAL_CLOSE_CODES:
            cmds = _teardown(state)
            cmds.append(CloseConnection(reason="closed_by_peer"))
            new_state = _end_session_flags(state, State.CLOSED)
            return _transition(state, new_state, event, "connection_closed", cmds)
        if event.code is None:
            message = "The voice service closed the session."
        else:
            message = f"Connection to the voice service was lost (code {event.code})."
        return _enter_error(state, event, f"connection_closed:{event.code}", message)

    if isinstance(event, ServerError):
        message = f"Voice service error: {event.message}"
        if state.state not in LIVE_STATES:
            return _enter_error(state, event, f"server_error:{event.message}", message)
        # Non-fatal once authenticated: the socket stays open
        cmds = [StopCapture()] if state.capture_active else []
        if state.fallback_armed:
            cmds.append(CancelTimer(timer_id=TIMER_RESPONSE_FALLBACK))
        if state.response_latency_pending:
            cmds.append(StopMetric(name=METRIC_RESPONSE_LATENCY, emit=False))
        cmds.append(NotifyUser(message=message))
        turn_id = state.turn_id
        if state.state in (State.AWAITING_RESPONSE, State.SPEAKING):
            turn_id += 1
        new_state = replace(
            state,
            state=State.READY,
            turn_id=turn_id,
            capture_active=False,
            response_started=False,
            response_done=False,
            fallback_armed=False,
            response_latency_pending=False,
            last_error=f"server_error:{event.message}",
        )
        return _transition(state, new_state, event, "server_error", cmds)

    if isinstance(event, SessionUpdated):
        return state, (_log(state, event, "session_updated"),)

    # ------------------------------------------------------------------
    # Everything below requires an authenticated session
    # ------------------------------------------------------------------
    if state.state not in LIVE_STATES:
        return _ignore(state, event, "not_authenticated")

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    if isinstance(event, RecordStart):
        if state.state is State.READY:
            cmds: list[Command] = [] if state.capture_active else [StartCapture()]
            new_state = replace(state, state=State.RECORDING, capture_active=True)
            return _transition(state, new_state, event, "record_start", cmds)
        if state.state is State.RECORDING:
            return _ignore(state, event, "already_recording")
        return _ignore(state, event, "turn_in_progress")

    if isinstance(event, RecordStop):
        if state.state is State.RECORDING:
            new_state = replace(state, state=State.READY, capture_active=False)
            return _transition(state, new_state, event, "record_stop", [StopCapture()])
        if state.capture_active:
            new_state = replace(state, capture_active=False)
            return _transition(state, new_state, event, "release_capture", [StopCapture()])
        return _ignore(state, event, "not_recording")

    if isinstance(event, CaptureFailed):
        template = _CAPTURE_FAILURE_MESSAGES.get(
            event.kind, _CAPTURE_FAILURE_MESSAGES["device_unavailable"]
        )
        to = State.READY if state.state is State.RECORDING else state.state
        new_state = replace(
            state,
            state=to,
            capture_active=False,
            last_error=f"{event.kind}:{event.reason}",
        )
        return _transition(
            state,
            new_state,
            event,
            "capture_failed",
            [NotifyUser(message=template.format(reason=event.reason))],
        )

    # ------------------------------------------------------------------
    # Input buffer (server VAD)
    # ------------------------------------------------------------------
    if isinstance(event, SpeechStarted):
        return state, (_log(state, event, "speech_started"),)

    if isinstance(event, SpeechStopped):
        if state.state is State.RECORDING:
            cmds = []
            new_state = _await_response(state, cmds)
            return _transition(state, new_state, event, "speech_stopped", cmds)
        return _ignore(state, event, "not_recording")

    if isinstance(event, BufferCommitted):
        if state.state not in (State.RECORDING, State.AWAITING_RESPONSE):
            return _ignore(state, event, "not_in_turn")
        cmds = []
        new_state = replace(state, response_cancelled=False)
        if state.state is State.RECORDING:
            new_state = _await_response(new_state, cmds)
        if not new_state.response_started:
            cmds.append(
                StartTimer(
                    timer_id=TIMER_RESPONSE_FALLBACK,
                    duration_ms=RESPONSE_FALLBACK_GRACE_MS,
                    timeout_event_type=EventType.FALLBACK_TIMEOUT,
                )
            )
            new_state = replace(new_state, fallback_armed=True)
        return _transition(state, new_state, event, "buffer_committed", cmds)

    if isinstance(event, FallbackTimeout):
        new_state = replace(state, fallback_armed=False)
        if state.state is State.AWAITING_RESPONSE and not state.response_started:
            return _transition(
                state, new_state, event, "fallback_response_create", [SendResponseCreate()]
            )
        return new_state, (
            _log(new_state, event, "ignore", {"reason": "response_already_started"}),
        )

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------
    if isinstance(event, ResponseCreated):
        new_state, cmds = _response_activity(state)
        cmds.append(ResetDedup())
        new_state = replace(new_state, response_done=False, response_cancelled=False)
        if state.state in (State.READY, State.RECORDING):
            new_state = _await_response(new_state, cmds)
        return _transition(state, new_state, event, "response_created", cmds)

    if isinstance(event, AudioDelta):
        if state.response_cancelled:
            return _ignore(state, event, "response_cancelled")
        return _begin_speaking(state, event, [EnqueuePlayback(samples=event.samples)])

    if isinstance(event, TranscriptDelta):
        if event.speaker != "assistant":
            return state, (
                _log(
                    state,
                    event,
                    "user_transcript",
                    {"len": len(event.text), "is_final": event.is_final},
                ),
            )
        if state.response_cancelled:
            return _ignore(state, event, "response_cancelled")
        if state.state in _PRE_SPEAKING_STATES or state.state is State.SPEAKING:
            return _begin_speaking(state, event, [])
        return _ignore(state, event, "no_turn")

    if isinstance(event, AudioDone):
        return state, (_log(state, event, "audio_done"),)

    if isinstance(event, ResponseDone):
        if state.state is State.SPEAKING:
            if state.playback_active:
                new_state, cmds = _response_activity(state)
                new_state = replace(new_state, response_done=True)
                return _transition(state, new_state, event, "await_playback_drain", cmds)
            return _complete_turn(state, event, "response_done")
        if state.state is State.AWAITING_RESPONSE:
            return _complete_turn(state, event, "response_done_without_audio")
        new_state = replace(
            state, response_started=False, response_done=False, fallback_armed=False
        )
        cmds = [CancelTimer(timer_id=TIMER_RESPONSE_FALLBACK)] if state.fallback_armed else []
        return _transition(state, new_state, event, "response_done_outside_turn", cmds)

    if isinstance(event, ResponseCancelled):
        cancelled = replace(state, response_cancelled=True)
        if state.state in (State.AWAITING_RESPONSE, State.SPEAKING):
            return _complete_turn(cancelled, event, "response_cancelled", [FlushPlayback()])
        new_state = replace(cancelled, playback_active=False, response_started=False)
        return _transition(state, new_state, event, "response_cancelled", [FlushPlayback()])

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    if isinstance(event, PlaybackDrained):
        new_state = replace(state, playback_active=False)
        if state.state is State.SPEAKING and state.response_done:
            return _complete_turn(new_state, event, "playback_drained")
        return new_state, (_log(new_state, event, "playback_drained_waiting"),)

    return _ignore(state, event, "unhandled_event")
