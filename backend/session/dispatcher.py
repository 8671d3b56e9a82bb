"""
Inbound relay message routing.

Every text frame from the relay passes through EventDispatcher.dispatch():

    parse -> route by "type" ->
        auth / session messages   -> ConnectionManager
        transcript deltas         -> TranscriptAccumulator (+ host callback)
        audio deltas              -> DeltaDeduplicator -> codec -> AudioDelta
        everything stateful       -> Runtime (as reducer events)

Malformed frames (ProtocolError) and corrupt audio (DecodeError) are
logged and dropped; the session continues. Unknown message types are
logged at debug level and dropped.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Protocol

from audio.dedup import DeltaDeduplicator
from context.transcript import Speaker, TranscriptAccumulator, TranscriptUpdate
from observability.logger import log_event
from orchestrator.events import (
    AudioDelta,
    AudioDone,
    AuthSucceeded,
    BufferCommitted,
    ConnectionClosed,
    Event,
    EventType,
    ResponseCancelled,
    ResponseCreated,
    ResponseDone,
    ServerError,
    SessionUpdated,
    SpeechStarted,
    SpeechStopped,
    TranscriptDelta,
)
from protocol.codec import DecodeError, decode
from protocol.messages import MessageType, ProtocolError, error_text, parse_message


class AuthSink(Protocol):
    """The part of ConnectionManager the dispatcher drives."""

    @property
    def is_open(self) -> bool: ...

    def on_auth_result(self, ok: bool, message: str = "") -> bool: ...

    def on_session_updated(self, session: dict[str, Any]) -> None: ...


Handler = Callable[[dict[str, Any]], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# Known message types that carry nothing this client acts on
_IGNORED_TYPES = frozenset({
    MessageType.SESSION_CREATED,
    "conversation.item.created",
    "conversation.created",
    "input_audio_buffer.cleared",
    "rate_limits.updated",
    "response.output_item.added",
    "response.output_item.done",
    "response.content_part.added",
    "response.content_part.done",
    "ping",
    "pong",
})


class EventDispatcher:
    """Routes parsed relay messages to their consumers."""

    def __init__(
        self,
        *,
        connection: AuthSink,
        emit: Callable[[Event], None],
        transcript: TranscriptAccumulator,
        dedup: DeltaDeduplicator,
        on_transcript: Callable[[TranscriptUpdate], None] | None = None,
        session_id: str | None = None,
    ) -> None:
        self._connection = connection
        self._emit = emit
        self._transcript = transcript
        self._dedup = dedup
        self._on_transcript = on_transcript
        self._session_id = session_id

        self.dropped_malformed: int = 0
        self.dropped_corrupt_audio: int = 0

        self._handlers: dict[str, Handler] = {
            MessageType.AUTH_SUCCESS: self._on_auth_success,
            MessageType.AUTH_FAILED: self._on_auth_failed,
            MessageType.AUTH_ERROR: self._on_auth_failed,
            MessageType.SESSION_UPDATED: self._on_session_updated,
            MessageType.SPEECH_STARTED: self._on_speech_started,
            MessageType.ITEM_SPEECH_STARTED: self._on_speech_started,
            MessageType.SPEECH_STOPPED: self._simple(SpeechStopped, EventType.SPEECH_STOPPED),
            MessageType.ITEM_SPEECH_STOPPED: self._simple(SpeechStopped, EventType.SPEECH_STOPPED),
            MessageType.COMMITTED: self._simple(BufferCommitted, EventType.BUFFER_COMMITTED),
            MessageType.ITEM_COMMITTED: self._simple(BufferCommitted, EventType.BUFFER_COMMITTED),
            MessageType.USER_TRANSCRIPT_DELTA: self._transcript_delta("user"),
            MessageType.USER_TRANSCRIPT_COMPLETED: self._transcript_final("user"),
            MessageType.ASSISTANT_TRANSCRIPT_DELTA: self._transcript_delta("assistant"),
            MessageType.ASSISTANT_TRANSCRIPT_DONE: self._transcript_final("assistant"),
            MessageType.RESPONSE_CREATED: self._on_response_created,
            MessageType.RESPONSE_CREATE: self._on_response_created,
            MessageType.AUDIO_DELTA: self._on_audio_delta,
            MessageType.AUDIO_DONE: self._simple(AudioDone, EventType.AUDIO_DONE),
            MessageType.RESPONSE_DONE: self._simple(ResponseDone, EventType.RESPONSE_DONE),
            MessageType.RESPONSE_CANCELLED: self._simple(
                ResponseCancelled, EventType.RESPONSE_CANCELLED
            ),
            MessageType.ERROR: self._on_error,
            MessageType.CONNECTION_CLOSED: self._on_connection_closed,
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def dispatch(self, raw: str | bytes) -> None:
        """Route one inbound frame. Never raises for bad input."""
        try:
            message = parse_message(raw)
        except ProtocolError as exc:
            self.dropped_malformed += 1
            self._log("PROTOCOL_ERROR", level="warning", error=str(exc), raw_len=len(raw))
            return

        msg_type = message["type"]
        handler = self._handlers.get(msg_type)
        if handler is None:
            self._log(
                "MESSAGE_IGNORED",
                level="debug",
                message_type=msg_type,
                known=msg_type in _IGNORED_TYPES,
            )
            return

        handler(message)

    # ------------------------------------------------------------------
    # Auth / session
    # ------------------------------------------------------------------

    def _on_auth_success(self, message: dict[str, Any]) -> None:  # pylint: disable=unused-argument
        if self._connection.on_auth_result(True):
            self._emit(AuthSucceeded(event_type=EventType.AUTH_SUCCEEDED, ts_ms=_now_ms()))

    def _on_auth_failed(self, message: dict[str, Any]) -> None:
        self._connection.on_auth_result(False, error_text(message))

    def _on_session_updated(self, message: dict[str, Any]) -> None:
        session = message.get("session")
        self._connection.on_session_updated(session if isinstance(session, dict) else {})
        self._emit(SessionUpdated(event_type=EventType.SESSION_UPDATED, ts_ms=_now_ms()))

    def _on_error(self, message: dict[str, Any]) -> None:
        text = error_text(message)
        self._log("SERVER_ERROR", level="error", error=text)
        if not self._connection.is_open:
            # Before authentication an error is a rejection of the handshake
            self._connection.on_auth_result(False, text)
            return
        self._emit(ServerError(event_type=EventType.SERVER_ERROR, ts_ms=_now_ms(), message=text))

    def _on_connection_closed(self, message: dict[str, Any]) -> None:
        reason = error_text(message) if "error" in message else "relay upstream closed"
        if not self._connection.is_open:
            self._connection.on_auth_result(False, reason)
            return
        self._emit(
            ConnectionClosed(
                event_type=EventType.CONNECTION_CLOSED,
                ts_ms=_now_ms(),
                code=None,
                reason=reason,
            )
        )

    # ------------------------------------------------------------------
    # Input buffer / response
    # ------------------------------------------------------------------

    def _on_speech_started(self, message: dict[str, Any]) -> None:  # pylint: disable=unused-argument
        self._transcript.begin_turn("user")
        self._emit(SpeechStarted(event_type=EventType.SPEECH_STARTED, ts_ms=_now_ms()))

    def _on_response_created(self, message: dict[str, Any]) -> None:  # pylint: disable=unused-argument
        self._transcript.begin_turn("assistant")
        self._emit(ResponseCreated(event_type=EventType.RESPONSE_CREATED, ts_ms=_now_ms()))

    def _simple(self, cls: type[Event], event_type: EventType) -> Handler:
        def _handler(message: dict[str, Any]) -> None:  # pylint: disable=unused-argument
            self._emit(cls(event_type=event_type, ts_ms=_now_ms()))
        return _handler

    # ------------------------------------------------------------------
    # Transcripts
    # ------------------------------------------------------------------

    def _transcript_delta(self, speaker: Speaker) -> Handler:
        def _handler(message: dict[str, Any]) -> None:
            delta = message.get("delta")
            if not isinstance(delta, str) or not delta:
                return
            self._publish(self._transcript.append(speaker, delta))
        return _handler

    def _transcript_final(self, speaker: Speaker) -> Handler:
        def _handler(message: dict[str, Any]) -> None:
            text = message.get("transcript")
            self._publish(
                self._transcript.finalize(speaker, text if isinstance(text, str) else None)
            )
        return _handler

    def _publish(self, update: TranscriptUpdate) -> None:
        if self._on_transcript is not None:
            self._on_transcript(update)
        self._emit(
            TranscriptDelta(
                event_type=EventType.TRANSCRIPT_DELTA,
                ts_ms=_now_ms(),
                speaker=update.speaker,
                text=update.text,
                is_final=update.is_final,
            )
        )

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    def _on_audio_delta(self, message: dict[str, Any]) -> None:
        delta = message.get("delta")
        if not isinstance(delta, str) or not delta:
            self._log("AUDIO_DELTA_EMPTY", level="debug")
            return

        if self._dedup.is_duplicate(delta):
            self._log("AUDIO_DELTA_DUPLICATE", level="debug", delta_len=len(delta))
            return

        try:
            samples = decode(delta)
        except DecodeError as exc:
            self.dropped_corrupt_audio += 1
            self._log("AUDIO_DECODE_ERROR", level="warning", error=str(exc), delta_len=len(delta))
            return

        self._emit(AudioDelta(event_type=EventType.AUDIO_DELTA, ts_ms=_now_ms(), samples=samples))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log(self, event_type: str, *, level: str, **details: Any) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "level": level,
            "session_id": self._session_id,
            **details,
        })
