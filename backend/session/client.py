"""
Host-facing voice client.

Responsibilities:
- Create and replace VoiceSessions (at most one live at a time)
- Wire capture, playback, connection and dispatcher to the Runtime
- Translate host commands into reducer events
- Publish observables and a FIFO of UI control messages

Host contract:
    await client.start()       connect if needed, then start recording
    client.stop()              release the microphone, keep the socket
    await client.disconnect()  end the session

Control messages (drain_control() or the listener callback):
    {"type": "STATE", "state": ...}
    {"type": "SPEAKING", "speaking": bool}
    {"type": "TRANSCRIPT", "speaker": ..., "text": ..., "is_final": bool}
    {"type": "NOTIFICATION", "message": ...}
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Callable

from audio.capture import AudioCaptureEngine, AudioInputDevice
from audio.dedup import DeltaDeduplicator
from audio.playback import AudioOutputSink, PlaybackScheduler
from config import AppConfig
from context.transcript import TranscriptAccumulator, TranscriptUpdate
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.enums.state import State
from orchestrator.events import (
    ConnectFailed,
    ConnectionClosed,
    DisconnectRequested,
    EventType,
    PlaybackDrained,
    RecordStart,
    RecordStop,
    SocketOpened,
    StartRequested,
)
from orchestrator.reducer import LIVE_STATES, SESSION_STATES
from orchestrator.runtime import Runtime
from orchestrator.state_dataclass import ConversationState
from orchestrator.timers import AsyncioTimerScheduler, TimerScheduler
from session.connection import (
    AuthRejectedError,
    AuthTimeoutError,
    ConnectionManager,
    ConnectionManagerError,
    Opener,
    open_websocket,
)
from session.connection_status import ConnectionStatus
from session.dispatcher import EventDispatcher
from session.session_config import SessionConfig
from session.voice_session import VoiceSession, new_session_id
from spec import METRIC_CONNECT_LATENCY


ControlListener = Callable[[dict[str, Any]], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _failure_kind(exc: ConnectionManagerError) -> str:
    if isinstance(exc, AuthTimeoutError):
        return "auth_timeout"
    if isinstance(exc, AuthRejectedError):
        return "auth_rejected"
    return "connect"


class VoiceClient:
    """
    One client == one microphone, one speaker, one live session.

    Also serves as the RuntimeExecutionContext for its Runtime.
    """

    def __init__(
        self,
        input_device: AudioInputDevice,
        output_sink: AudioOutputSink,
        *,
        relay_url: str,
        api_key: str | None = None,
        session_config: SessionConfig | None = None,
        timers: TimerScheduler | None = None,
        opener: Opener = open_websocket,
        listener: ControlListener | None = None,
    ) -> None:
        self._relay_url = relay_url
        self._api_key = api_key
        self._session_config = session_config or SessionConfig()
        self._timers: TimerScheduler = timers or AsyncioTimerScheduler()
        self._opener = opener
        self._listener = listener

        self._transcript = TranscriptAccumulator()
        self._dedup = DeltaDeduplicator()
        self._playback = PlaybackScheduler(output_sink, on_drained=self._on_playback_drained)
        self._capture = AudioCaptureEngine(
            input_device,
            can_send=self._can_send,
            send_chunk=self._send_chunk,
        )
        self._runtime = Runtime(context=self, on_transition=self._on_transition)

        self.session: VoiceSession | None = None
        self._close_tasks: set[asyncio.Task[None]] = set()
        self._control_out: deque[dict[str, Any]] = deque()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        input_device: AudioInputDevice,
        output_sink: AudioOutputSink,
        **kwargs: Any,
    ) -> VoiceClient:
        return cls(
            input_device,
            output_sink,
            relay_url=config.relay_url,
            api_key=config.openai_api_key,
            session_config=config.session_config(),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Host commands
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Connect if needed, then start recording.

        Connection failures do not raise; they move the client to ERROR
        and publish one NOTIFICATION.
        """
        if self.session is not None and self._runtime.state.state in LIVE_STATES:
            self.start_recording()
            return

        if self.session is not None or self._runtime.state.state in SESSION_STATES:
            await self.disconnect()

        if await self._connect():
            self.start_recording()

    def stop(self) -> None:
        """Release the microphone synchronously. The socket stays open."""
        self.stop_recording()

    def start_recording(self) -> None:
        self._runtime.handle_event(RecordStart(event_type=EventType.RECORD_START, ts_ms=_now_ms()))

    def stop_recording(self) -> None:
        self._runtime.handle_event(RecordStop(event_type=EventType.RECORD_STOP, ts_ms=_now_ms()))

    async def disconnect(self) -> None:
        """End the current session. Idempotent."""
        self._runtime.handle_event(
            DisconnectRequested(event_type=EventType.DISCONNECT_REQUESTED, ts_ms=_now_ms())
        )

        session, self.session = self.session, None
        if session is not None and session.connection is not None:
            await session.connection.disconnect()
        await self._drain_close_tasks()

        self._runtime.shutdown()
        self._capture.stop()

    def update_session(self, fields: dict[str, Any]) -> bool:
        """Push a mid-session session.update. Dropped unless connected."""
        if self.session is None or self.session.connection is None:
            return False
        return self.session.connection.update_session(fields)

    async def apply_config(self, session_config: SessionConfig) -> None:
        """
        Switch to a new session configuration.

        A changed prompt reference requires a fresh session, so a live
        session is torn down and reconnected. Other changes are pushed
        with session.update.
        """
        previous, self._session_config = self._session_config, session_config
        if self.session is None or self._runtime.state.state not in LIVE_STATES:
            return

        if previous.prompt != session_config.prompt:
            await self.disconnect()
            await self._connect()
            return

        self.update_session(session_config.to_wire())

    # ------------------------------------------------------------------
    # Observables
    # ------------------------------------------------------------------

    @property
    def state(self) -> State:
        return self._runtime.state.state

    @property
    def connection_state(self) -> ConnectionStatus:
        return self.connection_status

    @property
    def is_recording(self) -> bool:
        return self._runtime.state.state is State.RECORDING

    @property
    def is_speaking(self) -> bool:
        return self._runtime.state.state is State.SPEAKING

    @property
    def audio_level(self) -> float:
        return self._capture.level

    @property
    def transcript(self) -> dict[str, str]:
        return self._transcript.snapshot()

    @property
    def session_config(self) -> SessionConfig:
        return self._session_config

    def drain_control(self) -> tuple[dict[str, Any], ...]:
        """
        Atomically drain all pending control messages.

        Returns a FIFO-ordered tuple; empty if nothing is pending.
        """
        if not self._control_out:
            return ()
        out = tuple(self._control_out)
        self._control_out.clear()
        return out

    # ------------------------------------------------------------------
    # RuntimeExecutionContext
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str | None:
        return self.session.session_id if self.session is not None else None

    @property
    def connection_status(self) -> ConnectionStatus:
        if self.session is None:
            return ConnectionStatus.CLOSED
        return self.session.connection_status

    @property
    def capture(self) -> AudioCaptureEngine:
        return self._capture

    @property
    def playback(self) -> PlaybackScheduler:
        return self._playback

    @property
    def dedup(self) -> DeltaDeduplicator:
        return self._dedup

    @property
    def timers(self) -> TimerScheduler:
        return self._timers

    def request_response(self) -> bool:
        if self.session is None or self.session.connection is None:
            return False
        return self.session.connection.request_response()

    def close_connection(self, reason: str) -> None:
        session = self.session
        if session is None or session.connection is None:
            return
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CLOSE_CONNECTION",
            "reason": reason,
            **session.log_context(),
        })
        task = asyncio.get_running_loop().create_task(session.connection.disconnect())
        self._close_tasks.add(task)
        task.add_done_callback(self._close_tasks.discard)

    def notify_user(self, message: str) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "USER_NOTIFICATION",
            "session_id": self.session_id,
            "message": message,
        })
        self._enqueue_control({"type": "NOTIFICATION", "message": message})

    # ------------------------------------------------------------------
    # Session bootstrap
    # ------------------------------------------------------------------

    async def _connect(self) -> bool:
        session = VoiceSession(
            session_id=new_session_id(),
            session_config=self._session_config,
        )

        def _on_message(raw: str | bytes) -> None:
            if session.dispatcher is not None:
                session.dispatcher.dispatch(raw)

        connection = ConnectionManager(
            self._relay_url,
            timers=self._timers,
            on_message=_on_message,
            on_open=self._on_socket_open,
            on_closed=self._on_socket_closed,
            playback=self._playback,
            opener=self._opener,
            session_id=session.session_id,
        )
        session.attach_connection(connection)
        session.attach_dispatcher(
            EventDispatcher(
                connection=connection,
                emit=self._runtime.handle_event,
                transcript=self._transcript,
                dedup=self._dedup,
                on_transcript=self._on_transcript,
                session_id=session.session_id,
            )
        )

        self.session = session
        self._transcript.reset()
        self._dedup.reset()
        self._runtime.handle_event(
            StartRequested(event_type=EventType.START_REQUESTED, ts_ms=_now_ms())
        )

        with timed(METRIC_CONNECT_LATENCY, session_id=session.session_id) as info:
            try:
                await connection.connect(self._api_key or "", self._session_config)
            except ConnectionManagerError as exc:
                info["outcome"] = _failure_kind(exc)
                # A newer start() may already have replaced this session
                if self.session is not session:
                    return False
                self._runtime.handle_event(
                    ConnectFailed(
                        event_type=EventType.CONNECT_FAILED,
                        ts_ms=_now_ms(),
                        kind=_failure_kind(exc),
                        reason=str(exc),
                    )
                )
                return False
            info["outcome"] = "ok"

        return True

    async def _drain_close_tasks(self) -> None:
        if self._close_tasks:
            await asyncio.gather(*list(self._close_tasks))

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _can_send(self) -> bool:
        return (
            self._runtime.state.state is State.RECORDING
            and self.session is not None
            and self.session.connection is not None
            and self.session.connection.is_open
        )

    def _send_chunk(self, chunk: Any) -> None:
        if self.session is not None and self.session.connection is not None:
            self.session.connection.send_audio(chunk)

    def _on_socket_open(self) -> None:
        self._runtime.handle_event(SocketOpened(event_type=EventType.SOCKET_OPENED, ts_ms=_now_ms()))

    def _on_socket_closed(self, code: int | None, reason: str) -> None:
        self._runtime.handle_event(
            ConnectionClosed(
                event_type=EventType.CONNECTION_CLOSED,
                ts_ms=_now_ms(),
                code=code,
                reason=reason,
            )
        )

    def _on_playback_drained(self) -> None:
        self._runtime.handle_event(
            PlaybackDrained(event_type=EventType.PLAYBACK_DRAINED, ts_ms=_now_ms())
        )

    def _on_transcript(self, update: TranscriptUpdate) -> None:
        self._enqueue_control({
            "type": "TRANSCRIPT",
            "speaker": update.speaker,
            "text": update.text,
            "is_final": update.is_final,
        })

    def _on_transition(self, prev: ConversationState, new: ConversationState) -> None:
        if prev.state is new.state:
            return
        self._enqueue_control({"type": "STATE", "state": new.state.value, "ts_ms": _now_ms()})

        was_speaking = prev.state is State.SPEAKING
        speaking = new.state is State.SPEAKING
        if was_speaking != speaking:
            self._enqueue_control({"type": "SPEAKING", "speaking": speaking})

    def _enqueue_control(self, msg: dict[str, Any]) -> None:
        self._control_out.append(msg)
        if self._listener is not None:
            self._listener(msg)
