"""
Relay socket lifecycle.

    CLOSED -> CONNECTING -> AWAITING_AUTH -> OPEN

connect() opens the socket, sends the auth handshake and resolves once
the relay confirms authentication. Two independent timers guard it:

- connect timer (CONNECT_TIMEOUT_MS): socket never opened   -> ConnectError
- auth timer (AUTH_TIMEOUT_MS, armed at socket open)        -> AuthTimeoutError

Both check the connection status before acting, so a timer that fires
after success is a no-op.

Outbound messages go through an ordered queue drained by a writer task;
send() never blocks and silently drops anything while not OPEN.

There is no automatic retry. Failures surface once; the caller decides
whether to connect again.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Protocol

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from audio.frames import OutboundAudioChunk
from observability.logger import log_event
from orchestrator.timers import TimerHandle, TimerScheduler
from protocol.messages import (
    audio_append,
    auth_message,
    response_create,
    session_update,
)
from session.connection_status import ConnectionStatus
from session.session_config import SessionConfig
from spec import ABNORMAL_CLOSE_CODE, AUTH_TIMEOUT_MS, CONNECT_TIMEOUT_MS


# -------------------------
# Exceptions
# -------------------------

class ConnectionManagerError(Exception):
    """Base class for connection establishment failures."""


class ConnectError(ConnectionManagerError):
    """Socket never opened, or closed before authentication completed."""


class AuthTimeoutError(ConnectionManagerError):
    """Socket opened but the relay never confirmed authentication."""


class AuthRejectedError(ConnectionManagerError):
    """Relay explicitly rejected the handshake."""


# -------------------------
# Socket protocol
# -------------------------

class SocketProtocol(Protocol):
    async def send(self, message: str) -> None: ...
    async def recv(self) -> str | bytes: ...
    async def close(self) -> None: ...


Opener = Callable[[str], Awaitable[SocketProtocol]]


async def open_websocket(url: str) -> SocketProtocol:
    return await ws_connect(url)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class _Flushable(Protocol):
    def flush(self) -> int: ...


# -------------------------
# Manager
# -------------------------

class ConnectionManager:
    """Owns one relay socket at a time."""

    def __init__(
        self,
        url: str,
        *,
        timers: TimerScheduler,
        on_message: Callable[[str | bytes], None],
        on_open: Callable[[], None] | None = None,
        on_closed: Callable[[int | None, str], None] | None = None,
        playback: _Flushable | None = None,
        opener: Opener = open_websocket,
        session_id: str | None = None,
    ) -> None:
        self._url = url
        self._timers = timers
        self._on_message = on_message
        self._on_open = on_open
        self._on_closed = on_closed
        self._playback = playback
        self._opener = opener
        self._session_id = session_id

        self.status = ConnectionStatus.CLOSED
        self.authenticated = False
        self.pending_prompt: dict[str, Any] | None = None

        self._ws: SocketProtocol | None = None
        self._outbox: asyncio.Queue[dict[str, Any]] | None = None
        self._auth_future: asyncio.Future[None] | None = None
        self._connect_timer: TimerHandle | None = None
        self._auth_timer: TimerHandle | None = None
        self._open_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self.status is ConnectionStatus.OPEN

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    async def connect(self, api_key: str, session_config: SessionConfig) -> None:
        """
        Open the socket and authenticate.

        Raises:
            ConnectError, AuthTimeoutError, AuthRejectedError
        """
        if self.status is not ConnectionStatus.CLOSED:
            raise ConnectError(f"connection already {self.status.value.lower()}")

        loop = asyncio.get_running_loop()
        self._closing = False
        self.authenticated = False
        self.pending_prompt = session_config.prompt_update()
        self._auth_future = loop.create_future()
        self._set_status(ConnectionStatus.CONNECTING)

        self._connect_timer = self._timers.call_later(
            CONNECT_TIMEOUT_MS / 1000.0, self._on_connect_timeout
        )
        self._open_task = loop.create_task(
            self._open(auth_message(api_key, session_config.to_wire()))
        )

        try:
            await self._auth_future
        except (ConnectionManagerError, asyncio.CancelledError):
            await self._teardown()
            raise

    async def _open(self, auth: dict[str, Any]) -> None:
        try:
            ws = await self._opener(self._url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            self._fail(ConnectError(f"could not open {self._url}: {e}"))
            return

        if self.status is not ConnectionStatus.CONNECTING:
            # Timed out or disconnected while the handshake was in flight
            await ws.close()
            return

        self._ws = ws
        self._cancel(self._connect_timer)
        self._connect_timer = None

        self._outbox = asyncio.Queue()
        self._writer_task = asyncio.create_task(self._writer(ws, self._outbox))
        self._reader_task = asyncio.create_task(self._reader(ws))
        self._outbox.put_nowait(auth)

        self._set_status(ConnectionStatus.AWAITING_AUTH)
        self._auth_timer = self._timers.call_later(
            AUTH_TIMEOUT_MS / 1000.0, self._on_auth_timeout
        )
        if self._on_open is not None:
            self._on_open()

    def _on_connect_timeout(self) -> None:
        if self.status is ConnectionStatus.CONNECTING:
            self._fail(ConnectError(f"timed out after {CONNECT_TIMEOUT_MS} ms"))

    def _on_auth_timeout(self) -> None:
        if self.status is ConnectionStatus.AWAITING_AUTH:
            self._fail(AuthTimeoutError(f"no auth response within {AUTH_TIMEOUT_MS} ms"))

    def _fail(self, exc: ConnectionManagerError) -> None:
        future = self._auth_future
        if future is not None and not future.done():
            future.set_exception(exc)

    # ------------------------------------------------------------------
    # Auth / session (driven by the dispatcher)
    # ------------------------------------------------------------------

    def on_auth_result(self, ok: bool, message: str = "") -> bool:
        """
        Resolve the pending handshake.

        Returns False if no handshake is pending (late or duplicate).
        """
        future = self._auth_future
        if (
            self.status is not ConnectionStatus.AWAITING_AUTH
            or future is None
            or future.done()
        ):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "AUTH_RESULT_IGNORED",
                "level": "debug",
                "session_id": self._session_id,
                "status": self.status.value,
                "ok": ok,
            })
            return False

        self._cancel(self._auth_timer)
        self._auth_timer = None

        if not ok:
            self._fail(AuthRejectedError(message or "authentication rejected"))
            return True

        self.authenticated = True
        self._set_status(ConnectionStatus.OPEN)
        future.set_result(None)

        if self.pending_prompt is not None:
            self.send(session_update(self.pending_prompt))
        return True

    def on_session_updated(self, session: dict[str, Any]) -> None:
        """Clear the pending prompt once the server echoes it back."""
        if self.pending_prompt is None:
            return
        echoed = session.get("prompt")
        if not isinstance(echoed, dict):
            return
        if echoed.get("id") == self.pending_prompt["prompt"].get("id"):
            self.pending_prompt = None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def send(self, message: dict[str, Any]) -> bool:
        """Queue a message for the writer. Dropped unless OPEN."""
        if self.status is not ConnectionStatus.OPEN or self._outbox is None:
            return False
        self._outbox.put_nowait(message)
        return True

    def send_audio(self, chunk: OutboundAudioChunk) -> None:
        self.send(audio_append(chunk.payload))

    def update_session(self, fields: dict[str, Any]) -> bool:
        """Push a mid-session configuration change."""
        if "prompt" in fields:
            self.pending_prompt = {"prompt": fields["prompt"]}
        return self.send(session_update(fields))

    def request_response(self) -> bool:
        return self.send(response_create())

    # ------------------------------------------------------------------
    # Socket loops
    # ------------------------------------------------------------------

    async def _writer(
        self, ws: SocketProtocol, outbox: asyncio.Queue[dict[str, Any]]
    ) -> None:
        while True:
            message = await outbox.get()
            try:
                await ws.send(json.dumps(message))
            except ConnectionClosed:
                # The reader reports the close
                return

    async def _reader(self, ws: SocketProtocol) -> None:
        try:
            while True:
                raw = await ws.recv()
                self._on_message(raw)
        except ConnectionClosed as e:
            if e.rcvd is not None:
                self._handle_remote_close(e.rcvd.code, e.rcvd.reason)
            else:
                self._handle_remote_close(ABNORMAL_CLOSE_CODE, "")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "READER_FATAL_ERROR",
                "level": "error",
                "session_id": self._session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            self._handle_remote_close(ABNORMAL_CLOSE_CODE, f"reader failed: {exc}")

    def _handle_remote_close(self, code: int, reason: str) -> None:
        if self._closing:
            return

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SOCKET_CLOSED_BY_PEER",
            "session_id": self._session_id,
            "status": self.status.value,
            "code": code,
            "reason": reason,
        })

        if self.status is not ConnectionStatus.OPEN:
            if code == ABNORMAL_CLOSE_CODE:
                detail = "connection refused or dropped before authentication"
            else:
                detail = f"closed before authentication (code {code}: {reason})"
            self._fail(ConnectError(detail))
            return

        self._closing = True
        self.authenticated = False
        self._set_status(ConnectionStatus.CLOSED)
        if self._on_closed is not None:
            self._on_closed(code, reason)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def disconnect(self) -> None:
        """Close the socket, cancel timers, flush playback. Idempotent."""
        self._closing = True
        self._fail(ConnectError("disconnected"))
        await self._teardown()

    async def _teardown(self) -> None:
        self._closing = True
        self._cancel(self._connect_timer)
        self._cancel(self._auth_timer)
        self._connect_timer = None
        self._auth_timer = None

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._open_task, self._reader_task, self._writer_task)
            if task is not None and not task.done() and task is not current
        ]
        self._open_task = self._reader_task = self._writer_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()

        self._outbox = None
        self.authenticated = False
        if self._playback is not None:
            self._playback.flush()
        self._set_status(ConnectionStatus.CLOSED)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CONNECTION_STATUS",
            "session_id": self._session_id,
            "from_status": self.status.value,
            "to_status": status.value,
            "url": self._url,
        })
        self.status = status

    @staticmethod
    def _cancel(handle: TimerHandle | None) -> None:
        if handle is not None:
            handle.cancel()
