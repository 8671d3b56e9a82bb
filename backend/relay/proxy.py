"""
Relay between a voice client and the upstream realtime speech API.

One RelaySession per client WebSocket:

1. Client sends {"type": "auth", "apiKey", "sessionConfig"}
2. Relay opens the upstream socket with the key, pushes the session
   config as session.update, then replies auth.success
3. Afterwards every message is forwarded verbatim in both directions

Before authentication, audio appends are dropped silently and any other
message is answered with an error. When upstream closes the client gets
{"type": "connection.closed"}.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Protocol

from fastapi import WebSocket, WebSocketDisconnect
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from observability.logger import log_event
from protocol.messages import MessageType, ProtocolError, parse_message, session_update
from spec import UPSTREAM_BETA_HEADER


class UpstreamSocket(Protocol):
    async def send(self, message: str) -> None: ...
    async def recv(self) -> str | bytes: ...
    async def close(self) -> None: ...


UpstreamConnector = Callable[[str, str], Awaitable[UpstreamSocket]]


async def connect_upstream(url: str, api_key: str) -> UpstreamSocket:
    return await ws_connect(
        url,
        additional_headers={
            "Authorization": f"Bearer {api_key}",
            "OpenAI-Beta": UPSTREAM_BETA_HEADER,
        },
    )


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class RelaySession:
    """Brokers one client socket to one upstream socket."""

    def __init__(
        self,
        client: WebSocket,
        *,
        upstream_url: str,
        session_id: str,
        default_api_key: str | None = None,
        connector: UpstreamConnector = connect_upstream,
    ) -> None:
        self._client = client
        self._upstream_url = upstream_url
        self._session_id = session_id
        self._default_api_key = default_api_key
        self._connector = connector

        self._upstream: UpstreamSocket | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._closed = False
        self.dropped_audio: int = 0

    @property
    def authenticated(self) -> bool:
        return self._upstream is not None

    async def run(self) -> None:
        """Serve the client until it disconnects."""
        try:
            while True:
                text = await self._client.receive_text()
                await self.on_client_text(text)
        except WebSocketDisconnect:
            self._log("RELAY_CLIENT_DISCONNECTED")
        finally:
            await self.close()

    async def on_client_text(self, text: str) -> None:
        try:
            message = parse_message(text)
        except ProtocolError as exc:
            await self._send_error("Invalid message", str(exc))
            return

        msg_type = message["type"]
        if msg_type == MessageType.AUTH:
            await self._authenticate(message)
            return

        if self._upstream is None:
            if msg_type == MessageType.AUDIO_APPEND:
                self.dropped_audio += 1
                return
            await self._send_error("Not authenticated", f"received {msg_type} before auth")
            return

        await self._upstream.send(text)

    async def close(self) -> None:
        """Tear down upstream. Idempotent."""
        self._closed = True
        task, self._pump_task = self._pump_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        upstream, self._upstream = self._upstream, None
        if upstream is not None:
            await upstream.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _authenticate(self, message: dict[str, Any]) -> None:
        if self._upstream is not None:
            await self._send_error("Already authenticated", "duplicate auth message")
            return

        api_key = message.get("apiKey") or self._default_api_key
        if not api_key:
            await self._send({"type": MessageType.AUTH_FAILED, "error": {"message": "Missing API key"}})
            return

        try:
            upstream = await self._connector(self._upstream_url, api_key)
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            self._log("RELAY_UPSTREAM_CONNECT_FAILED", level="error", error=str(exc))
            await self._send_error("Failed to connect to upstream", str(exc))
            return

        self._upstream = upstream
        session_config = message.get("sessionConfig")
        if isinstance(session_config, dict) and session_config:
            await upstream.send(json.dumps(session_update(session_config)))

        await self._send({"type": MessageType.AUTH_SUCCESS})
        self._pump_task = asyncio.create_task(self._pump(upstream))
        self._log("RELAY_AUTHENTICATED")

    async def _pump(self, upstream: UpstreamSocket) -> None:
        try:
            while True:
                raw = await upstream.recv()
                await self._client.send_text(
                    raw if isinstance(raw, str) else raw.decode("utf-8")
                )
        except ConnectionClosed as exc:
            code = exc.rcvd.code if exc.rcvd is not None else None
            self._log("RELAY_UPSTREAM_CLOSED", code=code)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log(
                "RELAY_PUMP_ERROR",
                level="error",
                exception=type(exc).__name__,
                message=str(exc),
            )
            await self._send_error("Upstream error", str(exc))

        self._upstream = None
        if not self._closed:
            await self._send({"type": MessageType.CONNECTION_CLOSED})

    async def _send_error(self, message: str, details: str) -> None:
        await self._send({"type": MessageType.ERROR, "error": {"message": message, "details": details}})

    async def _send(self, message: dict[str, Any]) -> None:
        if self._closed:
            return
        try:
            await self._client.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError) as exc:
            # Client went away; run() observes the disconnect
            self._log("RELAY_CLIENT_SEND_FAILED", level="debug", error=str(exc))

    def _log(self, event_type: str, *, level: str = "info", **details: Any) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "level": level,
            "session_id": self._session_id,
            **details,
        })
