# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

import pytest

from audio.frames import OutboundAudioChunk
from fakes import (
    FakeClock,
    FakeSocket,
    hanging_opener,
    opener_for,
    refusing_opener,
    settle,
)
from session.connection import (
    AuthRejectedError,
    AuthTimeoutError,
    ConnectError,
    ConnectionManager,
    Opener,
)
from session.connection_status import ConnectionStatus
from session.session_config import PromptRef, SessionConfig


class Harness:
    def __init__(self, opener: Opener) -> None:
        self.clock = FakeClock()
        self.messages: list[Any] = []
        self.opened: list[bool] = []
        self.closed: list[tuple[int | None, str]] = []
        self.manager = ConnectionManager(
            "ws://relay.test/api/openai-realtime",
            timers=self.clock,
            on_message=self.messages.append,
            on_open=lambda: self.opened.append(True),
            on_closed=lambda code, reason: self.closed.append((code, reason)),
            opener=opener,
            session_id="sess_test",
        )

    def connect(self, config: SessionConfig | None = None) -> "asyncio.Task[None]":
        return asyncio.create_task(self.manager.connect("sk-test", config or SessionConfig()))


async def open_session(
    sock: FakeSocket, config: SessionConfig | None = None
) -> Harness:
    h = Harness(opener_for(sock))
    task = h.connect(config)
    await settle()
    assert h.manager.on_auth_result(True)
    await task
    await settle()
    return h


# ---------------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------------

def test_connect_sends_auth_and_resolves_on_success() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = Harness(opener_for(sock))

        task = h.connect()
        await settle()

        assert h.manager.status is ConnectionStatus.AWAITING_AUTH
        assert h.opened == [True]
        assert sock.sent[0]["type"] == "auth"
        assert sock.sent[0]["apiKey"] == "sk-test"
        assert sock.sent[0]["sessionConfig"]["voice"] == "alloy"
        assert not task.done()

        assert h.manager.on_auth_result(True) is True
        await task

        assert h.manager.is_open
        assert h.manager.authenticated
        await h.manager.disconnect()
        assert sock.closed

    asyncio.run(scenario())


def test_prompt_is_sent_after_auth_not_in_handshake() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        config = SessionConfig().with_prompt(PromptRef(id="pmpt_123", version="4"))

        h = await open_session(sock, config)

        assert "prompt" not in sock.sent[0]["sessionConfig"]
        assert "instructions" not in sock.sent[0]["sessionConfig"]
        assert sock.sent[1] == {
            "type": "session.update",
            "session": {"prompt": {"id": "pmpt_123", "version": "4"}},
        }
        assert h.manager.pending_prompt is not None

        # The handshake acknowledgment carries no prompt
        h.manager.on_session_updated({"voice": "alloy"})
        assert h.manager.pending_prompt is not None

        h.manager.on_session_updated({"prompt": {"id": "pmpt_123", "version": "4"}})
        assert h.manager.pending_prompt is None
        await h.manager.disconnect()

    asyncio.run(scenario())


def test_rejected_auth_raises() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = Harness(opener_for(sock))
        task = h.connect()
        await settle()

        h.manager.on_auth_result(False, "Invalid API key")

        with pytest.raises(AuthRejectedError, match="Invalid API key"):
            await task
        assert h.manager.status is ConnectionStatus.CLOSED
        assert sock.closed

    asyncio.run(scenario())


def test_late_auth_result_is_ignored() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = await open_session(sock)

        assert h.manager.on_auth_result(True) is False
        assert h.manager.on_auth_result(False, "late") is False
        assert h.manager.is_open
        await h.manager.disconnect()

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------

def test_connect_timeout_when_socket_never_opens() -> None:
    async def scenario() -> None:
        h = Harness(hanging_opener)
        task = h.connect()
        await settle()
        assert h.manager.status is ConnectionStatus.CONNECTING

        h.clock.advance(10.0)

        with pytest.raises(ConnectError, match="timed out"):
            await task
        assert h.manager.status is ConnectionStatus.CLOSED

    asyncio.run(scenario())


def test_auth_timeout_is_independent_of_connect_timeout() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = Harness(opener_for(sock))
        task = h.connect()
        await settle()

        # Connect timer was cancelled when the socket opened
        h.clock.advance(10.0)
        await settle()
        assert not task.done()
        assert h.manager.status is ConnectionStatus.AWAITING_AUTH

        # Auth timer runs from socket open
        h.clock.advance(5.0)
        with pytest.raises(AuthTimeoutError):
            await task
        assert sock.closed

    asyncio.run(scenario())


def test_timers_are_inert_after_success() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = await open_session(sock)

        h.clock.advance(60.0)
        await settle()

        assert h.manager.is_open
        await h.manager.disconnect()

    asyncio.run(scenario())


def test_refused_connection_raises_connect_error() -> None:
    async def scenario() -> None:
        h = Harness(refusing_opener)

        with pytest.raises(ConnectError, match="connection refused"):
            await h.connect()
        assert h.opened == []

    asyncio.run(scenario())


def test_close_before_auth_is_a_connect_error() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = Harness(opener_for(sock))
        task = h.connect()
        await settle()

        sock.push_close(1006)

        with pytest.raises(ConnectError, match="before authentication"):
            await task
        assert h.closed == []

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------

def test_send_is_dropped_unless_open() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = Harness(opener_for(sock))
        task = h.connect()
        await settle()

        assert h.manager.send({"type": "response.create"}) is False

        h.manager.on_auth_result(True)
        await task
        assert h.manager.request_response() is True
        await settle()
        assert sock.sent_types() == ["auth", "response.create"]

        await h.manager.disconnect()
        assert h.manager.send({"type": "response.create"}) is False

    asyncio.run(scenario())


def test_outbound_messages_keep_order() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = await open_session(sock)

        for seq in range(1, 4):
            h.manager.send_audio(OutboundAudioChunk(sequence_num=seq, payload=f"AAA{seq}"))
        h.manager.request_response()
        await settle()

        assert [m.get("audio") for m in sock.sent[1:4]] == ["AAA1", "AAA2", "AAA3"]
        assert sock.sent[-1] == {"type": "response.create"}
        await h.manager.disconnect()

    asyncio.run(scenario())


def test_update_session_tracks_pending_prompt() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = await open_session(sock)

        assert h.manager.update_session({"prompt": {"id": "pmpt_9", "version": "1"}})

        assert h.manager.pending_prompt == {"prompt": {"id": "pmpt_9", "version": "1"}}
        await h.manager.disconnect()

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Inbound / close
# ---------------------------------------------------------------------

def test_inbound_frames_reach_on_message() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = await open_session(sock)

        sock.push({"type": "session.updated"})
        await settle()

        assert h.messages == ['{"type": "session.updated"}']
        await h.manager.disconnect()

    asyncio.run(scenario())


def test_remote_close_after_auth_reports_code() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = await open_session(sock)

        sock.push_close(1011, "internal error")
        await settle()

        assert h.closed == [(1011, "internal error")]
        assert h.manager.status is ConnectionStatus.CLOSED
        await h.manager.disconnect()

    asyncio.run(scenario())


def test_disconnect_is_idempotent_and_silent() -> None:
    async def scenario() -> None:
        sock = FakeSocket()
        h = await open_session(sock)

        await h.manager.disconnect()
        await h.manager.disconnect()

        assert h.closed == []
        assert h.manager.status is ConnectionStatus.CLOSED

    asyncio.run(scenario())


def test_disconnect_while_connecting_fails_the_attempt() -> None:
    async def scenario() -> None:
        h = Harness(hanging_opener)
        task = h.connect()
        await settle()

        await h.manager.disconnect()

        with pytest.raises(ConnectError, match="disconnected"):
            await task

    asyncio.run(scenario())
