"""
Unified event definitions for the conversation reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Sources:
- Host commands (start/stop/disconnect)
- ConnectionManager (socket lifecycle)
- EventDispatcher (inbound relay messages)
- PlaybackScheduler (drained)
- Runtime timers (fallback timeout)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Host control
    # ------------------------------------------------------------------
    START_REQUESTED = "START_REQUESTED"
    RECORD_START = "RECORD_START"
    RECORD_STOP = "RECORD_STOP"
    DISCONNECT_REQUESTED = "DISCONNECT_REQUESTED"

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    SOCKET_OPENED = "SOCKET_OPENED"
    AUTH_SUCCEEDED = "AUTH_SUCCEEDED"
    CONNECT_FAILED = "CONNECT_FAILED"
    SESSION_UPDATED = "SESSION_UPDATED"
    CONNECTION_CLOSED = "CONNECTION_CLOSED"
    SERVER_ERROR = "SERVER_ERROR"

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    CAPTURE_FAILED = "CAPTURE_FAILED"

    # ------------------------------------------------------------------
    # Server VAD / input buffer
    # ------------------------------------------------------------------
    SPEECH_STARTED = "SPEECH_STARTED"
    SPEECH_STOPPED = "SPEECH_STOPPED"
    BUFFER_COMMITTED = "BUFFER_COMMITTED"

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------
    RESPONSE_CREATED = "RESPONSE_CREATED"
    TRANSCRIPT_DELTA = "TRANSCRIPT_DELTA"
    AUDIO_DELTA = "AUDIO_DELTA"
    AUDIO_DONE = "AUDIO_DONE"
    RESPONSE_DONE = "RESPONSE_DONE"
    RESPONSE_CANCELLED = "RESPONSE_CANCELLED"

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    PLAYBACK_DRAINED = "PLAYBACK_DRAINED"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    FALLBACK_TIMEOUT = "FALLBACK_TIMEOUT"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Host Control Events
# =============================================================================

@dataclass(frozen=True)
class StartRequested(Event):
    """Host asked for a new session."""


@dataclass(frozen=True)
class RecordStart(Event):
    """Host asked to start streaming microphone audio."""


@dataclass(frozen=True)
class RecordStop(Event):
    """Host asked to release the microphone."""


@dataclass(frozen=True)
class DisconnectRequested(Event):
    """Host asked to end the session."""


# =============================================================================
# Connection Events
# =============================================================================

@dataclass(frozen=True)
class SocketOpened(Event):
    """Relay socket is open; auth handshake sent."""


@dataclass(frozen=True)
class AuthSucceeded(Event):
    """Relay confirmed authentication."""


@dataclass(frozen=True)
class ConnectFailed(Event):
    """
    Connection could not be established or authenticated.

    kind: "connect" | "auth_timeout" | "auth_rejected"
    """
    kind: str
    reason: str


@dataclass(frozen=True)
class SessionUpdated(Event):
    """Relay acknowledged a session.update."""


@dataclass(frozen=True)
class ConnectionClosed(Event):
    """
    Socket closed after authentication.

    code is None when the relay reported its upstream closed.
    """
    code: int | None
    reason: str = ""


@dataclass(frozen=True)
class ServerError(Event):
    """Relay sent an error message for an authenticated session."""
    message: str


# =============================================================================
# Capture Events
# =============================================================================

@dataclass(frozen=True)
class CaptureFailed(Event):
    """Microphone acquisition failed (permission or device)."""
    kind: str
    reason: str


# =============================================================================
# Input Buffer Events
# =============================================================================

@dataclass(frozen=True)
class SpeechStarted(Event):
    """Server VAD detected the start of user speech."""


@dataclass(frozen=True)
class SpeechStopped(Event):
    """Server VAD detected the end of user speech."""


@dataclass(frozen=True)
class BufferCommitted(Event):
    """Server committed the input audio buffer."""


# =============================================================================
# Response Events
# =============================================================================

@dataclass(frozen=True)
class ResponseCreated(Event):
    """Server started an assistant response."""


@dataclass(frozen=True)
class TranscriptDelta(Event):
    """
    Incremental (or final) transcript text.

    speaker: "user" | "assistant"
    """
    speaker: str
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class AudioDelta(Event):
    """A decoded, deduplicated fragment of assistant audio (int16)."""
    samples: np.ndarray = field(compare=False, repr=False)


@dataclass(frozen=True)
class AudioDone(Event):
    """Server finished streaming audio for the response."""


@dataclass(frozen=True)
class ResponseDone(Event):
    """Server finished the response."""


@dataclass(frozen=True)
class ResponseCancelled(Event):
    """Server cancelled the in-flight response."""


# =============================================================================
# Playback / Timer Events
# =============================================================================

@dataclass(frozen=True)
class PlaybackDrained(Event):
    """The last scheduled playback item finished."""


@dataclass(frozen=True)
class FallbackTimeout(Event):
    """Grace period after buffer commit expired."""
