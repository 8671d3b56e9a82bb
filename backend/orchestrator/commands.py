"""
Side-effect command definitions for the conversation reducer.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from orchestrator.events import EventType

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging, replay,
    and runtime dispatch.
    """

    # Capture
    START_CAPTURE = "START_CAPTURE"
    STOP_CAPTURE = "STOP_CAPTURE"

    # Playback
    ENQUEUE_PLAYBACK = "ENQUEUE_PLAYBACK"
    FLUSH_PLAYBACK = "FLUSH_PLAYBACK"
    RESET_DEDUP = "RESET_DEDUP"

    # Transport
    SEND_RESPONSE_CREATE = "SEND_RESPONSE_CREATE"
    CLOSE_CONNECTION = "CLOSE_CONNECTION"

    # Host
    NOTIFY_USER = "NOTIFY_USER"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"
    START_METRIC = "START_METRIC"
    STOP_METRIC = "STOP_METRIC"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Capture Commands
# =============================================================================

@dataclass(frozen=True)
class StartCapture(Command):
    """Acquire the microphone and begin per-frame processing."""
    command_type: CommandType = CommandType.START_CAPTURE


@dataclass(frozen=True)
class StopCapture(Command):
    """Release the microphone synchronously."""
    command_type: CommandType = CommandType.STOP_CAPTURE


# =============================================================================
# Playback Commands
# =============================================================================

@dataclass(frozen=True)
class EnqueuePlayback(Command):
    """Schedule decoded int16 samples after the current playback tail."""
    samples: np.ndarray = field(compare=False, repr=False)
    command_type: CommandType = CommandType.ENQUEUE_PLAYBACK


@dataclass(frozen=True)
class FlushPlayback(Command):
    """Stop all scheduled audio and forget seen delta fingerprints."""
    command_type: CommandType = CommandType.FLUSH_PLAYBACK


@dataclass(frozen=True)
class ResetDedup(Command):
    """Start a new per-response fingerprint scope."""
    command_type: CommandType = CommandType.RESET_DEDUP


# =============================================================================
# Transport Commands
# =============================================================================

@dataclass(frozen=True)
class SendResponseCreate(Command):
    """Ask the relay to start a response (fallback only)."""
    command_type: CommandType = CommandType.SEND_RESPONSE_CREATE


@dataclass(frozen=True)
class CloseConnection(Command):
    """Tear down the current socket (idempotent)."""
    reason: str
    command_type: CommandType = CommandType.CLOSE_CONNECTION


# =============================================================================
# Host Commands
# =============================================================================

@dataclass(frozen=True)
class NotifyUser(Command):
    """Surface one human-readable message to the host."""
    message: str
    command_type: CommandType = CommandType.NOTIFY_USER


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start (or restart) a named timer.

    On expiration, the runtime must inject the specified timeout event.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously scheduled timer."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT


@dataclass(frozen=True)
class StartMetric(Command):
    """Begin a latency measurement (restarts if already running)."""
    name: str
    command_type: CommandType = CommandType.START_METRIC


@dataclass(frozen=True)
class StopMetric(Command):
    """
    End a latency measurement.

    emit=False discards the measurement (abandoned turn).
    """
    name: str
    emit: bool = True
    command_type: CommandType = CommandType.STOP_METRIC
