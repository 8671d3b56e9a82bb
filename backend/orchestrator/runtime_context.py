"""
Runtime execution context.

Provides Runtime with live access to the client-owned imperative
resources needed for command execution (capture, playback, transport).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from typing import Protocol

import numpy as np

from orchestrator.timers import TimerScheduler
from session.connection_status import ConnectionStatus


# ---------------------------------------------------------------------
# Capability Protocols
# ---------------------------------------------------------------------

class CaptureProtocol(Protocol):
    def start(self) -> None: ...
    def stop(self) -> None: ...


class PlaybackProtocol(Protocol):
    def enqueue(self, samples: np.ndarray) -> object: ...
    def flush(self) -> int: ...


class DedupProtocol(Protocol):
    def reset(self) -> None: ...


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext(Protocol):
    """
    Imperative execution context for Runtime.

    Implementations expose *live views* of the current session so
    Runtime never caches anything across sessions.

    Runtime is allowed to:
    - Start/stop capture, schedule/flush playback
    - Ask the transport for a fallback response or a teardown
    - Surface notifications to the host

    Runtime is NOT allowed to:
    - Mutate session state directly
    - Perform orchestration decisions
    """

    @property
    def session_id(self) -> str | None: ...

    @property
    def connection_status(self) -> ConnectionStatus: ...

    @property
    def capture(self) -> CaptureProtocol: ...

    @property
    def playback(self) -> PlaybackProtocol: ...

    @property
    def dedup(self) -> DedupProtocol: ...

    @property
    def timers(self) -> TimerScheduler: ...

    def request_response(self) -> bool: ...

    def close_connection(self, reason: str) -> None: ...

    def notify_user(self, message: str) -> None: ...
