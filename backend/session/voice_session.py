"""
Voice session container.

- One VoiceSession per connect attempt; at most one live per client
- Owns the relay connection and its dispatcher
- Owned and replaced by VoiceClient
- NOT a state machine
- Contains no orchestration logic
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from session.connection import ConnectionManager
from session.connection_status import ConnectionStatus
from session.dispatcher import EventDispatcher
from session.session_config import SessionConfig


def new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# ---------------------------------------------------------------------
# VoiceSession
# ---------------------------------------------------------------------


@dataclass
class VoiceSession:
    """Mutable runtime container for a single relay session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    session_config: SessionConfig

    # ------------------------------------------------------------------
    # Transport (attached by VoiceClient during bootstrap)
    # ------------------------------------------------------------------

    connection: ConnectionManager | None = None
    dispatcher: EventDispatcher | None = None

    # ------------------------------------------------------------------
    # Wiring helpers
    # ------------------------------------------------------------------

    def attach_connection(self, connection: ConnectionManager) -> None:
        self.connection = connection

    def attach_dispatcher(self, dispatcher: EventDispatcher) -> None:
        self.dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def connection_status(self) -> ConnectionStatus:
        if self.connection is None:
            return ConnectionStatus.CLOSED
        return self.connection.status

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "connection_status": self.connection_status.value,
        }
