"""
Authoritative conversation state enumeration.

Rules:
- This enum defines ONLY the control-plane states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class State(str, Enum):
    """
    Turn-taking states for a single voice client.

    These states represent conversation intent, NOT socket status
    (see session.connection_status.ConnectionStatus).
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    READY = "READY"
    RECORDING = "RECORDING"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    SPEAKING = "SPEAKING"
    ERROR = "ERROR"
    CLOSED = "CLOSED"
