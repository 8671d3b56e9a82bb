"""
Connection status tracking for the relay socket.

Connection lifecycle is tracked separately from the conversation state
machine: CLOSED -> CONNECTING -> AWAITING_AUTH -> OPEN.

This is pure data owned by ConnectionManager.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    Relay socket lifecycle status.

    Separate from and independent of orchestrator State enum.
    Only OPEN permits outbound application messages.
    """
    CLOSED = "CLOSED"                # No socket
    CONNECTING = "CONNECTING"        # Socket opening
    AWAITING_AUTH = "AWAITING_AUTH"  # Socket open, auth handshake sent
    OPEN = "OPEN"                    # Authenticated
