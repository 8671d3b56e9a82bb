"""
Authoritative conversation state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
- Only the reducer produces new snapshots; the runtime swaps them in.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.state import State


@dataclass(frozen=True)
class ConversationState:
    """Immutable snapshot of all reducer-owned state."""

    state: State = State.IDLE

    # Monotonic turn counter (one user-speech-to-response cycle)
    turn_id: int = 0

    # Microphone is held open by the capture engine
    capture_active: bool = False

    # Response tracking for the current turn
    response_started: bool = False
    response_done: bool = False
    playback_active: bool = False

    # Set by response.cancelled; late fragments of that response are dropped
    response_cancelled: bool = False

    # Fallback response.create timer is armed
    fallback_armed: bool = False

    # Latency measurement speech-end -> first audio is running
    response_latency_pending: bool = False

    last_error: str | None = None
