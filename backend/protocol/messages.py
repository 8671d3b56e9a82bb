"""
JSON text messages exchanged with the relay.

Outbound (client -> relay):
    auth                       {"type", "apiKey", "sessionConfig"}
    session.update             {"type", "session"}
    input_audio_buffer.append  {"type", "audio"}
    response.create            {"type"}

Inbound messages are parsed into plain dicts here and routed by
session.dispatcher.EventDispatcher.
"""

from __future__ import annotations

import json
from typing import Any


# -------------------------
# Exceptions
# -------------------------

class ProtocolError(Exception):
    """Inbound message is malformed or not a typed JSON object."""


# -------------------------
# Message types
# -------------------------

class MessageType:
    """Wire discriminants (the "type" field)."""

    # Outbound
    AUTH = "auth"
    SESSION_UPDATE = "session.update"
    AUDIO_APPEND = "input_audio_buffer.append"
    RESPONSE_CREATE = "response.create"

    # Inbound: auth / session
    AUTH_SUCCESS = "auth.success"
    AUTH_FAILED = "auth.failed"
    AUTH_ERROR = "auth.error"
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"

    # Inbound: input buffer (both spellings are seen in the wild)
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    COMMITTED = "input_audio_buffer.committed"
    ITEM_SPEECH_STARTED = "conversation.item.input_audio_buffer.speech_started"
    ITEM_SPEECH_STOPPED = "conversation.item.input_audio_buffer.speech_stopped"
    ITEM_COMMITTED = "conversation.item.input_audio_buffer.committed"

    # Inbound: transcripts
    USER_TRANSCRIPT_DELTA = "conversation.item.input_audio_transcription.delta"
    USER_TRANSCRIPT_COMPLETED = "conversation.item.input_audio_transcription.completed"
    ASSISTANT_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    ASSISTANT_TRANSCRIPT_DONE = "response.audio_transcript.done"

    # Inbound: response
    RESPONSE_CREATED = "response.created"
    AUDIO_DELTA = "response.audio.delta"
    AUDIO_DONE = "response.audio.done"
    RESPONSE_DONE = "response.done"
    RESPONSE_CANCELLED = "response.cancelled"

    # Inbound: failures
    ERROR = "error"
    CONNECTION_CLOSED = "connection.closed"


# -------------------------
# Parsing
# -------------------------

def parse_message(raw: str | bytes) -> dict[str, Any]:
    """
    Parse one inbound text frame.

    Raises:
        ProtocolError if the frame is not JSON, not an object, or has no
        string "type".
    """
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"invalid JSON: {e}") from e

    if not isinstance(message, dict):
        raise ProtocolError(f"expected JSON object, got {type(message).__name__}")

    msg_type = message.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise ProtocolError("message has no type")

    return message


def error_text(message: dict[str, Any]) -> str:
    """Best-effort human-readable text from an error-bearing message."""
    error = message.get("error")
    if isinstance(error, dict):
        text = error.get("message") or error.get("details")
        if text:
            return str(text)
    elif isinstance(error, str) and error:
        return error
    return str(message.get("message") or "unknown error")


# -------------------------
# Builders
# -------------------------

def auth_message(api_key: str, session_config: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": MessageType.AUTH,
        "apiKey": api_key,
        "sessionConfig": session_config,
    }


def session_update(session: dict[str, Any]) -> dict[str, Any]:
    return {"type": MessageType.SESSION_UPDATE, "session": session}


def audio_append(payload: str) -> dict[str, Any]:
    return {"type": MessageType.AUDIO_APPEND, "audio": payload}


def response_create() -> dict[str, Any]:
    return {"type": MessageType.RESPONSE_CREATE}
