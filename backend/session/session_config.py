"""
Session configuration value objects.

A session is configured either by a server-side prompt reference or by
free-text instructions, never both. The prompt reference is NOT part of
the authentication handshake; it is pushed with a follow-up
session.update once the relay confirms authentication.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from spec import (
    AUDIO_WIRE_FORMAT,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MODALITIES,
    DEFAULT_PROMPT_VERSION,
    DEFAULT_TEMPERATURE,
    DEFAULT_TRANSCRIPTION_MODEL,
    DEFAULT_VOICE,
    TURN_DETECTION_SERVER_VAD,
    VAD_PREFIX_PADDING_MS_DEFAULT,
    VAD_SILENCE_DURATION_MS_DEFAULT,
    VAD_THRESHOLD_DEFAULT,
)


@dataclass(frozen=True)
class PromptRef:
    """Reference to a stored server-side prompt."""
    id: str
    version: str = DEFAULT_PROMPT_VERSION

    def to_wire(self) -> dict[str, str]:
        return {"id": self.id, "version": self.version}


@dataclass(frozen=True)
class TurnDetection:
    """Server-side voice activity detection thresholds."""
    type: str = TURN_DETECTION_SERVER_VAD
    threshold: float = VAD_THRESHOLD_DEFAULT
    prefix_padding_ms: int = VAD_PREFIX_PADDING_MS_DEFAULT
    silence_duration_ms: int = VAD_SILENCE_DURATION_MS_DEFAULT

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "threshold": self.threshold,
            "prefix_padding_ms": self.prefix_padding_ms,
            "silence_duration_ms": self.silence_duration_ms,
        }


@dataclass(frozen=True)
class SessionConfig:
    """
    Immutable session configuration.

    Invariant:
        prompt and instructions are mutually exclusive. When a prompt
        reference is present the instructions are never sent.
    """
    voice: str = DEFAULT_VOICE
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL
    turn_detection: TurnDetection = field(default_factory=TurnDetection)
    modalities: tuple[str, ...] = DEFAULT_MODALITIES
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    prompt: PromptRef | None = None
    instructions: str | None = None

    def __post_init__(self) -> None:
        if self.prompt is not None and self.instructions is not None:
            raise ValueError("prompt and instructions are mutually exclusive")

    def with_prompt(self, prompt: PromptRef | None) -> SessionConfig:
        """Return a copy using the given prompt reference (drops instructions)."""
        return replace(self, prompt=prompt, instructions=None)

    def to_wire(self) -> dict[str, Any]:
        """
        Serialize for the authentication handshake.

        The prompt reference is deliberately absent; see prompt_update().
        """
        payload: dict[str, Any] = {
            "modalities": list(self.modalities),
            "voice": self.voice,
            "input_audio_format": AUDIO_WIRE_FORMAT,
            "output_audio_format": AUDIO_WIRE_FORMAT,
            "input_audio_transcription": {"model": self.transcription_model},
            "turn_detection": self.turn_detection.to_wire(),
            "temperature": self.temperature,
            "max_response_output_tokens": self.max_output_tokens,
        }
        if self.prompt is None and self.instructions is not None:
            payload["instructions"] = self.instructions
        return payload

    def prompt_update(self) -> dict[str, Any] | None:
        """Session fields to push after authentication, if any."""
        if self.prompt is None:
            return None
        return {"prompt": self.prompt.to_wire()}
