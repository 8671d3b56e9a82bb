"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from session.session_config import PromptRef, SessionConfig, TurnDetection
from spec import (
    DEFAULT_INSTRUCTIONS,
    DEFAULT_PROMPT_VERSION,
    DEFAULT_RELAY_URL,
    DEFAULT_TRANSCRIPTION_MODEL,
    DEFAULT_UPSTREAM_URL,
    DEFAULT_VOICE,
    RELAY_PORT_DEFAULT,
    VAD_PREFIX_PADDING_MS_DEFAULT,
    VAD_SILENCE_DURATION_MS_DEFAULT,
    VAD_THRESHOLD_DEFAULT,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the voice client and the relay server.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Client connection
    # ------------------------------------------------------------------

    relay_url: str
    openai_api_key: str | None

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    voice: str
    transcription_model: str
    prompt_id: str | None
    prompt_version: str
    instructions: str
    vad_threshold: float
    vad_prefix_padding_ms: int
    vad_silence_duration_ms: int

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Relay server
    # ------------------------------------------------------------------

    relay_upstream_url: str
    relay_port: int

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    def session_config(self) -> SessionConfig:
        """Build the session configuration sent during authentication."""
        prompt = None
        if self.prompt_id:
            prompt = PromptRef(id=self.prompt_id, version=self.prompt_version)

        return SessionConfig(
            voice=self.voice,
            transcription_model=self.transcription_model,
            turn_detection=TurnDetection(
                threshold=self.vad_threshold,
                prefix_padding_ms=self.vad_prefix_padding_ms,
                silence_duration_ms=self.vad_silence_duration_ms,
            ),
            prompt=prompt,
            instructions=None if prompt else self.instructions,
        )

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            relay_url=os.environ.get("VOICE_RELAY_URL", DEFAULT_RELAY_URL),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),

            voice=os.environ.get("REALTIME_VOICE", DEFAULT_VOICE),
            transcription_model=os.environ.get(
                "REALTIME_TRANSCRIPTION_MODEL", DEFAULT_TRANSCRIPTION_MODEL
            ),
            prompt_id=os.environ.get("REALTIME_PROMPT_ID") or None,
            prompt_version=os.environ.get(
                "REALTIME_PROMPT_VERSION", DEFAULT_PROMPT_VERSION
            ),
            instructions=os.environ.get("REALTIME_INSTRUCTIONS", DEFAULT_INSTRUCTIONS),
            vad_threshold=float(
                os.environ.get("VAD_THRESHOLD", VAD_THRESHOLD_DEFAULT)
            ),
            vad_prefix_padding_ms=int(
                os.environ.get("VAD_PREFIX_PADDING_MS", VAD_PREFIX_PADDING_MS_DEFAULT)
            ),
            vad_silence_duration_ms=int(
                os.environ.get("VAD_SILENCE_DURATION_MS", VAD_SILENCE_DURATION_MS_DEFAULT)
            ),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            relay_upstream_url=os.environ.get("RELAY_UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
            relay_port=int(os.environ.get("RELAY_PORT", RELAY_PORT_DEFAULT)),
        )
