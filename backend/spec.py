"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for all behavioral invariants of the voice client.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Audio Format (PCM16 mono @ 24kHz)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 24_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit, little-endian)
AUDIO_WIRE_FORMAT: Final[str] = "pcm16"

# Capture block size handed to the encoder on every device tick
CAPTURE_FRAME_SAMPLES: Final[int] = 4096

PCM16_MIN: Final[int] = -32768
PCM16_MAX: Final[int] = 32767
PCM16_SCALE: Final[float] = 32768.0

# =============================================================================
# Level Meter
# =============================================================================

LEVEL_NOISE_FLOOR_DB: Final[float] = -60.0
LEVEL_MAX: Final[float] = 100.0

# =============================================================================
# Connection & Authentication
# =============================================================================

CONNECT_TIMEOUT_MS: Final[int] = 10_000
AUTH_TIMEOUT_MS: Final[int] = 15_000

# Close codes treated as a clean shutdown
NORMAL_CLOSE_CODES: Final[Tuple[int, ...]] = (1000, 1001)
ABNORMAL_CLOSE_CODE: Final[int] = 1006

DEFAULT_RELAY_URL: Final[str] = "ws://localhost:3002/api/openai-realtime"
DEFAULT_UPSTREAM_URL: Final[str] = (
    "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview"
)
UPSTREAM_BETA_HEADER: Final[str] = "realtime=v1"
RELAY_PATH: Final[str] = "/api/openai-realtime"
RELAY_PORT_DEFAULT: Final[int] = 3002

# =============================================================================
# Turn Taking
# =============================================================================

# Grace period between buffer commit and the fallback response.create.
# Tunable: races with the server's own VAD-driven auto response.
RESPONSE_FALLBACK_GRACE_MS: Final[int] = 100

# =============================================================================
# Delta Deduplication
# =============================================================================

DEDUP_FINGERPRINT_PREFIX_CHARS: Final[int] = 20

# =============================================================================
# Session Defaults
# =============================================================================

DEFAULT_VOICE: Final[str] = "alloy"
DEFAULT_TRANSCRIPTION_MODEL: Final[str] = "whisper-1"
DEFAULT_INSTRUCTIONS: Final[str] = "You are a helpful assistant."
DEFAULT_PROMPT_VERSION: Final[str] = "1"
DEFAULT_MODALITIES: Final[Tuple[str, ...]] = ("text", "audio")
DEFAULT_TEMPERATURE: Final[float] = 0.8
DEFAULT_MAX_OUTPUT_TOKENS: Final[int] = 4096

TURN_DETECTION_SERVER_VAD: Final[str] = "server_vad"
VAD_THRESHOLD_DEFAULT: Final[float] = 0.5
VAD_PREFIX_PADDING_MS_DEFAULT: Final[int] = 300
VAD_SILENCE_DURATION_MS_DEFAULT: Final[int] = 500

# =============================================================================
# Observability
# =============================================================================

# Per-session metrics (authoritative list):
# - connect_latency    (connect() call to auth confirmation)
# - response_latency   (user speech end to first assistant audio)
METRIC_CONNECT_LATENCY: Final[str] = "connect_latency"
METRIC_RESPONSE_LATENCY: Final[str] = "response_latency"
