# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from config import AppConfig
from context.transcript import TranscriptAccumulator
from session.session_config import PromptRef, SessionConfig


# ---------------------------------------------------------------------
# SessionConfig
# ---------------------------------------------------------------------

def test_wire_payload_uses_pcm16_and_server_vad() -> None:
    wire = SessionConfig(instructions="Be brief.").to_wire()

    assert wire["input_audio_format"] == "pcm16"
    assert wire["output_audio_format"] == "pcm16"
    assert wire["turn_detection"]["type"] == "server_vad"
    assert wire["modalities"] == ["text", "audio"]
    assert wire["instructions"] == "Be brief."


def test_prompt_and_instructions_are_mutually_exclusive() -> None:
    with pytest.raises(ValueError):
        SessionConfig(prompt=PromptRef(id="pmpt_1"), instructions="Be brief.")


def test_with_prompt_drops_instructions() -> None:
    config = SessionConfig(instructions="Be brief.").with_prompt(PromptRef(id="pmpt_1", version="2"))

    assert config.instructions is None
    assert "instructions" not in config.to_wire()
    assert config.prompt_update() == {"prompt": {"id": "pmpt_1", "version": "2"}}


def test_no_prompt_means_no_follow_up_update() -> None:
    assert SessionConfig().prompt_update() is None


# ---------------------------------------------------------------------
# AppConfig
# ---------------------------------------------------------------------

def test_defaults_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("VOICE_RELAY_URL", "REALTIME_PROMPT_ID", "RELAY_PORT", "VAD_THRESHOLD"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig.load_from_env()

    assert config.relay_url == "ws://localhost:3002/api/openai-realtime"
    assert config.relay_port == 3002
    assert config.prompt_id is None
    assert config.session_config().instructions == config.instructions


def test_prompt_id_from_environment_replaces_instructions(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REALTIME_PROMPT_ID", "pmpt_env")
    monkeypatch.setenv("REALTIME_PROMPT_VERSION", "5")
    monkeypatch.setenv("VAD_SILENCE_DURATION_MS", "800")

    session = AppConfig.load_from_env().session_config()

    assert session.prompt == PromptRef(id="pmpt_env", version="5")
    assert session.instructions is None
    assert session.turn_detection.silence_duration_ms == 800


def test_invalid_numeric_variable_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAY_PORT", "not-a-port")

    with pytest.raises(ValueError):
        AppConfig.load_from_env()


# ---------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------

def test_delta_after_final_starts_a_new_turn() -> None:
    transcript = TranscriptAccumulator()
    transcript.append("user", "hello")
    transcript.finalize("user", "Hello.")

    update = transcript.append("user", "again")

    assert update.text == "again"
    assert not update.is_final


def test_finalize_without_text_keeps_accumulated_value() -> None:
    transcript = TranscriptAccumulator()
    transcript.append("assistant", "Sure")

    update = transcript.finalize("assistant", None)

    assert update.text == "Sure"
    assert update.is_final
