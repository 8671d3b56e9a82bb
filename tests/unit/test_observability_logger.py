# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger
from observability import metrics


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", lines.append)
    monkeypatch.setattr(logger, "_enabled", True)
    monkeypatch.setattr(logger, "_min_level", logger._LEVELS["info"])  # pylint: disable=protected-access
    return lines


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Payload must be preserved exactly
    assert json.loads(captured[0]) == payload


def test_unserializable_payload_falls_back(captured: list[str]) -> None:
    logger.log_event({"ts_ms": 5, "event_type": "TEST", "obj": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["ts_ms"] == 5


# ---------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------

def test_events_below_level_are_dropped(captured: list[str]) -> None:
    logger.configure(enabled=True, level="WARNING")

    logger.log_event({"event_type": "A", "level": "debug"})
    logger.log_event({"event_type": "B", "level": "info"})
    logger.log_event({"event_type": "C", "level": "error"})
    logger.log_event({"event_type": "D"})

    assert [json.loads(line)["event_type"] for line in captured] == ["C", "D"]


def test_disabled_logger_writes_nothing(captured: list[str]) -> None:
    logger.configure(enabled=False)

    logger.log_event({"event_type": "TEST"})

    assert not captured


def test_unknown_level_name_falls_back_to_info(captured: list[str]) -> None:
    logger.configure(level="verbose")

    logger.log_event({"event_type": "A", "level": "debug"})
    logger.log_event({"event_type": "B", "level": "info"})

    assert [json.loads(line)["event_type"] for line in captured] == ["B"]


# ---------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------

def test_stop_timer_emits_one_metric(captured: list[str]) -> None:
    timer_id = metrics.start_timer("connect_latency")

    duration = metrics.stop_timer(timer_id, session_id="sess_1")

    assert duration is not None and duration >= 0
    assert len(captured) == 1
    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "METRIC_TIMER"
    assert decoded["metric"] == "connect_latency"
    assert decoded["session_id"] == "sess_1"

    # Second stop is a no-op
    assert metrics.stop_timer(timer_id) is None
    assert len(captured) == 1


def test_discarded_timer_never_emits(captured: list[str]) -> None:
    timer_id = metrics.start_timer("response_latency")

    assert metrics.discard_timer(timer_id) is True
    assert metrics.stop_timer(timer_id) is None
    assert not captured


def test_timed_emits_even_when_block_raises(captured: list[str]) -> None:
    with pytest.raises(RuntimeError):
        with metrics.timed("connect_latency") as info:
            info["outcome"] = "connect"
            raise RuntimeError("boom")

    decoded = json.loads(captured[0])
    assert decoded["details"] == {"outcome": "connect"}
