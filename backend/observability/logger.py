"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging

Events may carry an optional "level" key ("debug", "info", "warning",
"error"). Events below the configured level are dropped; events without
a level are always written.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_LEVELS: dict[str, int] = {"debug": 10, "info": 20, "warning": 30, "error": 40}

_enabled: bool = True
_min_level: int = _LEVELS["info"]


def configure(*, enabled: bool = True, level: str = "INFO") -> None:
    """
    Apply process-wide logging settings (normally from AppConfig).

    Unknown level names fall back to INFO.
    """
    global _enabled, _min_level  # pylint: disable=global-statement
    _enabled = enabled
    _min_level = _LEVELS.get(level.lower(), _LEVELS["info"])


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, session_id, state, etc.

    This function:
    - Serializes to JSON
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    if not _enabled:
        return

    level = event.get("level")
    if isinstance(level, str) and _LEVELS.get(level, _min_level) < _min_level:
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback; logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
