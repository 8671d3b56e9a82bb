"""
Live transcript accumulation.

Responsibilities:
- Accumulate incremental transcript deltas per speaker
- Replace the accumulated value with the final text when a turn completes
- Reset a speaker at the start of their next turn

Non-responsibilities:
- No persistence (transcripts live only for the current turn)
- No orchestration decisions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Speaker = Literal["user", "assistant"]

SPEAKERS: tuple[Speaker, ...] = ("user", "assistant")


@dataclass(frozen=True)
class TranscriptUpdate:
    """Current value for one speaker after applying a delta."""
    speaker: Speaker
    text: str
    is_final: bool


class TranscriptAccumulator:
    """
    Per-speaker transcript buffers.

    Invariants:
    - Each speaker's value only grows between begin_turn() calls,
      except when finalize() replaces it.
    """

    def __init__(self) -> None:
        self._text: dict[Speaker, str] = {s: "" for s in SPEAKERS}
        self._final: dict[Speaker, bool] = {s: False for s in SPEAKERS}

    def begin_turn(self, speaker: Speaker) -> None:
        self._text[speaker] = ""
        self._final[speaker] = False

    def append(self, speaker: Speaker, delta: str) -> TranscriptUpdate:
        # A delta after a final value starts a fresh turn
        if self._final[speaker]:
            self.begin_turn(speaker)
        self._text[speaker] += delta
        return TranscriptUpdate(speaker, self._text[speaker], False)

    def finalize(self, speaker: Speaker, text: str | None) -> TranscriptUpdate:
        """Replace the accumulated value with the final text (if given)."""
        if text is not None:
            self._text[speaker] = text
        self._final[speaker] = True
        return TranscriptUpdate(speaker, self._text[speaker], True)

    def current(self, speaker: Speaker) -> str:
        return self._text[speaker]

    def snapshot(self) -> dict[str, str]:
        return dict(self._text)

    def reset(self) -> None:
        for speaker in SPEAKERS:
            self.begin_turn(speaker)
