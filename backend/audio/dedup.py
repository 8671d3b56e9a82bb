"""
Duplicate audio delta suppression.

The relay may deliver the same audio delta more than once within a
response. Deltas are fingerprinted by their first
DEDUP_FINGERPRINT_PREFIX_CHARS characters plus total length; the set of
seen fingerprints is scoped to a single response.
"""

from __future__ import annotations

from spec import DEDUP_FINGERPRINT_PREFIX_CHARS


def fingerprint(delta: str) -> str:
    return f"{delta[:DEDUP_FINGERPRINT_PREFIX_CHARS]}_{len(delta)}"


class DeltaDeduplicator:
    """Per-response set of seen audio delta fingerprints."""

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self.duplicates_dropped: int = 0

    def is_duplicate(self, delta: str) -> bool:
        """
        Return True if this delta was already seen in the current response.

        A first sighting is recorded, so a second call with the same
        payload returns True.
        """
        key = fingerprint(delta)
        if key in self._seen:
            self.duplicates_dropped += 1
            return True
        self._seen.add(key)
        return False

    def reset(self) -> None:
        """Forget all fingerprints (new response or playback flush)."""
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
