"""
Cancellable timer scheduling.

All temporal behavior (connect timeout, auth timeout, response fallback)
goes through a TimerScheduler so tests can drive time with a fake clock.
The asyncio implementation wraps loop.call_later.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerScheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioTimerScheduler:
    """TimerScheduler on the running (or given) event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_s, callback)
