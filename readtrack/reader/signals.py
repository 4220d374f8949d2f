import asyncio
import logging
from enum import Enum
from typing import Callable

from ..clock import Clock

logger = logging.getLogger(__name__)


class ActivityKind(str, Enum):
    """Input events that count as the reader being present."""
    POINTER = "pointer"
    KEY = "key"
    SCROLL = "scroll"
    TOUCH = "touch"


class IdleWatchdog:
    """Calls `on_idle` once `timeout_ms` passes without qualifying input.

    Only counts while armed; the tracker arms it while a session is active.
    """

    def __init__(self, timeout_ms: int, on_idle: Callable[[], None], clock: Clock | None = None):
        self.timeout_ms = timeout_ms
        self._on_idle = on_idle
        self._clock = clock or Clock()
        self._handle: asyncio.TimerHandle | None = None
        self.last_activity_ms: int | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self) -> None:
        self.disarm()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout_ms / 1000, self._fire)

    def disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def record(self, kind: ActivityKind | str) -> bool:
        """Note an input event; restarts the countdown if armed."""
        kind = ActivityKind(kind)
        self.last_activity_ms = self._clock.now_ms()
        if not self.armed:
            return False
        self.arm()
        logger.debug("Activity (%s), idle countdown restarted", kind.value)
        return True

    def _fire(self) -> None:
        self._handle = None
        logger.info("No activity for %d ms, reader is idle", self.timeout_ms)
        self._on_idle()


class IntervalTimer:
    """Calls `callback` every `interval_ms` until stopped."""

    def __init__(self, interval_ms: int, callback: Callable[[], None]):
        self.interval_ms = interval_ms
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        self.stop()
        self._schedule()

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.interval_ms / 1000, self._tick)

    def _tick(self) -> None:
        self._schedule()
        self._callback()
