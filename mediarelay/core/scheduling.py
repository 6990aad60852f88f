"""
Injectable time source and cancellable interval task.

Everything in the pipeline waits through a Clock so that polling,
backoff and timeouts can be driven by a ManualClock in tests instead
of wall-clock sleeps.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Clock:
    """Monotonic time plus a blocking sleep."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float):
        if seconds > 0:
            time.sleep(seconds)


class ManualClock(Clock):
    """
    Clock whose sleep advances virtual time instantly.
    Records every sleep so callers can assert on backoff and tick spacing.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self.sleeps: list[float] = []
        self.on_sleep: Optional[Callable[[float], None]] = None

    def now(self) -> float:
        return self._now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self._now += max(0.0, seconds)
        if self.on_sleep:
            self.on_sleep(seconds)

    def advance(self, seconds: float):
        self._now += seconds


class IntervalTask:
    """
    Repeats `callback` every `interval` seconds on `clock` until cancelled.

    run() blocks the calling thread; the callback may call cancel() to stop
    after the current tick. A tick that has started always runs to
    completion before the next one is considered.
    """

    def __init__(self, clock: Clock, interval: float, callback: Callable[[], None],
                 name: str = "interval"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.clock = clock
        self.interval = interval
        self.callback = callback
        self.name = name
        self.ticks = 0
        self._cancelled = False
        self._running = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._running

    def cancel(self):
        if not self._cancelled:
            logger.debug("Cancelling %s after %d tick(s)", self.name, self.ticks)
        self._cancelled = True

    def run(self):
        if self._running:
            raise RuntimeError(f"{self.name} is already running")
        self._running = True
        try:
            while not self._cancelled:
                self.clock.sleep(self.interval)
                if self._cancelled:
                    break
                self.ticks += 1
                self.callback()
        finally:
            self._running = False
