"""Settlement schedulers: run deferred payment settlement callbacks.

The subscription manager is structurally independent of how the delay is
realised. Any object satisfying ``SettlementScheduler`` can be plugged in:

- ThreadingScheduler: real delay on a daemon ``threading.Timer``.
- ManualScheduler: deterministic; callbacks run only when the caller
  advances its clock or drains it. Used by tests and simulations.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class SettlementScheduler(Protocol):
    """Contract for deferring a settlement callback."""

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> None:
        """Arrange for ``callback`` to run once after ``delay_seconds``."""
        ...

    def shutdown(self) -> None:
        """Drop any callbacks that have not run yet."""
        ...


class ThreadingScheduler:
    """Runs each callback on its own daemon timer thread."""

    def __init__(self) -> None:
        self._timers: set[threading.Timer] = set()
        self._lock = threading.Lock()

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> None:
        timer: threading.Timer

        def run() -> None:
            with self._lock:
                self._timers.discard(timer)
            callback()

        timer = threading.Timer(delay_seconds, run)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()

    def shutdown(self) -> None:
        with self._lock:
            timers, self._timers = self._timers, set()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info("Dropped %d scheduled settlements on shutdown", len(timers))

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._timers)


@dataclass(order=True)
class _Scheduled:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)


class ManualScheduler:
    """Virtual-time scheduler; nothing runs until the clock is advanced."""

    def __init__(self) -> None:
        self._queue: list[_Scheduled] = []
        self._clock = 0.0
        self._seq = 0

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> None:
        self._seq += 1
        self._queue.append(_Scheduled(self._clock + delay_seconds, self._seq, callback))
        self._queue.sort()

    def advance(self, seconds: float) -> int:
        """Move virtual time forward and run everything now due, in order."""
        self._clock += seconds
        ran = 0
        while self._queue and self._queue[0].due <= self._clock:
            item = self._queue.pop(0)
            item.callback()
            ran += 1
        return ran

    def run_all(self) -> int:
        """Run every queued callback regardless of its due time."""
        ran = 0
        while self._queue:
            item = self._queue.pop(0)
            self._clock = max(self._clock, item.due)
            item.callback()
            ran += 1
        return ran

    def shutdown(self) -> None:
        self._queue.clear()

    @property
    def pending(self) -> int:
        return len(self._queue)
