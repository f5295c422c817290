"""Manual scheduler for deterministic timer tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from canvaskit.core.timers import Scheduler


@dataclass(order=True)
class MockTimerHandle:
    """Pending callback of a :class:`MockScheduler`."""

    due: float
    order: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class MockScheduler(Scheduler):
    """Scheduler whose clock only moves when :meth:`advance` is called.

    Example:
        scheduler = MockScheduler()
        scope = TimerScope(1, scheduler)
        scope.schedule("t", 0.5, fired.set)
        scheduler.advance(0.5)
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._pending: list[MockTimerHandle] = []
        self._counter = 0

    def call_later(self, delay: float, callback: Callable[[], None]) -> MockTimerHandle:
        self._counter += 1
        handle = MockTimerHandle(self.now + delay, self._counter, callback)
        self._pending.append(handle)
        return handle

    @property
    def pending(self) -> list[MockTimerHandle]:
        return sorted(h for h in self._pending if not h.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running due callbacks in time order.

        Callbacks scheduled while advancing run too if they fall due
        before the new time.
        """
        target = self.now + seconds
        while True:
            due = [h for h in self._pending if not h.cancelled and h.due <= target + 1e-9]
            if not due:
                break
            handle = min(due)
            self._pending.remove(handle)
            self.now = max(self.now, handle.due)
            handle.callback()
        self._pending = [h for h in self._pending if not h.cancelled]
        self.now = target
