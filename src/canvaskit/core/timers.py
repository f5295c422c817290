"""Timers scoped to a session sequence number."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger("canvaskit.core.timers")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(ABC):
    """Source of delayed callbacks.

    Production code uses :class:`LoopScheduler`; tests use
    :class:`~canvaskit.core.mock.MockScheduler` to move time by hand.
    """

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run *callback* on the event loop after *delay* seconds."""
        ...


class LoopScheduler(Scheduler):
    """Scheduler backed by ``loop.call_later``."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class TimerScope:
    """Named, restartable timers that belong to one session.

    Every timer is tagged with the scope's sequence number. A timer only
    runs its callback if the scope is still open and *is_current* still
    accepts the sequence, so nothing scheduled by an old session can touch
    a newer one. Scheduling a name that is already pending restarts it.
    """

    def __init__(
        self,
        sequence: int,
        scheduler: Scheduler,
        *,
        is_current: Callable[[int], bool] | None = None,
    ) -> None:
        self.sequence = sequence
        self._scheduler = scheduler
        self._is_current = is_current
        self._timers: dict[str, tuple[int, TimerHandle]] = {}
        self._generation = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, name: str, delay: float, callback: Callable[[], None]) -> None:
        if self._closed:
            logger.debug("Timer %s not scheduled: scope %d is closed", name, self.sequence)
            return
        self.cancel(name)
        self._generation += 1
        token = self._generation
        handle = self._scheduler.call_later(delay, lambda: self._fire(name, token, callback))
        self._timers[name] = (token, handle)

    def cancel(self, name: str) -> bool:
        entry = self._timers.pop(name, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def is_pending(self, name: str) -> bool:
        return name in self._timers

    def cancel_all(self) -> None:
        """Cancel every pending timer and refuse new ones."""
        self._closed = True
        for name in list(self._timers):
            self.cancel(name)

    def _fire(self, name: str, token: int, callback: Callable[[], None]) -> None:
        entry = self._timers.get(name)
        if self._closed or entry is None or entry[0] != token:
            return
        del self._timers[name]
        if self._is_current is not None and not self._is_current(self.sequence):
            logger.debug("Dropping stale timer %s from sequence %d", name, self.sequence)
            return
        try:
            callback()
        except Exception:
            logger.exception("Error in timer %s (sequence %d)", name, self.sequence)
