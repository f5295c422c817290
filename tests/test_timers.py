"""Tests for TimerScope and MockScheduler."""

from __future__ import annotations

import asyncio

from canvaskit.core.mock import MockScheduler
from canvaskit.core.timers import LoopScheduler, TimerScope


class TestMockScheduler:
    def test_runs_due_callbacks_in_order(self) -> None:
        scheduler = MockScheduler()
        fired: list[str] = []
        scheduler.call_later(1.0, lambda: fired.append("b"))
        scheduler.call_later(0.5, lambda: fired.append("a"))
        scheduler.call_later(1.0, lambda: fired.append("c"))

        scheduler.advance(0.4)
        assert fired == []
        scheduler.advance(0.6)
        assert fired == ["a", "b", "c"]
        assert scheduler.now == 1.0

    def test_callbacks_scheduled_during_advance(self) -> None:
        scheduler = MockScheduler()
        fired: list[float] = []

        def first() -> None:
            fired.append(scheduler.now)
            scheduler.call_later(0.5, lambda: fired.append(scheduler.now))

        scheduler.call_later(0.5, first)
        scheduler.advance(2.0)
        assert fired == [0.5, 1.0]

    def test_cancelled_handle_does_not_fire(self) -> None:
        scheduler = MockScheduler()
        fired: list[int] = []
        handle = scheduler.call_later(0.1, lambda: fired.append(1))
        handle.cancel()
        scheduler.advance(1.0)
        assert fired == []
        assert scheduler.pending == []


class TestTimerScope:
    def test_schedule_and_fire(self) -> None:
        scheduler = MockScheduler()
        scope = TimerScope(1, scheduler)
        fired: list[int] = []

        scope.schedule("t", 0.5, lambda: fired.append(1))
        assert scope.is_pending("t")
        scheduler.advance(0.5)

        assert fired == [1]
        assert not scope.is_pending("t")

    def test_reschedule_restarts(self) -> None:
        scheduler = MockScheduler()
        scope = TimerScope(1, scheduler)
        fired: list[float] = []

        scope.schedule("debounce", 2.0, lambda: fired.append(scheduler.now))
        scheduler.advance(1.5)
        scope.schedule("debounce", 2.0, lambda: fired.append(scheduler.now))
        scheduler.advance(1.5)
        assert fired == []
        scheduler.advance(0.5)
        assert fired == [3.5]

    def test_cancel(self) -> None:
        scheduler = MockScheduler()
        scope = TimerScope(1, scheduler)
        fired: list[int] = []
        scope.schedule("t", 0.5, lambda: fired.append(1))

        assert scope.cancel("t") is True
        assert scope.cancel("t") is False
        scheduler.advance(1.0)
        assert fired == []

    def test_cancel_all_closes_scope(self) -> None:
        scheduler = MockScheduler()
        scope = TimerScope(1, scheduler)
        fired: list[str] = []
        scope.schedule("a", 0.1, lambda: fired.append("a"))
        scope.schedule("b", 0.2, lambda: fired.append("b"))

        scope.cancel_all()
        scope.schedule("c", 0.1, lambda: fired.append("c"))
        scheduler.advance(1.0)

        assert fired == []
        assert scope.closed

    def test_stale_sequence_is_dropped(self) -> None:
        scheduler = MockScheduler()
        current = {"sequence": 1}
        scope = TimerScope(1, scheduler, is_current=lambda seq: seq == current["sequence"])
        fired: list[int] = []
        scope.schedule("t", 0.5, lambda: fired.append(1))

        current["sequence"] = 2
        scheduler.advance(1.0)
        assert fired == []

    def test_callback_error_is_contained(self) -> None:
        scheduler = MockScheduler()
        scope = TimerScope(1, scheduler)
        fired: list[int] = []

        def boom() -> None:
            raise RuntimeError("boom")

        scope.schedule("a", 0.1, boom)
        scope.schedule("b", 0.2, lambda: fired.append(1))
        scheduler.advance(1.0)
        assert fired == [1]


async def test_loop_scheduler_fires() -> None:
    scope = TimerScope(1, LoopScheduler())
    fired = asyncio.Event()
    scope.schedule("t", 0.01, fired.set)
    await asyncio.wait_for(fired.wait(), timeout=1.0)
