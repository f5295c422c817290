"""Tests for CanvasEchoSuppressor timing scenarios."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from canvaskit.canvas.echo import DEBOUNCE_TIMER, WINDOW_TIMER, CanvasEchoSuppressor
from canvaskit.canvas.surface import InMemoryDrawingSurface
from canvaskit.core.context import SessionContext
from canvaskit.core.mock import MockScheduler
from canvaskit.models.canvas import CanvasDiff, CanvasElement
from canvaskit.models.config import EchoConfig
from tests.conftest import el


class DiffSink:
    def __init__(self) -> None:
        self.diffs: list[CanvasDiff] = []

    def __call__(self, diff: CanvasDiff, elements: Sequence[CanvasElement]) -> None:
        self.diffs.append(diff)


@pytest.fixture
def sink() -> DiffSink:
    return DiffSink()


@pytest.fixture
def suppressor(
    surface: InMemoryDrawingSurface, context: SessionContext, sink: DiffSink
) -> CanvasEchoSuppressor:
    suppressor = CanvasEchoSuppressor(surface)
    suppressor.bind(context, sink)
    return suppressor


def ids(elements: Sequence[CanvasElement]) -> list[str]:
    return [e.id for e in elements]


class TestRemoteMutations:
    def test_remote_add_produces_no_diff(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        context: SessionContext,
        sink: DiffSink,
    ) -> None:
        suppressor.open_remote_window()
        scheduler.advance(0.05)
        surface.update_scene([el("a"), el("b", "text")])

        scheduler.advance(0.5)
        assert not suppressor.window_open
        scheduler.advance(5.0)

        assert sink.diffs == []
        assert ids(context.canvas.baseline) == ["a", "b"]

    async def test_remote_mutation_context_manager(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        async with suppressor.remote_mutation():
            assert suppressor.window_open
            surface.upsert(el("a"))
        assert suppressor.window_open

        scheduler.advance(0.5)
        assert not suppressor.window_open
        scheduler.advance(5.0)
        assert sink.diffs == []

    async def test_slow_mutation_holds_window_open(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        context: SessionContext,
        sink: DiffSink,
    ) -> None:
        async with suppressor.remote_mutation():
            scheduler.advance(2.0)
            assert suppressor.window_open
            surface.update_scene([el("a")])
        assert context.canvas.remote_depth == 0

        scheduler.advance(0.4)
        assert suppressor.window_open
        scheduler.advance(0.1)
        assert not suppressor.window_open
        scheduler.advance(5.0)
        assert sink.diffs == []

    async def test_nested_mutations_expire_after_outermost(
        self, suppressor: CanvasEchoSuppressor, scheduler: MockScheduler
    ) -> None:
        async with suppressor.remote_mutation():
            async with suppressor.remote_mutation():
                scheduler.advance(1.0)
            suppressor.open_remote_window()
            scheduler.advance(1.0)
            assert suppressor.window_open

        scheduler.advance(0.5)
        assert not suppressor.window_open

    async def test_clear_canvas_is_not_a_user_removal(
        self,
        surface: InMemoryDrawingSurface,
        context: SessionContext,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        surface.update_scene([el("a"), el("b")])
        suppressor = CanvasEchoSuppressor(surface)
        suppressor.bind(context, sink)

        await suppressor.clear_canvas()
        scheduler.advance(5.0)

        assert surface.elements == []
        assert sink.diffs == []
        assert context.canvas.baseline == ()

    def test_reopening_restarts_window(
        self, suppressor: CanvasEchoSuppressor, scheduler: MockScheduler
    ) -> None:
        suppressor.open_remote_window()
        scheduler.advance(0.4)
        suppressor.open_remote_window()
        scheduler.advance(0.4)
        assert suppressor.window_open
        scheduler.advance(0.1)
        assert not suppressor.window_open


class TestUserEdits:
    def test_user_add_after_debounce(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        surface.update_scene([el("r1")])

        scheduler.advance(1.9)
        assert sink.diffs == []
        scheduler.advance(0.1)

        assert len(sink.diffs) == 1
        assert sink.diffs[0].summary == "Added 1 element(s): rectangle"
        assert sink.diffs[0].description == (
            "User made changes to canvas: Added 1 element(s): rectangle"
        )

    def test_rapid_edits_collapse(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        surface.update_scene([el("a")])
        scheduler.advance(1.0)
        surface.update_scene([el("a"), el("b", "text")])
        scheduler.advance(1.0)
        surface.update_scene([el("a", version=2), el("b", "text")])
        scheduler.advance(2.0)

        assert len(sink.diffs) == 1
        assert sink.diffs[0].summary == "Added 2 element(s): rectangle, text"

    def test_consecutive_diffs_use_moving_baseline(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        surface.update_scene([el("a")])
        scheduler.advance(2.0)
        surface.update_scene([el("a", version=2)])
        scheduler.advance(2.0)

        assert [d.summary for d in sink.diffs] == [
            "Added 1 element(s): rectangle",
            "Modified 1 element(s): rectangle",
        ]

    def test_deleted_flag_counts_as_removal(
        self,
        surface: InMemoryDrawingSurface,
        context: SessionContext,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        surface.update_scene([el("a"), el("b", "ellipse")])
        suppressor = CanvasEchoSuppressor(surface)
        suppressor.bind(context, sink)

        surface.update_scene([el("a"), CanvasElement(id="b", type="ellipse", isDeleted=True)])
        scheduler.advance(2.0)
        assert sink.diffs[0].summary == "Removed 1 element(s): ellipse"

    def test_no_op_notification_emits_nothing(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        surface.update_scene([])
        scheduler.advance(3.0)
        assert sink.diffs == []

    def test_custom_timings(
        self,
        surface: InMemoryDrawingSurface,
        context: SessionContext,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        suppressor = CanvasEchoSuppressor(surface, EchoConfig(debounce_ms=300))
        suppressor.bind(context, sink)
        surface.update_scene([el("a")])
        scheduler.advance(0.3)
        assert len(sink.diffs) == 1


class TestRaces:
    def test_remote_mutation_during_debounce_discards_user_diff(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        context: SessionContext,
        sink: DiffSink,
    ) -> None:
        surface.update_scene([el("u1")])
        scheduler.advance(1.5)

        suppressor.open_remote_window()
        surface.update_scene([el("u1"), el("r1", "text")])

        scheduler.advance(0.5)
        assert sink.diffs == []
        assert ids(context.canvas.baseline) == ["u1", "r1"]

        scheduler.advance(5.0)
        assert sink.diffs == []
        assert not context.timers.is_pending(DEBOUNCE_TIMER)

    def test_user_edit_after_window_closes_is_reported(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        suppressor.open_remote_window()
        surface.update_scene([el("r1")])
        scheduler.advance(0.6)

        surface.update_scene([el("r1"), el("u1", "ellipse")])
        scheduler.advance(2.0)

        assert [d.summary for d in sink.diffs] == ["Added 1 element(s): ellipse"]


class TestBinding:
    def test_unbound_notifications_ignored(
        self, surface: InMemoryDrawingSurface, scheduler: MockScheduler
    ) -> None:
        suppressor = CanvasEchoSuppressor(surface)
        surface.update_scene([el("a")])
        suppressor.open_remote_window()
        scheduler.advance(5.0)
        assert scheduler.pending == []
        assert suppressor.context is None

    def test_unbind_cancels_timers(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        context: SessionContext,
        sink: DiffSink,
    ) -> None:
        suppressor.open_remote_window()
        scheduler.advance(0.6)
        surface.update_scene([el("a")])
        suppressor.unbind()

        assert not context.timers.is_pending(DEBOUNCE_TIMER)
        assert not context.timers.is_pending(WINDOW_TIMER)
        scheduler.advance(5.0)
        assert sink.diffs == []

    def test_new_session_ignores_old_debounce(
        self,
        surface: InMemoryDrawingSurface,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        current = {"sequence": 1}

        def is_current(seq: int) -> bool:
            return seq == current["sequence"]

        first = SessionContext.create("s1", 1, scheduler, is_current=is_current)
        suppressor = CanvasEchoSuppressor(surface)
        suppressor.bind(first, sink)
        surface.update_scene([el("a")])

        first.close()
        current["sequence"] = 2
        second = SessionContext.create("s2", 2, scheduler, is_current=is_current)
        second_sink = DiffSink()
        suppressor.bind(second, second_sink)

        scheduler.advance(5.0)
        assert sink.diffs == []
        assert second_sink.diffs == []
        assert ids(second.canvas.baseline) == ["a"]

    def test_closed_context_ignores_notifications(
        self,
        suppressor: CanvasEchoSuppressor,
        surface: InMemoryDrawingSurface,
        context: SessionContext,
        scheduler: MockScheduler,
        sink: DiffSink,
    ) -> None:
        context.close()
        surface.update_scene([el("a")])
        scheduler.advance(5.0)
        assert sink.diffs == []

    async def test_async_emitter(
        self,
        surface: InMemoryDrawingSurface,
        context: SessionContext,
        scheduler: MockScheduler,
        advance,
    ) -> None:
        received: list[str] = []

        async def emit(diff: CanvasDiff, elements: Sequence[CanvasElement]) -> None:
            received.append(diff.summary)

        suppressor = CanvasEchoSuppressor(surface)
        suppressor.bind(context, emit)
        surface.update_scene([el("a", "text")])
        scheduler.advance(2.0)
        await advance()

        assert received == ["Added 1 element(s): text"]
