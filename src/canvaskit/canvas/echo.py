"""CanvasEchoSuppressor: tell agent-made canvas changes from user edits."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from canvaskit.canvas.diff import active_elements, compute_diff
from canvaskit.canvas.surface import DrawingSurface
from canvaskit.core.context import SessionContext
from canvaskit.models.canvas import CanvasDiff, CanvasElement
from canvaskit.models.config import EchoConfig

logger = logging.getLogger("canvaskit.canvas.echo")

DiffEmitter = Callable[[CanvasDiff, Sequence[CanvasElement]], Any]

WINDOW_TIMER = "canvas.remote_window"
DEBOUNCE_TIMER = "canvas.user_diff"


class CanvasEchoSuppressor:
    """Classifies surface change notifications as self- or user-inflicted.

    Every remote-origin mutation opens a short *remote update window*
    first. Notifications that arrive while it is open only move the
    baseline. Other notifications start a debounce; when it fires the
    window is checked again, and only if it is still closed is a diff
    against the baseline emitted.

    State and timers live in the bound :class:`SessionContext`, so a new
    session starts from a clean slate. Notifications while unbound are
    ignored.

    Example:
        suppressor = CanvasEchoSuppressor(surface)
        suppressor.bind(context, emit=on_user_diff)
        async with suppressor.remote_mutation():
            surface.update_scene(new_elements)
    """

    def __init__(self, surface: DrawingSurface, config: EchoConfig | None = None) -> None:
        self._surface = surface
        self._config = config or EchoConfig()
        self._context: SessionContext | None = None
        self._emit: DiffEmitter | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        surface.on_change(self.notify)

    @property
    def surface(self) -> DrawingSurface:
        return self._surface

    @property
    def context(self) -> SessionContext | None:
        return self._context

    @property
    def window_open(self) -> bool:
        return self._context is not None and self._context.canvas.window_open

    # -- binding ---------------------------------------------------------------

    def bind(self, context: SessionContext, emit: DiffEmitter) -> None:
        """Attach to a session; the baseline starts from the current scene."""
        self.unbind()
        self._context = context
        self._emit = emit
        current = active_elements(self._surface.elements)
        context.canvas.baseline = current
        context.canvas.latest = current
        logger.debug(
            "Echo suppressor bound to session %s with %d elements",
            context.session_id,
            len(current),
        )

    def unbind(self) -> None:
        ctx = self._context
        if ctx is None:
            return
        ctx.timers.cancel(WINDOW_TIMER)
        ctx.timers.cancel(DEBOUNCE_TIMER)
        ctx.canvas.window_open = False
        ctx.canvas.pending = None
        for task in list(self._tasks):
            task.cancel()
        self._context = None
        self._emit = None
        logger.debug("Echo suppressor unbound from session %s", ctx.session_id)

    # -- remote path -----------------------------------------------------------

    def open_remote_window(self) -> None:
        """Mark the next notifications as self-inflicted.

        Call immediately before applying a remote-origin mutation. Opening
        an already open window restarts its expiry.
        """
        ctx = self._context
        if ctx is None:
            return
        ctx.canvas.window_open = True
        ctx.timers.schedule(WINDOW_TIMER, self._config.remote_window_seconds, self._close_window)

    @asynccontextmanager
    async def remote_mutation(self) -> AsyncIterator[None]:
        """Hold the window open for a mutation that may take a while.

        The window cannot expire while any such block is running, however
        long it awaits. The expiry starts when the outermost block exits,
        so late notifications are still covered for the full window.
        """
        ctx = self._context
        if ctx is None:
            yield
            return
        ctx.canvas.remote_depth += 1
        ctx.canvas.window_open = True
        ctx.timers.cancel(WINDOW_TIMER)
        try:
            yield
        finally:
            ctx.canvas.remote_depth -= 1
            if ctx.canvas.remote_depth == 0 and self._context is ctx:
                self.open_remote_window()

    def _close_window(self) -> None:
        ctx = self._context
        if ctx is None or ctx.canvas.remote_depth > 0:
            return
        ctx.canvas.window_open = False
        logger.debug("Remote update window closed for session %s", ctx.session_id)

    async def clear_canvas(self) -> None:
        """Administrative clear; never reported as the user removing elements."""
        async with self.remote_mutation():
            self._surface.update_scene([])

    # -- notifications ---------------------------------------------------------

    def notify(self, elements: Sequence[CanvasElement]) -> None:
        """Surface change listener."""
        ctx = self._context
        if ctx is None or ctx.closed:
            return
        current = active_elements(elements)
        ctx.canvas.latest = current
        if ctx.canvas.window_open:
            ctx.canvas.baseline = current
            logger.debug(
                "Ignoring self-inflicted canvas change in session %s (%d elements)",
                ctx.session_id,
                len(current),
            )
            return
        ctx.canvas.pending = current
        ctx.timers.schedule(DEBOUNCE_TIMER, self._config.debounce_seconds, self._debounce_expired)

    def _debounce_expired(self) -> None:
        ctx = self._context
        if ctx is None:
            return
        pending = ctx.canvas.pending
        ctx.canvas.pending = None
        if pending is None:
            return

        # Read at fire time: a remote mutation may have started after scheduling.
        if ctx.canvas.window_open:
            logger.debug(
                "User diff discarded, remote update in progress (session %s)", ctx.session_id
            )
            ctx.canvas.baseline = ctx.canvas.latest
            return

        diff = compute_diff(ctx.canvas.baseline, pending)
        ctx.canvas.baseline = pending
        if diff.is_empty:
            return
        logger.info("User canvas change in session %s: %s", ctx.session_id, diff.summary)
        self._deliver(diff, pending)

    def _deliver(self, diff: CanvasDiff, elements: Sequence[CanvasElement]) -> None:
        if self._emit is None:
            return
        try:
            result = self._emit(diff, elements)
        except Exception:
            logger.exception("Error emitting canvas diff")
            return
        if hasattr(result, "__await__"):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)  # type: ignore[arg-type]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to deliver canvas diff: %s", exc, exc_info=exc)
