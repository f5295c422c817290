"""Per-session mutable state shared by the router, bridge and suppressor."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from canvaskit.core.timers import Scheduler, TimerScope
from canvaskit.models.canvas import CanvasElement
from canvaskit.models.event import EventLog
from canvaskit.models.tool_call import ToolCall


@dataclass
class CanvasState:
    """Echo-suppression state of one session.

    Attributes:
        window_open: Whether the remote update window is open.
        remote_depth: Number of remote mutations in progress; the window
            cannot expire while it is above zero.
        baseline: Elements the next user diff is computed against.
        latest: Elements of the most recent notification, whatever its origin.
        pending: Elements a pending user diff will be computed from, or
            ``None`` when no debounce is running.
    """

    window_open: bool = False
    remote_depth: int = 0
    baseline: tuple[CanvasElement, ...] = ()
    latest: tuple[CanvasElement, ...] = ()
    pending: tuple[CanvasElement, ...] | None = None


@dataclass
class SessionContext:
    """Everything a single session owns.

    One context is created per :meth:`~canvaskit.core.session.CanvasSession.start`
    and handed explicitly to every component, so state from an earlier
    session can never reach a later one.
    """

    session_id: str
    sequence: int
    timers: TimerScope
    event_log: EventLog = field(default_factory=EventLog)
    tool_calls: dict[str, ToolCall] = field(default_factory=dict)
    dispatched_calls: set[str] = field(default_factory=set)
    canonical_seen: set[str] = field(default_factory=set)
    canvas: CanvasState = field(default_factory=CanvasState)
    _event_sequence: int = 0
    closed: bool = False

    @classmethod
    def create(
        cls,
        session_id: str,
        sequence: int,
        scheduler: Scheduler,
        *,
        is_current: Callable[[int], bool] | None = None,
    ) -> SessionContext:
        return cls(
            session_id=session_id,
            sequence=sequence,
            timers=TimerScope(sequence, scheduler, is_current=is_current),
        )

    def next_event_sequence(self) -> int:
        self._event_sequence += 1
        return self._event_sequence

    def close(self) -> None:
        """Cancel every timer of this session. Safe to call repeatedly."""
        self.closed = True
        self.timers.cancel_all()
