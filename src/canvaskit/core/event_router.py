"""EventRouter: logs, classifies and dispatches realtime protocol messages."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from canvaskit.core.context import SessionContext
from canvaskit.core.tool_bridge import ToolCallBridge
from canvaskit.models.enums import EventKind, EventOrigin
from canvaskit.models.event import FUNCTION_CALL_DONE, OUTPUT_ITEM_DONE, ProtocolEvent
from canvaskit.models.tool_call import ToolCall
from canvaskit.realtime.base import MessageChannel

logger = logging.getLogger("canvaskit.core.event_router")

EventObserver = Callable[[ProtocolEvent], Any]

_STOP = object()


class EventRouter:
    """Single dispatch loop over the structured message channel.

    Inbound messages are queued by :meth:`feed` and processed one at a
    time by :meth:`run`, so the event log always reflects arrival order.
    Each message is logged before anything else looks at it.

    Two message shapes announce a finished function call:
    ``response.function_call_arguments.done`` (canonical) and
    ``response.output_item.done`` with a ``function_call`` item
    (fallback). Either one creates the :class:`ToolCall`; the other is a
    no-op for the same ``call_id``.
    """

    def __init__(
        self,
        context: SessionContext,
        channel: MessageChannel,
        bridge: ToolCallBridge | None = None,
    ) -> None:
        self._context = context
        self._channel = channel
        self._bridge = bridge
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._observers: list[EventObserver] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def context(self) -> SessionContext:
        return self._context

    def add_observer(self, callback: EventObserver) -> None:
        """Register a callback receiving every logged event."""
        self._observers.append(callback)

    # -- inbound ---------------------------------------------------------------

    def feed(self, raw: str | bytes) -> None:
        """Queue a raw inbound message."""
        if self._closed:
            return
        self._queue.put_nowait(raw)

    async def run(self) -> None:
        """Drain the queue until :meth:`close` is called."""
        while True:
            raw = await self._queue.get()
            if raw is _STOP:
                break
            try:
                await self.dispatch(raw)
            except Exception:
                logger.exception(
                    "Error dispatching message in session %s", self._context.session_id
                )

    async def dispatch(self, raw: str | bytes) -> ProtocolEvent | None:
        """Process one raw message: parse, log, notify, detect tool calls."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(
                "Dropping non-JSON message in session %s: %.200s", self._context.session_id, raw
            )
            return None
        if not isinstance(message, dict):
            logger.warning(
                "Dropping non-object message in session %s: %.200s",
                self._context.session_id,
                raw,
            )
            return None

        event = self.record(message, EventOrigin.REMOTE)
        if event.kind == EventKind.UNCLASSIFIED:
            logger.warning(
                "Unclassified event %r in session %s", event.type, self._context.session_id
            )
        elif event.kind == EventKind.ERROR:
            error = message.get("error") or {}
            logger.error(
                "Realtime error in session %s: %s",
                self._context.session_id,
                error.get("message", error) if isinstance(error, dict) else error,
            )

        await self._notify(event)
        self._check_tool_triggers(event)
        return event

    def record(self, message: dict[str, Any], origin: EventOrigin) -> ProtocolEvent:
        """Append *message* to the session's event log and return the event."""
        event = ProtocolEvent.from_message(
            message, sequence=self._context.next_event_sequence(), origin=origin
        )
        self._context.event_log.append(event)
        return event

    # -- outbound --------------------------------------------------------------

    async def send(self, message: dict[str, Any]) -> ProtocolEvent:
        """Send a client event and log it as a local event.

        An ``event_id`` is assigned when missing. The log timestamp is
        local bookkeeping and is not sent.
        """
        outbound = dict(message)
        outbound.setdefault("event_id", f"evt_{uuid4().hex}")
        await self._channel.send(json.dumps(outbound))
        event = self.record(outbound, EventOrigin.LOCAL)
        await self._notify(event)
        return event

    # -- tool calls ------------------------------------------------------------

    def _check_tool_triggers(self, event: ProtocolEvent) -> None:
        ctx = self._context
        if event.type == FUNCTION_CALL_DONE:
            payload, item = event.payload, event.item
            call_id = payload.get("call_id") or item.get("call_id")
            name = payload.get("name") or item.get("name")
            arguments = payload.get("arguments", item.get("arguments", ""))
            if not call_id or not name:
                logger.warning(
                    "Function call event without call_id/name in session %s", ctx.session_id
                )
                return
            ctx.canonical_seen.add(call_id)
            self._start_tool_call(call_id, name, arguments, EventKind.FUNCTION_CALL_ARGUMENTS)

        elif event.type == OUTPUT_ITEM_DONE and event.item.get("type") == "function_call":
            item = event.item
            call_id = item.get("call_id")
            name = item.get("name")
            if not call_id or not name:
                logger.warning(
                    "function_call output item without call_id/name in session %s",
                    ctx.session_id,
                )
                return
            if call_id in ctx.canonical_seen:
                logger.debug("Fallback trigger for %s ignored, canonical already seen", call_id)
                return
            self._start_tool_call(call_id, name, item.get("arguments", ""), EventKind.OUTPUT_ITEM)

    def _start_tool_call(self, call_id: str, name: str, arguments: Any, trigger: EventKind) -> None:
        ctx = self._context
        if call_id in ctx.dispatched_calls:
            logger.debug("Tool call %s already dispatched in session %s", call_id, ctx.session_id)
            return
        ctx.dispatched_calls.add(call_id)
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        call = ToolCall(call_id=call_id, name=name, raw_arguments=arguments, trigger=trigger)
        ctx.tool_calls[call_id] = call
        logger.info(
            "Tool call %s(%s) via %s in session %s", name, call_id, trigger, ctx.session_id
        )
        if self._bridge is None:
            logger.warning("No tool bridge, call %s left pending", call_id)
            return
        self._track_task(
            self._bridge.execute(call, self.send, session_id=ctx.session_id),
            name=f"tool_call:{call_id}",
        )

    # -- lifecycle -------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait for every in-flight tool call to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop the dispatch loop and cancel in-flight tool calls."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_STOP)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _notify(self, event: ProtocolEvent) -> None:
        for cb in self._observers:
            try:
                result = cb(event)
                if hasattr(result, "__await__"):
                    await result
            except Exception:
                logger.exception(
                    "Error in event observer for session %s", self._context.session_id
                )

    def _track_task(self, coro: Any, *, name: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Unhandled exception in task %s: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )
