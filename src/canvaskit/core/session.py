"""CanvasSession: lifecycle of one voice-and-canvas collaboration at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from canvaskit.canvas.echo import CanvasEchoSuppressor
from canvaskit.canvas.surface import DrawingSurface
from canvaskit.canvas.sync import CanvasSyncClient
from canvaskit.core.context import SessionContext
from canvaskit.core.event_router import EventRouter
from canvaskit.core.timers import LoopScheduler, Scheduler
from canvaskit.core.tool_bridge import ToolCallBridge
from canvaskit.errors import AcquisitionError, NegotiationError, SessionStateError
from canvaskit.models.canvas import CanvasDiff, CanvasElement
from canvaskit.models.config import SessionConfig
from canvaskit.models.enums import SessionState, ToolCallStatus
from canvaskit.models.event import EventLog, ProtocolEvent
from canvaskit.models.tool_call import ToolCall, ToolCatalogue, ToolDefinition
from canvaskit.providers.http.client import BackendClient
from canvaskit.providers.openai.config import OpenAIRealtimeConfig
from canvaskit.providers.openai.realtime import (
    build_response_create,
    build_session_update,
    build_user_message,
)
from canvaskit.realtime.base import TransportHandle, TransportNegotiator
from canvaskit.realtime.media import MediaResources
from canvaskit.tools.gateway import ToolGateway

logger = logging.getLogger("canvaskit.core.session")

KICKOFF_TIMER = "session.kickoff"

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.NEGOTIATING}),
    SessionState.NEGOTIATING: frozenset(
        {SessionState.ACTIVE, SessionState.CLOSING, SessionState.FAILED}
    ),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING, SessionState.FAILED}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
    SessionState.FAILED: frozenset(),
}

StatusCallback = Callable[["SessionStatus"], Any]
MediaFactory = Callable[[], MediaResources]


class SessionStatus(BaseModel):
    """Snapshot of what the surrounding application shows the user."""

    state: SessionState = SessionState.IDLE
    session_id: str | None = None
    topic: str | None = None
    tools_registered: bool = False
    registered_tools: list[str] = Field(default_factory=list)
    executing_tool: str | None = None
    microphone_active: bool = False
    listening: bool = False
    playback_blocked: bool = False
    error: str | None = None


class Session:
    """One collaboration instance, from start request to teardown.

    Holds the negotiated transport, the registered tools and the
    instruction text. ``sequence`` increases with every start and scopes
    the session's timers.
    """

    def __init__(self, *, sequence: int, context: SessionContext, topic: str | None) -> None:
        self.id = context.session_id
        self.sequence = sequence
        self.context = context
        self.topic = topic
        self.state = SessionState.IDLE
        self.created_at = datetime.now(UTC)
        self.tools: list[ToolDefinition] = []
        self.instructions = ""
        self.transport: TransportHandle | None = None
        self.media: MediaResources | None = None
        self.router: EventRouter | None = None
        self.error: BaseException | None = None
        self.stop_requested = False
        self.listening = False
        self.executing_tool: str | None = None
        self._router_task: asyncio.Task[None] | None = None
        self._teardown_started = False
        self._terminated = asyncio.Event()

    def transition(self, state: SessionState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise SessionStateError(f"Session {self.id}: invalid transition {self.state} -> {state}")
        logger.info("Session %s: %s -> %s", self.id, self.state, state)
        self.state = state

    @property
    def event_log(self) -> EventLog:
        return self.context.event_log

    @property
    def tool_calls(self) -> dict[str, ToolCall]:
        return self.context.tool_calls

    async def wait_terminated(self) -> None:
        await self._terminated.wait()


class CanvasSession:
    """Top-level coordinator: start, stop and observe collaboration sessions.

    ``start()`` acquires the microphone while the credential and tool
    catalogue are fetched, negotiates the transport, waits for the message
    channel, sends the initial configuration and returns once the session
    is active. ``stop()`` tears everything down and can be called at any
    point, including while ``start()`` is suspended. A topic switch is
    simply ``restart(topic)``.

    Example:
        controller = CanvasSession(
            backend=BackendClient(backend_config),
            negotiator=WebRTCNegotiator(realtime_config),
            gateway=HTTPToolGateway(backend_config.gateway_url),
            surface=surface,
        )
        controller.on_status_change(print)
        await controller.start("photosynthesis")
        ...
        await controller.stop()
    """

    def __init__(
        self,
        *,
        backend: BackendClient,
        negotiator: TransportNegotiator,
        gateway: ToolGateway,
        surface: DrawingSurface | None = None,
        suppressor: CanvasEchoSuppressor | None = None,
        canvas_sync: CanvasSyncClient | None = None,
        media_factory: MediaFactory | None = None,
        config: SessionConfig | None = None,
        realtime_config: OpenAIRealtimeConfig | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._backend = backend
        self._negotiator = negotiator
        self._config = config or SessionConfig()
        self._realtime_config = realtime_config or OpenAIRealtimeConfig()
        self._scheduler = scheduler or LoopScheduler()
        self._media_factory = media_factory or MediaResources
        if suppressor is None and surface is not None:
            suppressor = CanvasEchoSuppressor(surface, self._config.echo)
        self._suppressor = suppressor
        self._canvas_sync = canvas_sync
        self._bridge = ToolCallBridge(
            gateway,
            timeout=self._config.gateway_timeout,
            max_result_length=self._config.tool_result_max_length,
        )
        self._bridge.add_listener(self._on_tool_call)

        self._sequence = 0
        self._session: Session | None = None
        self._start_task: asyncio.Task[Session] | None = None
        self._status = SessionStatus()
        self._status_callbacks: list[StatusCallback] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    # -- Properties ------------------------------------------------------------

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> SessionState:
        """State of the current session; ``idle`` when there is none."""
        return self._session.state if self._session is not None else SessionState.IDLE

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def suppressor(self) -> CanvasEchoSuppressor | None:
        return self._suppressor

    @property
    def event_log(self) -> EventLog:
        return self._session.event_log if self._session is not None else EventLog()

    @property
    def tool_calls(self) -> dict[str, ToolCall]:
        return self._session.tool_calls if self._session is not None else {}

    def on_status_change(self, callback: StatusCallback) -> None:
        self._status_callbacks.append(callback)

    def _is_current(self, sequence: int) -> bool:
        return sequence == self._sequence

    # -- Start -----------------------------------------------------------------

    async def start(self, topic: str | None = None) -> Session:
        """Start a session and return it once active.

        Raises:
            SessionStateError: A session is already live, or ``stop()`` was
                called before the start completed.
            AcquisitionError: The microphone could not be acquired.
            NegotiationError: Credential, catalogue or transport failure.
        """
        current = self._session
        if current is not None and not current.state.is_terminal:
            raise SessionStateError(f"Cannot start: session {current.id} is {current.state}")
        if current is not None:
            # A failed session is terminal before its media is released.
            await current.wait_terminated()
            if self._session is not current:
                raise SessionStateError("Cannot start: another start is in progress")

        self._sequence += 1
        context = SessionContext.create(
            f"session_{uuid4().hex[:12]}",
            self._sequence,
            self._scheduler,
            is_current=self._is_current,
        )
        session = Session(
            sequence=self._sequence,
            context=context,
            topic=topic if topic is not None else self._config.topic,
        )
        self._session = session
        session.transition(SessionState.NEGOTIATING)
        self._publish()

        task = asyncio.get_running_loop().create_task(
            self._run_start(session), name=f"session_start:{session.id}"
        )
        self._start_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if session.stop_requested and not _is_cancelling():
                raise SessionStateError(f"Session {session.id} was stopped while starting") from None
            raise
        finally:
            if self._start_task is task:
                self._start_task = None

    async def _run_start(self, session: Session) -> Session:
        try:
            media = self._media_factory()
            session.media = media
            media.on_change(lambda: self._on_media_change(session))

            local_track, credential, catalogue = await self._acquire_and_fetch(session, media)
            session.tools = list(catalogue.tools)
            session.instructions = catalogue.instructions
            if catalogue.topic:
                session.topic = catalogue.topic
            self._publish()

            transport = await self._negotiator.negotiate(
                credential,
                local_track=local_track,
                on_remote_track=media.attach_remote_track,
            )
            session.transport = transport
            transport.on_failure(lambda reason: self._on_transport_failure(session, reason))

            router = EventRouter(session.context, transport.channel, self._bridge)
            router.add_observer(lambda event: self._observe(session, event))
            session.router = router
            transport.channel.on_message(router.feed)
            session._router_task = asyncio.get_running_loop().create_task(
                router.run(), name=f"event_router:{session.id}"
            )

            try:
                await transport.channel.wait_open(self._config.channel_open_timeout)
            except TimeoutError as exc:
                raise NegotiationError(
                    f"Message channel did not open within {self._config.channel_open_timeout}s"
                ) from exc

            await router.send(build_session_update(self._realtime_config, catalogue))
            session.transition(SessionState.ACTIVE)
        except asyncio.CancelledError:
            if not session.stop_requested:
                session.error = NegotiationError("Session start cancelled")
                await self._teardown(session, SessionState.FAILED)
            raise
        except (AcquisitionError, NegotiationError) as exc:
            session.error = exc
            await self._teardown(session, SessionState.FAILED)
            raise
        except Exception as exc:
            error = NegotiationError(f"Session start failed: {exc}")
            session.error = error
            logger.exception("Unexpected error starting session %s", session.id)
            await self._teardown(session, SessionState.FAILED)
            raise error from exc

        if self._suppressor is not None:
            self._suppressor.bind(
                session.context,
                lambda diff, elements: self._on_user_diff(session, diff, elements),
            )
        if self._config.kickoff_text:
            session.context.timers.schedule(
                KICKOFF_TIMER,
                self._config.kickoff_delay,
                lambda: self._track_task(self._send_kickoff(session), name=f"kickoff:{session.id}"),
            )
        self._publish()
        logger.info(
            "Session %s active with %d tools (topic %s)",
            session.id,
            len(session.tools),
            session.topic,
        )
        return session

    async def _acquire_and_fetch(
        self, session: Session, media: MediaResources
    ) -> tuple[Any, str, ToolCatalogue]:
        """Acquire the microphone while fetching credential and catalogue.

        A microphone failure is reported in preference to a fetch failure.
        """
        loop = asyncio.get_running_loop()
        acquire = loop.create_task(media.acquire(), name=f"acquire_media:{session.id}")
        fetch = loop.create_task(
            self._fetch_prerequisites(session.topic), name=f"fetch_prerequisites:{session.id}"
        )
        try:
            await asyncio.wait({acquire, fetch}, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in (acquire, fetch):
                if not task.done():
                    task.cancel()

        errors = {
            task: task.exception()
            for task in (acquire, fetch)
            if task.done() and not task.cancelled() and task.exception() is not None
        }
        if acquire in errors:
            raise errors[acquire]  # type: ignore[misc]
        if fetch in errors:
            raise errors[fetch]  # type: ignore[misc]
        credential, catalogue = fetch.result()
        return acquire.result(), credential, catalogue

    async def _fetch_prerequisites(self, topic: str | None) -> tuple[str, ToolCatalogue]:
        credential, catalogue = await asyncio.gather(
            self._backend.fetch_credential(), self._backend.fetch_catalogue(topic)
        )
        return credential, catalogue

    # -- Stop ------------------------------------------------------------------

    async def stop(self) -> None:
        """Tear down the current session. Safe to call at any time, repeatedly."""
        session = self._session
        if session is None:
            return
        if session.stop_requested or session._teardown_started:
            await session.wait_terminated()
            return
        if session.state.is_terminal:
            return
        session.stop_requested = True
        logger.info("Stopping session %s (state %s)", session.id, session.state)

        task = self._start_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._teardown(session, SessionState.CLOSED)

    async def restart(self, topic: str | None = None) -> Session:
        """Stop the current session and start a new one, e.g. on a topic switch."""
        await self.stop()
        return await self.start(topic)

    async def _teardown(self, session: Session, final_state: SessionState) -> None:
        """Release everything *session* holds. Runs at most once per session."""
        if session._teardown_started:
            await session.wait_terminated()
            return
        session._teardown_started = True

        if final_state == SessionState.FAILED:
            session.transition(SessionState.FAILED)
        else:
            session.transition(SessionState.CLOSING)
        self._publish()

        session.context.close()
        if self._suppressor is not None and self._suppressor.context is session.context:
            self._suppressor.unbind()

        if session.router is not None:
            try:
                await session.router.close()
            except Exception:
                logger.exception("Error closing event router for session %s", session.id)
        if session._router_task is not None:
            session._router_task.cancel()
            await asyncio.gather(session._router_task, return_exceptions=True)
        if session.transport is not None:
            try:
                await session.transport.close()
            except Exception:
                logger.exception("Error closing transport for session %s", session.id)
        if session.media is not None:
            try:
                await session.media.release()
            except Exception:
                logger.exception("Error releasing media for session %s", session.id)

        session.transport = None
        session.router = None
        session.media = None
        session._router_task = None
        session.listening = False
        session.executing_tool = None

        if final_state == SessionState.CLOSED:
            session.transition(SessionState.CLOSED)
        session._terminated.set()
        self._publish()
        if session.error is not None:
            logger.warning("Session %s failed: %s", session.id, session.error)
        else:
            logger.info("Session %s closed", session.id)

    def _on_transport_failure(self, session: Session, reason: str) -> None:
        if session.state != SessionState.ACTIVE or session._teardown_started:
            logger.debug("Transport failure ignored for session %s: %s", session.id, reason)
            return
        session.error = NegotiationError(f"Transport lost: {reason}")
        self._track_task(
            self._teardown(session, SessionState.FAILED), name=f"teardown:{session.id}"
        )

    # -- Conversation ----------------------------------------------------------

    async def send_text(self, text: str) -> None:
        """Send a typed user turn and ask the agent to respond."""
        router = self._require_active()
        await router.send(build_user_message(text))
        await router.send(build_response_create())

    async def send_event(self, message: dict[str, Any]) -> ProtocolEvent:
        """Send a raw client event through the router and return its log entry."""
        router = self._require_active()
        return await router.send(message)

    async def enable_playback(self) -> bool:
        """Explicit attempt to start audio playback after it was blocked."""
        session = self._session
        if session is None or session.media is None:
            return False
        return await session.media.enable_playback()

    async def clear_canvas(self) -> None:
        """Clear the drawing surface without reporting it as a user edit."""
        if self._canvas_sync is not None:
            await self._canvas_sync.clear_all()
        elif self._suppressor is not None:
            await self._suppressor.clear_canvas()

    def _require_active(self) -> EventRouter:
        session = self._session
        if session is None or session.state != SessionState.ACTIVE or session.router is None:
            raise SessionStateError(f"No active session (state {self.state})")
        return session.router

    async def _send_kickoff(self, session: Session) -> None:
        if session.state != SessionState.ACTIVE or session.router is None:
            return
        await session.router.send(build_user_message(self._config.kickoff_text or ""))
        await session.router.send(build_response_create())
        logger.info("Kickoff sent for session %s", session.id)

    async def _on_user_diff(
        self, session: Session, diff: CanvasDiff, elements: Sequence[CanvasElement]
    ) -> None:
        if session.state != SessionState.ACTIVE or session.router is None:
            return
        await session.router.send(build_user_message(diff.description))
        await session.router.send(build_response_create())
        if self._canvas_sync is not None:
            await self._canvas_sync.send_user_update(diff, elements)

    # -- Status ----------------------------------------------------------------

    def _observe(self, session: Session, event: ProtocolEvent) -> None:
        if event.type == "input_audio_buffer.speech_started":
            session.listening = True
        elif event.type == "input_audio_buffer.speech_stopped":
            session.listening = False
        else:
            return
        self._publish()

    def _on_tool_call(self, call: ToolCall) -> None:
        session = self._session
        if session is None or call.call_id not in session.tool_calls:
            return
        if call.status == ToolCallStatus.EXECUTING:
            session.executing_tool = call.name
        elif session.executing_tool == call.name:
            session.executing_tool = None
        self._publish()

    def _on_media_change(self, session: Session) -> None:
        if session is self._session:
            self._publish()

    def _publish(self) -> None:
        session = self._session
        if session is None:
            status = SessionStatus()
        else:
            media = session.media
            status = SessionStatus(
                state=session.state,
                session_id=session.id,
                topic=session.topic,
                tools_registered=session.state == SessionState.ACTIVE and bool(session.tools),
                registered_tools=[t.name for t in session.tools],
                executing_tool=session.executing_tool,
                microphone_active=media is not None and media.microphone_active,
                listening=session.listening,
                playback_blocked=media is not None and media.playback_blocked,
                error=str(session.error) if session.error is not None else None,
            )
        if status == self._status:
            return
        self._status = status
        for cb in self._status_callbacks:
            try:
                result = cb(status)
                if hasattr(result, "__await__"):
                    self._track_task(result, name="status_callback")
            except Exception:
                logger.exception("Error in status callback")

    # -- Tasks -----------------------------------------------------------------

    def _track_task(self, coro: Any, *, name: str) -> asyncio.Task[Any]:
        """Create a tracked asyncio task with automatic cleanup and error logging."""
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

    async def wait_idle(self) -> None:
        """Wait for background work (tool calls, kickoff, teardown) to settle."""
        session = self._session
        if session is not None and session.router is not None:
            await session.router.wait_idle()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop the session and close the backend and gateway clients."""
        await self.stop()
        await self._backend.close()
        await self._bridge.gateway.close()
        if self._canvas_sync is not None:
            await self._canvas_sync.stop()


def _is_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
