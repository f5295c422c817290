"""CanvasSyncClient: applies canvas-server pushes to the drawing surface."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import Any

import httpx
import websockets
from websockets.exceptions import ConnectionClosed

from canvaskit.canvas.echo import CanvasEchoSuppressor
from canvaskit.canvas.surface import DrawingSurface
from canvaskit.models.canvas import CanvasDiff, CanvasElement, element_from_wire
from canvaskit.models.config import CanvasServerConfig
from canvaskit.models.enums import CanvasMessageType

logger = logging.getLogger("canvaskit.canvas.sync")

# (mermaid source, config) -> element payloads
DiagramConverter = Callable[[str, dict[str, Any]], Awaitable[list[dict[str, Any]]]]

_REMOTE_MUTATIONS = frozenset(
    {
        CanvasMessageType.INITIAL_ELEMENTS,
        CanvasMessageType.ELEMENT_CREATED,
        CanvasMessageType.ELEMENT_UPDATED,
        CanvasMessageType.ELEMENT_DELETED,
        CanvasMessageType.ELEMENTS_BATCH_CREATED,
        CanvasMessageType.ELEMENTS_CLEARED,
        CanvasMessageType.MERMAID_CONVERT,
    }
)

_CLEAN_CLOSE = 1000


class CanvasSyncClient:
    """Keeps a :class:`DrawingSurface` in step with the canvas server.

    Tool calls mutate the canvas server; the server pushes each mutation
    over a websocket and this client applies it to the surface inside the
    suppressor's remote window, so the resulting notification is never
    reported as a user edit.

    Example:
        client = CanvasSyncClient(CanvasServerConfig(), surface, suppressor)
        await client.start()
        ...
        await client.stop()
    """

    def __init__(
        self,
        config: CanvasServerConfig,
        surface: DrawingSurface,
        suppressor: CanvasEchoSuppressor,
        *,
        converter: DiagramConverter | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._surface = surface
        self._suppressor = suppressor
        self._converter = converter
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url, timeout=config.timeout
        )
        self._ws: Any = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    # -- websocket -------------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(
            self.run(), name="canvas_sync:receive"
        )

    async def run(self) -> None:
        """Receive loop; reconnects after an unclean close."""
        while not self._stopping:
            code: int | None = None
            try:
                async with websockets.connect(self._config.ws_url) as ws:
                    self._ws = ws
                    logger.info("Connected to canvas server %s", self._config.ws_url)
                    await self.load_existing()
                    async for raw in ws:
                        await self._handle_raw(raw)
                    code = ws.close_code
            except ConnectionClosed as exc:
                code = exc.rcvd.code if exc.rcvd is not None else None
            except OSError as exc:
                logger.warning("Canvas server connection failed: %s", exc)
            finally:
                self._ws = None

            if self._stopping or code == _CLEAN_CLOSE:
                logger.info("Canvas server connection closed (code %s)", code)
                return
            logger.warning(
                "Canvas server connection lost (code %s), reconnecting in %.1fs",
                code,
                self._config.reconnect_delay,
            )
            await asyncio.sleep(self._config.reconnect_delay)

    async def _handle_raw(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON canvas message: %.200s", raw)
            return
        if not isinstance(data, dict):
            return
        try:
            await self.handle_message(data)
        except Exception:
            logger.exception("Error processing canvas message %s", data.get("type"))

    async def handle_message(self, data: dict[str, Any]) -> None:
        """Apply one server push to the surface."""
        raw_type = data.get("type")
        try:
            msg_type = CanvasMessageType(raw_type)
        except ValueError:
            logger.debug("Unknown canvas message type: %s", raw_type)
            return

        if msg_type not in _REMOTE_MUTATIONS:
            if msg_type in (CanvasMessageType.ELEMENTS_SYNCED, CanvasMessageType.SYNC_STATUS):
                logger.debug("Canvas server %s: %s elements", msg_type, data.get("count"))
            return

        async with self._suppressor.remote_mutation():
            await self._apply(msg_type, data)

    async def _apply(self, msg_type: CanvasMessageType, data: dict[str, Any]) -> None:
        current = self._surface.elements

        if msg_type == CanvasMessageType.INITIAL_ELEMENTS:
            elements = _parse_elements(data.get("elements"))
            if elements:
                self._surface.update_scene(elements)

        elif msg_type == CanvasMessageType.ELEMENT_CREATED:
            if isinstance(data.get("element"), dict):
                self._surface.update_scene([*current, element_from_wire(data["element"])])

        elif msg_type == CanvasMessageType.ELEMENT_UPDATED:
            if isinstance(data.get("element"), dict):
                updated = element_from_wire(data["element"])
                self._surface.update_scene(
                    [updated if el.id == updated.id else el for el in current]
                )

        elif msg_type == CanvasMessageType.ELEMENT_DELETED:
            element_id = data.get("elementId")
            if element_id:
                self._surface.update_scene([el for el in current if el.id != element_id])

        elif msg_type == CanvasMessageType.ELEMENTS_BATCH_CREATED:
            batch = _parse_elements(data.get("elements"))
            if batch:
                self._surface.update_scene([*current, *batch])

        elif msg_type == CanvasMessageType.ELEMENTS_CLEARED:
            logger.info("Canvas cleared by server")
            self._surface.update_scene([])

        elif msg_type == CanvasMessageType.MERMAID_CONVERT:
            await self._convert_mermaid(data)

    async def _convert_mermaid(self, data: dict[str, Any]) -> None:
        diagram = data.get("mermaidDiagram")
        if not diagram:
            return
        if self._converter is None:
            logger.warning("mermaid_convert received but no diagram converter configured")
            return
        try:
            converted = await self._converter(diagram, data.get("config") or {})
        except Exception:
            logger.exception("Mermaid conversion failed")
            return
        elements = _parse_elements(converted)
        if not elements:
            return
        self._surface.update_scene(elements)
        logger.info("Mermaid diagram converted: %d elements", len(elements))
        await self.sync_to_backend()

    # -- REST ------------------------------------------------------------------

    async def load_existing(self) -> list[CanvasElement]:
        """Load the server's elements into the surface as a remote mutation."""
        try:
            resp = await self._client.get("/api/elements")
            resp.raise_for_status()
            result = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Error loading existing elements: %s", exc)
            return []
        elements = _parse_elements(result.get("elements") if isinstance(result, dict) else None)
        if elements:
            async with self._suppressor.remote_mutation():
                self._surface.update_scene(elements)
        return elements

    async def sync_to_backend(self) -> int:
        """Push the surface's live elements to the server; returns the count."""
        live = [el for el in self._surface.elements if not el.is_deleted]
        payload = {
            "elements": [el.to_wire() for el in live],
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            resp = await self._client.post("/api/elements/sync", json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Canvas sync failed: %s", exc)
            return 0
        return len(live)

    async def clear_all(self) -> None:
        """Delete every element on the server and clear the surface.

        Wrapped as a remote mutation: an administrative reset is not a
        drawing action. The surface is cleared even if the server fails.
        """
        async with self._suppressor.remote_mutation():
            try:
                resp = await self._client.get("/api/elements")
                resp.raise_for_status()
                result = resp.json()
                ids = [
                    el.id
                    for el in _parse_elements(
                        result.get("elements") if isinstance(result, dict) else None
                    )
                ]
                responses = await asyncio.gather(
                    *(self._client.delete(f"/api/elements/{element_id}") for element_id in ids)
                )
                for r in responses:
                    r.raise_for_status()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Error clearing canvas on server: %s", exc)
            finally:
                self._surface.update_scene([])

    async def send_user_update(
        self, diff: CanvasDiff, elements: Sequence[CanvasElement]
    ) -> None:
        """Report a user edit to the canvas server."""
        if self._ws is None:
            return
        message = {
            "type": CanvasMessageType.CANVAS_USER_UPDATE.value,
            "description": diff.description,
            "elementCount": len(elements),
            "elements": [el.to_wire() for el in elements],
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as exc:
            logger.warning("Could not send user update, connection closed: %s", exc)

    async def stop(self) -> None:
        self._stopping = True
        if self._ws is not None:
            with contextlib.suppress(ConnectionClosed):
                await self._ws.close()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._owns_client:
            await self._client.aclose()
        logger.info("Canvas sync stopped")


def _parse_elements(raw: Any) -> list[CanvasElement]:
    if not isinstance(raw, list):
        return []
    return [element_from_wire(item) for item in raw if isinstance(item, dict)]
