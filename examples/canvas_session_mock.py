"""CanvasKit - Session lifecycle with mock transport and tool gateway.

Walks through a complete session without network or audio hardware:
the agent calls a drawing tool (announced twice, executed once), the
user then edits the canvas and the diff reaches the agent as a turn.

Run with:
    uv run python examples/canvas_session_mock.py
"""

from __future__ import annotations

import asyncio
import json
import logging

import httpx

from canvaskit import (
    BackendClient,
    BackendConfig,
    CanvasElement,
    CanvasSession,
    InMemoryDrawingSurface,
    MockToolGateway,
    SessionConfig,
)
from canvaskit.realtime.mock import MockMediaResources, MockNegotiator

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
)
logger = logging.getLogger("canvas_session_mock")

CATALOGUE = {
    "topic": "geometry",
    "instructions": "You are a geometry tutor. Draw every shape you mention.",
    "tools": [{"name": "create_element", "description": "Create a canvas element"}],
}


def backend_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/token"):
        return httpx.Response(200, json={"value": "ek_demo"})
    return httpx.Response(200, json=CATALOGUE)


async def main() -> None:
    surface = InMemoryDrawingSurface()

    async def create_element(arguments: dict) -> dict:
        # A real gateway mutates the canvas server, which pushes the change back.
        element = CanvasElement(id="agent-1", type=arguments.get("type", "rectangle"))
        suppressor = session.suppressor
        assert suppressor is not None
        async with suppressor.remote_mutation():
            surface.upsert(element)
        return {"content": [{"type": "text", "text": f"Created {element.id}"}]}

    negotiator = MockNegotiator()
    session = CanvasSession(
        backend=BackendClient(
            BackendConfig(
                credential_url="http://backend.local/api/realtime/token",
                catalogue_url="http://backend.local/api/realtime/session",
                gateway_url="http://backend.local/api/realtime/tool",
            ),
            client=httpx.AsyncClient(transport=httpx.MockTransport(backend_handler)),
        ),
        negotiator=negotiator,
        gateway=MockToolGateway(results={"create_element": create_element}),
        surface=surface,
        media_factory=MockMediaResources,
        config=SessionConfig(echo={"remote_window_ms": 100, "debounce_ms": 300}),
    )
    session.on_status_change(lambda s: logger.info("status: %s", s.state))

    await session.start("geometry")
    transport = negotiator.transport
    assert transport is not None
    channel = transport.channel

    # --- Agent calls a tool; both trigger shapes arrive ---
    call = {"call_id": "call_1", "name": "create_element", "arguments": '{"type": "ellipse"}'}
    channel.simulate_message({"type": "response.function_call_arguments.done", **call})
    channel.simulate_message(
        {"type": "response.output_item.done", "item": {"type": "function_call", **call}}
    )
    await asyncio.sleep(0.05)
    await session.wait_idle()

    # --- User draws something ---
    await asyncio.sleep(0.2)
    surface.upsert(CanvasElement(id="user-1", type="arrow"))
    await asyncio.sleep(0.5)

    for message in channel.sent:
        logger.info("sent: %s", json.dumps(message)[:120])
    logger.info("tool calls: %s", {k: v.status for k, v in session.tool_calls.items()})

    await session.close()


if __name__ == "__main__":
    asyncio.run(main())
