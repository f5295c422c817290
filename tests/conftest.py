"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Coroutine
from typing import Any

import httpx
import pytest

from canvaskit.canvas.surface import InMemoryDrawingSurface
from canvaskit.core.context import SessionContext
from canvaskit.core.mock import MockScheduler
from canvaskit.models.canvas import CanvasElement
from canvaskit.providers.http.client import BackendClient
from canvaskit.providers.http.config import BackendConfig

CATALOGUE = {
    "topic": "photosynthesis",
    "instructions": "You are a tutor. Draw while you explain.",
    "tools": [
        {
            "type": "function",
            "name": "create_element",
            "description": "Create a canvas element",
            "parameters": {
                "type": "object",
                "properties": {"type": {"type": "string"}},
                "required": ["type"],
            },
        },
        {"type": "function", "name": "clear_canvas", "description": "Remove everything"},
    ],
}

BACKEND_CONFIG = BackendConfig(
    credential_url="http://backend.test/api/realtime/token",
    catalogue_url="http://backend.test/api/realtime/session",
    gateway_url="http://backend.test/api/realtime/tool",
)


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Replaces ``await asyncio.sleep(0.05)`` patterns with zero-delay
    event loop yields::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


@pytest.fixture
def scheduler() -> MockScheduler:
    return MockScheduler()


@pytest.fixture
def context(scheduler: MockScheduler) -> SessionContext:
    return SessionContext.create("session_test", 1, scheduler)


@pytest.fixture
def surface() -> InMemoryDrawingSurface:
    return InMemoryDrawingSurface()


def el(element_id: str, element_type: str = "rectangle", version: int = 1) -> CanvasElement:
    return CanvasElement(id=element_id, type=element_type, version=version)


def backend_handler(
    *,
    credential_status: int = 200,
    catalogue_status: int = 200,
    catalogue: dict[str, Any] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """httpx.MockTransport handler serving the credential and catalogue endpoints."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/token"):
            if credential_status != 200:
                return httpx.Response(credential_status, json={"error": "nope"})
            return httpx.Response(200, json={"value": "ek_test"})
        if request.url.path.endswith("/session"):
            if catalogue_status != 200:
                return httpx.Response(catalogue_status, json={"error": "nope"})
            body = json.loads(request.content or b"{}")
            data = dict(catalogue or CATALOGUE)
            data.setdefault("topic", body.get("topic"))
            return httpx.Response(200, json=data)
        return httpx.Response(404)

    return handler


def make_backend(**kwargs: Any) -> BackendClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend_handler(**kwargs)))
    return BackendClient(BACKEND_CONFIG, client=client)


@pytest.fixture
def backend() -> BackendClient:
    return make_backend()
