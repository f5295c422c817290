"""Tool-execution gateway interface and its HTTP implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from canvaskit.errors import GatewayError, GatewayTimeoutError
from canvaskit.models.tool_call import ToolDefinition

logger = logging.getLogger("canvaskit.tools.gateway")


class ToolGateway(ABC):
    """Executes tool calls requested by the remote agent."""

    @abstractmethod
    async def call(
        self, name: str, arguments: dict[str, Any], *, call_id: str | None = None
    ) -> Any:
        """Run tool *name* and return its raw result.

        Raises:
            GatewayError: The tool could not be executed.
        """
        ...

    async def list_tools(self) -> list[ToolDefinition]:
        """Tools this gateway can run, if it knows them."""
        return []

    async def close(self) -> None:  # noqa: B027
        """Release connections held by the gateway."""


class HTTPToolGateway(ToolGateway):
    """Gateway that POSTs each call to a backend endpoint.

    The request body is ``{"name", "arguments", "toolCallId"}`` and the
    response is expected to be ``{"toolCallId", "result"}``.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def call(
        self, name: str, arguments: dict[str, Any], *, call_id: str | None = None
    ) -> Any:
        payload = {"name": name, "arguments": arguments, "toolCallId": call_id}
        try:
            resp = await self._client.post(self._url, json=payload, headers=self._headers or None)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise GatewayTimeoutError(f"Tool {name} timed out", tool_name=name) from exc
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            raise GatewayError(
                f"Tool {name} failed: HTTP {exc.response.status_code}: {detail}",
                tool_name=name,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"Tool {name} failed: {exc}", tool_name=name) from exc
        except ValueError as exc:
            raise GatewayError(f"Tool {name} returned invalid JSON", tool_name=name) from exc

        if isinstance(data, dict) and "result" in data:
            return data["result"]
        return data

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return response.text
