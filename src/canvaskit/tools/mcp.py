"""MCPToolGateway: run tool calls directly against an MCP server."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any

from canvaskit.errors import GatewayError, GatewayTimeoutError
from canvaskit.models.tool_call import ToolDefinition
from canvaskit.tools.gateway import ToolGateway

logger = logging.getLogger("canvaskit.tools.mcp")


class MCPToolGateway(ToolGateway):
    """Discover and invoke drawing tools on an MCP server.

    Supports both ``streamable_http`` (default) and ``sse`` transports.

    Usage::

        async with MCPToolGateway("http://localhost:3000/mcp") as gateway:
            tools = await gateway.list_tools()
            result = await gateway.call("create_element", {"type": "rectangle"})
    """

    def __init__(
        self,
        url: str,
        *,
        transport: str = "streamable_http",
        tool_filter: Callable[[str], bool] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._url = url
        self._transport = transport
        self._tool_filter = tool_filter
        self._headers = headers or {}
        self._timeout = timeout
        self._session: Any = None
        self._context: Any = None
        self._tools: list[ToolDefinition] = []
        self._connected = False

    async def __aenter__(self) -> MCPToolGateway:
        try:
            from mcp import ClientSession
            from mcp.client.streamable_http import streamablehttp_client
        except ImportError:
            raise ImportError(
                "MCPToolGateway requires the 'mcp' package. "
                "Install it with: pip install canvaskit[mcp]"
            ) from None

        if self._transport == "sse":
            from mcp.client.sse import sse_client

            client_cm = sse_client(self._url, headers=self._headers)
        elif self._transport == "streamable_http":
            client_cm = streamablehttp_client(self._url, headers=self._headers)
        else:
            raise ValueError(f"Unsupported transport: {self._transport!r}")

        self._context = client_cm
        streams = await self._context.__aenter__()

        # streamable_http returns (read, write, session_id); sse returns (read, write)
        read_stream, write_stream = streams[0], streams[1]

        self._session = ClientSession(read_stream, write_stream)
        await self._session.__aenter__()
        await self._session.initialize()

        result = await self._session.list_tools()
        for tool in result.tools:
            if self._tool_filter and not self._tool_filter(tool.name):
                continue
            self._tools.append(
                ToolDefinition(
                    name=tool.name,
                    description=tool.description or f"MCP tool: {tool.name}",
                    parameters=tool.inputSchema or {"type": "object", "properties": {}},
                )
            )

        self._connected = True
        logger.info("Connected to MCP server at %s, %d tools", self._url, len(self._tools))
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._connected = False
        if self._session is not None:
            await self._session.__aexit__(exc_type, exc_val, exc_tb)
            self._session = None
        if self._context is not None:
            await self._context.__aexit__(exc_type, exc_val, exc_tb)
            self._context = None

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise RuntimeError("MCPToolGateway is not connected. Use 'async with' first.")

    async def list_tools(self) -> list[ToolDefinition]:
        self._ensure_connected()
        return list(self._tools)

    async def call(
        self, name: str, arguments: dict[str, Any], *, call_id: str | None = None
    ) -> Any:
        """Call a tool and return ``{"content": [...]}`` with text parts.

        Raises:
            GatewayTimeoutError: No answer within the gateway timeout.
            GatewayError: The server flagged the result as an error.
        """
        self._ensure_connected()
        try:
            result = await asyncio.wait_for(
                self._session.call_tool(name, arguments), timeout=self._timeout
            )
        except TimeoutError as exc:
            raise GatewayTimeoutError(f"Tool {name} timed out", tool_name=name) from exc

        parts = [{"type": "text", "text": getattr(c, "text", str(c))} for c in result.content]
        if result.isError:
            raise GatewayError(" ".join(p["text"] for p in parts), tool_name=name)
        logger.debug("MCP tool %s (%s) returned %d parts", name, call_id, len(parts))
        return {"content": parts}

    async def close(self) -> None:
        await self.__aexit__(None, None, None)
