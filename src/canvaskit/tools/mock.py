"""Mock tool gateway for testing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from canvaskit.models.tool_call import ToolDefinition
from canvaskit.tools.gateway import ToolGateway


@dataclass
class MockGatewayCall:
    """Record of a call made to the mock gateway."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str | None = None


class MockToolGateway(ToolGateway):
    """Gateway that records calls and returns canned results.

    ``results`` maps tool names to a value to return or an exception to
    raise. Unknown tools return ``{"content": [{"type": "text", "text": "ok"}]}``.

    Example:
        gateway = MockToolGateway(results={"create_element": {"id": "a1"}})
        await gateway.call("create_element", {"type": "rectangle"})
        assert gateway.calls[0].name == "create_element"
    """

    def __init__(
        self,
        results: dict[str, Any] | None = None,
        *,
        tools: list[ToolDefinition] | None = None,
    ) -> None:
        self.results = dict(results or {})
        self.tools = list(tools or [])
        self.calls: list[MockGatewayCall] = []
        self.closed = False

    async def call(
        self, name: str, arguments: dict[str, Any], *, call_id: str | None = None
    ) -> Any:
        self.calls.append(MockGatewayCall(name=name, arguments=arguments, call_id=call_id))
        result = self.results.get(name, {"content": [{"type": "text", "text": "ok"}]})
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            result = result(arguments)
            if hasattr(result, "__await__"):
                result = await result
        return result

    async def list_tools(self) -> list[ToolDefinition]:
        return list(self.tools)

    async def close(self) -> None:
        self.closed = True
