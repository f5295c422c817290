"""Tool-execution gateways."""

from canvaskit.tools.gateway import HTTPToolGateway, ToolGateway
from canvaskit.tools.mcp import MCPToolGateway
from canvaskit.tools.mock import MockGatewayCall, MockToolGateway

__all__ = [
    "HTTPToolGateway",
    "MCPToolGateway",
    "MockGatewayCall",
    "MockToolGateway",
    "ToolGateway",
]
