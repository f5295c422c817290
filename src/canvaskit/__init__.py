"""CanvasKit - real-time voice agent sessions on a shared drawing canvas."""

from canvaskit._version import __version__
from canvaskit.canvas import (
    CanvasEchoSuppressor,
    CanvasSyncClient,
    DrawingSurface,
    InMemoryDrawingSurface,
    compute_diff,
)
from canvaskit.core.context import CanvasState, SessionContext
from canvaskit.core.event_router import EventRouter
from canvaskit.core.mock import MockScheduler
from canvaskit.core.session import CanvasSession, Session, SessionStatus
from canvaskit.core.timers import LoopScheduler, Scheduler, TimerScope
from canvaskit.core.tool_bridge import ToolCallBridge, format_tool_output, parse_arguments
from canvaskit.errors import (
    AcquisitionError,
    ArgumentParseError,
    CanvasKitError,
    GatewayError,
    GatewayTimeoutError,
    NegotiationError,
    PlaybackBlockedError,
    SessionStateError,
    ToolCallError,
)
from canvaskit.models.canvas import CanvasDiff, CanvasElement
from canvaskit.models.config import CanvasServerConfig, EchoConfig, SessionConfig
from canvaskit.models.enums import (
    CanvasMessageType,
    EventKind,
    EventOrigin,
    SessionState,
    ToolCallStatus,
)
from canvaskit.models.event import EventLog, ProtocolEvent, classify_event
from canvaskit.models.tool_call import ToolCall, ToolCatalogue, ToolDefinition
from canvaskit.providers.http import BackendClient, BackendConfig
from canvaskit.providers.openai import OpenAIRealtimeConfig
from canvaskit.realtime import (
    MediaResources,
    MessageChannel,
    TransportHandle,
    TransportNegotiator,
    WebRTCNegotiator,
)
from canvaskit.tools import HTTPToolGateway, MCPToolGateway, MockToolGateway, ToolGateway

__all__ = [
    "__version__",
    # Session
    "CanvasSession",
    "Session",
    "SessionContext",
    "SessionStatus",
    "CanvasState",
    # Routing and tools
    "EventRouter",
    "ToolCallBridge",
    "format_tool_output",
    "parse_arguments",
    "ToolGateway",
    "HTTPToolGateway",
    "MCPToolGateway",
    "MockToolGateway",
    # Canvas
    "CanvasEchoSuppressor",
    "CanvasSyncClient",
    "DrawingSurface",
    "InMemoryDrawingSurface",
    "compute_diff",
    # Timers
    "LoopScheduler",
    "MockScheduler",
    "Scheduler",
    "TimerScope",
    # Transport
    "MediaResources",
    "MessageChannel",
    "TransportHandle",
    "TransportNegotiator",
    "WebRTCNegotiator",
    # Config
    "BackendClient",
    "BackendConfig",
    "CanvasServerConfig",
    "EchoConfig",
    "OpenAIRealtimeConfig",
    "SessionConfig",
    # Models
    "CanvasDiff",
    "CanvasElement",
    "CanvasMessageType",
    "EventKind",
    "EventLog",
    "EventOrigin",
    "ProtocolEvent",
    "SessionState",
    "ToolCall",
    "ToolCallStatus",
    "ToolCatalogue",
    "ToolDefinition",
    "classify_event",
    # Errors
    "AcquisitionError",
    "ArgumentParseError",
    "CanvasKitError",
    "GatewayError",
    "GatewayTimeoutError",
    "NegotiationError",
    "PlaybackBlockedError",
    "SessionStateError",
    "ToolCallError",
]
