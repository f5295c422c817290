"""Session-level configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class EchoConfig(BaseModel):
    """Timings of the canvas echo suppressor.

    Both values were tuned empirically; treat them as knobs, not contract.
    """

    remote_window_ms: int = Field(default=500, gt=0)
    """How long after the last remote mutation notifications count as self-inflicted."""
    debounce_ms: int = Field(default=2000, gt=0)
    """Quiet period after the last user edit before a diff is computed."""

    @property
    def remote_window_seconds(self) -> float:
        return self.remote_window_ms / 1000

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000


class SessionConfig(BaseModel):
    """Behaviour of one collaboration session.

    Attributes:
        topic: Topic forwarded to the tool-catalogue endpoint.
        kickoff_text: Optional user turn sent once the session is active so
            the agent starts talking without waiting for speech.
        kickoff_delay: Seconds between activation and the kickoff turn.
        channel_open_timeout: Max seconds to wait for the data channel to
            open after the SDP answer was applied.
        gateway_timeout: Max seconds a single tool invocation may take.
        tool_result_max_length: Tool output longer than this is truncated
            before it is sent back to the agent.
        echo: Canvas echo suppression timings.
    """

    topic: str | None = None
    kickoff_text: str | None = None
    kickoff_delay: float = Field(default=0.5, ge=0.0)
    channel_open_timeout: float = Field(default=10.0, gt=0.0)
    gateway_timeout: float = Field(default=30.0, gt=0.0)
    tool_result_max_length: int = Field(default=16384, gt=64)
    echo: EchoConfig = Field(default_factory=EchoConfig)


class CanvasServerConfig(BaseModel):
    """Canvas server the drawing surface is synchronized with.

    Attributes:
        base_url: REST base, e.g. ``http://localhost:3000``.
        ws_url: Websocket pushing element mutations.
        reconnect_delay: Seconds before reconnecting after an unclean close.
        timeout: HTTP timeout in seconds for REST calls.
    """

    base_url: str = "http://localhost:3000"
    ws_url: str = "ws://localhost:3000"
    reconnect_delay: float = Field(default=3.0, gt=0.0)
    timeout: float = 10.0
