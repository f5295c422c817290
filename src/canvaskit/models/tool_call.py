"""Tool definitions, the tool catalogue and per-invocation tool calls."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from canvaskit.models.enums import EventKind, ToolCallStatus

_TRANSITIONS: dict[ToolCallStatus, frozenset[ToolCallStatus]] = {
    ToolCallStatus.PENDING: frozenset({ToolCallStatus.EXECUTING, ToolCallStatus.FAILED}),
    ToolCallStatus.EXECUTING: frozenset({ToolCallStatus.SUCCEEDED, ToolCallStatus.FAILED}),
    ToolCallStatus.SUCCEEDED: frozenset(),
    ToolCallStatus.FAILED: frozenset(),
}


class ToolDefinition(BaseModel):
    """A tool the remote agent may invoke.

    Attributes:
        name: Tool name.
        description: Human-readable description shown to the agent.
        parameters: JSON Schema for the tool's arguments.
    """

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_realtime(self) -> dict[str, Any]:
        """Shape expected in the ``tools`` list of a ``session.update``."""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description or f"MCP tool: {self.name}",
            "parameters": self.parameters or {"type": "object", "properties": {}},
        }


class ToolCatalogue(BaseModel):
    """Tools and instruction text returned by the tool-catalogue endpoint."""

    tools: list[ToolDefinition] = Field(default_factory=list)
    instructions: str = ""
    topic: str | None = None

    @property
    def tool_names(self) -> list[str]:
        return [t.name for t in self.tools]


class ToolCall(BaseModel):
    """One invocation request from the remote agent.

    Exactly one instance exists per ``call_id`` within a session.
    """

    call_id: str
    name: str
    raw_arguments: str = ""
    parsed_arguments: dict[str, Any] | None = None
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: str | None = None
    error: str | None = None
    trigger: EventKind = EventKind.FUNCTION_CALL_ARGUMENTS
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    def transition(self, status: ToolCallStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Invalid tool call transition {self.status} -> {status}")
        self.status = status
        if status in (ToolCallStatus.SUCCEEDED, ToolCallStatus.FAILED):
            self.completed_at = datetime.now(UTC)

    @property
    def is_done(self) -> bool:
        return self.status in (ToolCallStatus.SUCCEEDED, ToolCallStatus.FAILED)
