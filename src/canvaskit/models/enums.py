"""All string enums for canvaskit."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class SessionState(StrEnum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CLOSED, SessionState.FAILED)


@unique
class EventKind(StrEnum):
    """Closed classification of realtime protocol messages."""

    CONFIGURATION = "configuration"
    CONVERSATION_ITEM = "conversation_item"
    RESPONSE_LIFECYCLE = "response_lifecycle"
    FUNCTION_CALL_ARGUMENTS = "function_call_arguments"
    OUTPUT_ITEM = "output_item"
    AUDIO_TELEMETRY = "audio_telemetry"
    ERROR = "error"
    UNCLASSIFIED = "unclassified"


@unique
class EventOrigin(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


@unique
class ToolCallStatus(StrEnum):
    PENDING = "pending"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@unique
class CanvasMessageType(StrEnum):
    """Messages pushed by the canvas server over its websocket."""

    INITIAL_ELEMENTS = "initial_elements"
    ELEMENT_CREATED = "element_created"
    ELEMENT_UPDATED = "element_updated"
    ELEMENT_DELETED = "element_deleted"
    ELEMENTS_BATCH_CREATED = "elements_batch_created"
    ELEMENTS_CLEARED = "elements_cleared"
    MERMAID_CONVERT = "mermaid_convert"
    ELEMENTS_SYNCED = "elements_synced"
    SYNC_STATUS = "sync_status"
    CANVAS_USER_UPDATE = "canvas_user_update"
