"""Realtime protocol event model, classification and the event log."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from canvaskit.models.enums import EventKind, EventOrigin

# Canonical and fallback "function call ready" message tags.
FUNCTION_CALL_DONE = "response.function_call_arguments.done"
OUTPUT_ITEM_DONE = "response.output_item.done"

# Ordered: the first matching prefix wins, so specific response.* prefixes
# must come before the generic "response." entry.
_KIND_PREFIXES: tuple[tuple[str, EventKind], ...] = (
    ("session.", EventKind.CONFIGURATION),
    ("conversation.item.", EventKind.CONVERSATION_ITEM),
    ("response.function_call_arguments.", EventKind.FUNCTION_CALL_ARGUMENTS),
    ("response.output_item.", EventKind.OUTPUT_ITEM),
    ("response.audio.", EventKind.AUDIO_TELEMETRY),
    ("response.audio_transcript.", EventKind.AUDIO_TELEMETRY),
    ("response.output_audio.", EventKind.AUDIO_TELEMETRY),
    ("response.output_audio_transcript.", EventKind.AUDIO_TELEMETRY),
    ("input_audio_buffer.", EventKind.AUDIO_TELEMETRY),
    ("output_audio_buffer.", EventKind.AUDIO_TELEMETRY),
    ("response.", EventKind.RESPONSE_LIFECYCLE),
)

_KIND_EXACT: dict[str, EventKind] = {
    "error": EventKind.ERROR,
    "rate_limits.updated": EventKind.RESPONSE_LIFECYCLE,
}


def classify_event(event_type: str) -> EventKind:
    """Map a wire ``type`` tag onto the closed :class:`EventKind` set."""
    if event_type in _KIND_EXACT:
        return _KIND_EXACT[event_type]
    for prefix, kind in _KIND_PREFIXES:
        if event_type.startswith(prefix):
            return kind
    return EventKind.UNCLASSIFIED


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProtocolEvent(BaseModel):
    """One inbound or outbound message on the structured channel.

    Immutable once created; ``payload`` is the message as it was on the
    wire.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    sequence: int
    kind: EventKind
    type: str
    origin: EventOrigin
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_message(
        cls,
        message: dict[str, Any],
        *,
        sequence: int,
        origin: EventOrigin,
    ) -> ProtocolEvent:
        event_type = str(message.get("type", ""))
        kwargs: dict[str, Any] = {}
        event_id = message.get("event_id")
        if isinstance(event_id, str) and event_id:
            kwargs["id"] = event_id
        stamp = _parse_timestamp(message.get("timestamp"))
        if stamp is not None:
            kwargs["timestamp"] = stamp
        return cls(
            sequence=sequence,
            kind=classify_event(event_type),
            type=event_type,
            origin=origin,
            payload=dict(message),
            **kwargs,
        )

    @property
    def item(self) -> dict[str, Any]:
        item = self.payload.get("item")
        return item if isinstance(item, dict) else {}


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, int | float):
        try:
            return datetime.fromtimestamp(value, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


class EventLog:
    """Append-only, ordered log of protocol events for one session."""

    def __init__(self) -> None:
        self._events: list[ProtocolEvent] = []

    def append(self, event: ProtocolEvent) -> None:
        if self._events and event.sequence <= self._events[-1].sequence:
            raise ValueError(
                f"Event sequence {event.sequence} is not after {self._events[-1].sequence}"
            )
        self._events.append(event)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ProtocolEvent]:
        return iter(tuple(self._events))

    def __getitem__(self, index: int) -> ProtocolEvent:
        return self._events[index]

    def latest(self) -> ProtocolEvent | None:
        return self._events[-1] if self._events else None

    def of_kind(self, kind: EventKind) -> list[ProtocolEvent]:
        return [e for e in self._events if e.kind == kind]

    def of_type(self, event_type: str) -> list[ProtocolEvent]:
        return [e for e in self._events if e.type == event_type]
