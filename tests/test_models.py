"""Tests for protocol events, tool calls and canvas models."""

from __future__ import annotations

import pytest

from canvaskit.models.canvas import CanvasDiff, CanvasElement, element_from_wire
from canvaskit.models.enums import EventKind, EventOrigin, SessionState, ToolCallStatus
from canvaskit.models.event import EventLog, ProtocolEvent, classify_event
from canvaskit.models.tool_call import ToolCall, ToolCatalogue, ToolDefinition


class TestClassifyEvent:
    @pytest.mark.parametrize(
        ("event_type", "kind"),
        [
            ("session.created", EventKind.CONFIGURATION),
            ("session.updated", EventKind.CONFIGURATION),
            ("conversation.item.created", EventKind.CONVERSATION_ITEM),
            ("response.function_call_arguments.delta", EventKind.FUNCTION_CALL_ARGUMENTS),
            ("response.function_call_arguments.done", EventKind.FUNCTION_CALL_ARGUMENTS),
            ("response.output_item.done", EventKind.OUTPUT_ITEM),
            ("response.audio_transcript.delta", EventKind.AUDIO_TELEMETRY),
            ("input_audio_buffer.speech_started", EventKind.AUDIO_TELEMETRY),
            ("output_audio_buffer.stopped", EventKind.AUDIO_TELEMETRY),
            ("response.created", EventKind.RESPONSE_LIFECYCLE),
            ("response.done", EventKind.RESPONSE_LIFECYCLE),
            ("rate_limits.updated", EventKind.RESPONSE_LIFECYCLE),
            ("error", EventKind.ERROR),
            ("something.new", EventKind.UNCLASSIFIED),
            ("", EventKind.UNCLASSIFIED),
        ],
    )
    def test_kinds(self, event_type: str, kind: EventKind) -> None:
        assert classify_event(event_type) == kind


class TestProtocolEvent:
    def test_from_message_keeps_payload_and_id(self) -> None:
        msg = {"type": "response.done", "event_id": "evt_1", "response": {"id": "r1"}}
        event = ProtocolEvent.from_message(msg, sequence=3, origin=EventOrigin.REMOTE)

        assert event.id == "evt_1"
        assert event.sequence == 3
        assert event.kind == EventKind.RESPONSE_LIFECYCLE
        assert event.payload == msg
        assert event.item == {}

    def test_timestamp_from_epoch(self) -> None:
        event = ProtocolEvent.from_message(
            {"type": "error", "timestamp": 0}, sequence=1, origin=EventOrigin.REMOTE
        )
        assert event.timestamp.year == 1970

    def test_generated_id_when_missing(self) -> None:
        a = ProtocolEvent.from_message({"type": "x"}, sequence=1, origin=EventOrigin.LOCAL)
        b = ProtocolEvent.from_message({"type": "x"}, sequence=2, origin=EventOrigin.LOCAL)
        assert a.id != b.id


class TestEventLog:
    def _event(self, seq: int, event_type: str = "response.done") -> ProtocolEvent:
        return ProtocolEvent.from_message(
            {"type": event_type}, sequence=seq, origin=EventOrigin.REMOTE
        )

    def test_append_and_query(self) -> None:
        log = EventLog()
        log.append(self._event(1, "session.created"))
        log.append(self._event(2, "response.done"))

        assert len(log) == 2
        assert log.latest() is not None and log.latest().sequence == 2
        assert [e.type for e in log.of_kind(EventKind.CONFIGURATION)] == ["session.created"]
        assert len(log.of_type("response.done")) == 1

    def test_rejects_out_of_order(self) -> None:
        log = EventLog()
        log.append(self._event(2))
        with pytest.raises(ValueError):
            log.append(self._event(2))

    def test_empty_latest(self) -> None:
        assert EventLog().latest() is None


class TestToolCall:
    def test_lifecycle(self) -> None:
        call = ToolCall(call_id="c1", name="create_element")
        assert call.status == ToolCallStatus.PENDING
        call.transition(ToolCallStatus.EXECUTING)
        call.transition(ToolCallStatus.SUCCEEDED)
        assert call.is_done
        assert call.completed_at is not None

    def test_pending_can_fail_directly(self) -> None:
        call = ToolCall(call_id="c1", name="x")
        call.transition(ToolCallStatus.FAILED)
        assert call.is_done

    def test_terminal_is_final(self) -> None:
        call = ToolCall(call_id="c1", name="x")
        call.transition(ToolCallStatus.FAILED)
        with pytest.raises(ValueError):
            call.transition(ToolCallStatus.EXECUTING)

    def test_cannot_skip_executing(self) -> None:
        call = ToolCall(call_id="c1", name="x")
        with pytest.raises(ValueError):
            call.transition(ToolCallStatus.SUCCEEDED)


class TestToolDefinition:
    def test_to_realtime(self) -> None:
        tool = ToolDefinition(
            name="create_element",
            description="Create",
            parameters={"type": "object", "properties": {"type": {"type": "string"}}},
        )
        assert tool.to_realtime() == {
            "type": "function",
            "name": "create_element",
            "description": "Create",
            "parameters": {"type": "object", "properties": {"type": {"type": "string"}}},
        }

    def test_catalogue_ignores_extra_fields(self) -> None:
        catalogue = ToolCatalogue.model_validate(
            {
                "tools": [{"type": "function", "name": "a"}, {"name": "b"}],
                "instructions": "hi",
            }
        )
        assert catalogue.tool_names == ["a", "b"]
        assert catalogue.instructions == "hi"


class TestCanvasModels:
    def test_element_keeps_extra_fields(self) -> None:
        element = CanvasElement.model_validate(
            {"id": "a", "type": "text", "version": 2, "text": "Hello", "isDeleted": False}
        )
        wire = element.to_wire()
        assert wire["text"] == "Hello"
        assert wire["isDeleted"] is False

    def test_element_from_wire_strips_server_fields(self) -> None:
        element = element_from_wire(
            {
                "id": "a",
                "type": "rectangle",
                "createdAt": "2024-01-01",
                "syncedAt": "2024-01-01",
                "x": 10,
            }
        )
        wire = element.to_wire()
        assert "createdAt" not in wire
        assert "syncedAt" not in wire
        assert wire["x"] == 10

    def test_diff_description(self) -> None:
        diff = CanvasDiff(summary="Added 1 element(s): rectangle")
        assert diff.is_empty
        assert diff.description == "User made changes to canvas: Added 1 element(s): rectangle"


def test_terminal_session_states() -> None:
    assert SessionState.CLOSED.is_terminal
    assert SessionState.FAILED.is_terminal
    assert not SessionState.ACTIVE.is_terminal
