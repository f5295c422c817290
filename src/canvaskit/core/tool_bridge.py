"""Runs agent tool calls against the gateway and feeds results back."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from canvaskit.errors import ArgumentParseError, GatewayError, GatewayTimeoutError
from canvaskit.models.enums import ToolCallStatus
from canvaskit.models.tool_call import ToolCall
from canvaskit.providers.openai.realtime import build_function_call_output, build_response_create
from canvaskit.tools.gateway import ToolGateway

logger = logging.getLogger("canvaskit.core.tool_bridge")

SendFn = Callable[[dict[str, Any]], Awaitable[Any]]
ToolCallListener = Callable[[ToolCall], Any]


def parse_arguments(raw: str) -> dict[str, Any]:
    """Parse serialized tool arguments into a dict.

    Raises:
        ArgumentParseError: *raw* is not a JSON object.
    """
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ArgumentParseError(f"Invalid JSON in arguments: {exc}", raw_arguments=raw) from exc
    if not isinstance(parsed, dict):
        raise ArgumentParseError(
            f"Arguments must be a JSON object, got {type(parsed).__name__}", raw_arguments=raw
        )
    return parsed


def format_tool_output(result: Any) -> str:
    """Flatten a gateway result into the text sent back to the agent.

    A result with a ``content`` list has the ``text`` of every part joined
    by newlines, parts without text contributing an empty line. Strings
    pass through; anything else is JSON-encoded.
    """
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        return "\n".join(_part_text(part) for part in result["content"])
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


def _part_text(part: Any) -> str:
    text = part.get("text") if isinstance(part, dict) else None
    return text if isinstance(text, str) else ""


def error_output(message: str) -> str:
    return json.dumps({"error": message, "success": False})


class ToolCallBridge:
    """Turns a pending :class:`ToolCall` into a gateway call and a result turn.

    Whatever happens, a ``function_call_output`` item followed by a
    ``response.create`` is sent, so the agent always continues.

    Args:
        gateway: Tool-execution gateway.
        timeout: Max seconds per gateway call.
        max_result_length: Longer outputs are truncated with a notice.
    """

    def __init__(
        self,
        gateway: ToolGateway,
        *,
        timeout: float = 30.0,
        max_result_length: int = 16384,
    ) -> None:
        self._gateway = gateway
        self._timeout = timeout
        self._max_result_length = max_result_length
        self._listeners: list[ToolCallListener] = []

    @property
    def gateway(self) -> ToolGateway:
        return self._gateway

    def add_listener(self, callback: ToolCallListener) -> None:
        """Register a callback fired on every status change of a call."""
        self._listeners.append(callback)

    async def execute(self, call: ToolCall, send: SendFn, *, session_id: str = "") -> ToolCall:
        try:
            call.parsed_arguments = parse_arguments(call.raw_arguments)
        except ArgumentParseError as exc:
            logger.warning(
                "Malformed arguments for tool %s(%s) in session %s: %s",
                call.name,
                call.call_id,
                session_id,
                exc,
            )
            output = self._fail(call, str(exc))
        else:
            call.transition(ToolCallStatus.EXECUTING)
            await self._fire(call)
            output = await self._invoke(call, session_id)

        output = self._truncate(call, output, session_id)
        call.result = output
        await self._fire(call)

        try:
            await send(build_function_call_output(call.call_id, output))
        finally:
            await send(build_response_create())
        logger.info(
            "Tool call %s(%s) %s in session %s", call.name, call.call_id, call.status, session_id
        )
        return call

    async def _invoke(self, call: ToolCall, session_id: str) -> str:
        try:
            result = await asyncio.wait_for(
                self._gateway.call(call.name, call.parsed_arguments or {}, call_id=call.call_id),
                timeout=self._timeout,
            )
        except TimeoutError:
            exc = GatewayTimeoutError(
                f"Tool {call.name} timed out after {self._timeout}s", tool_name=call.name
            )
            logger.warning("%s (session %s)", exc, session_id)
            return self._fail(call, str(exc))
        except GatewayError as exc:
            logger.warning(
                "Gateway error for tool %s(%s) in session %s: %s",
                call.name,
                call.call_id,
                session_id,
                exc,
            )
            return self._fail(call, str(exc))
        except Exception as exc:
            logger.exception(
                "Tool %s(%s) raised in session %s", call.name, call.call_id, session_id
            )
            return self._fail(call, str(exc) or type(exc).__name__)

        call.transition(ToolCallStatus.SUCCEEDED)
        return format_tool_output(result)

    @staticmethod
    def _fail(call: ToolCall, message: str) -> str:
        call.error = message
        call.transition(ToolCallStatus.FAILED)
        return error_output(message)

    def _truncate(self, call: ToolCall, output: str, session_id: str) -> str:
        if len(output) <= self._max_result_length:
            return output
        original_len = len(output)
        logger.warning(
            "Tool result for %s(%s) truncated from %d to %d chars (session %s)",
            call.name,
            call.call_id,
            original_len,
            self._max_result_length,
            session_id,
        )
        notice = f"\n... [truncated, original result was {original_len} chars]"
        return output[: self._max_result_length - len(notice)] + notice

    async def _fire(self, call: ToolCall) -> None:
        for cb in self._listeners:
            try:
                result = cb(call)
                if hasattr(result, "__await__"):
                    await result
            except Exception:
                logger.exception("Error in tool call listener for %s", call.call_id)
