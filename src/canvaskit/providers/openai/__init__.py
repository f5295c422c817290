"""OpenAI Realtime provider."""

from canvaskit.providers.openai.config import OpenAIRealtimeConfig
from canvaskit.providers.openai.realtime import (
    build_function_call_output,
    build_response_create,
    build_session_update,
    build_user_message,
    exchange_sdp,
)

__all__ = [
    "OpenAIRealtimeConfig",
    "build_function_call_output",
    "build_response_create",
    "build_session_update",
    "build_user_message",
    "exchange_sdp",
]
