"""OpenAI Realtime client events and the WebRTC SDP exchange."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from canvaskit.errors import NegotiationError
from canvaskit.models.tool_call import ToolCatalogue
from canvaskit.providers.openai.config import OpenAIRealtimeConfig

logger = logging.getLogger("canvaskit.providers.openai.realtime")


def build_session_update(config: OpenAIRealtimeConfig, catalogue: ToolCatalogue) -> dict[str, Any]:
    """Initial ``session.update`` carrying the tool catalogue and instructions."""
    return {
        "type": "session.update",
        "session": {
            "modalities": ["text", "audio"],
            "instructions": catalogue.instructions,
            "voice": config.voice,
            "input_audio_format": "pcm16",
            "output_audio_format": "pcm16",
            "input_audio_transcription": {"model": config.transcription_model},
            "turn_detection": {
                "type": "server_vad",
                "threshold": config.vad_threshold,
                "prefix_padding_ms": config.vad_prefix_padding_ms,
                "silence_duration_ms": config.vad_silence_duration_ms,
            },
            "tools": [tool.to_realtime() for tool in catalogue.tools],
            "tool_choice": "auto",
        },
    }


def build_user_message(text: str) -> dict[str, Any]:
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "message",
            "role": "user",
            "content": [{"type": "input_text", "text": text}],
        },
    }


def build_function_call_output(call_id: str, output: str) -> dict[str, Any]:
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "function_call_output",
            "call_id": call_id,
            "output": output,
        },
    }


def build_response_create() -> dict[str, Any]:
    return {"type": "response.create"}


async def exchange_sdp(
    offer_sdp: str,
    credential: str,
    config: OpenAIRealtimeConfig,
    *,
    client: httpx.AsyncClient | None = None,
) -> str:
    """POST the local SDP offer and return the remote SDP answer.

    Raises:
        NegotiationError: On any transport error or non-2xx response.
    """
    url = f"{config.base_url}?model={config.model}"
    headers = {
        "Authorization": f"Bearer {credential}",
        "Content-Type": "application/sdp",
    }
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=config.sdp_timeout)
    try:
        response = await http.post(url, content=offer_sdp, headers=headers)
        response.raise_for_status()
    except httpx.TimeoutException as exc:
        raise NegotiationError(f"SDP exchange timed out: {exc}") from exc
    except httpx.HTTPStatusError as exc:
        raise NegotiationError(
            f"SDP exchange failed: HTTP {exc.response.status_code}: {exc.response.text}",
            status_code=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise NegotiationError(f"SDP exchange failed: {exc}") from exc
    finally:
        if owns_client:
            await http.aclose()

    answer = response.text
    if not answer.strip():
        raise NegotiationError("SDP exchange returned an empty answer")
    logger.debug("Received SDP answer (%d bytes) for model %s", len(answer), config.model)
    return answer
