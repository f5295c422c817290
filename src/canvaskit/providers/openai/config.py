"""OpenAI Realtime configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OpenAIRealtimeConfig(BaseModel):
    """OpenAI Realtime connection and session settings.

    Attributes:
        base_url: Realtime endpoint the SDP offer is posted to.
        model: Realtime model identifier.
        voice: Voice used for the agent's audio output.
        transcription_model: Model used to transcribe the user's speech.
        vad_threshold: Server VAD activation threshold (0.0-1.0).
        vad_prefix_padding_ms: Audio kept before detected speech.
        vad_silence_duration_ms: Silence that ends a user turn.
        stun_servers: ICE servers for the peer connection.
        ice_gathering_timeout: Max seconds to wait for ICE gathering before
            the offer is sent with the candidates found so far.
        sdp_timeout: HTTP timeout of the SDP exchange in seconds.
    """

    base_url: str = "https://api.openai.com/v1/realtime"
    model: str = "gpt-realtime-mini"
    voice: str = "alloy"
    transcription_model: str = "whisper-1"
    vad_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 500
    stun_servers: list[str] = Field(default_factory=lambda: ["stun:stun.l.google.com:19302"])
    ice_gathering_timeout: float = 2.0
    sdp_timeout: float = 30.0
