"""Tests for the WebRTC negotiator and data channel transport."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest
from aiortc import RTCSessionDescription

from canvaskit.errors import NegotiationError
from canvaskit.providers.openai.config import OpenAIRealtimeConfig
from canvaskit.realtime.webrtc import (
    DATA_CHANNEL_LABEL,
    DataChannelTransport,
    WebRTCNegotiator,
    WebRTCTransport,
)


class FakeEmitter:
    """Minimal ``pyee``-style ``on`` decorator."""

    def __init__(self) -> None:
        self.handlers: dict[str, list[Callable[..., Any]]] = {}

    def on(self, event: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        def register(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.handlers.setdefault(event, []).append(fn)
            return fn

        return register

    async def emit(self, event: str, *args: Any) -> None:
        for fn in self.handlers.get(event, []):
            result = fn(*args)
            if hasattr(result, "__await__"):
                await result


class FakeDataChannel(FakeEmitter):
    def __init__(self, label: str) -> None:
        super().__init__()
        self.label = label
        self.readyState = "connecting"
        self.sent: list[str] = []

    def send(self, data: str) -> None:
        self.sent.append(data)

    def close(self) -> None:
        self.readyState = "closed"


class FakePeerConnection(FakeEmitter):
    def __init__(self, configuration: Any, *, gather: bool = True) -> None:
        super().__init__()
        self.configuration = configuration
        self.gather = gather
        self.ops: list[str] = []
        self.iceGatheringState = "new"
        self.connectionState = "new"
        self.localDescription: RTCSessionDescription | None = None
        self.remoteDescription: RTCSessionDescription | None = None
        self.channel: FakeDataChannel | None = None
        self.closed = False

    def addTrack(self, track: Any) -> None:
        self.ops.append("addTrack")

    def addTransceiver(self, kind: str, direction: str) -> None:
        self.ops.append(f"addTransceiver:{kind}:{direction}")

    def createDataChannel(self, label: str) -> FakeDataChannel:
        self.ops.append(f"createDataChannel:{label}")
        self.channel = FakeDataChannel(label)
        return self.channel

    async def createOffer(self) -> RTCSessionDescription:
        self.ops.append("createOffer")
        return RTCSessionDescription(sdp="v=0\r\noffer", type="offer")

    async def setLocalDescription(self, description: RTCSessionDescription) -> None:
        self.ops.append("setLocalDescription")
        self.localDescription = description
        if self.gather:
            self.iceGatheringState = "complete"

    async def setRemoteDescription(self, description: RTCSessionDescription) -> None:
        self.ops.append("setRemoteDescription")
        self.remoteDescription = description

    async def close(self) -> None:
        self.closed = True


class PeerFactory:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.created: list[FakePeerConnection] = []

    def __call__(self, configuration: Any) -> FakePeerConnection:
        pc = FakePeerConnection(configuration, **self.kwargs)
        self.created.append(pc)
        return pc

    @property
    def pc(self) -> FakePeerConnection:
        return self.created[-1]


def sdp_client(status: int = 201, answer: str = "v=0\r\nanswer") -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(status, text=answer))
    )


@pytest.fixture
def factory() -> PeerFactory:
    return PeerFactory()


class TestNegotiate:
    async def test_local_track_added_before_offer(self, factory: PeerFactory) -> None:
        negotiator = WebRTCNegotiator(client=sdp_client(), peer_factory=factory)
        transport = await negotiator.negotiate("ek_test", local_track=object())

        assert factory.pc.ops == [
            "addTrack",
            f"createDataChannel:{DATA_CHANNEL_LABEL}",
            "createOffer",
            "setLocalDescription",
            "setRemoteDescription",
        ]
        assert factory.pc.remoteDescription is not None
        assert factory.pc.remoteDescription.sdp == "v=0\r\nanswer"
        assert factory.pc.remoteDescription.type == "answer"
        assert isinstance(transport, WebRTCTransport)

    async def test_without_local_track_receives_only(self, factory: PeerFactory) -> None:
        negotiator = WebRTCNegotiator(client=sdp_client(), peer_factory=factory)
        await negotiator.negotiate("ek_test")
        assert factory.pc.ops[0] == "addTransceiver:audio:recvonly"

    async def test_stun_servers_configured(self, factory: PeerFactory) -> None:
        config = OpenAIRealtimeConfig(stun_servers=["stun:a.test:3478", "stun:b.test:3478"])
        negotiator = WebRTCNegotiator(config, client=sdp_client(), peer_factory=factory)
        await negotiator.negotiate("ek_test")
        assert len(factory.pc.configuration.iceServers) == 2

    async def test_ice_gathering_timeout_is_bounded(self) -> None:
        factory = PeerFactory(gather=False)
        config = OpenAIRealtimeConfig(ice_gathering_timeout=0.01)
        negotiator = WebRTCNegotiator(config, client=sdp_client(), peer_factory=factory)

        await negotiator.negotiate("ek_test")
        assert "setRemoteDescription" in factory.pc.ops

    async def test_sdp_rejection_closes_peer(self, factory: PeerFactory) -> None:
        negotiator = WebRTCNegotiator(client=sdp_client(status=401), peer_factory=factory)
        with pytest.raises(NegotiationError) as exc_info:
            await negotiator.negotiate("ek_bad")

        assert exc_info.value.status_code == 401
        assert factory.pc.closed

    async def test_unexpected_error_is_wrapped(self) -> None:
        class BrokenPeer(FakePeerConnection):
            async def createOffer(self) -> RTCSessionDescription:
                raise RuntimeError("no codecs")

        created: list[BrokenPeer] = []

        def factory(configuration: Any) -> BrokenPeer:
            created.append(BrokenPeer(configuration))
            return created[-1]

        negotiator = WebRTCNegotiator(client=sdp_client(), peer_factory=factory)
        with pytest.raises(NegotiationError, match="no codecs"):
            await negotiator.negotiate("ek_test")
        assert created[0].closed

    async def test_remote_audio_track_forwarded(self, factory: PeerFactory) -> None:
        received: list[Any] = []
        negotiator = WebRTCNegotiator(client=sdp_client(), peer_factory=factory)
        await negotiator.negotiate("ek_test", on_remote_track=received.append)

        class Track:
            def __init__(self, kind: str) -> None:
                self.kind = kind

        audio, video = Track("audio"), Track("video")
        await factory.pc.emit("track", video)
        await factory.pc.emit("track", audio)
        assert received == [audio]


class TestTransport:
    async def _transport(self, factory: PeerFactory) -> WebRTCTransport:
        negotiator = WebRTCNegotiator(client=sdp_client(), peer_factory=factory)
        return await negotiator.negotiate("ek_test")

    async def test_channel_open_and_send(self, factory: PeerFactory) -> None:
        transport = await self._transport(factory)
        channel = factory.pc.channel
        assert channel is not None

        with pytest.raises(ConnectionError):
            await transport.channel.send("{}")

        channel.readyState = "open"
        await channel.emit("open")
        await transport.channel.wait_open(timeout=0.1)
        await transport.channel.send('{"type": "response.create"}')
        assert channel.sent == ['{"type": "response.create"}']

    async def test_wait_open_times_out(self, factory: PeerFactory) -> None:
        transport = await self._transport(factory)
        with pytest.raises(TimeoutError):
            await transport.channel.wait_open(timeout=0.01)

    async def test_inbound_messages_forwarded(self, factory: PeerFactory) -> None:
        transport = await self._transport(factory)
        received: list[str | bytes] = []
        transport.channel.on_message(received.append)

        assert factory.pc.channel is not None
        await factory.pc.channel.emit("message", '{"type": "session.created"}')
        assert received == ['{"type": "session.created"}']

    async def test_failure_reported_once(self, factory: PeerFactory) -> None:
        transport = await self._transport(factory)
        reasons: list[str] = []
        transport.on_failure(reasons.append)

        factory.pc.connectionState = "failed"
        await factory.pc.emit("connectionstatechange")
        assert factory.pc.channel is not None
        await factory.pc.channel.emit("close")

        assert reasons == ["peer connection failed"]

    async def test_close_is_not_a_failure(self, factory: PeerFactory) -> None:
        transport = await self._transport(factory)
        reasons: list[str] = []
        transport.on_failure(reasons.append)

        await transport.close()
        await transport.close()
        factory.pc.connectionState = "closed"
        await factory.pc.emit("connectionstatechange")

        assert reasons == []
        assert factory.pc.closed


def test_data_channel_already_open() -> None:
    channel = FakeDataChannel("oai-events")
    channel.readyState = "open"
    assert DataChannelTransport(channel).is_open
