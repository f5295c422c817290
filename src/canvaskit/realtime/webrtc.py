"""WebRTC transport to the OpenAI Realtime service.

One peer connection carries the microphone track out and the agent's
audio back; the ``oai-events`` data channel carries the JSON protocol.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx
from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription

from canvaskit.errors import NegotiationError
from canvaskit.providers.openai.config import OpenAIRealtimeConfig
from canvaskit.providers.openai.realtime import exchange_sdp
from canvaskit.realtime.base import (
    ChannelCloseCallback,
    ChannelMessageCallback,
    MessageChannel,
    RemoteTrackCallback,
    TransportFailureCallback,
    TransportHandle,
    TransportNegotiator,
)

logger = logging.getLogger("canvaskit.realtime.webrtc")

DATA_CHANNEL_LABEL = "oai-events"

PeerConnectionFactory = Callable[[RTCConfiguration], Any]


class DataChannelTransport(MessageChannel):
    """:class:`MessageChannel` over an aiortc ``RTCDataChannel``."""

    def __init__(self, channel: Any) -> None:
        self._channel = channel
        self._opened = asyncio.Event()
        self._message_callbacks: list[ChannelMessageCallback] = []
        self._close_callbacks: list[ChannelCloseCallback] = []

        if channel.readyState == "open":
            self._opened.set()

        @channel.on("open")
        def _on_open() -> None:
            logger.debug("Data channel %s open", channel.label)
            self._opened.set()

        @channel.on("message")
        def _on_message(message: str | bytes) -> None:
            for cb in self._message_callbacks:
                try:
                    cb(message)
                except Exception:
                    logger.exception("Error in data channel message callback")

        @channel.on("close")
        def _on_close() -> None:
            logger.debug("Data channel %s closed", channel.label)
            for cb in self._close_callbacks:
                try:
                    cb()
                except Exception:
                    logger.exception("Error in data channel close callback")

    @property
    def is_open(self) -> bool:
        return self._channel.readyState == "open"

    async def send(self, data: str) -> None:
        if not self.is_open:
            raise ConnectionError(f"Data channel is {self._channel.readyState}")
        self._channel.send(data)

    def on_message(self, callback: ChannelMessageCallback) -> None:
        self._message_callbacks.append(callback)

    def on_close(self, callback: ChannelCloseCallback) -> None:
        self._close_callbacks.append(callback)

    async def wait_open(self, timeout: float) -> None:
        await asyncio.wait_for(self._opened.wait(), timeout=timeout)

    async def close(self) -> None:
        if self._channel.readyState not in ("closing", "closed"):
            self._channel.close()


class WebRTCTransport(TransportHandle):
    """Peer connection plus its data channel.

    Reports a failure once if the data channel closes or the connection
    fails before :meth:`close` was called.
    """

    def __init__(self, pc: Any, channel: DataChannelTransport) -> None:
        self._pc = pc
        self._channel = channel
        self._failure_callbacks: list[TransportFailureCallback] = []
        self._closing = False
        self._failed = False

        @pc.on("connectionstatechange")
        async def _on_state_change() -> None:
            state = pc.connectionState
            logger.debug("Peer connection state: %s", state)
            if state in ("failed", "closed"):
                self._fail(f"peer connection {state}")

        channel.on_close(lambda: self._fail("data channel closed"))

    @property
    def channel(self) -> DataChannelTransport:
        return self._channel

    @property
    def peer_connection(self) -> Any:
        return self._pc

    def on_failure(self, callback: TransportFailureCallback) -> None:
        self._failure_callbacks.append(callback)

    def _fail(self, reason: str) -> None:
        if self._closing or self._failed:
            return
        self._failed = True
        logger.warning("Transport lost: %s", reason)
        for cb in self._failure_callbacks:
            try:
                cb(reason)
            except Exception:
                logger.exception("Error in transport failure callback")

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        await self._channel.close()
        await self._pc.close()


class WebRTCNegotiator(TransportNegotiator):
    """Offer/answer negotiation against the OpenAI Realtime endpoint.

    Example:
        negotiator = WebRTCNegotiator(OpenAIRealtimeConfig())
        transport = await negotiator.negotiate(
            credential, local_track=mic_track, on_remote_track=media.attach_remote_track
        )
        await transport.channel.wait_open(timeout=10.0)
    """

    def __init__(
        self,
        config: OpenAIRealtimeConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        peer_factory: PeerConnectionFactory | None = None,
    ) -> None:
        self._config = config or OpenAIRealtimeConfig()
        self._client = client
        self._peer_factory = peer_factory or (
            lambda configuration: RTCPeerConnection(configuration=configuration)
        )

    async def negotiate(
        self,
        credential: str,
        *,
        local_track: Any = None,
        on_remote_track: RemoteTrackCallback | None = None,
    ) -> WebRTCTransport:
        configuration = RTCConfiguration(
            iceServers=[RTCIceServer(urls=url) for url in self._config.stun_servers]
        )
        pc = self._peer_factory(configuration)
        ok = False
        try:
            if on_remote_track is not None:

                @pc.on("track")
                def _on_track(track: Any) -> None:
                    logger.info("Remote %s track received", track.kind)
                    if track.kind == "audio":
                        on_remote_track(track)

            # Tracks must be in place before the offer; adding later would renegotiate.
            if local_track is not None:
                pc.addTrack(local_track)
            else:
                pc.addTransceiver("audio", direction="recvonly")

            channel = DataChannelTransport(pc.createDataChannel(DATA_CHANNEL_LABEL))

            offer = await pc.createOffer()
            await pc.setLocalDescription(offer)
            await self._wait_ice_gathering(pc)

            answer = await exchange_sdp(
                pc.localDescription.sdp, credential, self._config, client=self._client
            )
            await pc.setRemoteDescription(RTCSessionDescription(sdp=answer, type="answer"))
            ok = True
        except NegotiationError:
            raise
        except Exception as exc:
            raise NegotiationError(f"WebRTC negotiation failed: {exc}") from exc
        finally:
            if not ok:
                await pc.close()

        logger.info("WebRTC negotiated with %s", self._config.model)
        return WebRTCTransport(pc, channel)

    async def _wait_ice_gathering(self, pc: Any) -> None:
        if pc.iceGatheringState == "complete":
            return
        done = asyncio.Event()

        @pc.on("icegatheringstatechange")
        def _on_gathering() -> None:
            if pc.iceGatheringState == "complete":
                done.set()

        try:
            await asyncio.wait_for(done.wait(), timeout=self._config.ice_gathering_timeout)
        except TimeoutError:
            logger.warning(
                "ICE gathering not complete after %.1fs, sending offer with current candidates",
                self._config.ice_gathering_timeout,
            )
