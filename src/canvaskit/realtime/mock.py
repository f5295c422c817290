"""Mock transport, negotiator and audio devices for testing."""

from __future__ import annotations

import asyncio
import fractions
import json
from dataclasses import dataclass, field
from typing import Any

import av
import numpy as np
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from canvaskit.errors import PlaybackBlockedError
from canvaskit.realtime.base import (
    ChannelCloseCallback,
    ChannelMessageCallback,
    MessageChannel,
    RemoteTrackCallback,
    TransportFailureCallback,
    TransportHandle,
    TransportNegotiator,
)
from canvaskit.realtime.media import MediaResources, MicrophoneCapture, PlaybackSink


@dataclass
class MockCall:
    """Record of a method call for test assertions."""

    method: str
    args: dict[str, Any] = field(default_factory=dict)


class MockChannel(MessageChannel):
    """In-memory message channel.

    Example:
        channel = MockChannel()
        channel.on_message(router.feed)
        channel.simulate_message({"type": "session.created"})
        await channel.send('{"type": "response.create"}')
        assert channel.sent[-1]["type"] == "response.create"
    """

    def __init__(self, *, open: bool = True) -> None:
        self.raw_sent: list[str] = []
        self.close_count = 0
        self._opened = asyncio.Event()
        self._open = False
        self._message_callbacks: list[ChannelMessageCallback] = []
        self._close_callbacks: list[ChannelCloseCallback] = []
        if open:
            self.simulate_open()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def sent(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for raw in self.raw_sent]

    def sent_of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == event_type]

    async def send(self, data: str) -> None:
        if not self._open:
            raise ConnectionError("MockChannel is not open")
        self.raw_sent.append(data)

    def on_message(self, callback: ChannelMessageCallback) -> None:
        self._message_callbacks.append(callback)

    def on_close(self, callback: ChannelCloseCallback) -> None:
        self._close_callbacks.append(callback)

    async def wait_open(self, timeout: float) -> None:
        await asyncio.wait_for(self._opened.wait(), timeout=timeout)

    async def close(self) -> None:
        self.close_count += 1
        if self._open:
            self.simulate_close()

    # -- Simulation helpers ----------------------------------------------------

    def simulate_open(self) -> None:
        self._open = True
        self._opened.set()

    def simulate_message(self, message: dict[str, Any] | str | bytes) -> None:
        raw = json.dumps(message) if isinstance(message, dict) else message
        for cb in self._message_callbacks:
            cb(raw)

    def simulate_close(self) -> None:
        self._open = False
        for cb in self._close_callbacks:
            cb()


class MockTransport(TransportHandle):
    """Transport handle wrapping a :class:`MockChannel`."""

    def __init__(self, channel: MockChannel | None = None) -> None:
        self._channel = channel or MockChannel()
        self._failure_callbacks: list[TransportFailureCallback] = []
        self._closing = False
        self.close_count = 0
        self._channel.on_close(lambda: self.simulate_failure("data channel closed"))

    @property
    def channel(self) -> MockChannel:
        return self._channel

    def on_failure(self, callback: TransportFailureCallback) -> None:
        self._failure_callbacks.append(callback)

    def simulate_failure(self, reason: str = "connection failed") -> None:
        if self._closing:
            return
        for cb in self._failure_callbacks:
            cb(reason)

    async def close(self) -> None:
        self.close_count += 1
        if self._closing:
            return
        self._closing = True
        await self._channel.close()


class MockNegotiator(TransportNegotiator):
    """Negotiator returning :class:`MockTransport` instances.

    Args:
        error: Raised from :meth:`negotiate` instead of connecting.
        gate: When set, :meth:`negotiate` waits on it first, to hold a
            start at a suspension point.
        open_channel: Whether new channels start open.
    """

    def __init__(
        self,
        *,
        error: BaseException | None = None,
        gate: asyncio.Event | None = None,
        open_channel: bool = True,
    ) -> None:
        self.error = error
        self.gate = gate
        self.open_channel = open_channel
        self.calls: list[MockCall] = []
        self.transports: list[MockTransport] = []
        self.remote_track_callbacks: list[RemoteTrackCallback] = []

    @property
    def transport(self) -> MockTransport | None:
        return self.transports[-1] if self.transports else None

    async def negotiate(
        self,
        credential: str,
        *,
        local_track: Any = None,
        on_remote_track: RemoteTrackCallback | None = None,
    ) -> MockTransport:
        self.calls.append(
            MockCall(
                method="negotiate",
                args={"credential": credential, "local_track": local_track},
            )
        )
        if on_remote_track is not None:
            self.remote_track_callbacks.append(on_remote_track)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        transport = MockTransport(MockChannel(open=self.open_channel))
        self.transports.append(transport)
        return transport


class MockMicrophone(MicrophoneCapture):
    """Microphone producing 20 ms blocks of silence."""

    def __init__(self, *, error: BaseException | None = None, sample_rate: int = 48000) -> None:
        self.sample_rate = sample_rate
        self.error = error
        self.started = False
        self.stop_count = 0

    async def start(self) -> None:
        if self.error is not None:
            raise self.error
        self.started = True

    async def read(self) -> bytes:
        await asyncio.sleep(0.02)
        return b"\x00\x00" * (self.sample_rate // 50)

    async def stop(self) -> None:
        self.stop_count += 1
        self.started = False


class MockPlayback(PlaybackSink):
    """Playback sink that records written audio.

    Args:
        blocked: Number of start attempts that fail with
            :class:`PlaybackBlockedError` before one succeeds.
    """

    def __init__(self, *, blocked: int = 0, sample_rate: int = 24000) -> None:
        self.sample_rate = sample_rate
        self.blocked = blocked
        self.start_attempts = 0
        self.started = False
        self.written: list[bytes] = []
        self.close_count = 0

    async def start(self) -> None:
        self.start_attempts += 1
        if self.blocked > 0:
            self.blocked -= 1
            raise PlaybackBlockedError("autoplay not allowed")
        self.started = True

    def write(self, pcm: bytes) -> None:
        self.written.append(pcm)

    async def close(self) -> None:
        self.close_count += 1
        self.started = False


class MockMediaResources(MediaResources):
    """:class:`MediaResources` over mock devices, counting releases.

    Args:
        release_gate: When set, :meth:`release` waits for it before
            releasing the devices.
    """

    def __init__(
        self,
        *,
        acquire_error: BaseException | None = None,
        playback_blocked: int = 0,
        autoplay: bool = True,
        release_gate: asyncio.Event | None = None,
    ) -> None:
        self.microphone = MockMicrophone(error=acquire_error)
        self.playback = MockPlayback(blocked=playback_blocked)
        super().__init__(self.microphone, self.playback, autoplay=autoplay)
        self.release_calls = 0
        self.release_gate = release_gate

    async def release(self) -> None:
        self.release_calls += 1
        if self.release_gate is not None:
            await self.release_gate.wait()
        await super().release()


class MockAudioTrack(MediaStreamTrack):
    """Inbound audio track yielding *frames* silent frames, then ending."""

    kind = "audio"

    def __init__(self, frames: int = 3, *, sample_rate: int = 48000) -> None:
        super().__init__()
        self._remaining = frames
        self._sample_rate = sample_rate
        self._pts = 0

    async def recv(self) -> av.AudioFrame:
        if self._remaining <= 0 or self.readyState != "live":
            raise MediaStreamError
        self._remaining -= 1
        await asyncio.sleep(0)
        samples = np.zeros((1, self._sample_rate // 50), dtype=np.int16)
        frame = av.AudioFrame.from_ndarray(samples, format="s16", layout="mono")
        frame.sample_rate = self._sample_rate
        frame.pts = self._pts
        frame.time_base = fractions.Fraction(1, self._sample_rate)
        self._pts += samples.shape[1]
        return frame
