"""Transport abstractions: message channel, transport handle and negotiator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

# Callback type aliases
ChannelMessageCallback = Callable[[str | bytes], Any]
ChannelCloseCallback = Callable[[], Any]
TransportFailureCallback = Callable[[str], Any]
RemoteTrackCallback = Callable[[Any], Any]


class MessageChannel(ABC):
    """Ordered, bidirectional channel of JSON text messages.

    Example:
        channel.on_message(router.feed)
        await channel.wait_open(timeout=10.0)
        await channel.send('{"type": "response.create"}')
    """

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    async def send(self, data: str) -> None:
        """Send one text message.

        Raises:
            ConnectionError: The channel is not open.
        """
        ...

    @abstractmethod
    def on_message(self, callback: ChannelMessageCallback) -> None:
        """Register a callback for every inbound message, in arrival order."""
        ...

    @abstractmethod
    def on_close(self, callback: ChannelCloseCallback) -> None: ...

    @abstractmethod
    async def wait_open(self, timeout: float) -> None:
        """Block until the channel is open.

        Raises:
            TimeoutError: The channel did not open within *timeout* seconds.
        """
        ...

    @abstractmethod
    async def close(self) -> None: ...


class TransportHandle(ABC):
    """A negotiated connection to the remote agent service."""

    @property
    @abstractmethod
    def channel(self) -> MessageChannel: ...

    @abstractmethod
    def on_failure(self, callback: TransportFailureCallback) -> None:
        """Register a callback fired once if the connection is lost."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the channel and the underlying connection. Idempotent."""
        ...


class TransportNegotiator(ABC):
    """Establishes the audio stream and message channel with the agent service."""

    @abstractmethod
    async def negotiate(
        self,
        credential: str,
        *,
        local_track: Any = None,
        on_remote_track: RemoteTrackCallback | None = None,
    ) -> TransportHandle:
        """Connect and return the transport handle.

        Args:
            credential: Short-lived credential for the agent service.
            local_track: Captured microphone track, attached before the
                local description is generated.
            on_remote_track: Called with every inbound media track.

        Raises:
            NegotiationError: The connection could not be established.
        """
        ...
