"""Realtime transport and media resources."""

from canvaskit.realtime.base import MessageChannel, TransportHandle, TransportNegotiator
from canvaskit.realtime.media import (
    MediaResources,
    MicrophoneCapture,
    MicrophoneTrack,
    PlaybackSink,
    SoundDeviceMicrophone,
    SoundDevicePlayback,
)
from canvaskit.realtime.mock import (
    MockAudioTrack,
    MockCall,
    MockChannel,
    MockMediaResources,
    MockMicrophone,
    MockNegotiator,
    MockPlayback,
    MockTransport,
)
from canvaskit.realtime.webrtc import DataChannelTransport, WebRTCNegotiator, WebRTCTransport

__all__ = [
    # ABCs
    "MessageChannel",
    "MicrophoneCapture",
    "PlaybackSink",
    "TransportHandle",
    "TransportNegotiator",
    # Implementations
    "DataChannelTransport",
    "MediaResources",
    "MicrophoneTrack",
    "SoundDeviceMicrophone",
    "SoundDevicePlayback",
    "WebRTCNegotiator",
    "WebRTCTransport",
    # Mocks
    "MockAudioTrack",
    "MockCall",
    "MockChannel",
    "MockMediaResources",
    "MockMicrophone",
    "MockNegotiator",
    "MockPlayback",
    "MockTransport",
]
