"""Exception hierarchy for canvaskit."""

from __future__ import annotations


class CanvasKitError(Exception):
    """Base exception for all canvaskit errors."""


class SessionStateError(CanvasKitError):
    """Operation not allowed in the session's current state."""


class AcquisitionError(CanvasKitError):
    """Microphone capture could not be acquired (permission or hardware)."""


class NegotiationError(CanvasKitError):
    """Transport or channel establishment failed.

    Also raised when the credential or tool-catalogue fetch fails, since
    both are prerequisites of the negotiation.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ToolCallError(CanvasKitError):
    """Base class for errors recovered locally by the tool call bridge."""


class ArgumentParseError(ToolCallError):
    """Tool-call arguments are not a valid JSON object."""

    def __init__(self, message: str, *, raw_arguments: str = "") -> None:
        super().__init__(message)
        self.raw_arguments = raw_arguments


class GatewayError(ToolCallError):
    """The tool-execution gateway failed to run a tool.

    Attributes:
        tool_name: Name of the tool that was invoked.
        status_code: HTTP status code from the gateway, if available.
    """

    def __init__(
        self,
        message: str,
        *,
        tool_name: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.status_code = status_code


class GatewayTimeoutError(GatewayError):
    """The gateway did not answer within the configured timeout."""


class PlaybackBlockedError(CanvasKitError):
    """The runtime refused to start audio playback.

    Never escapes :class:`~canvaskit.realtime.media.MediaResources`; it is
    turned into the ``playback_blocked`` status flag and cleared by an
    explicit :meth:`~canvaskit.core.session.CanvasSession.enable_playback`.
    """
