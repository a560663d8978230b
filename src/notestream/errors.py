"""Exception types raised inside the streaming engine.

Only :class:`TransportError` ever crosses a component boundary, and then
only as the payload handed to a transport's ``on_error`` callback.  The
other types are raised and caught internally so callers see structured
results instead.
"""


class StreamingError(Exception):
    """Base class for streaming engine errors."""


class TransportError(StreamingError):
    """The transport failed to open or closed unexpectedly."""

    def __init__(self, message: str, *, url: str | None = None):
        super().__init__(message)
        self.url = url


class ToolCallParseError(StreamingError):
    """Accumulated tool-call argument text is not yet a JSON object."""

    def __init__(self, raw_arguments: str, reason: str):
        super().__init__(reason)
        self.raw_arguments = raw_arguments


class RecoveryError(StreamingError):
    """A recovery attempt could not be carried out."""
