"""chatstream exceptions."""


class ChatStreamError(Exception):
    """Base exception for chatstream."""

    pass


class ConfigError(ChatStreamError):
    """Configuration error."""

    pass


class TransportError(ChatStreamError):
    """The request failed before or while the response body was read.

    Raised for a non-success status before streaming starts and for network
    failures while connecting or reading chunks.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(ChatStreamError):
    """The producer reported a failure in the stream."""

    pass


class MalformedRecordError(ChatStreamError):
    """An event record could not be parsed."""

    def __init__(self, record: str, reason: str) -> None:
        super().__init__(f"Malformed record ({reason}): {record!r}")
        self.record = record
        self.reason = reason


class PrematureEndOfStreamError(ChatStreamError):
    """The stream ended before a done or error event."""

    pass


class StreamCancelledError(ChatStreamError):
    """The call was cancelled before the stream finished."""

    pass
