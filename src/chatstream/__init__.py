"""chatstream - streaming client for the agent chat service."""

from chatstream.client import ChatStreamClient
from chatstream.config import ClientConfig, StreamPolicy
from chatstream.exceptions import (
    ChatStreamError,
    ConfigError,
    MalformedRecordError,
    PrematureEndOfStreamError,
    ProtocolError,
    StreamCancelledError,
    TransportError,
)
from chatstream.models import ChatMessage, ChatRequest, ChatResponse
from chatstream.observability import (
    CallContext,
    LogLevel,
    StructuredLogger,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
)
from chatstream.stream import (
    CallResult,
    CallState,
    ContentNotification,
    DoneNotification,
    Notification,
    StreamingCall,
    ToolCallNotification,
    drive_stream,
)
from chatstream.transport import HTTPTransport

__version__ = "0.1.0"
__all__ = [
    # Core
    "CallResult",
    "CallState",
    "ChatStreamClient",
    "ClientConfig",
    "HTTPTransport",
    "StreamPolicy",
    "StreamingCall",
    "drive_stream",
    # Notifications
    "ContentNotification",
    "DoneNotification",
    "Notification",
    "ToolCallNotification",
    # Wire models
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    # Errors
    "ChatStreamError",
    "ConfigError",
    "MalformedRecordError",
    "PrematureEndOfStreamError",
    "ProtocolError",
    "StreamCancelledError",
    "TransportError",
    # Observability
    "CallContext",
    "LogLevel",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "emit_timer",
    "get_logger",
    "register_metric_callback",
]
