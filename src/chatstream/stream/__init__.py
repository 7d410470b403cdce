"""Event-stream decoding, parsing and dispatch."""

from chatstream.stream.accumulator import Accumulator, Aggregate
from chatstream.stream.decoder import ChunkDecoder
from chatstream.stream.driver import CallState, Sink, StreamingCall, drive_stream
from chatstream.stream.events import (
    CallResult,
    ContentEvent,
    ContentNotification,
    DoneEvent,
    DoneNotification,
    ErrorEvent,
    MalformedRecord,
    Notification,
    StreamEvent,
    ToolCallEvent,
    ToolCallNotification,
)
from chatstream.stream.parser import EVENT_MARKER, parse_record

__all__ = [
    "Accumulator",
    "Aggregate",
    "CallResult",
    "CallState",
    "ChunkDecoder",
    "ContentEvent",
    "ContentNotification",
    "DoneEvent",
    "DoneNotification",
    "EVENT_MARKER",
    "ErrorEvent",
    "MalformedRecord",
    "Notification",
    "Sink",
    "StreamEvent",
    "StreamingCall",
    "ToolCallEvent",
    "ToolCallNotification",
    "drive_stream",
    "parse_record",
]
