"""Types flowing through the stream pipeline.

Parsed records become :data:`StreamEvent` values; the driver turns those
into :data:`Notification` values for the caller and finally a
:class:`CallResult`.
"""

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class ContentEvent:
    """An incremental slice of assistant output."""

    text: str


@dataclass(frozen=True)
class ToolCallEvent:
    """One tool invocation descriptor, forwarded as-is."""

    payload: Any


@dataclass(frozen=True)
class DoneEvent:
    """Successful end of the stream."""


@dataclass(frozen=True)
class ErrorEvent:
    """The producer reported a failure."""

    message: str


StreamEvent = ContentEvent | ToolCallEvent | DoneEvent | ErrorEvent


@dataclass(frozen=True)
class MalformedRecord:
    """A record carrying the event marker whose payload could not be parsed."""

    record: str
    reason: str


@dataclass
class ContentNotification:
    """New text arrived; ``full_text`` is everything received so far."""

    text: str
    full_text: str
    kind: Literal["content"] = "content"


@dataclass
class ToolCallNotification:
    """A tool call arrived."""

    tool_call: Any
    kind: Literal["tool_call"] = "tool_call"


@dataclass
class DoneNotification:
    """The stream completed."""

    full_text: str
    tool_calls: list[Any] = field(default_factory=list)
    kind: Literal["done"] = "done"


Notification = ContentNotification | ToolCallNotification | DoneNotification


@dataclass
class CallResult:
    """Final result of one chat call."""

    message: str
    tool_calls: list[Any] = field(default_factory=list)
