"""Running aggregate of one streaming call."""

from dataclasses import dataclass, field
from typing import Any

from chatstream.stream.events import CallResult, ContentEvent, StreamEvent, ToolCallEvent


@dataclass
class Aggregate:
    """Text and tool calls received so far. Append-only."""

    full_text: str = ""
    tool_calls: list[Any] = field(default_factory=list)


class Accumulator:
    """Folds stream events into an :class:`Aggregate`."""

    def __init__(self) -> None:
        self.aggregate = Aggregate()

    @property
    def full_text(self) -> str:
        return self.aggregate.full_text

    @property
    def tool_calls(self) -> list[Any]:
        return self.aggregate.tool_calls

    def apply(self, event: StreamEvent) -> None:
        if isinstance(event, ContentEvent):
            self.aggregate.full_text += event.text
        elif isinstance(event, ToolCallEvent):
            self.aggregate.tool_calls.append(event.payload)

    def result(self) -> CallResult:
        """Snapshot the aggregate as a :class:`CallResult`."""
        return CallResult(
            message=self.aggregate.full_text,
            tool_calls=list(self.aggregate.tool_calls),
        )
