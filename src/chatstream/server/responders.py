"""Event producers behind the fixture server."""

from collections.abc import AsyncIterator, Iterable
from typing import Any, Protocol

from chatstream.models import ChatRequest


class Responder(Protocol):
    """Produces the event payloads answering one chat request."""

    def stream(self, request: ChatRequest) -> AsyncIterator[dict[str, Any]]:
        ...


class ScriptedResponder:
    """Replays a fixed list of events for every request.

    Example:
        responder = ScriptedResponder([
            {"type": "content", "content": "Hello"},
            {"type": "done"},
        ])
    """

    def __init__(self, events: Iterable[dict[str, Any]]) -> None:
        self.events = list(events)
        self.requests: list[ChatRequest] = []

    async def stream(self, request: ChatRequest) -> AsyncIterator[dict[str, Any]]:
        self.requests.append(request)
        for event in self.events:
            yield dict(event)


class EchoResponder:
    """Echoes the message back word by word.

    Used for local development without an agent backend.
    """

    async def stream(self, request: ChatRequest) -> AsyncIterator[dict[str, Any]]:
        content = f"Echo: {request.message}"

        full_message = ""
        for word in content.split():
            full_message += word + " "
            yield {"type": "content", "content": word + " "}

        yield {"type": "done", "fullMessage": full_message}
