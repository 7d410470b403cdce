"""HTTP route handlers speaking the agent service's wire contract.

The streaming endpoint emits Server-Sent Events, one JSON payload per
event:
    data: {"type": "content", "content": "..."}
    data: {"type": "tool_call", "tool_call": {...}}
    data: {"type": "done"}
    data: {"type": "error", "error": "..."}
"""

import json
import time
from collections.abc import AsyncIterator
from typing import Any

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from chatstream.models import ChatRequest, ChatResponse
from chatstream.observability import get_logger
from chatstream.server.responders import Responder

logger = get_logger(__name__)


class SSEResponse(StreamingResponse):
    """Server-Sent Events streaming response."""

    media_type = "text/event-stream"

    def __init__(
        self,
        content: AsyncIterator[str],
        status_code: int = 200,
        headers: dict | None = None,
    ) -> None:
        sse_headers = {
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
        if headers:
            sse_headers.update(headers)

        super().__init__(
            content=content,
            status_code=status_code,
            headers=sse_headers,
            media_type=self.media_type,
        )


def format_sse(data: dict[str, Any]) -> str:
    """Format data as one SSE event.

    Args:
        data: Event payload

    Returns:
        ``data: <json>`` followed by a blank line
    """
    return f"data: {json.dumps(data)}\n\n"


async def _parse_chat_request(request: Request) -> ChatRequest | JSONResponse:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

    if not isinstance(body, dict) or not body.get("message"):
        return JSONResponse(
            {"error": "Missing required field: message"},
            status_code=400,
        )

    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        return JSONResponse(
            {"error": "Invalid request", "details": str(e)},
            status_code=400,
        )


def create_routes(responder: Responder) -> list[Route]:
    """Create HTTP routes backed by ``responder``.

    Args:
        responder: Produces the events answering each chat request

    Returns:
        List of Starlette routes
    """

    async def health(request: Request) -> Response:
        """Health check endpoint."""
        return JSONResponse({"status": "ok", "timestamp": time.time()})

    async def chat(request: Request) -> Response:
        """Chat endpoint - collects the responder's events into one reply."""
        chat_request = await _parse_chat_request(request)
        if isinstance(chat_request, JSONResponse):
            return chat_request

        message = ""
        tool_calls: list[Any] = []
        async for event in responder.stream(chat_request):
            event_type = event.get("type")
            if event_type == "content":
                message += event.get("content", "")
            elif event_type == "tool_call":
                tool_calls.append(event.get("tool_call"))
            elif event_type == "error":
                response = ChatResponse(message="", error=event.get("error", ""))
                return JSONResponse(response.model_dump(exclude_none=True))
            elif event_type == "done":
                break

        response = ChatResponse(message=message, tool_calls=tool_calls or None)
        return JSONResponse(response.model_dump(exclude_none=True))

    async def chat_stream(request: Request) -> Response:
        """Chat endpoint with Server-Sent Events response."""
        chat_request = await _parse_chat_request(request)
        if isinstance(chat_request, JSONResponse):
            return chat_request

        async def generate() -> AsyncIterator[str]:
            """Generate the SSE stream."""
            try:
                async for event in responder.stream(chat_request):
                    yield format_sse(event)
            except Exception as e:
                logger.error("Responder failed", error=e)
                yield format_sse({"type": "error", "error": str(e)})

        return SSEResponse(generate())

    return [
        Route("/health", health, methods=["GET"]),
        Route("/api/agent/chat", chat, methods=["POST"]),
        Route("/api/agent/chat/stream", chat_stream, methods=["POST"]),
    ]
