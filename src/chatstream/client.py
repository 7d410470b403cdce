"""Client for the agent chat service."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from chatstream.config import ClientConfig
from chatstream.exceptions import ProtocolError
from chatstream.models import ChatMessage, ChatRequest, ChatResponse
from chatstream.observability import CallContext, Timer, emit_counter, emit_timer, get_logger
from chatstream.stream.driver import Sink, StreamingCall
from chatstream.stream.events import CallResult, Notification
from chatstream.transport import HTTPTransport

logger = get_logger(__name__)

History = Sequence[ChatMessage | dict[str, Any]]


class ChatStreamClient:
    """Chat client for the agent service.

    Example usage:
        async with ChatStreamClient.from_config("chatstream.yaml") as client:
            # Callback style
            result = await client.chat_stream("List clusters", on_notification=print)

            # Channel style
            async for notification in client.stream("List clusters"):
                if notification.kind == "content":
                    print(notification.text, end="")

    Each call gets its own decoder and aggregate, so concurrent calls on
    one client share no mutable state.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration; defaults apply when omitted
            http_client: Optional shared httpx client
        """
        self.config = config or ClientConfig()
        self.transport = HTTPTransport.from_config(self.config, client=http_client)

    @classmethod
    def from_config(cls, path: str | Path) -> "ChatStreamClient":
        """Create a client from a YAML or JSON configuration file."""
        return cls(ClientConfig.from_file(path))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatStreamClient":
        """Create a client from a configuration dictionary."""
        return cls(ClientConfig.from_dict(data))

    async def __aenter__(self) -> "ChatStreamClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the HTTP client."""
        await self.transport.close()

    @staticmethod
    def _build_request(message: str, history: History | None) -> dict[str, Any]:
        turns = [
            turn if isinstance(turn, ChatMessage) else ChatMessage.model_validate(turn)
            for turn in history or ()
        ]
        return ChatRequest(message=message, history=turns).model_dump()

    async def chat_stream(
        self,
        message: str,
        history: History | None = None,
        on_notification: Sink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> CallResult:
        """Send a message and stream the reply.

        Args:
            message: The user's message
            history: Prior turns, oldest first
            on_notification: Called once per content, tool-call and done
                notification, in arrival order
            cancel: Set to stop reading and close the response

        Returns:
            The concatenated reply text and the tool calls, in arrival order

        Raises:
            TransportError: Non-success status or network failure
            ProtocolError: The service reported an error mid-stream
            StreamCancelledError: ``cancel`` was set
        """
        path = self.config.paths.chat_stream
        payload = self._build_request(message, history)

        async with CallContext(endpoint=path):
            logger.info("Chat stream started", context={"history_turns": len(payload["history"])})
            emit_counter("chatstream.call.started")
            try:
                with Timer() as timer:
                    async with self.transport.stream(path, payload) as chunks:
                        call = StreamingCall(chunks, policy=self.config.stream, cancel=cancel)
                        result = await call.run(on_notification)
            except Exception as e:
                emit_counter("chatstream.call.failed", {"error": type(e).__name__})
                logger.warning("Chat stream failed", error=e)
                raise

            logger.info(
                "Chat stream completed",
                context={
                    "message_length": len(result.message),
                    "tool_calls": len(result.tool_calls),
                },
                duration_ms=timer.duration_ms,
            )
            emit_counter("chatstream.call.completed")
            emit_timer("chatstream.call.duration", timer.duration_ms)
            return result

    async def stream(
        self,
        message: str,
        history: History | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[Notification]:
        """Send a message and yield notifications as they arrive.

        Breaking out of the loop closes the response. Raises the same errors
        as :meth:`chat_stream`.
        """
        path = self.config.paths.chat_stream
        payload = self._build_request(message, history)
        labels = {"endpoint": path}

        logger.info(
            "Chat stream started",
            context={"endpoint": path, "history_turns": len(payload["history"])},
        )
        emit_counter("chatstream.call.started", labels)

        try:
            with Timer() as timer:
                async with self.transport.stream(path, payload) as chunks:
                    call = StreamingCall(chunks, policy=self.config.stream, cancel=cancel)
                    async with aclosing(call.notifications()) as notifications:
                        async for notification in notifications:
                            yield notification
        except GeneratorExit:
            if call.result is not None:
                self._record_stream_completed(labels, call.result, timer.duration_ms)
            else:
                emit_counter("chatstream.call.abandoned", labels)
                logger.info("Chat stream abandoned by consumer", context=labels)
            raise
        except Exception as e:
            emit_counter("chatstream.call.failed", {**labels, "error": type(e).__name__})
            logger.warning("Chat stream failed", context=labels, error=e)
            raise

        self._record_stream_completed(labels, call.result, timer.duration_ms)

    @staticmethod
    def _record_stream_completed(
        labels: dict[str, Any],
        result: CallResult,
        duration_ms: float,
    ) -> None:
        logger.info(
            "Chat stream completed",
            context={**labels, "tool_calls": len(result.tool_calls)},
            duration_ms=duration_ms,
        )
        emit_counter("chatstream.call.completed", labels)
        emit_timer("chatstream.call.duration", duration_ms, labels)

    async def chat(self, message: str, history: History | None = None) -> CallResult:
        """Send a message and wait for the complete reply.

        Raises:
            TransportError: Non-success status or network failure
            ProtocolError: The service answered with an error or with a body
                that is not a chat reply
        """
        path = self.config.paths.chat
        payload = self._build_request(message, history)

        async with CallContext(endpoint=path):
            emit_counter("chatstream.call.started")
            try:
                with Timer() as timer:
                    data = await self.transport.post_json(path, payload)
                result = self._parse_chat_response(path, data)
            except Exception as e:
                emit_counter("chatstream.call.failed", {"error": type(e).__name__})
                logger.warning("Chat failed", error=e)
                raise

            logger.info("Chat completed", duration_ms=timer.duration_ms)
            emit_counter("chatstream.call.completed")
            emit_timer("chatstream.call.duration", timer.duration_ms)
            return result

    @staticmethod
    def _parse_chat_response(path: str, data: Any) -> CallResult:
        try:
            response = ChatResponse.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(f"Unexpected reply from {path}: {e}") from e
        if response.error:
            raise ProtocolError(response.error)
        return CallResult(message=response.message, tool_calls=list(response.tool_calls or []))

    async def health(self) -> bool:
        """Check whether the service answers its health endpoint."""
        response = await self.transport.get(self.config.paths.health)
        if not response.is_success:
            logger.warning("Health check failed", context={"status": response.status_code})
        return response.is_success
