"""State machine driving one streaming call.

A :class:`StreamingCall` consumes the chunks of one response body, feeds
them through the decoder, parser and accumulator, and publishes a
notification per event. ``notifications()`` is the channel form; ``run()``
drains it into an optional sink and returns the :class:`CallResult`.
"""

import asyncio
import inspect
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from enum import Enum

from chatstream.config import StreamPolicy
from chatstream.exceptions import (
    MalformedRecordError,
    PrematureEndOfStreamError,
    ProtocolError,
    StreamCancelledError,
)
from chatstream.observability import emit_counter, get_logger
from chatstream.stream.accumulator import Accumulator
from chatstream.stream.decoder import ChunkDecoder
from chatstream.stream.events import (
    CallResult,
    ContentEvent,
    ContentNotification,
    DoneEvent,
    DoneNotification,
    ErrorEvent,
    MalformedRecord,
    Notification,
    ToolCallEvent,
    ToolCallNotification,
)
from chatstream.stream.parser import parse_record

logger = get_logger(__name__)

Sink = Callable[[Notification], Awaitable[None] | None]


class CallState(str, Enum):
    """Lifecycle of a streaming call."""

    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StreamingCall:
    """One pass over one response body.

    Example:
        call = StreamingCall(response.aiter_bytes())
        async for notification in call.notifications():
            print(notification.kind)
        print(call.result.message)

    Args:
        chunks: Response body fragments in arrival order
        policy: Handling of malformed records and premature end of stream
        cancel: Set to stop reading further chunks
    """

    def __init__(
        self,
        chunks: AsyncIterable[bytes | str],
        policy: StreamPolicy | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self.policy = policy or StreamPolicy()
        self.state = CallState.PENDING
        self.result: CallResult | None = None
        self._chunks = chunks
        self._cancel = cancel
        self._decoder = ChunkDecoder(self.policy.encoding)
        self._accumulator = Accumulator()

    async def run(self, sink: Sink | None = None) -> CallResult:
        """Drive the call to completion, passing each notification to ``sink``.

        ``sink`` may be a plain or an async callable; async sinks are awaited
        before the next chunk is requested.
        """
        async with aclosing(self.notifications()) as stream:
            async for notification in stream:
                if sink is None:
                    continue
                try:
                    outcome = sink(notification)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception:
                    self.state = CallState.FAILED
                    raise

        if self.result is None:
            raise RuntimeError("Stream finished without a result")
        return self.result

    async def notifications(self) -> AsyncIterator[Notification]:
        """Yield notifications as events arrive.

        Finite and not restartable: a second call raises ``RuntimeError``.

        Raises:
            ProtocolError: The producer sent an error event
            MalformedRecordError: A record was malformed and the policy is "raise"
            PrematureEndOfStreamError: No done event and the policy is "raise"
            StreamCancelledError: The cancel event was set
        """
        if self.state is not CallState.PENDING:
            raise RuntimeError(f"Call already {self.state.value}")
        self.state = CallState.STREAMING

        chunks = aiter(self._chunks)
        try:
            while True:
                if self._cancel is not None and self._cancel.is_set():
                    raise self._cancelled()

                try:
                    chunk = await self._next_chunk(chunks)
                except StopAsyncIteration:
                    break

                for record in self._decoder.feed(chunk):
                    notification = self._dispatch(record)
                    if notification is None:
                        continue
                    yield notification
                    if self.state is CallState.COMPLETED:
                        return

            self._finish_without_done()
        except (GeneratorExit, asyncio.CancelledError):
            if self.state is CallState.STREAMING:
                self.state = CallState.CANCELLED
            raise
        except BaseException:
            if self.state is CallState.STREAMING:
                self.state = CallState.FAILED
            raise
        finally:
            close = getattr(chunks, "aclose", None)
            if close is not None:
                await close()

    def _cancelled(self) -> StreamCancelledError:
        self.state = CallState.CANCELLED
        return StreamCancelledError("Stream cancelled by caller")

    async def _next_chunk(self, chunks: AsyncIterator[bytes | str]) -> bytes | str:
        """Wait for the next chunk, giving up as soon as the cancel event is set."""
        if self._cancel is None:
            return await anext(chunks)

        async def read() -> bytes | str:
            return await anext(chunks)

        read_task = asyncio.ensure_future(read())
        cancel_task = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({read_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = {task for task in (read_task, cancel_task) if not task.done()}
            for task in pending:
                task.cancel()
            if pending:
                # The source must be idle before it can be closed.
                await asyncio.wait(pending)

        if cancel_task.done() and not cancel_task.cancelled():
            if read_task.done() and not read_task.cancelled():
                read_task.exception()
            raise self._cancelled()
        return read_task.result()

    def _dispatch(self, record: str) -> Notification | None:
        parsed = parse_record(record)
        if parsed is None:
            return None

        if isinstance(parsed, MalformedRecord):
            self._handle_malformed(parsed)
            return None

        if isinstance(parsed, ErrorEvent):
            self.state = CallState.FAILED
            logger.warning("Producer reported an error", context={"error": parsed.message})
            raise ProtocolError(parsed.message)

        self._accumulator.apply(parsed)

        if isinstance(parsed, ContentEvent):
            return ContentNotification(text=parsed.text, full_text=self._accumulator.full_text)

        if isinstance(parsed, ToolCallEvent):
            return ToolCallNotification(tool_call=parsed.payload)

        if isinstance(parsed, DoneEvent):
            self.result = self._accumulator.result()
            self.state = CallState.COMPLETED
            return DoneNotification(
                full_text=self.result.message,
                tool_calls=list(self.result.tool_calls),
            )

        return None

    def _handle_malformed(self, malformed: MalformedRecord) -> None:
        emit_counter("chatstream.stream.malformed")
        if self.policy.on_malformed == "raise":
            self.state = CallState.FAILED
            raise MalformedRecordError(malformed.record, malformed.reason)
        logger.debug(
            "Discarding malformed record",
            context={"reason": malformed.reason, "record": malformed.record[:200]},
        )

    def _finish_without_done(self) -> None:
        leftover = self._decoder.close()
        if leftover:
            # Not newline-terminated, so never a complete record.
            logger.debug(
                "Dropping unterminated trailing record",
                context={"length": len(leftover)},
            )

        emit_counter("chatstream.stream.premature_end")
        if self.policy.on_premature_end == "raise":
            self.state = CallState.FAILED
            raise PrematureEndOfStreamError("Stream ended without a done event")

        logger.warning(
            "Stream ended without a done event, returning accumulated result",
            context={"text_length": len(self._accumulator.full_text)},
        )
        self.result = self._accumulator.result()
        self.state = CallState.COMPLETED


async def drive_stream(
    chunks: AsyncIterable[bytes | str],
    sink: Sink | None = None,
    policy: StreamPolicy | None = None,
    cancel: asyncio.Event | None = None,
) -> CallResult:
    """Run a fresh :class:`StreamingCall` over ``chunks``."""
    return await StreamingCall(chunks, policy=policy, cancel=cancel).run(sink)
