"""Tests for the streaming call state machine."""

import asyncio
from collections.abc import AsyncIterator, Iterable

import pytest

from chatstream.config import StreamPolicy
from chatstream.exceptions import (
    MalformedRecordError,
    PrematureEndOfStreamError,
    ProtocolError,
    StreamCancelledError,
    TransportError,
)
from chatstream.observability import register_metric_callback, unregister_metric_callback
from chatstream.stream.driver import CallState, StreamingCall, drive_stream
from chatstream.stream.events import (
    CallResult,
    ContentNotification,
    DoneNotification,
    ToolCallNotification,
)
from conftest import sse


async def chunks_of(parts: Iterable[bytes | str]) -> AsyncIterator[bytes | str]:
    for part in parts:
        yield part


def split_every(body: str, size: int) -> list[bytes]:
    data = body.encode()
    return [data[i:i + size] for i in range(0, len(data), size)]


class Recorder:
    """Sink that records every notification."""

    def __init__(self) -> None:
        self.notifications: list = []

    def __call__(self, notification) -> None:
        self.notifications.append(notification)

    @property
    def kinds(self) -> list[str]:
        return [n.kind for n in self.notifications]


CONVERSATION = sse(
    {"type": "content", "content": "Cluster "},
    {"type": "tool_call", "tool_call": {"tool": "list_clusters", "arguments": "{}", "result": "[\"a\"]"}},
    {"type": "content", "content": "a has "},
    {"type": "content", "content": "3 clients ✓"},
    {"type": "tool_call", "tool_call": {"tool": "list_clients", "arguments": "{\"cluster\":\"a\"}", "result": "[]"}},
    {"type": "done", "fullMessage": "ignored"},
)


class TestContentAndToolCalls:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_content_concatenation(self) -> None:
        """The message is the concatenation of content texts."""
        body = sse(
            {"type": "content", "content": "a"},
            {"type": "content", "content": "b"},
            {"type": "content", "content": "c"},
            {"type": "done"},
        )
        recorder = Recorder()

        result = await drive_stream(chunks_of([body]), recorder)

        assert result == CallResult(message="abc", tool_calls=[])
        assert recorder.kinds == ["content", "content", "content", "done"]

    @pytest.mark.asyncio
    async def test_content_notifications_carry_running_text(self) -> None:
        """Each content notification includes the text so far."""
        body = sse(
            {"type": "content", "content": "Hel"},
            {"type": "content", "content": "lo"},
            {"type": "done"},
        )
        recorder = Recorder()

        await drive_stream(chunks_of([body]), recorder)

        assert recorder.notifications[0] == ContentNotification(text="Hel", full_text="Hel")
        assert recorder.notifications[1] == ContentNotification(text="lo", full_text="Hello")
        assert recorder.notifications[2] == DoneNotification(full_text="Hello", tool_calls=[])

    @pytest.mark.asyncio
    async def test_tool_call_ordering(self) -> None:
        """Tool calls keep their relative order, without content."""
        recorder = Recorder()

        result = await drive_stream(chunks_of([CONVERSATION]), recorder)

        assert result.message == "Cluster a has 3 clients ✓"
        assert [tc["tool"] for tc in result.tool_calls] == ["list_clusters", "list_clients"]
        assert recorder.kinds == ["content", "tool_call", "content", "content", "tool_call", "done"]
        assert recorder.notifications[1] == ToolCallNotification(tool_call=result.tool_calls[0])

    @pytest.mark.asyncio
    async def test_done_notification_carries_final_aggregate(self) -> None:
        """The done notification matches the returned result."""
        recorder = Recorder()

        result = await drive_stream(chunks_of([CONVERSATION]), recorder)

        done = recorder.notifications[-1]
        assert done.full_text == result.message
        assert done.tool_calls == result.tool_calls

    @pytest.mark.asyncio
    async def test_async_sink_awaited(self) -> None:
        """Coroutine sinks are awaited in order."""
        seen: list[str] = []

        async def sink(notification) -> None:
            await asyncio.sleep(0)
            seen.append(notification.kind)

        body = sse({"type": "content", "content": "x"}, {"type": "done"})
        await drive_stream(chunks_of([body]), sink)

        assert seen == ["content", "done"]

    @pytest.mark.asyncio
    async def test_no_sink(self) -> None:
        """A sink is optional."""
        body = sse({"type": "content", "content": "x"}, {"type": "done"})

        result = await drive_stream(chunks_of([body]))

        assert result.message == "x"

    @pytest.mark.asyncio
    async def test_records_after_done_not_read(self) -> None:
        """Nothing after the done event is processed."""
        body = sse(
            {"type": "content", "content": "x"},
            {"type": "done"},
            {"type": "content", "content": "late"},
        )
        recorder = Recorder()

        result = await drive_stream(chunks_of([body]), recorder)

        assert result.message == "x"
        assert recorder.kinds == ["content", "done"]

    @pytest.mark.asyncio
    async def test_padding_lines_ignored(self) -> None:
        """Comments, event names and blank lines are skipped."""
        body = (
            ": keep-alive\n\n"
            "event: message\n"
            + sse({"type": "content", "content": "x"})
            + "\n\n"
            + sse({"type": "done"})
        )

        result = await drive_stream(chunks_of([body]))

        assert result.message == "x"


class TestChunkBoundaries:
    """Splitting the body anywhere yields the same result."""

    @pytest.mark.asyncio
    async def test_single_chunk_baseline(self) -> None:
        """The whole body in one chunk."""
        result = await drive_stream(chunks_of([CONVERSATION.encode()]))

        assert result.message == "Cluster a has 3 clients ✓"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [1, 2, 3, 7, 16, 64])
    async def test_fixed_size_splits(self, size: int) -> None:
        """Fixed-size byte splits, including mid-record and mid-character."""
        expected = await drive_stream(chunks_of([CONVERSATION.encode()]))

        result = await drive_stream(chunks_of(split_every(CONVERSATION, size)))

        assert result == expected

    @pytest.mark.asyncio
    async def test_split_inside_payload(self) -> None:
        """A payload split across two chunks is reassembled, not dropped."""
        parts = [
            'data: {"type": "content", "con',
            'tent": "joined"}\n\ndata: {"type": "done"}\n\n',
        ]
        recorder = Recorder()

        result = await drive_stream(chunks_of(parts), recorder)

        assert result.message == "joined"
        assert recorder.kinds == ["content", "done"]


class TestErrors:
    """Tests for error events and failures."""

    @pytest.mark.asyncio
    async def test_error_short_circuit(self) -> None:
        """An error event fails the call without a done notification."""
        body = sse(
            {"type": "content", "content": "a"},
            {"type": "content", "content": "b"},
            {"type": "error", "error": "boom"},
            {"type": "done"},
        )
        recorder = Recorder()
        call = StreamingCall(chunks_of([body]))

        with pytest.raises(ProtocolError, match="boom"):
            await call.run(recorder)

        assert recorder.kinds == ["content", "content"]
        assert call.state is CallState.FAILED
        assert call.result is None

    @pytest.mark.asyncio
    async def test_chunk_source_failure_propagates(self) -> None:
        """A transport failure mid-stream fails the call."""

        async def failing() -> AsyncIterator[bytes]:
            yield sse({"type": "content", "content": "a"}).encode()
            raise TransportError("connection reset")

        call = StreamingCall(failing())

        with pytest.raises(TransportError, match="connection reset"):
            await call.run()

        assert call.state is CallState.FAILED

    @pytest.mark.asyncio
    async def test_sink_failure_propagates(self) -> None:
        """An exception from the sink fails the call."""

        def sink(notification) -> None:
            raise ValueError("sink broke")

        body = sse({"type": "content", "content": "a"}, {"type": "done"})
        call = StreamingCall(chunks_of([body]))

        with pytest.raises(ValueError, match="sink broke"):
            await call.run(sink)

        assert call.state is CallState.FAILED


class TestMalformedPolicy:
    """Tests for malformed record handling."""

    BODY = (
        sse({"type": "content", "content": "a"})
        + 'data: {"type": "content", "content": "tru\n\n'
        + sse({"type": "content", "content": "b"}, {"type": "done"})
    )

    @pytest.mark.asyncio
    async def test_discard_by_default(self) -> None:
        """Malformed records are skipped and do not affect the aggregate."""
        recorder = Recorder()

        result = await drive_stream(chunks_of([self.BODY]), recorder)

        assert result.message == "ab"
        assert recorder.kinds == ["content", "content", "done"]

    @pytest.mark.asyncio
    async def test_discard_emits_metric(self) -> None:
        """Discarded records are counted."""
        metrics: list[str] = []

        def callback(name: str, value: float, labels: dict) -> None:
            metrics.append(name)

        register_metric_callback(callback)
        try:
            await drive_stream(chunks_of([self.BODY]))
        finally:
            unregister_metric_callback(callback)

        assert metrics.count("chatstream.stream.malformed") == 1

    @pytest.mark.asyncio
    async def test_raise_policy(self) -> None:
        """With the raise policy a malformed record fails the call."""
        recorder = Recorder()
        policy = StreamPolicy(on_malformed="raise")

        with pytest.raises(MalformedRecordError) as exc_info:
            await drive_stream(chunks_of([self.BODY]), recorder, policy=policy)

        assert exc_info.value.record.startswith('data: {"type": "content", "content": "tru')
        assert recorder.kinds == ["content"]


class TestEndOfStream:
    """Tests for streams that end without a done event."""

    @pytest.mark.asyncio
    async def test_clean_end_without_done(self) -> None:
        """Accumulated state is returned as a degraded success."""
        recorder = Recorder()
        call = StreamingCall(chunks_of([sse({"type": "content", "content": "x"})]))

        result = await call.run(recorder)

        assert result == CallResult(message="x", tool_calls=[])
        assert recorder.kinds == ["content"]
        assert call.state is CallState.COMPLETED

    @pytest.mark.asyncio
    async def test_empty_stream(self) -> None:
        """An empty body completes with an empty result."""
        result = await drive_stream(chunks_of([]))

        assert result == CallResult(message="", tool_calls=[])

    @pytest.mark.asyncio
    async def test_raise_policy(self) -> None:
        """With the raise policy a missing done event fails the call."""
        policy = StreamPolicy(on_premature_end="raise")
        call = StreamingCall(chunks_of([sse({"type": "content", "content": "x"})]), policy=policy)

        with pytest.raises(PrematureEndOfStreamError):
            await call.run()

        assert call.state is CallState.FAILED

    @pytest.mark.asyncio
    async def test_unterminated_trailing_record_dropped(self) -> None:
        """A final record without a newline is not parsed."""
        body = sse({"type": "content", "content": "x"}) + 'data: {"type": "content", "content": "y"}'

        result = await drive_stream(chunks_of([body]))

        assert result.message == "x"

    @pytest.mark.asyncio
    async def test_unterminated_done_is_dropped(self) -> None:
        """A done event lacking its newline does not count as done."""
        body = sse({"type": "content", "content": "x"}) + 'data: {"type": "done"}'
        policy = StreamPolicy(on_premature_end="raise")

        with pytest.raises(PrematureEndOfStreamError):
            await drive_stream(chunks_of([body]), policy=policy)


class TestCancellation:
    """Tests for the cancel event."""

    @pytest.mark.asyncio
    async def test_cancel_stops_reading(self) -> None:
        """Once cancelled no further chunk is requested."""
        cancel = asyncio.Event()
        requested: list[int] = []

        async def source() -> AsyncIterator[bytes]:
            for i in range(5):
                requested.append(i)
                yield sse({"type": "content", "content": str(i)}).encode()

        def sink(notification) -> None:
            cancel.set()

        call = StreamingCall(source(), cancel=cancel)

        with pytest.raises(StreamCancelledError):
            await call.run(sink)

        assert requested == [0]
        assert call.state is CallState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self) -> None:
        """A call cancelled up front never reads a chunk."""
        cancel = asyncio.Event()
        cancel.set()
        requested: list[int] = []

        async def source() -> AsyncIterator[bytes]:
            requested.append(0)
            yield sse({"type": "done"}).encode()

        recorder = Recorder()
        with pytest.raises(StreamCancelledError):
            await StreamingCall(source(), cancel=cancel).run(recorder)

        assert requested == []
        assert recorder.notifications == []

    @pytest.mark.asyncio
    async def test_source_closed_on_cancel(self) -> None:
        """The chunk source is closed when the call is cancelled mid-stream."""
        closed = False
        cancel = asyncio.Event()

        async def source() -> AsyncIterator[bytes]:
            nonlocal closed
            try:
                for i in range(5):
                    yield sse({"type": "content", "content": str(i)}).encode()
            finally:
                closed = True

        with pytest.raises(StreamCancelledError):
            await StreamingCall(source(), cancel=cancel).run(lambda n: cancel.set())

        assert closed is True

    @pytest.mark.asyncio
    async def test_cancel_interrupts_blocked_read(self) -> None:
        """Cancelling while waiting for a chunk ends the call at once."""
        closed = False
        cancel = asyncio.Event()

        async def source() -> AsyncIterator[bytes]:
            nonlocal closed
            try:
                yield sse({"type": "content", "content": "thinking"}).encode()
                await asyncio.sleep(3600)
                yield sse({"type": "done"}).encode()
            finally:
                closed = True

        recorder = Recorder()
        call = StreamingCall(source(), cancel=cancel)
        task = asyncio.create_task(call.run(recorder))
        await asyncio.sleep(0.05)
        cancel.set()

        with pytest.raises(StreamCancelledError):
            await asyncio.wait_for(task, timeout=1)

        assert recorder.kinds == ["content"]
        assert call.state is CallState.CANCELLED
        assert closed is True

    @pytest.mark.asyncio
    async def test_async_sink_failure_marks_failed(self) -> None:
        """An async sink raising fails the call rather than cancelling it."""

        async def sink(notification) -> None:
            raise ValueError("boom")

        call = StreamingCall(chunks_of([sse({"type": "content", "content": "a"})]))

        with pytest.raises(ValueError, match="boom"):
            await call.run(sink)

        assert call.state is CallState.FAILED

    @pytest.mark.asyncio
    async def test_abandoned_channel_closes_source(self) -> None:
        """Leaving the notification loop early closes the chunk source."""
        closed = False

        async def source() -> AsyncIterator[bytes]:
            nonlocal closed
            try:
                for i in range(5):
                    yield sse({"type": "content", "content": str(i)}).encode()
            finally:
                closed = True

        call = StreamingCall(source())
        notifications = call.notifications()
        first = await anext(notifications)
        await notifications.aclose()

        assert first.text == "0"
        assert closed is True
        assert call.state is CallState.CANCELLED


class TestIndependentCalls:
    """Tests for call isolation."""

    @pytest.mark.asyncio
    async def test_repeated_calls_are_independent(self) -> None:
        """Two runs over identical input give equal but unshared results."""
        first = await drive_stream(chunks_of([CONVERSATION]))
        second = await drive_stream(chunks_of([CONVERSATION]))

        assert first == second
        assert first is not second
        assert first.tool_calls is not second.tool_calls

        first.tool_calls.append("extra")
        assert len(second.tool_calls) == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls(self) -> None:
        """Interleaved calls do not see each other's content."""
        a = sse(*[{"type": "content", "content": "a"}] * 3, {"type": "done"})
        b = sse(*[{"type": "content", "content": "b"}] * 3, {"type": "done"})

        async def slow(body: str) -> AsyncIterator[bytes]:
            for part in split_every(body, 5):
                await asyncio.sleep(0)
                yield part

        result_a, result_b = await asyncio.gather(
            drive_stream(slow(a)), drive_stream(slow(b)),
        )

        assert result_a.message == "aaa"
        assert result_b.message == "bbb"

    @pytest.mark.asyncio
    async def test_call_not_restartable(self) -> None:
        """A finished call cannot be run again."""
        call = StreamingCall(chunks_of([sse({"type": "done"})]))
        await call.run()

        with pytest.raises(RuntimeError):
            await call.run()
