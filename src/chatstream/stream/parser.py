"""Classify event records into stream events."""

import json
from typing import Any

from chatstream.stream.events import (
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    MalformedRecord,
    StreamEvent,
    ToolCallEvent,
)

EVENT_MARKER = "data: "


def parse_record(record: str) -> StreamEvent | MalformedRecord | None:
    """Parse one record.

    Args:
        record: A single line of the response body, without its newline

    Returns:
        The classified event, a :class:`MalformedRecord` if the record
        carries the event marker but its payload is unusable, or ``None``
        for records without the marker and for unknown event types.
    """
    record = record.removesuffix("\r")
    if not record.startswith(EVENT_MARKER):
        return None

    data = record[len(EVENT_MARKER):]
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        return MalformedRecord(record=record, reason=f"invalid JSON: {e.msg}")

    if not isinstance(payload, dict):
        return MalformedRecord(record=record, reason="payload is not an object")

    return _classify(record, payload)


def _classify(record: str, payload: dict[str, Any]) -> StreamEvent | MalformedRecord | None:
    event_type = payload.get("type")

    if event_type == "content":
        text = payload.get("content", "")
        if not isinstance(text, str):
            return MalformedRecord(record=record, reason="content is not a string")
        return ContentEvent(text=text)

    if event_type == "tool_call":
        return ToolCallEvent(payload=payload.get("tool_call"))

    if event_type == "done":
        return DoneEvent()

    if event_type == "error":
        message = payload.get("error") or ""
        if not isinstance(message, str):
            message = json.dumps(message)
        return ErrorEvent(message=message)

    return None
