"""Normalized stream events and their NDJSON wire form."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

TEXT = "text"
TOOL_USE_START = "tool_use_start"
TOOL_USE_DELTA = "tool_use_delta"
CONTENT_BLOCK_STOP = "content_block_stop"
MESSAGE_STOP = "message_stop"


@dataclass(frozen=True, slots=True)
class TextDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ToolStart:
    tool_use_id: str
    name: str


@dataclass(frozen=True, slots=True)
class ToolInputDelta:
    tool_use_id: str | None
    fragment: str


@dataclass(frozen=True, slots=True)
class ToolEnd:
    tool_use_id: str | None = None


@dataclass(frozen=True, slots=True)
class MessageEnd:
    stop_reason: str | None


StreamEvent = Union[TextDelta, ToolStart, ToolInputDelta, ToolEnd, MessageEnd]


def event_to_wire(event: StreamEvent) -> dict[str, Any]:
    if isinstance(event, TextDelta):
        return {"type": TEXT, "text": event.text}
    if isinstance(event, ToolStart):
        return {"type": TOOL_USE_START, "toolUseId": event.tool_use_id, "name": event.name}
    if isinstance(event, ToolInputDelta):
        payload: dict[str, Any] = {"type": TOOL_USE_DELTA, "input": event.fragment}
        if event.tool_use_id:
            payload["toolUseId"] = event.tool_use_id
        return payload
    if isinstance(event, ToolEnd):
        payload = {"type": CONTENT_BLOCK_STOP}
        if event.tool_use_id:
            payload["toolUseId"] = event.tool_use_id
        return payload
    if isinstance(event, MessageEnd):
        return {"type": MESSAGE_STOP, "stopReason": event.stop_reason}
    raise TypeError(f"not a stream event: {event!r}")


def event_from_wire(payload: dict[str, Any]) -> StreamEvent | None:
    """Decode one wire object; unknown or incomplete shapes decode to None."""
    kind = payload.get("type")
    if kind == TEXT and payload.get("text"):
        return TextDelta(str(payload["text"]))
    if kind == TOOL_USE_START and payload.get("toolUseId") and payload.get("name"):
        return ToolStart(str(payload["toolUseId"]), str(payload["name"]))
    if kind == TOOL_USE_DELTA and payload.get("input"):
        return ToolInputDelta(payload.get("toolUseId"), str(payload["input"]))
    if kind == CONTENT_BLOCK_STOP:
        return ToolEnd(payload.get("toolUseId"))
    if kind == MESSAGE_STOP:
        return MessageEnd(payload.get("stopReason"))
    return None


def encode_line(payload: dict[str, Any]) -> bytes:
    return (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")
