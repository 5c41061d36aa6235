from __future__ import annotations

import json

from dealdesk.agent.events import (
    MessageEnd,
    TextDelta,
    ToolEnd,
    ToolInputDelta,
    ToolStart,
    encode_line,
    event_from_wire,
    event_to_wire,
)


def test_event_wire_types_match_ndjson_protocol():
    assert event_to_wire(TextDelta("hi")) == {"type": "text", "text": "hi"}
    assert event_to_wire(ToolStart("t1", "check_the_weather")) == {
        "type": "tool_use_start",
        "toolUseId": "t1",
        "name": "check_the_weather",
    }
    assert event_to_wire(ToolInputDelta("t1", '{"zip":')) == {
        "type": "tool_use_delta",
        "toolUseId": "t1",
        "input": '{"zip":',
    }
    assert event_to_wire(ToolEnd()) == {"type": "content_block_stop"}
    assert event_to_wire(MessageEnd("tool_use")) == {"type": "message_stop", "stopReason": "tool_use"}


def test_delta_without_tool_id_decodes():
    assert event_from_wire({"type": "tool_use_delta", "input": '"x"}'}) == ToolInputDelta(None, '"x"}')


def test_unknown_and_incomplete_lines_decode_to_none():
    assert event_from_wire({"type": "ping"}) is None
    assert event_from_wire({"type": "tool_use_start", "toolUseId": "t1"}) is None
    assert event_from_wire({"type": "text", "text": ""}) is None


def test_encode_line_is_one_json_object_per_line():
    line = encode_line({"type": "text", "text": "naïve\nline"})
    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    assert json.loads(line) == {"type": "text", "text": "naïve\nline"}
