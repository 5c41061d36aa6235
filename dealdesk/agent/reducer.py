"""Inference state reducer.

Folds normalized stream events into text plus fully assembled tool uses.
Tool input is kept as the raw concatenation of JSON fragments and only
parsed later, once the block is complete. The reducer never raises on
out-of-order input: anomalies are logged and absorbed.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, Callable

from dealdesk.agent.events import MessageEnd, StreamEvent, TextDelta, ToolEnd, ToolInputDelta, ToolStart
from dealdesk.agent.messages import ContentBlock, Message, TextBlock, ToolUseBlock

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolUse:
    tool_use_id: str
    name: str
    input: str  # raw accumulated JSON text


@dataclass(slots=True)
class InferenceState:
    text: str = ""
    tool_uses: dict[str, ToolUse] = field(default_factory=dict)
    current_tool_use_id: str | None = None
    current_tool_name: str | None = None
    current_tool_input: str = ""
    stop_reason: str | None = None
    finished: bool = False


@dataclass(slots=True)
class StreamCallbacks:
    on_text_delta: Callable[[str], None] | None = None
    on_tool_start: Callable[[str], None] | None = None
    on_tool_complete: Callable[[ToolUse], None] | None = None


def apply_event(state: InferenceState, event: StreamEvent, callbacks: StreamCallbacks | None = None) -> None:
    cb = callbacks or StreamCallbacks()
    if state.finished:
        logger.debug("ignoring %s after message end", type(event).__name__)
        return

    if isinstance(event, TextDelta):
        if event.text:
            state.text += event.text
            if cb.on_text_delta:
                cb.on_text_delta(event.text)

    elif isinstance(event, ToolStart):
        if state.current_tool_use_id is not None:
            logger.warning(
                "tool %s started before %s finished; discarding the unfinished one",
                event.tool_use_id,
                state.current_tool_use_id,
                extra={"tool_use_id": state.current_tool_use_id},
            )
        state.current_tool_use_id = event.tool_use_id
        state.current_tool_name = event.name
        state.current_tool_input = ""
        if cb.on_tool_start:
            cb.on_tool_start(event.name)

    elif isinstance(event, ToolInputDelta):
        if state.current_tool_use_id is None:
            logger.warning("input fragment with no tool in progress", extra={"tool_use_id": event.tool_use_id})
            return
        if event.tool_use_id and event.tool_use_id != state.current_tool_use_id:
            logger.warning(
                "input fragment for %s while assembling %s",
                event.tool_use_id,
                state.current_tool_use_id,
                extra={"tool_use_id": event.tool_use_id},
            )
        state.current_tool_input += event.fragment

    elif isinstance(event, ToolEnd):
        if state.current_tool_use_id is None or state.current_tool_name is None:
            return
        tool_use = ToolUse(
            tool_use_id=state.current_tool_use_id,
            name=state.current_tool_name,
            input=state.current_tool_input,
        )
        state.tool_uses[tool_use.tool_use_id] = tool_use
        state.current_tool_use_id = None
        state.current_tool_name = None
        state.current_tool_input = ""
        if cb.on_tool_complete:
            cb.on_tool_complete(tool_use)

    elif isinstance(event, MessageEnd):
        state.stop_reason = event.stop_reason
        state.finished = True


async def reduce_stream(
    events: AsyncIterable[StreamEvent],
    callbacks: StreamCallbacks | None = None,
) -> InferenceState:
    state = InferenceState()
    async for event in events:
        apply_event(state, event, callbacks)
    return state


def parse_tool_input_or_empty(raw: str) -> dict:
    """Best-effort decode for history; the dispatcher reports real parse errors."""
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def build_assistant_message(state: InferenceState) -> Message:
    content: list[ContentBlock] = []
    if state.text:
        content.append(TextBlock(state.text))
    for tool_use in state.tool_uses.values():
        content.append(ToolUseBlock(
            tool_use_id=tool_use.tool_use_id,
            name=tool_use.name,
            input=parse_tool_input_or_empty(tool_use.input),
        ))
    return Message(role="assistant", content=tuple(content))
