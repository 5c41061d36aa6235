"""OpenAI Chat Completions provider with streamed function calling."""
from __future__ import annotations

import json
from typing import Any, AsyncIterator

import openai
from openai import AsyncOpenAI

from dealdesk.agent.events import MessageEnd, StreamEvent, TextDelta, ToolEnd, ToolInputDelta, ToolStart
from dealdesk.agent.messages import Message, TextBlock, ToolResultBlock
from dealdesk.agent.providers.base import InferenceRequest, ProviderAdapter, RawChannel, ToolSpec
from dealdesk.agent.stream_normalizer import field_of, normalize_stream

FINISH_REASONS = {
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "length": "max_tokens",
    "stop": "end_turn",
}


class OpenAIProvider(ProviderAdapter):
    name = "openai"
    transport_errors = (openai.APIError,)

    def __init__(self, api_key: str, base_url: str | None = None, client: Any = None) -> None:
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url or None)

    async def open_stream(self, request: InferenceRequest) -> RawChannel:
        payload: dict = {
            "model": request.model,
            "messages": build_messages(request.system_prompt, request.messages),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "stream": True,
        }
        if request.tools:
            payload["tools"] = build_tools(request.tools)
        return await self.client.chat.completions.create(**payload)

    def normalize(self, raw: RawChannel) -> AsyncIterator[StreamEvent]:
        return normalize_stream(raw, OpenAIChunkTranslator())


class OpenAIChunkTranslator:
    """Maps chat.completion.chunk objects onto normalized events.

    Tool call fragments are keyed by index; the id and name only ride on
    the first fragment of each call, and there is no explicit block stop,
    so a call is closed when the next one opens or the choice finishes.
    """

    def __init__(self) -> None:
        self._open_index: int | None = None
        self._open_id: str | None = None

    def __call__(self, chunk: Any) -> list[StreamEvent]:
        choices = field_of(chunk, "choices") or []
        if not choices:
            return []
        choice = choices[0]
        delta = field_of(choice, "delta")
        events: list[StreamEvent] = []

        content = field_of(delta, "content")
        if content:
            events.append(TextDelta(content))

        for fragment in field_of(delta, "tool_calls") or []:
            index = field_of(fragment, "index")
            function = field_of(fragment, "function")
            call_id = field_of(fragment, "id")
            if call_id and index != self._open_index:
                events.extend(self._close_open_call())
                self._open_index = index
                self._open_id = call_id
                events.append(ToolStart(call_id, str(field_of(function, "name") or "")))
            arguments = field_of(function, "arguments")
            if arguments and index == self._open_index:
                events.append(ToolInputDelta(self._open_id, arguments))

        finish_reason = field_of(choice, "finish_reason")
        if finish_reason:
            events.extend(self._close_open_call())
            events.append(MessageEnd(FINISH_REASONS.get(finish_reason, finish_reason)))
        return events

    def _close_open_call(self) -> list[StreamEvent]:
        if self._open_id is None:
            return []
        closed = ToolEnd(self._open_id)
        self._open_index = None
        self._open_id = None
        return [closed]


def build_messages(system_prompt: str, messages: list[Message]) -> list[dict]:
    """Convert conversation turns to OpenAI chat format."""
    result: list[dict] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})

    for msg in messages:
        if msg.role == "assistant":
            entry: dict = {"role": "assistant"}
            if msg.text:
                entry["content"] = msg.text
            if msg.tool_uses:
                entry["tool_calls"] = [
                    {
                        "id": block.tool_use_id,
                        "type": "function",
                        "function": {
                            "name": block.name,
                            "arguments": json.dumps(block.input),
                        },
                    }
                    for block in msg.tool_uses
                ]
            result.append(entry)
            continue

        for block in msg.content:
            if isinstance(block, ToolResultBlock):
                result.append({
                    "role": "tool",
                    "tool_call_id": block.tool_use_id,
                    "content": block.text,
                })
        if any(isinstance(block, TextBlock) for block in msg.content):
            result.append({"role": "user", "content": msg.text})
    return result


def build_tools(tools: list[ToolSpec]) -> list[dict]:
    """Convert ToolSpec list to OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.input_schema,
            },
        }
        for t in tools
    ]
