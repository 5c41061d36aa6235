"""Anthropic Messages API provider (direct or via Amazon Bedrock) with streamed tool_use."""
from __future__ import annotations

from typing import Any, AsyncIterator

import anthropic
from anthropic import AsyncAnthropic, AsyncAnthropicBedrock

from dealdesk.agent.events import MessageEnd, StreamEvent, TextDelta, ToolEnd, ToolInputDelta, ToolStart
from dealdesk.agent.messages import Message, TextBlock, ToolResultBlock, ToolUseBlock
from dealdesk.agent.providers.base import InferenceRequest, ProviderAdapter, RawChannel, ToolSpec
from dealdesk.agent.stream_normalizer import field_of, normalize_stream


class AnthropicProvider(ProviderAdapter):
    name = "anthropic"
    transport_errors = (anthropic.APIError,)

    def __init__(self, client: Any) -> None:
        self.client = client

    @classmethod
    def direct(cls, api_key: str, base_url: str | None = None) -> AnthropicProvider:
        return cls(AsyncAnthropic(api_key=api_key, base_url=base_url or None))

    @classmethod
    def bedrock(cls, aws_region: str) -> AnthropicProvider:
        provider = cls(AsyncAnthropicBedrock(aws_region=aws_region))
        provider.name = "bedrock"
        return provider

    async def open_stream(self, request: InferenceRequest) -> RawChannel:
        payload: dict = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": build_messages(request.messages),
            "stream": True,
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if request.tools:
            payload["tools"] = build_tools(request.tools)
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        return await self.client.messages.create(**payload)

    def normalize(self, raw: RawChannel) -> AsyncIterator[StreamEvent]:
        return normalize_stream(raw, AnthropicChunkTranslator())


class AnthropicChunkTranslator:
    """Maps raw Messages stream events onto normalized events.

    Deltas carry a content block index rather than the tool id, and the
    stop reason arrives on ``message_delta`` ahead of ``message_stop``.
    """

    def __init__(self) -> None:
        self._tool_ids: dict[int, str] = {}
        self._stop_reason: str | None = None

    def __call__(self, chunk: Any) -> list[StreamEvent]:
        kind = field_of(chunk, "type")
        index = field_of(chunk, "index")

        if kind == "content_block_start":
            block = field_of(chunk, "content_block")
            block_type = field_of(block, "type")
            if block_type == "tool_use":
                tool_use_id = str(field_of(block, "id"))
                self._tool_ids[index] = tool_use_id
                return [ToolStart(tool_use_id, str(field_of(block, "name")))]
            if block_type == "text" and field_of(block, "text"):
                return [TextDelta(field_of(block, "text"))]
            return []

        if kind == "content_block_delta":
            delta = field_of(chunk, "delta")
            delta_type = field_of(delta, "type")
            if delta_type == "text_delta" and field_of(delta, "text"):
                return [TextDelta(field_of(delta, "text"))]
            if delta_type == "input_json_delta" and field_of(delta, "partial_json"):
                return [ToolInputDelta(self._tool_ids.get(index), field_of(delta, "partial_json"))]
            return []

        if kind == "content_block_stop":
            return [ToolEnd(self._tool_ids.pop(index, None))]

        if kind == "message_delta":
            stop_reason = field_of(field_of(chunk, "delta"), "stop_reason")
            if stop_reason:
                self._stop_reason = stop_reason
            return []

        if kind == "message_stop":
            return [MessageEnd(self._stop_reason or "end_turn")]

        return []


def build_messages(messages: list[Message]) -> list[dict]:
    """Convert conversation turns to Anthropic API message format."""
    result: list[dict] = []
    for msg in messages:
        content: list[dict] = []
        for block in msg.content:
            if isinstance(block, TextBlock):
                if block.text:
                    content.append({"type": "text", "text": block.text})
            elif isinstance(block, ToolUseBlock):
                content.append({
                    "type": "tool_use",
                    "id": block.tool_use_id,
                    "name": block.name,
                    "input": block.input,
                })
            elif isinstance(block, ToolResultBlock):
                content.append({
                    "type": "tool_result",
                    "tool_use_id": block.tool_use_id,
                    "content": block.text,
                    "is_error": block.is_error,
                })
        if content:
            result.append({"role": msg.role, "content": content})
    return result


def build_tools(tools: list[ToolSpec]) -> list[dict]:
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.input_schema,
        }
        for t in tools
    ]
