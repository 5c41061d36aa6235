"""Scripted provider replaying Anthropic-shaped stream chunks.

Selected with DEALDESK_PROVIDER=mock. Without scripts it echoes the
latest user text, which is enough to exercise the HTTP surface offline.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Iterable

from dealdesk.agent.events import StreamEvent
from dealdesk.agent.messages import Message
from dealdesk.agent.providers.anthropic_provider import AnthropicChunkTranslator
from dealdesk.agent.providers.base import InferenceRequest, ProviderAdapter, RawChannel
from dealdesk.agent.stream_normalizer import normalize_stream


class ScriptedProvider(ProviderAdapter):
    name = "mock"

    def __init__(self, scripts: Iterable[list[Any]] | None = None) -> None:
        self._scripts = list(scripts or [])
        self.requests: list[InferenceRequest] = []

    async def open_stream(self, request: InferenceRequest) -> RawChannel:
        self.requests.append(request)
        if self._scripts:
            script = self._scripts.pop(0)
        else:
            script = text_chunks(f"echo: {_last_user_text(request.messages)}")
        return _replay(script)

    def normalize(self, raw: RawChannel) -> AsyncIterator[StreamEvent]:
        return normalize_stream(raw, AnthropicChunkTranslator())


async def _replay(script: list[Any]) -> AsyncIterator[Any]:
    for chunk in script:
        if isinstance(chunk, BaseException):
            raise chunk
        yield chunk


def _last_user_text(messages: list[Message]) -> str:
    for message in reversed(messages):
        if message.role == "user" and message.text:
            return message.text
    return ""


def text_chunks(text: str, stop_reason: str = "end_turn", index: int = 0) -> list[dict]:
    """A complete single-text-block message."""
    return [
        {"type": "message_start"},
        {"type": "content_block_start", "index": index, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "index": index, "delta": {"type": "text_delta", "text": text}},
        {"type": "content_block_stop", "index": index},
        {"type": "message_delta", "delta": {"stop_reason": stop_reason}},
        {"type": "message_stop"},
    ]


def tool_use_block_chunks(tool_use_id: str, name: str, fragments: list[str], index: int = 0) -> list[dict]:
    """One tool_use content block, without message framing."""
    chunks: list[dict] = [
        {
            "type": "content_block_start",
            "index": index,
            "content_block": {"type": "tool_use", "id": tool_use_id, "name": name, "input": {}},
        }
    ]
    for fragment in fragments:
        chunks.append({
            "type": "content_block_delta",
            "index": index,
            "delta": {"type": "input_json_delta", "partial_json": fragment},
        })
    chunks.append({"type": "content_block_stop", "index": index})
    return chunks


def tool_use_chunks(
    tool_use_id: str,
    name: str,
    fragments: list[str],
    *,
    preamble: str = "",
) -> list[dict]:
    """A complete message requesting one tool, optionally preceded by text."""
    chunks: list[dict] = [{"type": "message_start"}]
    index = 0
    if preamble:
        chunks.extend(text_chunks(preamble)[1:4])
        index = 1
    chunks.extend(tool_use_block_chunks(tool_use_id, name, fragments, index=index))
    chunks.append({"type": "message_delta", "delta": {"stop_reason": "tool_use"}})
    chunks.append({"type": "message_stop"})
    return chunks
