"""Inference gateway: one provider call per conversation snapshot.

``invoke`` opens the provider stream and hands back the raw channel;
``events`` wraps that channel with the provider's normalizer plus a
per-chunk idle timeout. Provider/network failures surface as
TransportError both when opening and mid-stream; nothing is retried.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Iterable

import httpx

from dealdesk.agent.events import StreamEvent
from dealdesk.agent.messages import Conversation
from dealdesk.agent.prompts import COPILOT_SYSTEM_PROMPT
from dealdesk.agent.providers.base import InferenceRequest, ProviderAdapter, RawChannel, ToolSpec
from dealdesk.agent.stream_normalizer import close_channel
from dealdesk.errors import TransportError
from dealdesk.observability.metrics import get_runtime_metrics

logger = logging.getLogger(__name__)
metrics = get_runtime_metrics()


class InferenceGateway:
    def __init__(
        self,
        provider: ProviderAdapter,
        *,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        timeout_seconds: float = 120.0,
    ) -> None:
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

    @property
    def _transport_errors(self) -> tuple[type[BaseException], ...]:
        return (*self.provider.transport_errors, httpx.HTTPError, asyncio.TimeoutError, TimeoutError, ConnectionError)

    async def invoke(
        self,
        conversation: Conversation,
        tools: Iterable[ToolSpec] | None = None,
        system_prompt: str | None = None,
    ) -> RawChannel:
        if not conversation:
            raise ValueError("conversation must not be empty")
        tool_list = list(tools or [])
        if tool_list and not system_prompt:
            system_prompt = COPILOT_SYSTEM_PROMPT

        request = InferenceRequest(
            model=self.model,
            messages=list(conversation.messages),
            system_prompt=system_prompt or "",
            tools=tool_list,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        metrics.inferences_total += 1
        started = time.monotonic()
        try:
            raw = await asyncio.wait_for(self.provider.open_stream(request), timeout=self.timeout_seconds)
        except self._transport_errors as exc:
            metrics.inference_errors_total += 1
            logger.error("inference call failed: %s", _describe(exc), extra={"outcome": "error"})
            raise TransportError(_describe(exc), cause=exc.__class__.__name__) from exc
        logger.debug(
            "inference stream opened",
            extra={"duration_ms": int((time.monotonic() - started) * 1000), "outcome": "ok"},
        )
        return raw

    async def events(self, raw: RawChannel) -> AsyncIterator[StreamEvent]:
        """Normalized events from ``raw``; the channel is released on exit."""
        normalized = self.provider.normalize(self._guard(raw))
        try:
            async for event in normalized:
                yield event
        finally:
            await close_channel(normalized)

    async def stream_events(
        self,
        conversation: Conversation,
        tools: Iterable[ToolSpec] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        raw = await self.invoke(conversation, tools, system_prompt)
        events = self.events(raw)
        try:
            async for event in events:
                yield event
        finally:
            await close_channel(events)

    async def _guard(self, raw: RawChannel) -> AsyncIterator[Any]:
        iterator = raw.__aiter__()
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(iterator.__anext__(), timeout=self.timeout_seconds)
                except StopAsyncIteration:
                    return
                except self._transport_errors as exc:
                    metrics.inference_errors_total += 1
                    logger.error("inference stream failed: %s", _describe(exc), extra={"outcome": "error"})
                    raise TransportError(_describe(exc), cause=exc.__class__.__name__) from exc
                yield chunk
        finally:
            await close_channel(raw)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "inference timed out"
    return str(exc) or exc.__class__.__name__
