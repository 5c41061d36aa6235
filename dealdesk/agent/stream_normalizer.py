"""Drive a provider raw channel through a chunk translator.

A translator maps one provider chunk to zero or more normalized events.
Unknown chunk shapes map to nothing. The stream ends at the first
MessageEnd; the raw channel is closed either way.
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, AsyncIterator, Callable

from dealdesk.agent.events import MessageEnd, StreamEvent

logger = logging.getLogger(__name__)

ChunkTranslator = Callable[[Any], list[StreamEvent]]


def field_of(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from an SDK model or from a plain dict chunk."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


async def normalize_stream(raw: AsyncIterator[Any], translate: ChunkTranslator) -> AsyncIterator[StreamEvent]:
    try:
        async for chunk in raw:
            try:
                events = translate(chunk)
            except (AttributeError, KeyError, TypeError, IndexError) as exc:
                logger.debug("skipping unrecognized chunk: %s", exc)
                continue
            for event in events:
                yield event
                if isinstance(event, MessageEnd):
                    return
    finally:
        await close_channel(raw)


async def close_channel(raw: Any) -> None:
    for attr in ("aclose", "close"):
        closer = getattr(raw, attr, None)
        if closer is None:
            continue
        result = closer()
        if inspect.isawaitable(result):
            await result
        return
