"""Streaming inference endpoint: one model call, relayed as NDJSON stream events.

The provider stream is opened before the response starts, so failures
at that point still get a proper error status. Once lines are flowing
a failure can only be reported in-band as a terminal ``error`` line.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from dealdesk.agent.events import encode_line, event_to_wire
from dealdesk.agent.messages import Conversation
from dealdesk.agent.prompts import load_copilot_system_prompt
from dealdesk.agent.stream_normalizer import close_channel
from dealdesk.context import ToolContext
from dealdesk.deps import get_gateway, get_registry, get_repo
from dealdesk.errors import DealdeskApiError, error_from_exception
from dealdesk.trace import current_trace_id

router = APIRouter(prefix="/v1", tags=["inference"])
logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"


@dataclass(slots=True)
class InferenceBody:
    conversation: Conversation
    system_messages: list[str]
    use_tools: bool
    context: ToolContext


def parse_inference_body(payload: dict[str, Any]) -> InferenceBody:
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise DealdeskApiError(
            code="E_SCHEMA_INVALID",
            message="messages must be a non-empty list",
            retryable=False,
            status_code=422,
            details={"field": "messages"},
            cause="missing_field",
        )
    system_messages: list[str] = []
    for item in payload.get("systemMessages") or []:
        text = item.get("text") if isinstance(item, dict) else item
        if isinstance(text, str) and text.strip():
            system_messages.append(text)
    return InferenceBody(
        conversation=Conversation.from_wire(messages),
        system_messages=system_messages,
        use_tools=bool(payload.get("useTools")),
        context=ToolContext.from_wire(payload),
    )


async def resolve_system_prompt(body: InferenceBody, repo) -> str | None:
    """Grounding prompt when tools are declared, otherwise the caller's system texts."""
    if body.use_tools:
        return await load_copilot_system_prompt(
            repo,
            active_project_id=body.context.active_project_id,
            active_agreement_root_id=body.context.active_agreement_root_id,
        )
    return "\n\n".join(body.system_messages) or None


def error_line(exc: Exception) -> bytes:
    _, payload = error_from_exception(exc, current_trace_id())
    error = payload["error"]
    return encode_line({"type": "error", "code": error["code"], "message": error["message"]})


@router.post("/inference")
async def inference(
    payload: dict,
    repo=Depends(get_repo),
    gateway=Depends(get_gateway),
    registry=Depends(get_registry),
):
    body = parse_inference_body(payload)
    system_prompt = await resolve_system_prompt(body, repo)
    tools = registry.specs() if body.use_tools else None
    raw = await gateway.invoke(body.conversation, tools, system_prompt)

    async def ndjson():
        events = gateway.events(raw)
        try:
            async for event in events:
                yield encode_line(event_to_wire(event))
        except Exception as exc:  # noqa: BLE001
            logger.error("inference stream aborted: %s", exc, extra={"outcome": "error"})
            yield error_line(exc)
        finally:
            await close_channel(events)

    return StreamingResponse(ndjson(), media_type=NDJSON_MEDIA_TYPE)
