"""Server-side orchestration endpoint.

Runs the whole tool loop in a background task and relays its progress
through a queue as NDJSON: the inference stream events of every round,
a ``tool_result`` line after each dispatch and a closing ``done`` line.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from dealdesk.agent.events import encode_line, event_to_wire
from dealdesk.agent.loop import LoopCallbacks, run_local_orchestration
from dealdesk.api.inference import NDJSON_MEDIA_TYPE, error_line, parse_inference_body, resolve_system_prompt
from dealdesk.deps import get_gateway, get_registry, get_repo, get_settings

router = APIRouter(prefix="/v1", tags=["chat"])
logger = logging.getLogger(__name__)


@router.post("/chat")
async def chat(
    payload: dict,
    request: Request,
    repo=Depends(get_repo),
    gateway=Depends(get_gateway),
    registry=Depends(get_registry),
    settings=Depends(get_settings),
):
    body = parse_inference_body(payload)
    system_prompt = await resolve_system_prompt(body, repo)
    queue: asyncio.Queue[bytes | None] = asyncio.Queue()

    async def on_event(event) -> None:
        await queue.put(encode_line(event_to_wire(event)))

    async def on_tool_result(tool_use, result) -> None:
        await queue.put(encode_line({
            "type": "tool_result",
            "toolUseId": result.tool_use_id,
            "name": tool_use.name,
            "content": result.text,
            "status": result.status or "success",
        }))

    async def run() -> None:
        try:
            result = await run_local_orchestration(
                gateway,
                registry,
                body.conversation,
                context=body.context,
                system_prompt=system_prompt,
                use_tools=body.use_tools,
                max_rounds=settings.max_tool_rounds,
                callbacks=LoopCallbacks(
                    on_event=on_event,
                    on_tool_result=on_tool_result,
                    is_cancelled=request.is_disconnected,
                ),
            )
            await queue.put(encode_line({
                "type": "done",
                "text": result.text,
                "rounds": result.rounds,
                "stopReason": result.stop_reason,
            }))
        except Exception as exc:  # noqa: BLE001
            logger.error("orchestration aborted: %s", exc, extra={"outcome": "error"})
            await queue.put(error_line(exc))
        finally:
            await queue.put(None)

    async def ndjson():
        task = asyncio.create_task(run())
        try:
            while True:
                line = await queue.get()
                if line is None:
                    break
                yield line
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    return StreamingResponse(ndjson(), media_type=NDJSON_MEDIA_TYPE)
