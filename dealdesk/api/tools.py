"""Tool-call endpoint for client-driven loops.

Keeps the plain ``{"error": "..."}`` contract (404 unknown tool, 500
anything else) rather than the error envelope used by other routes.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dealdesk.agent.dispatcher import execute_tool, looks_like_error, parse_tool_input, render_content
from dealdesk.context import ToolContext
from dealdesk.deps import get_registry
from dealdesk.errors import ToolInputError, ToolNotFoundError
from dealdesk.observability.metrics import get_runtime_metrics

router = APIRouter(prefix="/v1", tags=["tools"])
logger = logging.getLogger(__name__)
metrics = get_runtime_metrics()


@router.get("/tools")
async def list_tools(registry=Depends(get_registry)):
    return {
        "tools": [
            {"name": spec.name, "description": spec.description, "inputSchema": spec.input_schema}
            for spec in registry.specs()
        ]
    }


@router.post("/tools")
async def call_tool(payload: dict, registry=Depends(get_registry)):
    tool_use_id = str(payload.get("toolUseId") or "")
    name = str(payload.get("name") or "")
    raw_input = payload.get("input")
    extra = {"tool_name": name, "tool_use_id": tool_use_id}
    try:
        if raw_input is None or isinstance(raw_input, dict):
            tool_input = raw_input or {}
        elif isinstance(raw_input, str):
            tool_input = parse_tool_input(raw_input)
        else:
            raise ToolInputError("Tool input must be a JSON object")
        context = ToolContext.from_wire(payload.get("context"))
        result = await execute_tool(registry, name, tool_input, context)
    except ToolNotFoundError as exc:
        metrics.tool_errors_total += 1
        logger.info("tool call rejected: %s", exc, extra={**extra, "outcome": "not_found"})
        return JSONResponse(status_code=404, content={"error": str(exc)})
    except Exception as exc:  # noqa: BLE001
        metrics.tool_errors_total += 1
        logger.exception("tool execution failed", extra={**extra, "outcome": "error"})
        return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error occurred"})

    is_error = looks_like_error(result)
    if is_error:
        metrics.tool_errors_total += 1
    logger.info("tool executed", extra={**extra, "outcome": "error" if is_error else "ok"})
    tool = registry.lookup(name)
    return {
        "toolUseId": tool_use_id,
        "name": name,
        "input": tool_input,
        "content": render_content(result),
        "updateRequired": bool(tool and tool.mutates and not is_error),
    }
