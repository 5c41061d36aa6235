"""Tool dispatch: one assembled tool use in, one toolResult block out.

``execute_tool`` is the strict path (raises ToolInputError /
ToolNotFoundError / whatever the executor raises) shared with the HTTP
tool endpoint. ``dispatch`` wraps it so nothing escapes: every failure
becomes an error-status toolResult the model can read.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterable

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from dealdesk.agent.messages import ToolResultBlock
from dealdesk.agent.reducer import ToolUse
from dealdesk.agent.tool_registry import ToolRegistry
from dealdesk.context import ToolContext
from dealdesk.errors import ToolInputError, ToolNotFoundError
from dealdesk.observability.metrics import get_runtime_metrics

logger = logging.getLogger(__name__)
metrics = get_runtime_metrics()


def parse_tool_input(raw: str) -> dict[str, Any]:
    """Parse the accumulated JSON text of a tool use; blank input means no arguments."""
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolInputError(f"Invalid tool input JSON: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ToolInputError("Tool input must be a JSON object")
    return parsed


def validate_tool_input(schema: dict, tool_input: dict[str, Any]) -> None:
    error = best_match(Draft7Validator(schema).iter_errors(tool_input))
    if error is not None:
        location = "/".join(str(p) for p in error.absolute_path)
        suffix = f" (at {location})" if location else ""
        raise ToolInputError(f"Invalid tool input: {error.message}{suffix}")


async def execute_tool(
    registry: ToolRegistry,
    name: str,
    tool_input: dict[str, Any],
    context: ToolContext | None = None,
) -> Any:
    tool = registry.lookup(name)
    if tool is None:
        raise ToolNotFoundError(name)
    validate_tool_input(tool.spec.input_schema, tool_input)
    metrics.increment_tool_call(name)
    return await tool.executor(tool_input, context or ToolContext())


def render_content(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, ensure_ascii=False, default=str)


def looks_like_error(payload: Any) -> bool:
    """Executors report soft failures (e.g. unknown project) as ``{"error": ...}``."""
    return isinstance(payload, dict) and "error" in payload


def error_result(tool_use_id: str, message: str) -> ToolResultBlock:
    return ToolResultBlock(tool_use_id=tool_use_id, text=f"Error: {message}", status="error")


async def dispatch(
    tool_use: ToolUse,
    registry: ToolRegistry,
    context: ToolContext | None = None,
) -> ToolResultBlock:
    extra = {"tool_name": tool_use.name, "tool_use_id": tool_use.tool_use_id}
    started = time.monotonic()
    try:
        tool_input = parse_tool_input(tool_use.input)
        payload = await execute_tool(registry, tool_use.name, tool_input, context)
    except (ToolInputError, ToolNotFoundError) as exc:
        metrics.tool_errors_total += 1
        logger.info("tool call rejected: %s", exc, extra={**extra, "outcome": "rejected"})
        return error_result(tool_use.tool_use_id, str(exc))
    except Exception as exc:  # noqa: BLE001
        metrics.tool_errors_total += 1
        logger.exception("tool execution failed", extra={**extra, "outcome": "error"})
        return error_result(tool_use.tool_use_id, str(exc) or exc.__class__.__name__)

    is_error = looks_like_error(payload)
    if is_error:
        metrics.tool_errors_total += 1
    logger.info(
        "tool executed",
        extra={
            **extra,
            "duration_ms": int((time.monotonic() - started) * 1000),
            "outcome": "error" if is_error else "ok",
        },
    )
    return ToolResultBlock(
        tool_use_id=tool_use.tool_use_id,
        text=render_content(payload),
        status="error" if is_error else None,
    )


async def dispatch_all(
    tool_uses: Iterable[ToolUse],
    registry: ToolRegistry,
    context: ToolContext | None = None,
) -> list[ToolResultBlock]:
    """Sequential, in arrival order."""
    results: list[ToolResultBlock] = []
    for tool_use in tool_uses:
        results.append(await dispatch(tool_use, registry, context))
    return results
