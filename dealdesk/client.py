"""HTTP client for the client-driven tool loop.

Mirrors what a browser front end does against this service: stream
``/v1/inference``, fold the NDJSON events, POST each assembled tool use
to ``/v1/tools`` and re-infer with the results appended.
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Iterable

import httpx

from dealdesk.agent.dispatcher import error_result, looks_like_error, parse_tool_input
from dealdesk.agent.events import StreamEvent, event_from_wire
from dealdesk.agent.loop import DEFAULT_MAX_ROUNDS, LoopCallbacks, OrchestrationResult, run_orchestration
from dealdesk.agent.messages import Conversation, Message, ToolResultBlock
from dealdesk.agent.reducer import InferenceState, StreamCallbacks, ToolUse, reduce_stream
from dealdesk.context import ToolContext
from dealdesk.errors import ToolInputError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8050"


class CopilotClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._owns_client = client is None
        self.http = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> CopilotClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def stream_inference(
        self,
        conversation: Conversation,
        *,
        use_tools: bool = False,
        context: ToolContext | None = None,
        system_messages: Iterable[str] = (),
    ) -> AsyncIterator[StreamEvent]:
        """Decoded stream events of one inference; an ``error`` line raises TransportError."""
        context = context or ToolContext()
        body = {
            "messages": conversation.to_wire(),
            "systemMessages": [{"text": text} for text in system_messages],
            "useTools": use_tools,
            "activeProjectId": context.active_project_id,
            "activeAgreementRootId": context.active_agreement_root_id,
        }
        try:
            async with self.http.stream("POST", "/v1/inference", json=body) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise TransportError(_error_message(response), cause=f"http_{response.status_code}")
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        payload = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning("skipping malformed stream line: %r", line[:200])
                        continue
                    if not isinstance(payload, dict):
                        logger.warning("skipping malformed stream line: %r", line[:200])
                        continue
                    if payload.get("type") == "error":
                        raise TransportError(
                            str(payload.get("message") or "inference failed"),
                            cause=payload.get("code"),
                        )
                    event = event_from_wire(payload)
                    if event is not None:
                        yield event
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__, cause=exc.__class__.__name__) from exc

    async def process_stream(
        self,
        events: AsyncIterator[StreamEvent],
        callbacks: StreamCallbacks | None = None,
    ) -> InferenceState:
        return await reduce_stream(events, callbacks)

    async def execute_tool_call(self, tool_use: ToolUse, context: ToolContext | None = None) -> ToolResultBlock:
        try:
            tool_input = parse_tool_input(tool_use.input)
        except ToolInputError as exc:
            return error_result(tool_use.tool_use_id, str(exc))

        body: dict[str, Any] = {"toolUseId": tool_use.tool_use_id, "name": tool_use.name, "input": tool_input}
        if context is not None:
            body["context"] = context.to_wire()
        try:
            response = await self.http.post("/v1/tools", json=body)
        except httpx.HTTPError as exc:
            logger.error("tool request failed: %s", exc, extra={"tool_name": tool_use.name})
            return error_result(tool_use.tool_use_id, f"Tool execution failed: {exc}")
        if response.status_code >= 400:
            return error_result(tool_use.tool_use_id, _error_message(response))
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            logger.error("tool response is not a JSON object", extra={"tool_name": tool_use.name})
            return error_result(tool_use.tool_use_id, "Tool execution failed: invalid response body")

        content = str(payload.get("content", ""))
        return ToolResultBlock(
            tool_use_id=tool_use.tool_use_id,
            text=content,
            status="error" if looks_like_error(_decode_content(content)) else None,
        )

    async def execute_tool_calls(
        self,
        tool_uses: Iterable[ToolUse],
        context: ToolContext | None = None,
    ) -> list[ToolResultBlock]:
        results: list[ToolResultBlock] = []
        for tool_use in tool_uses:
            results.append(await self.execute_tool_call(tool_use, context))
        return results

    async def chat(
        self,
        conversation: Conversation | str,
        *,
        use_tools: bool = True,
        context: ToolContext | None = None,
        system_messages: Iterable[str] = (),
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        callbacks: LoopCallbacks | None = None,
        stream_callbacks: StreamCallbacks | None = None,
    ) -> OrchestrationResult:
        if isinstance(conversation, str):
            conversation = Conversation([Message.user_text(conversation)])
        system_messages = list(system_messages)

        def infer(history: Conversation) -> AsyncIterator[StreamEvent]:
            return self.stream_inference(
                history, use_tools=use_tools, context=context, system_messages=system_messages
            )

        async def dispatch(tool_use: ToolUse) -> ToolResultBlock:
            return await self.execute_tool_call(tool_use, context)

        return await run_orchestration(
            conversation,
            infer=infer,
            dispatch=dispatch,
            max_rounds=max_rounds,
            callbacks=callbacks,
            stream_callbacks=stream_callbacks,
        )


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP error! status: {response.status_code}"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code"))
    if error:
        return str(error)
    return f"HTTP error! status: {response.status_code}"


def _decode_content(content: str) -> Any:
    """The executor payload behind a rendered tool result; plain text stays as is."""
    try:
        return json.loads(content)
    except ValueError:
        return content
