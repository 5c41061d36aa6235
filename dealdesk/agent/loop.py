"""
loop.py: orchestration loop

Infer, reduce, dispatch, re-infer until the model answers without
requesting tools. Inference and dispatch are injected so the same loop
drives the in-process service (``run_local_orchestration``) and the
HTTP client (``CopilotClient.chat``).
"""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable

from dealdesk.agent.dispatcher import dispatch as dispatch_tool
from dealdesk.agent.events import StreamEvent
from dealdesk.agent.messages import Conversation, Message, TextBlock, ToolResultBlock
from dealdesk.agent.reducer import InferenceState, StreamCallbacks, ToolUse, apply_event, build_assistant_message
from dealdesk.agent.stream_normalizer import close_channel
from dealdesk.errors import ToolRoundLimitError
from dealdesk.observability.metrics import get_runtime_metrics

logger = logging.getLogger(__name__)
metrics = get_runtime_metrics()

DEFAULT_MAX_ROUNDS = 8
CANCELLED = "cancelled"

Infer = Callable[[Conversation], AsyncIterator[StreamEvent]]
Dispatch = Callable[[ToolUse], Awaitable[ToolResultBlock]]


@dataclass(slots=True)
class LoopCallbacks:
    on_event: Callable[[StreamEvent], Awaitable[None] | None] | None = None
    on_tool_result: Callable[[ToolUse, ToolResultBlock], Awaitable[None] | None] | None = None
    is_cancelled: Callable[[], Awaitable[bool] | bool] | None = None


@dataclass(slots=True)
class OrchestrationResult:
    text: str
    stop_reason: str | None
    rounds: int
    conversation: Conversation


async def run_orchestration(
    conversation: Conversation,
    *,
    infer: Infer,
    dispatch: Dispatch,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    callbacks: LoopCallbacks | None = None,
    stream_callbacks: StreamCallbacks | None = None,
) -> OrchestrationResult:
    """
    Run inference rounds until the model stops requesting tools.

    Args:
        conversation: History ending with the latest user turn; extended in place.
        infer: Opens one inference over the current history as normalized events.
        dispatch: Executes one assembled tool use; must not raise.
        max_rounds: Maximum number of tool-dispatch rounds.
        callbacks: Async-or-sync hooks for streaming events out and cancellation.
        stream_callbacks: Reducer observers (text delta, tool start, tool complete).

    Returns:
        The final text and stop reason plus the number of inferences made.

    Raises:
        ToolRoundLimitError: the model still requested tools after ``max_rounds``.
        TransportError: propagated from ``infer``.
    """
    if max_rounds < 1:
        raise ValueError("max_rounds must be >= 1")
    cb = callbacks or LoopCallbacks()
    metrics.orchestrations_total += 1

    for round_index in range(max_rounds + 1):
        if round_index and cb.is_cancelled and await _call_maybe_async(cb.is_cancelled):
            logger.info("orchestration cancelled", extra={"round": round_index, "outcome": CANCELLED})
            return OrchestrationResult(text="", stop_reason=CANCELLED, rounds=round_index, conversation=conversation)

        logger.debug("orchestration round=%d messages=%d", round_index, len(conversation), extra={"round": round_index})
        state = await _drain(infer(conversation), cb, stream_callbacks)

        if not state.tool_uses:
            if state.text:
                conversation.append(Message(role="assistant", content=(TextBlock(state.text),)))
            logger.debug(
                "orchestration done",
                extra={"round": round_index, "stop_reason": state.stop_reason, "outcome": "ok"},
            )
            return OrchestrationResult(
                text=state.text,
                stop_reason=state.stop_reason,
                rounds=round_index + 1,
                conversation=conversation,
            )

        if round_index == max_rounds:
            metrics.round_limit_exceeded_total += 1
            logger.warning("tool round limit reached", extra={"round": round_index, "outcome": "error"})
            raise ToolRoundLimitError(max_rounds)

        conversation.append(build_assistant_message(state))
        results: list[ToolResultBlock] = []
        for tool_use in state.tool_uses.values():
            result = await dispatch(tool_use)
            results.append(result)
            if cb.on_tool_result:
                await _call_maybe_async(cb.on_tool_result, tool_use, result)
        conversation.append(Message(role="user", content=tuple(results)))

    raise AssertionError("unreachable")


async def _drain(
    events: AsyncIterator[StreamEvent],
    cb: LoopCallbacks,
    stream_callbacks: StreamCallbacks | None,
) -> InferenceState:
    state = InferenceState()
    try:
        async for event in events:
            apply_event(state, event, stream_callbacks)
            if cb.on_event:
                await _call_maybe_async(cb.on_event, event)
    finally:
        await close_channel(events)
    return state


async def run_local_orchestration(
    gateway,
    registry,
    conversation: Conversation,
    *,
    context=None,
    system_prompt: str | None = None,
    use_tools: bool = True,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    callbacks: LoopCallbacks | None = None,
    stream_callbacks: StreamCallbacks | None = None,
) -> OrchestrationResult:
    """In-process loop: gateway inference plus registry dispatch.

    Tool declarations are fixed for the whole loop.
    """
    tools = registry.specs() if use_tools else None

    def infer(history: Conversation) -> AsyncIterator[StreamEvent]:
        return gateway.stream_events(history, tools, system_prompt)

    async def dispatch(tool_use: ToolUse) -> ToolResultBlock:
        return await dispatch_tool(tool_use, registry, context)

    return await run_orchestration(
        conversation,
        infer=infer,
        dispatch=dispatch,
        max_rounds=max_rounds,
        callbacks=callbacks,
        stream_callbacks=stream_callbacks,
    )


async def _call_maybe_async(fn: Callable, *args) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result
