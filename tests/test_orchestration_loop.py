from __future__ import annotations

import pytest

from dealdesk.agent.events import ToolStart
from dealdesk.agent.gateway import InferenceGateway
from dealdesk.agent.loop import CANCELLED, LoopCallbacks, run_local_orchestration
from dealdesk.agent.messages import Conversation, Message
from dealdesk.agent.providers.mock_provider import ScriptedProvider, text_chunks, tool_use_chunks
from dealdesk.agent.tool_registry import ToolRegistry
from dealdesk.errors import ToolRoundLimitError, TransportError
from dealdesk.observability.metrics import get_runtime_metrics
from dealdesk.tools.weather_tools import FORECAST, build_weather_tools


def _setup(scripts):
    provider = ScriptedProvider(scripts)
    gateway = InferenceGateway(provider, model="m")
    registry = ToolRegistry(build_weather_tools())
    return provider, gateway, registry


def _weather_call(tool_use_id: str = "tooluse_1") -> list[dict]:
    return tool_use_chunks(
        tool_use_id,
        "check_the_weather",
        ['{"zi', 'p": "94', '105"}'],
        preamble="Let me check.",
    )


@pytest.mark.asyncio
async def test_without_tools_single_round_ends_the_turn():
    provider, gateway, registry = _setup([text_chunks("Hello!")])
    conversation = Conversation([Message.user_text("hi")])

    result = await run_local_orchestration(gateway, registry, conversation, use_tools=False)

    assert result.text == "Hello!"
    assert result.rounds == 1
    assert result.stop_reason == "end_turn"
    assert provider.requests[0].tools == []
    assert [m.role for m in conversation] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_tool_round_appends_tool_use_and_result_then_answers():
    provider, gateway, registry = _setup([_weather_call(), text_chunks("It is sunny.")])
    conversation = Conversation([Message.user_text("Weather in 94105?")])
    observed = []

    result = await run_local_orchestration(
        gateway,
        registry,
        conversation,
        callbacks=LoopCallbacks(on_tool_result=lambda tool_use, res: observed.append((tool_use.name, res))),
    )

    assert result.text == "It is sunny."
    assert result.rounds == 2
    assistant, tool_turn = conversation.messages[1], conversation.messages[2]
    assert assistant.text == "Let me check."
    assert assistant.tool_uses[0].input == {"zip": "94105"}
    assert tool_turn.role == "user"
    assert tool_turn.tool_results[0].tool_use_id == "tooluse_1"
    assert tool_turn.tool_results[0].text == FORECAST
    assert observed[0][0] == "check_the_weather"
    assert [t.name for t in provider.requests[0].tools] == ["check_the_weather"]
    assert provider.requests[1].messages[-1].tool_results[0].text == FORECAST


@pytest.mark.asyncio
async def test_bad_tool_input_is_fed_back_to_the_model():
    bad = tool_use_chunks("t1", "check_the_weather", ['{"zip": '])
    provider, gateway, registry = _setup([bad, text_chunks("Sorry.")])
    conversation = Conversation([Message.user_text("weather")])

    result = await run_local_orchestration(gateway, registry, conversation)

    assert result.text == "Sorry."
    tool_result = conversation.messages[2].tool_results[0]
    assert tool_result.is_error
    assert provider.requests[1].messages[-1].tool_results[0].is_error


@pytest.mark.asyncio
async def test_round_limit_raises():
    scripts = [_weather_call(f"t{i}") for i in range(3)]
    _, gateway, registry = _setup(scripts)

    with pytest.raises(ToolRoundLimitError) as excinfo:
        await run_local_orchestration(gateway, registry, Conversation([Message.user_text("loop")]), max_rounds=2)

    assert excinfo.value.max_rounds == 2
    assert get_runtime_metrics().round_limit_exceeded_total == 1


@pytest.mark.asyncio
async def test_cancellation_is_checked_between_rounds():
    provider, gateway, registry = _setup([_weather_call(), text_chunks("never")])

    result = await run_local_orchestration(
        gateway,
        registry,
        Conversation([Message.user_text("weather")]),
        callbacks=LoopCallbacks(is_cancelled=lambda: True),
    )

    assert result.stop_reason == CANCELLED
    assert result.rounds == 1
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_events_are_forwarded_in_order():
    _, gateway, registry = _setup([_weather_call(), text_chunks("done")])
    seen = []

    async def on_event(event):
        seen.append(event)

    await run_local_orchestration(
        gateway,
        registry,
        Conversation([Message.user_text("weather")]),
        callbacks=LoopCallbacks(on_event=on_event),
    )

    starts = [e for e in seen if isinstance(e, ToolStart)]
    assert starts == [ToolStart("tooluse_1", "check_the_weather")]


@pytest.mark.asyncio
async def test_transport_error_propagates():
    _, gateway, registry = _setup([[ConnectionError("gone")]])

    with pytest.raises(TransportError):
        await run_local_orchestration(gateway, registry, Conversation([Message.user_text("hi")]))


@pytest.mark.asyncio
async def test_invalid_round_bound_is_rejected():
    _, gateway, registry = _setup([])
    with pytest.raises(ValueError):
        await run_local_orchestration(gateway, registry, Conversation([Message.user_text("hi")]), max_rounds=0)

