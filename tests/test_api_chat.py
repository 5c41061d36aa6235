from __future__ import annotations

import json

from fastapi import Request

from dealdesk.agent.gateway import InferenceGateway
from dealdesk.agent.providers.mock_provider import ScriptedProvider, text_chunks, tool_use_chunks
from dealdesk.deps import get_gateway
from dealdesk.tools.weather_tools import FORECAST


def _use_scripts(client, scripts) -> ScriptedProvider:
    provider = ScriptedProvider(scripts)
    gateway = InferenceGateway(provider, model="test-model")
    client.app.dependency_overrides[get_gateway] = lambda: gateway
    return provider


def _lines(response) -> list[dict]:
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


def test_chat_runs_tool_round_and_reports_done(isolated_client):
    provider = _use_scripts(
        isolated_client,
        [
            tool_use_chunks("tooluse_1", "check_the_weather", ['{"zip": "94105"}'], preamble="Checking."),
            text_chunks("It is 67 degrees and sunny."),
        ],
    )

    response = isolated_client.post(
        "/v1/chat",
        json={"messages": [{"role": "user", "content": "Weather in 94105?"}], "useTools": True},
    )

    assert response.status_code == 200
    lines = _lines(response)
    tool_results = [line for line in lines if line["type"] == "tool_result"]
    assert tool_results == [{
        "type": "tool_result",
        "toolUseId": "tooluse_1",
        "name": "check_the_weather",
        "content": FORECAST,
        "status": "success",
    }]
    assert lines[-1] == {
        "type": "done",
        "text": "It is 67 degrees and sunny.",
        "rounds": 2,
        "stopReason": "end_turn",
    }
    assert len(provider.requests) == 2


def test_chat_reports_unknown_tool_as_error_result(isolated_client):
    _use_scripts(
        isolated_client,
        [tool_use_chunks("t1", "launch_rockets", ["{}"]), text_chunks("I cannot do that.")],
    )

    response = isolated_client.post(
        "/v1/chat",
        json={"messages": [{"role": "user", "content": "launch"}], "useTools": True},
    )

    lines = _lines(response)
    result = next(line for line in lines if line["type"] == "tool_result")
    assert result["status"] == "error"
    assert "not found" in result["content"].lower()
    assert lines[-1]["type"] == "done"


def test_chat_round_limit_ends_with_error_line(isolated_client):
    scripts = [tool_use_chunks(f"t{i}", "check_the_weather", ['{"zip": "1"}']) for i in range(10)]
    _use_scripts(isolated_client, scripts)

    response = isolated_client.post(
        "/v1/chat",
        json={"messages": [{"role": "user", "content": "loop"}], "useTools": True},
    )

    last = _lines(response)[-1]
    assert last["type"] == "error"
    assert last["code"] == "E_TOOL_ROUNDS_EXCEEDED"


def test_chat_metrics_count_the_turn(isolated_client):
    _use_scripts(isolated_client, [text_chunks("hello")])

    isolated_client.post("/v1/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    snapshot = isolated_client.get("/v1/metrics").json()

    assert snapshot["orchestrations_total"] == 1
    assert snapshot["inferences_total"] == 1


def test_chat_stops_between_rounds_when_client_is_gone(isolated_client, monkeypatch):
    async def disconnected(self) -> bool:
        return True

    monkeypatch.setattr(Request, "is_disconnected", disconnected)
    provider = _use_scripts(
        isolated_client,
        [
            tool_use_chunks("tooluse_1", "check_the_weather", ['{"zip": "94105"}']),
            text_chunks("never sent"),
        ],
    )

    response = isolated_client.post(
        "/v1/chat",
        json={"messages": [{"role": "user", "content": "Weather in 94105?"}], "useTools": True},
    )

    lines = _lines(response)
    assert [line["type"] for line in lines if line["type"] == "tool_result"] == ["tool_result"]
    assert lines[-1] == {"type": "done", "text": "", "rounds": 1, "stopReason": "cancelled"}
    assert len(provider.requests) == 1
