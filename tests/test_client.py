from __future__ import annotations

import json

import httpx
import pytest

from dealdesk.agent.events import MessageEnd, TextDelta
from dealdesk.agent.messages import Conversation, Message
from dealdesk.agent.reducer import ToolUse
from dealdesk.client import CopilotClient
from dealdesk.context import ToolContext
from dealdesk.errors import TransportError


def _ndjson(*payloads) -> bytes:
    return b"".join(json.dumps(p).encode() + b"\n" for p in payloads)


def _weather_turn() -> bytes:
    return _ndjson(
        {"type": "text", "text": "Checking."},
        {"type": "tool_use_start", "toolUseId": "t1", "name": "check_the_weather"},
        {"type": "tool_use_delta", "toolUseId": "t1", "input": '{"zip":'},
        {"type": "tool_use_delta", "toolUseId": "t1", "input": ' "94105"}'},
        {"type": "content_block_stop", "toolUseId": "t1"},
        {"type": "message_stop", "stopReason": "tool_use"},
    )


class FakeServer:
    def __init__(self, inference_bodies: list[bytes]) -> None:
        self.inference_bodies = list(inference_bodies)
        self.requests: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append((request.url.path, body))
        if request.url.path == "/v1/inference":
            return httpx.Response(200, content=self.inference_bodies.pop(0))
        if request.url.path == "/v1/tools":
            if body["name"] != "check_the_weather":
                return httpx.Response(404, json={"error": f"Tool '{body['name']}' not found"})
            return httpx.Response(200, json={
                "toolUseId": body["toolUseId"],
                "name": body["name"],
                "input": body["input"],
                "content": "The weather is 67 degrees and sunny.",
                "updateRequired": False,
            })
        return httpx.Response(404)


def _client(server) -> CopilotClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(server), base_url="http://copilot.test")
    return CopilotClient(client=http)


@pytest.mark.asyncio
async def test_chat_drives_inference_and_tool_calls():
    server = FakeServer([
        _weather_turn(),
        _ndjson({"type": "text", "text": "Sunny, 67F."}, {"type": "message_stop", "stopReason": "end_turn"}),
    ])
    client = _client(server)

    result = await client.chat("Weather in 94105?", context=ToolContext(active_project_id=2))

    assert result.text == "Sunny, 67F."
    assert result.rounds == 2
    paths = [path for path, _ in server.requests]
    assert paths == ["/v1/inference", "/v1/tools", "/v1/inference"]
    tool_request = server.requests[1][1]
    assert tool_request["input"] == {"zip": "94105"}
    assert tool_request["context"]["activeProjectId"] == 2
    second_inference = server.requests[2][1]
    assert second_inference["useTools"] is True
    assert second_inference["messages"][-1]["content"][0]["toolResult"]["toolUseId"] == "t1"
    await client.aclose()


@pytest.mark.asyncio
async def test_stream_inference_skips_malformed_lines():
    body = b"not json\n[1]\n" + _ndjson({"type": "text", "text": "ok"}, {"type": "message_stop", "stopReason": "end_turn"})
    client = _client(FakeServer([body]))

    events = [e async for e in client.stream_inference(Conversation([Message.user_text("hi")]))]

    assert events == [TextDelta("ok"), MessageEnd("end_turn")]


@pytest.mark.asyncio
async def test_error_line_raises_transport_error():
    body = _ndjson({"type": "text", "text": "par"}, {"type": "error", "code": "E_PROVIDER_TRANSPORT", "message": "boom"})
    client = _client(FakeServer([body]))

    with pytest.raises(TransportError, match="boom") as excinfo:
        await client.chat("hi")

    assert excinfo.value.cause == "E_PROVIDER_TRANSPORT"


@pytest.mark.asyncio
async def test_http_error_status_raises_transport_error():
    def handler(request):
        return httpx.Response(502, json={"error": {"code": "E_PROVIDER_TRANSPORT", "message": "provider down"}})

    client = CopilotClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://t"))

    with pytest.raises(TransportError, match="provider down") as excinfo:
        await client.chat("hi")

    assert excinfo.value.cause == "http_502"


@pytest.mark.asyncio
async def test_tool_call_failures_become_error_results():
    client = _client(FakeServer([]))

    missing = await client.execute_tool_call(ToolUse("t1", "nope", "{}"))
    unparseable = await client.execute_tool_call(ToolUse("t2", "check_the_weather", "{bad"))

    assert missing.is_error
    assert missing.text == "Error: Tool 'nope' not found"
    assert unparseable.is_error
    assert unparseable.text.startswith("Error: Invalid tool input JSON")


@pytest.mark.asyncio
async def test_tool_error_payload_is_flagged():
    def handler(request):
        return httpx.Response(200, json={"content": '{"error": "Project with ID 3 not found."}'})

    client = CopilotClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://t"))

    result = await client.execute_tool_call(ToolUse("t1", "get_project_details", '{"id": 3}'))

    assert result.status == "error"
    assert result.text == '{"error": "Project with ID 3 not found."}'


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>proxy page</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
    ],
)
async def test_unreadable_tool_response_becomes_error_result(response):
    client = CopilotClient(
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response), base_url="http://t")
    )

    result = await client.execute_tool_call(ToolUse("t1", "check_the_weather", '{"zip": "1"}'))

    assert result.status == "error"
    assert result.text == "Error: Tool execution failed: invalid response body"


@pytest.mark.asyncio
async def test_chat_continues_after_unreadable_tool_response():
    inference_bodies = [
        _weather_turn(),
        _ndjson({"type": "text", "text": "The tool failed."}, {"type": "message_stop", "stopReason": "end_turn"}),
    ]

    def handler(request):
        if request.url.path == "/v1/tools":
            return httpx.Response(200, text="<html>proxy page</html>")
        return httpx.Response(200, content=inference_bodies.pop(0))

    client = CopilotClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://t"))

    result = await client.chat("Weather in 94105?")

    assert result.text == "The tool failed."
    assert result.conversation.messages[2].tool_results[0].is_error
