"""Tests for the two-round tool-use workflow."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from fakes import FakeServer, completion
from lmss.client import LmssClient
from lmss.conversation import Conversation
from lmss.models import CompletionRequest, Message, Tool, ToolCall, Usage
from lmss.tool_runner import CANCELLED_MESSAGE, CANCELLED_REPLY


def _request() -> CompletionRequest:
    return CompletionRequest(
        model="model-a",
        messages=[Message.system("sys"), Message.user("What time is it in Paris?")],
        tools=[Tool.create("get_time", "Clock"), Tool.create("lookup", "Lookup")],
    )


@pytest.mark.anyio
async def test_executes_calls_in_order_then_asks_for_answer(server: FakeServer, client: LmssClient):
    server.enqueue(
        completion(tool_calls=[("call_1", "lookup", '{"city": "Paris"}'), ("call_2", "get_time", "{}")], usage=(10, 5)),
        completion("It is noon in Paris.", usage=(20, 7)),
    )
    seen: list[str] = []

    async def handler(call: ToolCall) -> str:
        seen.append(call.name)
        return {"lookup": "Europe/Paris", "get_time": "12:00"}[call.name]

    result = await client.execute_tool_workflow(_request(), handler)

    assert result.success
    assert result.final_response == "It is noon in Paris."
    assert seen == ["lookup", "get_time"]
    assert [e.tool_call.id for e in result.executed_tool_calls] == ["call_1", "call_2"]
    assert [e.result for e in result.executed_tool_calls] == ["Europe/Paris", "12:00"]
    assert result.total_usage == Usage(prompt_tokens=30, completion_tokens=12, total_tokens=42)

    assert "tools" in server.requests[0]
    final = server.requests[1]
    assert "tools" not in final
    assert [m["role"] for m in final["messages"]] == ["system", "user", "assistant", "tool", "tool"]
    assert final["messages"][3] == {"role": "tool", "content": "Europe/Paris", "tool_call_id": "call_1"}
    assert final["messages"][4] == {"role": "tool", "content": "12:00", "tool_call_id": "call_2"}


@pytest.mark.anyio
async def test_no_tool_calls_returns_first_answer(server: FakeServer, client: LmssClient):
    server.enqueue(completion("Paris is in France.", usage=(4, 4)))

    async def handler(call: ToolCall) -> str:
        raise AssertionError("no tool should run")

    result = await client.execute_tool_workflow(_request(), handler)

    assert result.success
    assert result.final_response == "Paris is in France."
    assert result.executed_tool_calls == []
    assert result.total_usage.total_tokens == 8
    assert len(server.requests) == 1


@pytest.mark.anyio
async def test_failing_handler_is_reported_to_model(server: FakeServer, client: LmssClient):
    server.enqueue(
        completion(tool_calls=[("call_1", "get_time", "{}")]),
        completion("Sorry, the clock is unavailable."),
    )

    async def handler(call: ToolCall) -> str:
        raise RuntimeError("clock offline")

    result = await client.execute_tool_workflow(_request(), handler)

    assert result.success
    assert result.final_response == "Sorry, the clock is unavailable."
    executed = result.executed_tool_calls[0]
    assert not executed.success
    assert executed.error_message == "Tool execution failed: clock offline"
    assert server.requests[1]["messages"][-1]["content"] == "Tool execution failed: clock offline"


@pytest.mark.anyio
async def test_final_round_failure_keeps_executed_calls(server: FakeServer, client: LmssClient):
    server.enqueue(
        completion(tool_calls=[("call_1", "get_time", "{}")], usage=(5, 5)),
        httpx.ConnectError("Connection refused"),
    )

    async def handler(call: ToolCall) -> str:
        return "12:00"

    result = await client.execute_tool_workflow(_request(), handler)

    assert not result.success
    assert "Cannot connect" in result.error_message
    assert len(result.executed_tool_calls) == 1
    assert result.executed_tool_calls[0].success
    assert result.total_usage.total_tokens == 10


@pytest.mark.anyio
async def test_initial_round_failure(server: FakeServer, client: LmssClient):
    server.enqueue(httpx.Response(500, text="model crashed"))

    async def handler(call: ToolCall) -> str:
        return ""

    result = await client.execute_tool_workflow(_request(), handler)

    assert not result.success
    assert result.executed_tool_calls == []
    assert "500" in result.error_message


@pytest.mark.anyio
async def test_conversation_records_exchange(server: FakeServer, client: LmssClient):
    server.enqueue(
        completion(tool_calls=[("call_1", "get_time", "{}")]),
        completion("Noon."),
    )
    conversation = Conversation("sys").add_user("time?")
    request = conversation.to_request("model-a").model_copy(update={"tools": [Tool.create("get_time")]})

    async def handler(call: ToolCall) -> str:
        return "12:00"

    await client.execute_tool_workflow(request, handler, conversation=conversation)

    assert [m.role for m in conversation.messages] == ["system", "user", "assistant", "tool"]
    assert conversation.messages[2].tool_calls[0].id == "call_1"


@pytest.mark.anyio
async def test_cancel_event_stops_remaining_calls(server: FakeServer, client: LmssClient):
    server.enqueue(completion(tool_calls=[("call_1", "get_time", "{}"), ("call_2", "lookup", "{}")]))
    cancel = asyncio.Event()
    conversation = Conversation().add_user("go")
    seen: list[str] = []

    async def handler(call: ToolCall) -> str:
        seen.append(call.id)
        cancel.set()
        return "done"

    result = await client.execute_tool_workflow(
        _request(), handler, conversation=conversation, cancel_event=cancel
    )

    assert not result.success
    assert result.error_message == CANCELLED_MESSAGE
    assert seen == ["call_1"]
    assert len(server.requests) == 1
    replies = [m for m in conversation.messages if m.role == "tool"]
    assert [(m.tool_call_id, m.content) for m in replies] == [("call_1", "done"), ("call_2", CANCELLED_REPLY)]


@pytest.mark.anyio
async def test_cancel_during_last_handler_skips_final_round(server: FakeServer, client: LmssClient):
    server.enqueue(completion(tool_calls=[("call_1", "get_time", "{}")]), completion("never sent"))
    cancel = asyncio.Event()

    async def handler(call: ToolCall) -> str:
        cancel.set()
        return "12:00"

    result = await client.execute_tool_workflow(_request(), handler, cancel_event=cancel)

    assert not result.success
    assert result.error_message == CANCELLED_MESSAGE
    assert len(server.requests) == 1
    assert [e.result for e in result.executed_tool_calls] == ["12:00"]


@pytest.mark.anyio
async def test_cancel_event_aborts_in_flight_round():
    async def stuck(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(30)
        return httpx.Response(200, json=completion("too late"))

    cancel = asyncio.Event()

    async def handler(call: ToolCall) -> str:
        raise AssertionError("no tool should run")

    async with LmssClient(transport=httpx.MockTransport(stuck)) as client:
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        result = await asyncio.wait_for(
            client.execute_tool_workflow(_request(), handler, cancel_event=cancel), timeout=5
        )

    assert not result.success
    assert result.error_message == CANCELLED_MESSAGE
    assert result.executed_tool_calls == []
