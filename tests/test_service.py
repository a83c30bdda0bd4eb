"""Tests for the high-level service."""

from __future__ import annotations

import httpx
import pytest
from pydantic import BaseModel

from fakes import FakeServer, chunk, completion, sse_body
from lmss.client import LmssClient
from lmss.errors import ErrorKind, SerializationError
from lmss.models import JsonSchema, Tool, ToolCall
from lmss.service import LmssService, strip_code_fence


class CityInfo(BaseModel):
    city: str
    population: int


@pytest.fixture
def service(client: LmssClient) -> LmssService:
    return LmssService(client)


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('```\n[1]\n```') == "[1]"
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


@pytest.mark.anyio
async def test_check_readiness_ready(server: FakeServer, service: LmssService):
    server.models = ["model-a", "model-b"]

    result = await service.check_readiness()

    assert result.is_ready
    assert result.model_count == 2
    assert await service.is_ready()


@pytest.mark.anyio
async def test_check_readiness_without_models(server: FakeServer, service: LmssService):
    server.models = []

    result = await service.check_readiness()

    assert not result.is_ready
    assert result.error_kind is ErrorKind.NO_MODELS_LOADED
    assert result.server_healthy


@pytest.mark.anyio
async def test_check_readiness_server_down(server: FakeServer, service: LmssService):
    server.models_error = httpx.ConnectError("Connection refused")

    result = await service.check_readiness()

    assert not result.is_ready
    assert result.error_kind is ErrorKind.SERVER_UNAVAILABLE
    assert not result.server_healthy
    assert "Cannot connect" in result.technical_details


@pytest.mark.anyio
async def test_try_chat_wraps_failures(server: FakeServer, service: LmssService):
    server.enqueue(httpx.Response(429, text="busy"))

    result = await service.try_chat("hi")

    assert not result.success
    assert result.error_kind is ErrorKind.RATE_LIMITED
    assert result.is_retryable


@pytest.mark.anyio
async def test_continue_conversation_records_reply(server: FakeServer, service: LmssService):
    server.enqueue(completion("4"), completion("8"))
    conversation = service.start_conversation("Be terse.")

    assert await service.continue_conversation(conversation, "2+2?") == "4"
    assert await service.continue_conversation(conversation, "times two?") == "8"
    assert [m.role for m in conversation.messages] == ["system", "user", "assistant", "user", "assistant"]
    assert len(server.requests[1]["messages"]) == 4


@pytest.mark.anyio
async def test_continue_conversation_stream(server: FakeServer, service: LmssService):
    server.enqueue(httpx.Response(200, content=sse_body(chunk("fo"), chunk("ur"), "[DONE]")))
    conversation = service.start_conversation()

    parts = [p async for p in service.continue_conversation_stream(conversation, "2+2 in words?")]

    assert parts == ["fo", "ur"]
    assert conversation.messages[-1].content == "four"


@pytest.mark.anyio
async def test_generate_structured_with_model_class(server: FakeServer, service: LmssService):
    server.enqueue(completion('```json\n{"city": "Paris", "population": 2100000}\n```'))

    result = await service.generate_structured("Describe Paris", CityInfo, system_prompt="Answer in JSON.")

    assert result == CityInfo(city="Paris", population=2100000)
    response_format = server.requests[0]["response_format"]
    assert response_format["type"] == "json_schema"
    assert response_format["json_schema"]["name"] == "CityInfo"
    assert response_format["json_schema"]["schema"]["required"] == ["city", "population"]


@pytest.mark.anyio
async def test_generate_structured_with_schema(server: FakeServer, service: LmssService):
    server.enqueue(completion('{"ok": true}'))
    schema = JsonSchema(name="flag", schema={"type": "object", "properties": {"ok": {"type": "boolean"}}})

    assert await service.generate_structured("ok?", schema) == {"ok": True}


@pytest.mark.anyio
async def test_generate_structured_rejects_bad_output(server: FakeServer, service: LmssService):
    server.enqueue(completion('{"city": "Paris"}'), completion("not json at all"))

    with pytest.raises(SerializationError):
        await service.generate_structured("Describe Paris", CityInfo)
    with pytest.raises(SerializationError):
        await service.generate_structured("Describe Paris", CityInfo)


@pytest.mark.anyio
async def test_execute_with_tools(server: FakeServer, service: LmssService):
    server.enqueue(completion(tool_calls=[("call_1", "get_time", "{}")]), completion("Noon."))

    async def handler(call: ToolCall) -> str:
        return "12:00"

    result = await service.execute_with_tools("time?", [Tool.create("get_time")], handler, "sys")

    assert result.success
    assert result.final_response == "Noon."
    assert server.requests[0]["tools"][0]["function"]["name"] == "get_time"


@pytest.mark.anyio
async def test_server_status(server: FakeServer, service: LmssService):
    server.models = ["model-a", "model-b"]

    status = await service.get_server_status()

    assert status.is_ready
    assert status.available_models == ["model-a", "model-b"]
    assert status.current_model == "model-a"
    assert status.base_url == "http://localhost:1234/v1"


@pytest.mark.anyio
async def test_switch_model(server: FakeServer, service: LmssService):
    server.models = ["model-a", "model-b"]

    assert await service.switch_model("model-b")
    assert service.current_model == "model-b"
    assert await service.get_available_models() == ["model-a", "model-b"]
