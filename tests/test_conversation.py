"""Tests for the conversation log."""

from __future__ import annotations

import pytest

from lmss.conversation import Conversation
from lmss.models import CompletionResponse, Message, ToolCall


def test_system_prompt_leads_the_log():
    conversation = Conversation("Be terse.").add_user("2+2?")

    assert [m.role for m in conversation.messages] == ["system", "user"]
    assert conversation.messages[0].content == "Be terse."
    assert conversation.message_count == 2
    assert len(conversation) == 2


def test_to_request_snapshots_messages():
    conversation = Conversation("Be terse.").add_user("2+2?")

    request = conversation.to_request("qwen2.5-7b")
    conversation.add_assistant("4")

    assert request.model == "qwen2.5-7b"
    assert request.temperature == 0.7
    assert request.stream is False
    assert request.max_tokens is None
    assert [m.content for m in request.messages] == ["Be terse.", "2+2?"]
    assert len(conversation) == 3


def test_to_request_passes_options():
    request = Conversation().add_user("hi").to_request("m", temperature=0.1, max_tokens=64, stream=True)

    assert request.temperature == 0.1
    assert request.max_tokens == 64
    assert request.stream is True


def test_clear_keeps_system_prompt():
    conversation = Conversation("sys").add_user("a").add_assistant("b")

    conversation.clear()

    assert conversation.messages == (Message.system("sys"),)


def test_clear_without_system_prompt_empties_log():
    conversation = Conversation().add_user("a")

    conversation.clear()

    assert conversation.messages == ()
    assert conversation.system_prompt is None


def test_empty_system_prompt_is_not_recorded():
    assert Conversation("").messages == ()


def test_tool_exchange_is_recorded_in_order():
    call = ToolCall.create("call_1", "get_current_time")
    conversation = (
        Conversation()
        .add_user("what time is it?")
        .add_assistant_tool_calls([call])
        .add_tool("12:00", "call_1")
    )

    assistant, tool = conversation.messages[1], conversation.messages[2]
    assert assistant.tool_calls == [call]
    assert assistant.content is None
    assert tool.role == "tool"
    assert tool.tool_call_id == "call_1"


def test_update_with_response_appends_first_choice():
    response = CompletionResponse.model_validate(
        {"choices": [{"index": 0, "message": {"role": "assistant", "content": "4"}}]}
    )
    conversation = Conversation().add_user("2+2?").update_with_response(response)

    assert conversation.messages[-1] == Message.assistant("4")


def test_update_with_empty_response_is_noop():
    conversation = Conversation().add_user("hi").update_with_response(CompletionResponse())

    assert len(conversation) == 1


def test_last_and_without_system():
    conversation = Conversation("sys").add_user("a").add_assistant("b").add_user("c")

    assert [m.content for m in conversation.last(2)] == ["b", "c"]
    assert conversation.last(0) == ()
    assert [m.content for m in conversation.last(10)] == ["sys", "a", "b", "c"]
    assert [m.role for m in conversation.without_system()] == ["user", "assistant", "user"]


def test_two_plus_two_request():
    request = Conversation().add_user("2+2?").to_request("m1", 0.2, None, False)

    assert request.model == "m1"
    assert request.messages == [Message.user("2+2?")]
    assert request.temperature == 0.2
    assert request.max_tokens is None
    assert request.stream is False
    assert request.to_payload() == {
        "model": "m1",
        "messages": [{"role": "user", "content": "2+2?"}],
        "temperature": 0.2,
        "stream": False,
    }


def test_tool_reply_needs_matching_tool_call():
    conversation = Conversation().add_user("time?")

    with pytest.raises(ValueError):
        conversation.add_tool("12:00", "call_1")

    conversation.add_assistant_tool_calls([ToolCall.create("call_1", "get_current_time")])
    with pytest.raises(ValueError):
        conversation.add_tool("12:00", "call_2")
    with pytest.raises(ValueError):
        conversation.add_message(Message(role="tool", content="12:00"))

    conversation.add_tool("12:00", "call_1")
    assert [m.role for m in conversation.messages] == ["user", "assistant", "tool"]


def test_clear_forgets_tool_call_ids():
    conversation = Conversation().add_assistant_tool_calls([ToolCall.create("call_1", "f")])

    conversation.clear()

    with pytest.raises(ValueError):
        conversation.add_tool("x", "call_1")
