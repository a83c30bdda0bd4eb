"""Fluent builders for completion requests and tool definitions."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from lmss.models import CompletionRequest, JsonSchema, Message, ResponseFormat, Tool


class ChatRequestBuilder:
    def __init__(self) -> None:
        self._model = ""
        self._messages: list[Message] = []
        self._tools: list[Tool] = []
        self._temperature = 0.7
        self._max_tokens: Optional[int] = None
        self._stream = False
        self._response_format: Optional[ResponseFormat] = None

    def with_model(self, model: str) -> ChatRequestBuilder:
        self._model = model
        return self

    def with_temperature(self, temperature: float) -> ChatRequestBuilder:
        self._temperature = temperature
        return self

    def with_max_tokens(self, max_tokens: int) -> ChatRequestBuilder:
        self._max_tokens = max_tokens
        return self

    def with_streaming(self, stream: bool = True) -> ChatRequestBuilder:
        self._stream = stream
        return self

    def with_system_message(self, content: str) -> ChatRequestBuilder:
        # System prompts always lead the conversation.
        self._messages.insert(0, Message.system(content))
        return self

    def with_user_message(self, content: str) -> ChatRequestBuilder:
        self._messages.append(Message.user(content))
        return self

    def with_assistant_message(self, content: str) -> ChatRequestBuilder:
        self._messages.append(Message.assistant(content))
        return self

    def with_message(self, message: Message) -> ChatRequestBuilder:
        self._messages.append(message)
        return self

    def with_messages(self, messages: Iterable[Message]) -> ChatRequestBuilder:
        self._messages.extend(messages)
        return self

    def with_json_response(self) -> ChatRequestBuilder:
        self._response_format = ResponseFormat.json_object()
        return self

    def with_json_schema(self, schema: JsonSchema) -> ChatRequestBuilder:
        self._response_format = ResponseFormat.with_json_schema(schema)
        return self

    def with_tool(self, tool: Tool) -> ChatRequestBuilder:
        self._tools.append(tool)
        return self

    def with_tools(self, tools: Iterable[Tool]) -> ChatRequestBuilder:
        self._tools.extend(tools)
        return self

    def build(self) -> CompletionRequest:
        if not self._model:
            raise ValueError("Model must be specified")
        if not self._messages:
            raise ValueError("At least one message must be added")

        return CompletionRequest(
            model=self._model,
            messages=list(self._messages),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            stream=self._stream,
            response_format=self._response_format,
            tools=list(self._tools) or None,
        )


class ToolBuilder:
    def __init__(self) -> None:
        self._name = ""
        self._description = ""
        self._parameters: dict[str, Any] = {}

    def with_name(self, name: str) -> ToolBuilder:
        self._name = name
        return self

    def with_description(self, description: str) -> ToolBuilder:
        self._description = description
        return self

    def with_parameters(self, parameters: dict[str, Any]) -> ToolBuilder:
        self._parameters = parameters
        return self

    def build(self) -> Tool:
        if not self._name:
            raise ValueError("Tool name must be specified")
        return Tool.create(self._name, self._description, self._parameters)
