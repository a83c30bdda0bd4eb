"""Ordered conversation history and conversion to chat completion requests."""

from __future__ import annotations

from typing import Optional

from lmss.models import CompletionRequest, CompletionResponse, Message, ToolCall


class Conversation:
    """Append-only log of role-tagged messages.

    The system prompt, when given, is always the first message, including
    after :meth:`clear`. A tool reply must answer a tool call requested by an
    earlier assistant message, otherwise ValueError is raised. Not safe for
    concurrent mutation; concurrent reads only ever see a consistent prefix.
    """

    def __init__(self, system_prompt: Optional[str] = None) -> None:
        self._system_prompt = system_prompt
        self._messages: list[Message] = []
        self._tool_call_ids: set[str] = set()
        self._seed()

    def _seed(self) -> None:
        if self._system_prompt:
            self._messages.append(Message.system(self._system_prompt))

    def _append(self, message: Message) -> None:
        if message.role == "tool" and message.tool_call_id not in self._tool_call_ids:
            raise ValueError(f"tool reply references unknown tool call id {message.tool_call_id!r}")
        if message.tool_calls:
            self._tool_call_ids.update(call.id for call in message.tool_calls)
        self._messages.append(message)

    @property
    def system_prompt(self) -> Optional[str]:
        return self._system_prompt

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def message_count(self) -> int:
        return len(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add_user(self, content: str) -> Conversation:
        self._append(Message.user(content))
        return self

    def add_assistant(self, content: str) -> Conversation:
        self._append(Message.assistant(content))
        return self

    def add_tool(self, content: str, tool_call_id: str) -> Conversation:
        self._append(Message.tool(content, tool_call_id))
        return self

    def add_assistant_tool_calls(self, tool_calls: list[ToolCall], content: Optional[str] = None) -> Conversation:
        self._append(Message.assistant_tool_calls(tool_calls, content))
        return self

    def add_message(self, message: Message) -> Conversation:
        self._append(message)
        return self

    def update_with_response(self, response: CompletionResponse) -> Conversation:
        """Record the first choice of *response*, if any."""
        message = response.first_message
        if message is not None:
            self._append(message)
        return self

    def clear(self) -> Conversation:
        """Drop everything except the configured system prompt."""
        self._messages.clear()
        self._tool_call_ids.clear()
        self._seed()
        return self

    def to_request(
        self,
        model: str,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        stream: bool = False,
    ) -> CompletionRequest:
        """Snapshot the log into a request without touching the log."""
        return CompletionRequest(
            model=model,
            messages=list(self._messages),
            temperature=temperature,
            max_tokens=max_tokens,
            stream=stream,
        )

    def last(self, count: int) -> tuple[Message, ...]:
        if count <= 0:
            return ()
        return tuple(self._messages[-count:])

    def without_system(self) -> tuple[Message, ...]:
        return tuple(m for m in self._messages if m.role != "system")
