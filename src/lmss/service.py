"""High-level service wrapping :class:`LmssClient` for common operations."""

from __future__ import annotations

import json
import re
from typing import Any, AsyncIterator, Optional, TypeVar, Union

from pydantic import BaseModel

from lmss.client import LmssClient
from lmss.conversation import Conversation
from lmss.errors import ErrorKind, LmssError, SerializationError
from lmss.log import get_logger
from lmss.models import (
    ChatResult,
    CompletionRequest,
    JsonSchema,
    Message,
    ResponseFormat,
    ServerStatus,
    ServiceReadinessResult,
    Tool,
    WorkflowResult,
)
from lmss.tool_runner import ToolCallHandler

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

_CODE_FENCE = re.compile(r"^```[a-zA-Z0-9]*\s*\n?(.*?)\n?```$", re.DOTALL)


def strip_code_fence(raw: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if present."""
    trimmed = raw.strip()
    match = _CODE_FENCE.match(trimmed)
    return match.group(1).strip() if match else trimmed


class LmssService:
    """Convenience layer for chatting, conversations, structured output and tools."""

    def __init__(self, client: LmssClient) -> None:
        self._client = client

    @property
    def client(self) -> LmssClient:
        return self._client

    @property
    def current_model(self) -> str:
        return self._client.current_model

    async def is_ready(self) -> bool:
        return (await self.check_readiness()).is_ready

    async def check_readiness(self) -> ServiceReadinessResult:
        """Check that the server answers and has at least one model loaded."""
        try:
            models = await self._client.list_models()
        except LmssError as exc:
            logger.warning("service_not_ready", kind=exc.kind.value, error=str(exc))
            return ServiceReadinessResult.from_exception(exc)

        if not models:
            return ServiceReadinessResult.not_ready(ErrorKind.NO_MODELS_LOADED)
        return ServiceReadinessResult.ready(len(models))

    async def chat(self, message: str, system_prompt: Optional[str] = None) -> str:
        return await self._client.send_message(message, system_prompt)

    async def try_chat(self, message: str, system_prompt: Optional[str] = None) -> ChatResult:
        """Like :meth:`chat`, but failures come back as a ChatResult."""
        try:
            return ChatResult.ok(await self.chat(message, system_prompt))
        except LmssError as exc:
            return ChatResult.from_exception(exc)

    async def chat_stream(self, message: str, system_prompt: Optional[str] = None) -> AsyncIterator[str]:
        async for part in self._client.send_message_stream(message, system_prompt):
            yield part

    def start_conversation(self, system_prompt: Optional[str] = None) -> Conversation:
        return Conversation(system_prompt)

    async def continue_conversation(self, conversation: Conversation, user_message: str) -> str:
        """Add *user_message*, get the reply, and record it in *conversation*."""
        conversation.add_user(user_message)
        model = await self._client.resolve_model()
        response = await self._client.complete_chat(conversation.to_request(model))
        content = response.content
        conversation.add_assistant(content)
        return content

    async def continue_conversation_stream(
        self, conversation: Conversation, user_message: str
    ) -> AsyncIterator[str]:
        conversation.add_user(user_message)
        model = await self._client.resolve_model()

        parts: list[str] = []
        async for chunk in self._client.stream_chat(conversation.to_request(model, stream=True)):
            if chunk.content:
                parts.append(chunk.content)
                yield chunk.content

        conversation.add_assistant("".join(parts))

    async def generate_structured(
        self,
        prompt: str,
        schema: Union[type[T], JsonSchema],
        system_prompt: Optional[str] = None,
    ) -> Union[T, dict[str, Any]]:
        """Ask for JSON output constrained by *schema*.

        Pass a pydantic model class to get a validated instance back, or a
        JsonSchema to get the decoded dict.
        """
        if isinstance(schema, JsonSchema):
            json_schema = schema
            model_cls = None
        else:
            json_schema = JsonSchema(name=schema.__name__, strict=True, schema=schema.model_json_schema())
            model_cls = schema

        messages: list[Message] = []
        if system_prompt:
            messages.append(Message.system(system_prompt))
        messages.append(Message.user(prompt))

        request = CompletionRequest(
            model=await self._client.resolve_model(),
            messages=messages,
            response_format=ResponseFormat.with_json_schema(json_schema),
        )
        raw = (await self._client.complete_chat(request)).content

        try:
            payload = json.loads(strip_code_fence(raw))
            if model_cls is not None:
                return model_cls.model_validate(payload)
        except ValueError as exc:
            raise SerializationError(f"Model output does not match schema '{json_schema.name}': {exc}") from exc
        return payload

    async def execute_with_tools(
        self,
        user_message: str,
        tools: list[Tool],
        handler: ToolCallHandler,
        system_prompt: Optional[str] = None,
    ) -> WorkflowResult:
        conversation = Conversation(system_prompt).add_user(user_message)
        request = conversation.to_request(await self._client.resolve_model())
        request = request.model_copy(update={"tools": list(tools)})
        return await self._client.execute_tool_workflow(request, handler, conversation=conversation)

    async def switch_model(self, model_name: str) -> bool:
        return await self._client.set_current_model(model_name)

    async def get_available_models(self) -> list[str]:
        return await self._client.list_models()

    async def get_server_status(self) -> ServerStatus:
        try:
            healthy = await self._client.is_healthy()
            models = await self._client.list_models() if healthy else []
        except LmssError as exc:
            logger.error("server_status_failed", error=str(exc))
            return ServerStatus(base_url=self._client.base_url, error_message=str(exc))

        return ServerStatus(
            is_healthy=healthy,
            is_connected=self._client.is_connected,
            available_models=models,
            current_model=self._client.current_model,
            base_url=self._client.base_url,
        )
