"""Wire and result models for the OpenAI-compatible chat API."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from lmss.errors import ErrorKind

Role = Literal["system", "user", "assistant", "tool"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ToolFunction(_Frozen):
    name: str = ""
    arguments: str = ""  # raw JSON text, never parsed here


class ToolCall(_Frozen):
    """A function invocation requested by the model."""

    id: str = ""
    type: str = "function"
    function: ToolFunction = Field(default_factory=ToolFunction)

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def arguments(self) -> str:
        return self.function.arguments

    @classmethod
    def create(cls, id: str, name: str, arguments: str = "{}") -> ToolCall:
        return cls(id=id, function=ToolFunction(name=name, arguments=arguments))


class Message(_Frozen):
    """One role-tagged chat message.

    Optional keys that are missing on the wire stay ``None`` and are left out
    again by :meth:`to_wire`.
    """

    role: Role
    content: Optional[str] = None
    reasoning_content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role="assistant", content=content)

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id)

    @classmethod
    def assistant_tool_calls(cls, tool_calls: list[ToolCall], content: Optional[str] = None) -> Message:
        return cls(role="assistant", content=content, tool_calls=list(tool_calls))

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Message:
        return cls.model_validate(data)


class FunctionDefinition(_Frozen):
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class Tool(_Frozen):
    """Tool definition advertised to the model."""

    type: str = "function"
    function: FunctionDefinition

    @property
    def name(self) -> str:
        return self.function.name

    @classmethod
    def create(cls, name: str, description: str = "", parameters: Optional[dict[str, Any]] = None) -> Tool:
        return cls(
            function=FunctionDefinition(
                name=name,
                description=description,
                parameters=parameters or {"type": "object", "properties": {}},
            )
        )


class JsonSchema(_Frozen):
    # "schema" shadows a BaseModel attribute, hence the alias.
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = ""
    strict: bool = True
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")


class ResponseFormat(_Frozen):
    type: Literal["text", "json_object", "json_schema"] = "text"
    json_schema: Optional[JsonSchema] = None

    @classmethod
    def text(cls) -> ResponseFormat:
        return cls(type="text")

    @classmethod
    def json_object(cls) -> ResponseFormat:
        return cls(type="json_object")

    @classmethod
    def with_json_schema(cls, schema: JsonSchema) -> ResponseFormat:
        return cls(type="json_schema", json_schema=schema)


class CompletionRequest(_Frozen):
    model: str
    messages: list[Message]
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    stream: bool = False
    response_format: Optional[ResponseFormat] = None
    tools: Optional[list[Tool]] = None

    def to_payload(self) -> dict[str, Any]:
        """Request body for ``POST /chat/completions``."""
        return self.model_dump(exclude_none=True, by_alias=True)


class Usage(_Frozen):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Optional[Usage]) -> Usage:
        if other is None:
            return self
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ChatChoice(BaseModel):
    index: int = 0
    message: Message = Field(default_factory=lambda: Message(role="assistant", content=""))
    finish_reason: Optional[str] = None


class CompletionResponse(BaseModel):
    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: Optional[Usage] = None
    system_fingerprint: Optional[str] = None

    @property
    def first_message(self) -> Optional[Message]:
        return self.choices[0].message if self.choices else None

    @property
    def content(self) -> str:
        message = self.first_message
        return (message.content or "") if message else ""

    @property
    def tool_calls(self) -> list[ToolCall]:
        message = self.first_message
        return list(message.tool_calls or []) if message else []


class MessageDelta(BaseModel):
    """Incremental message fragment; every field may be missing."""

    role: Optional[Role] = None
    content: Optional[str] = None
    reasoning_content: Optional[str] = None
    tool_calls: Optional[list[dict[str, Any]]] = None


class StreamingChoice(BaseModel):
    index: int = 0
    delta: MessageDelta = Field(default_factory=MessageDelta)
    finish_reason: Optional[str] = None


class StreamingChunk(BaseModel):
    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: list[StreamingChoice] = Field(default_factory=list)
    usage: Optional[Usage] = None
    system_fingerprint: Optional[str] = None

    @property
    def content(self) -> Optional[str]:
        return self.choices[0].delta.content if self.choices else None


class ModelInfo(BaseModel):
    id: Optional[str] = None


class ModelsResponse(BaseModel):
    data: list[ModelInfo] = Field(default_factory=list)


class ExecutedToolCall(_Frozen):
    tool_call: ToolCall
    result: str = ""
    success: bool
    error_message: Optional[str] = None


class WorkflowResult(_Frozen):
    success: bool
    final_response: str = ""
    executed_tool_calls: list[ExecutedToolCall] = Field(default_factory=list)
    error_message: Optional[str] = None
    total_usage: Usage = Field(default_factory=Usage)


class ChatRequest(BaseModel):
    """A single user message with an optional system prompt."""

    message: str = ""
    system_prompt: Optional[str] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    model: Optional[str] = None
    stream: bool = False


class ChatResponse(BaseModel):
    content: str = ""
    model: str = ""
    usage: Optional[Usage] = None
    success: bool = False
    error_message: Optional[str] = None
    error_kind: ErrorKind = ErrorKind.NONE


class ChatResult(BaseModel):
    success: bool
    response: str = ""
    error_kind: ErrorKind = ErrorKind.NONE
    technical_error_message: Optional[str] = None

    @property
    def user_friendly_error(self) -> str:
        return self.error_kind.user_message

    @property
    def suggested_action(self) -> str:
        return self.error_kind.suggested_action

    @property
    def is_service_unavailable(self) -> bool:
        return self.error_kind.is_service_unavailable

    @property
    def is_no_models_loaded(self) -> bool:
        return self.error_kind.is_models_unavailable

    @property
    def is_retryable(self) -> bool:
        return self.error_kind.is_retryable

    @classmethod
    def ok(cls, response: str) -> ChatResult:
        return cls(success=True, response=response)

    @classmethod
    def failure(cls, kind: ErrorKind, technical_message: Optional[str] = None) -> ChatResult:
        return cls(success=False, error_kind=kind, technical_error_message=technical_message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> ChatResult:
        return cls.failure(ErrorKind.from_exception(exc), str(exc))


class ServerStatus(BaseModel):
    is_healthy: bool = False
    is_connected: bool = False
    available_models: list[str] = Field(default_factory=list)
    current_model: str = ""
    base_url: str = ""
    error_message: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.is_healthy and len(self.available_models) > 0


class ServiceReadinessResult(BaseModel):
    is_ready: bool
    error_kind: ErrorKind = ErrorKind.NONE
    model_count: int = 0
    technical_details: Optional[str] = None

    @property
    def server_healthy(self) -> bool:
        return not self.error_kind.is_service_unavailable

    @property
    def has_models(self) -> bool:
        return self.model_count > 0 and not self.error_kind.is_models_unavailable

    @property
    def message(self) -> str:
        if self.error_kind is ErrorKind.NONE:
            return f"LM Studio service ready with {self.model_count} model(s) available"
        return self.error_kind.user_message

    @property
    def suggested_action(self) -> str:
        return self.error_kind.suggested_action

    @classmethod
    def ready(cls, model_count: int) -> ServiceReadinessResult:
        return cls(is_ready=True, model_count=model_count)

    @classmethod
    def not_ready(
        cls, kind: ErrorKind, model_count: int = 0, technical_details: Optional[str] = None
    ) -> ServiceReadinessResult:
        return cls(is_ready=False, error_kind=kind, model_count=model_count, technical_details=technical_details)

    @classmethod
    def from_exception(cls, exc: BaseException) -> ServiceReadinessResult:
        return cls.not_ready(ErrorKind.from_exception(exc), technical_details=str(exc))
