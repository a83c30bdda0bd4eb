"""Async client for LM Studio's OpenAI-compatible server."""

from __future__ import annotations

from typing import Optional

import httpx

from lmss.agent import Agent
from lmss.builders import ChatRequestBuilder, ToolBuilder
from lmss.client import LmssClient
from lmss.config import AgentConfig, AppConfig, ClientSettings, load_config
from lmss.conversation import Conversation
from lmss.errors import (
    ErrorKind,
    InvalidRequestError,
    LmssError,
    ModelError,
    NetworkError,
    NoModelsLoadedError,
    RateLimitedError,
    RequestTimeoutError,
    SerializationError,
    ServerUnavailableError,
    ToolExecutionError,
    UnauthorizedError,
    UnknownError,
)
from lmss.models import (
    ChatRequest,
    ChatResponse,
    ChatResult,
    CompletionRequest,
    CompletionResponse,
    ExecutedToolCall,
    JsonSchema,
    Message,
    ResponseFormat,
    ServerStatus,
    ServiceReadinessResult,
    StreamingChunk,
    Tool,
    ToolCall,
    Usage,
    WorkflowResult,
)
from lmss.service import LmssService
from lmss.tools import ToolRegistry


def create_client(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    *,
    settings: Optional[ClientSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **overrides,
) -> LmssClient:
    """Build a client from explicit settings, or defaults plus overrides.

    Parameters
    ----------
    base_url:
        Server URL including the ``/v1`` prefix. Defaults to localhost:1234.
    api_key:
        Bearer token. Local servers accept any value.
    settings:
        Complete settings; other arguments are applied on top of them.
    **overrides:
        Any other :class:`ClientSettings` field, e.g. ``request_timeout``.
    """
    values = (settings or ClientSettings()).model_dump()
    if base_url is not None:
        values["base_url"] = base_url
    if api_key is not None:
        values["api_key"] = api_key
    values.update(overrides)
    return LmssClient(ClientSettings(**values), transport=transport)


def create_service(client: Optional[LmssClient] = None) -> LmssService:
    return LmssService(client or create_client())


__all__ = [
    "Agent",
    "AgentConfig",
    "AppConfig",
    "ChatRequest",
    "ChatRequestBuilder",
    "ChatResponse",
    "ChatResult",
    "ClientSettings",
    "CompletionRequest",
    "CompletionResponse",
    "Conversation",
    "ErrorKind",
    "ExecutedToolCall",
    "InvalidRequestError",
    "JsonSchema",
    "LmssClient",
    "LmssError",
    "LmssService",
    "Message",
    "ModelError",
    "NetworkError",
    "NoModelsLoadedError",
    "RateLimitedError",
    "RequestTimeoutError",
    "ResponseFormat",
    "SerializationError",
    "ServerStatus",
    "ServerUnavailableError",
    "ServiceReadinessResult",
    "StreamingChunk",
    "Tool",
    "ToolBuilder",
    "ToolCall",
    "ToolExecutionError",
    "ToolRegistry",
    "UnauthorizedError",
    "UnknownError",
    "Usage",
    "WorkflowResult",
    "create_client",
    "create_service",
    "load_config",
]
