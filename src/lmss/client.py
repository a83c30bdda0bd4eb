"""Async HTTP client for an LM Studio (OpenAI-compatible) server."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Optional

import httpx

from lmss.cancellation import wait_unless_cancelled
from lmss.config import ClientSettings
from lmss.conversation import Conversation
from lmss.errors import (
    LmssError,
    NetworkError,
    NoModelsLoadedError,
    RequestTimeoutError,
    SerializationError,
    ServerUnavailableError,
    error_for_kind,
    kind_for_status,
)
from lmss.log import get_logger
from lmss.models import (
    ChatRequest,
    ChatResponse,
    CompletionRequest,
    CompletionResponse,
    Message,
    ModelsResponse,
    StreamingChunk,
    WorkflowResult,
)
from lmss.tool_runner import ToolCallHandler, run_tool_workflow

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
HEALTH_CHECK_TIMEOUT = 5.0
STREAM_DONE = "[DONE]"


def _data_payload(line: str) -> Optional[str]:
    """Return the payload of an SSE ``data:`` line, or None for any other line."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    return line[len("data:"):].strip()


async def iter_sse_chunks(lines: AsyncIterator[str]) -> AsyncIterator[StreamingChunk]:
    """Decode streaming chunks from SSE lines until ``[DONE]`` or end of input.

    Lines whose payload is not a valid chunk are skipped.
    """
    async for line in lines:
        data = _data_payload(line)
        if data is None:
            continue
        if data == STREAM_DONE:
            return
        try:
            chunk = StreamingChunk.model_validate_json(data)
        except ValueError:
            logger.debug("stream_chunk_skipped", data=data[:200])
            continue
        yield chunk


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    detail = response.text[:500]
    kind = kind_for_status(response.status_code)
    logger.warning("http_error", status=response.status_code, kind=kind.value, detail=detail)
    raise error_for_kind(
        kind,
        f"Server returned HTTP {response.status_code}: {detail}",
        status_code=response.status_code,
    )


def _decode(response: httpx.Response, model_cls: type[Any]) -> Any:
    try:
        return model_cls.model_validate(response.json())
    except ValueError as exc:
        raise SerializationError(f"Unexpected response payload: {exc}") from exc


class LmssClient:
    """Client for the chat completion and model listing endpoints.

    One instance owns one connection pool and may be shared by concurrent
    tasks. The selected model is per instance, so several clients can point
    at different servers or models in the same process.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._http = httpx.AsyncClient(
            base_url=self._settings.base_url,
            headers={"Authorization": f"Bearer {self._settings.api_key}"},
            timeout=httpx.Timeout(self._settings.request_timeout),
            transport=transport,
        )
        self._available_models: list[str] = []
        self._current_model = ""

    async def __aenter__(self) -> LmssClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def base_url(self) -> str:
        return self._settings.base_url

    @property
    def current_model(self) -> str:
        return self._current_model

    @property
    def is_connected(self) -> bool:
        return bool(self._current_model)

    @property
    def available_models(self) -> list[str]:
        return list(self._available_models)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Issue one request, translating transport failures into typed errors."""
        try:
            response = await asyncio.wait_for(
                self._http.request(method, url, json=json, timeout=timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.error("request_timeout", method=method, url=url, timeout=timeout)
            raise RequestTimeoutError(f"{method} {url} timed out after {timeout} seconds") from exc
        except httpx.ConnectError as exc:
            logger.error("server_unreachable", base_url=self.base_url, error=str(exc))
            raise ServerUnavailableError(
                f"Cannot connect to {self.base_url}: {exc}. Please ensure the LM Studio server is running."
            ) from exc
        except httpx.TransportError as exc:
            logger.error("network_error", method=method, url=url, error=str(exc))
            raise NetworkError(f"Network error during {method} {url}: {exc}") from exc

        _raise_for_status(response)
        return response

    async def list_models(self) -> list[str]:
        """Return the model ids the server reports, de-duplicated, in server order."""
        response = await self._send("GET", "/models", timeout=self._settings.model_fetch_timeout)
        payload: ModelsResponse = _decode(response, ModelsResponse)

        models = list(dict.fromkeys(m.id for m in payload.data if m.id and m.id.strip()))
        self._available_models = models
        logger.debug("models_listed", count=len(models))

        self._select_default_model()
        return models

    def _select_default_model(self) -> None:
        if self._current_model:
            return
        default = self._settings.default_model
        if default and default in self._available_models:
            self._current_model = default
        elif self._settings.auto_select_first_model and self._available_models:
            self._current_model = self._available_models[0]
        else:
            return
        logger.info("model_selected", model=self._current_model)

    async def resolve_model(self, requested: Optional[str] = None) -> str:
        """Pick the model for a request, listing models first if needed."""
        if requested:
            return requested
        if not self._current_model:
            if not self._available_models:
                await self.list_models()
            self._select_default_model()
        if not self._current_model:
            raise NoModelsLoadedError(
                "No model available. Please ensure LM Studio is running with a loaded model."
            )
        return self._current_model

    async def set_current_model(self, model_name: str) -> bool:
        """Switch to *model_name* if the server offers it."""
        try:
            models = await self.list_models()
        except LmssError as exc:
            logger.warning("model_switch_failed", model=model_name, error=str(exc))
            return False
        if model_name not in models:
            logger.warning("model_not_available", model=model_name)
            return False
        self._current_model = model_name
        logger.info("model_selected", model=model_name)
        return True

    async def is_healthy(self) -> bool:
        """Quick probe: True when the server answers and has at least one model."""
        try:
            response = await self._send("GET", "/models", timeout=HEALTH_CHECK_TIMEOUT)
            payload: ModelsResponse = _decode(response, ModelsResponse)
        except LmssError:
            return False
        return len(payload.data) > 0

    async def complete_chat(self, request: CompletionRequest) -> CompletionResponse:
        """Send a non-streaming chat completion request."""
        if request.stream:
            request = request.model_copy(update={"stream": False})

        logger.debug(
            "chat_request",
            model=request.model,
            message_count=len(request.messages),
            tool_count=len(request.tools or []),
        )
        response = await self._send(
            "POST",
            "/chat/completions",
            json=request.to_payload(),
            timeout=self._settings.request_timeout,
        )
        completion: CompletionResponse = _decode(response, CompletionResponse)
        usage = completion.usage
        logger.debug(
            "chat_response",
            model=completion.model or request.model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            finish_reason=completion.choices[0].finish_reason if completion.choices else None,
        )
        return completion

    async def stream_chat(
        self,
        request: CompletionRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamingChunk]:
        """Stream a chat completion as decoded chunks.

        The iterator is single pass. Setting *cancel_event* (or cancelling the
        consuming task) closes the connection and ends iteration.
        """
        payload = request.model_copy(update={"stream": True}).to_payload()
        timeout = self._settings.request_timeout
        logger.debug("stream_start", model=request.model, message_count=len(request.messages))

        try:
            async with self._http.stream(
                "POST", "/chat/completions", json=payload, timeout=timeout
            ) as response:
                if not response.is_success:
                    await response.aread()
                    _raise_for_status(response)

                chunks = iter_sse_chunks(response.aiter_lines())
                while True:
                    try:
                        cancelled, chunk = await wait_unless_cancelled(anext(chunks), cancel_event)
                    except StopAsyncIteration:
                        break
                    if cancelled:
                        logger.info("stream_cancelled", model=request.model)
                        await response.aclose()
                        return
                    yield chunk
        except httpx.TimeoutException as exc:
            logger.error("stream_timeout", timeout=timeout)
            raise RequestTimeoutError(f"Streaming request timed out after {timeout} seconds") from exc
        except httpx.ConnectError as exc:
            logger.error("server_unreachable", base_url=self.base_url, error=str(exc))
            raise ServerUnavailableError(f"Cannot connect to {self.base_url}: {exc}") from exc
        except httpx.TransportError as exc:
            logger.error("stream_network_error", error=str(exc))
            raise NetworkError(f"Streaming connection failed: {exc}") from exc

        logger.debug("stream_end", model=request.model)

    async def send_chat_request(self, request: ChatRequest) -> ChatResponse:
        """Send a single message; failures are reported in the response, not raised."""
        try:
            model = await self.resolve_model(request.model)

            messages: list[Message] = []
            if request.system_prompt:
                messages.append(Message.system(request.system_prompt))
            messages.append(Message.user(request.message))

            completion = await self.complete_chat(
                CompletionRequest(
                    model=model,
                    messages=messages,
                    temperature=request.temperature,
                    max_tokens=request.max_tokens,
                )
            )
        except LmssError as exc:
            logger.warning("chat_request_failed", kind=exc.kind.value, error=str(exc))
            return ChatResponse(success=False, error_message=str(exc), error_kind=exc.kind)

        return ChatResponse(
            content=completion.content.strip(),
            model=model,
            usage=completion.usage,
            success=True,
        )

    async def send_message(self, message: str, system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT) -> str:
        """Send *message* and return the reply text, raising on failure."""
        response = await self.send_chat_request(ChatRequest(message=message, system_prompt=system_prompt))
        if not response.success:
            raise error_for_kind(response.error_kind, response.error_message or "Chat request failed")
        return response.content

    async def send_message_stream(
        self,
        message: str,
        system_prompt: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[str]:
        """Stream the reply to *message* as text fragments."""
        model = await self.resolve_model()
        conversation = Conversation(system_prompt).add_user(message)
        request = conversation.to_request(model, stream=True)

        async for chunk in self.stream_chat(request, cancel_event=cancel_event):
            if chunk.content:
                yield chunk.content

    async def execute_tool_workflow(
        self,
        request: CompletionRequest,
        handler: ToolCallHandler,
        *,
        conversation: Optional[Conversation] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowResult:
        """Run the two-round tool-use exchange for *request*."""
        return await run_tool_workflow(
            self,
            request,
            handler,
            conversation=conversation,
            cancel_event=cancel_event,
        )
