"""Error kinds and exception types raised by the lmss client."""

from __future__ import annotations

import asyncio
import json
from enum import Enum
from typing import Optional

import httpx
from pydantic import ValidationError


class ErrorKind(str, Enum):
    NONE = "none"
    SERVER_UNAVAILABLE = "server_unavailable"
    NO_MODELS_LOADED = "no_models_loaded"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    MODEL_ERROR = "model_error"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    SERIALIZATION_ERROR = "serialization_error"
    TOOL_EXECUTION_ERROR = "tool_execution_error"
    UNKNOWN = "unknown"

    @property
    def user_message(self) -> str:
        """Human-readable description of the failure."""
        return _USER_MESSAGES.get(self, "An unknown error occurred.")

    @property
    def suggested_action(self) -> str:
        """What the user can do to resolve the failure."""
        return _SUGGESTED_ACTIONS.get(self, "Please try again or check the documentation.")

    @property
    def status_description(self) -> str:
        return _STATUS_DESCRIPTIONS.get(self, "Service unavailable")

    @property
    def is_retryable(self) -> bool:
        return self in _RETRYABLE

    @property
    def is_service_unavailable(self) -> bool:
        return self in (ErrorKind.SERVER_UNAVAILABLE, ErrorKind.NETWORK_ERROR, ErrorKind.UNAUTHORIZED)

    @property
    def is_models_unavailable(self) -> bool:
        return self in (ErrorKind.NO_MODELS_LOADED, ErrorKind.MODEL_ERROR)

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorKind:
        """Classify an arbitrary exception.

        Typed errors keep their own kind. Otherwise the exception type decides,
        and for plain exceptions the message is scanned for well-known phrases.
        """
        if isinstance(exc, LmssError):
            return exc.kind
        if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
            return cls.TIMEOUT
        if isinstance(exc, httpx.ConnectError):
            return cls.SERVER_UNAVAILABLE
        if isinstance(exc, httpx.TransportError):
            return cls.NETWORK_ERROR
        if isinstance(exc, httpx.HTTPStatusError):
            return kind_for_status(exc.response.status_code)
        if isinstance(exc, (json.JSONDecodeError, ValidationError)):
            return cls.SERIALIZATION_ERROR

        message = str(exc).lower()
        if "connection" in message and ("refused" in message or "timeout" in message):
            return cls.SERVER_UNAVAILABLE
        if "network" in message or "dns" in message:
            return cls.NETWORK_ERROR
        if "model" in message and "not" in message:
            return cls.NO_MODELS_LOADED
        if "unauthorized" in message or "forbidden" in message:
            return cls.UNAUTHORIZED
        if "rate" in message and "limit" in message:
            return cls.RATE_LIMITED
        if "json" in message or "serializ" in message:
            return cls.SERIALIZATION_ERROR
        if "invalid" in message or "bad request" in message:
            return cls.INVALID_REQUEST
        if isinstance(exc, (ValueError, TypeError)):
            return cls.INVALID_REQUEST
        return cls.UNKNOWN


_USER_MESSAGES = {
    ErrorKind.NONE: "",
    ErrorKind.SERVER_UNAVAILABLE: "The LM Studio server is not accessible. Please ensure LM Studio is running.",
    ErrorKind.NO_MODELS_LOADED: "No models are currently loaded in LM Studio. Please load a model to continue.",
    ErrorKind.NETWORK_ERROR: "Network connection issue. Please check your connection and try again.",
    ErrorKind.TIMEOUT: "The request timed out. The model may be taking too long to respond.",
    ErrorKind.INVALID_REQUEST: "Invalid request. Please check your input parameters.",
    ErrorKind.MODEL_ERROR: "Model error. The selected model may not support this operation.",
    ErrorKind.RATE_LIMITED: "Rate limit exceeded. Please wait before making more requests.",
    ErrorKind.UNAUTHORIZED: "Authorization failed. Please check your API credentials.",
    ErrorKind.SERIALIZATION_ERROR: "Data format error. There was an issue processing the response.",
    ErrorKind.TOOL_EXECUTION_ERROR: "A tool failed while handling the request.",
    ErrorKind.UNKNOWN: "An unexpected error occurred. Please try again.",
}

_SUGGESTED_ACTIONS = {
    ErrorKind.NONE: "",
    ErrorKind.SERVER_UNAVAILABLE: "Start LM Studio and ensure the server is running (Developer > Server > Start).",
    ErrorKind.NO_MODELS_LOADED: "Load a model in LM Studio from the Models tab.",
    ErrorKind.NETWORK_ERROR: "Check your network connection and LM Studio server settings.",
    ErrorKind.TIMEOUT: "Try a smaller request, a faster model, or raise request_timeout.",
    ErrorKind.INVALID_REQUEST: "Verify your request parameters and try again.",
    ErrorKind.MODEL_ERROR: "Try switching to a different model or check model compatibility.",
    ErrorKind.RATE_LIMITED: "Wait a moment before making additional requests.",
    ErrorKind.UNAUTHORIZED: "Check your API key configuration in LM Studio settings.",
    ErrorKind.SERIALIZATION_ERROR: "This may be a temporary issue - please try again.",
    ErrorKind.TOOL_EXECUTION_ERROR: "Check the tool's arguments and its handler implementation.",
    ErrorKind.UNKNOWN: "Check LM Studio logs for more details.",
}

_STATUS_DESCRIPTIONS = {
    ErrorKind.NONE: "LM Studio service is ready",
    ErrorKind.SERVER_UNAVAILABLE: "LM Studio server is not running or not accessible",
    ErrorKind.NO_MODELS_LOADED: "LM Studio is running but no models are loaded",
    ErrorKind.NETWORK_ERROR: "Network connectivity issues",
    ErrorKind.MODEL_ERROR: "Model-related error",
}

_RETRYABLE = frozenset({
    ErrorKind.NETWORK_ERROR,
    ErrorKind.RATE_LIMITED,
    ErrorKind.SERIALIZATION_ERROR,
    ErrorKind.UNKNOWN,
})


def kind_for_status(status_code: int) -> ErrorKind:
    """Map a non-2xx HTTP status code to an error kind."""
    if status_code in (400, 422):
        return ErrorKind.INVALID_REQUEST
    if status_code in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if status_code == 404:
        return ErrorKind.MODEL_ERROR
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code >= 500:
        return ErrorKind.SERVER_UNAVAILABLE
    return ErrorKind.UNKNOWN


class LmssError(Exception):
    """Base class for every error raised by this library."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def suggested_action(self) -> str:
        return self.kind.suggested_action

    @property
    def is_retryable(self) -> bool:
        return self.kind.is_retryable


class ServerUnavailableError(LmssError):
    kind = ErrorKind.SERVER_UNAVAILABLE


class NoModelsLoadedError(LmssError):
    kind = ErrorKind.NO_MODELS_LOADED


class NetworkError(LmssError):
    kind = ErrorKind.NETWORK_ERROR


class RequestTimeoutError(LmssError):
    kind = ErrorKind.TIMEOUT


class InvalidRequestError(LmssError):
    kind = ErrorKind.INVALID_REQUEST


class ModelError(LmssError):
    kind = ErrorKind.MODEL_ERROR

    def __init__(self, message: str, requested_model: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.requested_model = requested_model


class RateLimitedError(LmssError):
    kind = ErrorKind.RATE_LIMITED


class UnauthorizedError(LmssError):
    kind = ErrorKind.UNAUTHORIZED


class SerializationError(LmssError):
    kind = ErrorKind.SERIALIZATION_ERROR


class ToolExecutionError(LmssError):
    kind = ErrorKind.TOOL_EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.arguments = arguments


class UnknownError(LmssError):
    kind = ErrorKind.UNKNOWN


_ERROR_BY_KIND: dict[ErrorKind, type[LmssError]] = {
    ErrorKind.SERVER_UNAVAILABLE: ServerUnavailableError,
    ErrorKind.NO_MODELS_LOADED: NoModelsLoadedError,
    ErrorKind.NETWORK_ERROR: NetworkError,
    ErrorKind.TIMEOUT: RequestTimeoutError,
    ErrorKind.INVALID_REQUEST: InvalidRequestError,
    ErrorKind.MODEL_ERROR: ModelError,
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.UNAUTHORIZED: UnauthorizedError,
    ErrorKind.SERIALIZATION_ERROR: SerializationError,
    ErrorKind.TOOL_EXECUTION_ERROR: ToolExecutionError,
    ErrorKind.UNKNOWN: UnknownError,
}


def error_for_kind(kind: ErrorKind, message: str, *, status_code: Optional[int] = None) -> LmssError:
    """Build the exception class matching *kind*."""
    error_cls = _ERROR_BY_KIND.get(kind, UnknownError)
    if error_cls is ToolExecutionError:
        return ToolExecutionError(message)
    return error_cls(message, status_code=status_code)
