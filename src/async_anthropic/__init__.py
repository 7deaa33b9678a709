"""Asyncio client for the Anthropic Messages API."""

from async_anthropic.client import AsyncAnthropicClient, parse_retry_after
from async_anthropic.config import ClientConfig, RetrySpec, load_config
from async_anthropic.errors import (
    AnthropicError,
    ApiError,
    Cancelled,
    DecodeError,
    HttpStatusError,
    IdleTimeoutError,
    ProtocolError,
    RetriesExhausted,
    TransportError,
    UnexpectedEndOfStream,
)
from async_anthropic.streaming import MessageStream, RetryPolicy
from async_anthropic.types import (
    ExtendedThinking,
    Message,
    MessagesRequest,
    MessagesResponse,
    ModelInfo,
    ModelList,
    RedactedThinking,
    Role,
    Text,
    Thinking,
    Tool,
    ToolChoice,
    ToolResult,
    ToolUse,
    Usage,
)

__all__ = [
    "AsyncAnthropicClient",
    "parse_retry_after",
    "ClientConfig",
    "RetrySpec",
    "load_config",
    "AnthropicError",
    "ApiError",
    "Cancelled",
    "DecodeError",
    "HttpStatusError",
    "IdleTimeoutError",
    "ProtocolError",
    "RetriesExhausted",
    "TransportError",
    "UnexpectedEndOfStream",
    "MessageStream",
    "RetryPolicy",
    "ExtendedThinking",
    "Message",
    "MessagesRequest",
    "MessagesResponse",
    "ModelInfo",
    "ModelList",
    "RedactedThinking",
    "Role",
    "Text",
    "Thinking",
    "Tool",
    "ToolChoice",
    "ToolResult",
    "ToolUse",
    "Usage",
]
