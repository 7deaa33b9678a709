"""Streaming pipeline: SSE framing, event accumulation, retry and the stream handle."""

from async_anthropic.streaming.accumulator import (
    AccumulatorState,
    BlockFinished,
    BlockStarted,
    MessageAccumulator,
    MessageFinished,
    MessageStarted,
    MessageUpdated,
    StreamUpdate,
    TextUpdate,
    ThinkingUpdate,
    ToolInputUpdate,
)
from async_anthropic.streaming.events import Event, parse_event
from async_anthropic.streaming.handle import MessageStream
from async_anthropic.streaming.retry import (
    RetryOrchestrator,
    RetryPolicy,
    RetryState,
    compute_backoff,
    is_retryable,
)
from async_anthropic.streaming.sse import EventFrameParser

__all__ = [
    "AccumulatorState",
    "BlockFinished",
    "BlockStarted",
    "MessageAccumulator",
    "MessageFinished",
    "MessageStarted",
    "MessageUpdated",
    "StreamUpdate",
    "TextUpdate",
    "ThinkingUpdate",
    "ToolInputUpdate",
    "Event",
    "parse_event",
    "MessageStream",
    "RetryOrchestrator",
    "RetryPolicy",
    "RetryState",
    "compute_backoff",
    "is_retryable",
    "EventFrameParser",
]
