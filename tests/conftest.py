"""Shared fixtures: canned event sequences and SSE body builders."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from async_anthropic.config import ClientConfig, RetrySpec
from async_anthropic.streaming.events import Event, parse_event

RawEvent = tuple[str, dict[str, Any]]


def message_start(message_id: str = "m1", model: str = "claude-test") -> RawEvent:
    return ("message_start", {
        "type": "message_start",
        "message": {
            "id": message_id,
            "type": "message",
            "role": "assistant",
            "model": model,
            "content": [],
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": 12, "output_tokens": 1},
        },
    })


def text_block(index: int, parts: list[str]) -> list[RawEvent]:
    events: list[RawEvent] = [(
        "content_block_start",
        {"type": "content_block_start", "index": index,
         "content_block": {"type": "text", "text": ""}},
    )]
    for part in parts:
        events.append((
            "content_block_delta",
            {"type": "content_block_delta", "index": index,
             "delta": {"type": "text_delta", "text": part}},
        ))
    events.append(("content_block_stop", {"type": "content_block_stop", "index": index}))
    return events


def tool_block(index: int, tool_id: str, name: str, parts: list[str]) -> list[RawEvent]:
    events: list[RawEvent] = [(
        "content_block_start",
        {"type": "content_block_start", "index": index,
         "content_block": {"type": "tool_use", "id": tool_id, "name": name, "input": {}}},
    )]
    for part in parts:
        events.append((
            "content_block_delta",
            {"type": "content_block_delta", "index": index,
             "delta": {"type": "input_json_delta", "partial_json": part}},
        ))
    events.append(("content_block_stop", {"type": "content_block_stop", "index": index}))
    return events


def message_end(stop_reason: str = "end_turn", output_tokens: int = 5) -> list[RawEvent]:
    return [
        ("message_delta", {
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
            "usage": {"output_tokens": output_tokens},
        }),
        ("message_stop", {"type": "message_stop"}),
    ]


def hello_events(message_id: str = "m1", parts: tuple[str, ...] = ("Hel", "lo")) -> list[RawEvent]:
    """message_start, one text block built from *parts*, message_stop."""
    return [
        message_start(message_id),
        *text_block(0, list(parts)),
        ("message_stop", {"type": "message_stop"}),
    ]


def encode_sse(events: list[RawEvent]) -> str:
    return "".join(
        f"event: {label}\ndata: {json.dumps(data)}\n\n" for label, data in events
    )


def decode_all(events: list[RawEvent]) -> list[Event]:
    return [parse_event(label, json.dumps(data)) for label, data in events]


async def aiter_lines(text: str) -> AsyncIterator[str]:
    for line in text.split("\n"):
        yield line


def sse_response(events: list[RawEvent], status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        content=encode_sse(events).encode(),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        api_key="test-key",
        base_url="https://api.test",
        idle_timeout=None,
        retry=RetrySpec(max_attempts=3, base_delay=0.01, jitter=0.0),
    )


@pytest.fixture
def make_transport() -> Callable[..., httpx.MockTransport]:
    """Build a MockTransport that answers with *responses* in order.

    Each item is an ``httpx.Response`` or an exception to raise.  Sent
    requests are appended to ``transport.requests``.
    """

    def _make(*responses: httpx.Response | Exception) -> httpx.MockTransport:
        queue = list(responses)
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if not queue:
                raise AssertionError(f"unexpected request: {request.method} {request.url}")
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        transport = httpx.MockTransport(handler)
        transport.requests = requests  # type: ignore[attr-defined]
        return transport

    return _make
