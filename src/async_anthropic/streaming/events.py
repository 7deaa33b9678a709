"""Typed events of the Messages streaming protocol.

Each SSE frame carries an ``event:`` label that maps 1:1 onto one of the
dataclasses below.  ``parse_event`` is the single dispatch point: unknown
labels fail with ``ProtocolError`` instead of being dropped, because an
ignored control event can desynchronize the accumulator.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from async_anthropic.errors import DecodeError, ProtocolError
from async_anthropic.types import (
    ContentBlock,
    MessagesResponse,
    Usage,
    content_block_from_dict,
)


# ---------------------------------------------------------------------------
# Delta payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class InputJsonDelta:
    partial_json: str


@dataclass(frozen=True)
class ThinkingDelta:
    thinking: str


@dataclass(frozen=True)
class SignatureDelta:
    signature: str


Delta = Union[TextDelta, InputJsonDelta, ThinkingDelta, SignatureDelta]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass
class MessageStart:
    message: MessagesResponse


@dataclass
class ContentBlockStart:
    index: int
    content_block: ContentBlock


@dataclass
class ContentBlockDelta:
    index: int
    delta: Delta


@dataclass
class ContentBlockStop:
    index: int


@dataclass
class MessageDelta:
    """Top-level updates: stop reason, stop sequence and usage counters."""

    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)


@dataclass
class MessageStop:
    pass


@dataclass
class Ping:
    pass


@dataclass
class ErrorEvent:
    error_type: str
    message: str | None = None


Event = Union[
    MessageStart,
    ContentBlockStart,
    ContentBlockDelta,
    ContentBlockStop,
    MessageDelta,
    MessageStop,
    Ping,
    ErrorEvent,
]

TERMINAL_EVENTS = (MessageStop, ErrorEvent)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _index(data: dict[str, Any]) -> int:
    index = data["index"]
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ValueError(f"invalid block index: {index!r}")
    return index


def _object(data: dict[str, Any], key: str, required: bool = True) -> dict[str, Any]:
    """Nested object at *key*; an absent or null optional one is ``{}``."""
    value = data[key] if required else data.get(key)
    if value is None and not required:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{key!r} is not an object: {value!r}")
    return value


def _string(data: dict[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"{key!r} is not a string: {value!r}")
    return value


def _message_start(data: dict[str, Any]) -> MessageStart:
    message = MessagesResponse.from_dict(_object(data, "message"))
    # Some servers send the opening usage beside the message rather than in it
    message.usage.merge(_object(data, "usage", required=False))
    return MessageStart(message=message)


def _content_block_start(data: dict[str, Any]) -> ContentBlockStart:
    return ContentBlockStart(
        index=_index(data),
        content_block=content_block_from_dict(_object(data, "content_block")),
    )


def _delta(data: dict[str, Any]) -> Delta:
    kind = data.get("type")
    if kind == "text_delta":
        return TextDelta(text=_string(data, "text"))
    if kind == "input_json_delta":
        return InputJsonDelta(partial_json=_string(data, "partial_json"))
    if kind == "thinking_delta":
        return ThinkingDelta(thinking=_string(data, "thinking"))
    if kind == "signature_delta":
        return SignatureDelta(signature=_string(data, "signature"))
    raise ValueError(f"unknown delta type: {kind!r}")


def _content_block_delta(data: dict[str, Any]) -> ContentBlockDelta:
    return ContentBlockDelta(index=_index(data), delta=_delta(_object(data, "delta")))


def _content_block_stop(data: dict[str, Any]) -> ContentBlockStop:
    return ContentBlockStop(index=_index(data))


def _message_delta(data: dict[str, Any]) -> MessageDelta:
    delta = _object(data, "delta", required=False)
    usage = dict(_object(data, "usage", required=False))
    Usage.from_dict(usage)  # rejects non-numeric counters
    return MessageDelta(
        stop_reason=delta.get("stop_reason"),
        stop_sequence=delta.get("stop_sequence"),
        usage=usage,
    )


def _error(data: dict[str, Any]) -> ErrorEvent:
    error = _object(data, "error", required=False)
    return ErrorEvent(
        error_type=error.get("type") or "unknown_error",
        message=error.get("message"),
    )


_DECODERS: dict[str, Callable[[dict[str, Any]], Event]] = {
    "message_start": _message_start,
    "content_block_start": _content_block_start,
    "content_block_delta": _content_block_delta,
    "content_block_stop": _content_block_stop,
    "message_delta": _message_delta,
    "message_stop": lambda data: MessageStop(),
    "ping": lambda data: Ping(),
    "error": _error,
}

EVENT_TYPES = frozenset(_DECODERS)


def parse_event(label: str | None, data: str) -> Event:
    """Decode one frame into an ``Event``.

    *label* is the frame's ``event:`` field; when absent the payload's own
    ``type`` is used.  Raises ``DecodeError`` for malformed payloads and
    ``ProtocolError`` for unknown or inconsistent labels.
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid JSON in stream frame ({exc.msg})", data) from exc
    if not isinstance(payload, dict):
        raise DecodeError("stream frame payload is not an object", data)

    declared = payload.get("type")
    if label is None:
        label = declared
    elif declared is not None and declared != label:
        raise ProtocolError(
            f"frame labelled {label!r} carries a {declared!r} payload"
        )

    decoder = _DECODERS.get(label) if isinstance(label, str) else None
    if decoder is None:
        raise ProtocolError(f"unknown stream event type: {label!r}")

    try:
        return decoder(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"malformed {label} payload ({exc})", data) from exc
