"""Message accumulator: folds stream events into a complete message.

Every event is validated against the current state before anything is
mutated, so a rejected event leaves the visible message exactly as it was
and moves the accumulator to ``ERRORED``.

States::

    NOT_STARTED --message_start--> STARTED --message_stop--> COMPLETED
         \\                            \\
          +------ any failure ----------+--> ERRORED
          +------ cancel() ------------------> CANCELLED
"""

from __future__ import annotations

import copy
import enum
import json
import logging
from dataclasses import dataclass
from typing import Union

from async_anthropic.errors import (
    ApiError,
    AnthropicError,
    Cancelled,
    DecodeError,
    ProtocolError,
    UnexpectedEndOfStream,
)
from async_anthropic.types import (
    ContentBlock,
    MessagesResponse,
    RedactedThinking,
    Text,
    Thinking,
    ToolUse,
    Usage,
)
from async_anthropic.streaming.events import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    ErrorEvent,
    Event,
    InputJsonDelta,
    MessageDelta,
    MessageStart,
    MessageStop,
    Ping,
    SignatureDelta,
    TextDelta,
    ThinkingDelta,
)

_logger = logging.getLogger(__name__)


class AccumulatorState(enum.Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Caller-facing updates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MessageStarted:
    id: str
    model: str


@dataclass(frozen=True)
class BlockStarted:
    index: int
    block: ContentBlock


@dataclass(frozen=True)
class TextUpdate:
    """A text fragment; ``snapshot`` is the block's text so far."""

    index: int
    text: str
    snapshot: str


@dataclass(frozen=True)
class ToolInputUpdate:
    """A fragment of tool arguments.  ``snapshot`` may not be valid JSON yet."""

    index: int
    tool_use_id: str
    name: str
    partial_json: str
    snapshot: str


@dataclass(frozen=True)
class ThinkingUpdate:
    index: int
    thinking: str = ""
    signature: str = ""


@dataclass(frozen=True)
class BlockFinished:
    index: int
    block: ContentBlock


@dataclass(frozen=True)
class MessageUpdated:
    stop_reason: str | None
    stop_sequence: str | None
    usage: Usage


@dataclass(frozen=True)
class MessageFinished:
    message: MessagesResponse


StreamUpdate = Union[
    MessageStarted,
    BlockStarted,
    TextUpdate,
    ToolInputUpdate,
    ThinkingUpdate,
    BlockFinished,
    MessageUpdated,
    MessageFinished,
]


# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------

@dataclass
class _BlockSlot:
    block: ContentBlock
    open: bool = True


class MessageAccumulator:
    """Strict state machine over stream events.

    One accumulator serves exactly one attempt; a retry builds a new one.
    """

    def __init__(self) -> None:
        self.state = AccumulatorState.NOT_STARTED
        self.events_applied = 0
        self._message = MessagesResponse()
        self._slots: list[_BlockSlot] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_complete(self) -> bool:
        return self.state is AccumulatorState.COMPLETED

    @property
    def is_terminal(self) -> bool:
        return self.state in (
            AccumulatorState.COMPLETED,
            AccumulatorState.ERRORED,
            AccumulatorState.CANCELLED,
        )

    def apply(self, event: Event) -> StreamUpdate | None:
        """Fold one event into the message.

        Returns the update to show a live consumer, or ``None`` for events
        that carry nothing for the caller (``ping``).
        """
        if self.state is AccumulatorState.CANCELLED:
            raise Cancelled("event received after the stream was cancelled")
        if self.state in (AccumulatorState.COMPLETED, AccumulatorState.ERRORED):
            raise self._fail(ProtocolError(
                f"{type(event).__name__} received after the message "
                f"was {self.state.value}"
            ))

        try:
            update = self._dispatch(event)
        except AnthropicError as exc:
            raise self._fail(exc)
        self.events_applied += 1
        return update

    def snapshot(self) -> MessagesResponse:
        """Deep copy of the message as accumulated so far."""
        message = copy.deepcopy(self._message)
        message.content = [copy.deepcopy(slot.block) for slot in self._slots]
        return message

    def result(self) -> MessagesResponse:
        """The completed message.

        Raises ``UnexpectedEndOfStream`` unless ``message_stop`` was applied.
        """
        if not self.is_complete:
            raise UnexpectedEndOfStream(
                f"message is {self.state.value}, not completed"
            )
        return self.snapshot()

    def cancel(self) -> None:
        """Move to ``CANCELLED`` and drop the partial message."""
        if self.is_complete:
            return
        self.state = AccumulatorState.CANCELLED
        self._slots.clear()
        self._message = MessagesResponse()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _dispatch(self, event: Event) -> StreamUpdate | None:
        if isinstance(event, Ping):
            return None
        if isinstance(event, ErrorEvent):
            raise ApiError(event.error_type, event.message)
        if isinstance(event, MessageStart):
            return self._on_message_start(event)

        if self.state is not AccumulatorState.STARTED:
            raise ProtocolError(
                f"{type(event).__name__} received before message_start"
            )

        if isinstance(event, ContentBlockStart):
            return self._on_block_start(event)
        if isinstance(event, ContentBlockDelta):
            return self._on_block_delta(event)
        if isinstance(event, ContentBlockStop):
            return self._on_block_stop(event)
        if isinstance(event, MessageDelta):
            return self._on_message_delta(event)
        if isinstance(event, MessageStop):
            return self._on_message_stop()
        raise ProtocolError(f"unsupported event: {event!r}")

    def _on_message_start(self, event: MessageStart) -> StreamUpdate:
        if self.state is not AccumulatorState.NOT_STARTED:
            raise ProtocolError("duplicate message_start")
        if event.message.content:
            raise ProtocolError("message_start must not carry content blocks")
        self._message = copy.deepcopy(event.message)
        self.state = AccumulatorState.STARTED
        _logger.debug("Message %s started", self._message.id)
        return MessageStarted(id=self._message.id, model=self._message.model)

    def _on_block_start(self, event: ContentBlockStart) -> StreamUpdate:
        expected = len(self._slots)
        if event.index < expected:
            raise ProtocolError(f"content block {event.index} started twice")
        if event.index > expected:
            raise ProtocolError(
                f"content block {event.index} started but next index is {expected}"
            )
        block = event.content_block
        if not isinstance(block, (Text, ToolUse, Thinking, RedactedThinking)):
            raise ProtocolError(
                f"content block type {type(block).__name__} not allowed in a response"
            )
        block = copy.deepcopy(block)
        if isinstance(block, ToolUse):
            # Arguments arrive as input_json deltas; the start block carries {}
            block.input = {}
            block.partial_json = ""
        self._slots.append(_BlockSlot(block=block))
        return BlockStarted(index=event.index, block=copy.deepcopy(block))

    def _open_slot(self, index: int) -> _BlockSlot:
        if index >= len(self._slots):
            raise ProtocolError(f"content block {index} was never started")
        slot = self._slots[index]
        if not slot.open:
            raise ProtocolError(f"content block {index} is already stopped")
        return slot

    def _on_block_delta(self, event: ContentBlockDelta) -> StreamUpdate:
        slot = self._open_slot(event.index)
        block = slot.block
        delta = event.delta

        if isinstance(delta, TextDelta) and isinstance(block, Text):
            block.text += delta.text
            return TextUpdate(index=event.index, text=delta.text, snapshot=block.text)

        if isinstance(delta, InputJsonDelta) and isinstance(block, ToolUse):
            block.partial_json += delta.partial_json
            return ToolInputUpdate(
                index=event.index,
                tool_use_id=block.id,
                name=block.name,
                partial_json=delta.partial_json,
                snapshot=block.partial_json,
            )

        if isinstance(delta, ThinkingDelta) and isinstance(block, Thinking):
            block.thinking += delta.thinking
            return ThinkingUpdate(index=event.index, thinking=delta.thinking)

        if isinstance(delta, SignatureDelta) and isinstance(block, Thinking):
            block.signature = (block.signature or "") + delta.signature
            return ThinkingUpdate(index=event.index, signature=delta.signature)

        raise ProtocolError(
            f"{type(delta).__name__} does not apply to "
            f"{type(block).__name__} block {event.index}"
        )

    def _on_block_stop(self, event: ContentBlockStop) -> StreamUpdate:
        slot = self._open_slot(event.index)
        block = slot.block
        if isinstance(block, ToolUse):
            raw = block.partial_json
            if raw.strip():
                try:
                    parsed = json.loads(raw)
                except json.JSONDecodeError as exc:
                    raise DecodeError(
                        f"tool_use block {event.index} arguments are not valid JSON",
                        raw,
                    ) from exc
                if not isinstance(parsed, dict):
                    raise DecodeError(
                        f"tool_use block {event.index} arguments are not an object",
                        raw,
                    )
                block.input = parsed
        slot.open = False
        return BlockFinished(index=event.index, block=copy.deepcopy(block))

    def _on_message_delta(self, event: MessageDelta) -> StreamUpdate:
        if event.stop_reason is not None:
            self._message.stop_reason = event.stop_reason
        if event.stop_sequence is not None:
            self._message.stop_sequence = event.stop_sequence
        self._message.usage.merge(event.usage)
        return MessageUpdated(
            stop_reason=self._message.stop_reason,
            stop_sequence=self._message.stop_sequence,
            usage=copy.copy(self._message.usage),
        )

    def _on_message_stop(self) -> StreamUpdate:
        still_open = [i for i, slot in enumerate(self._slots) if slot.open]
        if still_open:
            raise ProtocolError(
                f"message_stop while content blocks {still_open} are still open"
            )
        self._message.usage.finalize()
        self.state = AccumulatorState.COMPLETED
        _logger.debug(
            "Message %s completed: %d blocks, stop_reason=%s",
            self._message.id, len(self._slots), self._message.stop_reason,
        )
        return MessageFinished(message=self.snapshot())

    def _fail(self, exc: AnthropicError) -> AnthropicError:
        # A completed message stays completed; late events only raise
        if self.state in (AccumulatorState.NOT_STARTED, AccumulatorState.STARTED):
            self.state = AccumulatorState.ERRORED
        return exc
