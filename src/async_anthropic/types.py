"""Request and response data types for the Messages API."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Sequence, Union


class Role(str, enum.Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------

@dataclass
class Text:
    """A run of text."""

    text: str = ""
    cache_control: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": "text", "text": self.text}
        if self.cache_control:
            out["cache_control"] = self.cache_control
        return out


@dataclass
class ToolUse:
    """A tool invocation requested by the model.

    ``partial_json`` holds the raw argument text as it arrived on the
    stream; ``input`` is only populated once the block has been closed.
    """

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    partial_json: str = ""
    cache_control: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "input": self.input,
        }
        if self.cache_control:
            out["cache_control"] = self.cache_control
        return out


@dataclass
class ToolResult:
    """The caller's answer to a ``ToolUse`` (input messages only)."""

    tool_use_id: str
    content: str | None = None
    is_error: bool = False
    cache_control: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "is_error": self.is_error,
        }
        if self.content is not None:
            out["content"] = self.content
        if self.cache_control:
            out["cache_control"] = self.cache_control
        return out


@dataclass
class Thinking:
    """Extended-thinking output."""

    thinking: str = ""
    signature: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": "thinking", "thinking": self.thinking}
        if self.signature is not None:
            out["signature"] = self.signature
        return out


@dataclass
class RedactedThinking:
    """Thinking content the server returned encrypted."""

    data: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "redacted_thinking", "data": self.data}


ContentBlock = Union[Text, ToolUse, ToolResult, Thinking, RedactedThinking]


def content_block_from_dict(data: dict[str, Any]) -> ContentBlock:
    """Build a content block from its wire form.

    Raises ``ValueError`` for a non-object or an unknown ``type`` and
    ``KeyError`` for a missing required field.
    """
    if not isinstance(data, dict):
        raise ValueError(f"content block is not an object: {data!r}")
    kind = data.get("type")
    if kind == "text":
        return Text(text=data.get("text", ""), cache_control=data.get("cache_control"))
    if kind == "tool_use":
        return ToolUse(
            id=data["id"],
            name=data["name"],
            input=dict(data.get("input") or {}),
            cache_control=data.get("cache_control"),
        )
    if kind == "tool_result":
        return ToolResult(
            tool_use_id=data["tool_use_id"],
            content=data.get("content"),
            is_error=bool(data.get("is_error", False)),
        )
    if kind == "thinking":
        return Thinking(thinking=data.get("thinking", ""), signature=data.get("signature"))
    if kind == "redacted_thinking":
        return RedactedThinking(data=data["data"])
    raise ValueError(f"unknown content block type: {kind!r}")


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass
class Message:
    """One input turn of a conversation."""

    role: Role = Role.USER
    content: str | list[ContentBlock] = ""

    @classmethod
    def user(cls, content: str | list[ContentBlock]) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str | list[ContentBlock]) -> Message:
        return cls(role=Role.ASSISTANT, content=content)

    def text(self) -> str | None:
        """Return the first text content, if any."""
        if isinstance(self.content, str):
            return self.content
        for block in self.content:
            if isinstance(block, Text):
                return block.text
        return None

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            content: Any = self.content
        else:
            content = [block.to_dict() for block in self.content]
        return {"role": Role(self.role).value, "content": content}


@dataclass
class Usage:
    """Token counters reported by the server."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Usage:
        usage = cls()
        usage.merge(data)
        return usage

    def merge(self, data: dict[str, Any] | None) -> None:
        """Overlay every counter present (and not null) in *data*."""
        if not data:
            return
        if not isinstance(data, dict):
            raise ValueError(f"usage is not an object: {data!r}")
        for name in (
            "input_tokens",
            "output_tokens",
            "cache_creation_input_tokens",
            "cache_read_input_tokens",
        ):
            value = data.get(name)
            if value is not None:
                setattr(self, name, int(value))

    def finalize(self) -> None:
        if self.input_tokens is None:
            self.input_tokens = 0
        if self.output_tokens is None:
            self.output_tokens = 0

    def to_dict(self) -> dict[str, int]:
        return {
            k: v
            for k, v in (
                ("input_tokens", self.input_tokens),
                ("output_tokens", self.output_tokens),
                ("cache_creation_input_tokens", self.cache_creation_input_tokens),
                ("cache_read_input_tokens", self.cache_read_input_tokens),
            )
            if v is not None
        }


@dataclass
class MessagesResponse:
    """A complete (or snapshot of an in-progress) assistant message."""

    id: str = ""
    model: str = ""
    role: Role = Role.ASSISTANT
    content: list[ContentBlock] = field(default_factory=list)
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: Usage = field(default_factory=Usage)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessagesResponse:
        return cls(
            id=data.get("id") or "",
            model=data.get("model") or "",
            role=Role(data.get("role", "assistant")),
            content=[content_block_from_dict(c) for c in data.get("content") or []],
            stop_reason=data.get("stop_reason"),
            stop_sequence=data.get("stop_sequence"),
            usage=Usage.from_dict(data.get("usage")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "message",
            "role": self.role.value,
            "model": self.model,
            "content": [block.to_dict() for block in self.content],
            "stop_reason": self.stop_reason,
            "stop_sequence": self.stop_sequence,
            "usage": self.usage.to_dict(),
        }

    def text(self) -> str:
        """Concatenate all text blocks."""
        return "".join(b.text for b in self.content if isinstance(b, Text))

    def tool_uses(self) -> list[ToolUse]:
        return [b for b in self.content if isinstance(b, ToolUse)]

    def to_message(self) -> Message:
        """Turn the response into an assistant turn for the next request."""
        return Message(role=Role.ASSISTANT, content=copy.deepcopy(self.content))


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@dataclass
class Tool:
    """A caller-defined tool the model may invoke."""

    name: str
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    description: str | None = None
    cache_control: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": "custom",
            "name": self.name,
            "input_schema": self.input_schema,
        }
        if self.description is not None:
            out["description"] = self.description
        if self.cache_control:
            out["cache_control"] = self.cache_control
        return out


@dataclass(frozen=True)
class ToolChoice:
    """How the model should pick tools: ``auto``, ``any``, ``tool`` or ``none``."""

    type: str = "auto"
    name: str | None = None
    disable_parallel_tool_use: bool = False

    @classmethod
    def auto(cls) -> ToolChoice:
        return cls("auto")

    @classmethod
    def any(cls) -> ToolChoice:
        return cls("any")

    @classmethod
    def tool(cls, name: str) -> ToolChoice:
        return cls("tool", name=name)

    @classmethod
    def none(cls) -> ToolChoice:
        return cls("none")

    def to_dict(self) -> dict[str, Any]:
        if self.type == "none":
            return {"type": "none"}
        out: dict[str, Any] = {"type": self.type}
        if self.type == "tool":
            out["name"] = self.name
        out["disable_parallel_tool_use"] = self.disable_parallel_tool_use
        return out


@dataclass(frozen=True)
class ExtendedThinking:
    budget_tokens: int
    type: str = "enabled"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "budget_tokens": self.budget_tokens}


DEFAULT_MAX_TOKENS = 1024


@dataclass(frozen=True)
class MessagesRequest:
    """Everything needed for one Messages API call.

    Optional fields left at ``None`` (or empty) are omitted from the
    payload so the server default applies.

    Parameters
    ----------
    model:
        Model identifier, e.g. ``"claude-3-5-sonnet-20241022"``.
    messages:
        Conversation so far, oldest first.
    max_tokens:
        Upper bound on generated tokens (default 1024).
    system:
        System prompt as a string or list of ``Text`` blocks.
    tools / tool_choice:
        Tool declarations and the selection strategy.
    temperature / top_p / top_k:
        Sampling parameters.
    stop_sequences:
        Extra strings that end generation.
    metadata:
        Opaque request metadata (e.g. ``{"user_id": ...}``).
    thinking:
        Extended-thinking budget.
    """

    model: str
    messages: Sequence[Message]
    max_tokens: int = DEFAULT_MAX_TOKENS
    system: str | Sequence[Text] | None = None
    tools: Sequence[Tool] = ()
    tool_choice: ToolChoice | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stop_sequences: Sequence[str] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    thinking: ExtendedThinking | None = None

    def to_payload(self, stream: bool = False) -> dict[str, Any]:
        """Render the JSON request body."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "max_tokens": self.max_tokens,
            "stream": stream,
        }
        if self.system is not None:
            if isinstance(self.system, str):
                payload["system"] = self.system
            else:
                payload["system"] = [t.to_dict() for t in self.system]
        if self.tools:
            payload["tools"] = [t.to_dict() for t in self.tools]
        if self.tool_choice is not None:
            payload["tool_choice"] = self.tool_choice.to_dict()
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.top_p is not None:
            payload["top_p"] = self.top_p
        if self.top_k is not None:
            payload["top_k"] = self.top_k
        if self.stop_sequences:
            payload["stop_sequences"] = list(self.stop_sequences)
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        if self.thinking is not None:
            payload["thinking"] = self.thinking.to_dict()
        return payload


@dataclass
class ModelInfo:
    """One entry of the models listing."""

    id: str
    display_name: str = ""
    created_at: str = ""
    type: str = "model"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelInfo:
        return cls(
            id=data["id"],
            display_name=data.get("display_name", ""),
            created_at=data.get("created_at", ""),
            type=data.get("type", "model"),
        )


@dataclass
class ModelList:
    data: list[ModelInfo] = field(default_factory=list)
    has_more: bool = False
    first_id: str | None = None
    last_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelList:
        return cls(
            data=[ModelInfo.from_dict(m) for m in data.get("data") or []],
            has_more=bool(data.get("has_more", False)),
            first_id=data.get("first_id"),
            last_id=data.get("last_id"),
        )
