"""Tests for request/response types."""

import pytest

from async_anthropic.types import (
    DEFAULT_MAX_TOKENS,
    ExtendedThinking,
    Message,
    MessagesRequest,
    MessagesResponse,
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
    content_block_from_dict,
)


class TestContentBlocks:
    def test_text_to_dict(self):
        assert Text("hi").to_dict() == {"type": "text", "text": "hi"}

    def test_cache_control_included_when_set(self):
        block = Text("hi", cache_control={"type": "ephemeral"})
        assert block.to_dict()["cache_control"] == {"type": "ephemeral"}

    def test_tool_use_from_dict(self):
        block = content_block_from_dict(
            {"type": "tool_use", "id": "tu_1", "name": "get_weather", "input": {"a": 1}}
        )
        assert isinstance(block, ToolUse)
        assert block.input == {"a": 1}
        assert block.partial_json == ""

    def test_tool_result_to_dict(self):
        block = ToolResult(tool_use_id="tu_1", content="warm")
        assert block.to_dict() == {
            "type": "tool_result",
            "tool_use_id": "tu_1",
            "is_error": False,
            "content": "warm",
        }

    def test_thinking_variants(self):
        assert isinstance(
            content_block_from_dict({"type": "thinking", "thinking": "hmm"}), Thinking
        )
        assert isinstance(
            content_block_from_dict({"type": "redacted_thinking", "data": "xx"}),
            RedactedThinking,
        )

    def test_unknown_block_type(self):
        with pytest.raises(ValueError, match="unknown content block"):
            content_block_from_dict({"type": "image"})

    def test_missing_field(self):
        with pytest.raises(KeyError):
            content_block_from_dict({"type": "tool_use", "name": "x"})


class TestMessage:
    def test_user_helper(self):
        msg = Message.user("hello")
        assert msg.role is Role.USER
        assert msg.to_dict() == {"role": "user", "content": "hello"}

    def test_blocks_serialized(self):
        msg = Message.assistant([Text("a"), ToolUse(id="t", name="n", input={"k": 1})])
        out = msg.to_dict()
        assert out["role"] == "assistant"
        assert out["content"][1] == {"type": "tool_use", "id": "t", "name": "n", "input": {"k": 1}}

    def test_text_returns_first_text_block(self):
        msg = Message.user([ToolResult(tool_use_id="t"), Text("x"), Text("y")])
        assert msg.text() == "x"


class TestUsage:
    def test_merge_skips_missing(self):
        usage = Usage(input_tokens=3)
        usage.merge({"output_tokens": 7, "input_tokens": None})
        assert usage.input_tokens == 3
        assert usage.output_tokens == 7

    def test_finalize_fills_zero(self):
        usage = Usage()
        usage.finalize()
        assert usage.input_tokens == 0
        assert usage.output_tokens == 0
        assert usage.cache_read_input_tokens is None


class TestMessagesResponse:
    def test_from_dict(self):
        resp = MessagesResponse.from_dict({
            "id": "msg_1",
            "model": "claude-test",
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Let me check. "},
                {"type": "tool_use", "id": "tu_1", "name": "get_weather",
                 "input": {"location": "SF"}},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 10, "output_tokens": 20},
        })
        assert resp.text() == "Let me check. "
        assert [t.name for t in resp.tool_uses()] == ["get_weather"]
        assert resp.usage.output_tokens == 20

    def test_to_message_copies_content(self):
        resp = MessagesResponse(content=[Text("a")])
        msg = resp.to_message()
        assert msg.role is Role.ASSISTANT
        msg.content[0].text = "changed"
        assert resp.content[0].text == "a"


class TestToolChoice:
    def test_none_has_no_parallel_flag(self):
        assert ToolChoice.none().to_dict() == {"type": "none"}

    def test_tool_carries_name(self):
        assert ToolChoice.tool("get_weather").to_dict() == {
            "type": "tool",
            "name": "get_weather",
            "disable_parallel_tool_use": False,
        }

    def test_auto(self):
        choice = ToolChoice("auto", disable_parallel_tool_use=True)
        assert choice.to_dict() == {"type": "auto", "disable_parallel_tool_use": True}


class TestMessagesRequest:
    def test_minimal_payload(self):
        req = MessagesRequest(model="claude-test", messages=[Message.user("hi")])
        assert req.to_payload(stream=True) == {
            "model": "claude-test",
            "messages": [{"role": "user", "content": "hi"}],
            "max_tokens": DEFAULT_MAX_TOKENS,
            "stream": True,
        }

    def test_optionals_rendered(self):
        req = MessagesRequest(
            model="claude-test",
            messages=[Message.user("hi")],
            system=[Text("be brief")],
            tools=[Tool(name="get_weather", description="weather")],
            tool_choice=ToolChoice.any(),
            temperature=0.2,
            top_k=5,
            stop_sequences=["END"],
            metadata={"user_id": "u1"},
            thinking=ExtendedThinking(budget_tokens=2048),
        )
        payload = req.to_payload()
        assert payload["stream"] is False
        assert payload["system"] == [{"type": "text", "text": "be brief"}]
        assert payload["tools"][0]["type"] == "custom"
        assert payload["tools"][0]["description"] == "weather"
        assert payload["tool_choice"]["type"] == "any"
        assert payload["temperature"] == 0.2
        assert payload["top_k"] == 5
        assert "top_p" not in payload
        assert payload["stop_sequences"] == ["END"]
        assert payload["metadata"] == {"user_id": "u1"}
        assert payload["thinking"] == {"type": "enabled", "budget_tokens": 2048}

    def test_request_is_frozen(self):
        req = MessagesRequest(model="m", messages=[])
        with pytest.raises(AttributeError):
            req.model = "other"


class TestModelList:
    def test_from_dict(self):
        models = ModelList.from_dict({
            "data": [{"id": "claude-a", "display_name": "A", "created_at": "2024-10-22"}],
            "has_more": True,
            "first_id": "claude-a",
            "last_id": "claude-a",
        })
        assert models.data[0].id == "claude-a"
        assert models.has_more is True
