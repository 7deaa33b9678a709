"""Tests for the message accumulator state machine."""

import pytest

from async_anthropic.errors import (
    ApiError,
    Cancelled,
    DecodeError,
    ProtocolError,
    UnexpectedEndOfStream,
)
from async_anthropic.streaming.accumulator import (
    AccumulatorState,
    BlockFinished,
    MessageAccumulator,
    MessageFinished,
    MessageStarted,
    MessageUpdated,
    TextUpdate,
    ThinkingUpdate,
    ToolInputUpdate,
)
from async_anthropic.streaming.events import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    ErrorEvent,
    InputJsonDelta,
    MessageStop,
    Ping,
    SignatureDelta,
    TextDelta,
    ThinkingDelta,
)
from async_anthropic.types import Text, Thinking, ToolUse

from conftest import decode_all, hello_events, message_end, message_start, text_block, tool_block


def apply_all(acc: MessageAccumulator, events) -> list:
    return [acc.apply(e) for e in decode_all(events)]


def started() -> MessageAccumulator:
    acc = MessageAccumulator()
    apply_all(acc, [message_start()])
    return acc


class TestWellFormed:
    def test_hello(self):
        acc = MessageAccumulator()
        updates = apply_all(acc, hello_events())
        assert acc.state is AccumulatorState.COMPLETED
        message = acc.result()
        assert message.id == "m1"
        assert message.content == [Text("Hello")]
        assert isinstance(updates[0], MessageStarted)
        assert [u.text for u in updates if isinstance(u, TextUpdate)] == ["Hel", "lo"]
        assert isinstance(updates[-1], MessageFinished)
        assert updates[-1].message == message

    def test_text_update_snapshot_grows(self):
        acc = MessageAccumulator()
        updates = apply_all(acc, hello_events(parts=("a", "b", "c")))
        snapshots = [u.snapshot for u in updates if isinstance(u, TextUpdate)]
        assert snapshots == ["a", "ab", "abc"]

    def test_blocks_in_index_order(self):
        acc = MessageAccumulator()
        apply_all(acc, [
            message_start(),
            *text_block(0, ["Checking ", "weather."]),
            *tool_block(1, "tu_1", "get_weather", ['{"loca', 'tion": "SF"}']),
            *message_end("tool_use", output_tokens=42),
        ])
        message = acc.result()
        assert message.text() == "Checking weather."
        tool = message.tool_uses()[0]
        assert tool.input == {"location": "SF"}
        assert tool.partial_json == '{"location": "SF"}'
        assert message.stop_reason == "tool_use"
        assert message.usage.input_tokens == 12
        assert message.usage.output_tokens == 42

    def test_tool_input_updates(self):
        acc = started()
        updates = apply_all(acc, tool_block(0, "tu_1", "lookup", ['{"q":', ' 1}']))
        json_updates = [u for u in updates if isinstance(u, ToolInputUpdate)]
        assert [u.partial_json for u in json_updates] == ['{"q":', ' 1}']
        assert json_updates[-1].snapshot == '{"q": 1}'
        assert json_updates[0].tool_use_id == "tu_1"
        assert isinstance(updates[-1], BlockFinished)
        assert updates[-1].block.input == {"q": 1}

    def test_empty_tool_input_is_empty_object(self):
        acc = started()
        apply_all(acc, [*tool_block(0, "tu_1", "now", []), ("message_stop", {})])
        assert acc.result().tool_uses()[0].input == {}

    def test_thinking_block(self):
        acc = started()
        updates = [
            acc.apply(ContentBlockStart(0, Thinking())),
            acc.apply(ContentBlockDelta(0, ThinkingDelta("Let me "))),
            acc.apply(ContentBlockDelta(0, ThinkingDelta("think."))),
            acc.apply(ContentBlockDelta(0, SignatureDelta("sig=="))),
            acc.apply(ContentBlockStop(0)),
            acc.apply(MessageStop()),
        ]
        assert updates[1] == ThinkingUpdate(index=0, thinking="Let me ")
        assert updates[3] == ThinkingUpdate(index=0, signature="sig==")
        assert acc.result().content == [Thinking("Let me think.", "sig==")]

    def test_ping_is_noop(self):
        acc = started()
        assert acc.apply(Ping()) is None
        assert acc.state is AccumulatorState.STARTED

    def test_message_delta_update(self):
        acc = started()
        update = apply_all(acc, message_end()[:1])[0]
        assert isinstance(update, MessageUpdated)
        assert update.stop_reason == "end_turn"
        assert update.usage.output_tokens == 5

    def test_usage_finalized(self):
        acc = MessageAccumulator()
        apply_all(acc, [
            ("message_start", {"type": "message_start", "message": {"id": "m", "content": []}}),
            ("message_stop", {}),
        ])
        usage = acc.result().usage
        assert usage.input_tokens == 0
        assert usage.output_tokens == 0


class TestProtocolViolations:
    def test_delta_to_unstarted_index(self):
        acc = started()
        apply_all(acc, text_block(0, ["ok"]))
        before = acc.snapshot()
        with pytest.raises(ProtocolError, match="never started"):
            acc.apply(ContentBlockDelta(3, TextDelta("x")))
        assert acc.state is AccumulatorState.ERRORED
        assert acc.snapshot() == before

    def test_delta_after_stop(self):
        acc = started()
        apply_all(acc, text_block(0, ["ok"]))
        with pytest.raises(ProtocolError, match="already stopped"):
            acc.apply(ContentBlockDelta(0, TextDelta("late")))

    def test_duplicate_block_start(self):
        acc = started()
        acc.apply(ContentBlockStart(0, Text()))
        with pytest.raises(ProtocolError, match="started twice"):
            acc.apply(ContentBlockStart(0, Text()))

    def test_block_index_gap(self):
        acc = started()
        with pytest.raises(ProtocolError, match="next index is 0"):
            acc.apply(ContentBlockStart(1, Text()))

    def test_delta_kind_mismatch(self):
        acc = started()
        acc.apply(ContentBlockStart(0, ToolUse(id="t", name="n")))
        with pytest.raises(ProtocolError, match="does not apply"):
            acc.apply(ContentBlockDelta(0, TextDelta("x")))

    def test_event_before_message_start(self):
        acc = MessageAccumulator()
        with pytest.raises(ProtocolError, match="before message_start"):
            acc.apply(ContentBlockStart(0, Text()))

    def test_duplicate_message_start(self):
        acc = started()
        with pytest.raises(ProtocolError, match="duplicate"):
            apply_all(acc, [message_start()])

    def test_message_start_with_content(self):
        acc = MessageAccumulator()
        label, data = message_start()
        data["message"]["content"] = [{"type": "text", "text": "early"}]
        with pytest.raises(ProtocolError):
            apply_all(acc, [(label, data)])

    def test_stop_with_open_block(self):
        acc = started()
        acc.apply(ContentBlockStart(0, Text()))
        with pytest.raises(ProtocolError, match="still open"):
            acc.apply(MessageStop())

    def test_event_after_completion(self):
        acc = MessageAccumulator()
        apply_all(acc, hello_events())
        with pytest.raises(ProtocolError):
            acc.apply(Ping())
        assert acc.is_complete

    def test_errored_rejects_everything(self):
        acc = started()
        with pytest.raises(ProtocolError):
            acc.apply(ContentBlockStop(0))
        with pytest.raises(ProtocolError):
            acc.apply(Ping())

    def test_invalid_tool_json(self):
        acc = started()
        acc.apply(ContentBlockStart(0, ToolUse(id="t", name="n")))
        acc.apply(ContentBlockDelta(0, InputJsonDelta('{"a": ')))
        with pytest.raises(DecodeError) as exc_info:
            acc.apply(ContentBlockStop(0))
        assert exc_info.value.raw == '{"a": '
        assert acc.state is AccumulatorState.ERRORED

    def test_tool_json_not_object(self):
        acc = started()
        acc.apply(ContentBlockStart(0, ToolUse(id="t", name="n")))
        acc.apply(ContentBlockDelta(0, InputJsonDelta("[1]")))
        with pytest.raises(DecodeError):
            acc.apply(ContentBlockStop(0))


class TestTerminalStates:
    def test_error_event(self):
        acc = started()
        with pytest.raises(ApiError) as exc_info:
            acc.apply(ErrorEvent("overloaded_error", "Overloaded"))
        assert exc_info.value.error_type == "overloaded_error"
        assert acc.state is AccumulatorState.ERRORED

    def test_result_before_completion(self):
        acc = started()
        with pytest.raises(UnexpectedEndOfStream):
            acc.result()

    def test_cancel(self):
        acc = started()
        acc.apply(ContentBlockStart(0, Text()))
        acc.cancel()
        assert acc.state is AccumulatorState.CANCELLED
        assert acc.snapshot().content == []
        with pytest.raises(Cancelled):
            acc.apply(Ping())

    def test_cancel_after_completion_keeps_result(self):
        acc = MessageAccumulator()
        apply_all(acc, hello_events())
        acc.cancel()
        assert acc.result().text() == "Hello"

    def test_snapshot_is_a_copy(self):
        acc = started()
        acc.apply(ContentBlockStart(0, Text()))
        acc.apply(ContentBlockDelta(0, TextDelta("a")))
        snap = acc.snapshot()
        snap.content[0].text = "mutated"
        acc.apply(ContentBlockDelta(0, TextDelta("b")))
        assert acc.snapshot().content[0].text == "ab"
