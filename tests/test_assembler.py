"""Tests for MessageAssembler folding stream events into a message."""

from __future__ import annotations

import pytest

from agentchat.domain.messages import ReasoningPart, TextPart, ToolInvocationPart
from agentchat.streaming.assembler import MessageAssembler, assemble
from agentchat.streaming.events import (
    DataEvent,
    ErrorEvent,
    FinishEvent,
    FinishStepEvent,
    ReasoningDeltaEvent,
    StartStepEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
    Usage,
)


@pytest.fixture()
def assembler() -> MessageAssembler:
    return MessageAssembler("m1")


class TestTextAndReasoning:
    def test_consecutive_deltas_extend_one_part(self, assembler: MessageAssembler):
        assembler.feed([TextDeltaEvent(text="Hel"), TextDeltaEvent(text="lo")])
        assert assembler.parts == (TextPart(text="Hello"),)
        assert assembler.text == "Hello"

    def test_step_boundary_opens_a_new_text_part(self, assembler: MessageAssembler):
        assembler.feed(
            [
                TextDeltaEvent(text="one"),
                FinishStepEvent(),
                StartStepEvent(message_id="m1"),
                TextDeltaEvent(text="two"),
            ]
        )
        assert [p.text for p in assembler.parts] == ["one", "two"]

    def test_reasoning_and_text_alternate(self, assembler: MessageAssembler):
        assembler.feed(
            [
                ReasoningDeltaEvent(text="think"),
                ReasoningDeltaEvent(text="ing"),
                TextDeltaEvent(text="answer"),
            ]
        )
        assert assembler.parts == (ReasoningPart(reasoning="thinking"), TextPart(text="answer"))

    def test_data_events_do_not_touch_the_body(self, assembler: MessageAssembler):
        assembler.apply(DataEvent(data_type="text-delta", content="artifact text"))
        assert assembler.parts == ()


class TestToolInvocations:
    def test_call_then_result(self, assembler: MessageAssembler):
        assembler.feed(
            [
                TextDeltaEvent(text="Let me check."),
                ToolCallEvent(tool_call_id="c1", tool_name="get_temperature", args={"city": "Paris"}),
                ToolResultEvent(tool_call_id="c1", result={"temperature": 30}),
            ]
        )
        text, invocation = assembler.parts
        assert text == TextPart(text="Let me check.")
        assert isinstance(invocation, ToolInvocationPart)
        assert invocation.state == "result"
        assert invocation.result == {"temperature": 30}

    def test_text_after_a_tool_call_starts_a_new_part(self, assembler: MessageAssembler):
        assembler.feed(
            [
                TextDeltaEvent(text="a"),
                ToolCallEvent(tool_call_id="c1", tool_name="calculator"),
                TextDeltaEvent(text="b"),
            ]
        )
        assert [p.type for p in assembler.parts] == ["text", "tool-invocation", "text"]

    def test_results_may_arrive_out_of_order(self, assembler: MessageAssembler):
        assembler.feed(
            [
                ToolCallEvent(tool_call_id="c1", tool_name="a"),
                ToolCallEvent(tool_call_id="c2", tool_name="b"),
                ToolResultEvent(tool_call_id="c2", result=2),
                ToolResultEvent(tool_call_id="c1", result=1),
            ]
        )
        assert [p.result for p in assembler.parts] == [1, 2]

    def test_call_records_its_step(self, assembler: MessageAssembler):
        assembler.feed(
            [
                ToolCallEvent(tool_call_id="c1", tool_name="a"),
                ToolResultEvent(tool_call_id="c1", result=1),
                FinishStepEvent(),
                ToolCallEvent(tool_call_id="c2", tool_name="a"),
            ]
        )
        assert [p.step for p in assembler.parts] == [0, 1]

    def test_unknown_result_is_dropped_with_diagnostic(self, assembler: MessageAssembler):
        assembler.apply(ToolResultEvent(tool_call_id="ghost", result=1))
        assert assembler.parts == ()
        assert "unknown call id" in assembler.diagnostics[0]

    def test_second_result_is_ignored(self, assembler: MessageAssembler):
        assembler.feed(
            [
                ToolCallEvent(tool_call_id="c1", tool_name="a"),
                ToolResultEvent(tool_call_id="c1", result="first"),
                ToolResultEvent(tool_call_id="c1", result="second"),
            ]
        )
        assert assembler.parts[0].result == "first"
        assert len(assembler.diagnostics) == 1

    def test_duplicate_call_id_is_dropped(self, assembler: MessageAssembler):
        assembler.feed(
            [
                ToolCallEvent(tool_call_id="c1", tool_name="a"),
                ToolCallEvent(tool_call_id="c1", tool_name="b"),
            ]
        )
        assert len(assembler.parts) == 1
        assert assembler.parts[0].tool_name == "a"


class TestSealing:
    def test_finish_seals_the_message(self, assembler: MessageAssembler):
        assembler.feed([TextDeltaEvent(text="done"), FinishEvent(finish_reason="stop")])
        assert assembler.status == "done"
        assembler.apply(TextDeltaEvent(text=" more"))
        assert assembler.text == "done"
        assert assembler.diagnostics

    def test_error_seals_with_status_error(self, assembler: MessageAssembler):
        assembler.feed([TextDeltaEvent(text="partial"), ErrorEvent(message="boom")])
        assert assembler.status == "error"
        assert assembler.error == "boom"
        assert assembler.text == "partial"

    def test_usage_sums_steps_and_finish_overrides(self, assembler: MessageAssembler):
        assembler.feed(
            [
                FinishStepEvent(usage=Usage(prompt_tokens=1, completion_tokens=2)),
                FinishStepEvent(usage=Usage(prompt_tokens=3, completion_tokens=4)),
            ]
        )
        assert assembler.usage == Usage(prompt_tokens=4, completion_tokens=6)
        assert assembler.step == 2
        assembler.apply(FinishEvent(usage=Usage(prompt_tokens=10, completion_tokens=10)))
        assert assembler.usage.total_tokens == 20

    def test_interrupt_marks_incomplete_and_keeps_parts(self, assembler: MessageAssembler):
        assembler.apply(TextDeltaEvent(text="half"))
        assembler.interrupt()
        assert assembler.status == "incomplete"
        assert assembler.text == "half"

    def test_interrupt_after_finish_is_a_no_op(self, assembler: MessageAssembler):
        assembler.apply(FinishEvent())
        assembler.interrupt()
        assert assembler.status == "done"

    def test_snapshot_is_independent(self, assembler: MessageAssembler):
        assembler.apply(TextDeltaEvent(text="a"))
        snapshot = assembler.snapshot()
        assembler.apply(TextDeltaEvent(text="b"))
        assert snapshot.text == "a"
        assert snapshot.id == "m1"
        assert snapshot.status == "streaming"


class TestAssembleHelper:
    async def test_routes_data_and_finishes(self):
        seen = []

        async def events():
            yield TextDeltaEvent(text="hi")
            yield DataEvent(data_type="kind", content="text")
            yield FinishEvent()

        message = await assemble(events(), MessageAssembler("m2"), on_data=seen.append)
        assert message.text == "hi"
        assert message.status == "done"
        assert [e.data_type for e in seen] == ["kind"]

    async def test_source_failure_leaves_message_incomplete(self):
        assembler = MessageAssembler("m3")

        async def events():
            yield TextDeltaEvent(text="partial")
            raise ConnectionError("dropped")

        with pytest.raises(ConnectionError):
            await assemble(events(), assembler)
        assert assembler.status == "incomplete"
        assert assembler.text == "partial"
