"""Fold a stream of events into one assistant message.

The same assembler runs on the server (to obtain the message it persists)
and in the client (to render the message while it streams).  Protocol
violations never raise: they are dropped and recorded in ``diagnostics``.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, Callable
from typing import Any

from loguru import logger

from agentchat.domain.messages import (
    Message,
    MessageStatus,
    Part,
    ReasoningPart,
    TextPart,
    ToolInvocationPart,
)
from agentchat.streaming.events import (
    DataEvent,
    ErrorEvent,
    FinishEvent,
    FinishStepEvent,
    ReasoningDeltaEvent,
    StartStepEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
    Usage,
)


class MessageAssembler:
    """Build a message incrementally from stream events.

    Text deltas append to the open text part or open a new one; a step
    boundary closes it.  Tool results are matched to their call by
    ``tool_call_id`` anywhere in the message and transition it once.  After
    ``finish`` (or an error) the message is sealed and later events are
    ignored.
    """

    def __init__(self, message_id: str, role: str = "assistant") -> None:
        self.message_id = message_id
        self.role = role
        self.status: MessageStatus = "streaming"
        self.error: str | None = None
        self.finish_reason: str | None = None
        self.usage = Usage()
        self.step = 0
        self.diagnostics: list[str] = []
        self._parts: list[Part] = []
        self._open_text: TextPart | None = None
        self._open_reasoning: ReasoningPart | None = None
        self._tool_parts: dict[str, ToolInvocationPart] = {}
        self._step_usage = Usage()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def parts(self) -> tuple[Part, ...]:
        return tuple(self._parts)

    @property
    def sealed(self) -> bool:
        return self.status != "streaming"

    @property
    def text(self) -> str:
        return "".join(p.text for p in self._parts if isinstance(p, TextPart))

    def snapshot(self) -> Message:
        """Return an independent copy of the message as it stands now."""
        return Message(
            id=self.message_id,
            role=self.role,  # type: ignore[arg-type]
            parts=[p.model_copy(deep=True) for p in self._parts],
            content=self.text,
            status=self.status,
        )

    # ------------------------------------------------------------------
    # Folding
    # ------------------------------------------------------------------

    def apply(self, event: StreamEvent) -> None:
        if isinstance(event, DataEvent):
            # Data payloads belong to artifacts, not to the message body.
            return
        if self.sealed:
            self._diagnose(f"event {event.type!r} after message was sealed")
            return

        match event:
            case TextDeltaEvent(text=text):
                self._open_reasoning = None
                if self._open_text is None:
                    self._open_text = TextPart(text="")
                    self._parts.append(self._open_text)
                self._open_text.text += text
            case ReasoningDeltaEvent(text=text):
                self._open_text = None
                if self._open_reasoning is None:
                    self._open_reasoning = ReasoningPart(reasoning="")
                    self._parts.append(self._open_reasoning)
                self._open_reasoning.reasoning += text
            case ToolCallEvent():
                self._on_tool_call(event)
            case ToolResultEvent():
                self._on_tool_result(event)
            case StartStepEvent():
                self._close_spans()
            case FinishStepEvent(usage=usage):
                self._close_spans()
                self.usage = self.usage + usage
                self.step += 1
            case FinishEvent(finish_reason=reason, usage=usage):
                self._close_spans()
                self.finish_reason = reason
                if usage.total_tokens:
                    self.usage = usage
                self.status = "done"
            case ErrorEvent(message=message):
                self._close_spans()
                self.error = message
                self.status = "error"

    def feed(self, events: list[StreamEvent]) -> None:
        for event in events:
            self.apply(event)

    def interrupt(self) -> None:
        """Mark the message incomplete when the stream stopped before ``finish``."""
        if not self.sealed:
            self._close_spans()
            self.status = "incomplete"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _close_spans(self) -> None:
        self._open_text = None
        self._open_reasoning = None

    def _on_tool_call(self, event: ToolCallEvent) -> None:
        if event.tool_call_id in self._tool_parts:
            self._diagnose(f"duplicate tool call id {event.tool_call_id!r}")
            return
        self._close_spans()
        part = ToolInvocationPart(
            tool_call_id=event.tool_call_id,
            tool_name=event.tool_name,
            args=dict(event.args),
            step=self.step,
        )
        self._tool_parts[event.tool_call_id] = part
        self._parts.append(part)

    def _on_tool_result(self, event: ToolResultEvent) -> None:
        part = self._tool_parts.get(event.tool_call_id)
        if part is None:
            self._diagnose(f"tool result for unknown call id {event.tool_call_id!r}")
            return
        if part.state == "result":
            self._diagnose(f"second result for call id {event.tool_call_id!r}")
            return
        part.state = "result"
        part.result = event.result

    def _diagnose(self, message: str) -> None:
        self.diagnostics.append(message)
        logger.warning("Message {} | {}", self.message_id, message)


async def assemble(
    events: AsyncIterable[StreamEvent],
    assembler: MessageAssembler,
    on_data: Callable[[DataEvent], Any] | None = None,
) -> Message:
    """Drain *events* into *assembler* and return the final message.

    Data events are handed to *on_data*.  If the source ends, or fails,
    before the message is sealed, the message is marked incomplete.
    """
    try:
        async for event in events:
            if isinstance(event, DataEvent) and on_data is not None:
                on_data(event)
            assembler.apply(event)
    finally:
        assembler.interrupt()
    return assembler.snapshot()
