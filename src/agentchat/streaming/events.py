"""Stream events exchanged between the chat server and its clients.

One closed union covers everything a chat turn can emit.  Each event maps to
exactly one line code of the data stream wire format (see ``codec``).
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Usage(_Event):
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TextDeltaEvent(_Event):
    """An increment of assistant text."""

    type: Literal["text-delta"] = "text-delta"
    text: str


class ReasoningDeltaEvent(_Event):
    """An increment of model reasoning text."""

    type: Literal["reasoning"] = "reasoning"
    text: str


class DataEvent(_Event):
    """Open-ended payload keyed by ``data_type`` (artifact deltas, metadata)."""

    type: Literal["data"] = "data"
    data_type: str
    content: Any = None


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    message: str


class ToolCallEvent(_Event):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(_Event):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    result: Any = None


class StartStepEvent(_Event):
    type: Literal["start-step"] = "start-step"
    message_id: str


class FinishStepEvent(_Event):
    type: Literal["finish-step"] = "finish-step"
    finish_reason: str = "stop"
    usage: Usage = Field(default_factory=Usage)
    is_continued: bool = False


class FinishEvent(_Event):
    """Terminal event of a successful turn."""

    type: Literal["finish"] = "finish"
    finish_reason: str = "stop"
    usage: Usage = Field(default_factory=Usage)


StreamEvent = Annotated[
    TextDeltaEvent
    | ReasoningDeltaEvent
    | DataEvent
    | ErrorEvent
    | ToolCallEvent
    | ToolResultEvent
    | StartStepEvent
    | FinishStepEvent
    | FinishEvent,
    Field(discriminator="type"),
]

TERMINAL_EVENTS = (FinishEvent, ErrorEvent)
