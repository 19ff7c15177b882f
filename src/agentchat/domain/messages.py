"""Chat messages and their parts.

A message is an ordered list of typed parts.  The JSON shape uses camelCase
keys (``toolCallId``, ``createdAt``) so persisted messages and the browser
client share one format.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant", "system", "tool"]
MessageStatus = Literal["streaming", "done", "incomplete", "error"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------


class TextPart(_CamelModel):
    type: Literal["text"] = "text"
    text: str = ""


class ReasoningPart(_CamelModel):
    type: Literal["reasoning"] = "reasoning"
    reasoning: str = ""


class ToolInvocationPart(_CamelModel):
    """A tool call and, once resolved, its result.

    ``state`` moves from ``call`` to ``result`` exactly once.
    """

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_call_id: str
    tool_name: str
    state: Literal["call", "result"] = "call"
    args: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    step: int = 0


Part = Annotated[TextPart | ReasoningPart | ToolInvocationPart, Field(discriminator="type")]


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


class Message(_CamelModel):
    id: str
    role: Role
    parts: list[Part] = Field(default_factory=list)
    content: str = Field(default="", description="Plain-text fallback when no parts are sent")
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    status: MessageStatus = "done"
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def text(self) -> str:
        """Concatenated text of all text parts, or ``content`` when there are none."""
        texts = [p.text for p in self.parts if isinstance(p, TextPart)]
        if texts:
            return "".join(texts)
        return self.content

    @property
    def tool_invocations(self) -> list[ToolInvocationPart]:
        return [p for p in self.parts if isinstance(p, ToolInvocationPart)]

    def normalized(self) -> Message:
        """Return a copy whose parts include ``content`` as a text part when parts are empty."""
        if self.parts or not self.content:
            return self
        return self.model_copy(update={"parts": [TextPart(text=self.content)]})


def most_recent_user_message(messages: list[Message]) -> Message | None:
    """Return the last message with role ``user``, if any."""
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None
