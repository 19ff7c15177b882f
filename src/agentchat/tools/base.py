"""Tool contract shared by every tool the model can call."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from pydantic_ai.tools import ToolDefinition

from agentchat.domain.messages import Message
from agentchat.streaming.writer import DataStreamWriter

if TYPE_CHECKING:
    from agentchat.application.artifacts.documents import DocumentService

ToolHandler = Callable[[Any, "ToolContext"], Any]


@dataclass
class ToolContext:
    """What a running tool may see of the turn that called it."""

    user_id: str
    chat_id: str
    writer: DataStreamWriter = field(default_factory=DataStreamWriter)
    messages: list[Message] = field(default_factory=list)
    documents: DocumentService | None = None


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler
    timeout: float | None = None

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.handler)

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters_json_schema=self.args_model.model_json_schema(),
        )


def tool(name: str, args_model: type[BaseModel], timeout: float | None = None) -> Callable[[ToolHandler], Tool]:
    """Decorator turning ``handler(args, ctx)`` into a ``Tool``.

    The handler's docstring becomes the description the model sees.
    """

    def decorator(handler: ToolHandler) -> Tool:
        description = inspect.cleandoc(handler.__doc__ or "")
        return Tool(name=name, description=description, args_model=args_model, handler=handler, timeout=timeout)

    return decorator
