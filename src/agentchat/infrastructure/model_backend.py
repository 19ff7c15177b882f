"""Language-model backend built on pydantic-ai's direct model API.

One call to ``stream`` is one generation step: the model sees the history
and the tool definitions, streams text (and reasoning), and may request
tool calls.  Tools are never executed here; the chat turn runs them and
calls ``stream`` again with the results appended to the history.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

from loguru import logger
from pydantic_ai.direct import model_request_stream
from pydantic_ai.messages import (
    ImageUrl,
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    ModelResponsePart,
    PartDeltaEvent,
    PartStartEvent,
    SystemPromptPart,
    TextPart,
    TextPartDelta,
    ThinkingPart,
    ThinkingPartDelta,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import ModelRequestParameters
from pydantic_ai.tools import ToolDefinition

from agentchat.domain import messages as chat
from agentchat.infrastructure.models import ModelHandle
from agentchat.streaming.events import (
    FinishStepEvent,
    ReasoningDeltaEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallEvent,
    Usage,
)

# ---------------------------------------------------------------------------
# History conversion
# ---------------------------------------------------------------------------


def _user_content(message: chat.Message) -> str | list:
    images = [
        ImageUrl(url=a["url"])
        for a in message.attachments
        if isinstance(a.get("url"), str) and str(a.get("contentType", "")).startswith("image/")
    ]
    if not images:
        return message.text
    return [message.text, *images]


def _assistant_messages(message: chat.Message) -> list[ModelMessage]:
    """Split an assistant message into response/tool-return pairs per step.

    Unresolved tool calls are skipped: providers reject a call without a
    matching return.
    """
    out: list[ModelMessage] = []
    response_parts: list[ModelResponsePart] = []
    returns: list[ModelRequestPart] = []

    def flush() -> None:
        nonlocal response_parts, returns
        if response_parts:
            out.append(ModelResponse(parts=response_parts))
        if returns:
            out.append(ModelRequest(parts=returns))
        response_parts, returns = [], []

    for part in message.parts:
        if isinstance(part, chat.TextPart):
            if returns:
                flush()
            if part.text:
                response_parts.append(TextPart(content=part.text))
        elif isinstance(part, chat.ToolInvocationPart) and part.state == "result":
            response_parts.append(
                ToolCallPart(tool_name=part.tool_name, args=part.args, tool_call_id=part.tool_call_id)
            )
            returns.append(
                ToolReturnPart(tool_name=part.tool_name, content=part.result, tool_call_id=part.tool_call_id)
            )
    if not message.parts and message.content:
        response_parts.append(TextPart(content=message.content))
    flush()
    return out


def to_model_messages(messages: Sequence[chat.Message], system_prompt: str | None) -> list[ModelMessage]:
    """Convert chat messages into pydantic-ai message history."""
    history: list[ModelMessage] = []
    if system_prompt:
        history.append(ModelRequest(parts=[SystemPromptPart(content=system_prompt)]))

    for message in messages:
        if message.role == "user":
            history.append(ModelRequest(parts=[UserPromptPart(content=_user_content(message))]))
        elif message.role == "assistant":
            history.extend(_assistant_messages(message))
        elif message.role == "system" and message.text:
            history.append(ModelRequest(parts=[SystemPromptPart(content=message.text)]))
    return history


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class PydanticAIBackend:
    """Streams one model step as chat stream events."""

    async def stream(
        self,
        handle: ModelHandle,
        messages: Sequence[chat.Message],
        system_prompt: str | None,
        tools: Sequence[ToolDefinition],
    ) -> AsyncIterator[StreamEvent]:
        history = to_model_messages(messages, system_prompt)
        parameters = ModelRequestParameters(function_tools=list(tools))

        async with model_request_stream(
            handle.model, history, model_request_parameters=parameters
        ) as response_stream:
            async for event in response_stream:
                delta = _delta_event(event)
                if delta is not None:
                    yield delta
            response = response_stream.get()

        tool_calls = [p for p in response.parts if isinstance(p, ToolCallPart)]
        for call in tool_calls:
            yield ToolCallEvent(
                tool_call_id=call.tool_call_id,
                tool_name=call.tool_name,
                args=call.args_as_dict(),
            )

        usage = Usage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )
        logger.debug(
            "Model step done | model={} tool_calls={} tokens={}",
            handle.model_id,
            len(tool_calls),
            usage.total_tokens,
        )
        yield FinishStepEvent(
            finish_reason="tool-calls" if tool_calls else "stop",
            usage=usage,
        )


def _delta_event(event: object) -> StreamEvent | None:
    if isinstance(event, PartStartEvent):
        if isinstance(event.part, TextPart) and event.part.content:
            return TextDeltaEvent(text=event.part.content)
        if isinstance(event.part, ThinkingPart) and event.part.content:
            return ReasoningDeltaEvent(text=event.part.content)
    elif isinstance(event, PartDeltaEvent):
        if isinstance(event.delta, TextPartDelta) and event.delta.content_delta:
            return TextDeltaEvent(text=event.delta.content_delta)
        if isinstance(event.delta, ThinkingPartDelta) and event.delta.content_delta:
            return ReasoningDeltaEvent(text=event.delta.content_delta)
    return None
