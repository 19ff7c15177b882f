"""Tests for history conversion and the pydantic-ai streaming backend."""

from __future__ import annotations

import pytest
from pydantic_ai.exceptions import UserError
from pydantic_ai.messages import (
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models.function import AgentInfo, DeltaToolCall, FunctionModel
from pydantic_ai.models.test import TestModel as StubModel
from pydantic_ai.tools import ToolDefinition

from agentchat.application.exceptions import ModelUnavailableError, UnknownModelError
from agentchat.config import ModelSpec
from agentchat.domain import messages as chat
from agentchat.infrastructure.model_backend import PydanticAIBackend, to_model_messages
from agentchat.infrastructure.models import ModelHandle, ModelRegistry
from agentchat.streaming.events import FinishStepEvent, TextDeltaEvent, ToolCallEvent
from conftest import make_settings
from fakes import user_message

TEMPERATURE_TOOL = ToolDefinition(
    name="get_temperature",
    description="Get the current temperature for a city.",
    parameters_json_schema={
        "type": "object",
        "properties": {"city": {"type": "string"}},
        "required": ["city"],
    },
)


def _handle(model) -> ModelHandle:
    return ModelHandle(model_id="test", spec=ModelSpec(model="test"), model=model)


async def _collect(backend: PydanticAIBackend, handle: ModelHandle, messages, tools=()):
    return [event async for event in backend.stream(handle, messages, "Be brief.", list(tools))]


class TestToModelMessages:
    def test_system_prompt_and_user_text(self):
        history = to_model_messages([user_message("Hi")], "Be brief.")
        (system,) = history[0].parts
        assert isinstance(system, SystemPromptPart)
        assert system.content == "Be brief."
        (part,) = history[1].parts
        assert isinstance(part, UserPromptPart)
        assert part.content == "Hi"

    def test_image_attachments_become_image_urls(self):
        message = chat.Message(
            id="u1",
            role="user",
            parts=[chat.TextPart(text="What is this?")],
            attachments=[{"url": "https://cdn/cat.png", "contentType": "image/png"}],
        )
        (request,) = to_model_messages([message], None)
        content = request.parts[0].content
        assert content[0] == "What is this?"
        assert content[1].url == "https://cdn/cat.png"

    def test_assistant_steps_become_call_and_return_pairs(self):
        assistant = chat.Message(
            id="a1",
            role="assistant",
            parts=[
                chat.TextPart(text="Checking."),
                chat.ToolInvocationPart(
                    tool_call_id="t1",
                    tool_name="get_temperature",
                    args={"city": "Paris"},
                    state="result",
                    result={"temperature": 30},
                ),
                chat.TextPart(text="It is 30 degrees."),
            ],
        )
        history = to_model_messages([user_message("Weather?"), assistant], None)

        _, response, returns, final = history
        assert isinstance(response, ModelResponse)
        assert isinstance(response.parts[0], TextPart)
        assert isinstance(response.parts[1], ToolCallPart)
        assert isinstance(returns.parts[0], ToolReturnPart)
        assert returns.parts[0].tool_call_id == "t1"
        assert final.parts[0].content == "It is 30 degrees."

    def test_unresolved_calls_are_left_out(self):
        assistant = chat.Message(
            id="a1",
            role="assistant",
            parts=[chat.ToolInvocationPart(tool_call_id="t1", tool_name="calculator", state="call")],
        )
        assert to_model_messages([assistant], None) == []


class TestPydanticAIBackend:
    async def test_streams_text_then_finishes_step(self):
        events = await _collect(
            PydanticAIBackend(), _handle(StubModel(custom_output_text="Hello there")), [user_message("Hi")]
        )
        text = "".join(e.text for e in events if isinstance(e, TextDeltaEvent))
        assert text == "Hello there"
        assert isinstance(events[-1], FinishStepEvent)
        assert events[-1].finish_reason == "stop"

    async def test_tool_calls_are_reported_not_executed(self):
        async def stream_function(messages, info: AgentInfo):
            assert [t.name for t in info.function_tools] == ["get_temperature"]
            yield {0: DeltaToolCall(name="get_temperature", json_args='{"city": "Paris"}', tool_call_id="call-1")}

        events = await _collect(
            PydanticAIBackend(),
            _handle(FunctionModel(stream_function=stream_function)),
            [user_message("Weather in Paris?")],
            [TEMPERATURE_TOOL],
        )

        (call,) = [e for e in events if isinstance(e, ToolCallEvent)]
        assert call.tool_call_id == "call-1"
        assert call.args == {"city": "Paris"}
        assert events[-1].finish_reason == "tool-calls"


class TestModelRegistry:
    def test_resolves_and_caches(self, tmp_path):
        built = []

        def factory(spec):
            built.append(spec.model)
            return StubModel()

        registry = ModelRegistry(make_settings(tmp_path), factory)
        first = registry.resolve(None)
        assert registry.resolve(first.model_id) is first
        assert len(built) == 1

    def test_unknown_model(self, tmp_path):
        registry = ModelRegistry(make_settings(tmp_path), lambda spec: StubModel())
        with pytest.raises(UnknownModelError):
            registry.resolve("no-such-model")

    def test_unconstructible_model(self, tmp_path):
        def factory(spec):
            raise UserError("missing API key")

        registry = ModelRegistry(make_settings(tmp_path), factory)
        with pytest.raises(ModelUnavailableError):
            registry.resolve(None)
