"""Streaming content generation for artifact documents."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.models import Model


@runtime_checkable
class ArtifactGenerator(Protocol):
    """Produces document content as it is generated.

    ``stream_text`` yields increments.  ``stream_object`` yields successive
    partial snapshots of a *schema* instance as dicts, each one cumulative.
    """

    def stream_text(self, system: str, prompt: str) -> AsyncIterator[str]: ...

    def stream_object(
        self, system: str, prompt: str, schema: type[BaseModel]
    ) -> AsyncIterator[dict[str, Any]]: ...


class PydanticAIArtifactGenerator:
    """``ArtifactGenerator`` backed by pydantic-ai agents on one model."""

    def __init__(self, model_factory: Callable[[], Model], instrument: bool = False) -> None:
        self._model_factory = model_factory
        self._model: Model | None = None
        self.instrument = instrument

    @property
    def model(self) -> Model:
        if self._model is None:
            self._model = self._model_factory()
        return self._model

    async def stream_text(self, system: str, prompt: str) -> AsyncIterator[str]:
        agent = Agent(self.model, instructions=system, output_type=str, instrument=self.instrument)
        async with agent.run_stream(prompt) as result:
            async for delta in result.stream_text(delta=True):
                yield delta

    async def stream_object(
        self, system: str, prompt: str, schema: type[BaseModel]
    ) -> AsyncIterator[dict[str, Any]]:
        agent = Agent(self.model, instructions=system, output_type=schema, instrument=self.instrument)
        async with agent.run_stream(prompt) as result:
            async for partial in result.stream_output():
                yield partial.model_dump()
