"""Model catalog: resolve a selectable model id to a pydantic-ai model."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from openai import AsyncAzureOpenAI
from pydantic_ai.exceptions import UserError
from pydantic_ai.models import Model, infer_model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from agentchat.application.exceptions import ModelUnavailableError, UnknownModelError
from agentchat.config import ModelSpec, Settings

AZURE_PREFIX = "azure:"


def build_model(model_name: str, settings: Settings) -> Model:
    """Construct a pydantic-ai model from a ``provider:name`` string.

    ``azure:<deployment>`` uses the Azure OpenAI endpoint from settings;
    every other prefix is handed to pydantic-ai's own inference.
    """
    if model_name.startswith(AZURE_PREFIX):
        client = AsyncAzureOpenAI(
            api_key=settings.azure_openai_api_key,
            azure_endpoint=settings.azure_openai_endpoint,
            api_version=settings.azure_openai_api_version,
        )
        return OpenAIChatModel(
            model_name.removeprefix(AZURE_PREFIX),
            provider=OpenAIProvider(openai_client=client),
        )
    return infer_model(model_name)


@dataclass(frozen=True)
class ModelHandle:
    model_id: str
    spec: ModelSpec
    model: Model


class ModelRegistry:
    """Resolves catalog ids to ready-to-use model handles.

    Models are built on first use and cached, so a missing API key for one
    provider does not stop the others from working.
    """

    def __init__(
        self,
        settings: Settings,
        model_factory: Callable[[ModelSpec], Model] | None = None,
    ) -> None:
        self.settings = settings
        self.catalog = settings.model_catalog
        self._factory = model_factory or (lambda spec: build_model(spec.model, settings))
        self._cache: dict[str, ModelHandle] = {}

    def available(self) -> dict[str, ModelSpec]:
        return dict(self.catalog)

    def resolve(self, model_id: str | None) -> ModelHandle:
        """Return the handle for *model_id* (the default model when None).

        Raises:
            UnknownModelError: the id is not in the catalog.
            ModelUnavailableError: the model could not be constructed.
        """
        model_id = model_id or self.settings.default_chat_model
        if model_id in self._cache:
            return self._cache[model_id]

        spec = self.catalog.get(model_id)
        if spec is None:
            raise UnknownModelError(f"Unknown model: {model_id}")

        try:
            model = self._factory(spec)
        except UserError as exc:
            logger.error("Model {} ({}) is not available: {}", model_id, spec.model, exc)
            raise ModelUnavailableError(f"Model {model_id} is not available") from exc

        handle = ModelHandle(model_id=model_id, spec=spec, model=model)
        self._cache[model_id] = handle
        return handle
