"""Chat title generation.

A new chat starts with a placeholder title; a background job replaces it
with a short model-generated one.  Generation is idempotent per chat, so
retries and the manual title endpoint never overwrite a generated title.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from loguru import logger
from pydantic_ai import Agent
from pydantic_ai.models import Model

from agentchat.application.exceptions import ChatNotFoundError
from agentchat.domain.protocols import IChatRepository

TitleGenerator = Callable[[str], Awaitable[str]]

TITLE_PROMPT = """\
Generate a short title based on the first message a user begins a conversation with.
- The title must be at most 80 characters long
- The title summarizes the user's message
- Do not use quotes or colons
- Reply with the title only
"""

MAX_TITLE_LENGTH = 80


def create_title_agent(model: Model, instrument: bool = False) -> Agent[None, str]:
    """Create a lightweight agent that only produces chat titles."""
    return Agent(model, instructions=TITLE_PROMPT, output_type=str, instrument=instrument)


def clean_title(raw: str) -> str:
    title = raw.strip().strip("\"'").replace("\n", " ").replace(":", "").strip()
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3].rstrip() + "..."
    return title


class AgentTitleGenerator:
    """Title generator on a pydantic-ai agent, built on first use."""

    def __init__(self, model_factory: Callable[[], Model], instrument: bool = False) -> None:
        self._model_factory = model_factory
        self._agent: Agent[None, str] | None = None
        self.instrument = instrument

    async def __call__(self, first_message: str) -> str:
        if self._agent is None:
            self._agent = create_title_agent(self._model_factory(), self.instrument)
        result = await self._agent.run(first_message)
        return result.output


class TitleService:
    def __init__(
        self,
        repository: IChatRepository,
        generate: TitleGenerator,
        placeholder: str = "New Conversation",
    ) -> None:
        self.repository = repository
        self.generate = generate
        self.placeholder = placeholder

    async def ensure_title(self, chat_id: str, first_message: str) -> str:
        """Generate and store a title unless the chat already has one.

        Raises:
            ChatNotFoundError: the chat does not exist (yet), so a retry may succeed.
        """
        chat = self.repository.get_chat(chat_id)
        if chat is None:
            raise ChatNotFoundError(f"Chat {chat_id} not found")
        if chat.title_generated:
            return chat.title

        title = clean_title(await self.generate(first_message))
        if not title:
            logger.warning("Title model returned nothing for chat {}; keeping placeholder", chat_id)
            return chat.title

        # Re-read: a concurrent job may have finished first.
        chat = self.repository.get_chat(chat_id)
        if chat is not None and chat.title_generated:
            return chat.title

        self.repository.update_chat_title(chat_id, title, generated=True)
        logger.info("Generated title for chat {} | title={}", chat_id, title)
        return title
