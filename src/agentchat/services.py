"""Service container built once per application lifetime.

``build_services`` wires every collaborator from settings.  Tests pass
their own backend, generators and model factory to keep the network out.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

import httpx
from loguru import logger
from pydantic_ai.models import Model

from agentchat.application.artifacts import (
    ArtifactGenerator,
    DocumentService,
    PydanticAIArtifactGenerator,
    default_handlers,
)
from agentchat.application.background import BackgroundFailure, BackgroundTaskRunner, RetryPolicy
from agentchat.application.titles import AgentTitleGenerator, TitleGenerator, TitleService
from agentchat.application.use_cases.chat import ChatUseCase
from agentchat.config import ModelSpec, Settings
from agentchat.domain.protocols import IModelBackend
from agentchat.infrastructure.auth import MOCK_SESSION, JWTSessionProvider
from agentchat.infrastructure.chat_repository import ChatRepository
from agentchat.infrastructure.credits import CreditLedger
from agentchat.infrastructure.document_repository import DocumentRepository
from agentchat.infrastructure.model_backend import PydanticAIBackend
from agentchat.infrastructure.models import ModelRegistry, build_model
from agentchat.infrastructure.rate_limit import SlidingWindowRateLimiter
from agentchat.tools import ToolExecutor, build_tool_registry
from agentchat.tools.sandbox import SandboxFactory

SEED_USERS = [
    {"name": "Alice Smith", "email": "alice@example.com"},
    {"name": "Bob Jones", "email": "bob@example.com"},
]


@dataclass
class Services:
    settings: Settings
    chats: ChatRepository
    documents: DocumentRepository
    document_service: DocumentService
    credits: CreditLedger | None
    models: ModelRegistry
    sessions: JWTSessionProvider
    rate_limiter: SlidingWindowRateLimiter | None
    background: BackgroundTaskRunner
    executor: ToolExecutor
    chat: ChatUseCase

    def connect(self) -> None:
        self.chats.connect()
        self.documents.connect()
        if self.credits is not None:
            self.credits.connect()
        self.chats.seed_users(SEED_USERS)
        if self.credits is not None and not self.settings.auth_enabled:
            self.credits.ensure_account(MOCK_SESSION.user_id, signup_grant(self.settings))

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Let detached work finish, then close the stores."""
        await self.background.drain(timeout)
        await self.executor.drain(timeout)
        self.chats.close()
        self.documents.close()
        if self.credits is not None:
            self.credits.close()


def _log_background_failure(failure: BackgroundFailure) -> None:
    logger.error("Background job {} failed permanently after {} attempt(s)", failure.name, failure.attempts)


def build_services(
    settings: Settings,
    *,
    backend: IModelBackend | None = None,
    title_generator: TitleGenerator | None = None,
    artifact_generator: ArtifactGenerator | None = None,
    model_factory: Callable[[ModelSpec], Model] | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    sandbox_factory: SandboxFactory | None = None,
    instrument: bool = False,
) -> Services:
    """Construct every service from *settings* (nothing is connected yet)."""
    chats = ChatRepository(db_path=settings.db_path)
    documents = DocumentRepository(db_path=settings.db_path)
    credits = CreditLedger(db_path=settings.db_path) if settings.credits_enabled else None

    artifact_generator = artifact_generator or PydanticAIArtifactGenerator(
        lambda: build_model(settings.artifact_model, settings), instrument=instrument
    )
    document_service = DocumentService(documents, default_handlers(artifact_generator))

    title_generator = title_generator or AgentTitleGenerator(
        lambda: build_model(settings.title_model, settings), instrument=instrument
    )
    titles = TitleService(chats, title_generator, placeholder=settings.placeholder_title)

    tools = build_tool_registry(settings, transport=http_transport, sandbox_factory=sandbox_factory)
    executor = ToolExecutor(tools, default_timeout=settings.tool_timeout_seconds, timeouts=settings.tool_timeouts)
    background = BackgroundTaskRunner(on_failure=_log_background_failure)
    models = ModelRegistry(settings, model_factory=model_factory)

    chat = ChatUseCase(
        repository=chats,
        models=models,
        backend=backend or PydanticAIBackend(),
        tools=tools,
        executor=executor,
        background=background,
        titles=titles,
        documents=document_service,
        credits=credits,
        max_steps=settings.max_steps,
        placeholder_title=settings.placeholder_title,
        default_system_prompt=settings.default_system_prompt,
        title_retry=RetryPolicy(
            max_attempts=settings.title_retry_attempts,
            backoff=tuple(settings.title_retry_backoff_seconds),
        ),
        chat_ready_timeout=settings.chat_ready_timeout_seconds,
    )

    rate_limiter = (
        SlidingWindowRateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)
        if settings.rate_limit_enabled
        else None
    )

    return Services(
        settings=settings,
        chats=chats,
        documents=documents,
        document_service=document_service,
        credits=credits,
        models=models,
        sessions=JWTSessionProvider(settings),
        rate_limiter=rate_limiter,
        background=background,
        executor=executor,
        chat=chat,
    )


def signup_grant(settings: Settings) -> Decimal:
    return Decimal(str(settings.signup_credits))
