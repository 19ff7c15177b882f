"""Chat use case: orchestrates one streamed turn with the language model.

``start_turn`` runs every check that can reject a request (session,
credits, conversation shape, chat ownership, model) before a single byte
is streamed, so callers can still answer with a plain HTTP error.  The
returned ``ChatTurn`` then drives the multi-step generation loop:

    start-step → model deltas / tool calls → tool results → finish-step
    ... repeated while the model keeps calling tools ...
    chat-metadata → finish

This module has **no dependency on FastAPI**; the HTTP layer only encodes
the events ``ChatTurn.events()`` yields.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass

from loguru import logger

from agentchat.application.artifacts.documents import DocumentService
from agentchat.application.background import BackgroundTaskRunner, RetryPolicy
from agentchat.application.billing import INSUFFICIENT_CREDITS_MESSAGE, compute_cost
from agentchat.application.exceptions import (
    AuthenticationRequiredError,
    ChatAccessDeniedError,
    ChatNotFoundError,
    EmptyConversationError,
    InsufficientCreditsError,
)
from agentchat.application.titles import TitleService
from agentchat.domain.messages import Message, most_recent_user_message
from agentchat.domain.models import Chat, ChatSummary, Session
from agentchat.domain.protocols import IChatRepository, ICreditStore, IModelBackend
from agentchat.infrastructure.models import ModelHandle, ModelRegistry
from agentchat.streaming.assembler import MessageAssembler
from agentchat.streaming.events import (
    DataEvent,
    ErrorEvent,
    FinishEvent,
    FinishStepEvent,
    StartStepEvent,
    StreamEvent,
    ToolCallEvent,
    ToolResultEvent,
    Usage,
)
from agentchat.streaming.writer import DataStreamWriter
from agentchat.tools.base import ToolContext
from agentchat.tools.executor import ToolExecutor, ToolInvocation
from agentchat.tools.registry import ToolRegistry

STREAM_ERROR_MESSAGE = "An error occurred while generating the response. Please try again."


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


@dataclass
class ChatTurnRequest:
    """Everything the client sends to start a turn."""

    chat_id: str
    messages: list[Message]
    model_id: str | None = None
    system_prompt: str | None = None
    agent_id: str | None = None
    visibility: str = "private"
    tool_names: list[str] | None = None


# ---------------------------------------------------------------------------
# Turn
# ---------------------------------------------------------------------------


class ChatTurn:
    """One accepted chat turn, ready to stream.

    The turn folds every event it yields into its own ``MessageAssembler``;
    the assembled message is what gets persisted, so the stored assistant
    message matches what the client rendered.
    """

    def __init__(
        self,
        *,
        use_case: ChatUseCase,
        request: ChatTurnRequest,
        session: Session,
        handle: ModelHandle,
        tools: ToolRegistry,
        user_message: Message,
        chat_ready: asyncio.Event,
        is_new_chat: bool,
    ) -> None:
        self._uc = use_case
        self.request = request
        self.session = session
        self.handle = handle
        self.tools = tools
        self.user_message = user_message.normalized()
        self.chat_ready = chat_ready
        self.is_new_chat = is_new_chat
        self.message_id = str(uuid.uuid4())
        self.assembler = MessageAssembler(self.message_id)
        self.history = [m.normalized() for m in request.messages]
        self.system_prompt = request.system_prompt or use_case.default_system_prompt
        self.user_saved: asyncio.Task | None = None

    @property
    def chat_id(self) -> str:
        return self.request.chat_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield the turn's events, then persist the assistant message.

        The user message is saved by a background job started with the turn,
        so it survives a client disconnect. If the consumer stops iterating,
        the usage of the steps that completed is charged and the assistant
        message is dropped; tools already started still run to completion.
        """
        try:
            async with aclosing(self._generate()) as events:
                async for event in events:
                    self.assembler.apply(event)
                    yield event
        except GeneratorExit:
            logger.info("Client left chat {} mid-turn; assistant message not saved", self.chat_id)
            self._charge()
            raise
        except Exception as exc:
            logger.opt(exception=exc).error(
                "Chat turn failed | chat={} model={}", self.chat_id, self.handle.model_id
            )
            error = ErrorEvent(message=STREAM_ERROR_MESSAGE)
            self.assembler.apply(error)
            yield error
            await self._wait_for_user_message()
            self._charge()
            return

        await self._persist_assistant()

    def assistant_message(self) -> Message:
        return self.assembler.snapshot()

    # ------------------------------------------------------------------
    # Generation loop
    # ------------------------------------------------------------------

    def _conversation(self) -> list[Message]:
        if self.assembler.parts:
            return [*self.history, self.assembler.snapshot()]
        return list(self.history)

    async def _generate(self) -> AsyncIterator[StreamEvent]:
        definitions = self.tools.definitions()
        total = Usage()
        finish_reason = "stop"

        for _ in range(self._uc.max_steps):
            yield StartStepEvent(message_id=self.message_id)

            calls: list[ToolCallEvent] = []
            step_usage = Usage()
            stream = self._uc.backend.stream(self.handle, self._conversation(), self.system_prompt, definitions)
            async with aclosing(stream) as step_events:
                async for event in step_events:
                    if isinstance(event, FinishStepEvent):
                        step_usage = step_usage + event.usage
                        continue
                    if isinstance(event, ToolCallEvent):
                        calls.append(event)
                    yield event

            if calls:
                async for event in self._run_tools(calls):
                    yield event

            total = total + step_usage
            finish_reason = "tool-calls" if calls else "stop"
            yield FinishStepEvent(finish_reason=finish_reason, usage=step_usage, is_continued=bool(calls))
            if not calls:
                break
        else:
            logger.warning(
                "Chat {} stopped after {} steps with tools still requested", self.chat_id, self._uc.max_steps
            )

        yield DataEvent(data_type="chat-metadata", content={"chatId": self.chat_id, "messageId": self.message_id})
        yield FinishEvent(finish_reason=finish_reason, usage=total)

    async def _run_tools(self, calls: Sequence[ToolCallEvent]) -> AsyncIterator[StreamEvent]:
        """Run all calls of a step concurrently and yield results as they settle.

        Tools share one queue: data events a tool writes always precede that
        tool's result.
        """
        queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        ctx = ToolContext(
            user_id=self.session.user_id,
            chat_id=self.chat_id,
            writer=DataStreamWriter(queue),
            messages=self._conversation(),
            documents=self._uc.documents,
        )

        def on_settled(invocation: ToolInvocation) -> None:
            queue.put_nowait(ToolResultEvent(tool_call_id=invocation.tool_call_id, result=invocation.outcome()))

        pending: set[str] = set()
        for call in calls:
            if call.tool_call_id in pending:
                continue
            pending.add(call.tool_call_id)
            invocation = ToolInvocation(tool_call_id=call.tool_call_id, tool_name=call.tool_name, args=dict(call.args))
            task = self._uc.executor.spawn(invocation, ctx, on_settled=on_settled, registry=self.tools)
            task.add_done_callback(_report_cancelled(queue, call))

        while pending:
            event = await queue.get()
            if isinstance(event, ToolResultEvent):
                pending.discard(event.tool_call_id)
            yield event

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_user_message(self) -> None:
        """Store the user message once the chat row exists."""
        try:
            await asyncio.wait_for(self.chat_ready.wait(), self._uc.chat_ready_timeout)
        except TimeoutError:
            logger.error(
                "Chat {} was not created within {}s; turn not persisted", self.chat_id, self._uc.chat_ready_timeout
            )
            return
        self._uc.repository.save_messages(self.chat_id, [self.user_message])

    async def _wait_for_user_message(self) -> None:
        if self.user_saved is not None:
            await asyncio.wait([self.user_saved])

    async def _persist_assistant(self) -> None:
        await self._wait_for_user_message()
        if not self.chat_ready.is_set():
            self._charge()
            return

        self._charge()
        message = self.assembler.snapshot()
        try:
            self._uc.repository.save_messages(self.chat_id, [message], model_id=self.handle.model_id)
        except Exception as exc:
            logger.opt(exception=exc).error("Failed to save the assistant message for chat {}", self.chat_id)
            return

        logger.info(
            "Chat turn saved | chat={} message={} tokens={}",
            self.chat_id,
            message.id,
            self.assembler.usage.total_tokens,
        )

    def _charge(self) -> None:
        """Charge the usage reported so far."""
        usage = self.assembler.usage
        if self._uc.credits is None or not usage.total_tokens:
            return
        cost = compute_cost(usage, self.handle.spec)
        try:
            self._uc.credits.charge(
                self.session.user_id,
                cost,
                message_id=self.message_id,
                model_id=self.handle.model_id,
                description=f"Chat {self.chat_id}",
            )
        except Exception as exc:
            logger.opt(exception=exc).error("Failed to charge {} for chat {}", cost, self.chat_id)


def _report_cancelled(queue: asyncio.Queue[StreamEvent], call: ToolCallEvent):
    def callback(task: asyncio.Task) -> None:
        if task.cancelled():
            queue.put_nowait(
                ToolResultEvent(tool_call_id=call.tool_call_id, result={"error": f"Tool {call.tool_name} was cancelled"})
            )

    return callback


# ---------------------------------------------------------------------------
# Use case
# ---------------------------------------------------------------------------


class ChatUseCase:
    """Chat turns plus the chat-level operations around them.

    Parameters
    ----------
    repository:
        Chat and message persistence.
    models:
        Catalog that resolves the requested model id.
    backend:
        Streams one model step at a time; tools run here, not in the backend.
    tools, executor:
        Every available tool, and the executor that runs them.
    background:
        Runner for detached jobs (chat creation and title generation).
    titles:
        Generates the chat title once the chat exists.
    documents:
        Artifact service handed to the document tools, if any.
    credits:
        Credit store; when None, turns are free.
    """

    def __init__(
        self,
        *,
        repository: IChatRepository,
        models: ModelRegistry,
        backend: IModelBackend,
        tools: ToolRegistry,
        executor: ToolExecutor,
        background: BackgroundTaskRunner,
        titles: TitleService,
        documents: DocumentService | None = None,
        credits: ICreditStore | None = None,
        max_steps: int = 20,
        placeholder_title: str = "New Conversation",
        default_system_prompt: str | None = None,
        title_retry: RetryPolicy = RetryPolicy(),
        chat_ready_timeout: float = 10.0,
    ) -> None:
        self.repository = repository
        self.models = models
        self.backend = backend
        self.tools = tools
        self.executor = executor
        self.background = background
        self.titles = titles
        self.documents = documents
        self.credits = credits
        self.max_steps = max_steps
        self.placeholder_title = placeholder_title
        self.default_system_prompt = default_system_prompt
        self.title_retry = title_retry
        self.chat_ready_timeout = chat_ready_timeout

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def start_turn(self, request: ChatTurnRequest, session: Session | None) -> ChatTurn:
        """Validate *request* and return a turn ready to stream.

        Raises:
            AuthenticationRequiredError: no session.
            InsufficientCreditsError: credits are enabled and the balance is used up.
            EmptyConversationError: the messages contain no user message.
            ChatAccessDeniedError: the chat belongs to another user.
            UnknownModelError, ModelUnavailableError: the model cannot be used.
        """
        session = _require_session(session)

        if self.credits is not None and not self.credits.has_credits(session.user_id):
            raise InsufficientCreditsError(INSUFFICIENT_CREDITS_MESSAGE)

        user_message = most_recent_user_message(request.messages)
        if user_message is None:
            raise EmptyConversationError("No user message found")

        chat = self.repository.get_chat(request.chat_id)
        if chat is not None and chat.user_id != session.user_id:
            raise ChatAccessDeniedError(f"Chat {request.chat_id} belongs to another user")

        handle = self.models.resolve(request.model_id)
        tools = self.tools.select(request.tool_names) if handle.spec.supports_tools else ToolRegistry()

        chat_ready = asyncio.Event()
        if chat is None:
            self._bootstrap_chat(request, session, user_message, chat_ready)
        else:
            chat_ready.set()

        logger.info(
            "Chat turn | user={} chat={} model={} tools={} new_chat={}",
            session.user_id,
            request.chat_id,
            handle.model_id,
            len(tools),
            chat is None,
        )
        turn = ChatTurn(
            use_case=self,
            request=request,
            session=session,
            handle=handle,
            tools=tools,
            user_message=user_message,
            chat_ready=chat_ready,
            is_new_chat=chat is None,
        )
        turn.user_saved = self.background.submit(f"save-user-message:{request.chat_id}", turn.save_user_message)
        return turn

    def _bootstrap_chat(
        self,
        request: ChatTurnRequest,
        session: Session,
        user_message: Message,
        ready: asyncio.Event,
    ) -> None:
        """Create the placeholder chat and generate its title in the background."""
        first_message = user_message.text

        async def job() -> None:
            self.repository.create_chat(
                request.chat_id,
                session.user_id,
                self.placeholder_title,
                visibility=request.visibility,
                agent_id=request.agent_id,
            )
            ready.set()
            await self.titles.ensure_title(request.chat_id, first_message)

        self.background.submit(f"chat-bootstrap:{request.chat_id}", job, retry=self.title_retry)

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def get_chat(self, chat_id: str, session: Session | None, *, allow_shared: bool = True) -> Chat:
        """Return a chat the caller may see.

        Public and link-shared chats are readable by anyone signed in;
        *allow_shared* False restricts access to the owner.
        """
        session = _require_session(session)
        chat = self.repository.get_chat(chat_id)
        if chat is None:
            raise ChatNotFoundError(f"Chat {chat_id} not found")
        if chat.user_id == session.user_id:
            return chat
        if allow_shared and chat.visibility != "private":
            return chat
        raise ChatAccessDeniedError(f"Chat {chat_id} belongs to another user")

    def list_chats(self, session: Session | None) -> list[ChatSummary]:
        session = _require_session(session)
        return self.repository.list_user_chats(session.user_id)

    def get_messages(self, chat_id: str, session: Session | None) -> list[Message]:
        self.get_chat(chat_id, session)
        return self.repository.get_messages_by_chat(chat_id)

    def delete_chat(self, chat_id: str, session: Session | None) -> Chat:
        chat = self.get_chat(chat_id, session, allow_shared=False)
        self.repository.delete_chat(chat_id)
        return chat

    async def regenerate_title(self, chat_id: str, session: Session | None) -> str:
        """Generate the chat title now unless it already has one."""
        chat = self.get_chat(chat_id, session, allow_shared=False)
        if chat.title_generated:
            return chat.title
        first = next((m for m in self.repository.get_messages_by_chat(chat_id) if m.role == "user"), None)
        if first is None:
            raise EmptyConversationError(f"Chat {chat_id} has no user message to title")
        return await self.titles.ensure_title(chat_id, first.text)


def _require_session(session: Session | None) -> Session:
    if session is None:
        raise AuthenticationRequiredError("Authentication required")
    return session
