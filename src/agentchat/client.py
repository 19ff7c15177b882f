"""Async Python client for the chat backend.

The client decodes the data stream as bytes arrive and folds it with the
same assemblers the server uses, so a turn yields the final assistant
message plus any artifact documents written during it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import httpx
from loguru import logger

from agentchat.application.artifacts.assembler import ArtifactState, DocumentAssembler
from agentchat.application.background import RetryPolicy
from agentchat.domain.messages import Message
from agentchat.streaming.assembler import MessageAssembler
from agentchat.streaming.codec import decode_stream
from agentchat.streaming.events import DataEvent, StartStepEvent, StreamEvent

T = TypeVar("T")

EventCallback = Callable[[StreamEvent], Any]


class ChatRequestRejected(Exception):
    """The server refused a request before streaming anything."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)


async def _raise_for_rejection(response: httpx.Response) -> None:
    if response.status_code >= 400:
        await response.aread()
        raise ChatRequestRejected(response.status_code, _detail(response))


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ChatResult:
    message: Message
    documents: list[ArtifactState] = field(default_factory=list)
    chat_id: str | None = None
    diagnostics: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return self.message.status


class OptimisticValue(Generic[T]):
    """A locally held value updated before the server confirms it.

    ``update`` applies the new value at once; if the commit fails the
    previous value is restored and the error propagates.
    """

    def __init__(self, value: T) -> None:
        self.value = value
        self.confirmed = value

    async def update(self, value: T, commit: Callable[[T], Awaitable[Any]]) -> T:
        previous = self.value
        self.value = value
        try:
            await commit(value)
        except Exception:
            self.value = previous
            raise
        self.confirmed = value
        return value


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ChatClient:
    """Talks to the chat API over one ``httpx.AsyncClient``.

    Parameters
    ----------
    base_url:
        Server root, e.g. ``http://localhost:8000``.
    token:
        Bearer token; ``login`` sets it too.
    transport:
        Optional httpx transport (``httpx.ASGITransport`` in tests).
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        if token:
            self.set_token(token)
        self.model: OptimisticValue[str | None] = OptimisticValue(None)

    async def __aenter__(self) -> ChatClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    def set_token(self, token: str) -> None:
        self.http.headers["Authorization"] = f"Bearer {token}"

    async def login(self, email: str, name: str = "") -> str:
        response = await self.http.post("/auth/login", json={"email": email, "name": name})
        await _raise_for_rejection(response)
        token = response.json()["token"]
        self.set_token(token)
        return token

    # ------------------------------------------------------------------
    # Chat turns
    # ------------------------------------------------------------------

    async def send(
        self,
        chat_id: str,
        messages: list[Message],
        *,
        model: str | None = None,
        system_prompt: str | None = None,
        tools: list[str] | None = None,
        visibility: str = "private",
        on_event: EventCallback | None = None,
    ) -> ChatResult:
        """Run one turn and return the assembled result.

        Raises:
            ChatRequestRejected: the server answered with an HTTP error.

        A connection lost mid-stream does not raise: the message comes back
        with status ``incomplete`` and whatever parts arrived.
        """
        payload: dict[str, Any] = {
            "chatId": chat_id,
            "messages": [m.model_dump(mode="json", by_alias=True) for m in messages],
            "visibility": visibility,
        }
        selected = model or self.model.value
        if selected:
            payload["model"] = selected
        if system_prompt is not None:
            payload["systemPrompt"] = system_prompt
        if tools is not None:
            payload["tools"] = tools

        assembler = MessageAssembler(message_id="")
        artifacts = DocumentAssembler()
        result_chat_id: str | None = None

        try:
            async with self.http.stream("POST", "/api/chat", json=payload) as response:
                await _raise_for_rejection(response)
                async for event in decode_stream(response.aiter_bytes()):
                    if on_event is not None:
                        on_event(event)
                    if isinstance(event, StartStepEvent) and not assembler.message_id:
                        assembler.message_id = event.message_id
                    if isinstance(event, DataEvent):
                        if event.data_type == "chat-metadata" and isinstance(event.content, dict):
                            result_chat_id = event.content.get("chatId")
                        else:
                            artifacts.apply(event)
                    assembler.apply(event)
        except httpx.TransportError as exc:
            logger.warning("Chat {} stream interrupted: {}", chat_id, exc)
        finally:
            assembler.interrupt()

        return ChatResult(
            message=assembler.snapshot(),
            documents=artifacts.documents,
            chat_id=result_chat_id,
            diagnostics=list(assembler.diagnostics),
        )

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def get_chat(self, chat_id: str) -> dict:
        response = await self.http.get(f"/api/chat/{chat_id}")
        await _raise_for_rejection(response)
        return response.json()

    async def wait_for_title(self, chat_id: str, policy: RetryPolicy = RetryPolicy()) -> str | None:
        """Poll until the chat has a generated title.

        Returns the generated title, or the last title seen (the placeholder,
        or None if the chat never appeared) once the policy gives up.
        """
        title: str | None = None
        for attempt in range(1, policy.max_attempts + 1):
            delay = policy.delay_before(attempt)
            if delay:
                await asyncio.sleep(delay)
            try:
                chat = await self.get_chat(chat_id)
            except ChatRequestRejected as exc:
                if exc.status_code != 404:
                    raise
                continue
            title = chat["title"]
            if chat.get("title_generated"):
                return title
        logger.info("Chat {} has no generated title after {} attempt(s)", chat_id, policy.max_attempts)
        return title

    async def list_chats(self) -> list[dict]:
        response = await self.http.get("/api/chats")
        await _raise_for_rejection(response)
        return response.json()

    async def get_messages(self, chat_id: str) -> list[Message]:
        response = await self.http.get(f"/api/chats/{chat_id}/messages")
        await _raise_for_rejection(response)
        return [Message.model_validate(m) for m in response.json()]

    async def delete_chat(self, chat_id: str) -> None:
        response = await self.http.delete("/api/chat", params={"id": chat_id})
        await _raise_for_rejection(response)

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def list_models(self) -> list[dict]:
        response = await self.http.get("/api/models")
        await _raise_for_rejection(response)
        return response.json()

    async def select_model(self, model_id: str) -> str | None:
        """Select *model_id* locally at once; roll back if the server refuses it."""

        async def commit(value: str | None) -> None:
            response = await self.http.post("/api/preferences/model", json={"model": value})
            await _raise_for_rejection(response)

        return await self.model.update(model_id, commit)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_document_versions(self, document_id: str) -> list[dict]:
        response = await self.http.get("/api/document", params={"id": document_id})
        await _raise_for_rejection(response)
        return response.json()

    async def save_document(
        self, document_id: str, content: str, title: str | None = None, kind: str | None = None
    ) -> dict:
        body = {"content": content, "title": title, "kind": kind}
        response = await self.http.post("/api/document", params={"id": document_id}, json=body)
        await _raise_for_rejection(response)
        return response.json()

    async def diff_document(self, document_id: str, index: int) -> dict:
        response = await self.http.get("/api/document/diff", params={"id": document_id, "index": index})
        await _raise_for_rejection(response)
        return response.json()
