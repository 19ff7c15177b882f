"""Chat routes: streaming turns, history, titles and model selection."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import StreamingResponse
from loguru import logger

from agentchat.application.use_cases.chat import ChatTurnRequest
from agentchat.domain.models import Session
from agentchat.presentation.dependencies import (
    APPLICATION_ERRORS,
    MODEL_COOKIE,
    enforce_rate_limit,
    get_services,
    get_session,
    require_session,
    to_http_error,
)
from agentchat.presentation.schemas import (
    ChatRequest,
    ChatSummaryResponse,
    ChatTitleResponse,
    DeleteChatResponse,
    MessageResponse,
    ModelInfo,
    ModelPreferenceRequest,
    ModelPreferenceResponse,
)
from agentchat.services import Services
from agentchat.streaming.codec import DATA_STREAM_HEADERS, MEDIA_TYPE, encode_stream

router = APIRouter(tags=["chat"])


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health")
async def health():
    """Simple liveness / readiness check."""
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Chat (streaming, Vercel AI Data Stream Protocol)
# ---------------------------------------------------------------------------


@router.post("/api/chat", dependencies=[Depends(enforce_rate_limit)])
async def chat(
    request: ChatRequest,
    raw_request: Request,
    session: Session | None = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Run one chat turn and stream it as data stream lines.

    Every rejection (auth, credits, ownership, model) happens before the
    response starts, so it arrives as a normal HTTP error.
    """
    turn_request = ChatTurnRequest(
        chat_id=request.chat_id,
        messages=request.messages,
        model_id=request.model or raw_request.cookies.get(MODEL_COOKIE),
        system_prompt=request.system_prompt,
        agent_id=request.agent_id,
        visibility=request.visibility,
        tool_names=request.tools,
    )
    try:
        turn = services.chat.start_turn(turn_request, session)
    except APPLICATION_ERRORS as exc:
        logger.info("POST /api/chat rejected | chat={} reason={}", request.chat_id, exc)
        raise to_http_error(exc) from exc

    logger.info(
        "POST /api/chat | user={} chat={} model={} messages={}",
        turn.session.user_id,
        turn.chat_id,
        turn.handle.model_id,
        len(request.messages),
    )
    return StreamingResponse(
        encode_stream(turn.events()),
        media_type=MEDIA_TYPE,
        headers=DATA_STREAM_HEADERS,
    )


@router.delete("/api/chat", response_model=DeleteChatResponse)
async def delete_chat(
    chat_id: str = Query(alias="id"),
    session: Session | None = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Delete one of the caller's chats with all its messages."""
    try:
        services.chat.delete_chat(chat_id, session)
    except APPLICATION_ERRORS as exc:
        raise to_http_error(exc) from exc
    return DeleteChatResponse(chat_id=chat_id)


@router.get("/api/chat/{chat_id}", response_model=ChatTitleResponse)
async def get_chat_title(
    chat_id: str,
    session: Session | None = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Current title of a chat; the placeholder until generation finishes."""
    try:
        chat = services.chat.get_chat(chat_id, session)
    except APPLICATION_ERRORS as exc:
        raise to_http_error(exc) from exc
    return ChatTitleResponse(chat_id=chat.id, title=chat.title, title_generated=chat.title_generated)


# ---------------------------------------------------------------------------
# Chat history
# ---------------------------------------------------------------------------


@router.get("/api/chats", response_model=list[ChatSummaryResponse])
async def list_chats(
    session: Session | None = Depends(get_session),
    services: Services = Depends(get_services),
):
    """List all chats for the authenticated user, newest first."""
    try:
        summaries = services.chat.list_chats(session)
    except APPLICATION_ERRORS as exc:
        raise to_http_error(exc) from exc
    return [
        ChatSummaryResponse(
            id=s.id,
            title=s.title,
            visibility=s.visibility,
            created_at=s.created_at,
            updated_at=s.updated_at,
            message_count=s.message_count,
        )
        for s in summaries
    ]


@router.get("/api/chats/{chat_id}/messages", response_model=list[MessageResponse])
async def get_chat_messages(
    chat_id: str,
    session: Session | None = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Get all messages in a chat, ordered chronologically."""
    try:
        return services.chat.get_messages(chat_id, session)
    except APPLICATION_ERRORS as exc:
        raise to_http_error(exc) from exc


@router.post("/api/chats/{chat_id}/title", response_model=ChatTitleResponse)
async def generate_title(
    chat_id: str,
    session: Session | None = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Generate (or fetch existing) LLM-based title for a chat.

    Idempotent: a title that was already generated is returned without
    another model call.
    """
    try:
        title = await services.chat.regenerate_title(chat_id, session)
    except APPLICATION_ERRORS as exc:
        raise to_http_error(exc) from exc
    logger.info("POST /api/chats/{}/title | title={}", chat_id, title)
    chat = services.chats.get_chat(chat_id)
    return ChatTitleResponse(chat_id=chat_id, title=title, title_generated=bool(chat and chat.title_generated))


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


@router.get("/api/models", response_model=list[ModelInfo])
async def list_models(services: Services = Depends(get_services)):
    """The selectable model catalog."""
    default = services.settings.default_chat_model
    return [
        ModelInfo(
            id=model_id,
            name=spec.display_name or model_id,
            description=spec.description,
            supports_tools=spec.supports_tools,
            is_default=model_id == default,
        )
        for model_id, spec in services.models.available().items()
    ]


@router.post("/api/preferences/model", response_model=ModelPreferenceResponse)
async def save_model_preference(
    body: ModelPreferenceRequest,
    response: Response,
    _session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    """Remember the selected model in a cookie for later turns."""
    if body.model not in services.models.available():
        raise HTTPException(status_code=400, detail=f"Unknown model: {body.model}")
    response.set_cookie(MODEL_COOKIE, body.model, max_age=60 * 60 * 24 * 365, httponly=True, samesite="lax")
    return ModelPreferenceResponse(model=body.model)
