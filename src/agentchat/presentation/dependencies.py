"""FastAPI dependencies and the mapping from application errors to HTTP."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from loguru import logger

from agentchat.application.exceptions import (
    AuthenticationRequiredError,
    ChatAccessDeniedError,
    ChatNotFoundError,
    DocumentNotFoundError,
    EmptyConversationError,
    InsufficientCreditsError,
    ModelUnavailableError,
    UnknownModelError,
    UnsupportedDocumentKindError,
    VersionNotFoundError,
)
from agentchat.domain.models import Session
from agentchat.services import Services

MODEL_COOKIE = "chat-model"

_STATUS_BY_ERROR: dict[type[Exception], int] = {
    AuthenticationRequiredError: 401,
    InsufficientCreditsError: 402,
    ChatAccessDeniedError: 403,
    ChatNotFoundError: 404,
    DocumentNotFoundError: 404,
    VersionNotFoundError: 404,
    EmptyConversationError: 400,
    UnknownModelError: 400,
    UnsupportedDocumentKindError: 400,
    ModelUnavailableError: 503,
}

APPLICATION_ERRORS = tuple(_STATUS_BY_ERROR)


def to_http_error(exc: Exception) -> HTTPException:
    """Translate an application exception into the matching HTTP error."""
    for error_type, status in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal server error")


# ---------------------------------------------------------------------------
# Services and sessions
# ---------------------------------------------------------------------------


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_session(request: Request, services: Services = Depends(get_services)) -> Session | None:
    """The caller's session, or None; use cases decide whether one is required."""
    return services.sessions.get_session(request)


def require_session(session: Session | None = Depends(get_session)) -> Session:
    if session is None:
        raise HTTPException(status_code=401, detail="Missing, invalid or expired token")
    return session


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def client_ip(request: Request) -> str:
    """First hop of ``X-Forwarded-For``, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def enforce_rate_limit(request: Request, services: Services = Depends(get_services)) -> None:
    if services.rate_limiter is None:
        return
    ip = client_ip(request)
    decision = services.rate_limiter.check(ip)
    if not decision.allowed:
        logger.warning("Rate limit exceeded | ip={} path={}", ip, request.url.path)
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
            headers=decision.headers(),
        )
