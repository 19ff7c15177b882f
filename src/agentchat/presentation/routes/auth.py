"""Auth routes: login endpoint."""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from agentchat.infrastructure.auth import create_token
from agentchat.presentation.dependencies import get_services
from agentchat.presentation.schemas import LoginRequest, LoginResponse
from agentchat.services import Services, signup_grant

router = APIRouter(tags=["auth"])


@router.post("/auth/login", response_model=LoginResponse)
async def login(request: LoginRequest, services: Services = Depends(get_services)):
    """Authenticate a user and return a JWT.

    When ``open_registration`` is disabled (default), only pre-registered
    users can log in.  When enabled, unknown emails are auto-registered.
    New accounts receive the sign-up credit grant when credits are enabled.
    """
    settings = services.settings

    if settings.open_registration:
        user = services.chats.ensure_user_by_email(request.name or request.email, request.email)
    else:
        user = services.chats.get_user_by_email(request.email)
        if not user:
            raise HTTPException(
                status_code=401,
                detail="No account found for this email. Contact an administrator.",
            )

    if services.credits is not None:
        services.credits.ensure_account(user.id, signup_grant(settings))

    token = create_token(settings, user_id=user.id, name=user.name, email=user.email or "")
    logger.info("POST /auth/login | user={} name={}", user.id, user.name)
    return LoginResponse(token=token, user_id=user.id, name=user.name)
