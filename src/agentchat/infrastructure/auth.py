"""JWT authentication helpers.

Provides token creation/verification and a session provider that extracts
the caller from the ``Authorization: Bearer <token>`` header.

When ``AUTH_ENABLED=false`` in settings, every request gets a mock session
so the API can be used without authentication during development.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
from loguru import logger
from starlette.requests import Request

from agentchat.config import Settings
from agentchat.domain.models import Session

ALGORITHM = "HS256"

MOCK_SESSION = Session(user_id="dev-user", name="Dev User", email="dev@example.com")

# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------


def create_token(settings: Settings, user_id: str, name: str, email: str) -> str:
    """Create a signed JWT containing user claims."""
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "name": name,
        "email": email,
        "exp": now + timedelta(hours=settings.jwt_expiry_hours),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(settings: Settings, token: str) -> dict:
    """Decode and verify a JWT. Raises on invalid/expired tokens."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])


# ---------------------------------------------------------------------------
# Session provider
# ---------------------------------------------------------------------------


class JWTSessionProvider:
    """Resolve a request's session from its bearer token."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get_session(self, request: Request) -> Session | None:
        """Return the caller's session, or None for anonymous/invalid tokens."""
        if not self.settings.auth_enabled:
            return MOCK_SESSION

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None

        try:
            claims = decode_token(self.settings, auth_header[7:])
        except jwt.ExpiredSignatureError:
            logger.info("Expired JWT presented")
            return None
        except jwt.InvalidTokenError:
            logger.warning("Invalid JWT presented")
            return None

        return Session(
            user_id=claims["sub"],
            name=claims.get("name", ""),
            email=claims.get("email", ""),
        )
