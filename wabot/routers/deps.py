"""Request-scoped collaborators shared by the API routers.

Each provider, transport and clock is built per request so tests can swap
them through ``app.dependency_overrides``.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from fastapi import Header, HTTPException, status

from wabot.services.ai_service import AIProviderError, AIResponder, build_ai_responder
from wabot.services.whatsapp_service import MetaTransport, TwilioTransport, build_meta_transport, build_twilio_transport


def get_current_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> UUID:
    """Caller identity, set by the auth gateway in front of the API."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_ai_responder() -> AIResponder:
    return build_ai_responder()


def get_twilio_transport() -> TwilioTransport:
    return build_twilio_transport()


def get_meta_transport() -> MetaTransport:
    return build_meta_transport()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Callable[[], datetime]:
    return _utcnow


def ai_http_error(e: AIProviderError) -> HTTPException:
    if e.is_quota_error:
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="AI provider quota exceeded. Please check your billing.",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
