"""Request dependencies shared by the API routers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from shared.cache import LeaseCache
from shared.config import settings
from shared.event_bus import EventBusManager, event_bus
from shared.exceptions import LeaseError
from services.notification_service.domain.notification_dispatcher import (
    NotificationDispatcher,
    notification_dispatcher,
)

ADMIN_ROLE = "admin"


class UserContext(BaseModel):
    """Identity forwarded by the upstream auth gateway."""

    user_id: str
    email: Optional[str] = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> UserContext:
    """Build the user context from gateway headers; 401 if absent."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user context",
        )
    return UserContext(
        user_id=x_user_id,
        email=x_user_email,
        role=(x_user_role or "user").lower(),
    )


async def require_admin(
    user: UserContext = Depends(get_current_user),
) -> UserContext:
    """Only admins pass."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def get_lease_cache() -> LeaseCache:
    return LeaseCache()


def get_notification_dispatcher() -> NotificationDispatcher:
    return notification_dispatcher


def get_event_bus() -> EventBusManager:
    return event_bus


def get_webhook_secret() -> Optional[str]:
    return settings.stripe_webhook_secret


def http_error(exc: LeaseError) -> HTTPException:
    """Translate a domain error into the HTTP error it maps to."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)
