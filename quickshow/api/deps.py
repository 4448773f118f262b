from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from quickshow.core.security import decode_token
from quickshow.db.session import SessionLocal
from quickshow.services.notifications import NotificationDispatcher

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity. ``id`` is the identity provider's opaque holder id."""

    id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    claims = decode_token(credentials.credentials) if credentials else None
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated. Please login.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser(id=str(claims["sub"]), role=claims.get("role") or "user")


def get_current_admin_user(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher(SessionLocal)
