"""Session cookie handling.

The session is an HS256 JWT stored in a cookie. Issuing it (login pages,
registration) lives elsewhere; this module only creates tokens for a given
user and verifies them on incoming requests.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from jose import JWTError, jwt

from .errors import ForbiddenError, UnauthorizedError
from .models import UserRole

ALGORITHM = "HS256"
SESSION_DURATION = timedelta(days=7)


@dataclass(frozen=True)
class Session:
    user_id: int
    email: str
    name: str
    role: UserRole
    store_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def create_session_token(user, secret: str, store_id: Optional[int] = None, expires_in: timedelta = SESSION_DURATION) -> str:
    to_encode = {
        "sub": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "store_id": store_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def decode_session_token(token: str, secret: str) -> Optional[Session]:
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
        return Session(
            user_id=int(payload["sub"]),
            email=payload["email"],
            name=payload.get("name") or payload["email"],
            role=UserRole(payload["role"]),
            store_id=payload.get("store_id"),
        )
    except (JWTError, KeyError, ValueError):
        return None


def get_current_session(request: Request) -> Session:
    settings = request.app.state.settings
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        raise UnauthorizedError("Authentication required")
    session = decode_session_token(token, settings.jwt_secret)
    if session is None:
        raise UnauthorizedError("Invalid or expired session")
    return session


def require_store_admin(session: Session = Depends(get_current_session)) -> Session:
    """Store admins of a store, or platform admins (who may have no store of their own)."""
    if session.role not in (UserRole.STORE_ADMIN, UserRole.ADMIN):
        raise ForbiddenError()
    if session.store_id is None and not session.is_admin:
        raise ForbiddenError("No store found")
    return session


def require_admin(session: Session = Depends(get_current_session)) -> Session:
    if not session.is_admin:
        raise ForbiddenError("Admin access required")
    return session
