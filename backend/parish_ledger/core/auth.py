"""
Authentication module for Parish Ledger.

Login itself happens elsewhere; this service only verifies the bearer JWT it
is handed. The token's ``sub`` is the operator's member id and ``role`` is
their parish role, which together supply ``collected_by`` for recorded
payments and the authorization boundary for dues lookups.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from parish_ledger.core.config import settings


ALGORITHM = "HS256"

# Security scheme
security = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    """The authenticated operator or member."""
    member_id: int
    role: str = "member"

    @property
    def is_staff(self) -> bool:
        return self.role in settings.STAFF_ROLES


class AuthError(HTTPException):
    """Authentication error."""
    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    """Authenticated but not allowed."""
    def __init__(self, detail: str = "Not allowed"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def create_access_token(
    member_id: int,
    role: str = "member",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a member."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(member_id),
        "role": role,
        "exp": now + expires_delta,
        "iat": now,
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        if "expired" in str(e).lower():
            raise AuthError("Token has expired")
        raise AuthError("Invalid token")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """
    Dependency to get the current authenticated user.
    """
    if credentials is None:
        raise AuthError("Authentication required")

    payload = decode_token(credentials.credentials)
    try:
        member_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthError("Invalid token subject")

    return CurrentUser(member_id=member_id, role=payload.get("role") or "member")


async def require_staff(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency for operator-only endpoints (uploads, reconciliation, ledger)."""
    if not user.is_staff:
        raise ForbiddenError("Staff role required")
    return user
