"""
Identity provider adapter.

Authentication happens upstream. Requests arrive with an HS256 bearer token
whose `sub` is the user id and whose `role` is user, vendor or admin; this
module only verifies the signature and hands the principal to the routes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from eventrental.core.config import get_settings

settings = get_settings()

ROLES = ("user", "vendor", "admin")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(user_id: int, role: str = "user", expires_delta: Optional[timedelta] = None) -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role {role!r}")
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(user_id), "role": role, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise _unauthorized("Invalid or expired token")

    subject = payload.get("sub")
    role = payload.get("role", "user")
    if subject is None or role not in ROLES:
        raise _unauthorized("Invalid token claims")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token subject")
    return Principal(user_id=user_id, role=role)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Not authenticated")
    return decode_access_token(credentials.credentials)


def require_role(*roles: str):
    """Dependency factory: the asserted role must be one of `roles`."""

    async def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(roles)}",
            )
        return principal

    return dependency
