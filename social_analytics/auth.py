"""Bearer token verification yielding the numeric id of the calling user.

Token issuance belongs to the account service; ``create_access_token`` exists
for scripts and tests that need a token signed with the same secret.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from social_analytics.config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


class AuthError(Exception):
    """Raised when a token is missing, invalid, or carries no usable user id."""

    reason = "unauthorized"


def create_access_token(user_id: int, expires_minutes: int | None = None, **claims) -> str:
    """Sign a token whose ``sub`` claim is the user id."""
    if not settings.auth_enabled:
        raise AuthError("JWT_SECRET is not configured.")
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_user_id(token: str) -> int:
    """Verify a token and return its numeric ``sub`` claim.

    Raises:
        AuthError: If verification fails or ``sub`` is not an integer.
    """
    if not settings.auth_enabled:
        raise AuthError("JWT_SECRET is not configured.")
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthError("Invalid or expired token.") from exc

    # Older tokens carry the id as "userId"
    subject = payload.get("sub", payload.get("userId"))
    try:
        user_id = int(str(subject))
    except (TypeError, ValueError) as exc:
        raise AuthError("Token carries no numeric user id.") from exc
    if user_id <= 0:
        raise AuthError("Token carries no numeric user id.")
    return user_id


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """FastAPI dependency returning the authenticated user's id.

    Raises:
        HTTPException 401: Missing or invalid token.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=AuthError.reason,
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_user_id(credentials.credentials)
    except AuthError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.reason,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
