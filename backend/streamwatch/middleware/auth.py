"""Authentication dependencies for protected routes."""

import logging
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from streamwatch.config import settings

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer()


class CronAuthError(Exception):
    """Trigger authentication failure, rendered as `{"error": ...}`."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


async def cron_auth_error_handler(request: Request, exc: CronAuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def decode_access_token(token: str) -> Optional[dict]:
    """
    Decode and verify a JWT issued by the identity provider.

    Args:
        token: Encoded JWT

    Returns:
        Claims dictionary, or None if the token is invalid
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> str:
    """
    Dependency returning the calling principal's ID (the JWT `sub` claim).

    Usage in routes:
        @router.get("/mine")
        def mine(user_id: str = Depends(get_current_user_id)):
            ...

    Args:
        credentials: HTTP Authorization header with Bearer token

    Returns:
        User ID

    Raises:
        HTTPException: If authentication fails
    """
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is not set")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error"
        )

    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub") if payload else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return str(user_id)


def verify_cron_secret(authorization: Optional[str] = Header(None)):
    """
    Dependency guarding the poll trigger with `Authorization: Bearer <CRON_SECRET>`.

    Raises:
        CronAuthError: 500 when CRON_SECRET is not configured, 401 on mismatch
    """
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET is not set")
        raise CronAuthError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error")

    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not secrets.compare_digest(authorization.encode(), expected.encode()):
        logger.warning("Unauthorized poll trigger attempt")
        raise CronAuthError(status.HTTP_401_UNAUTHORIZED, "Unauthorized")
