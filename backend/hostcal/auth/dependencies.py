"""FastAPI dependencies that resolve the calling host from a bearer token."""

import logging
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from hostcal.auth.jwt import decode_access_token
from hostcal.database import get_db
from hostcal.models.user import User

logger = logging.getLogger(__name__)

_bearer = HTTPBearer()


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _host_id_from_token(token: str) -> uuid.UUID:
    try:
        claims = decode_access_token(token)
    except JWTError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise _unauthorized() from None
    try:
        return uuid.UUID(str(claims["sub"]))
    except (KeyError, ValueError):
        raise _unauthorized() from None


async def get_current_host(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The host the bearer token was issued for.

    Raises:
        HTTPException 401: Bad, expired or non-access token, or unknown host.
    """
    host = await db.get(User, _host_id_from_token(credentials.credentials))
    if host is None:
        raise _unauthorized()
    return host


async def get_active_host(host: User = Depends(get_current_host)) -> User:
    """Like ``get_current_host`` but refuses deactivated accounts with 403."""
    if not host.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    return host
