"""Access-token handling.

The account service signs bearer tokens with the shared ``JWT_SECRET_KEY``;
HostCal only needs to verify them. ``create_access_token`` mints the same
shape of token for local tooling and tests.
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from hostcal.config import settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    subject: uuid.UUID | str,
    expires_delta: timedelta | None = None,
    extra_claims: dict | None = None,
) -> str:
    """Sign an access token for ``subject`` (the host's user id)."""
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    claims = dict(extra_claims or {})
    claims.update(
        {
            "sub": str(subject),
            "type": ACCESS_TOKEN_TYPE,
            "iat": issued_at,
            "exp": issued_at + lifetime,
        }
    )
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and token type, and return the claims.

    Raises:
        jose.JWTError: If the token is malformed, expired, signed with another
            key, or is not an access token.
    """
    claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise JWTError(f"expected an {ACCESS_TOKEN_TYPE} token")
    return claims
