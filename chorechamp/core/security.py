"""JWT helpers.

Tokens are issued by the identity provider and share the HS256 secret with
this service; ``create_access_token`` exists for service-to-service calls
and tests.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from chorechamp.config import settings


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Encode an access token whose ``sub`` claim is the user id."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and verify a token. Raises ``jose.JWTError`` when invalid or expired."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
