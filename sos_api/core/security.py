"""JWT verification for tokens issued by the identity service.

This service never issues production tokens; ``create_access_token`` exists
so local tooling and tests can mint tokens signed with the shared key.
"""

import uuid
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from sos_api.config import settings


def create_access_token(
    user_id: uuid.UUID,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token carrying the user ID and role."""
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": now,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate an access token.

    Returns:
        Token payload dict if valid, None if invalid, expired or not an
        access token.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None
    return payload


class TokenData:
    """Parsed token claims."""

    def __init__(self, payload: dict):
        self.user_id: uuid.UUID = uuid.UUID(payload["sub"])
        self.role: str = str(payload["role"]).lower()
        self.exp: datetime = datetime.fromtimestamp(payload["exp"], tz=UTC)
