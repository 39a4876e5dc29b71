"""Bearer token verification.

Tokens are minted by the identity provider; this service only verifies them
and reads the caller id and role. ``create_access_token`` exists for
internal tooling and tests.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from seatline.config import settings
from seatline.core.exceptions import AuthenticationError

ROLES = ("guest", "host", "admin")


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    user_id: UUID
    role: str
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, token_type: str = "access") -> dict[str, Any]:
    """Verify and decode a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("type") != token_type:
            raise AuthenticationError("Invalid token type")
        return payload
    except JWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")


def principal_from_token(token: str) -> Principal:
    """Decode a bearer token into a ``Principal``."""
    payload = verify_token(token, token_type="access")
    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Invalid token payload")
    try:
        user_id = UUID(str(subject))
    except ValueError:
        raise AuthenticationError("Invalid token subject")

    role = payload.get("role", "guest")
    if role not in ROLES:
        raise AuthenticationError("Invalid token role")
    return Principal(user_id=user_id, role=role, email=payload.get("email"))
