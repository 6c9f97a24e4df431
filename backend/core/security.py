"""
Bearer credential validation.

The external identity provider issues HS256 JWTs (``aud = "authenticated"``,
``sub`` = user id). This module validates them and turns them into a
``UserIdentity``. It never raises for a bad token: an invalid credential
simply resolves to ``None`` and the gate treats that as unauthenticated.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

import jwt

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserIdentity:
    """What a validated credential yields."""

    id: str
    email: str
    claims: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def first_name(self) -> Optional[str]:
        return (self.claims.get("user_metadata") or {}).get("first_name")

    @property
    def last_name(self) -> Optional[str]:
        return (self.claims.get("user_metadata") or {}).get("last_name")


class IdentityProvider(Protocol):
    async def validate_credential(self, token: str) -> Optional[UserIdentity]:
        ...


class JWTIdentityProvider:
    """Validates tokens signed with the provider's shared secret."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.secret = settings.JWT_SECRET
        self.algorithm = settings.JWT_ALGORITHM
        self.audience = settings.JWT_AUDIENCE

    async def validate_credential(self, token: str) -> Optional[UserIdentity]:
        """Return the identity behind ``token``, or None if it is not valid."""
        return self.decode(token)

    def decode(self, token: str) -> Optional[UserIdentity]:
        if not token or not self.secret:
            return None
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Rejected expired bearer token")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected invalid bearer token: %s", e)
            return None

        email = payload.get("email")
        if not email:
            return None
        return UserIdentity(id=str(payload["sub"]), email=email, claims=payload)


def create_access_token(
    user_id: str,
    email: str,
    expires_in: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
    **claims: Any,
) -> str:
    """
    Create a provider-compatible access token.

    Used for local development and tests; production tokens come from the
    identity provider.

    Args:
        user_id: Subject (user profile id)
        email: User email
        expires_in: Lifetime, ACCESS_TOKEN_EXPIRE_MINUTES by default
        **claims: Extra claims (e.g. ``user_metadata``)

    Returns:
        Encoded JWT token
    """
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    if expires_in is None:
        expires_in = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {
        "sub": user_id,
        "email": email,
        "aud": settings.JWT_AUDIENCE,
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
        **claims,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
