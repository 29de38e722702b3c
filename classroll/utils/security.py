"""Password hashing and access-token verification.

Tokens are minted by the identity service; classroll only reads them.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

import jwt
from passlib.context import CryptContext

from classroll.config import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Bcrypt hash for a generated account password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


@dataclass(frozen=True)
class AccessClaims:
    """The parts of an access token classroll acts on."""

    user_id: uuid.UUID
    role: str | None
    # None when the claim is missing or malformed
    school_id: uuid.UUID | None

    def has_role(self, *roles: str) -> bool:
        return self.role is not None and self.role in roles


def parse_uuid(value: Any) -> uuid.UUID | None:
    """UUID from a claim or query value; None when missing or malformed."""
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        return None


def read_access_claims(token: str) -> AccessClaims | None:
    """Verify an access token and pull out the caller's identity.

    Returns None for expired, forged or non-access tokens and for tokens
    whose subject is not a UUID.
    """
    try:
        payload = jwt.decode(
            token,
            settings.effective_jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired access token")
        return None
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != "access":
        return None

    user_id = parse_uuid(payload.get("sub"))
    if user_id is None:
        return None

    return AccessClaims(
        user_id=user_id,
        role=payload.get("role") or None,
        school_id=parse_uuid(payload.get("school_id")),
    )
