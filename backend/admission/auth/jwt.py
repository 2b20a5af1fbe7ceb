"""
JWT token utilities for staff authentication.

Tokens are issued by the platform's identity service; this service only
verifies them. ``create_access_token`` exists for tooling and tests.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from loguru import logger

from admission.config import get_settings
from admission.utils.timezone import utc_now

settings = get_settings()


@dataclass
class StaffPrincipal:
    """The authenticated staff member behind a request."""
    user_id: UUID
    org_id: UUID
    roles: list[str] = field(default_factory=list)


def create_access_token(
    user_id: UUID,
    org_id: UUID,
    roles: Optional[list[str]] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token for a staff member.

    Args:
        user_id: The staff member's UUID
        org_id: Organization the token is scoped to
        roles: Role names within the organization
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = utc_now() + expires_delta
    else:
        expire = utc_now() + timedelta(minutes=settings.jwt_access_token_expire_minutes)

    to_encode = {
        "sub": str(user_id),
        "org": str(org_id),
        "roles": roles or [],
        "exp": expire,
        "type": "access",
    }

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> Optional[StaffPrincipal]:
    """
    Decode and validate a JWT access token.

    Returns:
        The staff principal if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None

    user_id = payload.get("sub")
    org_id = payload.get("org")
    if user_id is None or org_id is None or payload.get("type") != "access":
        return None

    try:
        return StaffPrincipal(
            user_id=UUID(user_id),
            org_id=UUID(org_id),
            roles=list(payload.get("roles") or []),
        )
    except ValueError:
        return None
