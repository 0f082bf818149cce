"""JWT helpers for resolving the calling owner.

Tokens are issued by the surrounding application; this service only needs to
verify them and read the owner id from the ``sub`` claim.
"""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from batchflow.config import settings

ACCESS_TOKEN_EXPIRE_MINUTES = 30


def create_access_token(owner_id: UUID, expires_delta: timedelta | None = None) -> str:
    """
    Create a JWT access token.

    Used by tests and local tooling; production tokens come from the auth service.

    Args:
        owner_id: Owner ID to encode in token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {
        "sub": str(owner_id),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a JWT token.

    Raises:
        JWTError: If token is invalid or expired
    """
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def get_owner_id_from_token(token: str) -> UUID:
    """
    Extract the owner ID from a JWT token.

    Raises:
        JWTError: If token is invalid, expired or lacks a subject
        ValueError: If the subject is not a valid UUID
    """
    payload = decode_token(token)
    owner_id_str = payload.get("sub")
    if owner_id_str is None:
        raise JWTError("Token missing 'sub' claim")
    return UUID(owner_id_str)
