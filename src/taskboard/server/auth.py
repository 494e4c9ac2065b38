"""Bearer-token identity provider for the board API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Header

from ..config import AuthConfig
from ..errors import AuthenticationError

# Global config instance
auth_config = AuthConfig()


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token whose subject is *user_id*.

    Args:
        user_id: Caller identity to encode.
        expires_delta: Optional expiration time delta.

    Returns:
        Encoded JWT token.
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=auth_config.access_token_expire_minutes)
    payload = {"sub": user_id, "exp": expire}
    return jwt.encode(payload, auth_config.secret_key, algorithm=auth_config.algorithm)


def decode_access_token(token: str) -> Optional[str]:
    """Decode and verify a JWT access token.

    Args:
        token: JWT token to decode.

    Returns:
        User id from the token, or None if the token is invalid or expired.
    """
    try:
        payload = jwt.decode(token, auth_config.secret_key, algorithms=[auth_config.algorithm])
    except jwt.InvalidTokenError:
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None


def get_caller_identity(authorization: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency returning the caller's user id or raising 401."""
    if not authorization:
        raise AuthenticationError()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError()
    user_id = decode_access_token(token.strip())
    if user_id is None:
        raise AuthenticationError("Invalid or expired token")
    return user_id
