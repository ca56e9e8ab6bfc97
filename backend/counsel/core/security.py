from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from jose import JWTError, jwt

from ..config import get_settings


class TokenError(Exception):
    """Raised when an identity token cannot be verified."""


def issue_anonymous_identity() -> str:
    """Create a fresh opaque identity for a browser that has none."""
    return uuid4().hex


def create_identity_token(identity: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed token carrying an anonymous identity.

    Args:
        identity: The identity to encode in the token
        expires_delta: Optional expiration time delta

    Returns:
        str: The encoded JWT token
    """
    settings = get_settings()
    to_encode: Dict[str, Any] = {"sub": identity}
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(days=settings.IDENTITY_TOKEN_EXPIRE_DAYS)
    to_encode.update({"exp": expire, "type": "identity"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_identity_token(token: str) -> str:
    """Verify an identity token.

    Args:
        token: The JWT token to verify

    Returns:
        str: The identity carried by the token

    Raises:
        TokenError: If the token is invalid, expired or of the wrong type
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        raise TokenError(str(e)) from e
    if payload.get("type") != "identity":
        raise TokenError("Invalid token type")
    identity = payload.get("sub")
    if not identity:
        raise TokenError("Token carries no identity")
    return identity
