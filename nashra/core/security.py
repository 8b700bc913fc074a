"""
Password hashing and JWT helpers.

Tokens are stateless HS256 access tokens carrying ``sub`` (user id),
``email``, ``role`` and ``tier``. There is no refresh token or revocation;
the admin trigger only needs to know who is calling and with what role.
"""

import datetime
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from nashra.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ROLE_HIERARCHY = {"guest": 0, "registered": 1, "pro": 2, "admin": 3}


def hash_password(raw_password: str) -> str:
    return pwd_context.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(raw_password, hashed_password)


def create_access_token(data: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    """
    Create a signed access token.

    Expected payload format:
        {"sub": "42", "email": "...", "role": "admin", "tier": "free"}
    """
    to_encode = data.copy()
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_EXPIRE_MINUTES
    expire_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=minutes)
    to_encode.update({"exp": expire_at})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the payload if the token is valid and unexpired, else None."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def has_permission(role: Optional[str], required_role: str) -> bool:
    if not role:
        return False
    return ROLE_HIERARCHY.get(role, 0) >= ROLE_HIERARCHY.get(required_role, 0)
