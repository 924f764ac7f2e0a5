from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from app.core.config import settings
from app.core.enums import UserRole


def create_access_token(*, subject: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    minutes = settings.access_token_expire_minutes if expires_minutes is None else expires_minutes
    claims = {**subject, "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes)}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def issue_token(
    user_id: str,
    role: UserRole,
    *,
    email: Optional[str] = None,
    name: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Access token for a teacher or admin of the attendance system."""
    claims: Dict[str, Any] = {"sub": user_id, "role": UserRole(role).value}
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    return create_access_token(subject=claims, expires_minutes=expires_minutes)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Raises jose.JWTError on a bad signature, expired token or malformed token."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
