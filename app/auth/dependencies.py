from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.auth.schemas import CurrentUser
from app.auth.security import decode_access_token
from app.core.enums import UserRole


bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """Resolve the authenticated user from the Bearer access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Access denied. No token provided or invalid token.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub") or payload.get("user_id")
    if not user_id:
        raise credentials_exception
    email = payload.get("email")
    try:
        role = UserRole(payload.get("role", UserRole.TEACHER.value))
    except ValueError:
        raise credentials_exception

    return CurrentUser(
        id=str(user_id),
        email=email,
        name=payload.get("name") or (email.split("@")[0] if email else str(user_id)),
        role=role,
    )
