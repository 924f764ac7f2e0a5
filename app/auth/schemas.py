from typing import Optional

from pydantic import BaseModel

from app.core.enums import UserRole


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated teacher or admin, built from token claims."""

    id: str
    email: Optional[str] = None
    name: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN
