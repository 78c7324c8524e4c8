"""
User model for authentication
"""

from typing import List, Optional
from pydantic import BaseModel, EmailStr


class User(BaseModel):
    """Authenticated caller, built from the JWT payload issued by the auth service"""

    id: str
    email: Optional[EmailStr] = None
    roles: List[str] = []

    @classmethod
    def from_token_payload(cls, payload: dict) -> Optional["User"]:
        """Build a user from token claims; tokens carry either `roles` or a single `role`"""
        user_id = payload.get("id") or payload.get("user_id") or payload.get("sub")
        if not user_id:
            return None

        roles = list(payload.get("roles") or [])
        if payload.get("role"):
            roles.append(payload["role"])

        return cls(id=str(user_id), email=payload.get("email"), roles=roles)

    def is_admin(self) -> bool:
        """Check if user has admin role"""
        return self.has_role("admin")

    def has_role(self, role: str) -> bool:
        """Check if user has a specific role"""
        return role.lower() in [r.lower() for r in self.roles]
