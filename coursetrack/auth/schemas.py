"""Authenticated principal schema."""

from uuid import UUID

from pydantic import BaseModel

from coursetrack.auth.permissions import UserRole


class AuthenticatedUser(BaseModel):
    """Identity extracted from a validated access token."""

    id: UUID
    email: str
    role: UserRole = UserRole.STUDENT
