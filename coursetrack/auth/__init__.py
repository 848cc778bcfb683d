"""Bearer-token authentication and role checks."""

from .dependencies import AdminUser, CurrentUser, InstructorUser
from .permissions import UserRole
from .schemas import AuthenticatedUser


__all__ = [
    "AdminUser",
    "AuthenticatedUser",
    "CurrentUser",
    "InstructorUser",
    "UserRole",
]
