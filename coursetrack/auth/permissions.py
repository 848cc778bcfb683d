"""Role hierarchy.

- ADMIN (level 2): grades submissions, manages courses and enrollments
- INSTRUCTOR (level 1): same grading rights as admin on progress data
- STUDENT (level 0): own enrollments only
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles, higher level means more permissions."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.STUDENT: 0,
    UserRole.INSTRUCTOR: 1,
    UserRole.ADMIN: 2,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role; unknown roles get 0."""
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if ``user_role`` is at least ``required_role``."""
    return get_role_level(user_role) >= get_role_level(required_role)
