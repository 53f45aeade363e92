"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    User roles with increasing privilege levels.

    - MEMBER: Works pipelines, tasks and own calendar
    - MANAGER: Reviews agent decisions and routes intake
    - ADMIN: Business admin (org settings, users)
    - DEVELOPER: Platform admin (jobs, logs)
    """

    MEMBER = "member"
    MANAGER = "manager"
    ADMIN = "admin"
    DEVELOPER = "developer"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


# Roles allowed to approve/reject agent decisions and purge logs
ROLES_CAN_REVIEW_DECISIONS = {Role.MANAGER, Role.ADMIN, Role.DEVELOPER}
