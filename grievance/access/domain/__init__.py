"""
Access Domain Layer
===================

Pure Python access rules. No I/O, no issue data in permission checks.
"""

from grievance.access.domain.entities import Principal, SYSTEM_PRINCIPAL
from grievance.access.domain.permissions import (
    RoleDefinition,
    ROLE_DEFINITIONS,
    DASHBOARD_ROLES,
    PermissionModel,
)
from grievance.access.domain.visibility import (
    CommentChannel,
    ChannelAccess,
    CommentVisibilityGuard,
)

__all__ = [
    "Principal",
    "SYSTEM_PRINCIPAL",
    "RoleDefinition",
    "ROLE_DEFINITIONS",
    "DASHBOARD_ROLES",
    "PermissionModel",
    "CommentChannel",
    "ChannelAccess",
    "CommentVisibilityGuard",
]
