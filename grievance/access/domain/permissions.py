"""
Permission Model
================

Static role -> permission mapping plus the per-role surface flag.

Every check is a pure function of the principal and the requested
capability. Evaluation order:

1. A restricted principal (flag or email on the restricted list) is never
   mobile-capable. Restriction only subtracts capability.
2. A role in the dashboard role set is never mobile-capable.
3. Otherwise the static map decides; an unmapped permission is denied.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from grievance.access.domain.entities import Principal
from grievance.config import Permission, Role, Surface
from grievance.core import ConfigurationException, PermissionDeniedException


@dataclass(frozen=True)
class RoleDefinition:
    """Permissions granted to a role and the single surface it is bound to."""
    role: Role
    permissions: FrozenSet[Permission]
    surface: Surface

    def __post_init__(self):
        # A role is either dashboard-capable or mobile-capable, never both.
        has_dashboard = Permission.VIEW_DASHBOARD in self.permissions
        if self.surface == Surface.MOBILE and has_dashboard:
            raise ConfigurationException(
                f"Role {self.role.value} is mobile-bound but grants {Permission.VIEW_DASHBOARD.value}"
            )
        if self.surface == Surface.DASHBOARD and not has_dashboard:
            raise ConfigurationException(
                f"Role {self.role.value} is dashboard-bound but lacks {Permission.VIEW_DASHBOARD.value}"
            )


ROLE_DEFINITIONS: Dict[Role, RoleDefinition] = {
    Role.EMPLOYEE: RoleDefinition(
        role=Role.EMPLOYEE,
        permissions=frozenset(),
        surface=Surface.MOBILE,
    ),
    Role.AGENT: RoleDefinition(
        role=Role.AGENT,
        permissions=frozenset({Permission.VIEW_DASHBOARD}),
        surface=Surface.DASHBOARD,
    ),
    Role.MANAGER: RoleDefinition(
        role=Role.MANAGER,
        permissions=frozenset({
            Permission.VIEW_DASHBOARD,
            Permission.MANAGE_ISSUES,
            Permission.MANAGE_ANALYTICS,
            Permission.MANAGE_USERS,
        }),
        surface=Surface.DASHBOARD,
    ),
    Role.ADMIN: RoleDefinition(
        role=Role.ADMIN,
        permissions=frozenset(Permission),
        surface=Surface.DASHBOARD,
    ),
    Role.SECURITY_ADMIN: RoleDefinition(
        role=Role.SECURITY_ADMIN,
        permissions=frozenset({
            Permission.VIEW_DASHBOARD,
            Permission.ACCESS_SECURITY,
            Permission.MANAGE_USERS,
        }),
        surface=Surface.DASHBOARD,
    ),
}

DASHBOARD_ROLES: FrozenSet[Role] = frozenset(
    role for role, definition in ROLE_DEFINITIONS.items()
    if definition.surface == Surface.DASHBOARD
)


class PermissionModel:
    """
    Central capability check.

    Call sites ask for a ``Permission`` member, never compare role strings.
    """

    def __init__(
        self,
        restricted_emails: Iterable[str] = (),
        role_definitions: Optional[Mapping[Role, RoleDefinition]] = None
    ):
        self._restricted_emails = frozenset(e.strip().lower() for e in restricted_emails if e)
        self._roles = dict(role_definitions or ROLE_DEFINITIONS)

        missing = set(Role) - set(self._roles)
        if missing:
            raise ConfigurationException(
                "Role table is not total",
                {"missing_roles": sorted(r.value for r in missing)}
            )
        self._dashboard_roles = frozenset(
            role for role, d in self._roles.items() if d.surface == Surface.DASHBOARD
        )

    def is_restricted(self, principal: Principal) -> bool:
        if principal.restricted:
            return True
        return principal.email is not None and principal.email in self._restricted_emails

    def permissions_for(self, principal: Principal) -> FrozenSet[Permission]:
        definition = self._roles.get(principal.role)
        return definition.permissions if definition else frozenset()

    def has_permission(self, principal: Principal, permission: Permission) -> bool:
        return permission in self.permissions_for(principal)

    def is_dashboard_capable(self, principal: Principal) -> bool:
        return self.has_permission(principal, Permission.VIEW_DASHBOARD)

    def is_mobile_capable(self, principal: Principal) -> bool:
        if self.is_restricted(principal):
            return False
        if principal.role in self._dashboard_roles:
            return False
        definition = self._roles.get(principal.role)
        return definition is not None and definition.surface == Surface.MOBILE

    def require(self, principal: Principal, permission: Permission, action: str = "perform this action") -> None:
        """Raise ``PermissionDeniedException`` unless the principal holds ``permission``."""
        if not self.has_permission(principal, permission):
            raise PermissionDeniedException(
                f"Role {principal.role.value} may not {action}",
                principal_id=principal.id,
                required=permission.value,
            )
