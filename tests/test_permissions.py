"""Tests for the role and permission model."""
import pytest

from grievance.access.domain import (
    DASHBOARD_ROLES,
    ROLE_DEFINITIONS,
    PermissionModel,
    Principal,
    RoleDefinition,
)
from grievance.config import Permission, Role, Surface
from grievance.core import ConfigurationException, PermissionDeniedException


class TestRoleTable:

    def test_every_role_is_bound_to_exactly_one_surface(self):
        for role in Role:
            definition = ROLE_DEFINITIONS[role]
            has_dashboard = Permission.VIEW_DASHBOARD in definition.permissions
            assert has_dashboard == (definition.surface == Surface.DASHBOARD)

    def test_employee_is_the_only_mobile_role(self):
        assert set(Role) - DASHBOARD_ROLES == {Role.EMPLOYEE}

    @pytest.mark.parametrize("role, permission, expected", [
        (Role.EMPLOYEE, Permission.VIEW_DASHBOARD, False),
        (Role.EMPLOYEE, Permission.MANAGE_ISSUES, False),
        (Role.AGENT, Permission.VIEW_DASHBOARD, True),
        (Role.AGENT, Permission.MANAGE_ISSUES, False),
        (Role.MANAGER, Permission.MANAGE_ISSUES, True),
        (Role.MANAGER, Permission.ACCESS_SECURITY, False),
        (Role.ADMIN, Permission.MANAGE_SETTINGS, True),
        (Role.ADMIN, Permission.ACCESS_SECURITY, True),
        (Role.SECURITY_ADMIN, Permission.ACCESS_SECURITY, True),
        (Role.SECURITY_ADMIN, Permission.MANAGE_ISSUES, False),
    ])
    def test_has_permission(self, permission_model, role, permission, expected):
        principal = Principal(id="p-1", role=role)
        assert permission_model.has_permission(principal, permission) is expected

    def test_mobile_role_granting_dashboard_is_rejected(self):
        with pytest.raises(ConfigurationException):
            RoleDefinition(
                role=Role.EMPLOYEE,
                permissions=frozenset({Permission.VIEW_DASHBOARD}),
                surface=Surface.MOBILE,
            )

    def test_partial_role_table_is_rejected(self):
        partial = {Role.ADMIN: ROLE_DEFINITIONS[Role.ADMIN]}
        with pytest.raises(ConfigurationException) as exc_info:
            PermissionModel(role_definitions=partial)
        assert "employee" in exc_info.value.details["missing_roles"]


class TestSurfaces:

    def test_employee_is_mobile_capable(self, permission_model, reporter):
        assert permission_model.is_mobile_capable(reporter)
        assert not permission_model.is_dashboard_capable(reporter)

    def test_dashboard_roles_are_never_mobile_capable(self, permission_model, manager, agent_a):
        for principal in (manager, agent_a):
            assert permission_model.is_dashboard_capable(principal)
            assert not permission_model.is_mobile_capable(principal)

    def test_restricted_email_denies_mobile(self, permission_model):
        blocked = Principal(id="emp-9", role=Role.EMPLOYEE, email="Blocked@Example.com")
        assert permission_model.is_restricted(blocked)
        assert not permission_model.is_mobile_capable(blocked)

    def test_restricted_flag_denies_mobile(self, permission_model):
        flagged = Principal(id="emp-9", role=Role.EMPLOYEE, restricted=True)
        assert not permission_model.is_mobile_capable(flagged)

    def test_restriction_never_adds_capability(self, permission_model):
        blocked = Principal(id="emp-9", role=Role.EMPLOYEE, email="blocked@example.com")
        assert not permission_model.is_dashboard_capable(blocked)

        blocked_manager = Principal(id="mgr-9", role=Role.MANAGER, email="blocked@example.com")
        assert permission_model.is_dashboard_capable(blocked_manager)
        assert permission_model.has_permission(blocked_manager, Permission.MANAGE_ISSUES)


class TestRequire:

    def test_require_passes_silently(self, permission_model, manager):
        permission_model.require(manager, Permission.MANAGE_ISSUES)

    def test_require_raises_with_required_permission(self, permission_model, agent_a):
        with pytest.raises(PermissionDeniedException) as exc_info:
            permission_model.require(agent_a, Permission.MANAGE_ISSUES, "assign issues")

        assert exc_info.value.error_code == "PERMISSION_DENIED"
        assert exc_info.value.status_code == 403
        assert exc_info.value.required == "manage:issues"
        assert exc_info.value.principal_id == "agent-a"
