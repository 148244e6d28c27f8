"""Roles and the permissions they grant."""

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Tuple


class UserRole(str, Enum):
    BUSINESS_OWNER = "business-owner"
    EMPLOYEE = "employee"
    CLIENT = "client"


class Permission(str, Enum):
    DASHBOARD_VIEW = "dashboard-view"
    CLIENT_MANAGEMENT = "client-management"
    PIPELINE_MANAGEMENT = "pipeline-management"
    EMPLOYEE_MANAGEMENT = "employee-management"
    BILLING_ACCESS = "billing-access"
    DOCUMENT_ACCESS = "document-access"
    SETTINGS_ACCESS = "settings-access"
    REPORTS_ACCESS = "reports-access"


ROLE_PERMISSIONS: Mapping[UserRole, Tuple[Permission, ...]] = MappingProxyType(
    {
        UserRole.BUSINESS_OWNER: tuple(Permission),
        UserRole.EMPLOYEE: (
            Permission.DASHBOARD_VIEW,
            Permission.CLIENT_MANAGEMENT,
            Permission.PIPELINE_MANAGEMENT,
            Permission.DOCUMENT_ACCESS,
        ),
        UserRole.CLIENT: (
            Permission.DASHBOARD_VIEW,
            Permission.DOCUMENT_ACCESS,
        ),
    }
)

# Roles listed as employees of an organization
STAFF_ROLES = frozenset({UserRole.BUSINESS_OWNER, UserRole.EMPLOYEE})


def permissions_for_role(role: UserRole, has_organization: bool = True) -> Tuple[Permission, ...]:
    """Permissions granted to a new user of the given role.

    A user outside any organization gets nothing, except a business
    owner, who is about to create one.
    """
    if has_organization or role == UserRole.BUSINESS_OWNER:
        return ROLE_PERMISSIONS[role]
    return ()
