"""Organizations, users, invites and role permissions."""

from src.brokerage.organizations.manager import OrganizationService
from src.brokerage.organizations.models import (
    INVITE_TTL,
    InviteLink,
    Organization,
    OrganizationSettings,
    OrganizationType,
    UserDetails,
    UserProfile,
)
from src.brokerage.organizations.permissions import (
    ROLE_PERMISSIONS,
    Permission,
    UserRole,
    permissions_for_role,
)
from src.brokerage.organizations.store import InMemoryOrganizationStore, OrganizationStore

__all__ = [
    "INVITE_TTL",
    "InMemoryOrganizationStore",
    "InviteLink",
    "Organization",
    "OrganizationService",
    "OrganizationSettings",
    "OrganizationStore",
    "OrganizationType",
    "Permission",
    "ROLE_PERMISSIONS",
    "UserDetails",
    "UserProfile",
    "UserRole",
    "permissions_for_role",
]
