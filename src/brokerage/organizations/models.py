"""Organization, user profile and invite models."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.brokerage.organizations.permissions import (
    ROLE_PERMISSIONS,
    Permission,
    UserRole,
)


INVITE_TTL = timedelta(days=7)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationType(str, Enum):
    BROKERAGE = "brokerage"
    CARE_PROVIDER = "care-provider"
    INDIVIDUAL = "individual"


class OrganizationSettings(BaseModel):
    allow_client_self_registration: bool = True
    require_employee_approval: bool = True
    default_employee_permissions: List[Permission] = Field(
        default_factory=lambda: list(ROLE_PERMISSIONS[UserRole.EMPLOYEE])
    )


class Organization(BaseModel):
    """A tenant. Every client record belongs to exactly one organization.

    Attributes:
        id: Organization identifier.
        name: Display name.
        type: Kind of organization.
        owner_id: User id of the business owner.
        employees: User ids of owners and employees.
        clients: User ids of client users (not client records).
        settings: Organization settings.
        join_code: Code users can join with, once generated.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: OrganizationType = OrganizationType.BROKERAGE
    owner_id: str
    employees: List[str] = Field(default_factory=list)
    clients: List[str] = Field(default_factory=list)
    settings: OrganizationSettings = Field(default_factory=OrganizationSettings)
    join_code: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class UserDetails(BaseModel):
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    title: Optional[str] = None
    department: Optional[str] = None
    avatar: Optional[str] = None


class UserProfile(BaseModel):
    """A user of the dashboard.

    The profile id is the user's auth provider uid.
    """

    id: str = Field(..., min_length=1)
    auth_uid: str = Field(..., min_length=1)
    email: str
    display_name: str = ""
    role: UserRole
    organization_id: Optional[str] = None
    permissions: List[Permission] = Field(default_factory=list)
    is_active: bool = True
    invited_by: Optional[str] = None
    joined_at: datetime = Field(default_factory=_utcnow)
    last_login_at: Optional[datetime] = None
    profile: UserDetails = Field(default_factory=UserDetails)


class InviteLink(BaseModel):
    id: str = Field(..., min_length=1)
    organization_id: str
    role: UserRole
    permissions: List[Permission] = Field(default_factory=list)
    invited_by: str
    email: Optional[str] = None
    expires_at: datetime = Field(default_factory=lambda: _utcnow() + INVITE_TTL)
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    is_active: bool = True

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Whether the invite is still active and not expired."""
        return self.is_active and self.expires_at > (now or _utcnow())
