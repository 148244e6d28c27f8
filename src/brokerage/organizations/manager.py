"""Organization membership, invites and permissions.

OrganizationService manages organizations and the users that belong to
them. A user belongs to at most one organization; the user's role there
decides the permissions they are granted (see permissions.py).
"""

import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from src.brokerage.errors import OrganizationNotFoundError, UserNotFoundError
from src.brokerage.organizations.models import (
    InviteLink,
    Organization,
    OrganizationSettings,
    OrganizationType,
    UserDetails,
    UserProfile,
)
from src.brokerage.organizations.permissions import (
    ROLE_PERMISSIONS,
    STAFF_ROLES,
    Permission,
    UserRole,
    permissions_for_role,
)
from src.brokerage.organizations.store import OrganizationStore


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationService:
    """Manage organizations, their users and their invite links."""

    def __init__(self, store: OrganizationStore):
        self.store = store

    async def create_organization(
        self,
        name: str,
        organization_type: OrganizationType,
        owner_id: str,
    ) -> Organization:
        """Create an organization whose owner is its first employee.

        If the owner has a profile, it is attached to the new organization.
        """
        organization = Organization(
            id=uuid.uuid4().hex,
            name=name,
            type=organization_type,
            owner_id=owner_id,
            employees=[owner_id],
            settings=OrganizationSettings(),
        )
        await self.store.put_organization(organization)

        owner = await self.store.get_user(owner_id)
        if owner is not None:
            await self.store.put_user(
                owner.model_copy(
                    update={
                        "organization_id": organization.id,
                        "role": UserRole.BUSINESS_OWNER,
                        "permissions": list(ROLE_PERMISSIONS[UserRole.BUSINESS_OWNER]),
                    }
                )
            )

        logger.info(
            "Created organization",
            extra={"organization_id": organization.id, "owner_id": owner_id},
        )
        return organization

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        return await self.store.get_organization(organization_id)

    async def organizations_by_owner(self, owner_id: str) -> List[Organization]:
        return await self.store.list_organizations_by_owner(owner_id)

    async def create_user_profile(
        self,
        auth_uid: str,
        email: str,
        display_name: str,
        role: UserRole,
        organization_id: Optional[str] = None,
    ) -> UserProfile:
        """Create a user profile, joining the organization if one is given.

        Raises:
            OrganizationNotFoundError: If organization_id does not resolve.
        """
        first, _, last = display_name.strip().partition(" ")
        user = UserProfile(
            id=auth_uid,
            auth_uid=auth_uid,
            email=email,
            display_name=display_name,
            role=role,
            permissions=list(permissions_for_role(role, organization_id is not None)),
            profile=UserDetails(first_name=first, last_name=last.strip()),
        )
        await self.store.put_user(user)
        logger.info("Created user profile", extra={"user_id": user.id, "role": role.value})

        if organization_id is not None:
            user = await self.add_user(user.id, organization_id, role)
        return user

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return await self.store.get_user(user_id)

    async def add_user(
        self,
        user_id: str,
        organization_id: str,
        role: UserRole,
    ) -> UserProfile:
        """Add a user to an organization with the permissions of their role.

        Raises:
            UserNotFoundError: If the user does not exist.
            OrganizationNotFoundError: If the organization does not exist.
        """
        user = await self._require_user(user_id)
        organization = await self._require_organization(organization_id)

        if role in STAFF_ROLES:
            organization = organization.model_copy(
                update={"employees": _with(organization.employees, user_id)}
            )
        else:
            organization = organization.model_copy(
                update={"clients": _with(organization.clients, user_id)}
            )
        organization = organization.model_copy(update={"updated_at": _utcnow()})

        user = user.model_copy(
            update={
                "organization_id": organization_id,
                "role": role,
                "permissions": list(ROLE_PERMISSIONS[role]),
            }
        )
        await self.store.put_organization(organization)
        await self.store.put_user(user)

        logger.info(
            "Added user to organization",
            extra={"user_id": user_id, "organization_id": organization_id, "role": role.value},
        )
        return user

    async def remove_user(self, user_id: str, organization_id: str) -> UserProfile:
        """Remove a user from an organization and clear their permissions.

        Raises:
            UserNotFoundError: If the user does not exist.
            OrganizationNotFoundError: If the organization does not exist.
        """
        user = await self._require_user(user_id)
        organization = await self._require_organization(organization_id)

        organization = organization.model_copy(
            update={
                "employees": [u for u in organization.employees if u != user_id],
                "clients": [u for u in organization.clients if u != user_id],
                "updated_at": _utcnow(),
            }
        )
        user = user.model_copy(update={"organization_id": None, "permissions": []})
        await self.store.put_organization(organization)
        await self.store.put_user(user)

        logger.info(
            "Removed user from organization",
            extra={"user_id": user_id, "organization_id": organization_id},
        )
        return user

    async def employees(self, organization_id: str) -> List[UserProfile]:
        """Business owners and employees of the organization."""
        users = await self.store.list_users_by_organization(organization_id)
        return [u for u in users if u.role in STAFF_ROLES]

    async def client_users(self, organization_id: str) -> List[UserProfile]:
        """Users of the organization with the client role."""
        users = await self.store.list_users_by_organization(organization_id)
        return [u for u in users if u.role == UserRole.CLIENT]

    async def create_invite(
        self,
        organization_id: str,
        role: UserRole,
        invited_by: str,
        email: Optional[str] = None,
        permissions: Optional[Iterable[Permission]] = None,
    ) -> InviteLink:
        """Create an invite link valid for seven days.

        Raises:
            OrganizationNotFoundError: If the organization does not exist.
        """
        await self._require_organization(organization_id)
        invite = InviteLink(
            id=secrets.token_urlsafe(16),
            organization_id=organization_id,
            role=role,
            permissions=list(permissions) if permissions is not None else list(ROLE_PERMISSIONS[role]),
            invited_by=invited_by,
            email=email,
        )
        await self.store.put_invite(invite)
        logger.info(
            "Created invite",
            extra={"organization_id": organization_id, "role": role.value},
        )
        return invite

    async def get_invite(self, invite_id: str) -> Optional[InviteLink]:
        """Get an invite, or None if it is unknown, used or expired."""
        invite = await self.store.get_invite(invite_id)
        if invite is None or not invite.is_usable():
            return None
        return invite

    async def use_invite(self, invite_id: str, user_id: str) -> Optional[UserProfile]:
        """Redeem an invite for a user.

        Returns:
            The updated user, or None if the invite is not usable.

        Raises:
            UserNotFoundError: If the user does not exist. The invite stays
                usable.
        """
        invite = await self.get_invite(invite_id)
        if invite is None:
            return None
        await self._require_user(user_id)
        await self._require_organization(invite.organization_id)

        await self.store.put_invite(
            invite.model_copy(
                update={"used_at": _utcnow(), "used_by": user_id, "is_active": False}
            )
        )
        user = await self.add_user(user_id, invite.organization_id, invite.role)
        if list(invite.permissions) != list(ROLE_PERMISSIONS[invite.role]):
            user = await self.update_user_permissions(user_id, invite.permissions)
        return user

    async def active_invites(self, organization_id: str) -> List[InviteLink]:
        invites = await self.store.list_invites_by_organization(organization_id)
        return [i for i in invites if i.is_usable()]

    async def user_has_permission(self, user_id: str, permission: Permission) -> bool:
        user = await self.store.get_user(user_id)
        return user is not None and permission in user.permissions

    async def update_user_permissions(
        self,
        user_id: str,
        permissions: Iterable[Permission],
    ) -> UserProfile:
        """Replace a user's permissions.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        user = await self._require_user(user_id)
        user = user.model_copy(update={"permissions": list(dict.fromkeys(permissions))})
        await self.store.put_user(user)
        return user

    async def update_organization_settings(
        self,
        organization_id: str,
        **changes: object,
    ) -> Organization:
        """Merge changes into the organization settings.

        Raises:
            OrganizationNotFoundError: If the organization does not exist.
            ValidationError: If a change is not a valid setting value.
        """
        organization = await self._require_organization(organization_id)
        settings = OrganizationSettings.model_validate(
            {**organization.settings.model_dump(), **changes}
        )
        organization = organization.model_copy(
            update={"settings": settings, "updated_at": _utcnow()}
        )
        await self.store.put_organization(organization)
        return organization

    async def generate_join_code(self, organization_id: str) -> str:
        """Generate and store a new join code, replacing any previous one.

        Raises:
            OrganizationNotFoundError: If the organization does not exist.
        """
        organization = await self._require_organization(organization_id)
        code = f"{organization_id[:4].upper()}-{secrets.token_hex(2).upper()}"
        await self.store.put_organization(
            organization.model_copy(update={"join_code": code, "updated_at": _utcnow()})
        )
        return code

    async def join_by_code(
        self,
        join_code: str,
        user_id: str,
        role: UserRole,
    ) -> Optional[UserProfile]:
        """Join the organization holding the code.

        Returns:
            The updated user, or None if no organization holds the code.
        """
        organization = await self.store.find_organization_by_join_code(join_code)
        if organization is None:
            logger.warning("Unknown join code", extra={"user_id": user_id})
            return None
        return await self.add_user(user_id, organization.id, role)

    async def validate_user_access(self, user_id: str, organization_id: str) -> bool:
        user = await self.store.get_user(user_id)
        return user is not None and user.organization_id == organization_id

    async def get_user_organization_role(
        self,
        user_id: str,
        organization_id: str,
    ) -> Optional[UserRole]:
        user = await self.store.get_user(user_id)
        if user is not None and user.organization_id == organization_id:
            return user.role
        return None

    async def record_login(self, user_id: str) -> UserProfile:
        """Stamp the user's last login time.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        user = await self._require_user(user_id)
        user = user.model_copy(update={"last_login_at": _utcnow()})
        await self.store.put_user(user)
        return user

    async def _require_user(self, user_id: str) -> UserProfile:
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def _require_organization(self, organization_id: str) -> Organization:
        organization = await self.store.get_organization(organization_id)
        if organization is None:
            raise OrganizationNotFoundError(organization_id)
        return organization


def _with(ids: List[str], user_id: str) -> List[str]:
    return ids if user_id in ids else [*ids, user_id]
