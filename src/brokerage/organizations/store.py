"""Organization, user and invite persistence."""

import asyncio
from typing import Dict, List, Optional, Protocol, runtime_checkable

from src.brokerage.organizations.models import InviteLink, Organization, UserProfile


@runtime_checkable
class OrganizationStore(Protocol):
    """Protocol defining persistence for organizations, users and invites."""

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        ...

    async def put_organization(self, organization: Organization) -> None:
        ...

    async def list_organizations_by_owner(self, owner_id: str) -> List[Organization]:
        ...

    async def find_organization_by_join_code(self, join_code: str) -> Optional[Organization]:
        ...

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        ...

    async def put_user(self, user: UserProfile) -> None:
        ...

    async def list_users_by_organization(self, organization_id: str) -> List[UserProfile]:
        ...

    async def get_invite(self, invite_id: str) -> Optional[InviteLink]:
        ...

    async def put_invite(self, invite: InviteLink) -> None:
        ...

    async def list_invites_by_organization(self, organization_id: str) -> List[InviteLink]:
        ...


class InMemoryOrganizationStore:
    """In-memory implementation of the OrganizationStore protocol."""

    def __init__(self) -> None:
        self._organizations: Dict[str, Organization] = {}
        self._users: Dict[str, UserProfile] = {}
        self._invites: Dict[str, InviteLink] = {}
        self._lock = asyncio.Lock()

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        org = self._organizations.get(organization_id)
        return org.model_copy(deep=True) if org is not None else None

    async def put_organization(self, organization: Organization) -> None:
        async with self._lock:
            self._organizations[organization.id] = organization.model_copy(deep=True)

    async def list_organizations_by_owner(self, owner_id: str) -> List[Organization]:
        return [
            org.model_copy(deep=True)
            for org in self._organizations.values()
            if org.owner_id == owner_id
        ]

    async def find_organization_by_join_code(self, join_code: str) -> Optional[Organization]:
        code = join_code.strip().upper()
        for org in self._organizations.values():
            if org.join_code and org.join_code.upper() == code:
                return org.model_copy(deep=True)
        return None

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user is not None else None

    async def put_user(self, user: UserProfile) -> None:
        async with self._lock:
            self._users[user.id] = user.model_copy(deep=True)

    async def list_users_by_organization(self, organization_id: str) -> List[UserProfile]:
        return [
            user.model_copy(deep=True)
            for user in self._users.values()
            if user.organization_id == organization_id
        ]

    async def get_invite(self, invite_id: str) -> Optional[InviteLink]:
        invite = self._invites.get(invite_id)
        return invite.model_copy(deep=True) if invite is not None else None

    async def put_invite(self, invite: InviteLink) -> None:
        async with self._lock:
            self._invites[invite.id] = invite.model_copy(deep=True)

    async def list_invites_by_organization(self, organization_id: str) -> List[InviteLink]:
        return [
            invite.model_copy(deep=True)
            for invite in self._invites.values()
            if invite.organization_id == organization_id
        ]
