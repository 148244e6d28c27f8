"""Unit tests for organizations, membership, invites and permissions."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError

from src.brokerage.errors import OrganizationNotFoundError, UserNotFoundError
from src.brokerage.organizations import (
    INVITE_TTL,
    ROLE_PERMISSIONS,
    InMemoryOrganizationStore,
    OrganizationService,
    OrganizationType,
    Permission,
    UserRole,
    permissions_for_role,
)


def run_async(coro):
    return asyncio.run(coro)


async def _service_with_org() -> tuple:
    service = OrganizationService(InMemoryOrganizationStore())
    owner = await service.create_user_profile(
        "owner-1", "owner@example.com", "Pat Owner", UserRole.BUSINESS_OWNER
    )
    organization = await service.create_organization(
        "Acme Brokerage", OrganizationType.BROKERAGE, owner.id
    )
    return service, organization


class TestPermissions:
    def test_owner_has_every_permission(self):
        assert set(ROLE_PERMISSIONS[UserRole.BUSINESS_OWNER]) == set(Permission)

    def test_client_role_is_limited(self):
        assert set(ROLE_PERMISSIONS[UserRole.CLIENT]) == {
            Permission.DASHBOARD_VIEW,
            Permission.DOCUMENT_ACCESS,
        }

    def test_role_table_is_read_only(self):
        with pytest.raises(TypeError):
            ROLE_PERMISSIONS[UserRole.CLIENT] = ()

    def test_no_organization_means_no_permissions(self):
        assert permissions_for_role(UserRole.EMPLOYEE, has_organization=False) == ()
        assert permissions_for_role(UserRole.BUSINESS_OWNER, has_organization=False)


class TestOrganizations:
    def test_owner_joins_new_organization(self):
        async def test():
            service, organization = await _service_with_org()

            owner = await service.get_user("owner-1")
            assert organization.employees == ["owner-1"]
            assert owner.organization_id == organization.id
            assert owner.role == UserRole.BUSINESS_OWNER
            assert await service.organizations_by_owner("owner-1") == [organization]
            assert await service.validate_user_access("owner-1", organization.id)

        run_async(test())

    def test_profile_without_organization_has_no_permissions(self):
        async def test():
            service = OrganizationService(InMemoryOrganizationStore())

            user = await service.create_user_profile(
                "u-1", "u@example.com", "Alex Kim", UserRole.EMPLOYEE
            )

            assert user.permissions == []
            assert user.profile.first_name == "Alex"
            assert user.profile.last_name == "Kim"

        run_async(test())

    def test_add_and_remove_users(self):
        async def test():
            service, organization = await _service_with_org()
            await service.create_user_profile("emp-1", "e@example.com", "Eli", UserRole.EMPLOYEE)
            await service.create_user_profile("cli-1", "c@example.com", "Cam", UserRole.CLIENT)

            employee = await service.add_user("emp-1", organization.id, UserRole.EMPLOYEE)
            await service.add_user("cli-1", organization.id, UserRole.CLIENT)

            assert employee.permissions == list(ROLE_PERMISSIONS[UserRole.EMPLOYEE])
            assert {u.id for u in await service.employees(organization.id)} == {"owner-1", "emp-1"}
            assert [u.id for u in await service.client_users(organization.id)] == ["cli-1"]
            stored = await service.get_organization(organization.id)
            assert stored.clients == ["cli-1"]

            removed = await service.remove_user("emp-1", organization.id)

            assert removed.organization_id is None
            assert removed.permissions == []
            stored = await service.get_organization(organization.id)
            assert "emp-1" not in stored.employees

        run_async(test())

    def test_missing_user_or_organization(self):
        async def test():
            service, organization = await _service_with_org()

            with pytest.raises(UserNotFoundError):
                await service.add_user("ghost", organization.id, UserRole.EMPLOYEE)
            with pytest.raises(OrganizationNotFoundError):
                await service.add_user("owner-1", "no-org", UserRole.EMPLOYEE)
            with pytest.raises(UserNotFoundError):
                await service.record_login("ghost")

        run_async(test())

    def test_role_lookup_is_scoped(self):
        async def test():
            service, organization = await _service_with_org()

            assert (
                await service.get_user_organization_role("owner-1", organization.id)
                == UserRole.BUSINESS_OWNER
            )
            assert await service.get_user_organization_role("owner-1", "other") is None
            assert not await service.validate_user_access("owner-1", "other")

        run_async(test())

    def test_settings_update(self):
        async def test():
            service, organization = await _service_with_org()

            updated = await service.update_organization_settings(
                organization.id, allow_client_self_registration=False
            )

            assert updated.settings.allow_client_self_registration is False
            assert updated.settings.require_employee_approval is True
            with pytest.raises(ValidationError):
                await service.update_organization_settings(
                    organization.id, default_employee_permissions=["not-a-permission"]
                )

        run_async(test())

    def test_record_login(self):
        async def test():
            service, _ = await _service_with_org()

            user = await service.record_login("owner-1")

            assert user.last_login_at is not None

        run_async(test())


class TestPermissionsManagement:
    def test_update_and_check_permissions(self):
        async def test():
            service, organization = await _service_with_org()
            await service.create_user_profile(
                "emp-1", "e@example.com", "Eli", UserRole.EMPLOYEE, organization.id
            )

            assert not await service.user_has_permission("emp-1", Permission.BILLING_ACCESS)

            await service.update_user_permissions(
                "emp-1", [Permission.BILLING_ACCESS, Permission.BILLING_ACCESS]
            )

            user = await service.get_user("emp-1")
            assert user.permissions == [Permission.BILLING_ACCESS]
            assert await service.user_has_permission("emp-1", Permission.BILLING_ACCESS)
            assert not await service.user_has_permission("ghost", Permission.BILLING_ACCESS)

        run_async(test())


class TestInvites:
    def test_invite_round_trip(self):
        async def test():
            service, organization = await _service_with_org()
            await service.create_user_profile("new-1", "n@example.com", "Nia", UserRole.CLIENT)

            invite = await service.create_invite(
                organization.id, UserRole.EMPLOYEE, invited_by="owner-1"
            )
            assert invite.permissions == list(ROLE_PERMISSIONS[UserRole.EMPLOYEE])
            assert [i.id for i in await service.active_invites(organization.id)] == [invite.id]

            user = await service.use_invite(invite.id, "new-1")

            assert user.organization_id == organization.id
            assert user.role == UserRole.EMPLOYEE
            assert await service.get_invite(invite.id) is None
            assert await service.use_invite(invite.id, "new-1") is None
            assert await service.active_invites(organization.id) == []

        run_async(test())

    def test_invite_with_custom_permissions(self):
        async def test():
            service, organization = await _service_with_org()
            await service.create_user_profile("new-1", "n@example.com", "Nia", UserRole.CLIENT)

            invite = await service.create_invite(
                organization.id,
                UserRole.EMPLOYEE,
                invited_by="owner-1",
                permissions=[Permission.REPORTS_ACCESS],
            )
            user = await service.use_invite(invite.id, "new-1")

            assert user.permissions == [Permission.REPORTS_ACCESS]

        run_async(test())

    def test_unknown_user_leaves_invite_usable(self):
        async def test():
            service, organization = await _service_with_org()
            invite = await service.create_invite(
                organization.id, UserRole.EMPLOYEE, invited_by="owner-1"
            )

            with pytest.raises(UserNotFoundError):
                await service.use_invite(invite.id, "typo-user")

            assert (await service.get_invite(invite.id)).is_active
            await service.create_user_profile("new-1", "n@example.com", "Nia", UserRole.CLIENT)
            user = await service.use_invite(invite.id, "new-1")
            assert user.organization_id == organization.id

        run_async(test())

    def test_expired_invite_is_unusable(self):
        async def test():
            service, organization = await _service_with_org()
            invite = await service.create_invite(
                organization.id, UserRole.CLIENT, invited_by="owner-1"
            )

            later = invite.expires_at + timedelta(seconds=1)

            assert invite.is_usable()
            assert not invite.is_usable(now=later)
            assert INVITE_TTL == timedelta(days=7)

        run_async(test())

    def test_invite_for_missing_organization(self):
        async def test():
            service = OrganizationService(InMemoryOrganizationStore())

            with pytest.raises(OrganizationNotFoundError):
                await service.create_invite("nope", UserRole.CLIENT, invited_by="x")

        run_async(test())


class TestJoinCodes:
    def test_join_by_code(self):
        async def test():
            service, organization = await _service_with_org()
            await service.create_user_profile("new-1", "n@example.com", "Nia", UserRole.CLIENT)

            code = await service.generate_join_code(organization.id)
            user = await service.join_by_code(code.lower(), "new-1", UserRole.CLIENT)

            assert code.startswith(organization.id[:4].upper() + "-")
            assert (await service.get_organization(organization.id)).join_code == code
            assert user.organization_id == organization.id

        run_async(test())

    def test_unknown_code(self):
        async def test():
            service, _ = await _service_with_org()

            assert await service.join_by_code("NOPE-0000", "owner-1", UserRole.CLIENT) is None

        run_async(test())
