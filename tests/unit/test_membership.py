"""Tests for the invitation and membership lifecycle."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import update

from planilla.core.context import resolve_context
from planilla.core.exceptions import (
    AuthenticationError,
    ConflictError,
    InsufficientRoleError,
    InvitationInvalidError,
    LastOwnerError,
    NotFoundError,
    PlanLimitExceededError,
    SubscriptionInactiveError,
)
from planilla.core.membership import MembershipService
from planilla.core.plans import SubscriptionPlan, SubscriptionStatus
from planilla.core.roles import TenantRole
from planilla.core.security import decode_access_token, hash_password
from planilla.db.models.audit import AuditAction
from planilla.db.models.tenant import Subscription
from planilla.db.repositories import (
    AuditLogRepository,
    InvitationRepository,
    TenantUserRepository,
)


async def _member_id(session, ctx) -> int:
    membership = await TenantUserRepository(session).get_by_user(ctx.tenant_id, ctx.user_id)
    return membership.id


@pytest.fixture
def service_for(test_settings):
    def build(session) -> MembershipService:
        return MembershipService(session, test_settings)

    return build


@pytest.mark.asyncio
class TestCreateInvitation:
    async def test_admin_invites(self, db_session, make_tenant, add_member, service_for):
        snapshot = await make_tenant(db_session, "Acme")
        admin = await add_member(
            db_session, snapshot.tenant.id, "admin@acme.test", TenantRole.ADMIN
        )

        invitation = await service_for(db_session).create_invitation(
            admin, " New@Acme.Test ", TenantRole.MANAGER
        )

        assert invitation.tenant_id == snapshot.tenant.id
        assert invitation.email == "new@acme.test"
        assert invitation.role_enum == TenantRole.MANAGER
        assert invitation.expires_at > datetime.now(UTC) + timedelta(days=6)
        entries = await AuditLogRepository(db_session).list(snapshot.tenant.id)
        assert [e.action for e in entries] == [AuditAction.INVITATION_CREATED.value]

    @pytest.mark.parametrize(
        "role", [TenantRole.MANAGER, TenantRole.ACCOUNTANT, TenantRole.EMPLOYEE]
    )
    async def test_below_admin_cannot_invite(
        self, db_session, make_tenant, add_member, service_for, role
    ):
        snapshot = await make_tenant(db_session, "Acme")
        ctx = await add_member(db_session, snapshot.tenant.id, "m@acme.test", role)

        with pytest.raises(InsufficientRoleError):
            await service_for(db_session).create_invitation(ctx, "x@acme.test", TenantRole.EMPLOYEE)

    async def test_only_owner_grants_owner(self, db_session, make_tenant, add_member, service_for):
        snapshot = await make_tenant(db_session, "Acme")
        tenant_id = snapshot.tenant.id
        admin = await add_member(db_session, tenant_id, "admin@acme.test", TenantRole.ADMIN)
        owner = await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        service = service_for(db_session)

        with pytest.raises(InsufficientRoleError):
            await service.create_invitation(admin, "boss@acme.test", TenantRole.OWNER)

        invitation = await service.create_invitation(owner, "boss@acme.test", TenantRole.OWNER)
        assert invitation.role_enum == TenantRole.OWNER

    async def test_existing_member_conflicts(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(db_session, "Acme")
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )

        with pytest.raises(ConflictError):
            await service_for(db_session).create_invitation(
                owner, "OWNER@acme.test", TenantRole.ADMIN
            )

    async def test_duplicate_pending_conflicts(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(db_session, "Acme")
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        service = service_for(db_session)
        await service.create_invitation(owner, "x@acme.test", TenantRole.EMPLOYEE)

        with pytest.raises(ConflictError):
            await service.create_invitation(owner, "x@acme.test", TenantRole.MANAGER)

    async def test_user_limit_counts_pending(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=SubscriptionStatus.ACTIVE
        )
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        service = service_for(db_session)
        await service.create_invitation(owner, "a@acme.test", TenantRole.EMPLOYEE)
        await service.create_invitation(owner, "b@acme.test", TenantRole.EMPLOYEE)

        with pytest.raises(PlanLimitExceededError) as exc_info:
            await service.create_invitation(owner, "c@acme.test", TenantRole.EMPLOYEE)

        assert exc_info.value.limit == 3
        assert exc_info.value.suggested_plan == "Professional"

    async def test_past_due_blocks_invites(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=SubscriptionStatus.PAST_DUE
        )
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )

        with pytest.raises(SubscriptionInactiveError):
            await service_for(db_session).create_invitation(
                owner, "a@acme.test", TenantRole.EMPLOYEE
            )


@pytest.mark.asyncio
class TestValidateAndRevoke:
    async def test_valid_token_preview(self, db_session, make_tenant, add_member, service_for):
        snapshot = await make_tenant(db_session, "Acme Corp")
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        service = service_for(db_session)
        invitation = await service.create_invitation(owner, "m@acme.test", TenantRole.MANAGER)

        preview = await service.validate_invitation(invitation.token)

        assert preview.tenant_name == "Acme Corp"
        assert preview.email == "m@acme.test"
        assert preview.role == TenantRole.MANAGER

    @pytest.mark.parametrize("token", ["", "unknown-token"])
    async def test_unknown_token_invalid(self, db_session, service_for, token):
        with pytest.raises(InvitationInvalidError):
            await service_for(db_session).validate_invitation(token)

    async def test_expired_token_invalid(self, db_session, make_tenant, add_member, service_for):
        snapshot = await make_tenant(db_session, "Acme")
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        service = service_for(db_session)
        invitation = await service.create_invitation(owner, "m@acme.test", TenantRole.MANAGER)
        await InvitationRepository(db_session).update_by_id(
            snapshot.tenant.id,
            invitation.id,
            {"expires_at": datetime.now(UTC) - timedelta(minutes=1)},
        )

        with pytest.raises(InvitationInvalidError):
            await service.validate_invitation(invitation.token)

    async def test_inactive_tenant_invalidates(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(db_session, "Acme")
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        service = service_for(db_session)
        invitation = await service.create_invitation(owner, "m@acme.test", TenantRole.MANAGER)
        snapshot.tenant.is_active = False
        await db_session.flush()

        with pytest.raises(InvitationInvalidError):
            await service.validate_invitation(invitation.token)

    async def test_revoke_is_idempotent(self, db_session, make_tenant, add_member, service_for):
        snapshot = await make_tenant(db_session, "Acme")
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        service = service_for(db_session)
        invitation = await service.create_invitation(owner, "m@acme.test", TenantRole.MANAGER)

        revoked = await service.revoke_invitation(owner, invitation.id)
        again = await service.revoke_invitation(owner, invitation.id)

        assert revoked.is_revoked
        assert again.is_revoked
        with pytest.raises(InvitationInvalidError):
            await service.validate_invitation(invitation.token)
        assert await service.list_invitations(owner) == []

    async def test_revoke_other_tenants_invitation_not_found(
        self, db_session, make_tenant, add_member, service_for
    ):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        owner_a = await add_member(db_session, a.tenant.id, "owner@acme.test", TenantRole.OWNER)
        owner_b = await add_member(db_session, b.tenant.id, "owner@beta.test", TenantRole.OWNER)
        service = service_for(db_session)
        invitation = await service.create_invitation(owner_a, "m@acme.test", TenantRole.MANAGER)

        with pytest.raises(NotFoundError):
            await service.revoke_invitation(owner_b, invitation.id)


@pytest.mark.asyncio
class TestAcceptInvitation:
    async def test_new_identity_joins_with_invited_role(
        self, db_session, make_tenant, add_member, service_for, test_settings
    ):
        snapshot = await make_tenant(db_session, "Acme")
        tenant_id = snapshot.tenant.id
        owner = await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        service = service_for(db_session)
        invitation = await service.create_invitation(owner, "m@acme.test", TenantRole.MANAGER)

        grant = await service.accept_invitation(invitation.token, "a-strong-password")

        assert grant.membership.tenant_id == tenant_id
        assert grant.membership.role_enum == TenantRole.MANAGER
        ctx = resolve_context(decode_access_token(test_settings, grant.token))
        assert ctx.tenant_id == tenant_id
        assert ctx.role == TenantRole.MANAGER
        assert ctx.email == "m@acme.test"

    async def test_accepting_twice_fails(self, db_session, make_tenant, add_member, service_for):
        snapshot = await make_tenant(db_session, "Acme")
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        service = service_for(db_session)
        invitation = await service.create_invitation(owner, "m@acme.test", TenantRole.MANAGER)
        await service.accept_invitation(invitation.token, "a-strong-password")

        with pytest.raises(InvitationInvalidError):
            await service.accept_invitation(invitation.token, "a-strong-password")

    async def test_existing_identity_must_prove_password(
        self, db_session, make_tenant, add_member, service_for
    ):
        a = await make_tenant(db_session, "Acme")
        b = await make_tenant(db_session, "Beta")
        await add_member(
            db_session,
            b.tenant.id,
            "shared@x.test",
            TenantRole.EMPLOYEE,
            password_hash=hash_password("right-password", iterations=1000),
        )
        owner = await add_member(db_session, a.tenant.id, "owner@acme.test", TenantRole.OWNER)
        service = service_for(db_session)
        invitation = await service.create_invitation(owner, "shared@x.test", TenantRole.ADMIN)

        with pytest.raises(AuthenticationError):
            await service.accept_invitation(invitation.token, "wrong-password")

        grant = await service.accept_invitation(invitation.token, "right-password")
        assert grant.membership.tenant_id == a.tenant.id
        assert grant.membership.role_enum == TenantRole.ADMIN

    async def test_accept_takes_its_own_slot_on_a_full_plan(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=SubscriptionStatus.ACTIVE
        )
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        service = service_for(db_session)
        first = await service.create_invitation(owner, "a@acme.test", TenantRole.EMPLOYEE)
        await service.create_invitation(owner, "b@acme.test", TenantRole.EMPLOYEE)

        grant = await service.accept_invitation(first.token, "a-strong-password")

        assert grant.membership.is_active
        assert await TenantUserRepository(db_session).count_active(snapshot.tenant.id) == 2


@pytest.mark.asyncio
class TestLastOwner:
    async def test_sole_owner_cannot_be_removed(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(db_session, "Acme")
        owner = await add_member(
            db_session, snapshot.tenant.id, "owner@acme.test", TenantRole.OWNER
        )
        member_id = await _member_id(db_session, owner)
        service = service_for(db_session)

        with pytest.raises(LastOwnerError):
            await service.remove_member(owner, member_id)
        with pytest.raises(LastOwnerError):
            await service.deactivate_member(owner, member_id)
        with pytest.raises(LastOwnerError):
            await service.change_role(owner, member_id, TenantRole.ADMIN)

    async def test_second_owner_allows_removal(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(db_session, "Acme")
        tenant_id = snapshot.tenant.id
        owner = await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        other = await add_member(db_session, tenant_id, "other@acme.test", TenantRole.OWNER)
        service = service_for(db_session)

        await service.remove_member(owner, await _member_id(db_session, other))

        members = await service.list_members(owner)
        assert [view.email for view in members] == ["owner@acme.test"]

    async def test_admin_cannot_touch_owner(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(db_session, "Acme")
        tenant_id = snapshot.tenant.id
        owner = await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        admin = await add_member(db_session, tenant_id, "admin@acme.test", TenantRole.ADMIN)

        with pytest.raises(InsufficientRoleError):
            await service_for(db_session).deactivate_member(
                admin, await _member_id(db_session, owner)
            )

    async def test_change_role_of_regular_member(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(db_session, "Acme")
        tenant_id = snapshot.tenant.id
        owner = await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        clerk = await add_member(db_session, tenant_id, "clerk@acme.test", TenantRole.EMPLOYEE)

        member = await service_for(db_session).change_role(
            owner, await _member_id(db_session, clerk), TenantRole.ACCOUNTANT
        )

        assert member.role_enum == TenantRole.ACCOUNTANT


@pytest.mark.asyncio
class TestMembershipWritesNeedUsableSubscription:
    async def test_canceled_blocks_member_changes(
        self, db_session, make_tenant, add_member, service_for
    ):
        snapshot = await make_tenant(db_session, "Acme")
        tenant_id = snapshot.tenant.id
        owner = await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        clerk = await add_member(db_session, tenant_id, "clerk@acme.test", TenantRole.EMPLOYEE)
        service = service_for(db_session)
        invitation = await service.create_invitation(owner, "new@acme.test", TenantRole.EMPLOYEE)
        clerk_id = await _member_id(db_session, clerk)

        await db_session.execute(
            update(Subscription)
            .where(Subscription.tenant_id == tenant_id)
            .values(status=SubscriptionStatus.CANCELED.value, trial_ends_at=None)
        )

        with pytest.raises(SubscriptionInactiveError):
            await service.change_role(owner, clerk_id, TenantRole.ACCOUNTANT)
        with pytest.raises(SubscriptionInactiveError):
            await service.deactivate_member(owner, clerk_id)
        with pytest.raises(SubscriptionInactiveError):
            await service.remove_member(owner, clerk_id)
        with pytest.raises(SubscriptionInactiveError):
            await service.revoke_invitation(owner, invitation.id)

        members = await service.list_members(owner)
        assert sorted(view.email for view in members) == ["clerk@acme.test", "owner@acme.test"]


@pytest.mark.asyncio
class TestConcurrentInvitations:
    async def test_last_slot_goes_to_exactly_one_caller(
        self, session_factory, make_tenant, add_member, test_settings
    ):
        async with session_factory() as setup:
            snapshot = await make_tenant(
                setup, "Acme", plan=SubscriptionPlan.STARTER, status=SubscriptionStatus.ACTIVE
            )
            tenant_id = snapshot.tenant.id
            owner = await add_member(setup, tenant_id, "owner@acme.test", TenantRole.OWNER)
            await MembershipService(setup, test_settings).create_invitation(
                owner, "first@acme.test", TenantRole.EMPLOYEE
            )
            await setup.commit()

        async def invite(email: str) -> int:
            async with session_factory() as session:
                try:
                    invitation = await MembershipService(session, test_settings).create_invitation(
                        owner, email, TenantRole.EMPLOYEE
                    )
                    await session.commit()
                    return invitation.id
                except Exception:
                    await session.rollback()
                    raise

        results = await asyncio.gather(
            invite("a@acme.test"), invite("b@acme.test"), return_exceptions=True
        )

        successes = [r for r in results if isinstance(r, int)]
        failures = [r for r in results if isinstance(r, PlanLimitExceededError)]
        assert len(successes) == 1
        assert len(failures) == 1

        async with session_factory() as check:
            pending = await InvitationRepository(check).count_pending(tenant_id, datetime.now(UTC))
        assert pending == 2


@pytest.mark.asyncio
class TestConcurrentOwnerRemoval:
    async def test_owners_removing_each_other_leave_one_owner(
        self, session_factory, make_tenant, add_member, test_settings
    ):
        async with session_factory() as setup:
            snapshot = await make_tenant(setup, "Acme")
            tenant_id = snapshot.tenant.id
            first = await add_member(setup, tenant_id, "first@acme.test", TenantRole.OWNER)
            second = await add_member(setup, tenant_id, "second@acme.test", TenantRole.OWNER)
            first_id = await _member_id(setup, first)
            second_id = await _member_id(setup, second)
            await setup.commit()

        async def remove(ctx, member_id: int) -> None:
            async with session_factory() as session:
                try:
                    await MembershipService(session, test_settings).remove_member(ctx, member_id)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        results = await asyncio.gather(
            remove(first, second_id), remove(second, first_id), return_exceptions=True
        )

        assert results.count(None) == 1
        assert len([r for r in results if isinstance(r, LastOwnerError)]) == 1

        async with session_factory() as check:
            remaining = await TenantUserRepository(check).count_active(tenant_id)
        assert remaining == 1
