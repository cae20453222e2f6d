"""Invitation and membership lifecycle.

Invitations move from pending to accepted, revoked or (by clock) expired.
Issuing and accepting an invitation consume a user slot, so both run under
the tenant's write lock and re-check the user limit. Every change that could
remove an active Owner verifies another active Owner remains, under the same
lock.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from planilla.config.settings import Settings
from planilla.core.audit import AuditLogger
from planilla.core.context import TenantContext
from planilla.core.entitlements import EntitlementGatekeeper
from planilla.core.exceptions import (
    AuthenticationError,
    ConflictError,
    InsufficientRoleError,
    InvitationInvalidError,
    LastOwnerError,
    NotFoundError,
)
from planilla.core.logging import get_logger
from planilla.core.plans import SubscriptionPlan
from planilla.core.roles import TenantRole
from planilla.core.security import (
    create_access_token,
    generate_invitation_token,
    hash_password,
    verify_password,
)
from planilla.core.tenant import TenantService
from planilla.db.models.audit import AuditAction
from planilla.db.models.tenant import Subscription, Tenant
from planilla.db.models.user import Invitation, TenantUser, User
from planilla.db.repositories import (
    InvitationRepository,
    TenantUserRepository,
    UserRepository,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class InvitationPreview:
    """What an invitee may learn from a valid token."""

    tenant_name: str
    email: str
    role: TenantRole
    expires_at: datetime


@dataclass(frozen=True)
class MemberView:
    """A membership with its identity's email."""

    member: TenantUser
    email: str | None


@dataclass
class SessionGrant:
    """A freshly issued credential and the records it was issued for."""

    token: str | None
    expires_at: datetime | None
    user: User
    membership: TenantUser
    tenant: Tenant
    subscription: Subscription | None

    @property
    def context(self) -> TenantContext:
        return TenantContext(
            tenant_id=self.tenant.id,
            role=self.membership.role_enum,
            user_id=self.user.id,
            email=self.user.email,
            plan=plan_name(self.subscription),
        )


def plan_name(subscription: Subscription | None) -> str:
    return subscription.plan if subscription else SubscriptionPlan.FREE.value


def issue_session(settings: Settings, grant: SessionGrant) -> SessionGrant:
    """Sign a credential whose tenant and role come from ``grant.membership``."""
    grant.token, grant.expires_at = create_access_token(
        settings,
        user_id=grant.user.id,
        email=grant.user.email,
        tenant_id=grant.membership.tenant_id,
        role=grant.membership.role_enum,
        plan=plan_name(grant.subscription),
    )
    return grant


class MembershipService:
    """Issues, validates, accepts and revokes invitations; manages members."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.tenants = TenantService(db)
        self.gatekeeper = EntitlementGatekeeper(db)
        self.members = TenantUserRepository(db)
        self.invitations = InvitationRepository(db)
        self.users = UserRepository(db)
        self.audit = AuditLogger(db)

    # -------------------------------------------------------------------------
    # Invitations
    # -------------------------------------------------------------------------

    async def create_invitation(
        self,
        ctx: TenantContext,
        email: str,
        role: TenantRole,
        *,
        ip_address: str | None = None,
    ) -> Invitation:
        """Invite an email address to the caller's tenant.

        Raises:
            InsufficientRoleError: Caller is not Owner/Admin, or an Admin grants Owner
            ConflictError: Already a member, or a pending invitation exists
            PlanLimitExceededError: No user slot left on the plan
            SubscriptionInactiveError: Subscription status blocks the operation
        """
        ctx.require_role(TenantRole.ADMIN)
        self._require_owner_to_grant(ctx, role)

        email = email.strip().lower()
        now = datetime.now(UTC)

        await self.tenants.lock_tenant(ctx.tenant_id)

        if await self.members.active_member_with_email(ctx.tenant_id, email):
            raise ConflictError("This user is already a member of the tenant")
        if await self.invitations.find_pending_for_email(ctx.tenant_id, email, now):
            raise ConflictError("A pending invitation already exists for this email")

        self.gatekeeper.enforce(await self.gatekeeper.can_invite_user(ctx.tenant_id))

        invitation = Invitation(
            email=email,
            role=int(role),
            token=generate_invitation_token(),
            expires_at=now + timedelta(days=self.settings.invitation_ttl_days),
            invited_by_user_id=ctx.user_id,
            created_at=now,
        )
        await self.invitations.create(ctx.tenant_id, invitation)

        await self.audit.log(
            ctx,
            AuditAction.INVITATION_CREATED,
            entity_type="invitation",
            entity_id=invitation.id,
            details={"email": email, "role": role.label},
            ip_address=ip_address,
        )
        logger.info(
            "invitation_created",
            tenant_id=ctx.tenant_id,
            invitation_id=invitation.id,
            role=role.label,
        )
        return invitation

    async def validate_invitation(self, token: str) -> InvitationPreview:
        """Check a token without consuming it.

        Checked in order: token resolves, not revoked, not accepted, not
        expired, tenant still active. Every failure is the same error.

        Raises:
            InvitationInvalidError: For any unusable token
        """
        invitation = await self._usable_invitation(token)
        tenant = await self.tenants.get_tenant(invitation.tenant_id)
        if tenant is None or not tenant.is_active:
            raise InvitationInvalidError()
        return InvitationPreview(
            tenant_name=tenant.name,
            email=invitation.email,
            role=invitation.role_enum,
            expires_at=invitation.expires_at,
        )

    async def accept_invitation(self, token: str, password: str) -> SessionGrant:
        """Consume an invitation and issue a credential for the new membership.

        The invitee's identity is the invitation email: an existing identity
        must prove the password, a new one is created with it. The issued
        credential carries the invitation's tenant and role, nothing else.

        Raises:
            InvitationInvalidError: Token unusable, or consumed concurrently
            AuthenticationError: Existing identity and wrong password
            ConflictError: Identity is already an active member
            PlanLimitExceededError: The plan no longer has room
        """
        invitation = await self._usable_invitation(token)
        tenant_id = invitation.tenant_id

        await self.tenants.lock_tenant(tenant_id)
        await self.db.refresh(invitation)
        if not invitation.is_valid():
            raise InvitationInvalidError()

        tenant = await self.tenants.get_tenant(tenant_id)
        if tenant is None or not tenant.is_active:
            raise InvitationInvalidError()

        user = await self.users.get_by_email(invitation.email)
        if user is None:
            user = await self.users.create(
                User(email=invitation.email, password_hash=hash_password(password))
            )
        elif not user.is_active or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password")

        membership = await self.members.get_by_user(tenant_id, user.id)
        if membership is not None and membership.is_active:
            raise ConflictError("This user is already a member of the tenant")

        self.gatekeeper.enforce(
            await self.gatekeeper.can_invite_user(
                tenant_id, exclude_invitation_id=invitation.id
            )
        )

        now = datetime.now(UTC)
        if not await self.invitations.mark_accepted(tenant_id, invitation.id, user.id, now):
            raise InvitationInvalidError()

        if membership is None:
            membership = await self.members.create(
                tenant_id,
                TenantUser(
                    user_id=user.id,
                    role=invitation.role,
                    is_active=True,
                    joined_at=now,
                    last_login_at=now,
                ),
            )
        else:
            membership = await self.members.update_by_id(
                tenant_id,
                membership.id,
                {
                    "role": invitation.role,
                    "is_active": True,
                    "joined_at": now,
                    "last_login_at": now,
                },
            )

        grant = SessionGrant(
            token=None,
            expires_at=None,
            user=user,
            membership=membership,
            tenant=tenant,
            subscription=await self.tenants.get_subscription(tenant_id),
        )
        await self.audit.log(
            grant.context,
            AuditAction.INVITATION_ACCEPTED,
            entity_type="invitation",
            entity_id=invitation.id,
            details={"role": membership.role_enum.label},
        )
        logger.info(
            "invitation_accepted",
            tenant_id=tenant_id,
            invitation_id=invitation.id,
            role=membership.role_enum.label,
        )
        return issue_session(self.settings, grant)

    async def revoke_invitation(
        self, ctx: TenantContext, invitation_id: int, *, ip_address: str | None = None
    ) -> Invitation:
        """Revoke a pending invitation; revoking twice is a no-op.

        Raises:
            InsufficientRoleError: Caller is not Owner/Admin
            NotFoundError: No such invitation in the caller's tenant
            SubscriptionInactiveError: Subscription state denies writes
            ConflictError: The invitation was already accepted
        """
        ctx.require_role(TenantRole.ADMIN)
        await self.gatekeeper.require_writable(ctx.tenant_id)
        invitation = await self.invitations.get_or_raise(ctx.tenant_id, invitation_id)

        if invitation.accepted_at is not None:
            raise ConflictError("Invitation has already been accepted")
        if invitation.is_revoked:
            return invitation

        invitation = await self.invitations.update_by_id(
            ctx.tenant_id, invitation_id, {"is_revoked": True}
        )
        await self.audit.log(
            ctx,
            AuditAction.INVITATION_REVOKED,
            entity_type="invitation",
            entity_id=invitation_id,
            ip_address=ip_address,
        )
        logger.info("invitation_revoked", tenant_id=ctx.tenant_id, invitation_id=invitation_id)
        return invitation

    async def list_invitations(self, ctx: TenantContext) -> list[Invitation]:
        """Pending invitations of the caller's tenant."""
        ctx.require_role(TenantRole.ADMIN)
        return await self.invitations.list_pending(ctx.tenant_id, datetime.now(UTC))

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    async def list_members(self, ctx: TenantContext) -> list[MemberView]:
        ctx.require_role(TenantRole.ADMIN)
        rows = await self.members.list_with_emails(ctx.tenant_id)
        return [MemberView(member=member, email=email) for member, email in rows]

    async def get_member(self, ctx: TenantContext, member_id: int) -> MemberView:
        ctx.require_role(TenantRole.ADMIN)
        row = await self.members.get_with_email(ctx.tenant_id, member_id)
        if row is None:
            raise NotFoundError("TenantUser", member_id)
        return MemberView(member=row[0], email=row[1])

    async def change_role(
        self,
        ctx: TenantContext,
        member_id: int,
        role: TenantRole,
        *,
        ip_address: str | None = None,
    ) -> TenantUser:
        """Change a member's role.

        Raises:
            InsufficientRoleError: Caller may not make this change
            NotFoundError: No such member in the caller's tenant
            LastOwnerError: Demoting the only active Owner
            SubscriptionInactiveError: Subscription state denies writes
        """
        ctx.require_role(TenantRole.ADMIN)
        self._require_owner_to_grant(ctx, role)

        await self.tenants.lock_tenant(ctx.tenant_id)
        await self.gatekeeper.require_writable(ctx.tenant_id)
        member = await self.members.get_or_raise(ctx.tenant_id, member_id, refresh=True)
        self._require_owner_to_modify_owner(ctx, member)

        if member.role_enum == role:
            return member
        if member.role_enum == TenantRole.OWNER and member.is_active:
            await self._ensure_other_owner(ctx.tenant_id, member.id)

        previous = member.role_enum
        member = await self.members.update_by_id(ctx.tenant_id, member_id, {"role": int(role)})
        await self.audit.log(
            ctx,
            AuditAction.MEMBER_ROLE_CHANGED,
            entity_type="tenant_user",
            entity_id=member_id,
            details={"from": previous.label, "to": role.label},
            ip_address=ip_address,
        )
        logger.info(
            "member_role_changed",
            tenant_id=ctx.tenant_id,
            member_id=member_id,
            role=role.label,
        )
        return member

    async def deactivate_member(
        self, ctx: TenantContext, member_id: int, *, ip_address: str | None = None
    ) -> TenantUser:
        """Deactivate a member, keeping the membership row.

        Raises:
            InsufficientRoleError: Caller may not make this change
            NotFoundError: No such member in the caller's tenant
            LastOwnerError: Deactivating the only active Owner
            SubscriptionInactiveError: Subscription state denies writes
        """
        ctx.require_role(TenantRole.ADMIN)
        await self.tenants.lock_tenant(ctx.tenant_id)
        await self.gatekeeper.require_writable(ctx.tenant_id)
        member = await self.members.get_or_raise(ctx.tenant_id, member_id, refresh=True)
        self._require_owner_to_modify_owner(ctx, member)

        if not member.is_active:
            return member
        if member.role_enum == TenantRole.OWNER:
            await self._ensure_other_owner(ctx.tenant_id, member.id)

        member = await self.members.update_by_id(ctx.tenant_id, member_id, {"is_active": False})
        await self.audit.log(
            ctx,
            AuditAction.MEMBER_DEACTIVATED,
            entity_type="tenant_user",
            entity_id=member_id,
            ip_address=ip_address,
        )
        logger.info("member_deactivated", tenant_id=ctx.tenant_id, member_id=member_id)
        return member

    async def remove_member(
        self, ctx: TenantContext, member_id: int, *, ip_address: str | None = None
    ) -> None:
        """Delete a membership.

        Raises:
            InsufficientRoleError: Caller may not make this change
            NotFoundError: No such member in the caller's tenant
            LastOwnerError: Removing the only active Owner
            SubscriptionInactiveError: Subscription state denies writes
        """
        ctx.require_role(TenantRole.ADMIN)
        await self.tenants.lock_tenant(ctx.tenant_id)
        await self.gatekeeper.require_writable(ctx.tenant_id)
        member = await self.members.get_or_raise(ctx.tenant_id, member_id, refresh=True)
        self._require_owner_to_modify_owner(ctx, member)

        if member.role_enum == TenantRole.OWNER and member.is_active:
            await self._ensure_other_owner(ctx.tenant_id, member.id)

        await self.members.delete_by_id(ctx.tenant_id, member_id)
        await self.audit.log(
            ctx,
            AuditAction.MEMBER_REMOVED,
            entity_type="tenant_user",
            entity_id=member_id,
            details={"user_id": member.user_id},
            ip_address=ip_address,
        )
        logger.info("member_removed", tenant_id=ctx.tenant_id, member_id=member_id)

    # -------------------------------------------------------------------------

    async def _usable_invitation(self, token: str) -> Invitation:
        invitation = await self.invitations.find_by_token(token)
        if invitation is None:
            raise InvitationInvalidError()
        if invitation.is_revoked:
            raise InvitationInvalidError()
        if invitation.accepted_at is not None:
            raise InvitationInvalidError()
        if invitation.expires_at <= datetime.now(UTC):
            raise InvitationInvalidError()
        return invitation

    async def _ensure_other_owner(self, tenant_id: int, member_id: int) -> None:
        owners = await self.members.lock_active_owners(tenant_id)
        if not any(owner.id != member_id for owner in owners):
            logger.warning("last_owner_protected", tenant_id=tenant_id, member_id=member_id)
            raise LastOwnerError(tenant_id)

    @staticmethod
    def _require_owner_to_grant(ctx: TenantContext, role: TenantRole) -> None:
        if role == TenantRole.OWNER and ctx.role != TenantRole.OWNER:
            raise InsufficientRoleError(actual=ctx.role.label, required=TenantRole.OWNER.label)

    @staticmethod
    def _require_owner_to_modify_owner(ctx: TenantContext, member: TenantUser) -> None:
        if member.role_enum == TenantRole.OWNER and ctx.role != TenantRole.OWNER:
            raise InsufficientRoleError(actual=ctx.role.label, required=TenantRole.OWNER.label)
