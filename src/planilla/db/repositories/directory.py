"""Repositories for users, memberships and invitations."""

from datetime import datetime

from sqlalchemy import select

from planilla.core.roles import TenantRole
from planilla.db.models.user import Invitation, TenantUser, User

from .base import BaseRepository
from .scoped import TenantScopedRepository, require_tenant_id


class UserRepository(BaseRepository[User, str]):
    """Identity records, looked up by id or email."""

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()


class TenantUserRepository(TenantScopedRepository[TenantUser]):
    """Tenant memberships."""

    async def get_by_user(self, tenant_id: int, user_id: str) -> TenantUser | None:
        return await self.find_one(tenant_id, TenantUser.user_id == user_id)

    async def count_active(self, tenant_id: int) -> int:
        return await self.count(tenant_id, TenantUser.is_active.is_(True))

    async def active_member_with_email(self, tenant_id: int, email: str) -> TenantUser | None:
        """Active membership of the tenant whose identity has this email."""
        stmt = (
            self._scoped(tenant_id)
            .join(User, User.id == TenantUser.user_id)
            .where(TenantUser.is_active.is_(True), User.email == email.lower())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list_with_emails(self, tenant_id: int) -> list[tuple[TenantUser, str | None]]:
        """Memberships of the tenant paired with their identity's email."""
        stmt = (
            self._scoped(tenant_id)
            .add_columns(User.email)
            .outerjoin(User, User.id == TenantUser.user_id)
            .order_by(TenantUser.joined_at, TenantUser.id)
        )
        result = await self.db.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def get_with_email(
        self, tenant_id: int, member_id: int
    ) -> tuple[TenantUser, str | None] | None:
        stmt = (
            self._scoped(tenant_id)
            .where(TenantUser.id == member_id)
            .add_columns(User.email)
            .outerjoin(User, User.id == TenantUser.user_id)
            .execution_options(populate_existing=True)
        )
        row = (await self.db.execute(stmt)).first()
        return (row[0], row[1]) if row else None

    async def lock_active_owners(self, tenant_id: int) -> list[TenantUser]:
        """Lock and return the tenant's active Owner memberships.

        Held until the transaction ends, so concurrent owner removals for the
        same tenant are serialized.
        """
        stmt = (
            self._scoped(tenant_id)
            .where(
                TenantUser.role == TenantRole.OWNER.value,
                TenantUser.is_active.is_(True),
            )
            .order_by(TenantUser.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def memberships_for_user(self, user_id: str) -> list[TenantUser]:
        """Active memberships of one identity across tenants.

        Scoped by the authenticated identity rather than a tenant; only used
        to choose the tenant at login, before a tenant context exists.
        """
        stmt = (
            select(TenantUser)
            .where(TenantUser.user_id == user_id, TenantUser.is_active.is_(True))
            .order_by(TenantUser.joined_at.desc(), TenantUser.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class InvitationRepository(TenantScopedRepository[Invitation]):
    """Tenant invitations."""

    @staticmethod
    def pending_criteria(now: datetime):
        return (
            Invitation.accepted_at.is_(None),
            Invitation.is_revoked.is_(False),
            Invitation.expires_at > now,
        )

    async def count_pending(
        self, tenant_id: int, now: datetime, *, exclude_id: int | None = None
    ) -> int:
        """Count invitations that still hold a user slot."""
        criteria = list(self.pending_criteria(now))
        if exclude_id is not None:
            criteria.append(Invitation.id != exclude_id)
        return await self.count(tenant_id, *criteria)

    async def list_pending(self, tenant_id: int, now: datetime) -> list[Invitation]:
        return await self.list(
            tenant_id,
            *self.pending_criteria(now),
            order_by=Invitation.created_at.desc(),
        )

    async def find_pending_for_email(
        self, tenant_id: int, email: str, now: datetime
    ) -> Invitation | None:
        return await self.find_one(
            tenant_id, Invitation.email == email.lower(), *self.pending_criteria(now)
        )

    async def find_by_token(self, token: str) -> Invitation | None:
        """Resolve an invitation by its token.

        The token is the capability: it is unguessable and identifies exactly
        one tenant, so this lookup precedes any tenant context.
        """
        if not token:
            return None
        result = await self.db.execute(select(Invitation).where(Invitation.token == token))
        return result.scalar_one_or_none()

    async def mark_accepted(
        self, tenant_id: int, invitation_id: int, user_id: str, now: datetime
    ) -> bool:
        """Consume an invitation exactly once.

        Returns False when another transaction accepted or revoked it first.
        """
        stmt = (
            Invitation.__table__.update()
            .where(
                Invitation.id == invitation_id,
                Invitation.tenant_id == require_tenant_id(tenant_id),
                Invitation.accepted_at.is_(None),
                Invitation.is_revoked.is_(False),
            )
            .values(accepted_at=now, accepted_by_user_id=user_id)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
