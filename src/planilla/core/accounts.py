"""Account registration, login and credential refresh."""

from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from planilla.config.settings import Settings
from planilla.core.audit import AuditLogger
from planilla.core.context import TenantContext
from planilla.core.exceptions import AuthenticationError, ConflictError
from planilla.core.logging import get_logger
from planilla.core.membership import SessionGrant, issue_session
from planilla.core.roles import TenantRole
from planilla.core.security import hash_password, verify_password
from planilla.core.tenant import TenantService
from planilla.db.models.audit import AuditAction
from planilla.db.models.user import TenantUser, User
from planilla.db.repositories import TenantUserRepository, UserRepository
from planilla.db.seed import seed_tenant_payroll_config

logger = get_logger(__name__)

_INVALID_CREDENTIALS = "Invalid email or password"


class AccountService:
    """Signup, login and session refresh for tenant members."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings
        self.tenants = TenantService(db)
        self.users = UserRepository(db)
        self.members = TenantUserRepository(db)
        self.audit = AuditLogger(db)

    async def register(
        self,
        *,
        email: str,
        password: str,
        company_name: str,
        ruc: str | None = None,
        dv: str | None = None,
        ip_address: str | None = None,
    ) -> SessionGrant:
        """Create an identity, a tenant on a Professional trial, and its Owner.

        Raises:
            ConflictError: If the email or the company tax id is already registered
        """
        email = email.strip().lower()
        if await self.users.get_by_email(email) is not None:
            raise ConflictError("This email is already registered")

        snapshot = await self.tenants.create_tenant(
            company_name.strip(),
            ruc=ruc,
            dv=dv,
            email=email,
            trial_days=self.settings.trial_days,
        )
        user = await self.users.create(User(email=email, password_hash=hash_password(password)))

        now = datetime.now(UTC)
        membership = await self.members.create(
            snapshot.tenant.id,
            TenantUser(
                user_id=user.id,
                role=int(TenantRole.OWNER),
                is_active=True,
                joined_at=now,
                last_login_at=now,
            ),
        )
        await seed_tenant_payroll_config(self.db, snapshot.tenant.id)

        grant = SessionGrant(
            token=None,
            expires_at=None,
            user=user,
            membership=membership,
            tenant=snapshot.tenant,
            subscription=snapshot.subscription,
        )
        await self.audit.log(
            grant.context,
            AuditAction.TENANT_REGISTERED,
            entity_type="tenant",
            entity_id=snapshot.tenant.id,
            details={"company_name": snapshot.tenant.name},
            ip_address=ip_address,
        )
        logger.info("account_registered", tenant_id=snapshot.tenant.id, user_id=user.id)
        return issue_session(self.settings, grant)

    async def login(
        self, email: str, password: str, *, ip_address: str | None = None
    ) -> SessionGrant:
        """Authenticate and open a session on the most recently joined tenant.

        Raises:
            AuthenticationError: Bad credentials, or no active membership remains
        """
        user = await self.users.get_by_email(email.strip().lower())
        if user is None or not user.is_active:
            raise AuthenticationError(_INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            logger.info("login_failed", user_id=user.id)
            raise AuthenticationError(_INVALID_CREDENTIALS)

        for membership in await self.members.memberships_for_user(user.id):
            tenant = await self.tenants.get_tenant(membership.tenant_id)
            if tenant is None or not tenant.is_active:
                continue

            membership = await self.members.update_by_id(
                tenant.id, membership.id, {"last_login_at": datetime.now(UTC)}
            )
            grant = SessionGrant(
                token=None,
                expires_at=None,
                user=user,
                membership=membership,
                tenant=tenant,
                subscription=await self.tenants.get_subscription(tenant.id),
            )
            await self.audit.log(
                grant.context, AuditAction.USER_LOGIN, entity_type="user", ip_address=ip_address
            )
            logger.info("login_succeeded", tenant_id=tenant.id, user_id=user.id)
            return issue_session(self.settings, grant)

        raise AuthenticationError("No active tenant membership")

    async def current(self, ctx: TenantContext) -> SessionGrant:
        """Reload the caller's identity, membership, tenant and subscription.

        The returned grant carries no token.

        Raises:
            AuthenticationError: If the membership or tenant is no longer active
        """
        user = await self.users.get(ctx.user_id)
        membership = await self.members.get_by_user(ctx.tenant_id, ctx.user_id)
        if user is None or not user.is_active or membership is None or not membership.is_active:
            raise AuthenticationError("Membership is no longer active")

        tenant = await self.tenants.get_tenant(ctx.tenant_id)
        if tenant is None or not tenant.is_active:
            raise AuthenticationError("Tenant is no longer active")

        return SessionGrant(
            token=None,
            expires_at=None,
            user=user,
            membership=membership,
            tenant=tenant,
            subscription=await self.tenants.get_subscription(ctx.tenant_id),
        )

    async def refresh(self, ctx: TenantContext) -> SessionGrant:
        """Re-issue the caller's credential with their current role and plan."""
        grant = await self.current(ctx)
        logger.debug("session_refreshed", tenant_id=ctx.tenant_id, user_id=ctx.user_id)
        return issue_session(self.settings, grant)
