"""FastAPI dependencies for API endpoints."""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from planilla.api.middleware.logging import get_client_ip
from planilla.config.settings import Settings
from planilla.core.context import TenantContext
from planilla.core.entitlements import EntitlementGatekeeper
from planilla.core.exceptions import AuthenticationError
from planilla.core.logging import get_logger
from planilla.core.roles import TenantRole, has_role
from planilla.core.tenant import TenantService
from planilla.db.config import get_db
from planilla.db.repositories import TenantUserRepository

logger = get_logger(__name__)

__all__ = [
    "get_db",
    "get_settings_from_app",
    "get_tenant_context",
    "get_active_context",
    "require_role",
    "get_client_address",
    "DbSession",
    "AppSettings",
    "CurrentContext",
    "ActiveContext",
    "ClientAddress",
]


def get_settings_from_app(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_tenant_context(request: Request) -> TenantContext:
    """Get the caller's context resolved by AuthenticationMiddleware.

    Raises:
        AuthenticationError: If the request carries no authenticated tenant
    """
    ctx = getattr(request.state, "tenant_context", None)
    if ctx is None or not ctx.is_authenticated:
        raise AuthenticationError("No authenticated tenant context")
    return ctx


async def get_active_context(
    ctx: Annotated[TenantContext, Depends(get_tenant_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TenantContext:
    """Caller context confirmed against the database.

    The tenant must still be active and the caller must still hold an active
    membership in it. When the stored role differs from the credential the
    stored role wins unless it would grant more than the credential does.

    Raises:
        TenantNotFoundError: If the tenant was deleted
        TenantInactiveError: If the tenant was deactivated
        AuthenticationError: If the membership was removed or deactivated
    """
    await TenantService(db).validate_tenant_active(ctx.tenant_id)

    member = await TenantUserRepository(db).get_by_user(ctx.tenant_id, ctx.user_id)
    if member is None or not member.is_active:
        logger.info(
            "membership_revoked_credential_rejected",
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
        )
        raise AuthenticationError("Membership is no longer active")

    stored = member.role_enum
    if stored != ctx.role and not has_role(stored, ctx.role):
        return ctx.model_copy(update={"role": stored})
    return ctx


def require_role(
    required: TenantRole, *, writable: bool = False
) -> Callable[..., Awaitable[TenantContext]]:
    """Dependency factory enforcing the role lattice on a route.

    With ``writable`` the subscription must also permit writes; the role is
    checked first.

    Usage:
        @router.delete("/{id}")
        async def remove(ctx: Annotated[TenantContext, Depends(require_role(TenantRole.ADMIN))]):
            ...
    """

    async def dependency(
        ctx: Annotated[TenantContext, Depends(get_active_context)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> TenantContext:
        ctx.require_role(required)
        if writable:
            await EntitlementGatekeeper(db).require_writable(ctx.tenant_id)
        return ctx

    return dependency


def get_client_address(request: Request) -> str | None:
    return get_client_ip(request)


DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings_from_app)]
CurrentContext = Annotated[TenantContext, Depends(get_tenant_context)]
ActiveContext = Annotated[TenantContext, Depends(get_active_context)]
ClientAddress = Annotated[str | None, Depends(get_client_address)]
