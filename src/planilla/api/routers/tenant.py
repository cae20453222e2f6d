"""Tenant, member and invitation endpoints for the caller's tenant.

- GET /api/tenant - Tenant details with subscription
- GET /api/tenant/usage - Resource usage against plan limits
- GET /api/tenant/users - Members (Admin+)
- PATCH /api/tenant/users/{member_id} - Change role or deactivate (Admin+)
- DELETE /api/tenant/users/{member_id} - Remove a member (Admin+)
- POST /api/tenant/invitations - Invite a user (Admin+)
- GET /api/tenant/invitations - Pending invitations (Admin+)
- DELETE /api/tenant/invitations/{invitation_id} - Revoke (Admin+)
- GET /api/tenant/audit - Audit log (Admin+)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from planilla.api.dependencies import (
    ActiveContext,
    AppSettings,
    ClientAddress,
    DbSession,
    require_role,
)
from planilla.api.schemas.errors import APIError
from planilla.api.schemas.tenant import (
    AuditPageResponse,
    InvitationCreateRequest,
    InvitationResponse,
    MemberResponse,
    MemberUpdateRequest,
    TenantResponse,
    UsageResponse,
)
from planilla.core.audit import AuditLogger
from planilla.core.context import TenantContext
from planilla.core.entitlements import EntitlementGatekeeper
from planilla.core.exceptions import ValidationFailedError
from planilla.core.membership import MembershipService
from planilla.core.roles import TenantRole
from planilla.core.tenant import TenantService

router = APIRouter(prefix="/tenant", tags=["tenant"])

AdminContext = Annotated[TenantContext, Depends(require_role(TenantRole.ADMIN))]


@router.get("", response_model=TenantResponse, summary="Current tenant")
async def get_tenant(ctx: ActiveContext, db: DbSession) -> TenantResponse:
    snapshot = await TenantService(db).get_current_tenant(ctx)
    return TenantResponse.from_snapshot(snapshot)


@router.get("/usage", response_model=UsageResponse, summary="Usage against plan limits")
async def get_usage(ctx: ActiveContext, db: DbSession) -> UsageResponse:
    usage = await EntitlementGatekeeper(db).get_usage(ctx.tenant_id)
    return UsageResponse(**usage.model_dump(exclude={"tenant_id"}))


@router.get("/users", response_model=list[MemberResponse], summary="List members")
async def list_members(
    ctx: AdminContext, db: DbSession, settings: AppSettings
) -> list[MemberResponse]:
    members = await MembershipService(db, settings).list_members(ctx)
    return [MemberResponse.from_view(view) for view in members]


@router.patch(
    "/users/{member_id}",
    response_model=MemberResponse,
    summary="Change a member's role or deactivate them",
    responses={
        404: {"model": APIError, "description": "Member not found"},
        409: {"model": APIError, "description": "Would remove the last owner"},
    },
)
async def update_member(
    member_id: int,
    body: MemberUpdateRequest,
    ctx: AdminContext,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> MemberResponse:
    if body.is_active is True:
        raise ValidationFailedError(
            "Deactivated members rejoin through a new invitation", field="is_active"
        )

    service = MembershipService(db, settings)
    member = None
    if body.role is not None:
        member = await service.change_role(ctx, member_id, body.role, ip_address=client_ip)
    if body.is_active is False:
        member = await service.deactivate_member(ctx, member_id, ip_address=client_ip)
    if member is None:
        raise ValidationFailedError("Nothing to update")
    await db.commit()

    return MemberResponse.from_view(await service.get_member(ctx, member.id))


@router.delete(
    "/users/{member_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member",
    responses={
        404: {"model": APIError, "description": "Member not found"},
        409: {"model": APIError, "description": "Would remove the last owner"},
    },
)
async def remove_member(
    member_id: int,
    ctx: AdminContext,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> Response:
    await MembershipService(db, settings).remove_member(ctx, member_id, ip_address=client_ip)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a user",
    responses={
        402: {"model": APIError, "description": "Subscription inactive"},
        403: {"model": APIError, "description": "Insufficient role"},
        409: {"model": APIError, "description": "User limit reached or duplicate"},
    },
)
async def create_invitation(
    body: InvitationCreateRequest,
    ctx: AdminContext,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> InvitationResponse:
    invitation = await MembershipService(db, settings).create_invitation(
        ctx, body.email, body.role, ip_address=client_ip
    )
    await db.commit()
    return InvitationResponse.from_model(invitation, frontend_url=settings.frontend_url)


@router.get(
    "/invitations",
    response_model=list[InvitationResponse],
    summary="List pending invitations",
)
async def list_invitations(
    ctx: AdminContext, db: DbSession, settings: AppSettings
) -> list[InvitationResponse]:
    invitations = await MembershipService(db, settings).list_invitations(ctx)
    return [InvitationResponse.from_model(invitation) for invitation in invitations]


@router.delete(
    "/invitations/{invitation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke an invitation",
    responses={404: {"model": APIError, "description": "Invitation not found"}},
)
async def revoke_invitation(
    invitation_id: int,
    ctx: AdminContext,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> Response:
    await MembershipService(db, settings).revoke_invitation(
        ctx, invitation_id, ip_address=client_ip
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/audit", response_model=AuditPageResponse, summary="Audit log")
async def get_audit_log(
    ctx: AdminContext,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    action: str | None = Query(None, max_length=100),
) -> AuditPageResponse:
    result = await AuditLogger(db).query(ctx, page=page, page_size=page_size, action=action)
    return AuditPageResponse.from_page(result)
