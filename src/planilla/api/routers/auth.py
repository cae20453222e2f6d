"""Registration, login, session and invitation acceptance endpoints.

- POST /api/auth/register - Create a company, its Owner and a trial
- POST /api/auth/login - Open a session on the latest active membership
- GET /api/auth/me - Caller's identity and tenant
- POST /api/auth/refresh - Re-issue the credential with current role/plan
- GET /api/auth/validate-invite - Inspect an invitation token
- POST /api/auth/accept-invite - Consume an invitation
"""

from fastapi import APIRouter, Query, status

from planilla.api.dependencies import (
    AppSettings,
    ClientAddress,
    CurrentContext,
    DbSession,
)
from planilla.api.schemas.auth import (
    AcceptInvitationRequest,
    InvitationPreviewResponse,
    LoginRequest,
    RegisterRequest,
    SessionResponse,
)
from planilla.api.schemas.errors import APIError
from planilla.core.accounts import AccountService
from planilla.core.membership import MembershipService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a company",
    responses={409: {"model": APIError, "description": "Email or RUC already registered"}},
)
async def register(
    body: RegisterRequest,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> SessionResponse:
    """Create the tenant on a Professional trial with the caller as Owner."""
    grant = await AccountService(db, settings).register(
        email=body.email,
        password=body.password,
        company_name=body.company_name,
        ruc=body.ruc,
        dv=body.dv,
        ip_address=client_ip,
    )
    await db.commit()
    return SessionResponse.from_grant(grant)


@router.post(
    "/login",
    response_model=SessionResponse,
    summary="Log in",
    responses={401: {"model": APIError, "description": "Invalid credentials"}},
)
async def login(
    body: LoginRequest,
    db: DbSession,
    settings: AppSettings,
    client_ip: ClientAddress,
) -> SessionResponse:
    grant = await AccountService(db, settings).login(
        body.email, body.password, ip_address=client_ip
    )
    await db.commit()
    return SessionResponse.from_grant(grant)


@router.get("/me", response_model=SessionResponse, summary="Current session")
async def me(ctx: CurrentContext, db: DbSession, settings: AppSettings) -> SessionResponse:
    grant = await AccountService(db, settings).current(ctx)
    return SessionResponse.from_grant(grant)


@router.post("/refresh", response_model=SessionResponse, summary="Refresh the credential")
async def refresh(ctx: CurrentContext, db: DbSession, settings: AppSettings) -> SessionResponse:
    """Re-issue the credential so role changes and plan changes take effect."""
    grant = await AccountService(db, settings).refresh(ctx)
    return SessionResponse.from_grant(grant)


@router.get(
    "/validate-invite",
    response_model=InvitationPreviewResponse,
    summary="Validate an invitation token",
    responses={400: {"model": APIError, "description": "Invitation invalid or expired"}},
)
async def validate_invite(
    db: DbSession,
    settings: AppSettings,
    token: str = Query(..., min_length=1, max_length=128),
) -> InvitationPreviewResponse:
    preview = await MembershipService(db, settings).validate_invitation(token)
    return InvitationPreviewResponse.from_preview(preview)


@router.post(
    "/accept-invite",
    response_model=SessionResponse,
    summary="Accept an invitation",
    responses={
        400: {"model": APIError, "description": "Invitation invalid or expired"},
        409: {"model": APIError, "description": "Already a member, or user limit reached"},
    },
)
async def accept_invite(
    body: AcceptInvitationRequest,
    db: DbSession,
    settings: AppSettings,
) -> SessionResponse:
    """Join the inviting tenant with the invitation's role."""
    grant = await MembershipService(db, settings).accept_invitation(body.token, body.password)
    await db.commit()
    return SessionResponse.from_grant(grant)
