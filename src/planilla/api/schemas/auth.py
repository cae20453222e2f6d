"""Authentication, registration and invitation acceptance schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from planilla.core.membership import InvitationPreview, SessionGrant


class RegisterRequest(BaseModel):
    """Signup of a new company with its first (Owner) user."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    company_name: str = Field(..., min_length=2, max_length=200)
    ruc: str | None = Field(default=None, max_length=30, description="Company tax id")
    dv: str | None = Field(default=None, max_length=5, description="Tax id check digit")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class AcceptInvitationRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=8, max_length=128)


class InvitationPreviewResponse(BaseModel):
    """What a valid invitation token reveals to its holder."""

    tenant_name: str
    email: str
    role: str
    expires_at: datetime

    @classmethod
    def from_preview(cls, preview: InvitationPreview) -> "InvitationPreviewResponse":
        return cls(
            tenant_name=preview.tenant_name,
            email=preview.email,
            role=preview.role.label,
            expires_at=preview.expires_at,
        )


class SessionResponse(BaseModel):
    """Identity, active tenant and (when issued) the access token."""

    access_token: str | None = None
    token_type: str = "bearer"
    expires_at: datetime | None = None
    user_id: str
    email: str
    tenant_id: int
    tenant_name: str
    role: str
    plan: str
    subscription_status: str | None = None

    @classmethod
    def from_grant(cls, grant: SessionGrant) -> "SessionResponse":
        subscription = grant.subscription
        return cls(
            access_token=grant.token,
            expires_at=grant.expires_at,
            user_id=grant.user.id,
            email=grant.user.email,
            tenant_id=grant.tenant.id,
            tenant_name=grant.tenant.name,
            role=grant.membership.role_enum.label,
            plan=grant.context.plan or "",
            subscription_status=subscription.status if subscription else None,
        )
