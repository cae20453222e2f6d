"""Identity and membership models."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from planilla.core.roles import TenantRole

from .base import Base, TenantScopedMixin, UTCDateTime


def _new_user_id() -> str:
    return str(uuid4())


class User(Base):
    """External identity record referenced by memberships.

    A user may belong to several tenants; memberships do not own the user.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_user_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class TenantUser(Base, TenantScopedMixin):
    """Membership binding a user to a tenant with a role."""

    __tablename__ = "tenant_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    role: Mapped[int] = mapped_column(Integer, nullable=False, default=TenantRole.EMPLOYEE)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    joined_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_tenant_users_tenant_user"),
    )

    @property
    def role_enum(self) -> TenantRole:
        return TenantRole(self.role)

    def __repr__(self) -> str:
        return (
            f"<TenantUser(tenant_id={self.tenant_id}, user_id={self.user_id}, "
            f"role={self.role_enum.label})>"
        )


class Invitation(Base, TenantScopedMixin):
    """Pending, token-based offer to join a tenant with a role.

    Valid iff not accepted, not revoked and not yet expired.
    """

    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[int] = mapped_column(Integer, nullable=False)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    accepted_by_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    is_revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    invited_by_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_invitations_tenant_email", "tenant_id", "email"),)

    @property
    def role_enum(self) -> TenantRole:
        return TenantRole(self.role)

    def is_valid(self, now: datetime | None = None) -> bool:
        return (
            self.accepted_at is None
            and not self.is_revoked
            and self.expires_at > (now or datetime.now(UTC))
        )
