"""Tenant-scoped payroll and HR models."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PortableJSON, TenantScopedMixin, TimestampMixin


class Department(Base, TenantScopedMixin, TimestampMixin):
    """Organizational unit; code is unique per tenant."""

    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (UniqueConstraint("tenant_id", "code", name="uq_departments_tenant_code"),)


class Position(Base, TenantScopedMixin, TimestampMixin):
    """Job position with a salary band."""

    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    department_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("departments.id"), nullable=True
    )
    salary_min: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    salary_max: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (UniqueConstraint("tenant_id", "code", name="uq_positions_tenant_code"),)


class Employee(Base, TenantScopedMixin, TimestampMixin):
    """An employee on a tenant's payroll.

    Only active employees count against the plan's employee limit.
    """

    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    id_number: Mapped[str] = mapped_column(String(30), nullable=False)  # cedula
    base_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    hire_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    department_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("departments.id"), nullable=True
    )
    position_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("positions.id"), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "id_number", name="uq_employees_tenant_id_number"),
        Index("idx_employees_tenant_active", "tenant_id", "is_active"),
    )


class PayrollStatus(str, Enum):
    """Lifecycle of a payroll run."""

    DRAFT = "draft"
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"


class PayrollHeader(Base, TenantScopedMixin, TimestampMixin):
    """A payroll run for one pay period."""

    __tablename__ = "payroll_headers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayrollStatus.DRAFT.value
    )
    total_gross: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0.00")
    )
    total_net: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0.00")
    )


class PayrollConfig(Base, TenantScopedMixin, TimestampMixin):
    """Per-tenant tax configuration consulted by the payroll calculator.

    Seeded for every active tenant; the rates themselves are opaque data.
    """

    __tablename__ = "payroll_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    effective_year: Mapped[int] = mapped_column(Integer, nullable=False)
    rates: Mapped[dict] = mapped_column(PortableJSON(), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "effective_year", name="uq_payroll_configs_tenant_year"),
    )
