"""Default payroll configuration seeding.

Every active tenant needs a ``PayrollConfig`` row for the current year before
payroll can be calculated. Seeding is idempotent: tenants that already have a
row for the year are skipped.

Usage:
    async with session_scope(factory) as session:
        created = await seed_payroll_config(session)
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from planilla.core.logging import get_logger
from planilla.db.models.payroll import PayrollConfig
from planilla.db.repositories import CrossTenantAccess, PayrollConfigRepository

logger = get_logger(__name__)

# Panama: CSS (Ley 462), educational insurance and annual ISR brackets.
DEFAULT_PAYROLL_RATES: dict[str, Any] = {
    "css": {
        "employee_rate": "9.75",
        "employer_rate": "12.25",
        "risk_rates": {"low": "0.41", "medium": "1.09", "high": "2.31"},
        "max_contribution_base": {
            "standard": "1000.00",
            "intermediate": "1500.00",
            "high": "2500.00",
        },
        "intermediate_min_years": 5,
        "intermediate_min_avg_salary": "850.00",
        "high_min_years": 10,
        "high_min_avg_salary": "1200.00",
    },
    "educational_insurance": {"employee_rate": "1.25", "employer_rate": "1.50"},
    "income_tax": {
        "dependent_deduction": "800.00",
        "max_dependents": 5,
        "brackets": [
            {"min": "0.00", "max": "11000.00", "rate": "0.00", "fixed": "0.00"},
            {"min": "11000.01", "max": "50000.00", "rate": "15.00", "fixed": "0.00"},
            {"min": "50000.01", "max": None, "rate": "25.00", "fixed": "5850.00"},
        ],
    },
}


def _current_year() -> int:
    return datetime.now(UTC).year


def default_payroll_config(year: int) -> PayrollConfig:
    return PayrollConfig(effective_year=year, rates=DEFAULT_PAYROLL_RATES)


async def seed_tenant_payroll_config(
    db: AsyncSession, tenant_id: int, *, year: int | None = None
) -> bool:
    """Create the default config for one tenant if it has none for the year.

    Returns:
        True if a row was created
    """
    year = year or _current_year()
    repo = PayrollConfigRepository(db)
    if await repo.get_for_year(tenant_id, year) is not None:
        return False
    await repo.create(tenant_id, default_payroll_config(year))
    logger.info("payroll_config_seeded", tenant_id=tenant_id, year=year)
    return True


async def seed_payroll_config(db: AsyncSession, *, year: int | None = None) -> int:
    """Create the default config for every active tenant lacking one.

    Returns:
        Number of tenants seeded
    """
    year = year or _current_year()
    access = CrossTenantAccess(db, reason="seed default payroll config")

    tenant_ids = await access.active_tenant_ids()
    if not tenant_ids:
        logger.warning("payroll_config_seed_skipped", reason="no active tenants")
        return 0

    configured = await access.tenant_ids_with(
        PayrollConfig, PayrollConfig.effective_year == year
    )
    missing = [tenant_id for tenant_id in tenant_ids if tenant_id not in configured]

    rows = []
    for tenant_id in missing:
        row = default_payroll_config(year)
        row.tenant_id = tenant_id
        rows.append(row)
    await access.add_all(rows)

    logger.info(
        "payroll_config_seed_completed",
        year=year,
        tenants=len(tenant_ids),
        seeded=len(missing),
    )
    return len(missing)
