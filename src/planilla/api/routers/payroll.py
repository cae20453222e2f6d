"""Payroll run endpoints.

- GET /api/payroll/runs - List runs (Accountant+)
- POST /api/payroll/runs - Open a draft run for a period (Accountant+, writable
  subscription)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from planilla.api.dependencies import DbSession, require_role
from planilla.api.schemas.errors import APIError
from planilla.api.schemas.payroll import PayrollRunCreate, PayrollRunResponse
from planilla.core.context import TenantContext
from planilla.core.exceptions import ConflictError
from planilla.core.logging import get_logger
from planilla.core.roles import TenantRole
from planilla.db.models.payroll import PayrollHeader, PayrollStatus
from planilla.db.repositories import PayrollHeaderRepository

logger = get_logger(__name__)

router = APIRouter(prefix="/payroll", tags=["payroll"])

AccountantContext = Annotated[TenantContext, Depends(require_role(TenantRole.ACCOUNTANT))]
AccountantWriteContext = Annotated[
    TenantContext, Depends(require_role(TenantRole.ACCOUNTANT, writable=True))
]


@router.get("/runs", response_model=list[PayrollRunResponse], summary="List payroll runs")
async def list_runs(
    ctx: AccountantContext,
    db: DbSession,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> list[PayrollRunResponse]:
    runs = await PayrollHeaderRepository(db).list(
        ctx.tenant_id,
        limit=limit,
        offset=offset,
        order_by=(PayrollHeader.period_start.desc(), PayrollHeader.id.desc()),
    )
    return [PayrollRunResponse.model_validate(run) for run in runs]


@router.post(
    "/runs",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a payroll run",
    responses={
        402: {"model": APIError, "description": "Subscription does not permit writes"},
        409: {"model": APIError, "description": "A run already covers the period"},
    },
)
async def create_run(
    body: PayrollRunCreate, ctx: AccountantWriteContext, db: DbSession
) -> PayrollRunResponse:
    repo = PayrollHeaderRepository(db)
    overlapping = await repo.find_one(
        ctx.tenant_id,
        PayrollHeader.period_start <= body.period_end,
        PayrollHeader.period_end >= body.period_start,
    )
    if overlapping is not None:
        raise ConflictError("A payroll run already covers part of this period")

    run = await repo.create(
        ctx.tenant_id,
        PayrollHeader(
            period_start=body.period_start,
            period_end=body.period_end,
            status=PayrollStatus.DRAFT.value,
        ),
    )
    await db.commit()
    logger.info("payroll_run_opened", tenant_id=ctx.tenant_id, payroll_run_id=run.id)
    return PayrollRunResponse.model_validate(run)
