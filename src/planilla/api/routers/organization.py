"""Department and position endpoints.

- GET/POST /api/departments, GET/PATCH/DELETE /api/departments/{id}
- GET/POST /api/positions, GET/PATCH/DELETE /api/positions/{id}

Reads need Accountant+. Writes need Admin+ and a subscription that permits
writes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from planilla.api.dependencies import DbSession, require_role
from planilla.api.schemas.errors import APIError
from planilla.api.schemas.payroll import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    PositionCreate,
    PositionResponse,
    PositionUpdate,
)
from planilla.core.context import TenantContext
from planilla.core.exceptions import ConflictError
from planilla.core.logging import get_logger
from planilla.core.roles import TenantRole
from planilla.db.models.payroll import Department, Employee, Position
from planilla.db.repositories import (
    DepartmentRepository,
    EmployeeRepository,
    PositionRepository,
)

logger = get_logger(__name__)

departments_router = APIRouter(prefix="/departments", tags=["departments"])
positions_router = APIRouter(prefix="/positions", tags=["positions"])

ReaderContext = Annotated[TenantContext, Depends(require_role(TenantRole.ACCOUNTANT))]
AdminWriteContext = Annotated[
    TenantContext, Depends(require_role(TenantRole.ADMIN, writable=True))
]

_NOT_FOUND = {404: {"model": APIError, "description": "Not found"}}
_READ_ONLY = {402: {"model": APIError, "description": "Subscription does not permit writes"}}
_WRITE = {**_NOT_FOUND, **_READ_ONLY}


# =============================================================================
# Departments
# =============================================================================


@departments_router.get("", response_model=list[DepartmentResponse], summary="List departments")
async def list_departments(ctx: ReaderContext, db: DbSession) -> list[DepartmentResponse]:
    departments = await DepartmentRepository(db).list(ctx.tenant_id, order_by=Department.name)
    return [DepartmentResponse.model_validate(d) for d in departments]


@departments_router.get(
    "/{department_id}", response_model=DepartmentResponse, responses=_NOT_FOUND
)
async def get_department(
    department_id: int, ctx: ReaderContext, db: DbSession
) -> DepartmentResponse:
    department = await DepartmentRepository(db).get_or_raise(ctx.tenant_id, department_id)
    return DepartmentResponse.model_validate(department)


@departments_router.post(
    "",
    response_model=DepartmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a department",
    responses={**_READ_ONLY, 409: {"model": APIError, "description": "Code already in use"}},
)
async def create_department(
    body: DepartmentCreate, ctx: AdminWriteContext, db: DbSession
) -> DepartmentResponse:
    repo = DepartmentRepository(db)
    if await repo.get_by_code(ctx.tenant_id, body.code):
        raise ConflictError(f"Department code {body.code} is already in use")
    department = await repo.create(ctx.tenant_id, Department(**body.model_dump()))
    await db.commit()
    logger.info("department_created", tenant_id=ctx.tenant_id, department_id=department.id)
    return DepartmentResponse.model_validate(department)


@departments_router.patch(
    "/{department_id}", response_model=DepartmentResponse, responses=_WRITE
)
async def update_department(
    department_id: int, body: DepartmentUpdate, ctx: AdminWriteContext, db: DbSession
) -> DepartmentResponse:
    department = await DepartmentRepository(db).update_by_id(
        ctx.tenant_id, department_id, body.model_dump(exclude_unset=True)
    )
    await db.commit()
    return DepartmentResponse.model_validate(department)


@departments_router.delete(
    "/{department_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**_WRITE, 409: {"model": APIError, "description": "Still referenced"}},
)
async def delete_department(
    department_id: int, ctx: AdminWriteContext, db: DbSession
) -> Response:
    repo = DepartmentRepository(db)
    await repo.get_or_raise(ctx.tenant_id, department_id)
    in_use = await EmployeeRepository(db).count(
        ctx.tenant_id, Employee.department_id == department_id
    ) + await PositionRepository(db).count(ctx.tenant_id, Position.department_id == department_id)
    if in_use:
        raise ConflictError("Department is still assigned to employees or positions")

    await repo.delete_by_id(ctx.tenant_id, department_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Positions
# =============================================================================


@positions_router.get("", response_model=list[PositionResponse], summary="List positions")
async def list_positions(ctx: ReaderContext, db: DbSession) -> list[PositionResponse]:
    positions = await PositionRepository(db).list(ctx.tenant_id, order_by=Position.name)
    return [PositionResponse.model_validate(p) for p in positions]


@positions_router.get("/{position_id}", response_model=PositionResponse, responses=_NOT_FOUND)
async def get_position(position_id: int, ctx: ReaderContext, db: DbSession) -> PositionResponse:
    position = await PositionRepository(db).get_or_raise(ctx.tenant_id, position_id)
    return PositionResponse.model_validate(position)


@positions_router.post(
    "",
    response_model=PositionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a position",
    responses={**_WRITE, 409: {"model": APIError, "description": "Code already in use"}},
)
async def create_position(
    body: PositionCreate, ctx: AdminWriteContext, db: DbSession
) -> PositionResponse:
    repo = PositionRepository(db)
    if await repo.find_one(ctx.tenant_id, Position.code == body.code):
        raise ConflictError(f"Position code {body.code} is already in use")
    if body.department_id is not None:
        await DepartmentRepository(db).get_or_raise(ctx.tenant_id, body.department_id)

    position = await repo.create(ctx.tenant_id, Position(**body.model_dump()))
    await db.commit()
    logger.info("position_created", tenant_id=ctx.tenant_id, position_id=position.id)
    return PositionResponse.model_validate(position)


@positions_router.patch("/{position_id}", response_model=PositionResponse, responses=_WRITE)
async def update_position(
    position_id: int, body: PositionUpdate, ctx: AdminWriteContext, db: DbSession
) -> PositionResponse:
    values = body.model_dump(exclude_unset=True)
    if values.get("department_id") is not None:
        await DepartmentRepository(db).get_or_raise(ctx.tenant_id, values["department_id"])
    position = await PositionRepository(db).update_by_id(ctx.tenant_id, position_id, values)
    await db.commit()
    return PositionResponse.model_validate(position)


@positions_router.delete(
    "/{position_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={**_WRITE, 409: {"model": APIError, "description": "Still referenced"}},
)
async def delete_position(
    position_id: int, ctx: AdminWriteContext, db: DbSession
) -> Response:
    repo = PositionRepository(db)
    await repo.get_or_raise(ctx.tenant_id, position_id)
    if await EmployeeRepository(db).count(ctx.tenant_id, Employee.position_id == position_id):
        raise ConflictError("Position is still assigned to employees")

    await repo.delete_by_id(ctx.tenant_id, position_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
