"""Employee endpoints.

- GET /api/employees - List employees (Accountant+)
- GET /api/employees/{employee_id} - Get one employee (Accountant+)
- POST /api/employees - Create, subject to the plan's employee limit (Manager+)
- PATCH /api/employees/{employee_id} - Update (Manager+)
- POST /api/employees/{employee_id}/deactivate - Free the plan slot (Manager+)
- DELETE /api/employees/{employee_id} - Delete (Admin+)
"""

from fastapi import APIRouter, Query, Response, status

from planilla.api.dependencies import ActiveContext, ClientAddress, DbSession
from planilla.api.schemas.errors import APIError
from planilla.api.schemas.payroll import EmployeeCreate, EmployeeResponse, EmployeeUpdate
from planilla.core.employees import EmployeeData, EmployeeService

router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("", response_model=list[EmployeeResponse], summary="List employees")
async def list_employees(
    ctx: ActiveContext,
    db: DbSession,
    active_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> list[EmployeeResponse]:
    employees = await EmployeeService(db).list_employees(
        ctx, active_only=active_only, limit=limit, offset=offset
    )
    return [EmployeeResponse.model_validate(employee) for employee in employees]


@router.get(
    "/{employee_id}",
    response_model=EmployeeResponse,
    summary="Get an employee",
    responses={404: {"model": APIError, "description": "Employee not found"}},
)
async def get_employee(employee_id: int, ctx: ActiveContext, db: DbSession) -> EmployeeResponse:
    employee = await EmployeeService(db).get_employee(ctx, employee_id)
    return EmployeeResponse.model_validate(employee)


@router.post(
    "",
    response_model=EmployeeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an employee",
    responses={
        402: {"model": APIError, "description": "Subscription inactive"},
        409: {"model": APIError, "description": "Employee limit reached or duplicate"},
    },
)
async def create_employee(
    body: EmployeeCreate,
    ctx: ActiveContext,
    db: DbSession,
    client_ip: ClientAddress,
) -> EmployeeResponse:
    employee = await EmployeeService(db).create_employee(
        ctx, EmployeeData(**body.model_dump()), ip_address=client_ip
    )
    await db.commit()
    return EmployeeResponse.model_validate(employee)


@router.patch(
    "/{employee_id}",
    response_model=EmployeeResponse,
    summary="Update an employee",
    responses={404: {"model": APIError, "description": "Employee not found"}},
)
async def update_employee(
    employee_id: int,
    body: EmployeeUpdate,
    ctx: ActiveContext,
    db: DbSession,
    client_ip: ClientAddress,
) -> EmployeeResponse:
    employee = await EmployeeService(db).update_employee(
        ctx, employee_id, body.model_dump(exclude_unset=True), ip_address=client_ip
    )
    await db.commit()
    return EmployeeResponse.model_validate(employee)


@router.post(
    "/{employee_id}/deactivate",
    response_model=EmployeeResponse,
    summary="Deactivate an employee",
    responses={404: {"model": APIError, "description": "Employee not found"}},
)
async def deactivate_employee(
    employee_id: int,
    ctx: ActiveContext,
    db: DbSession,
    client_ip: ClientAddress,
) -> EmployeeResponse:
    employee = await EmployeeService(db).deactivate_employee(
        ctx, employee_id, ip_address=client_ip
    )
    await db.commit()
    return EmployeeResponse.model_validate(employee)


@router.delete(
    "/{employee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an employee",
    responses={404: {"model": APIError, "description": "Employee not found"}},
)
async def delete_employee(
    employee_id: int,
    ctx: ActiveContext,
    db: DbSession,
    client_ip: ClientAddress,
) -> Response:
    await EmployeeService(db).delete_employee(ctx, employee_id, ip_address=client_ip)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
