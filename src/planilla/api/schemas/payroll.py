"""Employee, department, position and payroll run schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from planilla.db.models.payroll import PayrollStatus


class _ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Departments


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    description: str | None = None


class DepartmentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    is_active: bool | None = None


class DepartmentResponse(_ORMModel):
    id: int
    name: str
    code: str
    description: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


# Positions


class PositionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    department_id: int | None = None
    salary_min: Decimal | None = Field(default=None, ge=0)
    salary_max: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_band(self) -> "PositionCreate":
        if (
            self.salary_min is not None
            and self.salary_max is not None
            and self.salary_min > self.salary_max
        ):
            raise ValueError("salary_min must not exceed salary_max")
        return self


class PositionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    department_id: int | None = None
    salary_min: Decimal | None = Field(default=None, ge=0)
    salary_max: Decimal | None = Field(default=None, ge=0)
    is_active: bool | None = None


class PositionResponse(_ORMModel):
    id: int
    name: str
    code: str
    department_id: int | None
    salary_min: Decimal | None
    salary_max: Decimal | None
    is_active: bool


# Employees


class EmployeeCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    id_number: str = Field(..., min_length=1, max_length=30, description="Cedula")
    base_salary: Decimal = Field(..., ge=0)
    hire_date: date
    department_id: int | None = None
    position_id: int | None = None


class EmployeeUpdate(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    base_salary: Decimal | None = Field(default=None, ge=0)
    department_id: int | None = None
    position_id: int | None = None


class EmployeeResponse(_ORMModel):
    id: int
    first_name: str
    last_name: str
    id_number: str
    base_salary: Decimal
    hire_date: date
    is_active: bool
    department_id: int | None
    position_id: int | None
    created_at: datetime
    updated_at: datetime


# Payroll runs


class PayrollRunCreate(BaseModel):
    period_start: date
    period_end: date

    @model_validator(mode="after")
    def _check_period(self) -> "PayrollRunCreate":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class PayrollRunResponse(_ORMModel):
    id: int
    period_start: date
    period_end: date
    status: PayrollStatus
    total_gross: Decimal
    total_net: Decimal
    created_at: datetime
