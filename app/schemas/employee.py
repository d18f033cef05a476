"""
Employee schemas
"""
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field, field_serializer, ConfigDict
from app.models.employee import Role
from app.utils.datetime_utils import iso_local


class EmployeeCreate(BaseModel):
    """Schema for registering an employee in the directory"""
    emp_code: str = Field(..., min_length=1, description="Unique employee code")
    name: str = Field(..., min_length=1, description="Employee name")
    email: Optional[str] = Field(None, description="Work email")
    role: Role = Field(Role.EMPLOYEE, description="Directory role")
    department: Optional[str] = Field(None, description="Department name")
    join_date: date = Field(..., description="Date of joining")
    active: bool = Field(True, description="Whether the employee is active")


class EmployeeOut(BaseModel):
    """Schema for employee output"""
    id: int
    emp_code: str
    name: str
    email: Optional[str] = None
    role: Role
    department: Optional[str] = None
    join_date: date
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)
