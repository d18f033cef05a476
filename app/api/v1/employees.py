"""
Employee directory endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_actor, require_roles
from app.models.employee import Role, Employee
from app.schemas.employee import EmployeeCreate, EmployeeOut
from app.services.employee_service import create_employee, get_employee, list_employees

router = APIRouter()


@router.post("", response_model=EmployeeOut, status_code=201)
async def create_employee_endpoint(
    employee_data: EmployeeCreate,
    db: Session = Depends(get_db),
    actor: Employee = Depends(require_roles(Role.HR_ADMIN, Role.SYSTEM_ADMIN))
):
    """Register an employee (HR admin / system admin)"""
    return create_employee(db, employee_data, actor_id=actor.id)


@router.get("", response_model=List[EmployeeOut])
async def list_employees_endpoint(
    role: Optional[Role] = Query(None, description="Filter by role"),
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor)
):
    return list_employees(db, role=role)


@router.get("/me", response_model=EmployeeOut)
async def me_endpoint(actor: Employee = Depends(get_current_actor)):
    return actor


@router.get("/{employee_id}", response_model=EmployeeOut)
async def get_employee_endpoint(
    employee_id: int,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor)
):
    return get_employee(db, employee_id)
