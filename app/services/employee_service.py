"""
Employee directory service - actor and role lookup for the leave engine
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import LeaveEngineError, NotFoundError
from app.models.employee import Employee, Role
from app.schemas.employee import EmployeeCreate
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)


class DuplicateEmployeeError(LeaveEngineError):
    code = "DUPLICATE_EMPLOYEE"
    status_code = 409


def get_employee(db: Session, employee_id: int) -> Employee:
    """
    Get an employee by ID

    Raises:
        NotFoundError: If the employee does not exist
    """
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if employee is None:
        raise NotFoundError("Employee", employee_id)
    return employee


def list_employees(db: Session, role: Optional[Role] = None, active_only: bool = True) -> List[Employee]:
    query = db.query(Employee)
    if role is not None:
        query = query.filter(Employee.role == role)
    if active_only:
        query = query.filter(Employee.active == True)  # noqa: E712
    return query.order_by(Employee.emp_code).all()


def create_employee(db: Session, employee_data: EmployeeCreate, actor_id: Optional[int] = None) -> Employee:
    """
    Register an employee in the directory

    Args:
        db: Database session
        employee_data: Employee creation data
        actor_id: ID of the user creating the employee

    Returns:
        Created Employee instance

    Raises:
        DuplicateEmployeeError: If emp_code is already taken
    """
    existing = db.query(Employee).filter(Employee.emp_code == employee_data.emp_code).first()
    if existing:
        raise DuplicateEmployeeError(f"Employee code {employee_data.emp_code} already exists")

    employee = Employee(
        emp_code=employee_data.emp_code,
        name=employee_data.name,
        email=employee_data.email,
        role=employee_data.role,
        department=employee_data.department,
        join_date=employee_data.join_date,
        active=employee_data.active,
    )
    db.add(employee)
    db.flush()
    log_audit(
        db=db,
        actor_id=actor_id,
        action="EMPLOYEE_CREATE",
        entity_type="employee",
        entity_id=employee.id,
        meta={"emp_code": employee.emp_code, "role": employee.role},
    )
    db.commit()
    db.refresh(employee)
    logger.info("employee created: id=%s emp_code=%s role=%s", employee.id, employee.emp_code, Role(employee.role).value)
    return employee
