"""
Dependencies and guards for FastAPI endpoints

Authentication happens upstream; the gateway forwards the acting employee's id
in the header named by ``settings.ACTOR_HEADER`` (X-Actor-Id by default) and
these dependencies resolve it against the employee directory.
"""
from typing import Generator, Optional
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from app.core.config import settings
from app.db.session import SessionLocal
from app.models.employee import Employee, Role


def get_db() -> Generator:
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_current_actor(
    x_actor_id: Optional[str] = Header(None, alias=settings.ACTOR_HEADER),
    db: Session = Depends(get_db)
) -> Employee:
    """
    Resolve the acting employee from the actor header
    """
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {settings.ACTOR_HEADER} header",
        )
    try:
        employee_id = int(x_actor_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid {settings.ACTOR_HEADER} header",
        )

    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Actor not found",
        )
    if not employee.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )
    return employee


def require_roles(*allowed_roles: Role):
    """
    Dependency factory for role-based access control

    Usage:
        @router.post("/run")
        async def run(actor: Employee = Depends(require_roles(Role.HR_ADMIN))):
            ...
    """
    allowed = {r.value for r in allowed_roles}

    async def role_checker(actor: Employee = Depends(get_current_actor)) -> Employee:
        if Role(actor.role).value not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(sorted(allowed))}"
            )
        return actor

    return role_checker
