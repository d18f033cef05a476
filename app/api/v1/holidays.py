"""
Holiday calendar endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_actor, require_roles
from app.models.employee import Role, Employee
from app.schemas.holiday import HolidayCreate, HolidayUpdate, HolidayOut
from app.services.holiday_service import (
    create_holiday,
    list_holidays,
    get_holiday,
    update_holiday
)

router = APIRouter()

HOLIDAY_ADMIN_ROLES = (Role.HR_ADMIN, Role.HR_HEAD, Role.SYSTEM_ADMIN)


@router.post("", response_model=HolidayOut, status_code=201)
async def create_holiday_endpoint(
    holiday_data: HolidayCreate,
    db: Session = Depends(get_db),
    actor: Employee = Depends(require_roles(*HOLIDAY_ADMIN_ROLES))
):
    """Create a new holiday (HR / system admin)"""
    return create_holiday(
        db=db,
        year=holiday_data.year,
        holiday_date=holiday_data.date,
        name=holiday_data.name,
        is_optional=holiday_data.is_optional,
        active=holiday_data.active,
        actor_id=actor.id
    )


@router.get("", response_model=List[HolidayOut])
async def list_holidays_endpoint(
    year: Optional[int] = Query(None, description="Filter by year"),
    active_only: bool = Query(False, description="Return only active holidays"),
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor)
):
    """List holidays (any employee)"""
    return list_holidays(db, year=year, active_only=active_only)


@router.get("/{holiday_id}", response_model=HolidayOut)
async def get_holiday_endpoint(
    holiday_id: int,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor)
):
    """Get a holiday by ID"""
    return get_holiday(db, holiday_id)


@router.patch("/{holiday_id}", response_model=HolidayOut)
async def update_holiday_endpoint(
    holiday_id: int,
    holiday_data: HolidayUpdate,
    db: Session = Depends(get_db),
    actor: Employee = Depends(require_roles(*HOLIDAY_ADMIN_ROLES))
):
    """Update a holiday (HR / system admin)"""
    return update_holiday(
        db=db,
        holiday_id=holiday_id,
        name=holiday_data.name,
        is_optional=holiday_data.is_optional,
        active=holiday_data.active,
        actor_id=actor.id
    )
