"""
Holiday calendar service - business logic for holiday management
"""
from datetime import date
from typing import List, Optional
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from app.core.exceptions import NotFoundError
from app.models.holiday import Holiday
from app.services.audit_service import log_audit


def create_holiday(
    db: Session,
    year: int,
    holiday_date: date,
    name: str,
    is_optional: bool = False,
    active: bool = True,
    actor_id: Optional[int] = None
) -> Holiday:
    """
    Create a new holiday

    Args:
        db: Database session
        year: Calendar year
        holiday_date: Holiday date
        name: Holiday name
        is_optional: Optional holiday (still a non-working day for leave counting)
        active: Whether holiday is active
        actor_id: ID of user creating the holiday

    Returns:
        Created Holiday instance

    Raises:
        HTTPException: If the date is outside the year or already a holiday
    """
    if holiday_date.year != year:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Date {holiday_date} does not fall within year {year}"
        )

    existing = db.query(Holiday).filter(
        Holiday.year == year,
        Holiday.date == holiday_date
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Holiday already exists for date {holiday_date} in year {year}"
        )

    holiday = Holiday(
        year=year,
        date=holiday_date,
        name=name,
        is_optional=is_optional,
        active=active,
    )
    db.add(holiday)
    db.flush()

    log_audit(
        db=db,
        actor_id=actor_id,
        action="HOLIDAY_CREATE",
        entity_type="holidays",
        entity_id=holiday.id,
        meta={
            "year": year,
            "date": holiday_date,
            "name": name,
            "is_optional": is_optional,
        }
    )
    db.commit()
    db.refresh(holiday)
    return holiday


def list_holidays(
    db: Session,
    year: Optional[int] = None,
    active_only: bool = False
) -> List[Holiday]:
    """
    List holidays

    Args:
        db: Database session
        year: Optional year filter
        active_only: If True, return only active holidays

    Returns:
        List of Holiday instances
    """
    query = db.query(Holiday)
    if year:
        query = query.filter(Holiday.year == year)
    if active_only:
        query = query.filter(Holiday.active == True)  # noqa: E712
    return query.order_by(Holiday.date).all()


def holidays_between(db: Session, start: date, end: date) -> List[Holiday]:
    """Active holidays in the inclusive range, in either argument order."""
    lo, hi = sorted((start, end))
    return db.query(Holiday).filter(
        Holiday.active == True,  # noqa: E712
        Holiday.date >= lo,
        Holiday.date <= hi,
    ).order_by(Holiday.date).all()


def get_holiday(db: Session, holiday_id: int) -> Holiday:
    """
    Get a holiday by ID

    Raises:
        NotFoundError: If the holiday does not exist
    """
    holiday = db.query(Holiday).filter(Holiday.id == holiday_id).first()
    if holiday is None:
        raise NotFoundError("Holiday", holiday_id)
    return holiday


def update_holiday(
    db: Session,
    holiday_id: int,
    name: Optional[str] = None,
    is_optional: Optional[bool] = None,
    active: Optional[bool] = None,
    actor_id: Optional[int] = None
) -> Holiday:
    """Update holiday name/flags. Leaves already submitted keep their stored day counts."""
    holiday = get_holiday(db, holiday_id)
    changes = {}
    if name is not None:
        changes["name"] = {"old": holiday.name, "new": name}
        holiday.name = name
    if is_optional is not None:
        changes["is_optional"] = {"old": holiday.is_optional, "new": is_optional}
        holiday.is_optional = is_optional
    if active is not None:
        changes["active"] = {"old": holiday.active, "new": active}
        holiday.active = active

    if changes:
        log_audit(
            db=db,
            actor_id=actor_id,
            action="HOLIDAY_UPDATE",
            entity_type="holidays",
            entity_id=holiday.id,
            meta={"date": holiday.date, "changes": changes},
        )
    db.commit()
    db.refresh(holiday)
    return holiday
