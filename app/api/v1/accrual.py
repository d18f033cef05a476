"""
Scheduler endpoints: monthly accrual, year-end carry forward and the
overstay check (HR-only)
"""
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy.orm import Session
from app.core.deps import get_db, require_roles
from app.models.employee import Role, Employee
from app.services.accrual_service import run_monthly_accrual
from app.services.overstay_service import run_overstay_check
from app.services.year_close_service import run_year_close

router = APIRouter()

SCHEDULER_ROLES = (Role.HR_ADMIN, Role.HR_HEAD, Role.SYSTEM_ADMIN)


def _parse_month(month: str):
    try:
        parts = month.split("-")
        if len(parts) != 2 or len(parts[0]) != 4:
            raise ValueError("Invalid format")
        year_val, month_num = int(parts[0]), int(parts[1])
        if month_num < 1 or month_num > 12:
            raise ValueError("Invalid month")
    except (ValueError, IndexError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid month: {month}. Use YYYY-MM (e.g., 2026-02)"
        )
    return year_val, month_num


@router.post("/run")
async def run_accrual_endpoint(
    month: str = Query(..., description="Month in YYYY-MM format (e.g., 2026-02)"),
    db: Session = Depends(get_db),
    actor: Employee = Depends(require_roles(*SCHEDULER_ROLES))
):
    """
    Run one month's accrual. Idempotent: running a month twice does not double-credit.

    EARNED accrues 2 days per month; the balance never accumulates past 60.
    """
    year_val, month_num = _parse_month(month)
    return run_monthly_accrual(db=db, year=year_val, month=month_num, actor_id=actor.id)


@router.post("/year-close")
async def year_close_endpoint(
    year: int = Query(..., description="Year to close (e.g., 2026)"),
    db: Session = Depends(get_db),
    actor: Employee = Depends(require_roles(*SCHEDULER_ROLES))
):
    """Carry capped EARNED balances from year into year + 1. Idempotent."""
    return run_year_close(db=db, year=year, actor_id=actor.id)


@router.post("/overstay-check")
async def overstay_check_endpoint(
    as_of: Optional[date] = Query(None, description="Check as of this date (defaults to local today)"),
    db: Session = Depends(get_db),
    actor: Employee = Depends(require_roles(*SCHEDULER_ROLES))
):
    """Flag approved leave whose employee has not resumed duty. Each leave is flagged once."""
    return run_overstay_check(db=db, today=as_of, actor_id=actor.id)
