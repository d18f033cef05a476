"""
Accrual service - monthly leave crediting (scheduler entry point).

For every active employee who had joined by the end of the month, calls
leave_wallet_service.accrue for each leave type with a monthly rate
(EARNED: +2, capped so the balance never exceeds 60). Idempotent per
employee/type/month: re-running a month credits nothing new, and the run
summary only counts entries created by that run.
"""
import calendar
import logging
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.models.employee import Employee
from app.services import leave_wallet_service as wallet
from app.services.audit_service import log_audit
from app.services.policy_service import accruing_leave_types

logger = logging.getLogger(__name__)


def _last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def is_eligible_for_month_accrual(employee: Employee, target_year: int, target_month: int) -> bool:
    """True if employee is active and join_date <= last day of target month."""
    if not employee.active:
        return False
    return employee.join_date <= _last_day_of_month(target_year, target_month)


def run_monthly_accrual(
    db: Session,
    year: int,
    month: int,
    actor_id: Optional[int] = None
) -> Dict:
    """
    Run one month's accrual for all eligible employees.

    Args:
        db: Database session
        year: Calendar year
        month: Month number 1-12
        actor_id: Employee triggering the run (None for the scheduler)

    Returns:
        Summary counts and per-employee credited days

    Raises:
        ValueError: If month is outside 1-12
    """
    if month < 1 or month > 12:
        raise ValueError(f"Invalid month: {month}. Must be between 1 and 12.")
    month_key = f"{year:04d}-{month:02d}"

    employees = db.query(Employee).filter(Employee.active == True).order_by(Employee.id).all()  # noqa: E712
    credited_count = 0
    already_credited = 0
    skipped_not_eligible = 0
    total_days = 0
    details = []

    for employee in employees:
        if not is_eligible_for_month_accrual(employee, year, month):
            skipped_not_eligible += 1
            continue
        detail = {"employee_id": employee.id, "emp_code": employee.emp_code}
        credited_now = False
        for leave_type in accruing_leave_types():
            # Entries from an earlier run of this month are not counted again
            if wallet.find_transaction(db, wallet.accrual_key(employee.id, leave_type, year, month)) is not None:
                detail[leave_type.value.lower()] = 0
                continue
            txn = wallet.accrue(db, employee.id, leave_type, year, month)
            delta = txn.delta_days if txn is not None else 0
            detail[leave_type.value.lower()] = delta
            total_days += delta
            credited_now = True
        if credited_now:
            credited_count += 1
            details.append(detail)
        else:
            already_credited += 1

    log_audit(
        db=db,
        actor_id=actor_id,
        action="ACCRUAL_RUN",
        entity_type="accrual",
        entity_id=None,
        meta={
            "month": month_key,
            "total_employees_processed": len(employees),
            "credited_count": credited_count,
            "already_credited": already_credited,
            "skipped_not_eligible": skipped_not_eligible,
            "total_days": total_days,
        },
    )
    db.commit()
    logger.info(
        "monthly accrual complete: month=%s employees=%s credited=%s days=%s",
        month_key, len(employees), credited_count, total_days,
    )
    return {
        "month": month_key,
        "total_employees_processed": len(employees),
        "credited_count": credited_count,
        "already_credited": already_credited,
        "skipped_not_eligible": skipped_not_eligible,
        "total_days": total_days,
        "details": details,
    }
