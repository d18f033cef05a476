"""
Year-end close - carry unused balances into the next year.

Only leave types with a carry-forward cap roll over (EARNED, cap 60); the
rest lapse and start the new year at their annual allocation.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.models.leave import LeaveBalance
from app.services import leave_wallet_service as wallet
from app.services.audit_service import log_audit
from app.services.policy_service import LEAVE_POLICIES

logger = logging.getLogger(__name__)


def run_year_close(
    db: Session,
    year: int,
    actor_id: Optional[int] = None
) -> Dict:
    """
    Carry forward min(available, cap) of every carry-forward balance in year
    to year + 1. Safe to re-run.
    """
    carry_types = [lt for lt, p in LEAVE_POLICIES.items() if p.affects_balance and p.carry_forward_cap]
    rows = db.query(LeaveBalance).filter(
        LeaveBalance.year == year,
        LeaveBalance.leave_type.in_(carry_types),
    ).order_by(LeaveBalance.employee_id).all()

    employees_with_carry = 0
    already_carried = 0
    total_carry_forward = 0
    details = []
    for row in rows:
        key = wallet.generate_idempotency_key("carry", row.employee_id, row.leave_type, year)
        if wallet.find_transaction(db, key) is not None:
            already_carried += 1
            continue
        txn = wallet.carry_forward(db, row.employee_id, row.leave_type, year)
        amount = txn.delta_days if txn is not None else 0
        if amount > 0:
            employees_with_carry += 1
            total_carry_forward += amount
        details.append({
            "employee_id": row.employee_id,
            "leave_type": row.leave_type.value,
            "unused": row.available,
            "carried_forward": amount,
        })

    log_audit(
        db=db,
        actor_id=actor_id,
        action="YEAR_CLOSE",
        entity_type="leave_balances",
        entity_id=None,
        meta={
            "year": year,
            "rows_processed": len(rows),
            "employees_with_carry": employees_with_carry,
            "already_carried": already_carried,
            "total_carry_forward": total_carry_forward,
        },
    )
    db.commit()
    logger.info(
        "year close complete: year=%s rows=%s carried=%s",
        year, len(rows), total_carry_forward,
    )
    return {
        "year": year,
        "next_year": year + 1,
        "rows_processed": len(rows),
        "employees_with_carry": employees_with_carry,
        "already_carried": already_carried,
        "total_carry_forward": total_carry_forward,
        "details": details,
    }
