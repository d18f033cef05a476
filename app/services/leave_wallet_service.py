"""
Leave Wallet Service - per employee, per leave type, per year balance ledger.

- available = allocated + carried_forward - used.
- Rows are created lazily with the policy's annual allocation.
- debit on APPROVED, credit on CANCELLED (after approval), RECALLED and when
  an approved leave is shortened.
- accrue / carry_forward are called by the scheduled jobs.
- EARNED days that would lift available above the accumulation cap move to
  special_days (up to the policy's overflow cap).
- Every mutation writes a LeaveTransaction with a unique idempotency key;
  replaying a key is a logged no-op, so at-least-once callers never double-apply.

Mutations read the balance row with SELECT ... FOR UPDATE and the row carries
a version column, so two sessions can never both apply a change computed from
the same stale snapshot.

This module only flushes. The caller owns the transaction so that a status
change and its ledger effect commit together.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import LedgerOverdraftError
from app.models.leave import LeaveBalance, LeaveTransaction, LeaveType, LedgerAction
from app.services.policy_service import LeavePolicy, balance_leave_types, get_policy

logger = logging.getLogger(__name__)


def generate_idempotency_key(*parts) -> str:
    """Join key parts as ``a:b:c``; enum parts use their value."""
    return ":".join(str(getattr(p, "value", p)) for p in parts)


def transition_key(leave_request_id: int, transition_id: str) -> str:
    """Ledger key for a request-driven mutation: (request id, transition id)."""
    return generate_idempotency_key(leave_request_id, transition_id)


def accrual_key(employee_id: int, leave_type: LeaveType, year: int, month: int) -> str:
    return generate_idempotency_key("accrual", employee_id, leave_type, f"{year:04d}-{month:02d}")


def _get_balance_row(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    year: int,
    for_update: bool = False,
) -> Optional[LeaveBalance]:
    query = db.query(LeaveBalance).filter(
        LeaveBalance.employee_id == employee_id,
        LeaveBalance.leave_type == leave_type,
        LeaveBalance.year == year,
    )
    if for_update:
        # Lock the row and overwrite any copy already in the identity map
        query = query.with_for_update().populate_existing()
    return query.first()


def _new_balance_row(employee_id: int, leave_type: LeaveType, year: int) -> LeaveBalance:
    return LeaveBalance(
        employee_id=employee_id,
        leave_type=leave_type,
        year=year,
        allocated=get_policy(leave_type).annual_allocation,
        carried_forward=0,
        used=0,
        special_days=0,
    )


def get_or_create_balance(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    year: int,
    for_update: bool = False,
) -> LeaveBalance:
    """Get the ledger row, creating it with the policy allocation on first use."""
    row = _get_balance_row(db, employee_id, leave_type, year, for_update=for_update)
    if row is None:
        row = _new_balance_row(employee_id, leave_type, year)
        db.add(row)
        db.flush()
    return row


def get_available(db: Session, employee_id: int, leave_type: LeaveType, year: int) -> Optional[int]:
    """
    Read-only balance snapshot used by validation.

    Returns None for leave types outside the ledger. A missing row reads as the
    policy allocation without creating it.
    """
    policy = get_policy(leave_type)
    if not policy.affects_balance:
        return None
    row = _get_balance_row(db, employee_id, leave_type, year)
    if row is None:
        return policy.annual_allocation
    return row.available


def get_special_days(db: Session, employee_id: int, year: int) -> int:
    """Overflowed EARNED days held for the employee/year."""
    row = _get_balance_row(db, employee_id, LeaveType.EARNED, year)
    if row is None:
        return 0
    return row.special_days or 0


def get_balances(db: Session, employee_id: int, year: int) -> List[LeaveBalance]:
    """
    One balance per ledger leave type for the employee/year.

    Read-only: types without a stored row come back as unsaved rows holding
    the policy allocation.
    """
    balances = []
    for leave_type in balance_leave_types():
        row = _get_balance_row(db, employee_id, leave_type, year)
        balances.append(row if row is not None else _new_balance_row(employee_id, leave_type, year))
    return balances


def find_transaction(db: Session, idempotency_key: str) -> Optional[LeaveTransaction]:
    return db.query(LeaveTransaction).filter(LeaveTransaction.idempotency_key == idempotency_key).first()


def _log_transaction(
    db: Session,
    row: LeaveBalance,
    delta_days: int,
    action: LedgerAction,
    idempotency_key: str,
    leave_request_id: Optional[int] = None,
    remarks: Optional[str] = None,
) -> LeaveTransaction:
    txn = LeaveTransaction(
        employee_id=row.employee_id,
        leave_request_id=leave_request_id,
        leave_type=row.leave_type,
        year=row.year,
        delta_days=delta_days,
        action=action.value,
        idempotency_key=idempotency_key,
        remarks=remarks,
    )
    db.add(txn)
    db.flush()
    return txn


def _move_to_special(
    db: Session,
    row: LeaveBalance,
    policy: LeavePolicy,
    excess: int,
    idempotency_key: str,
    leave_request_id: Optional[int] = None,
) -> int:
    """
    Park excess days in special_days, bounded by the overflow cap.

    Returns the days moved. Days beyond the overflow cap are not moved.
    """
    if excess <= 0 or not policy.overflow_cap:
        return 0
    moved = min(excess, policy.overflow_cap - (row.special_days or 0))
    if moved <= 0:
        return 0
    row.special_days = (row.special_days or 0) + moved
    _log_transaction(
        db, row, moved, LedgerAction.OVERFLOW, generate_idempotency_key("overflow", idempotency_key),
        leave_request_id, remarks=f"{moved} days above the {policy.accumulation_cap}-day cap moved to special leave",
    )
    logger.info(
        "ledger overflow: employee_id=%s leave_type=%s year=%s moved=%s special=%s",
        row.employee_id, LeaveType(row.leave_type).value, row.year, moved, row.special_days,
    )
    return moved


def debit(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    year: int,
    days: int,
    idempotency_key: str,
    leave_request_id: Optional[int] = None,
) -> Optional[LeaveTransaction]:
    """
    Increase ``used`` by days.

    Returns:
        The journal entry (the original one on replay), or None for leave
        types outside the ledger.

    Raises:
        LedgerOverdraftError: if available would drop below zero
    """
    if not get_policy(leave_type).affects_balance:
        return None
    existing = find_transaction(db, idempotency_key)
    if existing is not None:
        logger.info("ledger debit replay ignored: key=%s", idempotency_key)
        return existing

    row = get_or_create_balance(db, employee_id, leave_type, year, for_update=True)
    if row.available - days < 0:
        raise LedgerOverdraftError(employee_id, leave_type, year, days, row.available)
    row.used = row.used + days
    txn = _log_transaction(
        db, row, -days, LedgerAction.DEBIT, idempotency_key, leave_request_id,
        remarks=f"Approved leave ({days} days)",
    )
    logger.info(
        "ledger debit: employee_id=%s leave_type=%s year=%s days=%s available=%s",
        employee_id, leave_type.value, year, days, row.available,
    )
    return txn


def credit(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    year: int,
    days: int,
    idempotency_key: str,
    leave_request_id: Optional[int] = None,
) -> Optional[LeaveTransaction]:
    """
    Decrease ``used`` by days, floored at zero. Reverses an earlier debit.

    For EARNED, restored days that lift available above the accumulation cap
    overflow into special_days.
    """
    policy = get_policy(leave_type)
    if not policy.affects_balance:
        return None
    existing = find_transaction(db, idempotency_key)
    if existing is not None:
        logger.info("ledger credit replay ignored: key=%s", idempotency_key)
        return existing

    row = get_or_create_balance(db, employee_id, leave_type, year, for_update=True)
    restored = min(days, row.used)
    row.used = row.used - restored
    txn = _log_transaction(
        db, row, restored, LedgerAction.CREDIT, idempotency_key, leave_request_id,
        remarks=f"Reversed leave ({days} days)",
    )
    if policy.accumulation_cap is not None and row.available > policy.accumulation_cap:
        moved = _move_to_special(
            db, row, policy, row.available - policy.accumulation_cap, idempotency_key, leave_request_id,
        )
        row.allocated = row.allocated - moved
        db.flush()
    logger.info(
        "ledger credit: employee_id=%s leave_type=%s year=%s days=%s available=%s",
        employee_id, leave_type.value, year, restored, row.available,
    )
    return txn


def accrue(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    year: int,
    month: int,
) -> Optional[LeaveTransaction]:
    """
    Credit one month's accrual (EARNED: +2), never lifting available above the
    accumulation cap; the part that does not fit overflows into special_days.
    Idempotent per employee/type/month.
    """
    policy = get_policy(leave_type)
    if not policy.monthly_accrual:
        return None
    key = accrual_key(employee_id, leave_type, year, month)
    existing = find_transaction(db, key)
    if existing is not None:
        return existing

    row = get_or_create_balance(db, employee_id, leave_type, year, for_update=True)
    increment = policy.monthly_accrual
    if policy.accumulation_cap is not None:
        increment = max(0, min(increment, policy.accumulation_cap - row.available))
    row.allocated = row.allocated + increment
    txn = _log_transaction(
        db, row, increment, LedgerAction.ACCRUAL, key,
        remarks=f"Monthly accrual {year:04d}-{month:02d}",
    )
    _move_to_special(db, row, policy, policy.monthly_accrual - increment, key)
    return txn


def carry_forward(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    from_year: int,
) -> Optional[LeaveTransaction]:
    """
    Roll the unused balance of from_year into from_year + 1, capped by policy.
    Types with no carry-forward cap lapse. Idempotent per employee/type/year.
    """
    policy = get_policy(leave_type)
    if not policy.affects_balance or not policy.carry_forward_cap:
        return None
    key = generate_idempotency_key("carry", employee_id, leave_type, from_year)
    existing = find_transaction(db, key)
    if existing is not None:
        return existing

    source = _get_balance_row(db, employee_id, leave_type, from_year)
    unused = max(0, source.available) if source is not None else 0
    amount = min(unused, policy.carry_forward_cap)
    target = get_or_create_balance(db, employee_id, leave_type, from_year + 1, for_update=True)
    target.carried_forward = amount
    if source is not None and source.special_days:
        target.special_days = source.special_days
    return _log_transaction(
        db, target, amount, LedgerAction.CARRY_FORWARD, key,
        remarks=f"Carry forward from {from_year} (unused {unused}, cap {policy.carry_forward_cap})",
    )
