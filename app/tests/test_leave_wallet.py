"""
Tests for the balance ledger: debit/credit, idempotency, accrual cap, overflow, carry forward
"""
import pytest
from sqlalchemy.orm import Session

from app.core.exceptions import LedgerOverdraftError
from app.models.leave import LeaveBalance, LeaveTransaction, LeaveType, LedgerAction
from app.services import leave_wallet_service as wallet


def test_balance_row_created_with_policy_allocation(db: Session, employee):
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.CASUAL, 2026)
    assert (row.allocated, row.carried_forward, row.used, row.available) == (10, 0, 0, 10)
    assert wallet.get_or_create_balance(db, employee.id, LeaveType.CASUAL, 2026).id == row.id


def test_get_available_does_not_create_rows(db: Session, employee):
    assert wallet.get_available(db, employee.id, LeaveType.MEDICAL, 2026) == 14
    assert wallet.get_available(db, employee.id, LeaveType.EXTRA_WITHOUT_PAY, 2026) is None
    assert db.query(LeaveBalance).count() == 0


def test_debit_and_credit(db: Session, employee):
    wallet.debit(db, employee.id, LeaveType.CASUAL, 2026, 3, "1:APPROVED", leave_request_id=None)
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.CASUAL, 2026)
    assert row.used == 3
    assert row.available == 7

    wallet.credit(db, employee.id, LeaveType.CASUAL, 2026, 3, "1:CANCELLED")
    assert row.used == 0
    assert row.available == 10
    actions = [t.action for t in db.query(LeaveTransaction).order_by(LeaveTransaction.id)]
    assert actions == [LedgerAction.DEBIT.value, LedgerAction.CREDIT.value]


def test_replayed_debit_applies_once(db: Session, employee):
    key = wallet.transition_key(42, "APPROVED")
    first = wallet.debit(db, employee.id, LeaveType.MEDICAL, 2026, 5, key)
    second = wallet.debit(db, employee.id, LeaveType.MEDICAL, 2026, 5, key)
    assert first.id == second.id
    assert wallet.get_or_create_balance(db, employee.id, LeaveType.MEDICAL, 2026).used == 5
    assert db.query(LeaveTransaction).filter(LeaveTransaction.idempotency_key == key).count() == 1


def test_overdraft_raises_and_leaves_balance_untouched(db: Session, employee):
    with pytest.raises(LedgerOverdraftError) as exc:
        wallet.debit(db, employee.id, LeaveType.PATERNITY, 2026, 8, "7:APPROVED")
    assert exc.value.details["available"] == "7"
    assert wallet.get_or_create_balance(db, employee.id, LeaveType.PATERNITY, 2026).used == 0
    assert db.query(LeaveTransaction).count() == 0


def test_exempt_type_is_a_no_op(db: Session, employee):
    assert wallet.debit(db, employee.id, LeaveType.EXTRA_WITHOUT_PAY, 2026, 90, "9:APPROVED") is None
    assert wallet.credit(db, employee.id, LeaveType.SPECIAL_DISABILITY, 2026, 90, "9:RECALLED") is None
    assert db.query(LeaveBalance).count() == 0


def test_credit_floors_used_at_zero(db: Session, employee):
    wallet.debit(db, employee.id, LeaveType.CASUAL, 2026, 2, "3:APPROVED")
    txn = wallet.credit(db, employee.id, LeaveType.CASUAL, 2026, 5, "3:RECALLED")
    assert txn.delta_days == 2
    assert wallet.get_or_create_balance(db, employee.id, LeaveType.CASUAL, 2026).used == 0


def test_accrual_adds_two_days_per_month_once(db: Session, employee):
    wallet.accrue(db, employee.id, LeaveType.EARNED, 2026, 1)
    wallet.accrue(db, employee.id, LeaveType.EARNED, 2026, 1)
    wallet.accrue(db, employee.id, LeaveType.EARNED, 2026, 2)
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
    assert row.allocated == 4
    keys = {t.idempotency_key for t in db.query(LeaveTransaction)}
    assert keys == {f"accrual:{employee.id}:EARNED:2026-01", f"accrual:{employee.id}:EARNED:2026-02"}


def test_accrual_never_exceeds_accumulation_cap(db: Session, employee):
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
    row.allocated = 59
    db.flush()
    assert wallet.accrue(db, employee.id, LeaveType.EARNED, 2026, 11).delta_days == 1
    assert wallet.accrue(db, employee.id, LeaveType.EARNED, 2026, 12).delta_days == 0
    assert row.available == 60
    # the 1 + 2 days that did not fit went to special leave
    assert row.special_days == 3


def test_accrual_ignores_non_accruing_types(db: Session, employee):
    assert wallet.accrue(db, employee.id, LeaveType.CASUAL, 2026, 1) is None


def test_carry_forward_is_capped(db: Session, employee):
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
    row.allocated = 60
    row.carried_forward = 15
    row.used = 5
    db.flush()
    txn = wallet.carry_forward(db, employee.id, LeaveType.EARNED, 2026)
    assert txn.delta_days == 60
    nxt = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2027)
    assert nxt.carried_forward == 60

    # replay is a no-op
    assert wallet.carry_forward(db, employee.id, LeaveType.EARNED, 2026).id == txn.id
    assert nxt.carried_forward == 60


def test_non_carry_types_lapse(db: Session, employee):
    wallet.get_or_create_balance(db, employee.id, LeaveType.CASUAL, 2026)
    assert wallet.carry_forward(db, employee.id, LeaveType.CASUAL, 2026) is None


def test_get_balances_lists_every_ledger_type(db: Session, employee):
    rows = wallet.get_balances(db, employee.id, 2026)
    types = {r.leave_type for r in rows}
    assert LeaveType.EARNED in types
    assert LeaveType.CASUAL in types
    assert LeaveType.EXTRA_WITHOUT_PAY not in types
    assert LeaveType.SPECIAL_DISABILITY not in types
    assert LeaveType.QUARANTINE not in types


def test_get_balances_is_read_only(db: Session, employee):
    wallet.debit(db, employee.id, LeaveType.CASUAL, 2026, 2, "11:APPROVED")
    db.commit()

    rows = {r.leave_type: r for r in wallet.get_balances(db, employee.id, 2026)}
    assert rows[LeaveType.CASUAL].used == 2
    assert rows[LeaveType.MEDICAL].available == 14
    assert rows[LeaveType.EARNED].special_days == 0
    assert db.query(LeaveBalance).count() == 1


def test_overflow_records_a_journal_entry(db: Session, employee):
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
    row.allocated = 60
    db.flush()
    wallet.accrue(db, employee.id, LeaveType.EARNED, 2026, 6)
    overflow = db.query(LeaveTransaction).filter(LeaveTransaction.action == LedgerAction.OVERFLOW.value).one()
    assert overflow.delta_days == 2
    assert overflow.idempotency_key == f"overflow:accrual:{employee.id}:EARNED:2026-06"
    assert row.available == 60
    assert wallet.get_special_days(db, employee.id, 2026) == 2


def test_special_leave_is_capped(db: Session, employee):
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
    row.allocated = 60
    row.special_days = 119
    db.flush()
    wallet.accrue(db, employee.id, LeaveType.EARNED, 2026, 7)
    wallet.accrue(db, employee.id, LeaveType.EARNED, 2026, 8)
    assert row.special_days == 120
    assert db.query(LeaveTransaction).filter(LeaveTransaction.action == LedgerAction.OVERFLOW.value).count() == 1


def test_credit_above_cap_overflows_to_special(db: Session, employee):
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
    row.allocated = 60
    row.carried_forward = 4
    row.used = 10
    db.flush()

    txn = wallet.credit(db, employee.id, LeaveType.EARNED, 2026, 10, "5:CANCELLED")
    assert txn.delta_days == 10
    assert row.used == 0
    assert row.available == 60
    assert row.special_days == 4
    keys = {t.idempotency_key for t in db.query(LeaveTransaction)}
    assert keys == {"5:CANCELLED", "overflow:5:CANCELLED"}


def test_casual_credit_never_overflows(db: Session, employee):
    wallet.debit(db, employee.id, LeaveType.CASUAL, 2026, 3, "6:APPROVED")
    wallet.credit(db, employee.id, LeaveType.CASUAL, 2026, 3, "6:RECALLED")
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.CASUAL, 2026)
    assert (row.available, row.special_days) == (10, 0)


def test_mutations_reload_a_stale_row(db: Session, employee):
    row = wallet.get_or_create_balance(db, employee.id, LeaveType.CASUAL, 2026)
    db.commit()
    assert row.used == 0
    db.query(LeaveBalance).filter(LeaveBalance.id == row.id).update(
        {LeaveBalance.used: 4, LeaveBalance.version: LeaveBalance.version + 1},
        synchronize_session=False,
    )

    # row still holds used == 0 in the identity map; the debit must see 4
    wallet.debit(db, employee.id, LeaveType.CASUAL, 2026, 3, "8:APPROVED")
    assert row.used == 7
    assert row.available == 3
