"""
Tests for adjusting approved leave: extend, shorten, partial cancel, duty return
"""
from datetime import date

import pytest
from sqlalchemy.orm import Session

from app.core.exceptions import LeaveAdjustmentError, SubmissionRejectedError, TransitionError
from app.models.audit_log import AuditLog
from app.models.employee import Role
from app.models.leave import LeaveAction as A, LeaveStatus as S, LeaveTransaction, LeaveType
from app.services import leave_service
from app.services import leave_wallet_service as wallet
from app.services.policy_service import plan_casual_conversion, plan_medical_conversion
from app.services.policy_validator import LeaveCandidate, ValidationErrorKind

TODAY = date(2026, 3, 10)


def submit(db, employee, leave_type, start, end, today=TODAY, **kwargs):
    candidate = LeaveCandidate(
        employee_id=None,
        leave_type=leave_type,
        start_date=start,
        end_date=end,
        reason="Recovering from seasonal flu",
        **kwargs,
    )
    return leave_service.apply_leave(db, employee, candidate, today=today)


def approve_through_chain(db, leave, approvers):
    """Forward every step and approve at the last one."""
    while leave.status in (S.SUBMITTED, S.PENDING):
        step = leave.open_step
        actor = approvers[Role(step.required_role)]
        is_last = step.step_index == len(leave.approval_route) - 1
        leave = leave_service.decide(
            db, leave.id, Role(actor.role), actor.id, A.APPROVE if is_last else A.FORWARD,
        )
    return leave


def approved_medical(db, employee, approvers, start=date(2026, 3, 10), end=date(2026, 3, 16)):
    leave = submit(db, employee, LeaveType.MEDICAL, start, end, certificate_ref="MC-2026-031")
    leave = approve_through_chain(db, leave, approvers)
    assert leave.status == S.APPROVED
    return leave


def medical_used(db, employee):
    return wallet.get_or_create_balance(db, employee.id, LeaveType.MEDICAL, 2026).used


class TestShorten:
    def test_shorten_credits_released_days(self, db: Session, employee, approvers):
        leave = approved_medical(db, employee, approvers)
        assert medical_used(db, employee) == 7
        version = leave.version

        leave = leave_service.shorten_leave(
            db, leave.id, employee.id, date(2026, 3, 13), "Recovered earlier than expected", today=date(2026, 3, 12),
        )
        assert leave.status == S.APPROVED
        assert leave.end_date == date(2026, 3, 13)
        assert leave.working_days_charged == 4
        assert leave.version == version + 1
        assert medical_used(db, employee) == 4

        txn = db.query(LeaveTransaction).filter(
            LeaveTransaction.idempotency_key == f"{leave.id}:SHORTENED:2026-03-13"
        ).one()
        assert txn.delta_days == 3
        audit = db.query(AuditLog).filter(AuditLog.action == "LEAVE_SHORTENED").one()
        assert audit.meta_json["days_released"] == 3
        assert audit.meta_json["old_end_date"] == "2026-03-16"

    def test_shortened_earned_leave_overflows_into_special(self, db: Session, employee, approvers):
        row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
        row.allocated = 60
        db.commit()
        leave = submit(db, employee, LeaveType.EARNED, date(2026, 3, 15), date(2026, 3, 19), today=date(2026, 3, 1))
        leave = approve_through_chain(db, leave, approvers)

        row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
        row.allocated = 63
        db.commit()

        leave_service.shorten_leave(
            db, leave.id, employee.id, date(2026, 3, 16), "Project deadline moved up", today=date(2026, 3, 16),
        )
        row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
        assert row.used == 2
        assert row.available == 60
        assert row.special_days == 1

    @pytest.mark.parametrize("today,new_end,rule", [
        (date(2026, 3, 9), date(2026, 3, 12), "not_started"),
        (date(2026, 3, 17), date(2026, 3, 12), "already_ended"),
        (date(2026, 3, 12), date(2026, 3, 16), "invalid_date"),
        (date(2026, 3, 12), date(2026, 3, 11), "invalid_date"),
    ])
    def test_shorten_date_rules(self, db: Session, employee, approvers, today, new_end, rule):
        leave = approved_medical(db, employee, approvers)
        with pytest.raises(LeaveAdjustmentError) as exc:
            leave_service.shorten_leave(db, leave.id, employee.id, new_end, "Recovered earlier than expected", today=today)
        assert exc.value.rule == rule
        assert medical_used(db, employee) == 7

    def test_only_requester_may_shorten(self, db: Session, employee, approvers):
        leave = approved_medical(db, employee, approvers)
        with pytest.raises(TransitionError):
            leave_service.shorten_leave(
                db, leave.id, approvers[Role.HR_HEAD].id, date(2026, 3, 13), "Recovered earlier", today=date(2026, 3, 12),
            )

    def test_shorten_requires_reason(self, db: Session, employee, approvers):
        leave = approved_medical(db, employee, approvers)
        with pytest.raises(LeaveAdjustmentError) as exc:
            leave_service.shorten_leave(db, leave.id, employee.id, date(2026, 3, 13), "better", today=date(2026, 3, 12))
        assert exc.value.rule == "invalid_reason"

    def test_pending_request_cannot_be_shortened(self, db: Session, employee):
        leave = submit(db, employee, LeaveType.MEDICAL, date(2026, 3, 10), date(2026, 3, 12))
        with pytest.raises(TransitionError):
            leave_service.shorten_leave(
                db, leave.id, employee.id, date(2026, 3, 11), "Recovered earlier than expected", today=date(2026, 3, 10),
            )


class TestPartialCancel:
    def test_cancels_days_from_today(self, db: Session, employee, approvers):
        leave = approved_medical(db, employee, approvers)
        leave = leave_service.partial_cancel_leave(db, leave.id, employee.id, "Back at work", today=date(2026, 3, 12))
        assert leave.status == S.APPROVED
        assert leave.end_date == date(2026, 3, 11)
        assert leave.working_days_charged == 2
        assert medical_used(db, employee) == 2
        assert db.query(AuditLog).filter(AuditLog.action == "LEAVE_PARTIALLY_CANCELLED").count() == 1

    def test_on_first_day_keeps_that_day(self, db: Session, employee, approvers):
        leave = approved_medical(db, employee, approvers)
        leave = leave_service.partial_cancel_leave(db, leave.id, employee.id, today=date(2026, 3, 10))
        assert leave.end_date == date(2026, 3, 10)
        assert medical_used(db, employee) == 1

    def test_nothing_left_to_cancel(self, db: Session, employee, approvers):
        leave = approved_medical(db, employee, approvers, start=date(2026, 3, 10), end=date(2026, 3, 10))
        with pytest.raises(LeaveAdjustmentError) as exc:
            leave_service.partial_cancel_leave(db, leave.id, employee.id, today=date(2026, 3, 10))
        assert exc.value.rule == "no_future_days"
        assert medical_used(db, employee) == 1


class TestExtend:
    def test_extension_is_a_linked_request(self, db: Session, employee, approvers):
        parent = approved_medical(db, employee, approvers, start=date(2026, 3, 10), end=date(2026, 3, 12))
        extension = leave_service.extend_leave(
            db, parent.id, employee.id, date(2026, 3, 15), "Doctor advised three more days", today=date(2026, 3, 11),
        )
        assert extension.id != parent.id
        assert extension.parent_leave_id == parent.id
        assert extension.is_extension
        assert (extension.start_date, extension.end_date) == (date(2026, 3, 13), date(2026, 3, 15))
        assert extension.status == S.PENDING
        assert extension.steps[0].required_role == Role.HR_ADMIN
        audit = db.query(AuditLog).filter(AuditLog.action == "LEAVE_EXTENSION_REQUESTED").one()
        assert audit.meta_json["parent_leave_id"] == parent.id

        approve_through_chain(db, extension, approvers)
        assert medical_used(db, employee) == 6

    def test_second_extension_waits_for_the_first(self, db: Session, employee, approvers):
        parent = approved_medical(db, employee, approvers, start=date(2026, 3, 10), end=date(2026, 3, 12))
        leave_service.extend_leave(db, parent.id, employee.id, date(2026, 3, 15), "Doctor advised more rest", today=date(2026, 3, 11))
        with pytest.raises(LeaveAdjustmentError) as exc:
            leave_service.extend_leave(db, parent.id, employee.id, date(2026, 3, 16), "Doctor advised more rest", today=date(2026, 3, 11))
        assert exc.value.rule == "extension_pending"
        with pytest.raises(LeaveAdjustmentError):
            leave_service.shorten_leave(db, parent.id, employee.id, date(2026, 3, 11), "Recovered earlier", today=date(2026, 3, 11))

    def test_extension_must_end_later(self, db: Session, employee, approvers):
        parent = approved_medical(db, employee, approvers, start=date(2026, 3, 10), end=date(2026, 3, 12))
        with pytest.raises(LeaveAdjustmentError) as exc:
            leave_service.extend_leave(db, parent.id, employee.id, date(2026, 3, 12), "Doctor advised more rest", today=date(2026, 3, 11))
        assert exc.value.rule == "invalid_date"

    def test_extension_counts_toward_consecutive_limit(self, db: Session, employee, approvers):
        parent = submit(db, employee, LeaveType.CASUAL, date(2026, 3, 15), date(2026, 3, 17))
        parent = approve_through_chain(db, parent, approvers)
        with pytest.raises(SubmissionRejectedError) as exc:
            leave_service.extend_leave(db, parent.id, employee.id, date(2026, 3, 18), "Family function ran long", today=date(2026, 3, 16))
        assert [e.kind for e in exc.value.errors] == [ValidationErrorKind.CONSECUTIVE_DAYS_EXCEEDED]
        assert exc.value.errors[0].details["requested"] == 4

    def test_extension_skips_notice_and_start_endpoint(self, db: Session, employee, approvers):
        row = wallet.get_or_create_balance(db, employee.id, LeaveType.EARNED, 2026)
        row.allocated = 30
        db.commit()
        parent = submit(db, employee, LeaveType.EARNED, date(2026, 3, 15), date(2026, 3, 19), today=date(2026, 3, 1))
        parent = approve_through_chain(db, parent, approvers)

        # starts on Friday 2026-03-20, two working days after "today"
        extension = leave_service.extend_leave(
            db, parent.id, employee.id, date(2026, 3, 22), "Travel back delayed by weather", today=date(2026, 3, 17),
        )
        assert extension.start_date == date(2026, 3, 20)
        assert extension.working_days_charged == 3


class TestResumeDuty:
    def test_records_duty_return(self, db: Session, employee, approvers):
        leave = approved_medical(db, employee, approvers, start=date(2026, 3, 10), end=date(2026, 3, 12))
        leave = leave_service.resume_duty(db, leave.id, employee, date(2026, 3, 15))
        assert leave.duty_resumed_on == date(2026, 3, 15)
        assert db.query(AuditLog).filter(AuditLog.action == "LEAVE_DUTY_RESUMED").count() == 1

    def test_long_medical_leave_needs_fitness_certificate(self, db: Session, employee, approvers):
        leave = approved_medical(db, employee, approvers, start=date(2026, 3, 10), end=date(2026, 3, 19))
        with pytest.raises(SubmissionRejectedError):
            leave_service.resume_duty(db, leave.id, employee, date(2026, 3, 22))

        leave_service.attach_fitness_certificate(db, leave.id, employee, "FIT-2026-007")
        leave = leave_service.resume_duty(db, leave.id, employee, date(2026, 3, 22))
        assert leave.duty_resumed_on == date(2026, 3, 22)


class TestConversionPlans:
    def test_casual_beyond_limit_draws_on_earned(self):
        plan = plan_casual_conversion(5, casual_available=10, earned_available=20)
        assert plan.portions == (("CASUAL", 3), ("EARNED", 2))
        assert plan.shortfall == 0

    def test_casual_shortfall_when_earned_runs_out(self):
        plan = plan_casual_conversion(6, casual_available=10, earned_available=1)
        assert plan.portions == (("CASUAL", 3), ("EARNED", 1))
        assert plan.shortfall == 2

    def test_medical_falls_through_to_unpaid(self):
        plan = plan_medical_conversion(20, medical_available=14, earned_available=3, special_available=1)
        assert plan.portions == (
            ("MEDICAL", 14), ("EARNED", 3), ("SPECIAL_EARNED", 1), ("EXTRA_WITHOUT_PAY", 2),
        )
        assert plan.shortfall == 0
