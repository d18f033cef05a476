"""
Tests for per-leave-type policy validation
"""
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from app.models.employee import Role
from app.models.leave import LeaveType
from app.services.leave_service import SubmissionContext, validate_submission
from app.services.policy_validator import (
    LeaveCandidate,
    ValidationErrorKind as K,
    check_duty_return,
    validate,
)

TODAY = date(2026, 3, 10)  # Tuesday
REASON = "Family function out of town"


def candidate(leave_type, start, end, **kwargs):
    kwargs.setdefault("reason", REASON)
    return LeaveCandidate(
        employee_id=1,
        requester_role=Role.EMPLOYEE,
        leave_type=leave_type,
        start_date=start,
        end_date=end,
        **kwargs,
    )


def kinds(errors):
    return [e.kind for e in errors]


def test_valid_earned_request():
    req = candidate(LeaveType.EARNED, date(2026, 3, 15), date(2026, 3, 19))
    assert validate(req, 10, [], date(2026, 3, 1)) == []


def test_earned_three_working_days_notice_is_insufficient():
    # Tue 10 -> Mon 16 leaves Wed, Thu, Sun in between
    req = candidate(LeaveType.EARNED, date(2026, 3, 16), date(2026, 3, 16))
    errors = validate(req, 10, [], TODAY)
    assert kinds(errors) == [K.INSUFFICIENT_NOTICE]
    assert errors[0].details["notice_working_days"] == 3
    assert errors[0].details["required"] == 5


def test_notice_does_not_count_holidays():
    req = candidate(LeaveType.EARNED, date(2026, 3, 22), date(2026, 3, 22))
    assert validate(req, 10, [], TODAY) == []
    holidays = [date(2026, 3, 11), date(2026, 3, 12), date(2026, 3, 15)]
    assert kinds(validate(req, 10, holidays, TODAY)) == [K.INSUFFICIENT_NOTICE]


def test_medical_five_days_without_certificate():
    req = candidate(LeaveType.MEDICAL, date(2026, 3, 15), date(2026, 3, 19))
    assert kinds(validate(req, 14, [], TODAY)) == [K.CERTIFICATE_REQUIRED]


def test_medical_with_certificate_passes():
    req = candidate(LeaveType.MEDICAL, date(2026, 3, 15), date(2026, 3, 19), certificate_ref="docs/med-001.pdf")
    assert validate(req, 14, [], TODAY) == []


def test_medical_at_threshold_needs_no_certificate():
    req = candidate(LeaveType.MEDICAL, date(2026, 3, 15), date(2026, 3, 17))
    assert validate(req, 14, [], TODAY) == []


@pytest.mark.parametrize("start,end,field", [
    (date(2026, 3, 13), date(2026, 3, 15), "start_date"),  # starts Friday
    (date(2026, 3, 14), date(2026, 3, 15), "start_date"),  # starts Saturday
    (date(2026, 3, 19), date(2026, 3, 21), "end_date"),    # ends Saturday
    (date(2026, 3, 18), date(2026, 3, 20), "end_date"),    # ends Friday
])
def test_casual_endpoints_on_weekend(start, end, field):
    errors = validate(candidate(LeaveType.CASUAL, start, end), 10, [], TODAY)
    assert kinds(errors) == [K.ENDPOINT_ON_NON_WORKING_DAY]
    assert errors[0].field == field


def test_casual_endpoint_on_holiday():
    errors = validate(candidate(LeaveType.CASUAL, date(2026, 3, 15), date(2026, 3, 17)), 10, [date(2026, 3, 17)], TODAY)
    assert kinds(errors) == [K.ENDPOINT_ON_NON_WORKING_DAY]
    assert errors[0].field == "end_date"


def test_medical_may_start_on_weekend():
    req = candidate(LeaveType.MEDICAL, date(2026, 3, 13), date(2026, 3, 15))
    assert validate(req, 14, [], TODAY) == []


def test_casual_more_than_three_days():
    errors = validate(candidate(LeaveType.CASUAL, date(2026, 3, 15), date(2026, 3, 18)), 10, [], TODAY)
    assert kinds(errors) == [K.CONSECUTIVE_DAYS_EXCEEDED]
    assert errors[0].details == {"requested": 4, "max": 3}


def test_casual_cannot_be_backdated():
    errors = validate(candidate(LeaveType.CASUAL, date(2026, 3, 9), date(2026, 3, 9)), 10, [], TODAY)
    assert kinds(errors) == [K.BACKDATE_NOT_ALLOWED]


def test_earned_backdated_within_window_skips_notice():
    req = candidate(LeaveType.EARNED, date(2026, 3, 15), date(2026, 3, 19))
    assert validate(req, 10, [], date(2026, 3, 26)) == []


def test_earned_backdated_beyond_window():
    req = candidate(LeaveType.EARNED, date(2026, 3, 15), date(2026, 3, 19))
    errors = validate(req, 10, [], date(2026, 4, 15))
    assert kinds(errors) == [K.BACKDATE_NOT_ALLOWED]
    assert errors[0].details == {"days_back": 31, "allowed": 30}


def test_inverted_range_stops_further_checks():
    req = candidate(LeaveType.CASUAL, date(2026, 3, 17), date(2026, 3, 13))
    assert kinds(validate(req, 0, [], TODAY)) == [K.INVALID_RANGE]


def test_range_without_working_day_is_invalid():
    req = candidate(LeaveType.MEDICAL, date(2026, 3, 13), date(2026, 3, 14))
    assert kinds(validate(req, 14, [], TODAY)) == [K.INVALID_RANGE]


def test_range_of_only_holidays_is_invalid():
    req = candidate(LeaveType.MEDICAL, date(2026, 3, 16), date(2026, 3, 16))
    assert kinds(validate(req, 14, [date(2026, 3, 16)], TODAY)) == [K.INVALID_RANGE]


def test_short_reason_is_missing_field():
    errors = validate(candidate(LeaveType.MEDICAL, date(2026, 3, 15), date(2026, 3, 15), reason="sick"), 14, [], TODAY)
    assert kinds(errors) == [K.MISSING_FIELD]
    assert errors[0].field == "reason"


def test_missing_leave_type_stops_further_checks():
    req = candidate(None, date(2026, 3, 15), date(2026, 3, 13), reason=None)
    errors = validate(req, 0, [], TODAY)
    assert kinds(errors) == [K.MISSING_FIELD, K.MISSING_FIELD]
    assert {e.field for e in errors} == {"leave_type", "reason"}


def test_insufficient_balance():
    req = candidate(LeaveType.EARNED, date(2026, 3, 15), date(2026, 3, 19))
    errors = validate(req, 3, [], date(2026, 3, 1))
    assert kinds(errors) == [K.INSUFFICIENT_BALANCE]
    assert errors[0].details == {"requested": 5, "available": 3}


def test_balance_exempt_type_ignores_balance():
    req = candidate(LeaveType.EXTRA_WITHOUT_PAY, date(2026, 3, 15), date(2026, 3, 19))
    assert validate(req, 0, [], TODAY) == []


def test_special_disability_requires_incident_date():
    req = candidate(LeaveType.SPECIAL_DISABILITY, date(2026, 3, 15), date(2026, 3, 19))
    errors = validate(req, None, [], TODAY)
    assert kinds(errors) == [K.MISSING_FIELD]
    assert errors[0].field == "incident_date"


@pytest.mark.parametrize("days_before,ok", [(0, True), (90, True), (91, False), (-1, False)])
def test_special_disability_incident_window(days_before, ok):
    start = date(2026, 3, 15)
    req = candidate(
        LeaveType.SPECIAL_DISABILITY, start, start + timedelta(days=39),
        incident_date=start - timedelta(days=days_before),
    )
    errors = validate(req, None, [], TODAY)
    assert kinds(errors) == ([] if ok else [K.INCIDENT_DATE_OUT_OF_WINDOW])


def test_overlapping_leave():
    req = candidate(LeaveType.MEDICAL, date(2026, 3, 15), date(2026, 3, 17))
    errors = validate(req, 14, [], TODAY, existing_ranges=[(date(2026, 3, 17), date(2026, 3, 18))])
    assert kinds(errors) == [K.OVERLAPPING_LEAVE]


def test_all_violations_reported_together():
    req = candidate(LeaveType.CASUAL, date(2026, 3, 13), date(2026, 3, 18))
    errors = validate(req, 2, [], TODAY)
    assert set(kinds(errors)) == {
        K.ENDPOINT_ON_NON_WORKING_DAY,
        K.CONSECUTIVE_DAYS_EXCEEDED,
        K.INSUFFICIENT_BALANCE,
    }


def test_validate_submission_reports_inverted_range():
    ctx = SubmissionContext(holidays=[], today=TODAY, balance_available=10)
    result = validate_submission(candidate(LeaveType.CASUAL, date(2026, 3, 17), date(2026, 3, 16)), ctx)
    assert not result.ok
    assert kinds(result.errors) == [K.INVALID_RANGE]


def test_validate_submission_returns_breakdown_and_charge():
    ctx = SubmissionContext(holidays=[date(2026, 3, 17)], today=date(2026, 3, 1), balance_available=10)
    result = validate_submission(candidate(LeaveType.EARNED, date(2026, 3, 15), date(2026, 3, 22)), ctx)
    assert result.ok
    assert result.validated.working_days_charged == 8
    assert result.validated.breakdown.weekend_count == 2
    assert result.validated.breakdown.holiday_count == 1
    assert result.validated.pay_bands is None


def test_validate_submission_computes_pay_bands():
    start = date(2026, 3, 15)
    ctx = SubmissionContext(holidays=[], today=TODAY, balance_available=None)
    req = candidate(
        LeaveType.SPECIAL_DISABILITY, start, start + timedelta(days=39),
        incident_date=start - timedelta(days=60),
    )
    result = validate_submission(req, ctx)
    assert result.ok
    bands = result.validated.pay_bands
    assert (bands.full_pay_days, bands.half_pay_days, bands.unpaid_days) == (30, 10, 0)


def test_duty_return_needs_fitness_certificate_after_long_medical_leave():
    leave = SimpleNamespace(leave_type=LeaveType.MEDICAL, working_days_charged=8, fitness_certificate_ref=None)
    assert kinds(check_duty_return(leave)) == [K.CERTIFICATE_REQUIRED]
    leave.fitness_certificate_ref = "docs/fit-001.pdf"
    assert check_duty_return(leave) == []


def test_duty_return_short_medical_leave_is_cleared():
    leave = SimpleNamespace(leave_type=LeaveType.MEDICAL, working_days_charged=7, fitness_certificate_ref=None)
    assert check_duty_return(leave) == []
