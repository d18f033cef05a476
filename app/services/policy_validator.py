"""
Policy validation service - validates leave requests against policy rules

Validation is pure: it takes the candidate, the ledger's available balance,
the holiday list and "today" as arguments and returns every violation it
finds. It never touches the database or the ledger.
"""
import enum
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.models.employee import Role
from app.models.leave import LeaveType
from app.services import calendar_service as cal
from app.services.policy_service import (
    INCIDENT_WINDOW_DAYS,
    MIN_REASON_LENGTH,
    get_policy,
)


class ValidationErrorKind(str, enum.Enum):
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_RANGE = "INVALID_RANGE"
    ENDPOINT_ON_NON_WORKING_DAY = "ENDPOINT_ON_NON_WORKING_DAY"
    CONSECUTIVE_DAYS_EXCEEDED = "CONSECUTIVE_DAYS_EXCEEDED"
    INSUFFICIENT_NOTICE = "INSUFFICIENT_NOTICE"
    CERTIFICATE_REQUIRED = "CERTIFICATE_REQUIRED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INCIDENT_DATE_OUT_OF_WINDOW = "INCIDENT_DATE_OUT_OF_WINDOW"
    BACKDATE_NOT_ALLOWED = "BACKDATE_NOT_ALLOWED"
    OVERLAPPING_LEAVE = "OVERLAPPING_LEAVE"


@dataclass(frozen=True)
class ValidationError:
    kind: ValidationErrorKind
    field: Optional[str]
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "field": self.field, "message": self.message, "details": self.details}


@dataclass
class LeaveCandidate:
    """A leave request as submitted, before any state is assigned."""
    employee_id: Optional[int]
    leave_type: Optional[LeaveType]
    start_date: Optional[date]
    end_date: Optional[date]
    reason: Optional[str]
    requester_role: Optional[Role] = None
    incident_date: Optional[date] = None
    certificate_ref: Optional[str] = None
    fitness_certificate_ref: Optional[str] = None


def _missing(field_name: str, message: str) -> ValidationError:
    return ValidationError(ValidationErrorKind.MISSING_FIELD, field_name, message)


def validate(
    request: LeaveCandidate,
    balance_available: Optional[int],
    holidays: Optional[Iterable],
    today: date,
    existing_ranges: Optional[Sequence[Tuple[date, date]]] = None,
    extends_days: int = 0,
) -> List[ValidationError]:
    """
    Validate a leave candidate against the policy table.

    Args:
        request: Candidate to check
        balance_available: Ledger available days for the type/year (None skips the balance check)
        holidays: Holiday rows or dates
        today: Local calendar day the check is evaluated on
        existing_ranges: (start, end) of the employee's open or approved leaves
        extends_days: Days of the approved leave this candidate extends. An
            extension needs no notice, may start on a non-working day and
            counts those days toward the consecutive-day limit.

    Returns:
        All violations found; empty list when the candidate is valid.
        Missing core fields or an inverted range stop further checks.
    """
    errors: List[ValidationError] = []

    if request.leave_type is None:
        errors.append(_missing("leave_type", "Leave type is required"))
    if request.start_date is None:
        errors.append(_missing("start_date", "Start date is required"))
    if request.end_date is None:
        errors.append(_missing("end_date", "End date is required"))
    if not request.reason or len(request.reason.strip()) < MIN_REASON_LENGTH:
        errors.append(_missing("reason", f"Reason must be at least {MIN_REASON_LENGTH} characters"))
    if request.leave_type == LeaveType.SPECIAL_DISABILITY and request.incident_date is None:
        errors.append(_missing("incident_date", "Incident date is required for special disability leave"))

    if request.leave_type is None or request.start_date is None or request.end_date is None:
        return errors

    start, end = request.start_date, request.end_date
    if end < start:
        errors.append(ValidationError(
            ValidationErrorKind.INVALID_RANGE,
            "end_date",
            "End date cannot be before start date",
            {"start_date": str(start), "end_date": str(end)},
        ))
        return errors

    policy = get_policy(request.leave_type)
    breakdown = cal.count_days_breakdown(start, end, holidays)
    charged = breakdown.total

    if breakdown.working_count == 0:
        errors.append(ValidationError(
            ValidationErrorKind.INVALID_RANGE,
            "start_date",
            "Date range contains no working day",
            {"weekend_days": breakdown.weekend_count, "holiday_days": breakdown.holiday_count},
        ))

    if policy.requires_working_endpoints:
        endpoints = (("end_date", end),) if extends_days else (("start_date", start), ("end_date", end))
        for field_name, day in endpoints:
            if cal.is_non_working(day, holidays):
                errors.append(ValidationError(
                    ValidationErrorKind.ENDPOINT_ON_NON_WORKING_DAY,
                    field_name,
                    f"{request.leave_type.value} leave cannot {'start' if field_name == 'start_date' else 'end'} "
                    f"on a weekend or holiday ({day})",
                    {"date": str(day)},
                ))

    if policy.max_consecutive_days is not None and charged + extends_days > policy.max_consecutive_days:
        errors.append(ValidationError(
            ValidationErrorKind.CONSECUTIVE_DAYS_EXCEEDED,
            "end_date",
            f"{request.leave_type.value} leave cannot exceed {policy.max_consecutive_days} consecutive days",
            {"requested": charged + extends_days, "max": policy.max_consecutive_days},
        ))

    if start < today and policy.backdate_allowed_days is not None:
        days_back = (today - start).days
        if days_back > policy.backdate_allowed_days:
            message = (
                f"{request.leave_type.value} leave cannot be backdated"
                if policy.backdate_allowed_days == 0
                else f"{request.leave_type.value} leave can be backdated at most {policy.backdate_allowed_days} days"
            )
            errors.append(ValidationError(
                ValidationErrorKind.BACKDATE_NOT_ALLOWED,
                "start_date",
                message,
                {"days_back": days_back, "allowed": policy.backdate_allowed_days},
            ))

    # Backdated starts are governed by the backdate rule, not notice
    if policy.min_notice_working_days and start >= today and not extends_days:
        notice = cal.count_working_days_between(today, start, holidays)
        if notice < policy.min_notice_working_days:
            errors.append(ValidationError(
                ValidationErrorKind.INSUFFICIENT_NOTICE,
                "start_date",
                f"{request.leave_type.value} leave requires {policy.min_notice_working_days} working days notice",
                {"notice_working_days": notice, "required": policy.min_notice_working_days},
            ))

    if (
        policy.certificate_threshold_days is not None
        and charged > policy.certificate_threshold_days
        and not request.certificate_ref
    ):
        errors.append(ValidationError(
            ValidationErrorKind.CERTIFICATE_REQUIRED,
            "certificate_ref",
            f"A certificate is required for {request.leave_type.value} leave over "
            f"{policy.certificate_threshold_days} days",
            {"days": charged, "threshold": policy.certificate_threshold_days},
        ))

    if policy.pay_banded and request.incident_date is not None:
        incident = request.incident_date
        if incident > start or (start - incident).days > INCIDENT_WINDOW_DAYS:
            errors.append(ValidationError(
                ValidationErrorKind.INCIDENT_DATE_OUT_OF_WINDOW,
                "incident_date",
                f"Incident date must be on or before the start date and within {INCIDENT_WINDOW_DAYS} days of it",
                {"incident_date": str(incident), "start_date": str(start)},
            ))

    if policy.affects_balance and balance_available is not None and charged > balance_available:
        errors.append(ValidationError(
            ValidationErrorKind.INSUFFICIENT_BALANCE,
            "leave_type",
            f"Insufficient {request.leave_type.value} balance: requested {charged}, available {balance_available}",
            {"requested": charged, "available": balance_available},
        ))

    for other_start, other_end in existing_ranges or ():
        if other_start <= end and start <= other_end:
            errors.append(ValidationError(
                ValidationErrorKind.OVERLAPPING_LEAVE,
                "start_date",
                f"Overlaps an existing leave from {other_start} to {other_end}",
                {"start_date": str(other_start), "end_date": str(other_end)},
            ))
            break

    return errors


def check_duty_return(leave) -> List[ValidationError]:
    """
    Duty-return gate for long medical leave.

    MEDICAL leave longer than the fitness threshold needs a fitness
    certificate on file before the employee resumes duty.
    """
    policy = get_policy(leave.leave_type)
    threshold = policy.fitness_cert_threshold_days
    if threshold is None or leave.working_days_charged <= threshold:
        return []
    if leave.fitness_certificate_ref:
        return []
    return [ValidationError(
        ValidationErrorKind.CERTIFICATE_REQUIRED,
        "fitness_certificate_ref",
        f"A fitness certificate is required to return from {leave.leave_type.value} leave over {threshold} days",
        {"days": leave.working_days_charged, "threshold": threshold},
    )]
