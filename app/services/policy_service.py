"""
Leave policy rule table.

One static LeavePolicy per leave type plus the SPECIAL_DISABILITY pay-band
calculation. Values follow the company leave rules:

- EARNED: accrues 2 days/month, balance may not accumulate beyond 60,
  carry-forward capped at 60, 5 working days notice, may be backdated 30 days.
  Accrual or credits above 60 park in special leave (at most 120 days).
- CASUAL: 10 days/year, at most 3 consecutive days, never backdated.
- MEDICAL: 14 days/year; medical certificate above 3 days, fitness
  certificate for duty return above 7 days.
- SPECIAL_DISABILITY: up to 180 days, paid in bands from the incident date
  (full pay for days 0-90, half pay to day 180, unpaid beyond).
- CASUAL beyond 3 days and MEDICAL beyond the balance can be previewed as a
  split across EARNED (and special EARNED / EXTRA_WITHOUT_PAY for MEDICAL).
"""
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Tuple

from app.models.employee import Role
from app.models.leave import LeaveType
from app.services import calendar_service as cal

MIN_REASON_LENGTH = 10

FULL_PAY_WINDOW_DAYS = 90
HALF_PAY_WINDOW_DAYS = 180
INCIDENT_WINDOW_DAYS = 90

SPECIAL_EARNED_CAP = 120
SPECIAL_EARNED_SOURCE = "SPECIAL_EARNED"

# Roles that may issue a terminal approval; DEPT_HEAD only routes
APPROVAL_AUTHORITY_ROLES = frozenset({Role.HR_ADMIN, Role.HR_HEAD, Role.CEO})

# Roles allowed to confirm cancellations and recall approved leave
ADMIN_ACTION_ROLES = frozenset({Role.HR_ADMIN, Role.HR_HEAD, Role.CEO})

FULL_CHAIN: Tuple[Role, ...] = (Role.HR_ADMIN, Role.DEPT_HEAD, Role.HR_HEAD, Role.CEO)


@dataclass(frozen=True)
class LeavePolicy:
    leave_type: LeaveType
    approval_chain: Tuple[Role, ...]
    annual_allocation: int = 0
    monthly_accrual: int = 0
    accumulation_cap: Optional[int] = None
    # Days above accumulation_cap park in special leave up to this many
    overflow_cap: Optional[int] = None
    carry_forward_cap: int = 0
    max_consecutive_days: Optional[int] = None
    min_notice_working_days: Optional[int] = None
    certificate_threshold_days: Optional[int] = None
    fitness_cert_threshold_days: Optional[int] = None
    # None: no backdating limit. 0: start may not be before today.
    backdate_allowed_days: Optional[int] = None
    affects_balance: bool = True
    requires_working_endpoints: bool = False
    pay_banded: bool = False


LEAVE_POLICIES: Dict[LeaveType, LeavePolicy] = {
    LeaveType.EARNED: LeavePolicy(
        leave_type=LeaveType.EARNED,
        approval_chain=FULL_CHAIN,
        monthly_accrual=2,
        accumulation_cap=60,
        overflow_cap=SPECIAL_EARNED_CAP,
        carry_forward_cap=60,
        min_notice_working_days=5,
        backdate_allowed_days=30,
        requires_working_endpoints=True,
    ),
    LeaveType.CASUAL: LeavePolicy(
        leave_type=LeaveType.CASUAL,
        approval_chain=(Role.DEPT_HEAD, Role.HR_HEAD),
        annual_allocation=10,
        max_consecutive_days=3,
        backdate_allowed_days=0,
        requires_working_endpoints=True,
    ),
    LeaveType.MEDICAL: LeavePolicy(
        leave_type=LeaveType.MEDICAL,
        approval_chain=(Role.HR_ADMIN, Role.DEPT_HEAD, Role.HR_HEAD),
        annual_allocation=14,
        certificate_threshold_days=3,
        fitness_cert_threshold_days=7,
        backdate_allowed_days=30,
    ),
    LeaveType.MATERNITY: LeavePolicy(
        leave_type=LeaveType.MATERNITY,
        approval_chain=FULL_CHAIN,
        annual_allocation=56,
        max_consecutive_days=56,
        backdate_allowed_days=30,
    ),
    LeaveType.PATERNITY: LeavePolicy(
        leave_type=LeaveType.PATERNITY,
        approval_chain=FULL_CHAIN,
        annual_allocation=7,
        max_consecutive_days=7,
        backdate_allowed_days=30,
    ),
    LeaveType.STUDY: LeavePolicy(
        leave_type=LeaveType.STUDY,
        approval_chain=FULL_CHAIN,
        annual_allocation=365,
        max_consecutive_days=365,
        backdate_allowed_days=0,
    ),
    LeaveType.SPECIAL_DISABILITY: LeavePolicy(
        leave_type=LeaveType.SPECIAL_DISABILITY,
        approval_chain=FULL_CHAIN,
        max_consecutive_days=HALF_PAY_WINDOW_DAYS,
        affects_balance=False,
        pay_banded=True,
    ),
    LeaveType.QUARANTINE: LeavePolicy(
        leave_type=LeaveType.QUARANTINE,
        approval_chain=(Role.DEPT_HEAD, Role.HR_ADMIN),
        max_consecutive_days=30,
        affects_balance=False,
    ),
    LeaveType.EXTRA_WITH_PAY: LeavePolicy(
        leave_type=LeaveType.EXTRA_WITH_PAY,
        approval_chain=FULL_CHAIN,
        annual_allocation=180,
        max_consecutive_days=180,
        backdate_allowed_days=0,
    ),
    LeaveType.EXTRA_WITHOUT_PAY: LeavePolicy(
        leave_type=LeaveType.EXTRA_WITHOUT_PAY,
        approval_chain=FULL_CHAIN,
        max_consecutive_days=180,
        backdate_allowed_days=0,
        affects_balance=False,
    ),
}


def get_policy(leave_type: LeaveType) -> LeavePolicy:
    return LEAVE_POLICIES[LeaveType(leave_type)]


def balance_leave_types():
    """Leave types tracked in the ledger."""
    return [lt for lt, p in LEAVE_POLICIES.items() if p.affects_balance]


def accruing_leave_types():
    return [lt for lt, p in LEAVE_POLICIES.items() if p.monthly_accrual]


@dataclass(frozen=True)
class PayBands:
    full_pay_days: int
    half_pay_days: int
    unpaid_days: int


def compute_pay_bands(incident_date: date, start_date: date, total_days: int) -> PayBands:
    """
    Split a SPECIAL_DISABILITY leave into pay bands.

    Days are measured from the incident: the first 90 days after the incident
    are full pay, days 91-180 half pay, anything later unpaid. A leave that
    starts after part of a window has elapsed only gets the remainder.

    Args:
        incident_date: Date of the disabling incident
        start_date: First day of leave
        total_days: Calendar days of leave

    Returns:
        PayBands with full + half + unpaid == total_days
    """
    offset = cal.days_between(incident_date, start_date)
    full = min(total_days, max(0, FULL_PAY_WINDOW_DAYS - offset))
    half = max(0, min(total_days, HALF_PAY_WINDOW_DAYS - offset) - full)
    return PayBands(full_pay_days=full, half_pay_days=half, unpaid_days=total_days - full - half)


@dataclass(frozen=True)
class ConversionPlan:
    """
    How an over-limit CASUAL or MEDICAL request could be split across other
    balances. Advisory only; the request itself is still validated as filed.
    """
    leave_type: LeaveType
    requested_days: int
    portions: Tuple[Tuple[str, int], ...]
    shortfall: int = 0


def _take(portions: List[Tuple[str, int]], source: str, wanted: int, available: int) -> int:
    days = max(0, min(wanted, available))
    if days:
        portions.append((source, days))
    return wanted - days


def plan_casual_conversion(requested_days: int, casual_available: int, earned_available: int) -> ConversionPlan:
    """
    CASUAL beyond the consecutive-day limit: the first days (up to the limit
    and the CASUAL balance) stay CASUAL, the rest comes out of EARNED. Days
    EARNED cannot cover are reported as shortfall.
    """
    limit = get_policy(LeaveType.CASUAL).max_consecutive_days
    portions: List[Tuple[str, int]] = []
    remaining = requested_days - min(requested_days, limit)
    remaining += _take(portions, LeaveType.CASUAL.value, min(requested_days, limit), casual_available)
    remaining = _take(portions, LeaveType.EARNED.value, remaining, earned_available)
    return ConversionPlan(
        leave_type=LeaveType.CASUAL,
        requested_days=requested_days,
        portions=tuple(portions),
        shortfall=remaining,
    )


def plan_medical_conversion(
    requested_days: int,
    medical_available: int,
    earned_available: int,
    special_available: int,
) -> ConversionPlan:
    """
    MEDICAL beyond the MEDICAL balance draws on EARNED, then overflowed special
    EARNED days; anything left becomes EXTRA_WITHOUT_PAY.
    """
    portions: List[Tuple[str, int]] = []
    remaining = _take(portions, LeaveType.MEDICAL.value, requested_days, medical_available)
    remaining = _take(portions, LeaveType.EARNED.value, remaining, earned_available)
    remaining = _take(portions, SPECIAL_EARNED_SOURCE, remaining, special_available)
    if remaining:
        portions.append((LeaveType.EXTRA_WITHOUT_PAY.value, remaining))
    return ConversionPlan(leave_type=LeaveType.MEDICAL, requested_days=requested_days, portions=tuple(portions))
