"""
Leave service - leave request lifecycle

Operation groups:
- validate_submission: pure check of a candidate against an explicit context
  (holidays, today, balance snapshot). validate_submission_for builds that
  context from the database.
- submit: persist a validated request and seed step 0 of its route.
- decide: apply one actor decision through the state machine; the status
  change, step updates, ledger effect and audit row commit together.
- resubmit: edit a RETURNED request and start a new approval chain.
- extend_leave / shorten_leave / partial_cancel_leave: adjust an approved
  leave that is in progress. Extensions are new linked requests; shortening
  and partial cancellation credit the released days back.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    ConcurrentModificationError,
    LeaveAdjustmentError,
    LedgerOverdraftError,
    NotFoundError,
    SubmissionRejectedError,
    TransitionError,
    TransitionLedgerMismatchError,
)
from app.models.employee import Employee, Role
from app.models.leave import (
    LeaveAction,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    LedgerAction,
    OPEN_LEAVE_STATUSES,
)
from app.services import calendar_service as cal
from app.services import leave_wallet_service as wallet
from app.services import workflow_service as workflow
from app.services.audit_service import log_audit
from app.services.holiday_service import holidays_between
from app.services.policy_service import (
    ADMIN_ACTION_ROLES,
    MIN_REASON_LENGTH,
    ConversionPlan,
    PayBands,
    compute_pay_bands,
    get_policy,
    plan_casual_conversion,
    plan_medical_conversion,
)
from app.services.policy_validator import LeaveCandidate, ValidationError, check_duty_return, validate
from app.utils.datetime_utils import now_utc, today_local

logger = logging.getLogger(__name__)

# Statuses whose dates block an overlapping request
BLOCKING_LEAVE_STATUSES = frozenset(OPEN_LEAVE_STATUSES | {LeaveStatus.APPROVED, LeaveStatus.CANCELLATION_REQUESTED})


@dataclass
class SubmissionContext:
    holidays: List[Any]
    today: date
    balance_available: Optional[int]
    existing_ranges: List[Any] = field(default_factory=list)
    extends_days: int = 0


@dataclass
class ValidatedRequest:
    candidate: LeaveCandidate
    breakdown: cal.DayBreakdown
    pay_bands: Optional[PayBands] = None

    @property
    def working_days_charged(self) -> int:
        return self.breakdown.total

    @property
    def year(self) -> int:
        return self.candidate.start_date.year


@dataclass
class SubmissionResult:
    validated: Optional[ValidatedRequest] = None
    errors: List[ValidationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.validated is not None and not self.errors


def validate_submission(candidate: LeaveCandidate, context: SubmissionContext) -> SubmissionResult:
    """
    Validate a candidate against the policy table without side effects.

    Returns:
        SubmissionResult holding either a ValidatedRequest (day breakdown and,
        for SPECIAL_DISABILITY, server-computed pay bands) or the full list of
        validation errors.
    """
    errors = validate(
        candidate,
        context.balance_available,
        context.holidays,
        context.today,
        existing_ranges=context.existing_ranges,
        extends_days=context.extends_days,
    )
    if errors:
        return SubmissionResult(errors=errors)

    breakdown = cal.count_days_breakdown(candidate.start_date, candidate.end_date, context.holidays)
    pay_bands = None
    if get_policy(candidate.leave_type).pay_banded:
        pay_bands = compute_pay_bands(candidate.incident_date, candidate.start_date, breakdown.total)
    return SubmissionResult(validated=ValidatedRequest(candidate=candidate, breakdown=breakdown, pay_bands=pay_bands))


def build_context(
    db: Session,
    candidate: LeaveCandidate,
    today: Optional[date] = None,
    exclude_request_id: Optional[int] = None,
    extends_days: int = 0,
) -> SubmissionContext:
    """Load holidays, the ledger snapshot and the employee's other leaves for a candidate."""
    today = today or today_local()
    holidays: List[Any] = []
    balance = None
    existing = []
    if candidate.start_date is not None and candidate.end_date is not None:
        holidays = holidays_between(
            db,
            min(candidate.start_date, candidate.end_date, today),
            max(candidate.start_date, candidate.end_date, today),
        )
        if candidate.leave_type is not None and candidate.employee_id is not None:
            balance = wallet.get_available(db, candidate.employee_id, candidate.leave_type, candidate.start_date.year)
    if candidate.employee_id is not None:
        query = db.query(LeaveRequest.start_date, LeaveRequest.end_date).filter(
            LeaveRequest.employee_id == candidate.employee_id,
            LeaveRequest.status.in_(list(BLOCKING_LEAVE_STATUSES)),
        )
        if exclude_request_id is not None:
            query = query.filter(LeaveRequest.id != exclude_request_id)
        existing = [(row.start_date, row.end_date) for row in query.all()]
    return SubmissionContext(
        holidays=holidays,
        today=today,
        balance_available=balance,
        existing_ranges=existing,
        extends_days=extends_days,
    )


def validate_submission_for(
    db: Session,
    candidate: LeaveCandidate,
    today: Optional[date] = None,
    exclude_request_id: Optional[int] = None,
) -> SubmissionResult:
    return validate_submission(candidate, build_context(db, candidate, today, exclude_request_id))


def _log_transition(leave_request_id: int, before: LeaveStatus, after: LeaveStatus, action: str) -> None:
    logger.info(
        "leave status transition: leave_request_id=%s before=%s after=%s action=%s",
        leave_request_id, before.value, after.value, action,
    )


def _apply_validated_fields(leave: LeaveRequest, validated: ValidatedRequest) -> None:
    c = validated.candidate
    leave.leave_type = c.leave_type
    leave.start_date = c.start_date
    leave.end_date = c.end_date
    leave.reason = c.reason.strip()
    leave.incident_date = c.incident_date
    leave.certificate_ref = c.certificate_ref
    leave.fitness_certificate_ref = c.fitness_certificate_ref
    leave.working_days_charged = validated.working_days_charged
    leave.weekend_days = validated.breakdown.weekend_count
    leave.holiday_days = validated.breakdown.holiday_count
    leave.working_days = validated.breakdown.working_count
    bands = validated.pay_bands
    leave.full_pay_days = bands.full_pay_days if bands else None
    leave.half_pay_days = bands.half_pay_days if bands else None
    leave.unpaid_days = bands.unpaid_days if bands else None


def submit(db: Session, validated: ValidatedRequest, parent_leave_id: Optional[int] = None) -> LeaveRequest:
    """
    Persist a validated request (SUBMITTED -> PENDING) with step 0 open.

    The route is resolved here from the requester's role and stored; later
    steps never recompute it. parent_leave_id marks the request as an
    extension of an approved leave.
    """
    candidate = validated.candidate
    requester_role = Role(candidate.requester_role)
    route = workflow.resolve_chain(candidate.leave_type, requester_role)

    leave = LeaveRequest(
        employee_id=candidate.employee_id,
        requester_role=requester_role,
        status=LeaveStatus.SUBMITTED,
        chain_no=1,
        approval_route=[r.value for r in route],
        parent_leave_id=parent_leave_id,
    )
    _apply_validated_fields(leave, validated)
    db.add(leave)
    workflow.seed_chain(leave)
    db.flush()

    log_audit(
        db=db,
        actor_id=candidate.employee_id,
        action="LEAVE_EXTENSION_REQUESTED" if parent_leave_id is not None else "LEAVE_SUBMIT",
        entity_type="leave_request",
        entity_id=leave.id,
        meta={
            "leave_type": leave.leave_type,
            "start_date": leave.start_date,
            "end_date": leave.end_date,
            "working_days_charged": leave.working_days_charged,
            "route": leave.approval_route,
            "parent_leave_id": parent_leave_id,
        },
    )
    db.commit()
    db.refresh(leave)
    _log_transition(leave.id, LeaveStatus.SUBMITTED, LeaveStatus.PENDING, "submit")
    return leave


def apply_leave(
    db: Session,
    employee: Employee,
    candidate: LeaveCandidate,
    today: Optional[date] = None,
) -> LeaveRequest:
    """
    Validate and submit in one call for the API layer.

    Raises:
        SubmissionRejectedError: carrying every validation error
    """
    candidate.employee_id = employee.id
    candidate.requester_role = Role(employee.role)
    result = validate_submission_for(db, candidate, today)
    if not result.ok:
        raise SubmissionRejectedError(result.errors)
    return submit(db, result.validated)


def get_leave_request(db: Session, leave_request_id: int) -> LeaveRequest:
    leave = db.query(LeaveRequest).filter(LeaveRequest.id == leave_request_id).first()
    if leave is None:
        raise NotFoundError("Leave request", leave_request_id)
    return leave


def list_leaves(
    db: Session,
    employee_id: Optional[int] = None,
    status: Optional[LeaveStatus] = None,
) -> List[LeaveRequest]:
    query = db.query(LeaveRequest)
    if employee_id is not None:
        query = query.filter(LeaveRequest.employee_id == employee_id)
    if status is not None:
        query = query.filter(LeaveRequest.status == status)
    return query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.id.desc()).all()


def list_pending_for_role(db: Session, role: Role, exclude_employee_id: Optional[int] = None) -> List[LeaveRequest]:
    """Requests whose open step waits on the given role (an approver's inbox)."""
    query = db.query(LeaveRequest).filter(LeaveRequest.status.in_(list(OPEN_LEAVE_STATUSES)))
    if exclude_employee_id is not None:
        query = query.filter(LeaveRequest.employee_id != exclude_employee_id)
    inbox = []
    for leave in query.order_by(LeaveRequest.submitted_at).all():
        step = leave.open_step
        if step is not None and Role(step.required_role) == Role(role):
            inbox.append(leave)
    return inbox


def apply_ledger_effect(db: Session, leave: LeaveRequest, outcome: workflow.TransitionOutcome):
    """
    Apply the ledger mutation a transition requires.

    Keyed by (request id, transition id) so a replayed transition is a no-op.
    Returns the journal entry, or None for leave types outside the ledger.
    """
    key = wallet.transition_key(leave.id, outcome.transition_id)
    year = leave.start_date.year
    if outcome.ledger_action == LedgerAction.DEBIT:
        return wallet.debit(
            db, leave.employee_id, LeaveType(leave.leave_type), year,
            leave.working_days_charged, key, leave_request_id=leave.id,
        )
    if outcome.ledger_action == LedgerAction.CREDIT:
        return wallet.credit(
            db, leave.employee_id, LeaveType(leave.leave_type), year,
            leave.working_days_charged, key, leave_request_id=leave.id,
        )
    return None


def decide(
    db: Session,
    leave_request_id: int,
    actor_role: Role,
    actor_id: int,
    action: LeaveAction,
    comment: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> LeaveRequest:
    """
    Apply one actor decision to a leave request.

    Args:
        db: Database session
        leave_request_id: Request to act on
        actor_role: Directory role of the actor
        actor_id: Employee id of the actor
        action: Decision to apply
        comment: Required for REJECT / RETURN
        expected_version: Version the caller last read; a mismatch fails fast

    Returns:
        The updated LeaveRequest

    Raises:
        TransitionError: illegal action for the status or actor
        ConcurrentModificationError: another decision committed first
        LedgerOverdraftError: the approval would overdraw the balance
        TransitionLedgerMismatchError: the ledger effect could not be recorded
    """
    leave = get_leave_request(db, leave_request_id)
    if expected_version is not None and leave.version != expected_version:
        raise ConcurrentModificationError(leave_request_id, expected_version, leave.version)

    try:
        outcome = workflow.apply_action(leave, action, actor_role, actor_id, comment)
    except TransitionError:
        db.rollback()
        raise

    try:
        db.flush()
    except (StaleDataError, IntegrityError):
        db.rollback()
        logger.warning("concurrent decision lost: leave_request_id=%s action=%s", leave_request_id, outcome.action.value)
        raise ConcurrentModificationError(leave_request_id, expected_version)

    if outcome.ledger_action is not None:
        try:
            txn = apply_ledger_effect(db, leave, outcome)
        except LedgerOverdraftError:
            db.rollback()
            logger.warning("ledger overdraft blocked approval: leave_request_id=%s", leave_request_id)
            raise
        except (StaleDataError, IntegrityError):
            # Another session changed the balance row first
            db.rollback()
            logger.warning("concurrent ledger update lost: leave_request_id=%s", leave_request_id)
            raise ConcurrentModificationError(leave_request_id, expected_version)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.critical(
                "transition/ledger mismatch: leave_request_id=%s after=%s ledger=%s error=%s",
                leave_request_id, outcome.after.value, outcome.ledger_action.value, exc,
            )
            raise TransitionLedgerMismatchError(
                f"Ledger {outcome.ledger_action.value} failed for leave request {leave_request_id}",
                {"leave_request_id": leave_request_id, "after": outcome.after.value},
            ) from exc
        if txn is None and get_policy(leave.leave_type).affects_balance:
            db.rollback()
            logger.critical(
                "transition/ledger mismatch: leave_request_id=%s after=%s ledger entry missing",
                leave_request_id, outcome.after.value,
            )
            raise TransitionLedgerMismatchError(
                f"No ledger entry recorded for leave request {leave_request_id}",
                {"leave_request_id": leave_request_id, "after": outcome.after.value},
            )

    log_audit(
        db=db,
        actor_id=actor_id,
        action=f"LEAVE_{outcome.action.value}",
        entity_type="leave_request",
        entity_id=leave.id,
        meta={
            "before": outcome.before,
            "after": outcome.after,
            "comment": comment,
            "step_index": outcome.step.step_index if outcome.step is not None else None,
            "chain_no": leave.chain_no,
            "ledger": outcome.ledger_action,
        },
    )
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConcurrentModificationError(leave_request_id, expected_version)
    db.refresh(leave)
    _log_transition(leave.id, outcome.before, outcome.after, outcome.action.value.lower())
    return leave


def resubmit(
    db: Session,
    leave_request_id: int,
    actor_id: int,
    changes: Optional[Dict[str, Any]] = None,
    today: Optional[date] = None,
) -> LeaveRequest:
    """
    Edit a RETURNED request and send it through a new approval chain.

    Day counts and pay bands are recomputed from the (possibly edited) dates.
    Earlier chains stay in the step history.

    Raises:
        TransitionError: not RETURNED, or the actor is not the requester
        SubmissionRejectedError: the edited request fails validation
    """
    leave = get_leave_request(db, leave_request_id)
    if actor_id != leave.employee_id:
        raise TransitionError("Only the requester can resubmit", status=leave.status, action="RESUBMIT")
    if workflow.normalize_status(leave.status) != LeaveStatus.RETURNED:
        raise TransitionError("Only a returned request can be resubmitted", status=leave.status, action="RESUBMIT")

    changes = {k: v for k, v in (changes or {}).items() if v is not None}
    candidate = LeaveCandidate(
        employee_id=leave.employee_id,
        requester_role=Role(leave.requester_role),
        leave_type=LeaveType(changes.get("leave_type", leave.leave_type)),
        start_date=changes.get("start_date", leave.start_date),
        end_date=changes.get("end_date", leave.end_date),
        reason=changes.get("reason", leave.reason),
        incident_date=changes.get("incident_date", leave.incident_date),
        certificate_ref=changes.get("certificate_ref", leave.certificate_ref),
        fitness_certificate_ref=changes.get("fitness_certificate_ref", leave.fitness_certificate_ref),
    )
    result = validate_submission_for(db, candidate, today, exclude_request_id=leave.id)
    if not result.ok:
        raise SubmissionRejectedError(result.errors)

    previous_chain = leave.chain_no
    _apply_validated_fields(leave, result.validated)
    workflow.start_new_chain(leave)
    workflow.seed_chain(leave)
    leave.submitted_at = leave.updated_at = now_utc()

    try:
        db.flush()
    except (StaleDataError, IntegrityError):
        db.rollback()
        raise ConcurrentModificationError(leave_request_id)

    log_audit(
        db=db,
        actor_id=actor_id,
        action="LEAVE_RESUBMIT",
        entity_type="leave_request",
        entity_id=leave.id,
        meta={"previous_chain": previous_chain, "chain_no": leave.chain_no, "changes": changes},
    )
    db.commit()
    db.refresh(leave)
    _log_transition(leave.id, LeaveStatus.RETURNED, LeaveStatus.PENDING, "resubmit")
    return leave


def attach_fitness_certificate(db: Session, leave_request_id: int, actor: Employee, certificate_ref: str) -> LeaveRequest:
    """Record the fitness certificate reference for a duty return."""
    leave = get_leave_request(db, leave_request_id)
    if actor.id != leave.employee_id and Role(actor.role) not in ADMIN_ACTION_ROLES:
        raise TransitionError(
            "Only the requester or HR can attach a fitness certificate",
            status=leave.status, action="ATTACH_FITNESS_CERTIFICATE",
        )
    if LeaveStatus(leave.status) not in (LeaveStatus.APPROVED, LeaveStatus.CANCELLATION_REQUESTED):
        raise TransitionError(
            "Fitness certificates are attached to approved leave",
            status=leave.status, action="ATTACH_FITNESS_CERTIFICATE",
        )
    leave.fitness_certificate_ref = certificate_ref
    leave.updated_at = now_utc()
    log_audit(
        db=db,
        actor_id=actor.id,
        action="LEAVE_FITNESS_CERTIFICATE",
        entity_type="leave_request",
        entity_id=leave.id,
        meta={"certificate_ref": certificate_ref},
    )
    db.commit()
    db.refresh(leave)
    return leave


def duty_return_check(db: Session, leave_request_id: int) -> Dict[str, Any]:
    """Whether the employee may resume duty after this leave."""
    leave = get_leave_request(db, leave_request_id)
    errors = check_duty_return(leave)
    return {
        "leave_request_id": leave.id,
        "cleared": not errors,
        "return_date": next_duty_day(db, leave),
        "errors": [e.to_dict() for e in errors],
    }


def next_duty_day(db: Session, leave: LeaveRequest) -> date:
    """First working day after the leave ends."""
    after = leave.end_date + timedelta(days=1)
    return cal.next_working_day(after, holidays_between(db, after, after + timedelta(days=60)))


# Statuses of an extension that still block another extension of the same leave
PENDING_EXTENSION_STATUSES = frozenset(OPEN_LEAVE_STATUSES | {LeaveStatus.RETURNED})


def _load_own_approved(db: Session, leave_request_id: int, actor_id: int, action: str) -> LeaveRequest:
    leave = get_leave_request(db, leave_request_id)
    if actor_id != leave.employee_id:
        raise TransitionError("Only the requester can adjust an approved leave", status=leave.status, action=action)
    if LeaveStatus(leave.status) != LeaveStatus.APPROVED:
        raise TransitionError("Only an approved leave can be adjusted", status=leave.status, action=action)
    return leave


def _require_in_progress(leave: LeaveRequest, today: date) -> None:
    if today < leave.start_date:
        raise LeaveAdjustmentError(
            "Leave has not started yet; request cancellation instead",
            "not_started", start_date=str(leave.start_date),
        )
    if today > leave.end_date:
        raise LeaveAdjustmentError("Leave has already ended", "already_ended", end_date=str(leave.end_date))


def _require_reason(reason: Optional[str]) -> str:
    if not reason or len(reason.strip()) < MIN_REASON_LENGTH:
        raise LeaveAdjustmentError(f"Reason must be at least {MIN_REASON_LENGTH} characters", "invalid_reason")
    return reason.strip()


def pending_extension(db: Session, leave: LeaveRequest) -> Optional[LeaveRequest]:
    return db.query(LeaveRequest).filter(
        LeaveRequest.parent_leave_id == leave.id,
        LeaveRequest.status.in_(list(PENDING_EXTENSION_STATUSES)),
    ).first()


def extend_leave(
    db: Session,
    leave_request_id: int,
    actor_id: int,
    new_end_date: date,
    reason: str,
    today: Optional[date] = None,
) -> LeaveRequest:
    """
    Request more days after an approved leave that is in progress.

    The extension is a new request from end_date + 1 to new_end_date with the
    same leave type, linked to its parent and routed through the full chain
    of its own. It needs no notice, may start on a non-working day, and the
    parent's days count toward the consecutive-day limit.

    Raises:
        TransitionError: not the requester, or the leave is not APPROVED
        LeaveAdjustmentError: not in progress, bad date, or an extension is pending
        SubmissionRejectedError: the extension fails policy validation
    """
    today = today or today_local()
    parent = _load_own_approved(db, leave_request_id, actor_id, "EXTEND")
    _require_in_progress(parent, today)
    if new_end_date <= parent.end_date:
        raise LeaveAdjustmentError(
            "New end date must be after the current end date",
            "invalid_date", end_date=str(parent.end_date), new_end_date=str(new_end_date),
        )
    existing = pending_extension(db, parent)
    if existing is not None:
        raise LeaveAdjustmentError(
            f"Extension {existing.id} of this leave is still pending",
            "extension_pending", extension_id=existing.id,
        )

    candidate = LeaveCandidate(
        employee_id=parent.employee_id,
        requester_role=Role(parent.requester_role),
        leave_type=LeaveType(parent.leave_type),
        start_date=parent.end_date + timedelta(days=1),
        end_date=new_end_date,
        reason=reason,
        incident_date=parent.incident_date,
        certificate_ref=parent.certificate_ref,
    )
    context = build_context(db, candidate, today, extends_days=parent.working_days_charged)
    result = validate_submission(candidate, context)
    if not result.ok:
        raise SubmissionRejectedError(result.errors)
    extension = submit(db, result.validated, parent_leave_id=parent.id)
    logger.info("leave extension requested: leave_request_id=%s extension_id=%s", parent.id, extension.id)
    return extension


def _truncate_approved_leave(
    db: Session,
    leave: LeaveRequest,
    actor_id: int,
    new_end_date: date,
    transition: str,
    reason: Optional[str],
) -> LeaveRequest:
    """Move the end date of an approved leave earlier and credit the released days."""
    holidays = holidays_between(db, leave.start_date, new_end_date)
    breakdown = cal.count_days_breakdown(leave.start_date, new_end_date, holidays)
    released = leave.working_days_charged - breakdown.total
    old_end = leave.end_date

    leave.end_date = new_end_date
    leave.working_days_charged = breakdown.total
    leave.weekend_days = breakdown.weekend_count
    leave.holiday_days = breakdown.holiday_count
    leave.working_days = breakdown.working_count
    if get_policy(leave.leave_type).pay_banded:
        bands = compute_pay_bands(leave.incident_date, leave.start_date, breakdown.total)
        leave.full_pay_days = bands.full_pay_days
        leave.half_pay_days = bands.half_pay_days
        leave.unpaid_days = bands.unpaid_days
    leave.updated_at = now_utc()

    try:
        db.flush()
        wallet.credit(
            db, leave.employee_id, LeaveType(leave.leave_type), leave.start_date.year, released,
            wallet.transition_key(leave.id, f"{transition}:{new_end_date.isoformat()}"),
            leave_request_id=leave.id,
        )
    except (StaleDataError, IntegrityError):
        db.rollback()
        raise ConcurrentModificationError(leave.id)

    log_audit(
        db=db,
        actor_id=actor_id,
        action=f"LEAVE_{transition}",
        entity_type="leave_request",
        entity_id=leave.id,
        meta={
            "old_end_date": old_end,
            "new_end_date": new_end_date,
            "days_released": released,
            "reason": reason,
        },
    )
    db.commit()
    db.refresh(leave)
    logger.info(
        "approved leave truncated: leave_request_id=%s transition=%s old_end=%s new_end=%s released=%s",
        leave.id, transition, old_end, new_end_date, released,
    )
    return leave


def shorten_leave(
    db: Session,
    leave_request_id: int,
    actor_id: int,
    new_end_date: date,
    reason: str,
    today: Optional[date] = None,
) -> LeaveRequest:
    """
    End an in-progress approved leave early. The status stays APPROVED and
    the days after new_end_date go back to the balance.

    Raises:
        TransitionError: not the requester, or the leave is not APPROVED
        LeaveAdjustmentError: not in progress, an extension is pending, or
            new_end_date is not between today and the current end date
    """
    today = today or today_local()
    leave = _load_own_approved(db, leave_request_id, actor_id, "SHORTEN")
    reason = _require_reason(reason)
    _require_in_progress(leave, today)
    if pending_extension(db, leave) is not None:
        raise LeaveAdjustmentError("Leave with a pending extension cannot be shortened", "extension_pending")
    if new_end_date >= leave.end_date:
        raise LeaveAdjustmentError(
            "New end date must be before the current end date",
            "invalid_date", end_date=str(leave.end_date), new_end_date=str(new_end_date),
        )
    if new_end_date < today:
        raise LeaveAdjustmentError(
            "New end date cannot be in the past",
            "invalid_date", today=str(today), new_end_date=str(new_end_date),
        )
    return _truncate_approved_leave(db, leave, actor_id, new_end_date, "SHORTENED", reason)


def partial_cancel_leave(
    db: Session,
    leave_request_id: int,
    actor_id: int,
    reason: Optional[str] = None,
    today: Optional[date] = None,
) -> LeaveRequest:
    """
    Cancel the remaining days of an in-progress approved leave.

    The leave is cut to end yesterday (or today when it started today) and
    the remaining days are credited back pro rata. The status stays APPROVED.

    Raises:
        TransitionError: not the requester, or the leave is not APPROVED
        LeaveAdjustmentError: not in progress, an extension is pending, or no
            future days are left to cancel
    """
    today = today or today_local()
    leave = _load_own_approved(db, leave_request_id, actor_id, "PARTIAL_CANCEL")
    _require_in_progress(leave, today)
    if pending_extension(db, leave) is not None:
        raise LeaveAdjustmentError("Leave with a pending extension cannot be cancelled in part", "extension_pending")
    yesterday = today - timedelta(days=1)
    new_end_date = yesterday if yesterday >= leave.start_date else today
    if new_end_date >= leave.end_date:
        raise LeaveAdjustmentError("No future days left to cancel", "no_future_days", end_date=str(leave.end_date))
    return _truncate_approved_leave(
        db, leave, actor_id, new_end_date, "PARTIALLY_CANCELLED", reason.strip() if reason else None,
    )


def resume_duty(
    db: Session,
    leave_request_id: int,
    actor: Employee,
    resumed_on: Optional[date] = None,
) -> LeaveRequest:
    """
    Record the employee's return to duty after an approved leave.

    Raises:
        TransitionError: not the requester or HR, or the leave is not APPROVED
        SubmissionRejectedError: the fitness certificate gate is not cleared
        LeaveAdjustmentError: resumed_on falls before the leave started
    """
    leave = get_leave_request(db, leave_request_id)
    if actor.id != leave.employee_id and Role(actor.role) not in ADMIN_ACTION_ROLES:
        raise TransitionError(
            "Only the requester or HR can record a duty return",
            status=leave.status, action="RESUME_DUTY",
        )
    if LeaveStatus(leave.status) != LeaveStatus.APPROVED:
        raise TransitionError("Duty return is recorded for approved leave", status=leave.status, action="RESUME_DUTY")
    errors = check_duty_return(leave)
    if errors:
        raise SubmissionRejectedError(errors)
    resumed_on = resumed_on or today_local()
    if resumed_on < leave.start_date:
        raise LeaveAdjustmentError(
            "Duty cannot resume before the leave started",
            "invalid_date", start_date=str(leave.start_date), resumed_on=str(resumed_on),
        )

    leave.duty_resumed_on = resumed_on
    leave.updated_at = now_utc()
    log_audit(
        db=db,
        actor_id=actor.id,
        action="LEAVE_DUTY_RESUMED",
        entity_type="leave_request",
        entity_id=leave.id,
        meta={"resumed_on": resumed_on, "end_date": leave.end_date},
    )
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConcurrentModificationError(leave.id)
    db.refresh(leave)
    return leave


def conversion_preview(db: Session, candidate: LeaveCandidate) -> Optional[ConversionPlan]:
    """
    Suggest how an over-limit CASUAL or over-balance MEDICAL request could be
    split across other balances. None when no split applies.
    """
    if candidate.start_date is None or candidate.end_date is None or candidate.end_date < candidate.start_date:
        return None
    if candidate.employee_id is None:
        return None
    requested = cal.total_days_inclusive(candidate.start_date, candidate.end_date)
    year = candidate.start_date.year
    leave_type = LeaveType(candidate.leave_type) if candidate.leave_type is not None else None
    if leave_type == LeaveType.CASUAL:
        if requested <= get_policy(LeaveType.CASUAL).max_consecutive_days:
            return None
        return plan_casual_conversion(
            requested,
            wallet.get_available(db, candidate.employee_id, LeaveType.CASUAL, year),
            wallet.get_available(db, candidate.employee_id, LeaveType.EARNED, year),
        )
    if leave_type == LeaveType.MEDICAL:
        medical = wallet.get_available(db, candidate.employee_id, LeaveType.MEDICAL, year)
        if requested <= medical:
            return None
        return plan_medical_conversion(
            requested,
            medical,
            wallet.get_available(db, candidate.employee_id, LeaveType.EARNED, year),
            wallet.get_special_days(db, candidate.employee_id, year),
        )
    return None
