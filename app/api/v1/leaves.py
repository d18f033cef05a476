"""
Leave endpoints
"""
from dataclasses import asdict
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_actor
from app.models.employee import Employee, Role
from app.models.leave import LeaveStatus
from app.schemas.leave import (
    BalanceItemOut,
    BalanceMeResponse,
    ConversionPlanOut,
    ConversionPortionOut,
    DayBreakdownOut,
    DecisionRequest,
    DutyReturnOut,
    FitnessCertificateRequest,
    LeaveListResponse,
    LeaveOut,
    LeaveExtendRequest,
    LeaveResubmitRequest,
    LeaveShortenRequest,
    LeaveSubmitRequest,
    PartialCancelRequest,
    PayBandOut,
    PayBandPreviewRequest,
    ResumeDutyRequest,
    ValidationErrorOut,
    ValidationResultOut,
)
from app.services import leave_service
from app.services import leave_wallet_service as wallet
from app.services.calendar_service import total_days_inclusive
from app.services.policy_service import ADMIN_ACTION_ROLES, compute_pay_bands

router = APIRouter()


@router.post("/validate", response_model=ValidationResultOut)
async def validate_leave_endpoint(
    leave_data: LeaveSubmitRequest,
    today: Optional[date] = Query(None, description="Evaluate as of this date (defaults to local today)"),
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """
    Dry-run validation. Returns every policy violation at once, or the day
    breakdown and balance charge the request would have.

    An over-limit CASUAL or over-balance MEDICAL request also gets a suggested
    split across other balances.
    """
    candidate = leave_data.to_candidate(actor.id, Role(actor.role))
    result = leave_service.validate_submission_for(db, candidate, today)
    if not result.ok:
        plan = leave_service.conversion_preview(db, candidate)
        return ValidationResultOut(
            valid=False,
            errors=[ValidationErrorOut(**e.to_dict()) for e in result.errors],
            conversion=ConversionPlanOut(
                leave_type=plan.leave_type,
                requested_days=plan.requested_days,
                portions=[ConversionPortionOut(source=source, days=days) for source, days in plan.portions],
                shortfall=plan.shortfall,
            ) if plan else None,
        )
    validated = result.validated
    bands = validated.pay_bands
    return ValidationResultOut(
        valid=True,
        breakdown=DayBreakdownOut(**asdict(validated.breakdown)),
        working_days_charged=validated.working_days_charged,
        pay_bands=PayBandOut(
            total_days=validated.working_days_charged,
            full_pay_days=bands.full_pay_days,
            half_pay_days=bands.half_pay_days,
            unpaid_days=bands.unpaid_days,
        ) if bands else None,
    )


@router.post("", response_model=LeaveOut, status_code=201)
async def submit_leave_endpoint(
    leave_data: LeaveSubmitRequest,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """
    Submit a leave request for the acting employee.

    The request is validated against the leave policy and, if valid, routed
    to the first approver of its chain (status PENDING). Validation failures
    return 422 with the full error list.
    """
    return leave_service.apply_leave(db, actor, leave_data.to_candidate())


@router.post("/pay-bands", response_model=PayBandOut)
async def pay_band_preview_endpoint(
    preview: PayBandPreviewRequest,
    actor: Employee = Depends(get_current_actor),
):
    """Preview SPECIAL_DISABILITY pay bands. Submission recomputes them server-side."""
    total = total_days_inclusive(preview.start_date, preview.end_date)
    bands = compute_pay_bands(preview.incident_date, preview.start_date, total)
    return PayBandOut(
        total_days=total,
        full_pay_days=bands.full_pay_days,
        half_pay_days=bands.half_pay_days,
        unpaid_days=bands.unpaid_days,
    )


@router.get("/balance/me", response_model=BalanceMeResponse)
async def balance_me(
    year: int = Query(..., description="Calendar year (e.g. 2026)"),
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """Current ledger balances of the acting employee for the year. Read-only."""
    rows = wallet.get_balances(db, actor.id, year)
    items = [
        BalanceItemOut(
            leave_type=r.leave_type,
            allocated=r.allocated,
            carried_forward=r.carried_forward,
            used=r.used,
            available=r.available,
            special_days=r.special_days or 0,
        )
        for r in rows
    ]
    return BalanceMeResponse(year=year, employee_id=actor.id, items=items)


@router.get("/my", response_model=LeaveListResponse)
async def list_my_leaves_endpoint(
    status_filter: Optional[LeaveStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """The acting employee's own requests, all statuses."""
    items = leave_service.list_leaves(db, employee_id=actor.id, status=status_filter)
    return LeaveListResponse(items=[LeaveOut.model_validate(i) for i in items], total=len(items))


@router.get("/pending", response_model=LeaveListResponse)
async def list_pending_endpoint(
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """Requests whose open step waits on the acting employee's role."""
    items = leave_service.list_pending_for_role(db, Role(actor.role), exclude_employee_id=actor.id)
    return LeaveListResponse(items=[LeaveOut.model_validate(i) for i in items], total=len(items))


@router.get("/{leave_request_id}", response_model=LeaveOut)
async def get_leave_endpoint(
    leave_request_id: int,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    leave = leave_service.get_leave_request(db, leave_request_id)
    if leave.employee_id != actor.id and Role(actor.role) == Role.EMPLOYEE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this leave request")
    return leave


@router.post("/{leave_request_id}/decision", response_model=LeaveOut)
async def decide_leave_endpoint(
    leave_request_id: int,
    decision: DecisionRequest,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """
    Apply a decision: FORWARD, APPROVE, REJECT, RETURN (approvers, matching the
    open step's role), REQUEST_CANCELLATION (requester), CONFIRM_CANCELLATION
    or RECALL (HR admin / HR head / CEO).

    Pass expected_version to fail fast with 409 when someone else decided first.
    """
    return leave_service.decide(
        db,
        leave_request_id,
        actor_role=Role(actor.role),
        actor_id=actor.id,
        action=decision.action,
        comment=decision.comment,
        expected_version=decision.expected_version,
    )


@router.post("/{leave_request_id}/resubmit", response_model=LeaveOut)
async def resubmit_leave_endpoint(
    leave_request_id: int,
    changes: LeaveResubmitRequest,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """Edit and resubmit a RETURNED request; a new approval chain starts at step 0."""
    return leave_service.resubmit(db, leave_request_id, actor.id, changes.model_dump(exclude_none=True))


@router.post("/{leave_request_id}/fitness-certificate", response_model=LeaveOut)
async def fitness_certificate_endpoint(
    leave_request_id: int,
    body: FitnessCertificateRequest,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    return leave_service.attach_fitness_certificate(db, leave_request_id, actor, body.certificate_ref)


@router.get("/{leave_request_id}/duty-return", response_model=DutyReturnOut)
async def duty_return_endpoint(
    leave_request_id: int,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """Whether the employee is cleared to resume duty (fitness certificate gate)."""
    leave = leave_service.get_leave_request(db, leave_request_id)
    if leave.employee_id != actor.id and Role(actor.role) not in ADMIN_ACTION_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the requester or HR can check duty return")
    return leave_service.duty_return_check(db, leave_request_id)


@router.post("/{leave_request_id}/extend", response_model=LeaveOut, status_code=201)
async def extend_leave_endpoint(
    leave_request_id: int,
    body: LeaveExtendRequest,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """
    Request an extension of an approved leave in progress. Returns the new
    extension request, which goes through its own approval chain.
    """
    return leave_service.extend_leave(db, leave_request_id, actor.id, body.new_end_date, body.reason)


@router.post("/{leave_request_id}/shorten", response_model=LeaveOut)
async def shorten_leave_endpoint(
    leave_request_id: int,
    body: LeaveShortenRequest,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """End an approved leave early; the released days go back to the balance."""
    return leave_service.shorten_leave(db, leave_request_id, actor.id, body.new_end_date, body.reason)


@router.post("/{leave_request_id}/partial-cancel", response_model=LeaveOut)
async def partial_cancel_endpoint(
    leave_request_id: int,
    body: PartialCancelRequest,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """Cancel the remaining days of an approved leave in progress."""
    return leave_service.partial_cancel_leave(db, leave_request_id, actor.id, body.reason)


@router.post("/{leave_request_id}/resume-duty", response_model=LeaveOut)
async def resume_duty_endpoint(
    leave_request_id: int,
    body: ResumeDutyRequest,
    db: Session = Depends(get_db),
    actor: Employee = Depends(get_current_actor),
):
    """Record the return to duty; long MEDICAL leave needs a fitness certificate first."""
    return leave_service.resume_duty(db, leave_request_id, actor, body.resumed_on)
