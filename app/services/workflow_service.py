"""
Approval routing state machine.

The route is resolved once at submission from the leave type's chain template
and the requester's role, then stored on the request (``approval_route``).
Every later step reads the stored route, so a chain never changes shape
mid-flight.

This module mutates the in-memory LeaveRequest and its steps only; it does
not touch the session, the ledger or the audit log. ``leave_service`` wraps
it in a transaction and applies the ledger effect it reports.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple

from app.core.exceptions import TransitionError
from app.models.employee import Role
from app.models.leave import (
    ApprovalStep,
    LeaveAction,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    LedgerAction,
    OPEN_LEAVE_STATUSES,
    StepDecision,
    TERMINAL_LEAVE_STATUSES,
)
from app.services.policy_service import ADMIN_ACTION_ROLES, APPROVAL_AUTHORITY_ROLES, get_policy
from app.utils.datetime_utils import now_utc

REQUESTER_CANCEL_COMMENT = "Cancelled by requester"


@dataclass
class TransitionOutcome:
    """What a transition did, and which ledger effect it requires."""
    leave_request_id: Optional[int]
    action: LeaveAction
    before: LeaveStatus
    after: LeaveStatus
    ledger_action: Optional[LedgerAction] = None
    step: Optional[ApprovalStep] = None

    @property
    def transition_id(self) -> str:
        """Stable id of the transition; at most one per target status per request."""
        return self.after.value


def resolve_chain(leave_type: LeaveType, requester_role: Role) -> List[Role]:
    """
    Resolve the approval route for a request.

    The requester's own role is skipped (a department head's own request does
    not pass through the department head step). If the remaining last role
    cannot issue a terminal approval, CEO is appended.
    """
    requester_role = Role(requester_role)
    route = [r for r in get_policy(leave_type).approval_chain if r != requester_role]
    if not route or route[-1] not in APPROVAL_AUTHORITY_ROLES:
        route.append(Role.CEO if requester_role != Role.CEO else Role.HR_HEAD)
    return route


def normalize_status(status: LeaveStatus) -> LeaveStatus:
    """Legacy FORWARDED request status reads as PENDING."""
    status = LeaveStatus(status)
    return LeaveStatus.PENDING if status == LeaveStatus.FORWARDED else status


def seed_chain(leave: LeaveRequest) -> ApprovalStep:
    """Open step 0 of the current chain and move SUBMITTED to PENDING."""
    if leave.status != LeaveStatus.SUBMITTED:
        raise TransitionError("Only a submitted request can be routed", status=leave.status)
    route = [Role(r) for r in leave.approval_route]
    step = ApprovalStep(
        chain_no=leave.chain_no,
        step_index=0,
        required_role=route[0],
        decision=StepDecision.PENDING,
    )
    leave.steps.append(step)
    leave.status = LeaveStatus.PENDING
    return step


def start_new_chain(leave: LeaveRequest) -> None:
    """
    RETURNED -> SUBMITTED with a fresh chain. Earlier chains stay in ``steps``.
    The caller recomputes dates/charge before seeding.
    """
    if normalize_status(leave.status) != LeaveStatus.RETURNED:
        raise TransitionError(
            "Only a returned request can be resubmitted",
            status=leave.status,
        )
    leave.chain_no = (leave.chain_no or 1) + 1
    leave.approval_route = [r.value for r in resolve_chain(leave.leave_type, leave.requester_role)]
    leave.status = LeaveStatus.SUBMITTED


def _close_step(step: ApprovalStep, decision: StepDecision, actor_id: int, comment: Optional[str]) -> None:
    step.decision = decision
    step.actor_id = actor_id
    step.comment = comment
    step.decided_at = now_utc()


def _require_comment(action: LeaveAction, comment: Optional[str], status: LeaveStatus) -> str:
    if not comment or not comment.strip():
        raise TransitionError(f"{action.value} requires a comment", status=status, action=action)
    return comment.strip()


def _require_admin(action: LeaveAction, actor_role: Role, status: LeaveStatus) -> None:
    if actor_role not in ADMIN_ACTION_ROLES:
        raise TransitionError(
            f"{actor_role.value} cannot {action.value}",
            status=status, action=action, actor_role=actor_role.value,
        )


def apply_action(
    leave: LeaveRequest,
    action: LeaveAction,
    actor_role: Role,
    actor_id: int,
    comment: Optional[str] = None,
) -> TransitionOutcome:
    """
    Apply one actor decision to a leave request.

    Args:
        leave: Request with its steps loaded
        action: FORWARD, APPROVE, REJECT, RETURN, REQUEST_CANCELLATION,
            CONFIRM_CANCELLATION or RECALL
        actor_role: Directory role of the actor
        actor_id: Employee id of the actor
        comment: Required for REJECT and RETURN

    Returns:
        TransitionOutcome with before/after status and the ledger effect

    Raises:
        TransitionError: if the action is illegal for the status, the actor's
            role does not match the open step, the actor decides on their own
            request, or the request is already final
    """
    action = LeaveAction(action)
    actor_role = Role(actor_role)
    before = normalize_status(leave.status)
    is_requester = actor_id == leave.employee_id

    if before in TERMINAL_LEAVE_STATUSES:
        raise TransitionError(f"Leave request is already {before.value}", status=before, action=action)

    outcome = TransitionOutcome(leave_request_id=leave.id, action=action, before=before, after=before)

    if action == LeaveAction.REQUEST_CANCELLATION:
        if not is_requester:
            raise TransitionError("Only the requester can request cancellation", status=before, action=action)
        if before in OPEN_LEAVE_STATUSES or before == LeaveStatus.RETURNED:
            step = leave.open_step
            if step is not None:
                _close_step(step, StepDecision.REJECTED, actor_id, comment or REQUESTER_CANCEL_COMMENT)
                outcome.step = step
            outcome.after = LeaveStatus.CANCELLED
        elif before == LeaveStatus.APPROVED:
            outcome.after = LeaveStatus.CANCELLATION_REQUESTED
        else:
            raise TransitionError(f"Cannot request cancellation of a {before.value} request", status=before, action=action)

    elif action == LeaveAction.CONFIRM_CANCELLATION:
        if before != LeaveStatus.CANCELLATION_REQUESTED:
            raise TransitionError("No cancellation has been requested", status=before, action=action)
        _require_admin(action, actor_role, before)
        if is_requester:
            raise TransitionError("Cannot confirm cancellation of your own request", status=before, action=action)
        outcome.after = LeaveStatus.CANCELLED
        outcome.ledger_action = LedgerAction.CREDIT

    elif action == LeaveAction.RECALL:
        if before != LeaveStatus.APPROVED:
            raise TransitionError("Only approved leave can be recalled", status=before, action=action)
        _require_admin(action, actor_role, before)
        if is_requester:
            raise TransitionError("Cannot recall your own request", status=before, action=action)
        outcome.after = LeaveStatus.RECALLED
        outcome.ledger_action = LedgerAction.CREDIT

    elif action == LeaveAction.REJECT and before == LeaveStatus.CANCELLATION_REQUESTED:
        # Declining a cancellation request keeps the leave approved
        _require_admin(action, actor_role, before)
        if is_requester:
            raise TransitionError("Cannot decide on your own request", status=before, action=action)
        _require_comment(action, comment, before)
        outcome.after = LeaveStatus.APPROVED

    else:
        outcome.step, outcome.after, outcome.ledger_action = _apply_step_decision(
            leave, action, actor_role, actor_id, comment, before, is_requester
        )

    leave.status = outcome.after
    leave.updated_at = now_utc()
    return outcome


def _apply_step_decision(
    leave: LeaveRequest,
    action: LeaveAction,
    actor_role: Role,
    actor_id: int,
    comment: Optional[str],
    before: LeaveStatus,
    is_requester: bool,
) -> Tuple[ApprovalStep, LeaveStatus, Optional[LedgerAction]]:
    if before not in OPEN_LEAVE_STATUSES:
        raise TransitionError(f"Cannot {action.value} a {before.value} request", status=before, action=action)
    step = leave.open_step
    if step is None:
        raise TransitionError("Leave request has no open approval step", status=before, action=action)
    if is_requester:
        raise TransitionError("Cannot decide on your own request", status=before, action=action)
    if actor_role != Role(step.required_role):
        raise TransitionError(
            f"Step {step.step_index} requires {Role(step.required_role).value}, not {actor_role.value}",
            status=before, action=action, required_role=Role(step.required_role).value,
        )

    route = [Role(r) for r in leave.approval_route]
    is_last = step.step_index >= len(route) - 1

    if action == LeaveAction.FORWARD:
        if is_last and actor_role not in APPROVAL_AUTHORITY_ROLES:
            raise TransitionError(
                f"{actor_role.value} cannot finalise an approval", status=before, action=action,
            )
        _close_step(step, StepDecision.FORWARDED, actor_id, comment)
        if is_last:
            return step, LeaveStatus.APPROVED, LedgerAction.DEBIT
        leave.steps.append(ApprovalStep(
            chain_no=step.chain_no,
            step_index=step.step_index + 1,
            required_role=route[step.step_index + 1],
            decision=StepDecision.PENDING,
        ))
        return step, LeaveStatus.PENDING, None

    if action == LeaveAction.APPROVE:
        if not is_last or actor_role not in APPROVAL_AUTHORITY_ROLES:
            raise TransitionError(
                f"{actor_role.value} cannot approve at step {step.step_index}; forward instead",
                status=before, action=action,
            )
        _close_step(step, StepDecision.APPROVED, actor_id, comment)
        return step, LeaveStatus.APPROVED, LedgerAction.DEBIT

    if action == LeaveAction.REJECT:
        _close_step(step, StepDecision.REJECTED, actor_id, _require_comment(action, comment, before))
        return step, LeaveStatus.REJECTED, None

    if action == LeaveAction.RETURN:
        _close_step(step, StepDecision.RETURNED, actor_id, _require_comment(action, comment, before))
        return step, LeaveStatus.RETURNED, None

    raise TransitionError(f"Unsupported action {action.value}", status=before, action=action)
