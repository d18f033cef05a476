"""
Overstay check - flags approved leave whose employee has not resumed duty.

An APPROVED leave is overstayed once "today" is past its return date (the
first working day after end_date) and no duty return has been recorded. Each
leave is flagged once; the status is unchanged and the flag is an audit row
(OVERSTAY_FLAGGED) plus overstay_flagged_at on the request.

Not flagged:
- MEDICAL leave with a fitness certificate on file (the certificate is the
  return notice).
- Leave with an open or approved extension.
"""
import logging
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.models.leave import LeaveRequest, LeaveStatus, LeaveType
from app.services import calendar_service as cal
from app.services.audit_service import log_audit
from app.services.leave_service import BLOCKING_LEAVE_STATUSES, next_duty_day
from app.utils.datetime_utils import now_utc, today_local

logger = logging.getLogger(__name__)


def _has_extension(db: Session, leave: LeaveRequest) -> bool:
    return db.query(LeaveRequest.id).filter(
        LeaveRequest.parent_leave_id == leave.id,
        LeaveRequest.status.in_(list(BLOCKING_LEAVE_STATUSES)),
    ).first() is not None


def run_overstay_check(
    db: Session,
    today: Optional[date] = None,
    actor_id: Optional[int] = None
) -> Dict:
    """
    Flag every overstayed leave as of today.

    Returns:
        Summary counts and one detail entry per newly flagged leave
    """
    today = today or today_local()
    leaves = db.query(LeaveRequest).filter(
        LeaveRequest.status == LeaveStatus.APPROVED,
        LeaveRequest.end_date < today,
        LeaveRequest.duty_resumed_on.is_(None),
        LeaveRequest.overstay_flagged_at.is_(None),
    ).order_by(LeaveRequest.id).all()

    flagged = []
    skipped_fitness_certificate = 0
    skipped_extended = 0
    for leave in leaves:
        if LeaveType(leave.leave_type) == LeaveType.MEDICAL and leave.fitness_certificate_ref:
            skipped_fitness_certificate += 1
            continue
        if _has_extension(db, leave):
            skipped_extended += 1
            continue
        return_date = next_duty_day(db, leave)
        if today <= return_date:
            continue
        days_overstayed = cal.days_between(return_date, today)
        leave.overstay_flagged_at = now_utc()
        log_audit(
            db=db,
            actor_id=actor_id,
            action="OVERSTAY_FLAGGED",
            entity_type="leave_request",
            entity_id=leave.id,
            meta={
                "employee_id": leave.employee_id,
                "end_date": leave.end_date,
                "return_date": return_date,
                "days_overstayed": days_overstayed,
            },
        )
        logger.warning(
            "leave overstay flagged: leave_request_id=%s employee_id=%s days_overstayed=%s",
            leave.id, leave.employee_id, days_overstayed,
        )
        flagged.append({
            "leave_request_id": leave.id,
            "employee_id": leave.employee_id,
            "return_date": return_date.isoformat(),
            "days_overstayed": days_overstayed,
        })

    log_audit(
        db=db,
        actor_id=actor_id,
        action="OVERSTAY_CHECK_RUN",
        entity_type="leave_request",
        entity_id=None,
        meta={
            "today": today,
            "checked": len(leaves),
            "flagged": len(flagged),
            "skipped_fitness_certificate": skipped_fitness_certificate,
            "skipped_extended": skipped_extended,
        },
    )
    db.commit()
    logger.info("overstay check complete: today=%s checked=%s flagged=%s", today, len(leaves), len(flagged))
    return {
        "today": today.isoformat(),
        "checked": len(leaves),
        "flagged_count": len(flagged),
        "skipped_fitness_certificate": skipped_fitness_certificate,
        "skipped_extended": skipped_extended,
        "flagged": flagged,
    }
