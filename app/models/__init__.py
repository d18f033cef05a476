"""
Database models
"""
from app.models.employee import Employee, Role
from app.models.audit_log import AuditLog
from app.models.leave import (
    LeaveRequest,
    ApprovalStep,
    LeaveBalance,
    LeaveTransaction,
    LeaveType,
    LeaveStatus,
    StepDecision,
    LeaveAction,
    LedgerAction,
    OPEN_LEAVE_STATUSES,
    TERMINAL_LEAVE_STATUSES,
)
from app.models.holiday import Holiday

__all__ = [
    "Employee",
    "Role",
    "AuditLog",
    "LeaveRequest",
    "ApprovalStep",
    "LeaveBalance",
    "LeaveTransaction",
    "LeaveType",
    "LeaveStatus",
    "StepDecision",
    "LeaveAction",
    "LedgerAction",
    "OPEN_LEAVE_STATUSES",
    "TERMINAL_LEAVE_STATUSES",
    "Holiday",
]
