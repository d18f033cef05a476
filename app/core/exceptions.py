"""
Typed errors raised by the leave lifecycle engine.

Every error carries a machine-readable ``code`` and the HTTP status it maps to;
``app.core.errors.leave_engine_exception_handler`` renders them for the API.
Service code raises these instead of HTTPException for engine failures so the
same functions can be driven from schedulers and scripts.
"""
from typing import Any, Dict, Optional


class LeaveEngineError(Exception):
    """Base class for all engine errors."""

    code: str = "LEAVE_ENGINE_ERROR"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(LeaveEngineError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", {"entity": entity, "id": entity_id})


class InvalidRangeError(LeaveEngineError):
    """Date range with end before start."""

    code = "INVALID_RANGE"
    status_code = 422


class SubmissionRejectedError(LeaveEngineError):
    """Raised by API-facing helpers when validation returned errors."""

    code = "VALIDATION_FAILED"
    status_code = 422

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__(
            "Leave request failed policy validation",
            {"errors": [e.to_dict() for e in self.errors]},
        )


class LeaveAdjustmentError(LeaveEngineError):
    """
    Extend / shorten / partial cancel of an approved leave is not possible on
    these dates. ``details["rule"]`` names the failed check.
    """

    code = "INVALID_ADJUSTMENT"
    status_code = 422

    def __init__(self, message: str, rule: str, **details: Any):
        self.rule = rule
        super().__init__(message, {"rule": rule, **details})


class TransitionError(LeaveEngineError):
    """An action that is illegal for the current status or actor."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, message: str, status: Any = None, action: Any = None, **details: Any):
        self.status = status
        self.action = action
        info = {"status": getattr(status, "value", status), "action": getattr(action, "value", action)}
        info.update(details)
        super().__init__(message, info)


class ConcurrentModificationError(LeaveEngineError):
    """Another decision committed first. Reload and retry."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409
    retryable = True

    def __init__(self, leave_request_id: int, expected_version: Optional[int] = None, actual_version: Optional[int] = None):
        self.leave_request_id = leave_request_id
        super().__init__(
            f"Leave request {leave_request_id} was modified by another decision",
            {
                "leave_request_id": leave_request_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class LedgerOverdraftError(LeaveEngineError):
    """Debit would drive available balance below zero."""

    code = "LEDGER_OVERDRAFT"
    status_code = 409

    def __init__(self, employee_id: int, leave_type: Any, year: int, requested: Any, available: Any):
        super().__init__(
            f"Insufficient {getattr(leave_type, 'value', leave_type)} balance for {year}: "
            f"requested {requested}, available {available}",
            {
                "employee_id": employee_id,
                "leave_type": getattr(leave_type, "value", leave_type),
                "year": year,
                "requested": str(requested),
                "available": str(available),
            },
        )


class TransitionLedgerMismatchError(LeaveEngineError):
    """Status changed but its ledger effect could not be recorded. Fatal."""

    code = "TRANSITION_LEDGER_MISMATCH"
    status_code = 500
