"""
Leave schemas
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator
from app.models.employee import Role
from app.models.leave import LeaveAction, LeaveStatus, LeaveType, StepDecision
from app.services.policy_validator import LeaveCandidate
from app.utils.datetime_utils import iso_local


class LeaveSubmitRequest(BaseModel):
    """Schema for submitting (or dry-run validating) a leave request"""
    leave_type: LeaveType = Field(..., description="Type of leave")
    start_date: date = Field(..., description="First day of leave (inclusive)")
    end_date: date = Field(..., description="Last day of leave (inclusive)")
    reason: str = Field(..., description="Reason for leave (min 10 characters)")
    incident_date: Optional[date] = Field(None, description="Incident date (SPECIAL_DISABILITY only)")
    certificate_ref: Optional[str] = Field(None, description="Reference to an uploaded medical certificate")
    fitness_certificate_ref: Optional[str] = Field(None, description="Reference to an uploaded fitness certificate")

    def to_candidate(self, employee_id: Optional[int] = None, requester_role: Optional[Role] = None) -> LeaveCandidate:
        return LeaveCandidate(
            employee_id=employee_id,
            requester_role=requester_role,
            leave_type=self.leave_type,
            start_date=self.start_date,
            end_date=self.end_date,
            reason=self.reason,
            incident_date=self.incident_date,
            certificate_ref=self.certificate_ref,
            fitness_certificate_ref=self.fitness_certificate_ref,
        )


class LeaveResubmitRequest(BaseModel):
    """Schema for editing a returned request. Omitted fields keep their values."""
    leave_type: Optional[LeaveType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None
    incident_date: Optional[date] = None
    certificate_ref: Optional[str] = None
    fitness_certificate_ref: Optional[str] = None


class DecisionRequest(BaseModel):
    """Schema for an actor decision on a leave request"""
    action: LeaveAction = Field(..., description="FORWARD, APPROVE, REJECT, RETURN, REQUEST_CANCELLATION, CONFIRM_CANCELLATION, RECALL")
    comment: Optional[str] = Field(None, description="Required for REJECT and RETURN")
    expected_version: Optional[int] = Field(None, description="Version last read by the caller")

    @model_validator(mode="after")
    def require_comment(self) -> "DecisionRequest":
        if self.action in (LeaveAction.REJECT, LeaveAction.RETURN) and not (self.comment and self.comment.strip()):
            raise ValueError(f"comment is required for {self.action.value}")
        return self


class LeaveExtendRequest(BaseModel):
    """Schema for extending an approved leave that is in progress"""
    new_end_date: date = Field(..., description="New last day of leave (after the current end date)")
    reason: str = Field(..., min_length=10, description="Reason for the extension (min 10 characters)")


class LeaveShortenRequest(BaseModel):
    """Schema for ending an approved leave early"""
    new_end_date: date = Field(..., description="New last day of leave (today or later, before the current end date)")
    reason: str = Field(..., min_length=10, description="Reason for shortening (min 10 characters)")


class PartialCancelRequest(BaseModel):
    reason: Optional[str] = None


class ResumeDutyRequest(BaseModel):
    resumed_on: Optional[date] = Field(None, description="Day duty resumed (defaults to local today)")


class FitnessCertificateRequest(BaseModel):
    certificate_ref: str = Field(..., min_length=1, description="Reference to the uploaded fitness certificate")


class PayBandPreviewRequest(BaseModel):
    incident_date: date
    start_date: date
    end_date: date


class PayBandOut(BaseModel):
    total_days: int
    full_pay_days: int
    half_pay_days: int
    unpaid_days: int


class ValidationErrorOut(BaseModel):
    kind: str
    field: Optional[str] = None
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class DayBreakdownOut(BaseModel):
    total: int
    weekend_count: int
    holiday_count: int
    working_count: int


class ConversionPortionOut(BaseModel):
    source: str
    days: int


class ConversionPlanOut(BaseModel):
    """Suggested split of an over-limit CASUAL or MEDICAL request"""
    leave_type: LeaveType
    requested_days: int
    portions: List[ConversionPortionOut]
    shortfall: int = 0


class ValidationResultOut(BaseModel):
    """Result of a dry-run validation"""
    valid: bool
    errors: List[ValidationErrorOut] = Field(default_factory=list)
    breakdown: Optional[DayBreakdownOut] = None
    working_days_charged: Optional[int] = None
    pay_bands: Optional[PayBandOut] = None
    conversion: Optional[ConversionPlanOut] = None


class ApprovalStepOut(BaseModel):
    chain_no: int
    step_index: int
    required_role: Role
    decision: StepDecision
    actor_id: Optional[int] = None
    comment: Optional[str] = None
    decided_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("decided_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)


class LeaveOut(BaseModel):
    """Schema for leave request output, including the full step history"""
    id: int
    employee_id: int
    requester_role: Role
    leave_type: LeaveType
    start_date: date
    end_date: date
    working_days_charged: int
    weekend_days: int
    holiday_days: int
    working_days: int
    reason: str
    incident_date: Optional[date] = None
    certificate_ref: Optional[str] = None
    fitness_certificate_ref: Optional[str] = None
    full_pay_days: Optional[int] = None
    half_pay_days: Optional[int] = None
    unpaid_days: Optional[int] = None
    status: LeaveStatus
    approval_route: List[Role]
    chain_no: int
    version: int
    parent_leave_id: Optional[int] = None
    duty_resumed_on: Optional[date] = None
    overstay_flagged_at: Optional[datetime] = None
    steps: List[ApprovalStepOut] = Field(default_factory=list)
    submitted_at: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("submitted_at", "created_at", "updated_at", "overstay_flagged_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)

    @model_validator(mode="after")
    def normalize_legacy_status(self) -> "LeaveOut":
        if self.status == LeaveStatus.FORWARDED:
            self.status = LeaveStatus.PENDING
        return self


class LeaveListResponse(BaseModel):
    items: List[LeaveOut]
    total: int


class BalanceItemOut(BaseModel):
    leave_type: LeaveType
    allocated: int
    carried_forward: int
    used: int
    available: int
    special_days: int = 0

    model_config = ConfigDict(from_attributes=True)


class BalanceMeResponse(BaseModel):
    year: int
    employee_id: int
    items: List[BalanceItemOut]


class DutyReturnOut(BaseModel):
    leave_request_id: int
    cleared: bool
    return_date: date
    errors: List[ValidationErrorOut] = Field(default_factory=list)
