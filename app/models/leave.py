"""
Leave models
"""
from sqlalchemy import (
    Column,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    JSON,
    Enum as SQLEnum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
import enum
from app.db.base import Base
from app.models.employee import Role
from app.utils.datetime_utils import now_utc


class LeaveType(str, enum.Enum):
    EARNED = "EARNED"
    CASUAL = "CASUAL"
    MEDICAL = "MEDICAL"
    MATERNITY = "MATERNITY"
    PATERNITY = "PATERNITY"
    STUDY = "STUDY"
    SPECIAL_DISABILITY = "SPECIAL_DISABILITY"
    QUARANTINE = "QUARANTINE"
    EXTRA_WITH_PAY = "EXTRA_WITH_PAY"
    EXTRA_WITHOUT_PAY = "EXTRA_WITHOUT_PAY"


class LeaveStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    PENDING = "PENDING"
    FORWARDED = "FORWARDED"  # legacy rows only; read as PENDING
    RETURNED = "RETURNED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLATION_REQUESTED = "CANCELLATION_REQUESTED"
    CANCELLED = "CANCELLED"
    RECALLED = "RECALLED"


class StepDecision(str, enum.Enum):
    PENDING = "PENDING"
    FORWARDED = "FORWARDED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"


class LeaveAction(str, enum.Enum):
    FORWARD = "FORWARD"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    RETURN = "RETURN"
    REQUEST_CANCELLATION = "REQUEST_CANCELLATION"
    CONFIRM_CANCELLATION = "CONFIRM_CANCELLATION"
    RECALL = "RECALL"


# An approver step is open in exactly these statuses
OPEN_LEAVE_STATUSES = frozenset({LeaveStatus.SUBMITTED, LeaveStatus.PENDING, LeaveStatus.FORWARDED})

TERMINAL_LEAVE_STATUSES = frozenset({LeaveStatus.REJECTED, LeaveStatus.CANCELLED, LeaveStatus.RECALLED})


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    requester_role = Column(SQLEnum(Role), nullable=False)  # snapshot at submission
    leave_type = Column(SQLEnum(LeaveType), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    # Balance charge; fixed at submission, recomputed only on resubmit
    working_days_charged = Column(Integer, nullable=False)
    weekend_days = Column(Integer, nullable=False, default=0)
    holiday_days = Column(Integer, nullable=False, default=0)
    working_days = Column(Integer, nullable=False, default=0)
    reason = Column(Text, nullable=False)
    incident_date = Column(Date, nullable=True)  # SPECIAL_DISABILITY only
    certificate_ref = Column(String(512), nullable=True)
    fitness_certificate_ref = Column(String(512), nullable=True)
    full_pay_days = Column(Integer, nullable=True)
    half_pay_days = Column(Integer, nullable=True)
    unpaid_days = Column(Integer, nullable=True)
    status = Column(SQLEnum(LeaveStatus), nullable=False, default=LeaveStatus.SUBMITTED)
    approval_route = Column(JSON, nullable=False)  # resolved role order of the current chain
    chain_no = Column(Integer, nullable=False, default=1)
    # Set on extension requests; points at the approved leave being extended
    parent_leave_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=True, index=True)
    duty_resumed_on = Column(Date, nullable=True)
    overstay_flagged_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    submitted_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    employee = relationship("Employee", foreign_keys=[employee_id], back_populates="leave_requests")
    steps = relationship(
        "ApprovalStep",
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by=lambda: [ApprovalStep.chain_no, ApprovalStep.step_index],
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('ix_leave_requests_employee_dates', 'employee_id', 'start_date', 'end_date'),
        CheckConstraint('start_date <= end_date', name='check_start_date_le_end_date'),
    )

    @property
    def is_extension(self) -> bool:
        return self.parent_leave_id is not None

    @property
    def open_step(self):
        pending = [s for s in self.steps if s.decision == StepDecision.PENDING]
        return pending[-1] if pending else None

    @property
    def current_chain_steps(self):
        return [s for s in self.steps if s.chain_no == self.chain_no]


class ApprovalStep(Base):
    """One hop of a request's approval chain. Append-only except the open step."""
    __tablename__ = "approval_steps"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=False, index=True)
    chain_no = Column(Integer, nullable=False, default=1)
    step_index = Column(Integer, nullable=False)
    required_role = Column(SQLEnum(Role), nullable=False)
    decision = Column(SQLEnum(StepDecision), nullable=False, default=StepDecision.PENDING)
    actor_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    comment = Column(Text, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    leave_request = relationship("LeaveRequest", back_populates="steps")
    actor = relationship("Employee", foreign_keys=[actor_id])

    __table_args__ = (
        UniqueConstraint("leave_request_id", "chain_no", "step_index", name="uq_approval_steps_request_chain_step"),
    )


class LedgerAction(str, enum.Enum):
    DEBIT = "DEBIT"                  # approved leave
    CREDIT = "CREDIT"                # cancelled after approval / recalled
    ACCRUAL = "ACCRUAL"
    CARRY_FORWARD = "CARRY_FORWARD"
    OVERFLOW = "OVERFLOW"            # EARNED above the accumulation cap moved to special_days


class LeaveBalance(Base):
    """
    Leave ledger balance: one row per (employee_id, leave_type, year).
    available = allocated + carried_forward - used.
    special_days holds EARNED days that overflowed the accumulation cap; they
    are not part of available.
    """
    __tablename__ = "leave_balances"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type = Column(SQLEnum(LeaveType), nullable=False)
    year = Column(Integer, nullable=False, index=True)
    allocated = Column(Integer, nullable=False, default=0)
    carried_forward = Column(Integer, nullable=False, default=0)
    used = Column(Integer, nullable=False, default=0)
    special_days = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    employee = relationship("Employee", backref="leave_balances")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type", "year", name="uq_leave_balances_employee_type_year"),
    )

    @property
    def available(self) -> int:
        return (self.allocated or 0) + (self.carried_forward or 0) - (self.used or 0)


class LeaveTransaction(Base):
    """Ledger journal. idempotency_key makes every mutation apply at most once."""
    __tablename__ = "leave_transactions"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=True, index=True)
    leave_type = Column(SQLEnum(LeaveType), nullable=False)
    year = Column(Integer, nullable=False, index=True)
    delta_days = Column(Integer, nullable=False)  # + for credit/accrual, - for debit
    action = Column(String(30), nullable=False)
    idempotency_key = Column(String(255), nullable=False, unique=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    employee = relationship("Employee", foreign_keys=[employee_id])
    leave_request = relationship("LeaveRequest", foreign_keys=[leave_request_id])
