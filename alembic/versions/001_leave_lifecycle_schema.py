"""Leave lifecycle schema: directory, holidays, requests, approval steps, ledger, audit

Revision ID: 001_leave_lifecycle
Revises:
Create Date: 2026-10-18

- employees: directory rows the X-Actor-Id header resolves against.
- leave_requests carries a version column for optimistic locking and the
  resolved approval route as JSON.
- approval_steps is append-only history across chains (chain_no).
- leave_balances: one row per (employee_id, leave_type, year).
- leave_transactions: ledger journal, unique idempotency_key.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001_leave_lifecycle"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLE_VALUES = ("EMPLOYEE", "DEPT_HEAD", "HR_ADMIN", "HR_HEAD", "CEO", "SYSTEM_ADMIN")
LEAVE_TYPE_VALUES = (
    "EARNED", "CASUAL", "MEDICAL", "MATERNITY", "PATERNITY", "STUDY",
    "SPECIAL_DISABILITY", "QUARANTINE", "EXTRA_WITH_PAY", "EXTRA_WITHOUT_PAY",
)
LEAVE_STATUS_VALUES = (
    "SUBMITTED", "PENDING", "FORWARDED", "RETURNED", "APPROVED", "REJECTED",
    "CANCELLATION_REQUESTED", "CANCELLED", "RECALLED",
)
STEP_DECISION_VALUES = ("PENDING", "FORWARDED", "APPROVED", "REJECTED", "RETURNED")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def _enum(bind, values, name):
    """Named enum shared across tables; on PostgreSQL the type is created once up front."""
    if bind.dialect.name == "postgresql":
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)
        return postgresql.ENUM(*values, name=name, create_type=False)
    return sa.Enum(*values, name=name)


def upgrade() -> None:
    bind = op.get_bind()
    tables = sa.inspect(bind).get_table_names()

    role_type = _enum(bind, ROLE_VALUES, "role")
    leave_type_type = _enum(bind, LEAVE_TYPE_VALUES, "leavetype")
    leave_status_type = _enum(bind, LEAVE_STATUS_VALUES, "leavestatus")
    step_decision_type = _enum(bind, STEP_DECISION_VALUES, "stepdecision")

    if "employees" not in tables:
        op.create_table(
            "employees",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("emp_code", sa.String(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("role", role_type, nullable=False),
            sa.Column("department", sa.String(), nullable=True),
            sa.Column("join_date", sa.Date(), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_employees_id"), "employees", ["id"], unique=False)
        op.create_index(op.f("ix_employees_emp_code"), "employees", ["emp_code"], unique=True)

    if "holidays" not in tables:
        op.create_table(
            "holidays",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("year", sa.Integer(), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("is_optional", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("year", "date", name="uq_holiday_year_date"),
        )
        op.create_index(op.f("ix_holidays_id"), "holidays", ["id"], unique=False)
        op.create_index(op.f("ix_holidays_year"), "holidays", ["year"], unique=False)
        op.create_index(op.f("ix_holidays_date"), "holidays", ["date"], unique=False)

    if "leave_requests" not in tables:
        op.create_table(
            "leave_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("employee_id", sa.Integer(), nullable=False),
            sa.Column("requester_role", role_type, nullable=False),
            sa.Column("leave_type", leave_type_type, nullable=False),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=False),
            sa.Column("working_days_charged", sa.Integer(), nullable=False),
            sa.Column("weekend_days", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("holiday_days", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("working_days", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("incident_date", sa.Date(), nullable=True),
            sa.Column("certificate_ref", sa.String(512), nullable=True),
            sa.Column("fitness_certificate_ref", sa.String(512), nullable=True),
            sa.Column("full_pay_days", sa.Integer(), nullable=True),
            sa.Column("half_pay_days", sa.Integer(), nullable=True),
            sa.Column("unpaid_days", sa.Integer(), nullable=True),
            sa.Column("status", leave_status_type, nullable=False, server_default="SUBMITTED"),
            sa.Column("approval_route", sa.JSON(), nullable=False),
            sa.Column("chain_no", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("start_date <= end_date", name="check_start_date_le_end_date"),
        )
        op.create_index(op.f("ix_leave_requests_id"), "leave_requests", ["id"], unique=False)
        op.create_index(op.f("ix_leave_requests_employee_id"), "leave_requests", ["employee_id"], unique=False)
        op.create_index("ix_leave_requests_employee_dates", "leave_requests", ["employee_id", "start_date", "end_date"], unique=False)

    if "approval_steps" not in tables:
        op.create_table(
            "approval_steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("leave_request_id", sa.Integer(), nullable=False),
            sa.Column("chain_no", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("step_index", sa.Integer(), nullable=False),
            sa.Column("required_role", role_type, nullable=False),
            sa.Column("decision", step_decision_type, nullable=False, server_default="PENDING"),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.ForeignKeyConstraint(["leave_request_id"], ["leave_requests.id"]),
            sa.ForeignKeyConstraint(["actor_id"], ["employees.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("leave_request_id", "chain_no", "step_index", name="uq_approval_steps_request_chain_step"),
        )
        op.create_index(op.f("ix_approval_steps_id"), "approval_steps", ["id"], unique=False)
        op.create_index(op.f("ix_approval_steps_leave_request_id"), "approval_steps", ["leave_request_id"], unique=False)

    if "leave_balances" not in tables:
        op.create_table(
            "leave_balances",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("employee_id", sa.Integer(), nullable=False),
            sa.Column("leave_type", leave_type_type, nullable=False),
            sa.Column("year", sa.Integer(), nullable=False),
            sa.Column("allocated", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("carried_forward", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("used", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("employee_id", "leave_type", "year", name="uq_leave_balances_employee_type_year"),
        )
        op.create_index(op.f("ix_leave_balances_id"), "leave_balances", ["id"], unique=False)
        op.create_index(op.f("ix_leave_balances_employee_id"), "leave_balances", ["employee_id"], unique=False)
        op.create_index(op.f("ix_leave_balances_year"), "leave_balances", ["year"], unique=False)

    if "leave_transactions" not in tables:
        op.create_table(
            "leave_transactions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("employee_id", sa.Integer(), nullable=False),
            sa.Column("leave_request_id", sa.Integer(), nullable=True),
            sa.Column("leave_type", leave_type_type, nullable=False),
            sa.Column("year", sa.Integer(), nullable=False),
            sa.Column("delta_days", sa.Integer(), nullable=False),
            sa.Column("action", sa.String(30), nullable=False),
            sa.Column("idempotency_key", sa.String(255), nullable=False),
            sa.Column("remarks", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
            sa.ForeignKeyConstraint(["employee_id"], ["employees.id"]),
            sa.ForeignKeyConstraint(["leave_request_id"], ["leave_requests.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("idempotency_key", name="uq_leave_transactions_idempotency_key"),
        )
        op.create_index(op.f("ix_leave_transactions_id"), "leave_transactions", ["id"], unique=False)
        op.create_index(op.f("ix_leave_transactions_employee_id"), "leave_transactions", ["employee_id"], unique=False)
        op.create_index(op.f("ix_leave_transactions_leave_request_id"), "leave_transactions", ["leave_request_id"], unique=False)
        op.create_index(op.f("ix_leave_transactions_year"), "leave_transactions", ["year"], unique=False)

    if "audit_logs" not in tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("entity_type", sa.String(), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("meta_json", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["actor_id"], ["employees.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_audit_logs_id"), "audit_logs", ["id"], unique=False)


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("leave_transactions")
    op.drop_table("leave_balances")
    op.drop_table("approval_steps")
    op.drop_table("leave_requests")
    op.drop_table("holidays")
    op.drop_table("employees")
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in ("stepdecision", "leavestatus", "leavetype", "role"):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")
