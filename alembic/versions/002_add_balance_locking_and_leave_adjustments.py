"""Add balance version/special_days and leave adjustment columns

Revision ID: 002_balance_locking_adjustments
Revises: 001_leave_lifecycle
Create Date: 2026-10-18

- leave_balances.version: optimistic lock alongside SELECT ... FOR UPDATE.
- leave_balances.special_days: EARNED days above the accumulation cap.
- leave_requests.parent_leave_id: extension requests point at their parent.
- leave_requests.duty_resumed_on / overstay_flagged_at: overstay check state.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002_balance_locking_adjustments"
down_revision: Union[str, None] = "001_leave_lifecycle"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    balance_cols = [c["name"] for c in inspector.get_columns("leave_balances")]
    request_cols = [c["name"] for c in inspector.get_columns("leave_requests")]

    if "version" not in balance_cols:
        op.add_column("leave_balances", sa.Column("version", sa.Integer(), nullable=False, server_default="1"))
    if "special_days" not in balance_cols:
        op.add_column("leave_balances", sa.Column("special_days", sa.Integer(), nullable=False, server_default="0"))

    if "parent_leave_id" not in request_cols:
        op.add_column("leave_requests", sa.Column("parent_leave_id", sa.Integer(), nullable=True))
        op.create_foreign_key(
            "fk_leave_requests_parent_leave_id", "leave_requests", "leave_requests",
            ["parent_leave_id"], ["id"],
        )
        op.create_index(op.f("ix_leave_requests_parent_leave_id"), "leave_requests", ["parent_leave_id"], unique=False)
    if "duty_resumed_on" not in request_cols:
        op.add_column("leave_requests", sa.Column("duty_resumed_on", sa.Date(), nullable=True))
    if "overstay_flagged_at" not in request_cols:
        op.add_column("leave_requests", sa.Column("overstay_flagged_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column("leave_requests", "overstay_flagged_at")
    op.drop_column("leave_requests", "duty_resumed_on")
    op.drop_index(op.f("ix_leave_requests_parent_leave_id"), table_name="leave_requests")
    op.drop_constraint("fk_leave_requests_parent_leave_id", "leave_requests", type_="foreignkey")
    op.drop_column("leave_requests", "parent_leave_id")
    op.drop_column("leave_balances", "special_days")
    op.drop_column("leave_balances", "version")
