"""
Audit log model
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from app.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("employees.id"), nullable=True)  # NULL for scheduler runs
    action = Column(String, nullable=False)  # e.g., "LEAVE_SUBMIT", "LEAVE_APPROVE", "ACCRUAL_RUN"
    entity_type = Column(String, nullable=False)  # e.g., "leave_request", "holidays", "accrual"
    entity_id = Column(Integer, nullable=True)
    meta_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
