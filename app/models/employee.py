"""
Employee directory model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum
from app.db.base import Base
from app.utils.datetime_utils import now_utc


class Role(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    DEPT_HEAD = "DEPT_HEAD"
    HR_ADMIN = "HR_ADMIN"
    HR_HEAD = "HR_HEAD"
    CEO = "CEO"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    emp_code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(SQLEnum(Role), nullable=False, default=Role.EMPLOYEE)
    department = Column(String, nullable=True)
    join_date = Column(Date, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    leave_requests = relationship("LeaveRequest", foreign_keys="LeaveRequest.employee_id", back_populates="employee")
