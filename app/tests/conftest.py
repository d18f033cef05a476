"""
Pytest configuration and fixtures
"""
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.engine import Engine
from app.main import app
from app.db.base import Base
from app.core.config import settings
from app.core.deps import get_db

# Import all models to ensure they're registered with Base.metadata
from app.models import (
    Employee,
    Role,
    AuditLog,
    LeaveRequest,
    ApprovalStep,
    LeaveBalance,
    LeaveTransaction,
    Holiday,
)  # noqa


# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Enable foreign keys for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Test client fixture with database override"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_employee(db, emp_code, role, join_date=date(2020, 1, 1), active=True):
    employee = Employee(
        emp_code=emp_code,
        name=emp_code.title(),
        role=role,
        department="Engineering",
        join_date=join_date,
        active=active,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def actor_headers(employee):
    return {settings.ACTOR_HEADER: str(employee.id)}


@pytest.fixture
def employee(db):
    return make_employee(db, "EMP001", Role.EMPLOYEE)


@pytest.fixture
def dept_head(db):
    return make_employee(db, "DH001", Role.DEPT_HEAD)


@pytest.fixture
def hr_admin(db):
    return make_employee(db, "HRA001", Role.HR_ADMIN)


@pytest.fixture
def hr_head(db):
    return make_employee(db, "HRH001", Role.HR_HEAD)


@pytest.fixture
def ceo(db):
    return make_employee(db, "CEO001", Role.CEO)


@pytest.fixture
def system_admin(db):
    return make_employee(db, "SYS001", Role.SYSTEM_ADMIN)


@pytest.fixture
def approvers(dept_head, hr_admin, hr_head, ceo):
    """One employee per approver role, keyed by role"""
    return {
        Role.DEPT_HEAD: dept_head,
        Role.HR_ADMIN: hr_admin,
        Role.HR_HEAD: hr_head,
        Role.CEO: ceo,
    }
