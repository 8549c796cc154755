"""
Pytest configuration and fixtures
"""
import os

# Settings are read at import time; tests never need a real database or secret
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-attendance-gate-tests")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.engine import Engine

from attendance_gate.main import app
from attendance_gate.db.base import Base
from attendance_gate.core.config import settings
from attendance_gate.core.deps import get_db
from attendance_gate.core.security import create_access_token, hash_password

# Import all models to ensure they're registered with Base.metadata
from attendance_gate.models import (
    Employee,
    Role,
    AttendanceRecord,
    DeviceChangeRequest,
    Setting,
    AuditLog,
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


@pytest.fixture(autouse=True)
def no_env_allowlist(monkeypatch):
    """Tests start without an operator allowlist regardless of the host environment."""
    monkeypatch.setattr(settings, "COMPANY_ALLOWED_IPS", "")


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
    # The transport peer is "testclient", which is not an address
    yield TestClient(app, headers={"x-forwarded-for": "127.0.0.1"})
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """
    Session factory on a file-backed SQLite database, for tests that run
    several threads each with its own session and connection.
    """
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=file_engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    yield factory
    file_engine.dispose()


def create_employee(db, email, name=None, role=Role.EMPLOYEE, password=None, device_id=None, allowed_ips=None):
    """Insert an employee directly; password hashing only when a password is given."""
    employee = Employee(
        email=email,
        name=name or email.split("@")[0].title(),
        role=role.value,
        password_hash=hash_password(password) if password else None,
        active=True,
        device_id=device_id,
        device_info={"ua": "pytest", "ip": "127.0.0.1"} if device_id else None,
        allowed_ips=allowed_ips or [],
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def auth_headers(employee, device_id=None, ip=None):
    """Bearer header for the employee, plus optional device and forwarded address headers."""
    token = create_access_token({"sub": str(employee.id), "role": employee.role})
    headers = {"Authorization": f"Bearer {token}"}
    if device_id is not None:
        headers["x-device-id"] = device_id
    if ip is not None:
        headers["x-forwarded-for"] = ip
    return headers


def add_records(db, employee, stamps):
    """Alternating IN/OUT records at the given timestamps, seq from 1."""
    for i, ts in enumerate(stamps):
        db.add(AttendanceRecord(
            employee_id=employee.id,
            seq=i + 1,
            type="in" if i % 2 == 0 else "out",
            timestamp=ts,
            ip="10.0.0.1",
            device_id=employee.device_id,
            status="recorded",
            breaks=[],
            on_break=False,
        ))
    db.commit()


@pytest.fixture
def test_employee(db):
    """Employee with a bound device"""
    return create_employee(db, "emp@example.com", name="Test Employee", device_id="dev-1")


@pytest.fixture
def unbound_employee(db):
    """Employee who has never bound a device"""
    return create_employee(db, "new@example.com", name="New Employee")


@pytest.fixture
def admin_user(db):
    """Admin with a bound device"""
    return create_employee(db, "admin@example.com", name="Admin", role=Role.ADMIN, device_id="admin-dev")
