"""
Dependencies and guards for FastAPI endpoints
"""
from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from attendance_gate.core.config import settings
from attendance_gate.core.locks import user_locks
from attendance_gate.core.security import decode_token
from attendance_gate.db.session import SessionLocal
from attendance_gate.models.employee import Employee, Role
from attendance_gate.services.device_policy import DevicePolicy
from attendance_gate.services.device_request_service import DeviceRequestLedger
from attendance_gate.services.settings_service import get_company_allowed_ips


security = HTTPBearer()


def get_db() -> Generator:
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> Employee:
    """
    Get current authenticated user from JWT token
    """
    token = credentials.credentials

    try:
        payload = decode_token(token)
        sub_value = payload.get("sub")
        if sub_value is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        # Convert string sub back to integer
        employee_id: int = int(sub_value)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    employee = db.get(Employee, employee_id)
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not employee.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )

    return employee


def require_roles(*allowed_roles: Role):
    """
    Dependency factory for role-based access control

    Usage:
        @router.get("/admin-only")
        def admin_endpoint(user: Employee = Depends(require_roles(Role.ADMIN))):
            ...
    """
    allowed = {r.value for r in allowed_roles}

    def role_checker(current_user: Employee = Depends(get_current_user)) -> Employee:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {sorted(allowed)}"
            )
        return current_user
    return role_checker


require_admin = require_roles(Role.ADMIN)


def get_ledger(db: Session = Depends(get_db)) -> DeviceRequestLedger:
    return DeviceRequestLedger(db, locks=user_locks)


def get_device_policy(
    db: Session = Depends(get_db),
    ledger: DeviceRequestLedger = Depends(get_ledger),
) -> DevicePolicy:
    """Policy evaluator wired to the settings store, ledger, env allowlist and lock registry."""
    return DevicePolicy(
        db,
        company_ips=get_company_allowed_ips,
        ledger=ledger,
        env_allowlist=settings.get_company_allowed_ips_list(),
        locks=user_locks,
    )
