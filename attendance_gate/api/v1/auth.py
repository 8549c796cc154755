"""
Authentication endpoints
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from attendance_gate.core.config import settings
from attendance_gate.core.deps import get_db, get_current_user
from attendance_gate.core.security import verify_password, create_access_token
from attendance_gate.models.employee import Employee, Role
from attendance_gate.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from attendance_gate.schemas.employee import EmployeeCreate, EmployeeOut
from attendance_gate.services import employee_service

router = APIRouter()
_log = logging.getLogger(__name__)


def _token_for(employee: Employee) -> TokenResponse:
    # JWT 'sub' claim must be a string
    token_data = {
        "sub": str(employee.id),
        "email": employee.email,
        "role": employee.role,
    }
    return TokenResponse(
        access_token=create_access_token(data=token_data),
        token_type="bearer",
        user=EmployeeOut.model_validate(employee),
    )


@router.post("/login", response_model=TokenResponse)
def login(
    login_data: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return JWT token

    Validates email and password, rejects inactive employees.
    """
    employee = employee_service.get_by_email(db, login_data.email)

    if not employee:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    if not employee.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive"
        )

    if employee.password_hash is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No password set for this account"
        )

    if not verify_password(login_data.password, employee.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    _log.info("Login: employee_id=%s", employee.id)
    return _token_for(employee)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Self-registration as an employee. Disabled unless ALLOW_REGISTRATION is set.
    """
    if not settings.ALLOW_REGISTRATION:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Registration is disabled"
        )
    employee = employee_service.create_employee(
        db,
        EmployeeCreate(email=body.email, name=body.name, password=body.password, role=Role.EMPLOYEE),
        actor_id=None,
    )
    return _token_for(employee)


@router.get("/me", response_model=EmployeeOut)
def me(current_user: Employee = Depends(get_current_user)):
    """Current principal, including the bound device."""
    return current_user
