"""
Admin employee management: create/update/delete, password resets, allowlists,
device deregistration
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from attendance_gate.core.deps import get_db, get_ledger, require_admin
from attendance_gate.models.employee import Employee
from attendance_gate.schemas.device import DeviceRequestOut
from attendance_gate.schemas.employee import (
    AllowedIPsUpdate,
    EmployeeCreate,
    EmployeeOut,
    EmployeeUpdate,
    PasswordReset,
)
from attendance_gate.services import employee_service
from attendance_gate.services.device_request_service import DeviceRequestLedger

router = APIRouter()


@router.get("", response_model=List[EmployeeOut])
def list_employees(
    q: Optional[str] = Query(None, description="Search by name or email"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    active_only: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
):
    return employee_service.list_employees(db, q=q, skip=skip, limit=limit, active_only=active_only)


@router.post("", response_model=EmployeeOut, status_code=status.HTTP_201_CREATED)
def create_employee(
    body: EmployeeCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin),
):
    return employee_service.create_employee(db, body, current_user.id)


@router.get("/{employee_id}", response_model=EmployeeOut)
def get_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
):
    return employee_service.get_employee(db, employee_id)


@router.patch("/{employee_id}", response_model=EmployeeOut)
def update_employee(
    employee_id: int,
    body: EmployeeUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin),
):
    return employee_service.update_employee(db, employee_id, body, current_user.id)


@router.delete("/{employee_id}", status_code=status.HTTP_200_OK)
def delete_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin),
):
    """Delete the employee along with their attendance records and device requests."""
    employee_service.delete_employee(db, employee_id, current_user.id)
    return {"deleted": True, "id": employee_id}


@router.post("/{employee_id}/reset-password", response_model=EmployeeOut)
def reset_password(
    employee_id: int,
    body: PasswordReset,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin),
):
    return employee_service.reset_password(db, employee_id, body.password, current_user.id)


@router.patch("/{employee_id}/allowed-ips", response_model=EmployeeOut)
def update_allowed_ips(
    employee_id: int,
    body: AllowedIPsUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin),
):
    """Replace the employee's own network allowlist (unioned with the company list at evaluation)."""
    return employee_service.set_allowed_ips(db, employee_id, body.allowed_ips, current_user.id)


@router.post("/{employee_id}/deregister-device", response_model=EmployeeOut)
def deregister_device(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin),
):
    """Clear the bound device; the employee's next mark raises a new change request."""
    return employee_service.deregister_device(db, employee_id, current_user.id)


@router.get("/{employee_id}/requests", response_model=List[DeviceRequestOut])
def employee_requests(
    employee_id: int,
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    employee_service.get_employee(db, employee_id)
    return [DeviceRequestOut.model_validate(r) for r in ledger.list_for_employee(employee_id)]
