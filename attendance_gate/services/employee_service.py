"""
Employee service - business logic for employee management
"""
import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from attendance_gate.core.errors import InvalidState, NotFound
from attendance_gate.core.locks import user_locks
from attendance_gate.core.security import hash_password
from attendance_gate.models.attendance import AttendanceRecord
from attendance_gate.models.audit_log import AuditLog
from attendance_gate.models.device_request import DeviceChangeRequest
from attendance_gate.models.employee import Employee, Role
from attendance_gate.schemas.employee import EmployeeCreate, EmployeeUpdate
from attendance_gate.services.audit_service import log_audit
from attendance_gate.utils.datetime_utils import now_utc

_log = logging.getLogger(__name__)


def get_employee(db: Session, employee_id: int) -> Employee:
    """
    Raises:
        NotFound: employee does not exist
    """
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise NotFound("Employee not found")
    return employee


def get_by_email(db: Session, email: str) -> Optional[Employee]:
    return db.query(Employee).filter(Employee.email == email.strip().lower()).first()


def list_employees(
    db: Session,
    q: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    active_only: Optional[bool] = None,
) -> List[Employee]:
    """
    List employees, optionally filtered by a case-insensitive name/email search

    Args:
        db: Database session
        q: Search text matched against name and email
        skip: Number of records to skip
        limit: Maximum number of records to return
        active_only: If set, filter on the active flag
    """
    query = db.query(Employee)
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(Employee.name.ilike(pattern), Employee.email.ilike(pattern)))
    if active_only is not None:
        query = query.filter(Employee.active == active_only)
    return query.order_by(Employee.name, Employee.id).offset(skip).limit(limit).all()


def create_employee(db: Session, employee_data: EmployeeCreate, actor_id: Optional[int]) -> Employee:
    """
    Create a new employee

    Raises:
        HTTPException: 400 if the email is already registered
    """
    if get_by_email(db, employee_data.email) is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Employee with email '{employee_data.email}' already exists",
        )
    employee = Employee(
        email=employee_data.email,
        name=employee_data.name.strip(),
        role=employee_data.role.value,
        active=employee_data.active,
        password_hash=hash_password(employee_data.password) if employee_data.password else None,
        allowed_ips=[ip.strip() for ip in employee_data.allowed_ips if ip and ip.strip()],
    )
    db.add(employee)
    db.flush()
    log_audit(
        db=db,
        actor_id=actor_id,
        action="EMPLOYEE_CREATE",
        entity_type="employees",
        entity_id=employee.id,
        meta={"email": employee.email, "role": employee.role},
        commit=False,
    )
    db.commit()
    db.refresh(employee)
    _log.info("Employee created: employee_id=%s role=%s", employee.id, employee.role)
    return employee


def update_employee(db: Session, employee_id: int, update_data: EmployeeUpdate, actor_id: int) -> Employee:
    """
    Update name, role, active flag or password

    Raises:
        NotFound: employee does not exist
        HTTPException: 400 if an admin tries to deactivate or demote themselves
    """
    employee = get_employee(db, employee_id)
    changes = update_data.model_dump(exclude_unset=True)

    if employee.id == actor_id:
        if changes.get("active") is False:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate yourself")
        if "role" in changes and changes["role"] != Role.ADMIN:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot remove your own admin role")

    if changes.get("name") is not None:
        employee.name = changes["name"].strip()
    if changes.get("role") is not None:
        employee.role = Role(changes["role"]).value
    if changes.get("active") is not None:
        employee.active = changes["active"]
    if changes.get("password"):
        employee.password_hash = hash_password(changes["password"])

    log_audit(
        db=db,
        actor_id=actor_id,
        action="EMPLOYEE_UPDATE",
        entity_type="employees",
        entity_id=employee.id,
        meta={k: v for k, v in changes.items() if k != "password"},
        commit=False,
    )
    db.commit()
    db.refresh(employee)
    return employee


def set_allowed_ips(db: Session, employee_id: int, ips: List[str], actor_id: int) -> Employee:
    """Replace an employee's own network allowlist."""
    employee = get_employee(db, employee_id)
    cleaned = [str(ip).strip() for ip in ips if ip is not None and str(ip).strip()]
    employee.allowed_ips = cleaned
    log_audit(
        db=db,
        actor_id=actor_id,
        action="EMPLOYEE_ALLOWED_IPS_UPDATE",
        entity_type="employees",
        entity_id=employee.id,
        meta={"ips": cleaned},
        commit=False,
    )
    db.commit()
    db.refresh(employee)
    return employee


def deregister_device(db: Session, employee_id: int, actor_id: int) -> Employee:
    """
    Clear an employee's bound device; their next mark raises a fresh change request.

    Raises:
        NotFound: employee does not exist
    """
    employee = get_employee(db, employee_id)
    with user_locks.hold(employee.id):
        db.refresh(employee, with_for_update=True)
        previous = employee.device_id
        employee.clear_device()
        log_audit(
            db=db,
            actor_id=actor_id,
            action="DEVICE_DEREGISTER",
            entity_type="employees",
            entity_id=employee.id,
            meta={"previous_device_id": previous},
            commit=False,
        )
        db.commit()
    db.refresh(employee)
    _log.info("Device deregistered: employee_id=%s by actor_id=%s", employee.id, actor_id)
    return employee


def bind_own_device(db: Session, employee: Employee, device_id: str, info: dict) -> Employee:
    """Immediate bind used when an admin requests a device change for themselves."""
    with user_locks.hold(employee.id):
        db.refresh(employee, with_for_update=True)
        previous = employee.device_id
        employee.bind_device(device_id, info, now_utc())
        log_audit(
            db=db,
            actor_id=employee.id,
            action="DEVICE_SELF_BIND",
            entity_type="employees",
            entity_id=employee.id,
            meta={"device_id": device_id, "previous_device_id": previous},
            commit=False,
        )
        db.commit()
    db.refresh(employee)
    return employee


def reset_password(db: Session, employee_id: int, password: Optional[str], actor_id: int) -> Employee:
    """
    Replace an employee's password with a fresh bcrypt hash

    Raises:
        InvalidState: no password given
        NotFound: employee does not exist
    """
    if not password:
        raise InvalidState("Password required")
    employee = get_employee(db, employee_id)
    employee.password_hash = hash_password(password)
    log_audit(
        db=db,
        actor_id=actor_id,
        action="EMPLOYEE_PASSWORD_RESET",
        entity_type="employees",
        entity_id=employee.id,
        commit=False,
    )
    db.commit()
    db.refresh(employee)
    _log.info("Password reset: employee_id=%s by actor_id=%s", employee.id, actor_id)
    return employee


def delete_employee(db: Session, employee_id: int, actor_id: int) -> None:
    """
    Delete an employee together with their attendance records and device requests.
    Reviews they made and audit entries they authored are kept with the actor cleared.

    Raises:
        NotFound: employee does not exist
        HTTPException: 400 if an admin tries to delete themselves
    """
    employee = get_employee(db, employee_id)
    if employee.id == actor_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete yourself")

    with user_locks.hold(employee_id):
        email = employee.email
        db.query(AttendanceRecord).filter(AttendanceRecord.employee_id == employee_id).delete(
            synchronize_session=False
        )
        db.query(DeviceChangeRequest).filter(DeviceChangeRequest.employee_id == employee_id).delete(
            synchronize_session=False
        )
        db.query(DeviceChangeRequest).filter(DeviceChangeRequest.reviewed_by == employee_id).update(
            {DeviceChangeRequest.reviewed_by: None}, synchronize_session=False
        )
        db.query(AuditLog).filter(AuditLog.actor_id == employee_id).update(
            {AuditLog.actor_id: None}, synchronize_session=False
        )
        db.query(Employee).filter(Employee.id == employee_id).delete(synchronize_session=False)
        db.expunge(employee)
        log_audit(
            db=db,
            actor_id=actor_id,
            action="EMPLOYEE_DELETE",
            entity_type="employees",
            entity_id=employee_id,
            meta={"email": email},
            commit=False,
        )
        db.commit()
    _log.info("Employee deleted: employee_id=%s by actor_id=%s", employee_id, actor_id)
