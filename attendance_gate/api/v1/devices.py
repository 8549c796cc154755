"""
Device change request endpoints.

Employees request a device change and manage their own requests; admins
review, list and clean up requests. An admin's own change request binds the
device immediately.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from attendance_gate.core.deps import get_db, get_current_user, get_ledger, require_admin
from attendance_gate.core.errors import DenyMissingDevice
from attendance_gate.models.employee import Employee
from attendance_gate.schemas.device import (
    BulkDeleteOut,
    DeviceChangeRequestCreate,
    DeviceRequestOut,
    ReviewNote,
)
from attendance_gate.schemas.employee import EmployeeOut
from attendance_gate.services import employee_service
from attendance_gate.services.device_policy import extract_device_id, resolve_client_ip
from attendance_gate.services.device_request_service import DeviceRequestLedger

router = APIRouter()
_log = logging.getLogger(__name__)


@router.post("/request-change")
def request_change(
    request: Request,
    body: Optional[DeviceChangeRequestCreate] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    """
    Ask for a new device to be bound.

    Employees get a pending request (409 with the existing request_id if one
    is already pending). Admins are bound to the device immediately.
    """
    payload = body or DeviceChangeRequestCreate()
    device_id = extract_device_id(request, {"deviceId": payload.device_id})
    if not device_id:
        raise DenyMissingDevice("deviceId required")

    info = {
        "ua": request.headers.get("user-agent"),
        "ip": resolve_client_ip(request),
        "name": payload.name,
        "note": payload.note,
    }

    if current_user.is_admin:
        employee = employee_service.bind_own_device(db, current_user, device_id, info)
        return {
            "bound": True,
            "message": "Device bound",
            "employee": EmployeeOut.model_validate(employee),
        }

    req = ledger.submit(current_user, device_id, info)
    return {
        "bound": False,
        "message": "Device change request submitted",
        "request": DeviceRequestOut.from_request(req),
    }


@router.get("/my-requests", response_model=List[DeviceRequestOut])
def my_requests(
    current_user: Employee = Depends(get_current_user),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    """Current user's requests, newest first."""
    return [DeviceRequestOut.model_validate(r) for r in ledger.list_for_employee(current_user.id)]


@router.get("/requests", response_model=List[DeviceRequestOut])
def list_requests(
    status_filter: Optional[str] = Query(None, alias="status", description="pending | approved | rejected | cancelled"),
    _: Employee = Depends(require_admin),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    """All requests with the requesting employee's name and email (admin)."""
    return [DeviceRequestOut.from_request(r) for r in ledger.list_all(status_filter)]


@router.post("/requests/{request_id}/approve", response_model=DeviceRequestOut)
def approve_request(
    request_id: int,
    body: Optional[ReviewNote] = None,
    current_user: Employee = Depends(require_admin),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    """Approve a pending request; other pending requests of that employee are superseded."""
    req = ledger.approve(request_id, current_user.id, (body or ReviewNote()).note)
    return DeviceRequestOut.from_request(req)


@router.post("/requests/{request_id}/reject", response_model=DeviceRequestOut)
def reject_request(
    request_id: int,
    body: Optional[ReviewNote] = None,
    current_user: Employee = Depends(require_admin),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    req = ledger.reject(request_id, current_user.id, (body or ReviewNote()).note)
    return DeviceRequestOut.from_request(req)


@router.post("/requests/{request_id}/cancel", response_model=DeviceRequestOut)
def cancel_request(
    request_id: int,
    body: Optional[ReviewNote] = None,
    current_user: Employee = Depends(get_current_user),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    """Withdraw one of your own pending requests."""
    req = ledger.cancel(request_id, current_user.id, (body or ReviewNote()).note)
    return DeviceRequestOut.from_request(req)


@router.delete("/requests/{request_id}", status_code=status.HTTP_200_OK)
def delete_request(
    request_id: int,
    current_user: Employee = Depends(get_current_user),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    """Delete a request (owner or admin)."""
    ledger.delete(request_id, current_user)
    return {"deleted": True, "id": request_id}


@router.delete("/requests", response_model=BulkDeleteOut)
def bulk_delete_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: Employee = Depends(require_admin),
    ledger: DeviceRequestLedger = Depends(get_ledger),
):
    """Delete every request with the given status (admin)."""
    count = ledger.bulk_delete_by_status(status_filter, current_user)
    _log.info("Bulk deleted %d %s device requests", count, status_filter)
    return BulkDeleteOut(deleted=count, status=status_filter)
