"""
Device change request ledger.

Holds pending/approved/rejected/cancelled device-rebinding requests. An
employee has at most one pending request at any time: every path that
creates one runs under the employee's lock and checks first, and the partial
unique index on (employee_id, new_device_id) WHERE status = 'pending' backs
the same-device case in storage.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from attendance_gate.constants import CANCELLED_NOTE, SUPERSEDED_NOTE
from attendance_gate.core.errors import (
    AlreadyReviewed,
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
)
from attendance_gate.core.locks import KeyedLock, user_locks
from attendance_gate.models.device_request import DeviceChangeRequest, DeviceRequestStatus
from attendance_gate.models.employee import Employee
from attendance_gate.services.audit_service import log_audit
from attendance_gate.utils.datetime_utils import now_utc
from attendance_gate.utils.json_serializer import sanitize_for_json

_log = logging.getLogger(__name__)

VALID_STATUSES = [s.value for s in DeviceRequestStatus]


class DeviceRequestLedger:
    """Storage and review transitions for device change requests."""

    def __init__(self, db: Session, locks: KeyedLock = user_locks):
        self.db = db
        self._locks = locks

    # --- reads ---

    def get(self, request_id: int) -> DeviceChangeRequest:
        req = self.db.get(DeviceChangeRequest, request_id)
        if req is None:
            raise NotFound("Request not found")
        return req

    def find_pending(self, employee_id: int, device_id: Optional[str] = None) -> Optional[DeviceChangeRequest]:
        """Pending request for the employee, preferring one for ``device_id``."""
        query = (
            self.db.query(DeviceChangeRequest)
            .filter(
                DeviceChangeRequest.employee_id == employee_id,
                DeviceChangeRequest.status == DeviceRequestStatus.PENDING.value,
            )
            .populate_existing()
        )
        if device_id is not None:
            same_device = query.filter(DeviceChangeRequest.new_device_id == device_id).first()
            if same_device is not None:
                return same_device
        return query.order_by(DeviceChangeRequest.requested_at.desc()).first()

    def list_for_employee(self, employee_id: int) -> List[DeviceChangeRequest]:
        return (
            self.db.query(DeviceChangeRequest)
            .filter(DeviceChangeRequest.employee_id == employee_id)
            .order_by(DeviceChangeRequest.requested_at.desc(), DeviceChangeRequest.id.desc())
            .all()
        )

    def list_all(self, status: Optional[str] = None) -> List[DeviceChangeRequest]:
        """All requests, newest first, with the requesting employee loaded for display."""
        query = self.db.query(DeviceChangeRequest).options(joinedload(DeviceChangeRequest.employee))
        if status is not None:
            self._validate_status(status)
            query = query.filter(DeviceChangeRequest.status == status)
        return query.order_by(DeviceChangeRequest.requested_at.desc(), DeviceChangeRequest.id.desc()).all()

    # --- creation ---

    def create_or_get_pending(
        self,
        employee_id: int,
        device_id: str,
        info: Optional[dict] = None,
    ) -> Tuple[DeviceChangeRequest, bool]:
        """
        Return the employee's pending request, creating one for ``device_id`` if none exists.

        Returns:
            (request, created) where created is False when an existing pending request was reused
        """
        with self._locks.hold(employee_id):
            existing = self.find_pending(employee_id, device_id)
            if existing is not None:
                return existing, False
            return self._insert_pending(employee_id, device_id, info)

    def submit(self, employee: Employee, device_id: str, info: Optional[dict] = None) -> DeviceChangeRequest:
        """
        Explicit device change request from an employee.

        Raises:
            Conflict: employee already has a pending request (its id is returned to the client)
        """
        with self._locks.hold(employee.id):
            existing = self.find_pending(employee.id)
            if existing is not None:
                raise Conflict(request_id=existing.id)
            req, created = self._insert_pending(employee.id, device_id, info)
            if not created:
                raise Conflict(request_id=req.id)
            return req

    def _insert_pending(
        self,
        employee_id: int,
        device_id: str,
        info: Optional[dict],
    ) -> Tuple[DeviceChangeRequest, bool]:
        req = DeviceChangeRequest(
            employee_id=employee_id,
            new_device_id=device_id,
            new_device_info=sanitize_for_json(info) if info else None,
            status=DeviceRequestStatus.PENDING.value,
            requested_at=now_utc(),
        )
        self.db.add(req)
        try:
            self.db.flush()
        except IntegrityError:
            # Another process inserted the same pending (employee, device) first
            self.db.rollback()
            winner = self.find_pending(employee_id, device_id)
            if winner is None:
                raise
            _log.info("Pending device request race resolved to request_id=%s", winner.id)
            return winner, False
        log_audit(
            db=self.db,
            actor_id=employee_id,
            action="DEVICE_REQUEST_CREATE",
            entity_type="device_change_requests",
            entity_id=req.id,
            meta={"device_id": device_id, "info": info},
            commit=False,
        )
        self.db.commit()
        self.db.refresh(req)
        _log.info("Device change request created: request_id=%s employee_id=%s", req.id, employee_id)
        return req, True

    # --- review transitions ---

    def approve(self, request_id: int, reviewer_id: int, note: Optional[str] = None) -> DeviceChangeRequest:
        """
        Approve a pending request: bind its device to the employee and supersede
        every other pending request of that employee.

        Raises:
            NotFound: request or its employee does not exist
            AlreadyReviewed: request is not pending
        """
        req = self.get(request_id)
        with self._locks.hold(req.employee_id):
            self.db.refresh(req, with_for_update=True)
            if req.status != DeviceRequestStatus.PENDING.value:
                raise AlreadyReviewed()
            employee = self.db.get(Employee, req.employee_id, with_for_update=True, populate_existing=True)
            if employee is None:
                raise NotFound("Employee not found")

            now = now_utc()
            info = dict(req.new_device_info or {})
            info.setdefault("name", "approved device")
            info["request_id"] = req.id
            employee.bind_device(req.new_device_id, info, now)

            req.status = DeviceRequestStatus.APPROVED.value
            req.reviewed_by = reviewer_id
            req.reviewed_at = now
            if note:
                req.admin_note = note

            superseded = (
                self.db.query(DeviceChangeRequest)
                .filter(
                    DeviceChangeRequest.employee_id == req.employee_id,
                    DeviceChangeRequest.status == DeviceRequestStatus.PENDING.value,
                    DeviceChangeRequest.id != req.id,
                )
                .update(
                    {
                        DeviceChangeRequest.status: DeviceRequestStatus.REJECTED.value,
                        DeviceChangeRequest.reviewed_by: reviewer_id,
                        DeviceChangeRequest.reviewed_at: now,
                        DeviceChangeRequest.admin_note: SUPERSEDED_NOTE,
                    },
                    synchronize_session=False,
                )
            )
            log_audit(
                db=self.db,
                actor_id=reviewer_id,
                action="DEVICE_REQUEST_APPROVE",
                entity_type="device_change_requests",
                entity_id=req.id,
                meta={
                    "employee_id": req.employee_id,
                    "device_id": req.new_device_id,
                    "superseded": superseded,
                },
                commit=False,
            )
            self.db.commit()
        self.db.refresh(req)
        _log.info(
            "Device request approved: request_id=%s employee_id=%s superseded=%s",
            req.id, req.employee_id, superseded,
        )
        return req

    def reject(self, request_id: int, reviewer_id: int, note: Optional[str] = None) -> DeviceChangeRequest:
        """
        Raises:
            NotFound: request does not exist
            AlreadyReviewed: request is not pending
        """
        req = self.get(request_id)
        with self._locks.hold(req.employee_id):
            self.db.refresh(req, with_for_update=True)
            if req.status != DeviceRequestStatus.PENDING.value:
                raise AlreadyReviewed()
            req.status = DeviceRequestStatus.REJECTED.value
            req.reviewed_by = reviewer_id
            req.reviewed_at = now_utc()
            req.admin_note = note
            log_audit(
                db=self.db,
                actor_id=reviewer_id,
                action="DEVICE_REQUEST_REJECT",
                entity_type="device_change_requests",
                entity_id=req.id,
                meta={"employee_id": req.employee_id, "note": note},
                commit=False,
            )
            self.db.commit()
        self.db.refresh(req)
        return req

    def cancel(self, request_id: int, caller_id: int, note: Optional[str] = None) -> DeviceChangeRequest:
        """
        Owner withdraws a pending request.

        Raises:
            NotFound: request does not exist
            Forbidden: caller is not the request owner
            InvalidState: request is not pending
        """
        req = self.get(request_id)
        if req.employee_id != caller_id:
            raise Forbidden()
        with self._locks.hold(req.employee_id):
            self.db.refresh(req, with_for_update=True)
            if req.status != DeviceRequestStatus.PENDING.value:
                raise InvalidState("Only pending requests can be cancelled")
            req.status = DeviceRequestStatus.CANCELLED.value
            req.reviewed_at = now_utc()
            req.admin_note = note or CANCELLED_NOTE
            log_audit(
                db=self.db,
                actor_id=caller_id,
                action="DEVICE_REQUEST_CANCEL",
                entity_type="device_change_requests",
                entity_id=req.id,
                commit=False,
            )
            self.db.commit()
        self.db.refresh(req)
        return req

    def delete(self, request_id: int, caller: Employee) -> None:
        """
        Raises:
            NotFound: request does not exist
            Forbidden: caller is neither the owner nor an admin
        """
        req = self.get(request_id)
        if req.employee_id != caller.id and not caller.is_admin:
            raise Forbidden()
        with self._locks.hold(req.employee_id):
            self.db.delete(req)
            log_audit(
                db=self.db,
                actor_id=caller.id,
                action="DEVICE_REQUEST_DELETE",
                entity_type="device_change_requests",
                entity_id=request_id,
                meta={"status": req.status},
                commit=False,
            )
            self.db.commit()

    def bulk_delete_by_status(self, status: Optional[str], caller: Employee) -> int:
        """
        Delete every request with the given status.

        Raises:
            Forbidden: caller is not an admin
            InvalidState: status missing or not one of the four request states
        """
        if not caller.is_admin:
            raise Forbidden()
        if not status:
            raise InvalidState("status query parameter required")
        self._validate_status(status)
        count = (
            self.db.query(DeviceChangeRequest)
            .filter(DeviceChangeRequest.status == status)
            .delete(synchronize_session=False)
        )
        log_audit(
            db=self.db,
            actor_id=caller.id,
            action="DEVICE_REQUEST_BULK_DELETE",
            entity_type="device_change_requests",
            meta={"status": status, "deleted": count},
            commit=False,
        )
        self.db.commit()
        return count

    @staticmethod
    def _validate_status(status: str) -> None:
        if status not in VALID_STATUSES:
            raise InvalidState("invalid status")
