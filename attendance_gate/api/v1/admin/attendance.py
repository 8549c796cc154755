"""
Admin attendance views for one employee: raw or grouped listing, diagnostics,
manual marks and CSV export.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from attendance_gate.api.v1.attendance import int_or_none, parse_mark_type
from attendance_gate.constants import ADMIN_HISTORY_DEFAULT_LIMIT, ADMIN_MARK_NOTE
from attendance_gate.core.deps import get_db, require_admin
from attendance_gate.models.employee import Employee
from attendance_gate.schemas.attendance import (
    AdminMarkRequest,
    AttendanceDiagnoseOut,
    AttendanceRecordOut,
    GroupedAttendanceResponse,
    HistoryResponse,
)
from attendance_gate.services import employee_service, report_service
from attendance_gate.services.attendance_service import AttendanceStateMachine, clamp_limit, clamp_page
from attendance_gate.services.audit_service import log_audit
from attendance_gate.services.device_policy import resolve_client_ip
from attendance_gate.utils.csv_export import stream_csv
from attendance_gate.utils.datetime_utils import EPOCH, now_utc, parse_datetime_lenient

router = APIRouter()
_log = logging.getLogger(__name__)


@router.get("/{employee_id}/attendance")
def employee_attendance(
    employee_id: int,
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    group_by: Optional[str] = Query(None, alias="groupBy", description="day | week | month"),
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
):
    """
    Raw paginated records (default page size 100), or in/out counts per period
    when groupBy is given. An empty result carries a meta block with the
    employee's overall count and timestamp range so a wrong window is easy to spot.
    """
    employee_service.get_employee(db, employee_id)
    start = parse_datetime_lenient(from_, EPOCH)
    end = parse_datetime_lenient(to, now_utc(), end_of_day=True)
    _log.debug(
        "Admin attendance: employee_id=%s from=%s to=%s groupBy=%s",
        employee_id, start, end, group_by,
    )

    if group_by:
        rows = report_service.group_attendance(db, employee_id, start, end, group_by)
        response = GroupedAttendanceResponse(group_by=group_by, items=rows, total=len(rows)).model_dump()
        if not rows:
            response["meta"] = _empty_meta(db, employee_id)
        return response

    page_no = clamp_page(int_or_none(page))
    page_size = clamp_limit(int_or_none(limit), default=ADMIN_HISTORY_DEFAULT_LIMIT)
    items, total = AttendanceStateMachine(db).history(employee_id, start, end, page_no, page_size)
    response = HistoryResponse(
        items=[AttendanceRecordOut.model_validate(r) for r in items],
        total=total,
        page=page_no,
        limit=page_size,
    )
    if not items:
        response.meta = _empty_meta(db, employee_id)
    return response


def _empty_meta(db: Session, employee_id: int) -> dict:
    diag = report_service.diagnose(db, employee_id, sample_size=0)
    return {"total": diag["total"], "earliest": diag["earliest"], "latest": diag["latest"]}


@router.get("/{employee_id}/attendance/diagnose", response_model=AttendanceDiagnoseOut)
def diagnose_attendance(
    employee_id: int,
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
):
    """Total count, earliest/latest timestamps and the latest 10 records."""
    employee_service.get_employee(db, employee_id)
    return report_service.diagnose(db, employee_id)


@router.post("/{employee_id}/attendance", response_model=AttendanceRecordOut)
def admin_mark(
    employee_id: int,
    body: AdminMarkRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin),
):
    """
    Record a mark on the employee's behalf (forgotten check-in/out).

    Goes through the same alternation rules as a self-service mark.
    """
    employee_service.get_employee(db, employee_id)
    mark_type = parse_mark_type(body.type)
    record = AttendanceStateMachine(db).mark(
        employee_id,
        mark_type,
        ip=resolve_client_ip(request),
        device_id=request.headers.get("x-device-id"),
        note=body.note or ADMIN_MARK_NOTE,
    )
    log_audit(
        db=db,
        actor_id=current_user.id,
        action="ATTENDANCE_ADMIN_MARK",
        entity_type="attendance_records",
        entity_id=record.id,
        meta={"employee_id": employee_id, "type": mark_type, "note": record.note},
    )
    return record


@router.get("/{employee_id}/attendance/export")
def export_employee_attendance(
    employee_id: int,
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
):
    """CSV of the employee's records in the window."""
    employee = employee_service.get_employee(db, employee_id)
    start = parse_datetime_lenient(from_, EPOCH)
    end = parse_datetime_lenient(to, now_utc(), end_of_day=True)
    rows = report_service.export_rows(db, start, end, employee_id=employee.id)
    return stream_csv(report_service.EXPORT_HEADERS, rows, filename=f"attendance_{employee.id}.csv")
