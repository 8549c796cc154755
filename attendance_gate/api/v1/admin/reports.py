"""
Admin company-wide reports
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from attendance_gate.core.deps import get_db, require_admin
from attendance_gate.models.employee import Employee
from attendance_gate.services import report_service
from attendance_gate.utils.csv_export import stream_csv
from attendance_gate.utils.datetime_utils import EPOCH, now_utc, parse_datetime_lenient

router = APIRouter()


@router.get("")
def attendance_summary(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    group_by: Optional[str] = Query(None, alias="groupBy", description="day | week | month"),
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
):
    """In/out counts per employee, optionally split by period."""
    start = parse_datetime_lenient(from_, EPOCH)
    end = parse_datetime_lenient(to, now_utc(), end_of_day=True)
    return {"items": report_service.summary(db, start, end, group_by)}


@router.get("/export")
def export_attendance(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
):
    """CSV of every employee's records in the window."""
    start = parse_datetime_lenient(from_, EPOCH)
    end = parse_datetime_lenient(to, now_utc(), end_of_day=True)
    rows = report_service.export_rows(db, start, end)
    return stream_csv(report_service.EXPORT_HEADERS, rows, filename="attendance_report.csv")
