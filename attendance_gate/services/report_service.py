"""
Report service - admin views and CSV exports of attendance records
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from attendance_gate.models.attendance import AttendanceRecord, AttendanceType
from attendance_gate.models.employee import Employee
from attendance_gate.utils.datetime_utils import ensure_utc, iso_8601_utc

GROUP_BY_CHOICES = ("day", "week", "month")

EXPORT_HEADERS = ["User", "Email", "Type", "Timestamp", "IP", "DeviceId"]


def period_key(ts: datetime, group_by: str) -> str:
    """Bucket label for a timestamp: 2024-05-17, 2024-W20 or 2024-05."""
    ts = ensure_utc(ts)
    if group_by == "day":
        return ts.strftime("%Y-%m-%d")
    if group_by == "month":
        return ts.strftime("%Y-%m")
    iso_year, iso_week, _ = ts.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def _validate_group_by(group_by: str) -> None:
    if group_by not in GROUP_BY_CHOICES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"groupBy must be one of {list(GROUP_BY_CHOICES)}",
        )


def _window(db: Session, start: datetime, end: datetime, employee_id: Optional[int] = None):
    query = db.query(AttendanceRecord).filter(
        AttendanceRecord.timestamp >= start,
        AttendanceRecord.timestamp <= end,
    )
    if employee_id is not None:
        query = query.filter(AttendanceRecord.employee_id == employee_id)
    return query


def group_attendance(
    db: Session,
    employee_id: int,
    start: datetime,
    end: datetime,
    group_by: str,
) -> List[Dict]:
    """
    In/out counts per period for one employee, newest period first

    Returns:
        List of {period, ins, outs, first, last}
    """
    _validate_group_by(group_by)
    records = _window(db, start, end, employee_id).order_by(AttendanceRecord.timestamp).all()
    buckets: Dict[str, Dict] = {}
    for rec in records:
        key = period_key(rec.timestamp, group_by)
        bucket = buckets.setdefault(key, {"period": key, "ins": 0, "outs": 0, "first": None, "last": None})
        if rec.type == AttendanceType.IN.value:
            bucket["ins"] += 1
        else:
            bucket["outs"] += 1
        stamp = iso_8601_utc(rec.timestamp)
        if bucket["first"] is None:
            bucket["first"] = stamp
        bucket["last"] = stamp
    return sorted(buckets.values(), key=lambda b: b["period"], reverse=True)


def summary(
    db: Session,
    start: datetime,
    end: datetime,
    group_by: Optional[str] = None,
) -> List[Dict]:
    """
    Company-wide in/out counts per employee, optionally split by period

    Returns:
        List of {employee_id, name, email, period, ins, outs}; period is None when not grouped
    """
    if group_by is not None:
        _validate_group_by(group_by)
    rows = (
        _window(db, start, end)
        .join(Employee, AttendanceRecord.employee_id == Employee.id)
        .with_entities(AttendanceRecord.employee_id, Employee.name, Employee.email,
                       AttendanceRecord.type, AttendanceRecord.timestamp)
        .all()
    )
    buckets: Dict[tuple, Dict] = {}
    for employee_id, name, email, mark_type, ts in rows:
        period = period_key(ts, group_by) if group_by else None
        bucket = buckets.setdefault(
            (employee_id, period),
            {"employee_id": employee_id, "name": name, "email": email, "period": period, "ins": 0, "outs": 0},
        )
        if mark_type == AttendanceType.IN.value:
            bucket["ins"] += 1
        else:
            bucket["outs"] += 1
    by_name = sorted(buckets.values(), key=lambda b: b["name"] or "")
    return sorted(by_name, key=lambda b: b["period"] or "", reverse=True)


def diagnose(db: Session, employee_id: int, sample_size: int = 10) -> Dict:
    """Total count, earliest/latest timestamps and the latest records for an employee, ignoring any window."""
    total, earliest, latest = (
        db.query(
            func.count(AttendanceRecord.id),
            func.min(AttendanceRecord.timestamp),
            func.max(AttendanceRecord.timestamp),
        )
        .filter(AttendanceRecord.employee_id == employee_id)
        .one()
    )
    recent = (
        db.query(AttendanceRecord)
        .filter(AttendanceRecord.employee_id == employee_id)
        .order_by(AttendanceRecord.timestamp.desc(), AttendanceRecord.seq.desc())
        .limit(sample_size)
        .all()
    )
    return {
        "employee_id": employee_id,
        "total": total or 0,
        "earliest": iso_8601_utc(earliest) if isinstance(earliest, datetime) else earliest,
        "latest": iso_8601_utc(latest) if isinstance(latest, datetime) else latest,
        "recent": recent,
    }


def export_rows(
    db: Session,
    start: datetime,
    end: datetime,
    employee_id: Optional[int] = None,
) -> List[Dict]:
    """Rows for the attendance CSV, oldest first, keyed by EXPORT_HEADERS."""
    query = (
        _window(db, start, end, employee_id)
        .join(Employee, AttendanceRecord.employee_id == Employee.id)
        .with_entities(Employee.name, Employee.email, AttendanceRecord.type,
                       AttendanceRecord.timestamp, AttendanceRecord.ip, AttendanceRecord.device_id)
        .order_by(AttendanceRecord.timestamp, AttendanceRecord.employee_id, AttendanceRecord.seq)
    )
    return [
        {
            "User": name,
            "Email": email,
            "Type": mark_type,
            "Timestamp": iso_8601_utc(ts),
            "IP": ip,
            "DeviceId": device_id,
        }
        for name, email, mark_type, ts, ip, device_id in query.all()
    ]
