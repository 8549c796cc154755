"""
Attendance schemas. All datetimes are returned as UTC ISO-8601 with a Z suffix.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from attendance_gate.utils.datetime_utils import iso_8601_utc


class MarkRequest(BaseModel):
    """
    Check-in/check-out request.

    ``type`` is validated by the endpoint so a malformed value is a 400, not a
    schema error. ``deviceId`` is a fallback for clients that cannot set the
    x-device-id header.
    """
    type: Optional[str] = Field(None, description="'in' or 'out'")
    device_id: Optional[str] = Field(None, alias="deviceId", description="Device identifier")

    model_config = ConfigDict(populate_by_name=True)


class BreakRequest(BaseModel):
    """Optional body for break transitions"""
    device_id: Optional[str] = Field(None, alias="deviceId", description="Device identifier")

    model_config = ConfigDict(populate_by_name=True)


class AdminMarkRequest(BaseModel):
    """Admin-entered mark for an employee who forgot to check in or out"""
    type: Optional[str] = Field(None, description="'in' or 'out'")
    note: Optional[str] = Field(None, max_length=500, description="Reason; defaults to 'Marked by admin'")


class BreakOut(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None


class AttendanceRecordOut(BaseModel):
    """One IN or OUT mark"""
    id: int
    employee_id: int
    seq: int
    type: str
    timestamp: datetime
    ip: Optional[str] = None
    device_id: Optional[str] = None
    status: str
    note: Optional[str] = None
    breaks: List[BreakOut] = Field(default_factory=list)
    on_break: bool = False

    model_config = ConfigDict(from_attributes=True)

    @field_validator("breaks", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return v or []

    @field_serializer("timestamp", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)


class HistoryResponse(BaseModel):
    """Paginated attendance history, newest first"""
    items: List[AttendanceRecordOut]
    total: int
    page: int
    limit: int
    meta: Optional[Dict[str, Any]] = None


class AttendanceStatusOut(BaseModel):
    """Current IN/OUT and break state for the client home screen"""
    checked_in: bool
    on_break: bool
    last_record: Optional[AttendanceRecordOut] = None


class GroupedAttendanceRow(BaseModel):
    """In/out counts for one day, ISO week or month"""
    period: str
    ins: int
    outs: int
    first: Optional[str] = None
    last: Optional[str] = None


class GroupedAttendanceResponse(BaseModel):
    group_by: str
    items: List[GroupedAttendanceRow]
    total: int


class AttendanceDiagnoseOut(BaseModel):
    """Storage-level view of an employee's attendance, for support"""
    employee_id: int
    total: int
    earliest: Optional[str] = None
    latest: Optional[str] = None
    recent: List[AttendanceRecordOut]
