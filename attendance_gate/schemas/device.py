"""
Device change request schemas
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer

from attendance_gate.utils.datetime_utils import iso_8601_utc


class DeviceChangeRequestCreate(BaseModel):
    """Explicit device change request"""
    device_id: Optional[str] = Field(None, alias="deviceId", description="New device identifier")
    name: Optional[str] = Field(None, max_length=200, description="Human-readable device name")
    note: Optional[str] = Field(None, max_length=500, description="Reason for the change")

    model_config = ConfigDict(populate_by_name=True)


class ReviewNote(BaseModel):
    """Optional note for approve/reject/cancel"""
    note: Optional[str] = Field(None, max_length=500)


class DeviceRequestOut(BaseModel):
    id: int
    employee_id: int
    new_device_id: str
    new_device_info: Optional[Dict[str, Any]] = None
    status: str
    requested_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    admin_note: Optional[str] = None
    employee_name: Optional[str] = None
    employee_email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("requested_at", "reviewed_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt):
        return iso_8601_utc(dt)

    @classmethod
    def from_request(cls, req) -> "DeviceRequestOut":
        """Build from an ORM request, adding the employee's display fields when loaded."""
        out = cls.model_validate(req)
        if req.employee is not None:
            out.employee_name = req.employee.name
            out.employee_email = req.employee.email
        return out


class BulkDeleteOut(BaseModel):
    deleted: int
    status: str
