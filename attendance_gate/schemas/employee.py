"""
Employee schemas
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, field_serializer, ConfigDict
from attendance_gate.models.employee import Role
from attendance_gate.utils.datetime_utils import iso_8601_utc


def _normalize_password(v):
    """Trim, treat blank as unset, and keep within bcrypt's 72-byte limit."""
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    if len(v) < 6:
        raise ValueError("Password must be at least 6 characters")
    if len(v.encode("utf-8")) > 72:
        raise ValueError("Password cannot be longer than 72 bytes when encoded as UTF-8")
    return v


def normalize_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("Invalid email address")
    return v


class EmployeeCreate(BaseModel):
    """Schema for creating an employee"""
    email: str = Field(..., min_length=3, description="Login email (unique)")
    name: str = Field(..., min_length=1, description="Employee name")
    password: Optional[str] = Field(None, description="Employee password (optional)")
    role: Role = Field(default=Role.EMPLOYEE, description="Employee role")
    active: bool = Field(default=True, description="Employee active status")
    allowed_ips: List[str] = Field(default_factory=list, alias="allowedIPs", description="Per-employee network allowlist")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)

    @field_validator("password", mode="before")
    @classmethod
    def validate_password(cls, v):
        return _normalize_password(v)


class EmployeeUpdate(BaseModel):
    """Schema for updating an employee"""
    name: Optional[str] = Field(None, min_length=1, description="Employee name")
    role: Optional[Role] = Field(None, description="Employee role")
    active: Optional[bool] = Field(None, description="Employee active status")
    password: Optional[str] = Field(None, description="New password")

    @field_validator("password", mode="before")
    @classmethod
    def validate_password(cls, v):
        return _normalize_password(v)


class AllowedIPsUpdate(BaseModel):
    """Replacement per-employee allowlist"""
    allowed_ips: List[str] = Field(..., alias="allowedIPs", description="IPs, CIDRs or wildcard tokens")

    model_config = ConfigDict(populate_by_name=True)


class PasswordReset(BaseModel):
    """New password set by an admin"""
    password: Optional[str] = Field(None, description="New password")

    @field_validator("password", mode="before")
    @classmethod
    def validate_password(cls, v):
        return _normalize_password(v)


class EmployeeOut(BaseModel):
    """Schema for employee output. Datetimes in UTC (Z)."""
    id: int
    email: str
    name: str
    role: Role
    active: bool
    device_id: Optional[str] = None
    device_info: Optional[Dict[str, Any]] = None
    device_bound_at: Optional[datetime] = None
    allowed_ips: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("allowed_ips", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return v or []

    @field_serializer("device_bound_at", "created_at", "updated_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt):
        return iso_8601_utc(dt)
