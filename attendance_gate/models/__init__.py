"""
Database models
"""
from attendance_gate.models.employee import Employee, Role
from attendance_gate.models.attendance import AttendanceRecord, AttendanceType, AttendanceStatus
from attendance_gate.models.device_request import DeviceChangeRequest, DeviceRequestStatus
from attendance_gate.models.setting import Setting
from attendance_gate.models.audit_log import AuditLog

__all__ = [
    "Employee",
    "Role",
    "AttendanceRecord",
    "AttendanceType",
    "AttendanceStatus",
    "DeviceChangeRequest",
    "DeviceRequestStatus",
    "Setting",
    "AuditLog",
]
