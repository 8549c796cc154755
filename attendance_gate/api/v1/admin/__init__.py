"""Admin API (ADMIN role only)."""
from fastapi import APIRouter
from attendance_gate.api.v1.admin import attendance as admin_attendance
from attendance_gate.api.v1.admin import employees as admin_employees
from attendance_gate.api.v1.admin import reports as admin_reports
from attendance_gate.api.v1.admin import settings as admin_settings

admin_router = APIRouter(prefix="/admin", tags=["admin"])
admin_router.include_router(admin_settings.router, prefix="/settings", tags=["admin-settings"])
admin_router.include_router(admin_employees.router, prefix="/employees", tags=["admin-employees"])
admin_router.include_router(admin_attendance.router, prefix="/employees", tags=["admin-attendance"])
admin_router.include_router(admin_reports.router, prefix="/reports", tags=["admin-reports"])
