"""
Admin company settings: the company-wide network allowlist
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from attendance_gate.core.config import settings
from attendance_gate.core.deps import get_db, require_admin
from attendance_gate.models.employee import Employee
from attendance_gate.schemas.setting import CompanyIPs
from attendance_gate.services import settings_service

router = APIRouter()


@router.get("/company-ips")
def get_company_ips(
    db: Session = Depends(get_db),
    _: Employee = Depends(require_admin),
):
    """
    Stored company allowlist. Entries from the COMPANY_ALLOWED_IPS environment
    variable are reported separately since they cannot be edited here.
    """
    return {
        "ips": settings_service.get_company_allowed_ips(db),
        "env_ips": settings.get_company_allowed_ips_list(),
    }


@router.put("/company-ips")
def put_company_ips(
    body: CompanyIPs,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_admin),
):
    """Replace the stored company allowlist as a whole."""
    ips = settings_service.set_company_allowed_ips(db, body.ips, current_user.id)
    return {"ips": ips}
