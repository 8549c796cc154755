"""
Settings store: company-wide values kept in the settings table.
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from attendance_gate.constants import COMPANY_ALLOWED_IPS_KEY
from attendance_gate.models.setting import Setting
from attendance_gate.services.audit_service import log_audit

_log = logging.getLogger(__name__)


def get_company_allowed_ips(db: Session) -> List[str]:
    """Company-wide allowlist; an absent or non-list value reads as empty."""
    row = db.query(Setting).filter(Setting.key == COMPANY_ALLOWED_IPS_KEY).first()
    if row is None or not isinstance(row.value, list):
        return []
    return [str(v).strip() for v in row.value if str(v).strip()]


def set_company_allowed_ips(db: Session, ips: List[str], actor_id: int) -> List[str]:
    """
    Replace the company-wide allowlist as a whole.

    Evaluators read this list without locking, so the write is a single
    row replace rather than an incremental edit.
    """
    cleaned = [str(v).strip() for v in ips if str(v).strip()]
    row = db.query(Setting).filter(Setting.key == COMPANY_ALLOWED_IPS_KEY).first()
    if row is None:
        row = Setting(key=COMPANY_ALLOWED_IPS_KEY, value=cleaned)
        db.add(row)
    else:
        row.value = cleaned
    log_audit(
        db=db,
        actor_id=actor_id,
        action="COMPANY_IPS_UPDATE",
        entity_type="settings",
        entity_id=None,
        meta={"ips": cleaned},
        commit=False,
    )
    db.commit()
    _log.info("Company allowlist replaced by employee_id=%s (%d entries)", actor_id, len(cleaned))
    return cleaned
