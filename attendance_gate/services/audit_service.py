"""
Audit logging service
"""
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any

from attendance_gate.models.audit_log import AuditLog
from attendance_gate.utils.datetime_utils import now_utc
from attendance_gate.utils.json_serializer import sanitize_for_json


def log_audit(
    db: Session,
    actor_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    meta: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> AuditLog:
    """
    Create an audit log entry

    Args:
        db: Database session
        actor_id: ID of the user performing the action
        action: Action type (e.g., "DEVICE_REQUEST_APPROVE", "DEVICE_AUTO_BIND")
        entity_type: Type of entity (e.g., "device_change_requests", "employees")
        entity_id: ID of the affected entity (optional)
        meta: Additional metadata as dictionary (optional)
        commit: Commit immediately; pass False to join the caller's transaction

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_json=sanitize_for_json(meta) if meta is not None else None,
        created_at=now_utc(),
    )
    db.add(audit_log)
    if commit:
        db.commit()
        db.refresh(audit_log)
    return audit_log
