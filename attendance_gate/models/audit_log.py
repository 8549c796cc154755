"""
Audit log model
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from attendance_gate.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    action = Column(String, nullable=False)  # e.g., "DEVICE_REQUEST_APPROVE", "ATTENDANCE_MARK"
    entity_type = Column(String, nullable=False)  # e.g., "device_change_requests", "employees"
    entity_id = Column(Integer, nullable=True)  # ID of the affected entity
    meta_json = Column(JSON, nullable=True)  # Additional metadata as JSON
    # Set explicitly by the service (SQLite server defaults are unreliable for tz-aware columns)
    created_at = Column(DateTime(timezone=True), nullable=False)
