"""
Device change request model: the review ledger for device rebinding.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON, Index, text
from sqlalchemy.orm import relationship
import enum
from attendance_gate.db.base import Base


class DeviceRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class DeviceChangeRequest(Base):
    __tablename__ = "device_change_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    new_device_id = Column(String, nullable=False)
    new_device_info = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default=DeviceRequestStatus.PENDING.value, index=True)
    requested_at = Column(DateTime(timezone=True), nullable=False)
    reviewed_by = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    admin_note = Column(Text, nullable=True)

    __table_args__ = (
        # Storage-level guard: never two pending requests for the same employee and device
        Index(
            "uq_device_change_requests_pending_device",
            "employee_id",
            "new_device_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    employee = relationship("Employee", foreign_keys=[employee_id], backref="device_requests")
    reviewer = relationship("Employee", foreign_keys=[reviewed_by])
