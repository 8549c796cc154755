"""
Attendance record model: one row per IN or OUT mark.
"""
from sqlalchemy import Column, Integer, DateTime, ForeignKey, String, Boolean, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from attendance_gate.db.base import Base


class AttendanceType(str, enum.Enum):
    IN = "in"
    OUT = "out"


class AttendanceStatus(str, enum.Enum):
    RECORDED = "recorded"
    BLOCKED = "blocked"
    PENDING = "pending"


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    # Per-employee position in the IN/OUT sequence; the insert of seq N+1 only succeeds once
    seq = Column(Integer, nullable=False)
    type = Column(String, nullable=False)  # in / out
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)  # Server UTC timestamp
    ip = Column(String, nullable=True)
    device_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default=AttendanceStatus.RECORDED.value)
    note = Column(Text, nullable=True)
    breaks = Column(JSON, nullable=False, default=list)  # [{"start": iso, "end": iso | None}]
    on_break = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "seq", name="uq_attendance_records_employee_seq"),
    )

    employee = relationship("Employee", backref="attendance_records")
