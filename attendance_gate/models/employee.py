"""
Employee model (the authenticated principal)
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
import enum
from attendance_gate.db.base import Base


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    ADMIN = "admin"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.EMPLOYEE.value)
    password_hash = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    # Bound device: replaced as a whole (id, info, bound_at), never edited field by field
    device_id = Column(String, nullable=True)
    device_info = Column(JSON, nullable=True)  # {"ua": ..., "ip": ..., "name": ...}
    device_bound_at = Column(DateTime(timezone=True), nullable=True)

    # Per-employee network allowlist (IPs / CIDRs / wildcard tokens)
    allowed_ips = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def bind_device(self, device_id: str, info, bound_at) -> None:
        """Replace the bound device."""
        self.device_id = device_id
        self.device_info = info
        self.device_bound_at = bound_at

    def clear_device(self) -> None:
        self.device_id = None
        self.device_info = None
        self.device_bound_at = None
