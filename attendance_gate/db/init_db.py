"""
Initial admin bootstrap, used by application startup and scripts/seed_admin.py
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from attendance_gate.core.security import hash_password
from attendance_gate.models.employee import Employee, Role

logger = logging.getLogger(__name__)


def ensure_initial_admin(db: Session, email: str, password: str, name: str = "System Administrator") -> Optional[Employee]:
    """
    Create the first admin if no admin exists yet.

    Returns:
        The created admin, or None when an admin already exists
    """
    existing = db.query(Employee).filter(Employee.role == Role.ADMIN.value).first()
    if existing:
        logger.info("Admin user already exists, skipping initial bootstrap")
        return None

    admin = db.query(Employee).filter(Employee.email == email.strip().lower()).first()
    if admin is None:
        admin = Employee(email=email.strip().lower(), name=name, allowed_ips=[])
        db.add(admin)
    admin.role = Role.ADMIN.value
    admin.active = True
    admin.password_hash = hash_password(password)
    db.commit()
    db.refresh(admin)

    logger.info("Initial admin user created: %s", admin.email)
    logger.info("Password: [set via INITIAL_ADMIN_PASSWORD environment variable]")
    return admin
