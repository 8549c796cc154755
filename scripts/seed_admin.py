"""
Create the initial admin if no admin exists. Run from the project root with .env loaded.

Usage:
  python scripts/seed_admin.py                          # uses INITIAL_ADMIN_EMAIL / INITIAL_ADMIN_PASSWORD
  python scripts/seed_admin.py admin@corp.com 'S3cret!'
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from attendance_gate.core.config import settings
from attendance_gate.core.logging import setup_logging
from attendance_gate.db.init_db import ensure_initial_admin
from attendance_gate.db.session import SessionLocal


def main():
    email = settings.INITIAL_ADMIN_EMAIL
    password = settings.INITIAL_ADMIN_PASSWORD
    if len(sys.argv) == 3:
        email, password = sys.argv[1], sys.argv[2]
    elif len(sys.argv) != 1:
        print(__doc__)
        sys.exit(2)

    setup_logging()
    db = SessionLocal()
    try:
        admin = ensure_initial_admin(db, email, password)
        if admin is None:
            print("An admin already exists; nothing to do")
        else:
            print(f"Admin created: {admin.email} (id={admin.id})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
