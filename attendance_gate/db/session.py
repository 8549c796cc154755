"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from attendance_gate.core.config import settings
from attendance_gate.db.base import Base

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=False,
    # SQLite uses a single-connection pool class that takes no timeout
    **({"connect_args": {"check_same_thread": False}} if _is_sqlite else {"pool_timeout": settings.DB_POOL_TIMEOUT}),
)

# Create all tables automatically on startup for SQLite
if _is_sqlite:
    import attendance_gate.models  # noqa: F401  (register tables on Base.metadata)

    Base.metadata.create_all(bind=engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
