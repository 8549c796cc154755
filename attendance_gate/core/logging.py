"""
Logging configuration for the attendance gate backend
"""
import logging
import sys
from attendance_gate.core.config import settings


def setup_logging() -> None:
    """
    Configure Python logging based on settings

    Sets up:
    - Console handler with appropriate format
    - Log level from settings.LOG_LEVEL
    - Quieter third-party loggers
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Set log levels for third-party libraries
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Logging configured: level=%s, env=%s", settings.LOG_LEVEL, settings.APP_ENV)
