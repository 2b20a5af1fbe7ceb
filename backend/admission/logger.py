"""
Logging setup.

Everything logs through loguru. Standard-library records (uvicorn,
SQLAlchemy, asyncpg) are intercepted and re-emitted through the same sinks.
"""

import logging
import sys

from loguru import logger

from admission.config import get_settings

LOG_FORMAT = " | ".join(
    (
        "<g>{time:YYYY-MM-DD HH:mm:ss.SSS}</>",
        "<lvl>{level:<8}</>",
        "<c>{name}:{function}:{line}</>",
        "{message}",
    )
)

_configured = False


class InterceptHandler(logging.Handler):
    """Route stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging() -> None:
    """Configure loguru sinks once per process."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = "DEBUG" if settings.debug else settings.log_level.upper()

    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level, enqueue=True)

    if settings.log_file:
        logger.add(
            settings.log_file,
            format=LOG_FORMAT,
            level=level,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
            compression="gz",
            enqueue=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    _configured = True
