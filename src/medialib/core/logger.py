"""Logging configuration and setup."""

import sys

from loguru import logger

from medialib.core.config import settings


def setup_logging() -> None:
    """Configures Loguru logging for console and file output.

    Removes the default handler, adds a colorized stderr sink and a rotated,
    compressed log file in the data directory. The file sink is enqueued so
    the scan loop never blocks on log I/O.
    """
    logger.remove()  # Remove default handler

    # Console Handler (Stderr)
    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )

    # File Handler (Rotated & Compressed)
    log_file = settings.DATA_DIR / "logs" / "medialib.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(log_file),
        rotation=settings.LOG_ROTATION,
        retention=settings.LOG_RETENTION,
        compression="zip",
        level=settings.LOG_LEVEL,
        enqueue=True,
        backtrace=True,
        diagnose=False,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    )

    logger.info(f"Logging initialized. Data Dir: {settings.DATA_DIR}")
