"""
Logging configuration
"""
from pathlib import Path
import sys

from loguru import logger

from crm_insights.config import LOG_DIR, LOG_LEVEL


def setup_logger():
    """Configure logger with appropriate settings"""
    logger.remove()  # Remove default handler

    # Console logging
    logger.add(
        sys.stderr,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=LOG_LEVEL,
    )

    # File logging, only when a log directory is configured
    if LOG_DIR:
        log_dir = Path(LOG_DIR)
        logger.add(
            log_dir / "crm_insights_{time:YYYY-MM-DD}.log",
            rotation="00:00",
            retention="30 days",
            compression="zip",
            level="INFO",
        )
        logger.add(
            log_dir / "errors_{time:YYYY-MM-DD}.log",
            rotation="00:00",
            retention="90 days",
            level="ERROR",
        )

    return logger


# Initialize logger
log = setup_logger()
