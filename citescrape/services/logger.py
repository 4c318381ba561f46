"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from citescrape.config import settings

# Remove default handler
logger.remove()

# Add console handler with color
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

if settings.log_dir:
    LOG_DIR = Path(settings.log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_DIR / "citescrape_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="00:00",  # New file at midnight
        retention="7 days",
        compression="zip",
    )

# Reduce noise from network libraries
for logger_name in ("httpx", "httpcore", "asyncio"):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_job_event(
    provider: str,
    job_id: Optional[str],
    phase: str,
    status: str,
    error: Optional[str] = None,
    **details: Any,
) -> None:
    """Log a scrape job phase transition."""
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "provider": provider,
        "job_id": job_id,
        "phase": phase,
        "status": status,
        "error": error,
        **details,
    }
    if error:
        logger.error(f"JOB_EVENT: {event_data}")
    else:
        logger.info(f"JOB_EVENT: {event_data}")
