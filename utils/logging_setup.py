"""
Loguru sink configuration.
"""
import os
import sys
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """
    Replace loguru's default sink with the crawler's console sink and, when
    ``log_dir`` is given, a daily-rotated file sink.

    Safe to call more than once; previous sinks are removed first.
    """
    logger.remove()
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=level)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        logger.add(
            os.path.join(log_dir, "crawler_{time}.log"),
            rotation="1 day",
            retention="7 days",
            level=level,
        )
