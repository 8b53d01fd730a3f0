"""
Loguru configuration.

setup_logging() replaces loguru's default handler with:
- a colored stderr sink (or JSON lines when json_logs=True)
- an optional rotating file sink under log_dir
"""

import sys
from pathlib import Path

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level> | {extra}"
)


def setup_logging(
    log_level: str = "INFO",
    log_dir: str | None = "logs",
    json_logs: bool = False,
) -> None:
    """
    Configure loguru sinks for the process.

    Args:
        log_level: Minimum level for every sink
        log_dir: Directory for the rotating file sink (None disables it)
        json_logs: Emit serialized JSON records instead of formatted text
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level=log_level,
        format=LOG_FORMAT,
        serialize=json_logs,
        backtrace=False,
        diagnose=False,
    )

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(
            path / "soiltemp_{time:YYYY-MM-DD}.log",
            level=log_level,
            rotation="00:00",
            retention="14 days",
            compression="zip",
            serialize=json_logs,
            enqueue=True,
        )

    logger.debug(
        f"Logging configured (level={log_level}, dir={log_dir}, "
        f"json={json_logs})"
    )


def get_logger():
    """Return the shared loguru logger."""
    return logger
