"""Logging configuration for Trading Bridge."""

import logging
import sys
from datetime import datetime
from pathlib import Path

LOG_DIR = Path(__file__).parent.parent.parent / "logs"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
) -> logging.Logger:
    """Configure logging for the service.

    Args:
        level: Logging level (default: INFO)
        log_to_file: Whether to also log to a daily file (default: True)

    Returns:
        Package logger
    """
    logger = logging.getLogger("trading_bridge")
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_to_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file = LOG_DIR / f"bridge_{datetime.now():%Y%m%d}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Keep chatty HTTP client libraries quiet unless something goes wrong
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def mask_secret(secret: str | None, visible: int = 6) -> str:
    """Shorten a credential for log output."""
    if not secret:
        return "<nil>"
    return f"{secret[:visible]}..."
