"""Logging helpers cho demos, simulator và API process."""

import logging
import sys
from typing import Optional


_HANDLER_NAME = "_poolscaler_stream_handler"


def configure_logging(
    level: int = logging.INFO,
    formatter: Optional[logging.Formatter] = None,
    logger_name: str = "poolscaler"
) -> logging.Logger:
    """
    Gắn một stdout handler cho logger của package (idempotent).

    Args:
        level: Logging level
        formatter: Formatter tùy chọn
        logger_name: Logger cần cấu hình

    Returns:
        Logger đã cấu hình
    """
    logger = logging.getLogger(logger_name)
    if formatter is None:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        )

    existing = None
    for handler in logger.handlers:
        if getattr(handler, _HANDLER_NAME, False):
            existing = handler
            break

    if existing is None:
        handler = logging.StreamHandler(sys.stdout)
        setattr(handler, _HANDLER_NAME, True)
        logger.addHandler(handler)
        existing = handler

    existing.setFormatter(formatter)
    existing.setLevel(level)
    logger.setLevel(level)
    return logger
