"""Centralized logging configuration for the Course Hub backend."""

import logging
from typing import Union

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Configure the root logger with a single stream handler.

    Calling this more than once does not stack handlers.

    Args:
        level: Logging level as int or name (e.g. ``"INFO"``).

    Returns:
        The root logger.
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    if not any(getattr(h, "_course_hub", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        handler._course_hub = True
        logger.addHandler(handler)

    return logger
