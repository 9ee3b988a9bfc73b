"""Logging helpers shared by the library and the CLI.

Library modules only ask for named loggers; handlers are installed by
``configure_logging`` which the CLI calls once at startup.
"""

import logging
import sys
from typing import Literal

NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "asyncio",
]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``capstream`` namespace."""
    if not name.startswith("capstream"):
        name = f"capstream.{name}"
    return logging.getLogger(name)


def suppress_noisy_loggers() -> None:
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING",
) -> None:
    """Install a single stderr handler on the ``capstream`` logger.

    Calling it again replaces the previous handler instead of stacking a new one.
    """
    app_logger = logging.getLogger("capstream")
    app_logger.setLevel(getattr(logging, level))
    app_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, level))
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    app_logger.addHandler(handler)

    suppress_noisy_loggers()
