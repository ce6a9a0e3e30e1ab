"""Centralized logging setup for formscan.

One stdout handler on the root logger with a shared format. Pillow and
urllib3 log every PNG chunk and connection at DEBUG, so they are held at
WARNING unless explicitly requested.
"""

import logging
import sys
from typing import TextIO

_NOISY_LOGGERS = ("PIL", "urllib3")
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger with the formscan format.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
        stream: Output stream, stdout when omitted.
        quiet_third_party: Hold Pillow and urllib3 loggers at WARNING.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    root.setLevel(numeric_level)

    if quiet_third_party:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger, typically ``get_logger(__name__)``."""
    return logging.getLogger(name)
