"""Logging setup shared by the API server and the CLI."""

import logging
import sys

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "pymongo")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once with the service format.

    Args:
        level: Logging level name. Unknown names fall back to INFO.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric_level)

    if numeric_level > logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name``, usually the caller's ``__name__``."""
    return logging.getLogger(name)
