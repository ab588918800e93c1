"""Logging setup with the custom TRACE level."""

import logging
from typing import Optional

TRACE = 5
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)-8s - %(message)s'


def _trace(self, msg, *args, **kwargs):
    if self.isEnabledFor(TRACE):
        self._log(TRACE, msg, args, **kwargs)


def install_trace_level() -> None:
    """Register TRACE and add ``Logger.trace`` for all loggers."""
    logging.TRACE = TRACE
    logging.addLevelName(TRACE, "TRACE")
    if not hasattr(logging.Logger, "trace"):
        logging.Logger.trace = _trace


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger for applications embedding the package.

    VERBOSE keeps the package at TRACE and turns on HTTP client details.
    TRACE enables everything.
    """
    from timekeeping.config import settings

    install_trace_level()
    level_str = (level or settings.log_level).upper()
    if level_str == "TRACE":
        root_level = TRACE
    elif level_str == "VERBOSE":
        root_level = logging.DEBUG
    else:
        root_level = getattr(logging, level_str, logging.INFO)

    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=root_level, format=LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(root_level)

    if level_str in ("VERBOSE", "TRACE"):
        http_level = root_level
        package_level = TRACE
    else:
        http_level = logging.WARNING
        package_level = root_level

    logging.getLogger("httpcore").setLevel(http_level)
    logging.getLogger("httpx").setLevel(http_level)
    logging.getLogger("apscheduler").setLevel(http_level)
    logging.getLogger("timekeeping").setLevel(package_level)

    root.debug(f"Logging configured at {level_str}")
