"""
Logging setup for docshelf.

Library code only ever logs through ``logging.getLogger(__name__)``
below the ``docshelf`` logger. This module decides where those records
go: stderr (warnings only, or everything in debug mode) and a rotating
operations log inside each open store.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

PACKAGE_LOGGER = "docshelf"
OPS_LOG_NAME = "docshelf-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3


def _has_stderr_handler(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in logger.handlers
    )


def configure_quiet_mode(quiet: bool = True):
    """
    Keep docshelf quiet on the console.

    Args:
        quiet: If True, only warnings and errors from docshelf reach
            stderr. If False, leave logging configuration alone.
    """
    if not quiet:
        return
    warnings.filterwarnings("ignore", category=DeprecationWarning)
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.WARNING)


def enable_debug_mode():
    """Send every docshelf log record, down to DEBUG, to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if not _has_stderr_handler(root):
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG)
        console.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        root.addHandler(console)

    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)


def configure_ops_log(store_path, level: str = "INFO") -> logging.Handler:
    """Attach the persistent operations log of a store.

    Records go to ``{store_path}/docshelf-ops.log``, rotated at 1MB with
    three backups, whatever the console verbosity. Opening the same store
    twice reuses the attached handler.

    Returns:
        The handler, for removal when the store is closed
    """
    log_path = (Path(store_path) / OPS_LOG_NAME).resolve()
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    for existing in package_logger.handlers:
        if isinstance(existing, RotatingFileHandler) and Path(existing.baseFilename) == log_path:
            return existing

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=OPS_LOG_MAX_BYTES,
        backupCount=OPS_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))
    package_logger.addHandler(handler)

    # Quiet mode raises the logger threshold; the ops log still needs its level
    if package_logger.level == logging.NOTSET or package_logger.level > handler.level:
        package_logger.setLevel(handler.level)
    return handler
