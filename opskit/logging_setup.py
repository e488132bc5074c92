# opskit/logging_setup.py
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

from .config import Settings


def setup_logging(verbosity: int = 1, log_file: str | None = None, settings: Settings | None = None) -> None:
    """
    Diagnostics go to stderr so stdout stays clean for TAP output and
    remote command output. OPSKIT_DEBUG forces DEBUG regardless of verbosity.
    """
    settings = settings or Settings.from_env()
    try:
        v = int(verbosity)
    except (TypeError, ValueError):
        v = 1
    level = logging.DEBUG if (v > 1 or settings.debug) else logging.INFO

    fmt = "%(asctime)s [%(levelname)s] %(message)s"
    datefmt = "%H:%M:%S"

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    log_file = log_file or settings.log_file
    if log_file:
        handlers.append(RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8"))

    logging.basicConfig(level=level, format=fmt, datefmt=datefmt, handlers=handlers, force=True)
    # paramiko is chatty at INFO (transport negotiation)
    logging.getLogger("paramiko").setLevel(logging.DEBUG if level == logging.DEBUG else logging.WARNING)
