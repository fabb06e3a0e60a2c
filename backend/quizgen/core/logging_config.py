"""Logging setup for entry points.

Library modules only create ``logging.getLogger(__name__)`` loggers; whoever
owns the process (the CLI, a web server) calls :func:`configure_logging` once.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from typing import Optional

from quizgen.core.config import settings

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3")
_configured = False


def configure_logging(level: Optional[str] = None, log_dir: Optional[str] = None, to_file: bool = True) -> None:
    """Install stdout + rotating-file handlers on the root logger.

    Safe to call more than once; only the first call has any effect.
    """
    global _configured
    if _configured:
        return

    fmt = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(fmt)
    handlers.append(stream_handler)

    if to_file:
        directory = log_dir or settings.LOG_DIR
        os.makedirs(directory, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(directory, "quizgen.log"), maxBytes=10 * 1024 * 1024, backupCount=3
        )
        file_handler.setFormatter(fmt)
        handlers.append(file_handler)

    root = logging.getLogger()
    root.setLevel(level or settings.LOG_LEVEL)
    for handler in handlers:
        root.addHandler(handler)
    # Quieten noisy third-party loggers
    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True
