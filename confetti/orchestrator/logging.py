from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import os


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
ROOT_LOGGER = "confetti"

_configured = False


def _ensure_base_logger() -> None:
    global _configured
    if _configured:
        return
    level = getattr(logging, os.getenv("CONFETTI_LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger(ROOT_LOGGER).setLevel(level)
    # boto's own debug chatter drowns the task logs
    logging.getLogger("botocore").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    _ensure_base_logger()
    return logging.getLogger(name)


def attach_file_handler(log_file: Path) -> RotatingFileHandler:
    """Copy every `confetti.*` record into `log_file` until detached."""
    _ensure_base_logger()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger(ROOT_LOGGER).addHandler(handler)
    return handler


def detach_file_handler(handler: logging.Handler) -> None:
    logging.getLogger(ROOT_LOGGER).removeHandler(handler)
    handler.close()
