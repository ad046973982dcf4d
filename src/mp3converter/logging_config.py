"""Process-wide logging for the two mp3converter services.

The gateway and the worker each write a size-rotated ``<process>.log`` and
mirror it to stdout for the container runtime. Records carry the process
role and pid so interleaved logs from several worker replicas stay readable.
Third-party loggers are held at ``LoggingSettings.library_level``: kombu and
py-amqp log every (re)connect, pymongo logs server selection, and the
gateway additionally quiets werkzeug's per-request lines and urllib3.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Tuple

from .config import LoggingSettings
from .exceptions import ConfigurationError

LOG_FORMAT = "%(asctime)s %(levelname)s {role}[%(process)d] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LIBRARY_LOGGERS: Dict[str, Tuple[str, ...]] = {
    "worker": ("amqp", "kombu", "pymongo"),
    "gateway": ("amqp", "kombu", "pymongo", "werkzeug", "urllib3"),
}

_LOG_FILE: Optional[Path] = None
_HANDLERS: Tuple[logging.Handler, ...] = ()


def configure_logging(
    role: str,
    settings: Optional[LoggingSettings] = None,
    *,
    force: bool = False,
) -> Path:
    """Install the handlers for ``role`` ("gateway" or "worker") on the root logger.

    Repeated calls are no-ops unless ``force`` is set; only handlers this
    module installed are replaced.
    """

    global _LOG_FILE, _HANDLERS

    if role not in LIBRARY_LOGGERS:
        raise ConfigurationError(f"Unknown process role for logging: {role!r}")
    if _LOG_FILE is not None and not force:
        return _LOG_FILE

    settings = settings or LoggingSettings()
    log_directory = settings.log_dir or Path.cwd() / "logs"
    log_directory.mkdir(parents=True, exist_ok=True)
    log_file = log_directory / f"{role}.log"

    formatter = logging.Formatter(fmt=LOG_FORMAT.format(role=role), datefmt=DATE_FORMAT)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=settings.max_bytes,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler(sys.stdout)
    handlers = (file_handler, console_handler)
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    for handler in _HANDLERS:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(settings.level)

    for name in LIBRARY_LOGGERS[role]:
        logging.getLogger(name).setLevel(settings.library_level)

    _HANDLERS = handlers
    _LOG_FILE = log_file
    root.info("Logging %s output to %s", role, log_file)
    return log_file


def current_log_file() -> Optional[Path]:
    return _LOG_FILE


__all__ = ["LIBRARY_LOGGERS", "configure_logging", "current_log_file"]
