"""
Logging for the clinic service.

Everything logs under the ``basma_clinic`` logger: console output plus two
rotating files in ``LOGS_DIR`` (``app.log`` for the day-to-day trail,
``errors.log`` for failures only).
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from basma_clinic.config import get_settings

ROOT_LOGGER = "basma_clinic"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

CONSOLE_FORMAT = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
FILE_FORMAT = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# socket and scheduler internals are chatty at INFO
QUIET_LOGGERS = ("engineio.server", "socketio.server", "apscheduler")


def _rotating(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger() -> logging.Logger:
    """Attach the console and file handlers once; later calls return the same logger."""
    settings = get_settings()
    package_logger = logging.getLogger(ROOT_LOGGER)
    if getattr(package_logger, "_clinic_configured", False):
        return package_logger

    level = logging.DEBUG if settings.APP_DEBUG else logging.INFO
    package_logger.setLevel(level)
    package_logger.handlers.clear()

    logs_dir = Path(settings.LOGS_DIR)
    logs_dir.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(CONSOLE_FORMAT)
    package_logger.addHandler(console)
    package_logger.addHandler(_rotating(logs_dir / "app.log", logging.INFO, FILE_FORMAT))
    package_logger.addHandler(_rotating(logs_dir / "errors.log", logging.ERROR, FILE_FORMAT))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    package_logger._clinic_configured = True
    return package_logger


logger = setup_logger()


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Package logger, or its ``name`` child (``get_logger("socket")`` -> ``basma_clinic.socket``)."""
    if name:
        return logger.getChild(name)
    return logger
