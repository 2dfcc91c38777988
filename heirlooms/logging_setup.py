import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import BASE_DIR, _parse_bool_env

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _level(name: str, default: int) -> int:
    value = getattr(logging, str(name).upper(), None)
    return value if isinstance(value, int) else default


def configure_logging(logs_dir: Optional[Path] = None) -> logging.Logger:
    """Configure console + rotating file logging with env-driven levels.

    Env vars:
    - APP_LOG_LEVEL: console log level (default INFO)
    - APP_FILE_LOG: enable file logging to logs/app.log (default 1/true)
    - APP_FILE_LOG_LEVEL: file log level (default APP_LOG_LEVEL)

    Safe to call more than once; handlers are only attached the first time.
    """
    root = logging.getLogger()
    if getattr(root, "_heirlooms_logging_configured", False):
        return logging.getLogger("heirlooms")

    level = _level(os.getenv("APP_LOG_LEVEL", "INFO"), logging.INFO)
    file_level = _level(os.getenv("APP_FILE_LOG_LEVEL", logging.getLevelName(level)), level)
    root.setLevel(min(level, file_level))

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root.addHandler(sh)

    if _parse_bool_env(os.getenv("APP_FILE_LOG"), True):
        logs_dir = logs_dir or BASE_DIR / "logs"
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(str(logs_dir / "app.log"), maxBytes=5 * 1024 * 1024, backupCount=3)
        except OSError as exc:
            root.warning("File logging disabled, cannot open %s: %s", logs_dir, exc)
        else:
            fh.setLevel(file_level)
            fh.setFormatter(fmt)
            root.addHandler(fh)

    setattr(root, "_heirlooms_logging_configured", True)
    return logging.getLogger("heirlooms")
