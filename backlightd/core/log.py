from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import LogLevel

# Status events sit between INFO and WARNING so "low" shows them without chatter
STATUS = 25
logging.addLevelName(STATUS, "STATUS")

DEFAULT_LOG_DIRECTORY = "~/.cache/backlightd/logs"

_LEVELS = {
    LogLevel.MINIMAL: logging.WARNING,
    LogLevel.LOW: STATUS,
    LogLevel.MEDIUM: logging.INFO,
    LogLevel.HIGH: logging.DEBUG,
    LogLevel.VERBOSE: logging.DEBUG,
}

_NOISY_LOGGERS = ("aiosqlite", "asyncio")


def configure_logging(level: LogLevel = LogLevel.MEDIUM, directory: Optional[str] = None) -> None:
    logger = logging.getLogger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    if level is LogLevel.OFF:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.CRITICAL + 1)
        return

    logger.setLevel(_LEVELS[level])

    fmt = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s - %(message)s"
    )

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # Rotating file
    log_dir = Path(directory or DEFAULT_LOG_DIRECTORY).expanduser()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            log_dir / "backlightd.log", maxBytes=2_000_000, backupCount=10
        )
    except OSError as e:
        logger.warning("File logging disabled, cannot use %s: %s", log_dir, e)
    else:
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # Third-party chatter only in verbose mode
    noisy_level = logging.DEBUG if level is LogLevel.VERBOSE else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
