"""
Logging setup shared by every ladder module.

Each module calls ``setup_logger(__name__)`` once at import; handlers are
attached only the first time a logger is requested.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from ladder.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def log_level() -> int:
    """Configured console level. DEBUG=true always means debug output."""
    if Config.DEBUG:
        return logging.DEBUG
    level = logging.getLevelName(Config.LOG_LEVEL.upper())
    # Unknown names are reported by Config.validate(); log at INFO until then
    return level if isinstance(level, int) else logging.INFO


def _file_handler(formatter: logging.Formatter) -> Optional[logging.Handler]:
    # One file per day under LOG_DIR; empty LOG_DIR means console only
    if not Config.LOG_DIR:
        return None
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(
        log_dir / f'ladder_{datetime.now().strftime("%Y%m%d")}.log',
        encoding='utf-8'
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logger(name: str) -> logging.Logger:
    """Setup a logger with consistent formatting"""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = log_level()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    file_handler = _file_handler(formatter)
    if file_handler is not None:
        logger.addHandler(file_handler)
        # The file keeps debug detail even when the console is quieter
        logger.setLevel(min(level, logging.DEBUG))
    else:
        logger.setLevel(level)

    return logger
