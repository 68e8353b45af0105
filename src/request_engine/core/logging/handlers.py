"""Console and rotating file handlers."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional


def _configure(handler: logging.Handler, level: int, formatter: logging.Formatter,
               filters: Optional[Iterable[logging.Filter]]) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    for f in filters or ():
        handler.addFilter(f)
    return handler


def create_console_handler(
    level: int,
    formatter: logging.Formatter,
    filters: Optional[Iterable[logging.Filter]] = None
) -> logging.StreamHandler:
    """Handler writing to stdout."""
    return _configure(logging.StreamHandler(sys.stdout), level, formatter, filters)


def create_file_handler(
    file_path: str,
    level: int,
    formatter: logging.Formatter,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    filters: Optional[Iterable[logging.Filter]] = None
) -> RotatingFileHandler:
    """
    Rotating file handler; the parent directory is created if missing.

    File rotation:
        engine.log    <- current
        engine.log.1  <- previous
        ...
    """
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=file_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    return _configure(handler, level, formatter, filters)
