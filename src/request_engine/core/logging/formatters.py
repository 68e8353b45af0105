"""
Log formatters: JSON, text and colored text.

Fields passed to ``EngineLogger`` (``request_id``, ``method``, ``url`` ...)
end up as LogRecord attributes and are appended by every formatter.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Tuple

# Attributes every LogRecord has; everything else is an extra field
_RECORD_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'asctime', 'taskName',
})


def extra_fields(record: logging.LogRecord) -> Iterator[Tuple[str, Any]]:
    """Non-standard attributes of ``record`` in insertion order."""
    for key, value in record.__dict__.items():
        if key not in _RECORD_ATTRS and not key.startswith('_'):
            yield key, value


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Example output:
        {"timestamp": "2024-01-15T10:30:45.123000+00:00", "level": "INFO",
         "logger": "request_engine.lifecycle", "message": "Request completed",
         "request_id": "6f1c...", "status_code": 200}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(extra_fields(record))

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        # Ошибки и прочие объекты сериализуем через str()
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """
    Plain text: ``[timestamp] [level] [logger] message key=value ...``
    """

    def __init__(self):
        super().__init__(
            fmt='[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        base_msg = super().format(record)
        fields = [f"{key}={value}" for key, value in extra_fields(record)]
        if fields:
            base_msg += " " + " ".join(fields)
        return base_msg


class ColoredFormatter(TextFormatter):
    """TextFormatter with ANSI-colored level names, for terminals."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[1;31m', # Bold Red
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color is None:
            return super().format(record)

        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


_FORMATTERS = {
    "json": JSONFormatter,
    "text": TextFormatter,
    "colored": ColoredFormatter,
}


def get_formatter(format_type: str) -> logging.Formatter:
    """
    Formatter instance by name.

    Raises:
        ValueError: If format_type is unknown
    """
    formatter_class = _FORMATTERS.get(format_type.lower())
    if formatter_class is None:
        raise ValueError(
            f"Unknown format type: {format_type}. "
            f"Available: {', '.join(_FORMATTERS)}"
        )
    return formatter_class()
