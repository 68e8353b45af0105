"""
Lifecycle logger for Request Engine.

Thin wrapper over a ``logging.Logger`` with its own handlers: keyword
fields become record attributes and are masked before they are emitted.
"""

import logging
import threading
from typing import Any, List, Optional

from ...utils.sanitizer import mask_sensitive_data
from .config import LoggingConfig
from .filters import CorrelationIdFilter, ExtraFieldsFilter
from .formatters import get_formatter
from .handlers import create_console_handler, create_file_handler


class EngineLogger:
    """
    Structured logger used by the engine for request lifecycle events.

    Example:
        >>> logger = EngineLogger(LoggingConfig.create(level="DEBUG", format="json"))
        >>> logger.info("Request started", method="GET", url="https://api.example.com")
        >>> logger.close()
    """

    def __init__(self, config: Optional[LoggingConfig] = None, name: Optional[str] = None):
        """
        Args:
            config: Logging configuration (defaults if None)
            name: Logger name (``config.name`` if None)
        """
        self.config = config or LoggingConfig()
        self.name = name or self.config.name
        self._closed = False

        level = self.config.level.as_int()
        self._logger = logging.getLogger(self.name)
        self._logger.setLevel(level)
        self._logger.propagate = False

        # Re-initialising a logger with the same name replaces its handlers
        for handler in self._logger.handlers[:]:
            self._logger.removeHandler(handler)
            handler.close()

        filters: List[logging.Filter] = []
        if self.config.enable_correlation_id:
            filters.append(CorrelationIdFilter())
        if self.config.extra_fields:
            filters.append(ExtraFieldsFilter(self.config.extra_fields))

        formatter = get_formatter(self.config.format.value)

        if self.config.enable_console:
            self._logger.addHandler(create_console_handler(level, formatter, filters))

        if self.config.enable_file and self.config.file_path:
            self._logger.addHandler(create_file_handler(
                file_path=self.config.file_path,
                level=level,
                formatter=formatter,
                max_bytes=self.config.max_bytes,
                backup_count=self.config.backup_count,
                filters=filters,
            ))

    @property
    def logger(self) -> logging.Logger:
        """Underlying ``logging.Logger``."""
        return self._logger

    def is_enabled_for(self, level: int) -> bool:
        return not self._closed and self._logger.isEnabledFor(level)

    def log(self, level: int, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Log at a numeric ``level``; keyword fields are masked."""
        if self._closed:
            return
        self._logger.log(level, message, exc_info=exc_info, extra=mask_sensitive_data(kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """
        Example:
            >>> logger.info("Request completed", status_code=200, attempt=0)
        """
        self.log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self.log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log with traceback; call from an ``except`` block."""
        self.log(logging.ERROR, message, exc_info=True, **kwargs)

    def close(self) -> None:
        """Flush and close handlers. Idempotent."""
        if self._closed:
            return
        self._closed = True

        for handler in self._logger.handlers[:]:
            self._logger.removeHandler(handler)
            try:
                handler.flush()
                handler.close()
            except (OSError, ValueError):
                pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


_default_logger: Optional[EngineLogger] = None
_default_lock = threading.Lock()


def get_logger(config: Optional[LoggingConfig] = None) -> EngineLogger:
    """
    Shared EngineLogger; ``config`` is only used when it is created.

    Example:
        >>> logger = get_logger()
        >>> logger.info("Hello")
    """
    global _default_logger
    with _default_lock:
        if _default_logger is None:
            _default_logger = EngineLogger(config)
        return _default_logger


def configure_logging(config: LoggingConfig) -> EngineLogger:
    """Replace the shared EngineLogger with one built from ``config``."""
    global _default_logger
    with _default_lock:
        if _default_logger is not None:
            _default_logger.close()
        _default_logger = EngineLogger(config)
        return _default_logger
