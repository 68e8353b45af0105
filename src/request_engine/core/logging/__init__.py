"""
Logging system for Request Engine.

Example:
    >>> from request_engine.core.logging import LoggingConfig
    >>> from request_engine import EngineConfig, RequestEngine
    >>>
    >>> config = EngineConfig.create(
    ...     logging=LoggingConfig.create(level="DEBUG", format="colored")
    ... )
    >>> engine = RequestEngine(config)  # logs started / retrying / completed / ...
"""

from .config import LogFormat, LoggingConfig, LogLevel
from .filters import (
    CorrelationIdFilter,
    ExtraFieldsFilter,
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from .formatters import ColoredFormatter, JSONFormatter, TextFormatter, get_formatter
from .handlers import create_console_handler, create_file_handler
from .logger import EngineLogger, configure_logging, get_logger

__all__ = [
    # Config
    "LoggingConfig",
    "LogLevel",
    "LogFormat",
    # Logger
    "EngineLogger",
    "get_logger",
    "configure_logging",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    "ColoredFormatter",
    "get_formatter",
    # Filters
    "CorrelationIdFilter",
    "ExtraFieldsFilter",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    # Handlers
    "create_console_handler",
    "create_file_handler",
]
