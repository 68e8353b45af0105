"""Logging configuration for Request Engine."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def as_int(self) -> int:
        """Numeric level for the ``logging`` module."""
        return getattr(logging, self.value)


class LogFormat(str, Enum):
    """Log output formats."""
    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


@dataclass(frozen=True)
class LoggingConfig:
    """
    Configuration of the engine lifecycle logger.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format (json, text, colored)
        enable_console: Log to stdout
        enable_file: Log to a rotating file
        file_path: Path to log file (required if enable_file=True)
        max_bytes: Max log file size before rotation (default: 10MB)
        backup_count: Number of rotated files to keep
        enable_correlation_id: Add the thread's correlation id to records
        extra_fields: Static fields added to every record
        name: Logger name

    Example:
        >>> config = LoggingConfig.create(level="DEBUG", format="json")
    """

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.TEXT
    enable_console: bool = True
    enable_file: bool = False
    file_path: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_correlation_id: bool = True
    extra_fields: Dict[str, Any] = field(default_factory=dict)
    name: str = "request_engine.lifecycle"

    def __post_init__(self):
        object.__setattr__(self, 'level', LogLevel(str(getattr(self.level, 'value', self.level)).upper()))
        object.__setattr__(self, 'format', LogFormat(str(getattr(self.format, 'value', self.format)).lower()))
        if self.enable_file and not self.file_path:
            raise ValueError("file_path is required when enable_file=True")
        if self.max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if self.backup_count < 0:
            raise ValueError("backup_count must be non-negative")

    @classmethod
    def create(
        cls,
        level: str = "INFO",
        format: str = "text",
        enable_console: bool = True,
        enable_file: bool = False,
        file_path: Optional[str] = None,
        **kwargs
    ) -> "LoggingConfig":
        """
        Create LoggingConfig from plain strings.

        Example:
            >>> LoggingConfig.create(
            ...     level="DEBUG",
            ...     format="json",
            ...     enable_file=True,
            ...     file_path="/tmp/engine.log"
            ... )
        """
        return cls(
            level=LogLevel(level.upper()),
            format=LogFormat(format.lower()),
            enable_console=enable_console,
            enable_file=enable_file,
            file_path=file_path,
            **kwargs
        )

