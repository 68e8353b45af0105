"""
Загрузка конфигурации движка из окружения и файлов.

Example:
    >>> from request_engine.core.env_config import load_from_env, ConfigFileLoader
    >>>
    >>> config = load_from_env()                        # REQUEST_ENGINE_* + .env
    >>> config = load_from_env(pool_max_workers=32)     # с override
    >>> config = ConfigFileLoader.from_file("engine.yaml")
"""

from .file_loader import ConfigFileLoader, ConfigValidationError
from .loader import describe_config, load_from_env
from .validator import (
    EngineSettings,
    FileSettings,
    LoggingSettings,
    PoolSettings,
    RetrySettings,
    SecuritySettings,
    TimeoutSettings,
)

__all__ = [
    # Loaders
    "load_from_env",
    "describe_config",
    "ConfigFileLoader",
    "ConfigValidationError",
    # Settings
    "EngineSettings",
    "FileSettings",
    "TimeoutSettings",
    "RetrySettings",
    "PoolSettings",
    "SecuritySettings",
    "LoggingSettings",
]
