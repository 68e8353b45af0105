"""
Pydantic-модели настроек движка.

- секции (TimeoutSettings, RetrySettings, ...) валидируют вложенные
  словари из файлов конфигурации
- EngineSettings читает плоские переменные окружения REQUEST_ENGINE_*
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..config import (
    ConnectionPoolConfig,
    EngineConfig,
    RetryConfig,
    SecurityConfig,
    TimeoutConfig,
)
from ..logging.config import LoggingConfig

LevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
FormatName = Literal["json", "text", "colored"]


class _Section(BaseModel):
    model_config = ConfigDict(extra='forbid')


class TimeoutSettings(_Section):
    """Timeouts in seconds."""

    connect: float = Field(default=5.0, gt=0)
    read: float = Field(default=30.0, gt=0)

    def to_config(self) -> TimeoutConfig:
        return TimeoutConfig(connect=self.connect, read=self.read)


class RetrySettings(_Section):
    """Pause between retries (the retry count is set per request)."""

    backoff_base: float = Field(default=0.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    backoff_max: float = Field(default=60.0, ge=0)
    backoff_jitter: bool = False
    respect_retry_after: bool = False
    retry_after_max: int = Field(default=300, ge=0)

    def to_config(self) -> RetryConfig:
        return RetryConfig(**self.model_dump())


class PoolSettings(_Section):
    """Connection pool and worker threads."""

    pool_connections: int = Field(default=10, ge=1)
    pool_maxsize: int = Field(default=10, ge=1)
    pool_block: bool = False
    max_workers: int = Field(default=10, ge=1)
    chunk_size: int = Field(default=8192, ge=1)

    def to_config(self) -> ConnectionPoolConfig:
        return ConnectionPoolConfig(**self.model_dump())


class SecuritySettings(_Section):
    verify_ssl: bool = True
    allow_redirects: bool = True

    def to_config(self) -> SecurityConfig:
        return SecurityConfig(**self.model_dump())


class LoggingSettings(_Section):
    """Lifecycle logging."""

    level: LevelName = "INFO"
    format: FormatName = "text"
    enable_console: bool = True
    enable_file: bool = False
    file_path: Optional[str] = None
    max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    backup_count: int = Field(default=5, ge=0)
    enable_correlation_id: bool = True

    @model_validator(mode='after')
    def _file_path_required(self) -> 'LoggingSettings':
        if self.enable_file and not self.file_path:
            raise ValueError("file_path is required when enable_file=True")
        return self

    def to_config(self) -> LoggingConfig:
        return LoggingConfig.create(**self.model_dump())


class FileSettings(_Section):
    """Содержимое файла конфигурации (все секции опциональны)."""

    timeout: TimeoutSettings = Field(default_factory=TimeoutSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    pool: PoolSettings = Field(default_factory=PoolSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    callback_workers: int = Field(default=1, ge=1)
    logging: Optional[LoggingSettings] = None

    def to_engine_config(self) -> EngineConfig:
        return EngineConfig(
            timeout=self.timeout.to_config(),
            retry=self.retry.to_config(),
            pool=self.pool.to_config(),
            security=self.security.to_config(),
            callback_workers=self.callback_workers,
            logging=self.logging.to_config() if self.logging else None,
        )


class EngineSettings(BaseSettings):
    """
    Настройки движка из переменных окружения.

    Источники (по убыванию приоритета):
    1. Аргументы конструктора
    2. Переменные окружения REQUEST_ENGINE_*
    3. .env файл
    4. Значения по умолчанию

    Example .env file:
        REQUEST_ENGINE_TIMEOUT_READ=60
        REQUEST_ENGINE_POOL_MAX_WORKERS=20
        REQUEST_ENGINE_RETRY_BACKOFF_BASE=0.5
        REQUEST_ENGINE_LOG_ENABLED=true
        REQUEST_ENGINE_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix='REQUEST_ENGINE_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # Timeouts
    timeout_connect: float = Field(default=5.0, gt=0)
    timeout_read: float = Field(default=30.0, gt=0)

    # Retry
    retry_backoff_base: float = Field(default=0.0, ge=0)
    retry_backoff_factor: float = Field(default=2.0, ge=1.0)
    retry_backoff_max: float = Field(default=60.0, ge=0)
    retry_backoff_jitter: bool = False
    retry_respect_retry_after: bool = False
    retry_after_max: int = Field(default=300, ge=0)

    # Connection pool
    pool_connections: int = Field(default=10, ge=1)
    pool_maxsize: int = Field(default=10, ge=1)
    pool_block: bool = False
    pool_max_workers: int = Field(default=10, ge=1)
    pool_chunk_size: int = Field(default=8192, ge=1)

    # Security
    security_verify_ssl: bool = True
    security_allow_redirects: bool = True

    callback_workers: int = Field(default=1, ge=1)

    # Logging (выключено по умолчанию)
    log_enabled: bool = False
    log_level: LevelName = "INFO"
    log_format: FormatName = "text"
    log_enable_console: bool = True
    log_enable_file: bool = False
    log_file_path: Optional[str] = None
    log_max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    log_backup_count: int = Field(default=5, ge=0)
    log_enable_correlation_id: bool = True

    def to_timeout_settings(self) -> TimeoutSettings:
        return TimeoutSettings(connect=self.timeout_connect, read=self.timeout_read)

    def to_retry_settings(self) -> RetrySettings:
        return RetrySettings(
            backoff_base=self.retry_backoff_base,
            backoff_factor=self.retry_backoff_factor,
            backoff_max=self.retry_backoff_max,
            backoff_jitter=self.retry_backoff_jitter,
            respect_retry_after=self.retry_respect_retry_after,
            retry_after_max=self.retry_after_max,
        )

    def to_pool_settings(self) -> PoolSettings:
        return PoolSettings(
            pool_connections=self.pool_connections,
            pool_maxsize=self.pool_maxsize,
            pool_block=self.pool_block,
            max_workers=self.pool_max_workers,
            chunk_size=self.pool_chunk_size,
        )

    def to_security_settings(self) -> SecuritySettings:
        return SecuritySettings(
            verify_ssl=self.security_verify_ssl,
            allow_redirects=self.security_allow_redirects,
        )

    def to_logging_settings(self) -> Optional[LoggingSettings]:
        """LoggingSettings или None если логирование выключено."""
        if not self.log_enabled:
            return None
        return LoggingSettings(
            level=self.log_level,
            format=self.log_format,
            enable_console=self.log_enable_console,
            enable_file=self.log_enable_file,
            file_path=self.log_file_path,
            max_bytes=self.log_max_bytes,
            backup_count=self.log_backup_count,
            enable_correlation_id=self.log_enable_correlation_id,
        )

    def to_engine_config(self) -> EngineConfig:
        return FileSettings(
            timeout=self.to_timeout_settings(),
            retry=self.to_retry_settings(),
            pool=self.to_pool_settings(),
            security=self.to_security_settings(),
            callback_workers=self.callback_workers,
            logging=self.to_logging_settings(),
        ).to_engine_config()
