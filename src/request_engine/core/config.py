"""
Система конфигурации для Request Engine.

Все конфиги immutable (frozen dataclasses) для потокобезопасности.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from .logging import LoggingConfig

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TIMEOUT CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class TimeoutConfig:
    """
    Конфигурация таймаутов транспорта.

    Args:
        connect: Таймаут подключения (сек)
        read: Таймаут чтения данных (сек)

    Examples:
        >>> TimeoutConfig(connect=5, read=30)
    """
    connect: float = 5
    read: float = 30

    def __post_init__(self):
        """Валидация."""
        if self.connect <= 0:
            raise ValueError("connect timeout must be positive")
        if self.read <= 0:
            raise ValueError("read timeout must be positive")

    def as_tuple(self) -> Tuple[float, float]:
        """Вернуть как (connect, read) для requests."""
        return (self.connect, self.read)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RETRY CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RetryConfig:
    """
    Конфигурация задержек между повторами.

    Количество повторов задаётся для каждого запроса отдельно
    (``TaskCallbacks.retry_count``). Здесь только пауза перед повтором.
    По умолчанию повтор запускается сразу.

    Args:
        backoff_base: Базовая задержка (сек), 0 = без задержки
        backoff_factor: Множитель для exponential backoff
        backoff_max: Максимальная задержка (сек)
        backoff_jitter: Добавлять случайность (против thundering herd)
        respect_retry_after: Учитывать Retry-After header
        retry_after_max: Максимум ждать из Retry-After (сек)

    Examples:
        >>> RetryConfig(backoff_base=0.5)
        >>> RetryConfig(backoff_base=1.0, backoff_max=10, backoff_jitter=True)
    """
    backoff_base: float = 0.0
    backoff_factor: float = 2.0
    backoff_max: float = 60.0
    backoff_jitter: bool = False

    respect_retry_after: bool = False
    retry_after_max: int = 300  # 5 минут

    def __post_init__(self):
        """Валидация."""
        if self.backoff_base < 0:
            raise ValueError("backoff_base must be non-negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if self.backoff_max < 0:
            raise ValueError("backoff_max must be non-negative")
        if self.retry_after_max < 0:
            raise ValueError("retry_after_max must be non-negative")

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CONNECTION POOL CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class ConnectionPoolConfig:
    """
    Конфигурация пула соединений и воркеров транспорта.

    Args:
        pool_connections: Количество connection pools для кеширования
        pool_maxsize: Максимум соединений в пуле
        pool_block: Блокировать при достижении лимита
        max_workers: Сколько запросов выполняются одновременно
        chunk_size: Размер чанка при чтении ответа (байты)

    Examples:
        >>> ConnectionPoolConfig(pool_maxsize=20, max_workers=20)
    """
    pool_connections: int = 10
    pool_maxsize: int = 10
    pool_block: bool = False
    max_workers: int = 10
    chunk_size: int = 8192

    def __post_init__(self):
        """Валидация."""
        if self.pool_connections <= 0:
            raise ValueError("pool_connections must be positive")
        if self.pool_maxsize <= 0:
            raise ValueError("pool_maxsize must be positive")
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SECURITY CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class SecurityConfig:
    """
    Конфигурация безопасности.

    Args:
        verify_ssl: Проверять SSL сертификаты
        allow_redirects: Разрешать редиректы

    Examples:
        >>> SecurityConfig(verify_ssl=False)  # Для тестов
    """
    verify_ssl: bool = True
    allow_redirects: bool = True

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MAIN CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class EngineConfig:
    """
    Главная конфигурация RequestEngine.

    Args:
        timeout: Конфигурация таймаутов
        retry: Конфигурация задержек retry
        pool: Конфигурация пула
        security: Конфигурация безопасности
        callback_workers: Потоков для callback'ов по умолчанию
            (1 = callback'и одной задачи приходят по порядку)
        logging: Конфигурация логирования (None = без логирования)

    Examples:
        >>> config = EngineConfig()
        >>> config = EngineConfig.create(timeout=60, max_workers=20)
    """
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    pool: ConnectionPoolConfig = field(default_factory=ConnectionPoolConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    callback_workers: int = 1
    logging: Optional['LoggingConfig'] = None

    def __post_init__(self):
        """Валидация."""
        if self.callback_workers <= 0:
            raise ValueError("callback_workers must be positive")

    @classmethod
    def create(
        cls,
        timeout: Union[float, Tuple[float, float], TimeoutConfig] = 30,
        max_workers: Optional[int] = None,
        pool_maxsize: Optional[int] = None,
        verify_ssl: bool = True,
        backoff_base: float = 0.0,
        logging: Optional['LoggingConfig'] = None,
        **kwargs
    ) -> 'EngineConfig':
        """
        Удобный конструктор конфигурации.

        Args:
            timeout: Таймаут (число, (connect, read) или TimeoutConfig)
            max_workers: Количество одновременных запросов
            pool_maxsize: Максимальный размер connection pool
            verify_ssl: Проверять SSL
            backoff_base: Базовая задержка перед retry
            logging: Конфигурация логирования

        Returns:
            EngineConfig instance

        Examples:
            >>> config = EngineConfig.create(timeout=(5, 60), max_workers=4)
        """
        timeout_cfg = _make_timeout(timeout)

        pool_kwargs = {}
        if max_workers is not None:
            pool_kwargs['max_workers'] = max_workers
        if pool_maxsize is not None:
            pool_kwargs['pool_maxsize'] = pool_maxsize

        return cls(
            timeout=timeout_cfg,
            retry=RetryConfig(backoff_base=backoff_base),
            pool=ConnectionPoolConfig(**pool_kwargs),
            security=SecurityConfig(verify_ssl=verify_ssl),
            logging=logging,
            **kwargs
        )

    def with_timeout(self, timeout: Union[float, Tuple[float, float], TimeoutConfig]) -> 'EngineConfig':
        """
        Создать новый конфиг с изменённым timeout.

        Example:
            >>> new_config = config.with_timeout(60)
        """
        return replace(self, timeout=_make_timeout(timeout))

    def with_retry(self, retry: RetryConfig) -> 'EngineConfig':
        """Создать новый конфиг с изменённым retry."""
        return replace(self, retry=retry)

    def with_logging(self, logging: Optional['LoggingConfig']) -> 'EngineConfig':
        """Создать новый конфиг с другой конфигурацией логирования."""
        return replace(self, logging=logging)


def _make_timeout(timeout: Union[float, Tuple[float, float], TimeoutConfig]) -> TimeoutConfig:
    if isinstance(timeout, TimeoutConfig):
        return timeout
    if isinstance(timeout, tuple):
        return TimeoutConfig(connect=timeout[0], read=timeout[1])
    return TimeoutConfig(connect=5, read=timeout)
