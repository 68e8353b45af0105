"""Загрузка EngineConfig из переменных окружения и .env файла."""

from typing import Any, Optional

from ..config import EngineConfig
from ..exceptions import ConfigurationError
from .validator import EngineSettings


def load_from_env(env_file: Optional[str] = None, **overrides: Any) -> EngineConfig:
    """
    Загрузить EngineConfig из окружения.

    Priority (highest to lowest):
    1. **overrides - явные значения (имена полей EngineSettings)
    2. Переменные окружения (REQUEST_ENGINE_*)
    3. .env файл (``env_file`` или ./.env)
    4. Defaults

    Raises:
        ConfigurationError: Неизвестное имя в overrides
        pydantic.ValidationError: Невалидное значение

    Example:
        >>> config = load_from_env()
        >>> config = load_from_env(env_file="prod.env", pool_max_workers=32)
    """
    unknown = set(overrides) - set(EngineSettings.model_fields)
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")

    if env_file is not None:
        settings = EngineSettings(_env_file=env_file, **overrides)
    else:
        settings = EngineSettings(**overrides)

    return settings.to_engine_config()


def describe_config(config: EngineConfig) -> str:
    """
    Короткое описание конфигурации для отладки.

    Example:
        >>> print(describe_config(load_from_env()))
        EngineConfig:
          timeout: connect=5.0s, read=30.0s
          ...
    """
    lines = [
        "EngineConfig:",
        f"  timeout: connect={config.timeout.connect}s, read={config.timeout.read}s",
        f"  retry: backoff_base={config.retry.backoff_base}s, "
        f"factor={config.retry.backoff_factor}, max={config.retry.backoff_max}s",
        f"  pool: workers={config.pool.max_workers}, maxsize={config.pool.pool_maxsize}",
        f"  security: verify_ssl={config.security.verify_ssl}, "
        f"allow_redirects={config.security.allow_redirects}",
        f"  callback_workers: {config.callback_workers}",
    ]
    if config.logging is not None:
        lines.append(
            f"  logging: level={config.logging.level.value}, format={config.logging.format.value}"
        )
        if config.logging.enable_file:
            lines.append(f"    file: {config.logging.file_path}")
    return "\n".join(lines)
