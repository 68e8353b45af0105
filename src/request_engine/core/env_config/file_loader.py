"""
Загрузка EngineConfig из YAML и JSON файлов.

Формат (секция ``request_engine`` опциональна)::

    request_engine:
      timeout: {connect: 5, read: 60}
      retry: {backoff_base: 0.5, backoff_max: 10}
      pool: {max_workers: 20}
      logging: {level: DEBUG, format: json}
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from ..config import EngineConfig
from ..exceptions import ConfigurationError
from .validator import FileSettings

CONFIG_FILE_ENV = "REQUEST_ENGINE_CONFIG_FILE"
SECTION = "request_engine"


class ConfigValidationError(ConfigurationError):
    """Файл конфигурации невалиден."""
    pass


class ConfigFileLoader:
    """
    Загрузчик конфигурации из файлов.

    Examples:
        >>> config = ConfigFileLoader.from_yaml("engine.yaml")
        >>> config = ConfigFileLoader.from_file("engine.json")  # по расширению
        >>> config = ConfigFileLoader.from_env_path()  # из REQUEST_ENGINE_CONFIG_FILE
    """

    @staticmethod
    def from_yaml(path: Union[str, Path]) -> EngineConfig:
        """
        Загрузить конфиг из YAML файла.

        Raises:
            FileNotFoundError: Если файл не найден
            ConfigValidationError: Если конфиг невалидный
            ImportError: Если PyYAML не установлен
        """
        try:
            import yaml
        except ImportError:
            raise ImportError(
                "PyYAML is required to load YAML configs. "
                "Install it with: pip install request-engine[yaml] or pip install pyyaml"
            )

        path = _existing(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML syntax in {path}: {e}")

        return ConfigFileLoader.from_dict(data, source=str(path))

    @staticmethod
    def from_json(path: Union[str, Path]) -> EngineConfig:
        """
        Загрузить конфиг из JSON файла.

        Raises:
            FileNotFoundError: Если файл не найден
            ConfigValidationError: Если конфиг невалидный
        """
        path = _existing(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid JSON syntax in {path}: {e}")

        return ConfigFileLoader.from_dict(data, source=str(path))

    @staticmethod
    def from_file(path: Union[str, Path]) -> EngineConfig:
        """
        Автоопределение формата по расширению (.yaml, .yml, .json).

        Raises:
            ValueError: Если формат не поддерживается
        """
        suffix = Path(path).suffix.lower()
        if suffix in (".yaml", ".yml"):
            return ConfigFileLoader.from_yaml(path)
        if suffix == ".json":
            return ConfigFileLoader.from_json(path)
        raise ValueError(
            f"Unsupported config file format: {suffix}. "
            f"Supported formats: .yaml, .yml, .json"
        )

    @staticmethod
    def from_env_path() -> Optional[EngineConfig]:
        """Загрузить из файла, указанного в REQUEST_ENGINE_CONFIG_FILE (None если не задан)."""
        config_path = os.environ.get(CONFIG_FILE_ENV)
        if not config_path:
            return None
        return ConfigFileLoader.from_file(config_path)

    @staticmethod
    def from_dict(data: Any, source: str = "<dict>") -> EngineConfig:
        """
        Построить EngineConfig из разобранных данных.

        Raises:
            ConfigValidationError: Если данные невалидны
        """
        if not data:
            raise ConfigValidationError(f"Empty config: {source}")
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"Config must be a dictionary, got {type(data).__name__} in {source}"
            )

        section: Dict[str, Any] = data.get(SECTION, data)
        if not isinstance(section, dict):
            raise ConfigValidationError(f"'{SECTION}' must be a dictionary in {source}")

        try:
            return FileSettings.model_validate(section).to_engine_config()
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid config in {source}: {e}") from e


def _existing(path: Union[str, Path]) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    return path
