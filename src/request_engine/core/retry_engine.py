"""
Retry engine для повторных попыток задачи.

Включает:
- Решение о повторе по бюджету задачи
- Exponential backoff с jitter
- Retry-After header parsing
"""

import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Optional

from .config import RetryConfig
from .response import Result

if TYPE_CHECKING:
    from .classifier import ResponseMeta

logger = logging.getLogger(__name__)

MAX_RETRY_AFTER_LENGTH = 100


class RetryEngine:
    """
    Политика повторов, общая для всех задач движка.

    Бюджет хранится в самой задаче; движок только решает и считает паузу.

    Examples:
        >>> engine = RetryEngine(RetryConfig(backoff_base=0.5))
        >>> if engine.should_retry(result, task.remaining_retries):
        ...     wait = engine.get_wait_time(task.attempt, task.response)
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        """
        Args:
            config: Конфигурация задержек
        """
        self.config = config or RetryConfig()

    def should_retry(self, result: Result, remaining_retries: int) -> bool:
        """
        Нужен ли повтор.

        Повторяется только ошибка с ``retryable=True`` (транспорт, статус,
        пустой ответ), пока бюджет больше нуля. Фатальные ошибки и всё
        неизвестное доставляются сразу.

        Args:
            result: Вердикт классификатора
            remaining_retries: Оставшийся бюджет задачи

        Returns:
            True если нужен retry
        """
        if result.ok or remaining_retries <= 0:
            return False
        return getattr(result.error, 'retryable', False)

    def get_wait_time(self, attempt: int, meta: Optional['ResponseMeta'] = None) -> float:
        """
        Вычислить паузу перед повтором.

        Args:
            attempt: Номер завершившейся попытки (0 = первая)
            meta: Метаданные ответа (для Retry-After)

        Returns:
            Секунды для ожидания (0 = повтор сразу)
        """
        # Приоритет 1: Retry-After header
        if self.config.respect_retry_after and meta is not None:
            retry_after = self._parse_retry_after(meta)
            if retry_after is not None:
                return min(retry_after, self.config.retry_after_max)

        if self.config.backoff_base <= 0:
            return 0.0

        # Приоритет 2: Exponential backoff
        wait = self.config.backoff_base * (self.config.backoff_factor ** attempt)
        wait = min(wait, self.config.backoff_max)

        # Jitter 50-150% от wait
        if self.config.backoff_jitter:
            wait = wait * (0.5 + random.random())

        return wait

    def _parse_retry_after(self, meta: 'ResponseMeta') -> Optional[float]:
        """
        Распарсить Retry-After header.

        Returns:
            Секунды или None
        """
        retry_after = meta.header('Retry-After')
        if not retry_after:
            return None

        # Нормальные значения: "60" или "Wed, 21 Oct 2015 07:28:00 GMT"
        if len(retry_after) > MAX_RETRY_AFTER_LENGTH:
            logger.warning(
                f"Retry-After header too long ({len(retry_after)} chars), ignoring"
            )
            return None

        try:
            seconds = float(retry_after)
        except ValueError:
            pass
        else:
            if seconds < 0 or seconds > 86400 * 365:
                logger.warning(f"Retry-After seconds value out of range: {seconds}")
                return None
            return seconds

        try:
            retry_date = parsedate_to_datetime(retry_after)
        except (ValueError, TypeError, OverflowError) as e:
            logger.debug(f"Failed to parse Retry-After header '{retry_after}': {e}")
            return None

        if retry_date.tzinfo is None:
            retry_date = retry_date.replace(tzinfo=timezone.utc)
        delta = (retry_date - datetime.now(timezone.utc)).total_seconds()
        return max(0.0, delta)
