"""
Классификация результата попытки.

Чистая функция: (буфер, метаданные ответа, ошибка транспорта) -> Result.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from .exceptions import (
    MissingDataError,
    StatusCodeError,
    classify_transport_exception,
)
from .response import Response, Result


@dataclass(frozen=True)
class ResponseMeta:
    """
    Метаданные ответа транспорта.

    Args:
        status_code: HTTP статус (None для не-HTTP ответов)
        headers: Заголовки ответа
        url: Итоговый URL (после редиректов)
        reason: Reason phrase
    """
    status_code: Optional[int] = None
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    url: Optional[str] = None
    reason: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, 'headers', MappingProxyType(dict(self.headers)))

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @classmethod
    def from_requests(cls, response) -> 'ResponseMeta':
        """Снять метаданные с ``requests.Response``."""
        return cls(
            status_code=response.status_code,
            headers=dict(response.headers),
            url=response.url,
            reason=response.reason,
        )


class ResponseClassifier:
    """
    Решает, чем закончилась попытка.

    Порядок проверок:
    1. Ошибка транспорта -> TransportError (или подкласс)
    2. Статус вне 200-299 -> StatusCodeError
    3. Нет данных -> MissingDataError
    4. Иначе -> успех с Response

    Examples:
        >>> classifier = ResponseClassifier()
        >>> classifier.classify(b"ok", ResponseMeta(status_code=200), None).ok
        True
        >>> classifier.classify(b"", ResponseMeta(status_code=204), None).error
        MissingDataError('Response contains no data')
    """

    def classify(
        self,
        buffer: Optional[bytes],
        meta: Optional[ResponseMeta],
        error: Optional[BaseException],
        url: Optional[str] = None,
    ) -> Result:
        # Ошибка транспорта всегда важнее статуса
        if error is not None:
            return Result.failure(classify_transport_exception(error, url))

        if meta is not None and meta.status_code is not None:
            if not 200 <= meta.status_code <= 299:
                return Result.failure(StatusCodeError(meta.status_code, url, meta))

        if not buffer:
            return Result.failure(MissingDataError(url))

        return Result.success(Response(bytes(buffer), meta))
